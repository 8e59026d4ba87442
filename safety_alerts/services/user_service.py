"""
User Service - superadmin management of user records and the one-time
bootstrap of the first admin identity.
"""

from firebase_admin import auth as firebase_auth
from firebase_admin import firestore
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union
import logging

from pydantic import ValidationError as PydanticValidationError

from safety_alerts.config import firebase
from safety_alerts.config.firebase import get_db
from safety_alerts.core.errors import BackendError, NotFoundError, ValidationError
from safety_alerts.core.settings import settings
from safety_alerts.models.user import Role, UserRecord, UserStatus, UserUpdates
from safety_alerts.services.role_resolver import USERS_COLLECTION, effective_role, is_superadmin_email

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = (Role.ADMIN.value, Role.USER.value)
MIN_PASSWORD_LENGTH = 6


class UserService:
    """
    Service for user management in Firestore.
    """

    def __init__(self, db=None, superadmin_email: Optional[str] = None):
        self.db = db if db is not None else get_db()
        self.superadmin_email = superadmin_email if superadmin_email is not None else settings.SUPERADMIN_EMAIL

    def _collection(self):
        return self.db.collection(USERS_COLLECTION)

    def get_user(self, uid: str) -> UserRecord:
        """
        Get a user record with its read-time role.

        Raises:
            NotFoundError: no record for uid
        """
        doc = self._collection().document(uid).get()
        if not doc.exists:
            raise NotFoundError("User", uid=uid)
        return self._normalized(doc.id, doc.to_dict() or {})

    def list_users(self) -> List[UserRecord]:
        """All user records, newest first."""
        query = self._collection().order_by("created_at", direction=firestore.Query.DESCENDING)
        return [self._normalized(doc.id, doc.to_dict() or {}) for doc in query.stream()]

    def set_role(self, target_uid: str, role: str) -> UserRecord:
        """
        Set the stored role of a user to admin or user.

        Raises:
            ValidationError: superadmin or an unknown role requested
            NotFoundError: target does not exist
        """
        role_value = self._assignable_role(role)
        user_ref = self._existing_ref(target_uid)
        user_ref.update({"role": role_value, "updated_at": datetime.now(timezone.utc)})
        logger.info(f"Role of {target_uid} set to {role_value}")
        return self.get_user(target_uid)

    def update_user(self, target_uid: str, updates: Union[UserUpdates, Dict]) -> UserRecord:
        """
        Apply role/status/assigned_regions changes to a user.

        Args:
            target_uid: user to change
            updates: any of role (admin|user), status (active|blocked|banned),
                assigned_regions (list of region labels)
        """
        if isinstance(updates, dict):
            try:
                updates = UserUpdates.model_validate(updates)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid user updates: {e.errors()[0]['msg']}")

        fields: Dict = {}
        if updates.role is not None:
            fields["role"] = self._assignable_role(updates.role)
        if updates.status is not None:
            if updates.status not in UserStatus._value2member_map_:
                raise ValidationError("Invalid status. Must be 'active', 'blocked' or 'banned'", field="status")
            fields["status"] = updates.status
        if updates.assigned_regions is not None:
            fields["assigned_regions"] = [r.strip() for r in updates.assigned_regions if r and r.strip()]
        if not fields:
            raise ValidationError("No updates provided", field="updates")

        user_ref = self._existing_ref(target_uid)
        if fields.get("status", UserStatus.ACTIVE.value) != UserStatus.ACTIVE.value:
            current = user_ref.get().to_dict() or {}
            if is_superadmin_email(current.get("email"), self.superadmin_email):
                raise ValidationError("The superadmin account cannot be blocked or banned", field="status")

        fields["updated_at"] = datetime.now(timezone.utc)
        user_ref.update(fields)
        logger.info(f"User {target_uid} updated: {sorted(k for k in fields if k != 'updated_at')}")
        return self.get_user(target_uid)

    def bootstrap_admin(self, email: str, password: str, display_name: str) -> UserRecord:
        """
        Create the first admin identity. Only allowed while no user record exists.

        Raises:
            ValidationError: setup already done, weak password, email taken
            BackendError: identity provider failure
        """
        if any(True for _ in self._collection().limit(1).stream()):
            raise ValidationError("Setup already completed. Users already exist.")
        if not email or not email.strip():
            raise ValidationError("Email is required", field="email")
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                field="password",
            )
        if not display_name or not display_name.strip():
            raise ValidationError("Display name is required", field="display_name")

        try:
            uid = firebase.create_identity(email.strip(), password, display_name.strip())
        except firebase_auth.EmailAlreadyExistsError:
            raise ValidationError("An account with this email already exists", field="email")
        except ValueError as e:
            raise ValidationError(f"Invalid account details: {e}")
        except Exception as e:
            logger.error(f"Identity creation failed during setup: {e}", exc_info=True)
            raise BackendError("Failed to create admin account")

        now = datetime.now(timezone.utc)
        record = UserRecord(
            uid=uid,
            email=email.strip(),
            display_name=display_name.strip(),
            role=Role.ADMIN,
            status=UserStatus.ACTIVE,
            is_initial_admin=True,
            created_at=now,
            updated_at=now,
        )
        self._collection().document(uid).set(record.to_doc())
        logger.info(f"Initial admin created: {uid}")
        return record

    def _existing_ref(self, uid: str):
        user_ref = self._collection().document(uid)
        if not user_ref.get().exists:
            raise NotFoundError("User", uid=uid)
        return user_ref

    @staticmethod
    def _assignable_role(role: str) -> str:
        if role == Role.SUPERADMIN.value:
            raise ValidationError("Cannot set superadmin role", field="role")
        if role not in ASSIGNABLE_ROLES:
            raise ValidationError("Invalid role. Must be 'admin' or 'user'", field="role")
        return role

    def _normalized(self, uid: str, data: Dict) -> UserRecord:
        record = UserRecord.from_doc(uid, data)
        return record.model_copy(update={"role": effective_role(record, self.superadmin_email)})


_user_service = None


def get_user_service() -> UserService:
    """Get or create UserService singleton."""
    global _user_service
    if _user_service is None:
        _user_service = UserService()
    return _user_service
