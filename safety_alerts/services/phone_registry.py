"""
Phone Registry - numbers registered by admins to receive alert SMS.

Registrations are owned by the admin who created them and are never
physically removed: deactivation sets is_active=false so notification
history stays auditable.
"""

from firebase_admin import firestore
from typing import Callable, Dict, List, Optional, Union
import logging

from pydantic import ValidationError as PydanticValidationError

from safety_alerts.config.firebase import get_db
from safety_alerts.core.errors import AuthorizationError, NotFoundError, ValidationError
from safety_alerts.models.phone import PhoneCreate, PhoneUpdate, RegisteredPhone
from safety_alerts.models.user import Session
from safety_alerts.services.subscriptions import Subscription

logger = logging.getLogger(__name__)

REGISTERED_PHONES_COLLECTION = "registered_users"


class PhoneRegistry:
    """
    Service for the `registered_users` collection.
    """

    def __init__(self, db=None):
        self.db = db if db is not None else get_db()

    def _collection(self):
        return self.db.collection(REGISTERED_PHONES_COLLECTION)

    def register(self, owner_uid: str, data: Union[PhoneCreate, Dict]) -> str:
        """
        Register a phone number for `owner_uid`.

        The number is stored as provided; only non-emptiness is checked.

        Returns:
            The new registration id
        """
        if not owner_uid:
            raise ValidationError("Owner uid is required", field="owner_uid")
        if isinstance(data, dict):
            try:
                data = PhoneCreate.model_validate(data)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid phone registration: {e.errors()[0]['msg']}")

        doc_ref = self._collection().document()
        doc_ref.set({
            "owner_uid": owner_uid,
            "name": data.name,
            "phone_number": data.phone_number,
            "home_location": data.home_location.model_dump() if data.home_location else None,
            "categories": data.categories or [],
            "is_active": True,
            "created_at": firestore.SERVER_TIMESTAMP,
            "updated_at": firestore.SERVER_TIMESTAMP,
        })
        logger.info(f"Phone registered: {doc_ref.id} (owner {owner_uid})")
        return doc_ref.id

    def get_phone(self, phone_id: str) -> RegisteredPhone:
        doc = self._collection().document(phone_id).get()
        if not doc.exists:
            raise NotFoundError("Registered phone", id=phone_id)
        return RegisteredPhone.from_doc(doc.id, doc.to_dict() or {})

    def update(self, phone_id: str, updates: Union[PhoneUpdate, Dict], session: Optional[Session] = None) -> RegisteredPhone:
        """
        Merge-patch a registration. Only provided fields change; updated_at is
        always refreshed.

        Args:
            phone_id: registration id
            updates: partial fields
            session: acting caller; when given, must own the registration or be superadmin
        """
        if isinstance(updates, dict):
            try:
                updates = PhoneUpdate.model_validate(updates)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid phone update: {e.errors()[0]['msg']}")

        current = self.get_phone(phone_id)
        self._check_owner(current, session)

        fields = updates.model_dump(exclude_unset=True)
        if "categories" in fields and fields["categories"] is None:
            fields["categories"] = []
        fields["updated_at"] = firestore.SERVER_TIMESTAMP

        self._collection().document(phone_id).update(fields)
        logger.info(f"Phone {phone_id} updated: {sorted(k for k in fields if k != 'updated_at')}")
        return self.get_phone(phone_id)

    def deactivate(self, phone_id: str, session: Optional[Session] = None) -> RegisteredPhone:
        """Soft delete: equivalent to update(phone_id, {is_active: False})."""
        return self.update(phone_id, PhoneUpdate(is_active=False), session)

    def list_mine(self, owner_uid: str) -> List[RegisteredPhone]:
        """All registrations of `owner_uid` (active or not), newest first."""
        return self._owned(self._ordered_query().get(), owner_uid)

    def subscribe_mine(self, owner_uid: str, callback: Callable[[List[RegisteredPhone]], None]) -> Subscription:
        """
        Live view of the owner's registrations. The owner filter is applied
        client-side over an unfiltered, ordered subscription.
        """
        return Subscription(self._ordered_query(), lambda docs: self._owned(docs, owner_uid), callback)

    def list_active_numbers(self, category: Optional[str] = None) -> List[str]:
        """
        Distinct active numbers, optionally restricted to registrations whose
        categories are empty or contain `category`.
        """
        numbers: List[str] = []
        query = self._collection().where("is_active", "==", True)
        for phone in self._parse(query.stream()):
            if category and phone.categories and category not in phone.categories:
                continue
            if phone.phone_number and phone.phone_number not in numbers:
                numbers.append(phone.phone_number)
        return numbers

    def _ordered_query(self):
        return self._collection().order_by("created_at", direction=firestore.Query.DESCENDING)

    @staticmethod
    def _parse(docs) -> List[RegisteredPhone]:
        phones = []
        for doc in docs:
            try:
                phones.append(RegisteredPhone.from_doc(doc.id, doc.to_dict() or {}))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed phone registration {doc.id}: {e.errors()[0]['msg']}")
        return phones

    @classmethod
    def _owned(cls, docs, owner_uid: str) -> List[RegisteredPhone]:
        return [phone for phone in cls._parse(docs) if phone.owner_uid == owner_uid]

    @staticmethod
    def _check_owner(phone: RegisteredPhone, session: Optional[Session]) -> None:
        if session is None:
            return
        if session.flags.is_super_admin or phone.owner_uid == session.uid:
            return
        raise AuthorizationError("Only the admin who registered this phone can change it")


_phone_registry = None


def get_phone_registry() -> PhoneRegistry:
    """Get or create PhoneRegistry singleton."""
    global _phone_registry
    if _phone_registry is None:
        _phone_registry = PhoneRegistry()
    return _phone_registry
