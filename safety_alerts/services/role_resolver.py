"""
Role Resolver - compute the effective role of an authenticated principal.

RULES:
- Exactly one superadmin exists, identified by SUPERADMIN_EMAIL (case-insensitive).
  The stored role is advisory and re-synchronised on every resolution.
- A stored `superadmin` role that does not belong to the configured email is
  read as `admin`.
- Unknown uids get a default `user` record on first resolution.
- Store failures never revoke an identity that was already granted in-session;
  the best-known state is kept and the error is logged.
"""

from datetime import datetime, timezone
from typing import Optional
import logging

from pydantic import BaseModel

from safety_alerts.config.firebase import get_db
from safety_alerts.core.settings import settings
from safety_alerts.models.user import AuthFlags, Principal, Role, Session, UserRecord, UserStatus

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"


class RoleResolution(BaseModel):
    role: Role
    flags: AuthFlags
    needs_correction: bool = False


class ReconcileResult(BaseModel):
    """Outcome of the best-effort role correction write. Logged, never raised."""
    attempted: bool = False
    succeeded: bool = False
    error: Optional[str] = None


def is_superadmin_email(email: Optional[str], superadmin_email: Optional[str]) -> bool:
    configured = (superadmin_email or "").strip().lower()
    if not configured:
        return False
    return (email or "").strip().lower() == configured


def effective_role(record: Optional[UserRecord], superadmin_email: Optional[str]) -> Role:
    """Read-time role of a stored record (no principal needed)."""
    if record is None:
        return Role.USER
    if is_superadmin_email(record.email, superadmin_email):
        return Role.SUPERADMIN
    if record.role == Role.SUPERADMIN:
        return Role.ADMIN
    return record.role


def resolve_role(
    principal: Principal,
    stored_record: Optional[UserRecord],
    superadmin_email: Optional[str],
) -> RoleResolution:
    """
    Pure role computation.

    Args:
        principal: verified identity
        stored_record: user document for principal.uid, if any
        superadmin_email: configured superadmin address

    Returns:
        RoleResolution with the effective role, derived flags and whether
        the stored role should be corrected to superadmin
    """
    status = stored_record.status if stored_record else UserStatus.ACTIVE

    if is_superadmin_email(principal.email, superadmin_email):
        stored_role = stored_record.role if stored_record else None
        return RoleResolution(
            role=Role.SUPERADMIN,
            flags=AuthFlags.for_role(Role.SUPERADMIN, status),
            needs_correction=stored_role != Role.SUPERADMIN,
        )

    if stored_record is None:
        role = Role.USER
    elif stored_record.role == Role.SUPERADMIN:
        role = Role.ADMIN
    else:
        role = stored_record.role

    return RoleResolution(role=role, flags=AuthFlags.for_role(role, status))


class RoleResolver:
    """
    Resolves sessions against the `users` collection.
    """

    def __init__(self, db=None, superadmin_email: Optional[str] = None):
        self.db = db if db is not None else get_db()
        self.superadmin_email = superadmin_email if superadmin_email is not None else settings.SUPERADMIN_EMAIL

    def resolve_session(self, principal: Principal, previous: Optional[Session] = None) -> Session:
        """
        Resolve the session for an authenticated principal.

        Args:
            principal: verified identity
            previous: the session already granted to this caller, if any

        Returns:
            Session with effective role and flags; `degraded` when the store
            could not be reached
        """
        try:
            record = self._load_or_create(principal)
        except Exception as e:
            logger.error(f"Role resolution for {principal.uid} could not reach the store: {e}", exc_info=True)
            return self._best_known_session(principal, previous)

        resolution = resolve_role(principal, record, self.superadmin_email)

        if resolution.needs_correction:
            result = self.reconcile(principal.uid)
            if result.succeeded:
                record = record.model_copy(update={"role": Role.SUPERADMIN})
                logger.info(f"Stored role for {principal.uid} corrected to superadmin")
            else:
                logger.warning(f"Superadmin role correction for {principal.uid} failed: {result.error}")

        return Session(
            principal=principal,
            user=record,
            role=resolution.role,
            flags=resolution.flags,
        )

    def reconcile(self, uid: str) -> ReconcileResult:
        """Persist role=superadmin for the configured superadmin (best effort)."""
        try:
            self.db.collection(USERS_COLLECTION).document(uid).set(
                {"role": Role.SUPERADMIN.value, "updated_at": datetime.now(timezone.utc)},
                merge=True,
            )
            return ReconcileResult(attempted=True, succeeded=True)
        except Exception as e:
            return ReconcileResult(attempted=True, succeeded=False, error=str(e))

    def _load_or_create(self, principal: Principal) -> UserRecord:
        user_ref = self.db.collection(USERS_COLLECTION).document(principal.uid)
        doc = user_ref.get()
        if doc.exists:
            return UserRecord.from_doc(principal.uid, doc.to_dict() or {})

        now = datetime.now(timezone.utc)
        record = UserRecord(
            uid=principal.uid,
            email=principal.email,
            display_name=principal.display_name,
            role=Role.USER,
            status=UserStatus.ACTIVE,
            assigned_regions=[],
            created_at=now,
            updated_at=now,
        )
        user_ref.set(record.to_doc())
        logger.info(f"User record created: {principal.uid}")
        return record

    def _best_known_session(self, principal: Principal, previous: Optional[Session]) -> Session:
        if previous is not None and previous.uid == principal.uid:
            return previous.model_copy(update={"degraded": True})

        resolution = resolve_role(principal, None, self.superadmin_email)
        return Session(
            principal=principal,
            user=None,
            role=resolution.role,
            flags=resolution.flags,
            degraded=True,
        )


_role_resolver = None


def get_role_resolver() -> RoleResolver:
    """Get or create RoleResolver singleton."""
    global _role_resolver
    if _role_resolver is None:
        _role_resolver = RoleResolver()
    return _role_resolver
