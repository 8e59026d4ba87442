"""
Authentication endpoints - the resolved session of the calling identity.

Sign-in itself happens against Firebase Auth in the dashboard; the backend
only verifies the resulting ID token.
"""

from fastapi import APIRouter, Depends
from safety_alerts.dependencies import get_session
from safety_alerts.models.user import Session, SessionResponse, UserStatus

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.get("/me", response_model=SessionResponse)
async def current_session(session: Session = Depends(get_session)):
    """
    Role and capability flags of the caller.

    `degraded` is true when the user store could not be reached and the
    last known role was kept.
    """
    user = session.user
    return SessionResponse(
        uid=session.uid,
        email=session.principal.email,
        display_name=session.principal.display_name or (user.display_name if user else None),
        role=session.role,
        status=user.status if user else UserStatus.ACTIVE,
        assigned_regions=session.assigned_regions,
        is_admin=session.flags.is_admin,
        is_super_admin=session.flags.is_super_admin,
        can_manage_users=session.flags.can_manage_users,
        degraded=session.degraded,
    )
