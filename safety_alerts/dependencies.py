"""
FastAPI dependencies that turn the Authorization header into a Session.

Every route that needs a caller declares one of:
- get_optional_session: anonymous Session when no header is sent
- get_session:          401 without a valid bearer token
- require_admin:        403 unless the resolved role grants admin flags
- require_superadmin:   403 unless the caller is the configured superadmin
"""

import logging
import threading
from collections import OrderedDict
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from safety_alerts.core.errors import SafetyAlertsError
from safety_alerts.models.user import Session
from safety_alerts.services.role_resolver import get_role_resolver
from safety_alerts.utils.security import extract_bearer_token, principal_from_token

logger = logging.getLogger(__name__)

# last confirmed session per uid, least recently used evicted first;
# used while the store is unreachable
MAX_KNOWN_SESSIONS = 1024
_known_sessions: "OrderedDict[str, Session]" = OrderedDict()
_known_sessions_lock = threading.Lock()


def _resolve(authorization: Optional[str]) -> Optional[Session]:
    token = extract_bearer_token(authorization)
    if token is None:
        return None

    principal = principal_from_token(token)
    with _known_sessions_lock:
        previous = _known_sessions.get(principal.uid)
        if previous is not None:
            _known_sessions.move_to_end(principal.uid)

    session = get_role_resolver().resolve_session(principal, previous)
    if not session.degraded:
        with _known_sessions_lock:
            _known_sessions[principal.uid] = session
            _known_sessions.move_to_end(principal.uid)
            while len(_known_sessions) > MAX_KNOWN_SESSIONS:
                _known_sessions.popitem(last=False)
    return session


def reset_known_sessions() -> None:
    with _known_sessions_lock:
        _known_sessions.clear()


async def get_optional_session(authorization: Optional[str] = Header(None)) -> Session:
    try:
        session = _resolve(authorization)
    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return session or Session.anonymous()


async def get_session(session: Session = Depends(get_optional_session)) -> Session:
    if not session.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - Missing or invalid token",
        )
    return session


async def require_admin(session: Session = Depends(get_session)) -> Session:
    if not session.flags.is_admin:
        logger.info(f"Admin access denied for {session.uid} (role {session.role.value})")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden - Admin access required",
        )
    return session


async def require_superadmin(session: Session = Depends(get_session)) -> Session:
    if not session.flags.is_super_admin:
        logger.info(f"Superadmin access denied for {session.uid}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden - Only superadmin can perform this action",
        )
    return session
