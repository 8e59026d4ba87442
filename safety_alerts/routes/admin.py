"""
Admin endpoints - user role and account management.

Only the configured superadmin may call these. The superadmin role itself
can never be granted through them.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
import logging

from safety_alerts.core.errors import SafetyAlertsError
from safety_alerts.dependencies import require_superadmin
from safety_alerts.models.user import RoleUpdateRequest, Session, UserRecord, UserUpdateRequest
from safety_alerts.services.user_service import get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/role")
async def set_user_role(request: RoleUpdateRequest, session: Session = Depends(require_superadmin)):
    """
    Set a user's role to `admin` or `user`.

    Errors:
    - 400: role is superadmin or unknown
    - 404: target user does not exist
    """
    try:
        user = get_user_service().set_role(request.target_uid, request.role)
        logger.info(f"Superadmin {session.uid} set role of {request.target_uid} to {request.role}")
        return {
            "success": True,
            "message": f"User role updated to {request.role}",
            "user": user.model_dump(mode="json"),
        }

    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Failed to update role: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update user role"
        )


@router.post("/user")
async def update_user(request: UserUpdateRequest, session: Session = Depends(require_superadmin)):
    """
    Update role, account status and/or assigned regions of a user.
    Only provided fields change.
    """
    try:
        user = get_user_service().update_user(request.target_uid, request.updates)
        logger.info(f"Superadmin {session.uid} updated user {request.target_uid}")
        return {
            "success": True,
            "message": "User updated successfully",
            "user": user.model_dump(mode="json"),
        }

    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Failed to update user: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update user"
        )


@router.get("/users", response_model=List[UserRecord])
async def list_users(session: Session = Depends(require_superadmin)):
    """All user records, newest first."""
    try:
        return get_user_service().list_users()
    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Failed to list users: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list users"
        )
