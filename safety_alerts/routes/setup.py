"""
Initial bootstrap - creates the very first admin account.
"""

from fastapi import APIRouter, HTTPException, status
import logging

from safety_alerts.core.errors import SafetyAlertsError
from safety_alerts.models.user import SetupRequest
from safety_alerts.services.user_service import get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Setup"])


@router.post("/setup", status_code=status.HTTP_201_CREATED)
async def initial_setup(request: SetupRequest):
    """
    Create the first admin identity.

    Unauthenticated by necessity; rejected with 400 as soon as any user
    record exists.
    """
    try:
        user = get_user_service().bootstrap_admin(request.email, request.password, request.display_name)
        return {
            "success": True,
            "message": "Admin account created successfully",
            "uid": user.uid,
        }

    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Setup failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create admin account"
        )
