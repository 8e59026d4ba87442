"""
Phone registry endpoints - numbers an admin registers to receive alert SMS.

Listing is always restricted to the caller's own registrations. DELETE is a
soft delete (is_active=false).
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
import logging

from safety_alerts.core.errors import SafetyAlertsError
from safety_alerts.dependencies import require_admin
from safety_alerts.models.phone import PhoneCreate, PhoneUpdate, RegisteredPhone
from safety_alerts.models.user import Session
from safety_alerts.services.phone_registry import get_phone_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/phones", tags=["Phones"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_phone(request: PhoneCreate, session: Session = Depends(require_admin)):
    try:
        phone_id = get_phone_registry().register(session.uid, request)
        return {"success": True, "id": phone_id}
    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Failed to register phone: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register phone"
        )


@router.get("", response_model=List[RegisteredPhone])
async def list_my_phones(session: Session = Depends(require_admin)):
    """The caller's registrations, active or not, newest first."""
    try:
        return get_phone_registry().list_mine(session.uid)
    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Failed to list phones: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list phones"
        )


@router.patch("/{phone_id}", response_model=RegisteredPhone)
async def update_phone(phone_id: str, request: PhoneUpdate, session: Session = Depends(require_admin)):
    """Merge-patch a registration; only provided fields change."""
    try:
        return get_phone_registry().update(phone_id, request, session)
    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Failed to update phone {phone_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update phone"
        )


@router.delete("/{phone_id}", response_model=RegisteredPhone)
async def deactivate_phone(phone_id: str, session: Session = Depends(require_admin)):
    try:
        return get_phone_registry().deactivate(phone_id, session)
    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Failed to deactivate phone {phone_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to deactivate phone"
        )
