"""
SMS endpoint - send one message to a list of phone numbers.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from safety_alerts.core.errors import SafetyAlertsError
from safety_alerts.dependencies import require_admin
from safety_alerts.models.notification import SmsRequest
from safety_alerts.models.user import Session
from safety_alerts.services.sms_gateway import get_notification_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["SMS"])


@router.post("/sms")
async def send_sms(request: SmsRequest, session: Session = Depends(require_admin)):
    """
    Send `message` to every number in `phoneNumbers`.

    Each recipient is attempted independently; partial failure is reported
    in the counts and the itemized results, never as an error status.

    Errors:
    - 401/403: caller is not an admin
    - 400: empty numbers or message
    - 500: SMS transport not configured
    """
    try:
        dispatcher = get_notification_dispatcher()
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, dispatcher.send, request.phone_numbers, request.message)

        logger.info(f"SMS sent by {session.uid}: {result.sent_count} sent, {result.failed_count} failed")
        return {
            "success": True,
            "sent": result.sent_count,
            "failed": result.failed_count,
            "results": [item.model_dump() for item in result.results],
        }

    except SafetyAlertsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"SMS dispatch failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send SMS: {str(e)}"
        )
