"""
Notification Dispatch Gateway - fan-out of one SMS message to many numbers.

Delivery:
- one transport call per recipient, independent of the others
- a failure for one number never stops the remaining sends
- no retries; the caller re-invokes manually
- the aggregate is returned only once every attempt has finished

Transports:
- "simulation": logs the message and returns a synthetic id (development)
- "twilio":     Twilio REST Messages API over requests
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional
import logging
import uuid

import requests

from safety_alerts.config.firebase import get_db
from safety_alerts.core.errors import BackendError, ValidationError
from safety_alerts.core.settings import Settings, settings
from safety_alerts.models.notification import DispatchResult, RecipientResult

logger = logging.getLogger(__name__)

SMS_NOTIFICATIONS_COLLECTION = "sms_notifications"


class SmsTransportError(Exception):
    """A single message could not be handed to the provider."""


class SmsReceipt:
    def __init__(self, provider_message_id: str, status: str):
        self.provider_message_id = provider_message_id
        self.status = status


class SmsTransport(ABC):
    """
    Contract: send(from, to, body) -> SmsReceipt, one message per call.
    Implementations raise SmsTransportError on failure.
    """

    name = "base"

    def __init__(self, from_number: Optional[str] = None):
        self.from_number = from_number

    @abstractmethod
    def send(self, to: str, body: str) -> SmsReceipt:
        raise NotImplementedError


class SimulatedSmsTransport(SmsTransport):
    name = "simulation"

    def send(self, to: str, body: str) -> SmsReceipt:
        logger.info(
            "[SMS/simulation] %s → %s: %d chars → '%s'",
            self.from_number or "-",
            to,
            len(body),
            body[:80] + ("..." if len(body) > 80 else ""),
        )
        return SmsReceipt(provider_message_id=f"SIM{uuid.uuid4().hex[:16]}", status="simulated")


class TwilioSmsTransport(SmsTransport):
    name = "twilio"

    BASE_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout_seconds: float = 15.0):
        super().__init__(from_number)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.timeout_seconds = timeout_seconds

    def send(self, to: str, body: str) -> SmsReceipt:
        try:
            resp = requests.post(
                self.BASE_URL.format(sid=self.account_sid),
                data={"From": self.from_number, "To": to, "Body": body},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise SmsTransportError(f"Twilio request failed: {e}")

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if resp.status_code >= 400:
            raise SmsTransportError(data.get("message") or f"Twilio returned HTTP {resp.status_code}")

        return SmsReceipt(provider_message_id=data.get("sid", ""), status=data.get("status", "queued"))


def build_transport(config: Settings = settings) -> SmsTransport:
    """
    Build the configured transport.

    Raises:
        BackendError: provider unknown, or Twilio selected without credentials
    """
    provider = (config.SMS_PROVIDER or "simulation").lower()
    if provider == "simulation":
        return SimulatedSmsTransport(config.TWILIO_PHONE_NUMBER)
    if provider == "twilio":
        if not (config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN and config.TWILIO_PHONE_NUMBER):
            raise BackendError("SMS service not configured", provider="twilio")
        return TwilioSmsTransport(
            config.TWILIO_ACCOUNT_SID,
            config.TWILIO_AUTH_TOKEN,
            config.TWILIO_PHONE_NUMBER,
            timeout_seconds=config.SMS_TIMEOUT_SECONDS,
        )
    raise BackendError(f"Unknown SMS provider: {config.SMS_PROVIDER}", provider=provider)


class NotificationDispatcher:
    """
    Sends one message to a list of numbers and aggregates the outcome.
    Each attempt is also written to `sms_notifications` (best effort).
    """

    def __init__(self, transport: Optional[SmsTransport] = None, db=None, record_attempts: bool = True):
        self._transport = transport
        self._db = db
        self.record_attempts = record_attempts

    @property
    def transport(self) -> SmsTransport:
        if self._transport is None:
            self._transport = build_transport()
        return self._transport

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    def send(self, phone_numbers: List[str], message: str, alert_id: Optional[str] = None) -> DispatchResult:
        """
        Args:
            phone_numbers: non-empty list of destination numbers
            message: non-empty message body
            alert_id: alert that triggered the send, recorded in the audit log

        Returns:
            DispatchResult with counts and one RecipientResult per number

        Raises:
            ValidationError: empty numbers or message
            BackendError: transport misconfigured
        """
        numbers = [n.strip() for n in (phone_numbers or []) if isinstance(n, str) and n.strip()]
        if not numbers:
            raise ValidationError("Phone numbers are required", field="phone_numbers")
        if not message or not message.strip():
            raise ValidationError("Message is required", field="message")

        transport = self.transport
        result = DispatchResult()

        for number in numbers:
            try:
                receipt = transport.send(number, message)
                item = RecipientResult(
                    phone_number=number,
                    success=True,
                    provider_message_id=receipt.provider_message_id,
                    status=receipt.status,
                )
                result.sent_count += 1
            except Exception as e:
                logger.warning(f"SMS to {number} failed: {e}")
                item = RecipientResult(phone_number=number, success=False, error=str(e) or "Unknown error")
                result.failed_count += 1
            result.results.append(item)
            self._record(item, message, alert_id, transport.name)

        logger.info(f"SMS dispatch finished: {result.sent_count} sent, {result.failed_count} failed")
        if result.errors:
            logger.warning(f"SMS undelivered to: {', '.join(r.phone_number for r in result.errors)}")
        return result

    def _record(self, item: RecipientResult, message: str, alert_id: Optional[str], provider: str) -> None:
        if not self.record_attempts:
            return
        try:
            self.db.collection(SMS_NOTIFICATIONS_COLLECTION).document().set({
                "alert_id": alert_id,
                "phone_number": item.phone_number,
                "message": message,
                "status": "sent" if item.success else "failed",
                "provider": provider,
                "provider_message_id": item.provider_message_id,
                "provider_status": item.status,
                "error": item.error,
                "sent_at": datetime.now(timezone.utc),
            })
        except Exception as e:
            logger.warning(f"Failed to record SMS attempt for {item.phone_number}: {e}")


_dispatcher = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Get or create NotificationDispatcher singleton."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
