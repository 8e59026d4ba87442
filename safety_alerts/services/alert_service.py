"""
Alert Lifecycle Manager - create, transition, vote on and list alerts.

LIFECYCLE:
- created with status=active and expires_at = created_at + ttl
- active -> resolved | false, guarded by a last-update-time precondition
  so a concurrent transition is never overwritten
- expiry is derived at read time; expired alerts drop out of the live view
  without a status change

SIDE EFFECTS:
- alert creation notifies active registered phones by SMS; a failed
  dispatch is logged and never rolls back the alert
"""

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Union
import logging

from pydantic import ValidationError as PydanticValidationError

from safety_alerts.config.firebase import get_db
from safety_alerts.core.errors import (
    AuthenticationError,
    AuthorizationError,
    BackendError,
    NotFoundError,
    ValidationError,
)
from safety_alerts.core.settings import settings
from safety_alerts.models.alert import (
    ANONYMOUS_CREATOR,
    Alert,
    AlertCreate,
    AlertStatus,
    NearbyAlert,
    VoteDirection,
    VoteResponse,
)
from safety_alerts.models.user import Session
from safety_alerts.services.geocoding import GeocodingProvider, get_geocoding_provider
from safety_alerts.services.phone_registry import PhoneRegistry, get_phone_registry
from safety_alerts.services.sms_gateway import NotificationDispatcher, get_notification_dispatcher
from safety_alerts.services.status_workflow import StatusWorkflowEngine
from safety_alerts.services.subscriptions import Subscription
from safety_alerts.utils.firestore_helpers import doc_to_dict, where_filter
from safety_alerts.utils.geo import haversine_distance

logger = logging.getLogger(__name__)

ALERTS_COLLECTION = "alerts"
ALERT_VOTES_COLLECTION = "alert_votes"

TIMESTAMP_FIELDS = ("created_at", "expires_at", "resolved_at", "false_flagged_at")

# attempts for a status transition that lost a precondition race to a vote
MAX_TRANSITION_ATTEMPTS = 3


class AlertService:
    """Service for the `alerts` collection."""

    def __init__(
        self,
        db=None,
        dispatcher: Optional[NotificationDispatcher] = None,
        phone_registry: Optional[PhoneRegistry] = None,
        geocoder: Optional[GeocodingProvider] = None,
    ):
        self.db = db if db is not None else get_db()
        self._dispatcher = dispatcher
        self._phone_registry = phone_registry
        self.geocoder = geocoder if geocoder is not None else get_geocoding_provider()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_notification_dispatcher()
        return self._dispatcher

    @property
    def phone_registry(self) -> PhoneRegistry:
        if self._phone_registry is None:
            self._phone_registry = get_phone_registry()
        return self._phone_registry

    def _collection(self):
        return self.db.collection(ALERTS_COLLECTION)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_alert(self, data: Union[AlertCreate, Dict], session: Session, notify: bool = True) -> str:
        """
        Create a new active alert.

        Args:
            data: alert fields (validated again when given as a dict)
            session: acting caller; anonymous sessions create anonymous alerts
            notify: send the SMS side effect inline; routes pass False and
                schedule notify_subscribers themselves

        Returns:
            The new alert id

        Raises:
            ValidationError: invalid fields or TTL out of range
        """
        if isinstance(data, dict):
            try:
                data = AlertCreate.model_validate(data)
            except PydanticValidationError as e:
                first = e.errors()[0]
                field = ".".join(str(part) for part in first.get("loc", ()))
                raise ValidationError(f"Invalid alert: {field}: {first['msg']}", field=field or None)

        ttl_minutes = self._ttl_minutes(data.ttl_minutes)
        location = self._complete_location(data)

        now = datetime.now(timezone.utc)
        doc_ref = self._collection().document()
        doc_ref.set({
            "creator_uid": session.uid or ANONYMOUS_CREATOR,
            "type": data.type.value,
            "title": data.title,
            "description": data.description,
            "latitude": data.latitude,
            "longitude": data.longitude,
            "location_name": location["location_name"],
            "location_state": location["location_state"],
            "location_country": location["location_country"],
            "created_at": now,
            "expires_at": now + timedelta(minutes=ttl_minutes),
            "status": AlertStatus.ACTIVE.value,
            "upvotes": 0,
            "downvotes": 0,
        })
        logger.info(f"Alert created: {doc_ref.id} ({data.type.value}, ttl {ttl_minutes}m) by {session.uid or ANONYMOUS_CREATOR}")

        if notify:
            self.notify_subscribers(doc_ref.id)
        return doc_ref.id

    def notify_subscribers(self, alert_id: str) -> None:
        """
        Send the alert to every active registered phone whose categories are
        empty or include the alert type. Never raises.
        """
        if not settings.ALERT_SMS_ON_CREATE:
            return
        try:
            alert = self.get_alert(alert_id)
            numbers = self.phone_registry.list_active_numbers(category=alert.type.value)
            if not numbers:
                logger.info(f"No registered phones to notify for alert {alert_id}")
                return
            message = f"[{alert.type.value.upper()}] {alert.title}: {alert.description}"
            result = self.dispatcher.send(numbers, message, alert_id=alert_id)
            if result.failed_count:
                logger.warning(f"Alert {alert_id} notification: {result.failed_count} of {len(numbers)} sends failed")
        except Exception as e:
            logger.error(f"Alert {alert_id} notification failed: {e}", exc_info=True)

    def _ttl_minutes(self, ttl_minutes: Optional[int]) -> int:
        if ttl_minutes is None:
            return settings.ALERT_DEFAULT_TTL_MINUTES
        if not settings.ALERT_MIN_TTL_MINUTES <= ttl_minutes <= settings.ALERT_MAX_TTL_MINUTES:
            raise ValidationError(
                f"ttlMinutes must be between {settings.ALERT_MIN_TTL_MINUTES} and {settings.ALERT_MAX_TTL_MINUTES}",
                field="ttl_minutes",
            )
        return ttl_minutes

    def _complete_location(self, data: AlertCreate) -> Dict[str, Optional[str]]:
        location = {
            "location_name": data.location_name,
            "location_state": data.location_state,
            "location_country": data.location_country,
        }
        if self.geocoder is None or all(location.values()):
            return location

        geo = self.geocoder.reverse_geocode(data.latitude, data.longitude)
        location["location_name"] = location["location_name"] or geo.get("locality")
        location["location_state"] = location["location_state"] or geo.get("state")
        location["location_country"] = location["location_country"] or geo.get("country")
        return location

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_alert(self, alert_id: str) -> Alert:
        doc = self._collection().document(alert_id).get()
        if not doc.exists:
            raise NotFoundError("Alert", id=alert_id)
        return self._from_doc(doc)

    def list_active(self, now: Optional[datetime] = None) -> List[Alert]:
        """Snapshot of alerts with status active whose TTL has not elapsed, newest first."""
        return self._active(self._ordered_query().get(), now)

    def list_history(self) -> List[Alert]:
        """Snapshot of every alert regardless of status or expiry, newest first."""
        return self._all(self._ordered_query().get())

    def subscribe_active(self, callback: Callable[[List[Alert]], None]) -> Subscription:
        """
        Live active view. Expiry is evaluated on each emission, so an alert
        whose TTL passes leaves the view with the next snapshot.
        """
        return Subscription(self._ordered_query(), lambda docs: self._active(docs), callback)

    def subscribe_history(self, callback: Callable[[List[Alert]], None]) -> Subscription:
        return Subscription(self._ordered_query(), self._all, callback)

    def list_by_creator(self, creator_uid: str) -> List[Alert]:
        """Alerts created by `creator_uid`, newest first."""
        query = where_filter(self._collection(), "creator_uid", "==", creator_uid)
        alerts = self._all(query.stream())
        alerts.sort(key=lambda alert: alert.created_at, reverse=True)
        return alerts

    def list_near(self, latitude: float, longitude: float, radius_meters: float) -> List[NearbyAlert]:
        """
        Active alerts within `radius_meters` of a point, closest first.
        """
        if radius_meters <= 0:
            raise ValidationError("Radius must be positive", field="radius")
        nearby = []
        for alert in self.list_active():
            distance = haversine_distance(latitude, longitude, alert.latitude, alert.longitude)
            if distance <= radius_meters:
                nearby.append(NearbyAlert(alert=alert, distance_meters=round(distance, 1)))
        nearby.sort(key=lambda item: item.distance_meters)
        return nearby

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def resolve(self, alert_id: str, session: Session) -> Alert:
        """Mark an active alert resolved. Terminal."""
        return self._transition(alert_id, AlertStatus.RESOLVED, session, "resolved_at", "resolved_by")

    def mark_false(self, alert_id: str, session: Session) -> Alert:
        """Flag an active alert as a false report. Terminal."""
        return self._transition(alert_id, AlertStatus.FALSE, session, "false_flagged_at", "false_flagged_by")

    def _transition(self, alert_id: str, target: AlertStatus, session: Session, at_field: str, by_field: str) -> Alert:
        if not session.flags.is_admin:
            raise AuthorizationError("Forbidden - Admin access required")

        doc_ref = self._collection().document(alert_id)
        for attempt in range(1, MAX_TRANSITION_ATTEMPTS + 1):
            snapshot = doc_ref.get()
            if not snapshot.exists:
                raise NotFoundError("Alert", id=alert_id)

            current = self._from_doc(snapshot)
            StatusWorkflowEngine.validate_transition(current.status.value, target.value)

            try:
                doc_ref.update(
                    {
                        "status": target.value,
                        at_field: datetime.now(timezone.utc),
                        by_field: session.uid,
                    },
                    option=self.db.write_option(last_update_time=snapshot.update_time),
                )
            except gcp_exceptions.FailedPrecondition:
                logger.info(f"Alert {alert_id} changed during {target.value} transition (attempt {attempt}), re-checking")
                continue
            except gcp_exceptions.NotFound:
                raise NotFoundError("Alert", id=alert_id)

            logger.info(f"Alert {alert_id}: {current.status.value} -> {target.value} by {session.uid}")
            return self.get_alert(alert_id)

        raise BackendError(
            f"Alert {alert_id} is being modified concurrently, try again",
            alert_id=alert_id,
            attempts=MAX_TRANSITION_ATTEMPTS,
        )

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    def vote(self, alert_id: str, direction: Union[VoteDirection, str], session: Session) -> VoteResponse:
        """
        Atomically add one vote to `upvotes` or `downvotes`.

        Signed-in voters get one vote per alert, recorded in `alert_votes`.
        Anonymous votes are accepted when ALLOW_ANONYMOUS_VOTES is set.

        Raises:
            ValidationError: bad direction, or a repeat vote by the same user
            AuthenticationError: anonymous vote while anonymous voting is off
            NotFoundError: alert does not exist
        """
        try:
            direction = VoteDirection(direction)
        except ValueError:
            raise ValidationError("direction must be 'up' or 'down'", field="direction")

        doc_ref = self._collection().document(alert_id)
        if not doc_ref.get().exists:
            raise NotFoundError("Alert", id=alert_id)

        counter = "upvotes" if direction == VoteDirection.UP else "downvotes"
        batch = self.db.batch()
        if session.is_authenticated:
            ledger_ref = self.db.collection(ALERT_VOTES_COLLECTION).document(f"{alert_id}_{session.uid}")
            batch.create(ledger_ref, {
                "alert_id": alert_id,
                "voter_uid": session.uid,
                "direction": direction.value,
                "created_at": firestore.SERVER_TIMESTAMP,
            })
        elif not settings.ALLOW_ANONYMOUS_VOTES:
            raise AuthenticationError("Unauthorized - Sign in to vote")
        # ledger entry and counter commit together or not at all
        batch.update(doc_ref, {counter: firestore.Increment(1)})

        try:
            batch.commit()
        except gcp_exceptions.Conflict:
            raise ValidationError("You have already voted on this alert", field="direction")
        except gcp_exceptions.NotFound:
            raise NotFoundError("Alert", id=alert_id)

        data = doc_ref.get().to_dict() or {}
        return VoteResponse(
            alert_id=alert_id,
            upvotes=int(data.get("upvotes") or 0),
            downvotes=int(data.get("downvotes") or 0),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ordered_query(self):
        return self._collection().order_by("created_at", direction=firestore.Query.DESCENDING)

    @staticmethod
    def _from_doc(doc) -> Alert:
        return Alert.from_doc(doc.id, doc_to_dict(doc, *TIMESTAMP_FIELDS))

    def _all(self, docs) -> List[Alert]:
        alerts = []
        for doc in docs:
            try:
                alerts.append(self._from_doc(doc))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed alert {doc.id}: {e.errors()[0]['msg']}")
        return alerts

    def _active(self, docs, now: Optional[datetime] = None) -> List[Alert]:
        now = now or datetime.now(timezone.utc)
        return [alert for alert in self._all(docs) if alert.is_effectively_active(now)]


_alert_service = None


def get_alert_service() -> AlertService:
    """Get or create AlertService singleton."""
    global _alert_service
    if _alert_service is None:
        _alert_service = AlertService()
    return _alert_service
