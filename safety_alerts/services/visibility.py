"""
Region-scoped visibility and composable alert filters.

Region scoping:
- the superadmin, and admins without assigned regions, see everything
- otherwise an alert is visible when any assigned region is a
  case-insensitive substring of "{location_name}, {location_state}, {location_country}"

Other filters (type, status, locality text, bounding box) are a pure AND over
the region-scoped set.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from safety_alerts.models.alert import Alert, AlertStatus, AlertType
from safety_alerts.models.user import Role, Session


class StatusFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    RESOLVED = "resolved"
    FALSE = "false"
    INACTIVE = "inactive"  # expired by TTL


class AlertFilter(BaseModel):
    type: Optional[AlertType] = None
    status: StatusFilter = StatusFilter.ALL
    country: Optional[str] = None
    state: Optional[str] = None
    name: Optional[str] = None
    locality: Optional[str] = Field(None, description="Free text matched against the full location label")
    min_lat: Optional[float] = None
    max_lat: Optional[float] = None
    min_lng: Optional[float] = None
    max_lng: Optional[float] = None


def matches_region(alert: Alert, regions: Iterable[str]) -> bool:
    haystack = alert.location_label.lower()
    return any(str(region).lower() in haystack for region in regions if region)


def filter_by_regions(alerts: Sequence[Alert], role: Role, assigned_regions: Sequence[str]) -> List[Alert]:
    regions = [r for r in assigned_regions if r]
    if role == Role.SUPERADMIN or not regions:
        return list(alerts)
    return [alert for alert in alerts if matches_region(alert, regions)]


def filter_visible(alerts: Sequence[Alert], session: Session) -> List[Alert]:
    """Subset of `alerts` the acting admin may see."""
    return filter_by_regions(alerts, session.role, session.assigned_regions)


def _contains(value: Optional[str], needle: Optional[str]) -> bool:
    if not needle:
        return True
    return needle.lower() in (value or "").lower()


def _matches_status(alert: Alert, status: StatusFilter, now: datetime) -> bool:
    if status == StatusFilter.ALL:
        return True
    if status == StatusFilter.ACTIVE:
        return alert.is_effectively_active(now)
    if status == StatusFilter.RESOLVED:
        return alert.status == AlertStatus.RESOLVED
    if status == StatusFilter.FALSE:
        return alert.status == AlertStatus.FALSE
    return alert.is_expired(now)


def matches_filter(alert: Alert, alert_filter: AlertFilter, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    f = alert_filter
    if f.type is not None and alert.type != f.type:
        return False
    if not _matches_status(alert, f.status, now):
        return False
    if not (_contains(alert.location_country, f.country)
            and _contains(alert.location_state, f.state)
            and _contains(alert.location_name, f.name)
            and _contains(alert.location_label, f.locality)):
        return False
    if f.min_lat is not None and alert.latitude < f.min_lat:
        return False
    if f.max_lat is not None and alert.latitude > f.max_lat:
        return False
    if f.min_lng is not None and alert.longitude < f.min_lng:
        return False
    if f.max_lng is not None and alert.longitude > f.max_lng:
        return False
    return True


def apply_filters(alerts: Sequence[Alert], alert_filter: AlertFilter, now: Optional[datetime] = None) -> List[Alert]:
    now = now or datetime.now(timezone.utc)
    return [alert for alert in alerts if matches_filter(alert, alert_filter, now)]


def visible_alerts(
    alerts: Sequence[Alert],
    session: Session,
    alert_filter: Optional[AlertFilter] = None,
    now: Optional[datetime] = None,
) -> List[Alert]:
    """Region scoping first, then the conjunctive filters."""
    scoped = filter_visible(alerts, session)
    if alert_filter is None:
        return scoped
    return apply_filters(scoped, alert_filter, now)
