"""
Pydantic models for geolocated safety alerts.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
from typing import Dict, Optional
from enum import Enum


class AlertType(str, Enum):
    TEST = "test"
    TYPE1 = "type1"
    TYPE2 = "type2"


class AlertStatus(str, Enum):
    """Stored lifecycle status. Expiry is derived from expires_at, never stored."""
    ACTIVE = "active"
    RESOLVED = "resolved"
    FALSE = "false"


class VoteDirection(str, Enum):
    UP = "up"
    DOWN = "down"


ANONYMOUS_CREATOR = "anonymous"


class AlertCreate(BaseModel):
    """
    Model for creating a new alert (incoming POST request).
    These are the fields an admin provides from the map form.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: AlertType = Field(..., description="Alert type")
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=500)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    location_name: Optional[str] = Field(None, max_length=200, alias="locationName")
    location_state: Optional[str] = Field(None, max_length=200, alias="locationState")
    location_country: Optional[str] = Field(None, max_length=200, alias="locationCountry")
    ttl_minutes: Optional[int] = Field(None, alias="ttlMinutes", description="Minutes until expiry; bounds come from settings")

    @field_validator("title", "description", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class Alert(BaseModel):
    """
    Stored alert (collection `alerts`).
    Optional fields are only present once the matching transition happened.
    """
    id: str
    creator_uid: str = ANONYMOUS_CREATOR
    type: AlertType
    title: str
    description: str
    latitude: float
    longitude: float
    location_name: Optional[str] = None
    location_state: Optional[str] = None
    location_country: Optional[str] = None
    created_at: datetime
    expires_at: Optional[datetime] = None
    status: AlertStatus = AlertStatus.ACTIVE
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    false_flagged_at: Optional[datetime] = None
    false_flagged_by: Optional[str] = None
    upvotes: int = 0
    downvotes: int = 0

    @classmethod
    def from_doc(cls, alert_id: str, data: Dict) -> "Alert":
        status = data.get("status")
        return cls(
            id=alert_id,
            creator_uid=data.get("creator_uid") or ANONYMOUS_CREATOR,
            type=data.get("type", AlertType.TEST),
            title=data.get("title", ""),
            description=data.get("description", ""),
            latitude=data.get("latitude", 0.0),
            longitude=data.get("longitude", 0.0),
            location_name=data.get("location_name"),
            location_state=data.get("location_state"),
            location_country=data.get("location_country"),
            created_at=data.get("created_at") or datetime.now(timezone.utc),
            expires_at=data.get("expires_at"),
            # documents written before statuses existed are treated as active
            status=status if status in AlertStatus._value2member_map_ else AlertStatus.ACTIVE,
            resolved_at=data.get("resolved_at"),
            resolved_by=data.get("resolved_by"),
            false_flagged_at=data.get("false_flagged_at"),
            false_flagged_by=data.get("false_flagged_by"),
            upvotes=int(data.get("upvotes") or 0),
            downvotes=int(data.get("downvotes") or 0),
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= _aware(self.expires_at)

    def is_effectively_active(self, now: Optional[datetime] = None) -> bool:
        """Active for display: stored status is active and the TTL has not elapsed."""
        return self.status == AlertStatus.ACTIVE and not self.is_expired(now)

    @property
    def location_label(self) -> str:
        return f"{self.location_name or ''}, {self.location_state or ''}, {self.location_country or ''}"


class NearbyAlert(BaseModel):
    alert: Alert
    distance_meters: float


class VoteRequest(BaseModel):
    direction: VoteDirection


class VoteResponse(BaseModel):
    alert_id: str
    upvotes: int
    downvotes: int


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
