"""
Models for phone numbers registered to receive SMS alerts.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Dict, List, Optional


class HomeLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None


class PhoneCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=100)
    phone_number: str = Field(..., min_length=1, alias="phoneNumber", description="Stored as provided")
    home_location: Optional[HomeLocation] = Field(None, alias="homeLocation")
    categories: Optional[List[str]] = None

    @field_validator("name", "phone_number")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class PhoneUpdate(BaseModel):
    """Merge-patch: only fields that are set are written."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, min_length=1, alias="phoneNumber")
    home_location: Optional[HomeLocation] = Field(None, alias="homeLocation")
    categories: Optional[List[str]] = None
    is_active: Optional[bool] = Field(None, alias="isActive")

    @field_validator("name", "phone_number", "is_active", mode="before")
    @classmethod
    def _not_null(cls, value):
        # an explicit null would overwrite a required stored field
        if value is None:
            raise ValueError("must not be null")
        return value

    @field_validator("name", "phone_number")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class RegisteredPhone(BaseModel):
    """Stored registration (collection `registered_users`)."""
    id: str
    owner_uid: str
    name: str
    phone_number: str
    home_location: Optional[HomeLocation] = None
    categories: List[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, phone_id: str, data: Dict) -> "RegisteredPhone":
        return cls(
            id=phone_id,
            owner_uid=data.get("owner_uid", ""),
            name=data.get("name", ""),
            phone_number=data.get("phone_number", ""),
            home_location=data.get("home_location"),
            categories=data.get("categories") or [],
            is_active=bool(data.get("is_active", True)),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
