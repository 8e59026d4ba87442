"""
User, role and session models.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Dict, List, Optional
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"
    BANNED = "banned"


class Principal(BaseModel):
    """Identity asserted by Firebase Auth; immutable per session."""
    model_config = ConfigDict(frozen=True)

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def from_token_claims(cls, claims: Dict) -> "Principal":
        return cls(
            uid=claims.get("uid") or claims.get("user_id") or claims.get("sub"),
            email=claims.get("email"),
            display_name=claims.get("name"),
        )


class UserRecord(BaseModel):
    """Stored user document (collection `users`, keyed by uid)."""
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: Role = Role.USER
    status: UserStatus = UserStatus.ACTIVE
    assigned_regions: List[str] = Field(default_factory=list, description="Region labels; empty means no restriction")
    is_initial_admin: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, uid: str, data: Dict) -> "UserRecord":
        """Build a record from raw document data, tolerating unknown enum values."""
        role = data.get("role")
        status = data.get("status")
        regions = data.get("assigned_regions")
        return cls(
            uid=uid,
            email=data.get("email"),
            display_name=data.get("display_name"),
            role=role if role in Role._value2member_map_ else Role.USER,
            status=status if status in UserStatus._value2member_map_ else UserStatus.ACTIVE,
            assigned_regions=[str(r) for r in regions if r] if isinstance(regions, list) else [],
            is_initial_admin=bool(data.get("is_initial_admin", False)),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def to_doc(self) -> Dict:
        return {
            "uid": self.uid,
            "email": self.email,
            "display_name": self.display_name,
            "role": self.role.value,
            "status": self.status.value,
            "assigned_regions": list(self.assigned_regions),
            "is_initial_admin": self.is_initial_admin,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class AuthFlags(BaseModel):
    is_admin: bool = False
    is_super_admin: bool = False
    can_manage_users: bool = False

    @classmethod
    def for_role(cls, role: Role, status: UserStatus = UserStatus.ACTIVE) -> "AuthFlags":
        is_super_admin = role == Role.SUPERADMIN
        # blocked/banned accounts keep their role label but lose admin capabilities
        is_admin = role in (Role.ADMIN, Role.SUPERADMIN) and (is_super_admin or status == UserStatus.ACTIVE)
        return cls(is_admin=is_admin, is_super_admin=is_super_admin, can_manage_users=is_admin)


class Session(BaseModel):
    """
    Explicit request context handed to every core operation.

    `degraded` is set when the role could not be confirmed against the store
    and the best-known state was kept instead.
    """
    principal: Optional[Principal] = None
    user: Optional[UserRecord] = None
    role: Role = Role.USER
    flags: AuthFlags = Field(default_factory=AuthFlags)
    degraded: bool = False

    @classmethod
    def anonymous(cls) -> "Session":
        return cls()

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    @property
    def uid(self) -> Optional[str]:
        return self.principal.uid if self.principal else None

    @property
    def assigned_regions(self) -> List[str]:
        return list(self.user.assigned_regions) if self.user else []


class RoleUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_uid: str = Field(..., min_length=1, alias="targetUid")
    role: str = Field(..., description="admin or user")


class UserUpdates(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: Optional[str] = None
    status: Optional[str] = None
    assigned_regions: Optional[List[str]] = Field(None, alias="assignedRegions")


class UserUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    target_uid: str = Field(..., min_length=1, alias="targetUid")
    updates: UserUpdates


class SetupRequest(BaseModel):
    """Bootstrap request for the very first admin identity."""
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1, alias="displayName")


class SessionResponse(BaseModel):
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: Role
    status: UserStatus
    assigned_regions: List[str] = Field(default_factory=list)
    is_admin: bool
    is_super_admin: bool
    can_manage_users: bool
    degraded: bool = False
