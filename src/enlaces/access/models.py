"""
Identity, profile and session data models.

Profiles are stored in the realtime database with camelCase keys; the
models expose snake_case attributes and convert on the way in and out.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .permissions import DEFAULT_ROLE, Role, resolve_role


@dataclass(frozen=True)
class Identity:
    """
    Authenticated identity issued by the auth provider.

    Attributes:
        uid: Opaque user identifier
        email: Account email
        display_name: Display name attached to the credential
        token: Provider token for backends that need one (not compared)
    """
    uid: str
    email: str
    display_name: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False, compare=False)


class UserProfile(BaseModel):
    """
    Persisted user profile at ``users/{uid}``.

    Unknown or missing roles resolve to the agent role. Records written by
    the web client count as active unless ``isActive`` is explicitly false.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    email: str = ""
    display_name: str = Field("", alias="displayName")
    role: Role = DEFAULT_ROLE
    department: str = ""
    is_active: bool = Field(True, alias="isActive")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    created_by: Optional[str] = Field(None, alias="createdBy")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")
    updated_by: Optional[str] = Field(None, alias="updatedBy")

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value: Any) -> Role:
        return resolve_role(value)

    @field_validator("email", "display_name", "department", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("is_active", mode="before")
    @classmethod
    def _none_as_active(cls, value: Any) -> Any:
        return True if value is None else value

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "UserProfile":
        """Build a profile from a stored record."""
        return cls.model_validate(record)

    @classmethod
    def least_privileged(cls) -> "UserProfile":
        """Profile attached to sessions whose stored profile is unavailable."""
        return cls(role=DEFAULT_ROLE)

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the stored camelCase record, omitting unset fields."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


@dataclass(frozen=True)
class Session:
    """
    Active client session: an identity bound to its profile.

    Attributes:
        identity: Identity reported by the auth provider
        profile: Stored profile, or a least privileged stand-in
        synthesized: True when the profile could not be loaded
        profile_missing: True when the store holds no profile for the identity
    """
    identity: Identity
    profile: UserProfile
    synthesized: bool = False
    profile_missing: bool = False

    @property
    def uid(self) -> str:
        return self.identity.uid

    @property
    def email(self) -> str:
        return self.identity.email

    @property
    def display_name(self) -> str:
        return self.profile.display_name or self.identity.display_name or self.identity.email

    @property
    def role(self) -> Role:
        return self.profile.role
