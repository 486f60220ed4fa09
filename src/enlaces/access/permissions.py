"""
Permission catalog and role definitions for Enlaces EPN.

This module provides:
- The closed set of roles and capabilities
- The static role -> permission set matrix
- Total lookups that resolve unknown roles to the least privileged role

Unknown capability names are always denied.
"""

from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Capability(str, Enum):
    """
    Enum of every capability in Enlaces EPN.

    Values match the flag names stored by the web client.
    """
    CREATE_USERS = "canCreateUsers"         # Create/edit/delete user profiles
    VIEW_DASHBOARD = "canViewDashboard"     # Metrics dashboard
    VIEW_REPORTS = "canViewReports"         # Reports and exports
    FILL_FORMS = "canFillForms"             # Register new calls
    VIEW_CALLS = "canViewCalls"             # Call list
    MANAGE_SETTINGS = "canManageSettings"   # System settings
    DELETE_CALLS = "canDeleteCalls"         # Remove call records


class Role(str, Enum):
    """
    Predefined roles, from most to least privileged.
    """
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    AGENT = "agent"


DEFAULT_ROLE = Role.AGENT


class PermissionSet(BaseModel):
    """
    Full capability record for one role.

    Every flag defaults to False, so a missing key never grants access.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    can_create_users: bool = Field(False, alias="canCreateUsers")
    can_view_dashboard: bool = Field(False, alias="canViewDashboard")
    can_view_reports: bool = Field(False, alias="canViewReports")
    can_fill_forms: bool = Field(False, alias="canFillForms")
    can_view_calls: bool = Field(False, alias="canViewCalls")
    can_manage_settings: bool = Field(False, alias="canManageSettings")
    can_delete_calls: bool = Field(False, alias="canDeleteCalls")
    label: str = ""

    def allows(self, capability: Union[Capability, str]) -> bool:
        """
        Check a single capability flag.

        Args:
            capability: Capability enum member or its flag name

        Returns:
            bool: The flag value, False for unknown capability names
        """
        cap = resolve_capability(capability)
        if cap is None:
            return False
        return bool(getattr(self, _FIELD_FOR_CAPABILITY[cap]))

    def granted(self) -> frozenset:
        """Capabilities whose flag is set."""
        return frozenset(cap for cap in Capability if self.allows(cap))

    def as_flags(self) -> Dict[str, object]:
        """Flags keyed by their client-side names, label included."""
        return self.model_dump(by_alias=True)


_FIELD_FOR_CAPABILITY: Dict[Capability, str] = {
    Capability.CREATE_USERS: "can_create_users",
    Capability.VIEW_DASHBOARD: "can_view_dashboard",
    Capability.VIEW_REPORTS: "can_view_reports",
    Capability.FILL_FORMS: "can_fill_forms",
    Capability.VIEW_CALLS: "can_view_calls",
    Capability.MANAGE_SETTINGS: "can_manage_settings",
    Capability.DELETE_CALLS: "can_delete_calls",
}


# Map each role to its permissions
ROLE_PERMISSIONS: Mapping[Role, PermissionSet] = MappingProxyType({
    Role.ADMIN: PermissionSet(
        can_create_users=True,
        can_view_dashboard=True,
        can_view_reports=True,
        can_fill_forms=True,
        can_view_calls=True,
        can_manage_settings=True,
        can_delete_calls=True,
        label="Administrador",
    ),

    Role.COORDINATOR: PermissionSet(
        can_view_dashboard=True,
        can_view_reports=True,
        can_fill_forms=True,
        can_view_calls=True,
        label="Coordinador",
    ),

    Role.AGENT: PermissionSet(
        can_fill_forms=True,
        can_view_calls=True,
        label="Agente",
    ),
})


def resolve_role(value: Union[Role, str, None]) -> Role:
    """
    Resolve a stored role value to a Role.

    Args:
        value: Role member, role string, or None

    Returns:
        Role: The matching role, or the agent role for anything unrecognized
    """
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except (TypeError, ValueError):
        return DEFAULT_ROLE


def resolve_capability(value: Union[Capability, str, None]) -> Optional[Capability]:
    """Resolve a capability name, None if it is not a known capability."""
    if isinstance(value, Capability):
        return value
    try:
        return Capability(value)
    except (TypeError, ValueError):
        return None


def permissions_for(role: Union[Role, str, None]) -> PermissionSet:
    """
    Get the permission set of a role.

    Args:
        role: Role member or stored role string

    Returns:
        PermissionSet: Never None; unknown roles get the agent set
    """
    return ROLE_PERMISSIONS[resolve_role(role)]


def check_permission(role: Union[Role, str, None], capability: Union[Capability, str]) -> bool:
    """
    Global helper to check if a role holds a capability.

    Args:
        role: The user's role
        capability: The capability to check

    Returns:
        bool: True if authorized, False otherwise
    """
    return permissions_for(role).allows(capability)
