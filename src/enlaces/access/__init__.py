"""
Access control module for Enlaces EPN.

Provides role-based access control over sessions issued by the external
authentication provider.
"""

from .models import Identity, UserProfile, Session
from .permissions import (
    Capability,
    Role,
    PermissionSet,
    ROLE_PERMISSIONS,
    DEFAULT_ROLE,
    permissions_for,
    resolve_role,
    check_permission,
)
from .errors import (
    AccessError,
    ValidationError,
    PermissionDeniedError,
    AuthErrorKind,
    AuthProviderError,
    UnauthorizedAccountError,
    StoreError,
    ProfileFetchFailed,
    ProfileWriteFailedAfterAccountCreated,
    SelfDeletionForbidden,
    UserNotFound,
)
from .session import SessionResolver
from .control import AccessControlService
from .routes import Route, ROUTE_REQUIREMENTS, MenuItem
from .guard import GuardState, GuardDecision, NavigationGuard, guard_for
from .users import NewUser, UserPatch, UserAdministration, role_counts

__all__ = [
    # Models
    "Identity",
    "UserProfile",
    "Session",
    # Permission catalog
    "Capability",
    "Role",
    "PermissionSet",
    "ROLE_PERMISSIONS",
    "DEFAULT_ROLE",
    "permissions_for",
    "resolve_role",
    "check_permission",
    # Errors
    "AccessError",
    "ValidationError",
    "PermissionDeniedError",
    "AuthErrorKind",
    "AuthProviderError",
    "UnauthorizedAccountError",
    "StoreError",
    "ProfileFetchFailed",
    "ProfileWriteFailedAfterAccountCreated",
    "SelfDeletionForbidden",
    "UserNotFound",
    # Services
    "SessionResolver",
    "AccessControlService",
    "Route",
    "ROUTE_REQUIREMENTS",
    "MenuItem",
    "GuardState",
    "GuardDecision",
    "NavigationGuard",
    "guard_for",
    "NewUser",
    "UserPatch",
    "UserAdministration",
    "role_counts",
]
