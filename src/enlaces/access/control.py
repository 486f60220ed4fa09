"""
Access control service.

Single source of truth for what the current session can do. Combines the
session resolver and the permission catalog, and delegates sign in and
sign out to the auth provider.
"""

from typing import List, Optional, Union

from loguru import logger

from ..backends.base import AuthProvider, DataStore
from .errors import PermissionDeniedError, UnauthorizedAccountError
from .models import Identity, Session
from .permissions import (
    DEFAULT_ROLE,
    Capability,
    PermissionSet,
    Role,
    permissions_for,
    resolve_capability,
    resolve_role,
)
from .routes import LANDING_PRIORITY, MENU, ROUTE_REQUIREMENTS, MenuItem, Route
from .session import SessionResolver, profile_path


class AccessControlService:
    """
    Permission queries for the active session.

    Create one instance per client and pass it to every consumer. The
    session is read from the resolver on every call, so consumers always
    see one complete Session value.
    """

    def __init__(self, auth: AuthProvider, store: DataStore, resolver: SessionResolver):
        """
        Initialize service.

        Args:
            auth: Authentication provider
            store: Data store holding user profiles
            resolver: Session resolver bound to the same provider and store
        """
        self.auth = auth
        self.store = store
        self.resolver = resolver

    # ========================================================================
    # Session
    # ========================================================================

    def current_session(self) -> Optional[Session]:
        return self.resolver.current

    def is_authenticated(self) -> bool:
        return self.resolver.current is not None

    @property
    def loading(self) -> bool:
        return self.resolver.loading

    @property
    def user_id(self) -> Optional[str]:
        session = self.resolver.current
        return session.uid if session else None

    async def sign_in(self, email: str, password: str) -> Identity:
        """
        Sign in through the auth provider.

        Only credentials with a stored user profile may use the application;
        any other credential is signed out again. When the profile can't be
        read, the least privileged session published by the resolver stays.

        Args:
            email: Account email
            password: Plain text password

        Returns:
            The signed in Identity

        Raises:
            AuthProviderError: If the provider rejects the credentials
            UnauthorizedAccountError: If the account has no user profile
        """
        identity = await self.auth.sign_in(email.strip(), password)

        if await self._profile_missing(identity):
            logger.warning(f"Sign in rejected: {identity.email} has no user profile")
            await self.auth.sign_out()
            raise UnauthorizedAccountError(identity.uid)

        logger.info(f"User signed in: {identity.email}")
        return identity

    async def _profile_missing(self, identity: Identity) -> bool:
        # The resolver has already loaded the profile when it is listening
        session = self.resolver.current
        if session is not None and session.uid == identity.uid:
            return session.profile_missing

        try:
            record = await self.store.read(profile_path(identity.uid))
        except Exception as e:
            logger.error(f"Profile check for {identity.email} failed: {e}; keeping the session")
            return False
        return not record

    async def sign_out(self) -> None:
        session = self.resolver.current
        await self.auth.sign_out()
        if session is not None:
            logger.info(f"User signed out: {session.email}")

    # ========================================================================
    # Permissions
    # ========================================================================

    def role(self) -> Role:
        """Role of the current session; agent when unknown or signed out."""
        session = self.resolver.current
        return session.role if session else DEFAULT_ROLE

    def role_label(self) -> str:
        return self.effective_permissions().label

    def effective_permissions(self) -> PermissionSet:
        """Permission set of the current role. Never None."""
        return permissions_for(self.role())

    def has_permission(self, capability: Union[Capability, str]) -> bool:
        """
        Check if the current session holds a capability.

        Unknown capability names and signed out sessions are denied.

        Args:
            capability: Capability enum member or flag name (e.g. "canViewReports")

        Returns:
            bool: True if authorized
        """
        if self.resolver.current is None:
            return False
        return self.effective_permissions().allows(capability)

    def require_permission(self, capability: Union[Capability, str]) -> None:
        """
        Require a capability, raising PermissionDeniedError if not held.

        Raises:
            PermissionDeniedError: If the session lacks the capability
        """
        if not self.has_permission(capability):
            cap = resolve_capability(capability)
            name = cap.value if cap else str(capability)
            logger.warning(f"Permission denied: user={self.user_id} capability={name}")
            raise PermissionDeniedError(self.user_id, name)

    def is_role(self, role: Union[Role, str]) -> bool:
        return self.role() == resolve_role(role)

    @property
    def is_admin(self) -> bool:
        return self.is_role(Role.ADMIN)

    @property
    def is_coordinator(self) -> bool:
        return self.is_role(Role.COORDINATOR)

    @property
    def is_agent(self) -> bool:
        return self.is_role(Role.AGENT)

    # ========================================================================
    # Navigation
    # ========================================================================

    def can_open(self, route: Route) -> bool:
        """Check if the current session may open a route."""
        if route is Route.LOGIN:
            return True
        if not self.is_authenticated():
            return False
        required = ROUTE_REQUIREMENTS.get(route)
        return required is None or self.has_permission(required)

    def role_based_landing_route(self) -> Route:
        """
        First route in landing priority the session may open.

        Dashboard, then new call entry, then the call list; sign in when
        none of them is allowed.
        """
        for route in LANDING_PRIORITY:
            if self.has_permission(ROUTE_REQUIREMENTS[route]):
                return route
        return Route.LOGIN

    def accessible_menu(self) -> List[MenuItem]:
        """Navigation menu entries the current session may open."""
        return [item for item in MENU if self.can_open(item.route)]
