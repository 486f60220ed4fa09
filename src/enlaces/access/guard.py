"""
Navigation guard for protected views.

Evaluating a guard has no side effects, so views may re-run it on every
render. Only an unauthenticated result asks for a redirect; a signed in
user without the capability gets an inline denial notice instead.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .control import AccessControlService
from .permissions import Capability, resolve_capability
from .routes import ROUTE_REQUIREMENTS, Route


ACCESS_DENIED_MESSAGE = "Acceso denegado: no tienes permisos para ver esta sección"
LOADING_MESSAGE = "Cargando..."


class GuardState(str, Enum):
    PENDING = "pending"
    DENIED_UNAUTHENTICATED = "denied_unauthenticated"
    DENIED_UNAUTHORIZED = "denied_unauthorized"
    GRANTED = "granted"


@dataclass(frozen=True)
class GuardDecision:
    """
    Result of a guard evaluation.

    Attributes:
        state: Guard state
        redirect_to: Route to navigate to, set only for DENIED_UNAUTHENTICATED
        message: Notice to render in place of the view, if any
    """
    state: GuardState
    redirect_to: Optional[Route] = None
    message: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.state is GuardState.GRANTED


class NavigationGuard:
    """
    Guards one view behind authentication and an optional capability.
    """

    def __init__(
        self,
        access: AccessControlService,
        required: Union[Capability, str, None] = None,
    ):
        """
        Initialize guard.

        Args:
            access: Access control service of the client
            required: Capability the view needs; None only requires sign in
        """
        self.access = access
        self.required = required

    def evaluate(self) -> GuardDecision:
        """
        Decide whether the view may render.

        Returns:
            GuardDecision: PENDING while the session is resolving, then one of
            DENIED_UNAUTHENTICATED, DENIED_UNAUTHORIZED or GRANTED
        """
        if self.access.loading:
            return GuardDecision(GuardState.PENDING, message=LOADING_MESSAGE)

        if not self.access.is_authenticated():
            return GuardDecision(GuardState.DENIED_UNAUTHENTICATED, redirect_to=Route.LOGIN)

        if self.required is not None and not self.access.has_permission(self.required):
            return GuardDecision(GuardState.DENIED_UNAUTHORIZED, message=ACCESS_DENIED_MESSAGE)

        return GuardDecision(GuardState.GRANTED)

    def __repr__(self) -> str:
        cap = resolve_capability(self.required) if self.required is not None else None
        name = cap.value if cap else self.required
        return f"NavigationGuard(required={name!r})"


def guard_for(access: AccessControlService, route: Route) -> NavigationGuard:
    """Build the guard for an application route."""
    return NavigationGuard(access, ROUTE_REQUIREMENTS.get(route))
