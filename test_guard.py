"""
Tests for the navigation guard.
"""

import asyncio

import pytest

from conftest import PASSWORD
from enlaces.access.guard import (
    ACCESS_DENIED_MESSAGE,
    GuardState,
    NavigationGuard,
    guard_for,
)
from enlaces.access.permissions import Capability, Role
from enlaces.access.routes import Route
from enlaces.app import build_services
from enlaces.config import Settings


class TestGuardStates:
    """Test each guard outcome."""

    def test_pending_before_resolution(self, auth, store):
        """Before the resolver has started the guard reports pending."""
        app = build_services(Settings(), auth, store)
        decision = NavigationGuard(app.access, Capability.VIEW_CALLS).evaluate()

        assert decision.state is GuardState.PENDING
        assert decision.redirect_to is None
        assert decision.message == "Cargando..."
        assert not decision.granted

    async def test_unauthenticated_redirects_to_login(self, app):
        """Signed out users are sent to the sign in view."""
        decision = NavigationGuard(app.access).evaluate()

        assert decision.state is GuardState.DENIED_UNAUTHENTICATED
        assert decision.redirect_to is Route.LOGIN

    async def test_unauthorized_shows_notice(self, app, sign_in_as):
        """A signed in user without the capability gets a notice, not a redirect."""
        await sign_in_as(Role.AGENT.value)

        decision = NavigationGuard(app.access, Capability.VIEW_REPORTS).evaluate()

        assert decision.state is GuardState.DENIED_UNAUTHORIZED
        assert decision.redirect_to is None
        assert decision.message == ACCESS_DENIED_MESSAGE

    async def test_granted(self, app, sign_in_as):
        """A held capability renders the view."""
        await sign_in_as(Role.COORDINATOR.value)

        decision = NavigationGuard(app.access, "canViewReports").evaluate()

        assert decision.granted
        assert decision.message is None

    async def test_no_requirement_only_needs_sign_in(self, app, sign_in_as):
        """A guard without a capability admits any signed in user."""
        await sign_in_as(Role.AGENT.value)
        assert NavigationGuard(app.access).evaluate().granted

    async def test_unknown_capability_denied(self, app, sign_in_as):
        """Guards on unknown capabilities never grant."""
        await sign_in_as(Role.ADMIN.value)
        decision = NavigationGuard(app.access, "canTimeTravel").evaluate()
        assert decision.state is GuardState.DENIED_UNAUTHORIZED

    async def test_pending_during_sign_in(self, app, store, make_user):
        """While the profile read is outstanding the guard stays pending."""
        await make_user("admin@enlaces.ec", Role.ADMIN.value)
        release = asyncio.Event()
        stored_read = store.read

        async def slow_read(path):
            await release.wait()
            return await stored_read(path)

        store.read = slow_read
        sign_in = asyncio.create_task(app.auth.sign_in("admin@enlaces.ec", PASSWORD))
        await asyncio.sleep(0.05)

        guard = NavigationGuard(app.access, Capability.CREATE_USERS)
        assert guard.evaluate().state is GuardState.PENDING

        release.set()
        await sign_in
        assert guard.evaluate().granted

    async def test_evaluate_is_repeatable(self, app, sign_in_as):
        """Evaluating twice gives the same decision."""
        await sign_in_as(Role.AGENT.value)
        guard = NavigationGuard(app.access, Capability.MANAGE_SETTINGS)
        assert guard.evaluate() == guard.evaluate()


class TestRouteGuards:
    """Test guards built from the route table."""

    @pytest.mark.parametrize("route,granted", [
        (Route.DASHBOARD, False),
        (Route.NEW_CALL, True),
        (Route.CALLS, True),
        (Route.REPORTS, False),
        (Route.SETTINGS, False),
        (Route.USERS, False),
    ])
    async def test_agent_routes(self, app, sign_in_as, route, granted):
        """Agents may only enter calls and list them."""
        await sign_in_as(Role.AGENT.value)
        assert guard_for(app.access, route).evaluate().granted is granted

    def test_repr_names_capability(self, auth, store):
        """The guard's repr shows the flag name."""
        app = build_services(Settings(), auth, store)
        assert "canCreateUsers" in repr(guard_for(app.access, Route.USERS))


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
