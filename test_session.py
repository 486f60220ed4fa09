"""
Tests for session resolution from auth state changes.
"""

import asyncio

import pytest

from conftest import PASSWORD
from enlaces.access.permissions import Role, permissions_for
from enlaces.access.session import SessionResolver, profile_path


class SlowStore:
    """Store whose profile reads block until released."""

    def __init__(self, store):
        self.store = store
        self.release = asyncio.Event()

    async def read(self, path):
        await self.release.wait()
        return await self.store.read(path)


class TestResolution:
    """Test sessions published for auth state changes."""

    async def test_no_identity_resolves_to_none(self, auth, store):
        """Starting without a signed in user publishes no session."""
        resolver = SessionResolver(auth, store)
        assert resolver.loading is True

        assert await resolver.start() is None
        assert resolver.current is None
        assert resolver.loading is False

    async def test_profile_attached(self, auth, store, make_user):
        """A signed in identity gets its stored profile."""
        uid = await make_user("coord@enlaces.ec", Role.COORDINATOR.value, department="acueducto")
        resolver = SessionResolver(auth, store)
        await resolver.start()

        await auth.sign_in("coord@enlaces.ec", PASSWORD)

        session = resolver.current
        assert session.uid == uid
        assert session.role is Role.COORDINATOR
        assert session.profile.department == "acueducto"
        assert session.synthesized is False

    async def test_missing_profile_falls_back_to_agent(self, auth, store, make_user):
        """A credential without a profile record gets a least privileged session."""
        await make_user("orphan@enlaces.ec", with_profile=False)
        resolver = SessionResolver(auth, store)
        await resolver.start()

        await auth.sign_in("orphan@enlaces.ec", PASSWORD)

        assert resolver.current is not None
        assert resolver.current.synthesized is True
        assert resolver.current.role is Role.AGENT

    async def test_fetch_failure_falls_back_to_agent(self, auth, store, make_user):
        """A failing profile read never blocks the session."""
        await make_user("admin@enlaces.ec", Role.ADMIN.value)
        store.fail_reads = True
        resolver = SessionResolver(auth, store)
        await resolver.start()

        await auth.sign_in("admin@enlaces.ec", PASSWORD)

        session = resolver.current
        assert session is not None
        assert session.role is Role.AGENT
        assert permissions_for(session.role) == permissions_for(Role.AGENT)

    @pytest.mark.parametrize("stored", [None, "supervisor", "Admin"])
    async def test_unrecognized_role_is_agent(self, auth, store, make_user, stored):
        """Absent or unknown stored roles resolve to agent."""
        await make_user("x@enlaces.ec", stored)
        resolver = SessionResolver(auth, store)
        await resolver.start()

        await auth.sign_in("x@enlaces.ec", PASSWORD)

        assert resolver.current.role is Role.AGENT
        assert resolver.current.synthesized is False

    async def test_malformed_record_falls_back(self, auth, store, make_user):
        """A record that isn't a mapping is treated as a fetch failure."""
        uid = await make_user("bad@enlaces.ec", with_profile=False)
        await store.write(profile_path(uid), "not-a-profile")
        resolver = SessionResolver(auth, store)
        await resolver.start()

        await auth.sign_in("bad@enlaces.ec", PASSWORD)

        assert resolver.current.synthesized is True

    async def test_sign_out_clears_session(self, auth, store, make_user):
        """Signing out publishes None."""
        await make_user("agent@enlaces.ec")
        resolver = SessionResolver(auth, store)
        await resolver.start()
        await auth.sign_in("agent@enlaces.ec", PASSWORD)

        await auth.sign_out()

        assert resolver.current is None
        assert resolver.loading is False

    async def test_resumed_identity_resolved_on_start(self, auth, store, make_user):
        """An identity already signed in before start() is resolved."""
        await make_user("admin@enlaces.ec", Role.ADMIN.value)
        await auth.sign_in("admin@enlaces.ec", PASSWORD)

        resolver = SessionResolver(auth, store)
        session = await resolver.start()

        assert session.role is Role.ADMIN


class TestLoading:
    """Test the loading window and fetch timeouts."""

    async def test_loading_while_profile_read_outstanding(self, auth, store, make_user):
        """loading stays True until the profile read completes."""
        await make_user("agent@enlaces.ec")
        slow = SlowStore(store)
        resolver = SessionResolver(auth, slow)
        auth.on_auth_state_change(resolver._on_auth_state)

        sign_in = asyncio.create_task(auth.sign_in("agent@enlaces.ec", PASSWORD))
        await asyncio.sleep(0.05)
        assert resolver.loading is True
        assert resolver.current is None

        slow.release.set()
        await sign_in
        assert resolver.loading is False
        assert resolver.current is not None

    async def test_timeout_falls_back_to_agent(self, auth, store, make_user):
        """With a timeout configured, a hung read yields an agent session."""
        await make_user("admin@enlaces.ec", Role.ADMIN.value)
        resolver = SessionResolver(auth, SlowStore(store), profile_fetch_timeout=0.05)
        auth.on_auth_state_change(resolver._on_auth_state)

        await auth.sign_in("admin@enlaces.ec", PASSWORD)

        assert resolver.current.role is Role.AGENT
        assert resolver.current.synthesized is True


class TestSubscriptions:
    """Test session change callbacks and teardown."""

    async def test_callbacks_receive_transitions(self, auth, store, make_user):
        """Callbacks see each published session in order."""
        await make_user("agent@enlaces.ec")
        resolver = SessionResolver(auth, store)
        seen = []
        resolver.on_session_change(seen.append)
        await resolver.start()

        await auth.sign_in("agent@enlaces.ec", PASSWORD)
        await auth.sign_out()

        assert seen[0] is None
        assert seen[1].email == "agent@enlaces.ec"
        assert seen[2] is None

    async def test_unsubscribe_is_idempotent(self, auth, store, make_user):
        """Calling the handle twice is harmless and stops delivery."""
        await make_user("agent@enlaces.ec")
        resolver = SessionResolver(auth, store)
        seen = []
        release = resolver.on_session_change(seen.append)
        await resolver.start()

        release()
        release()
        await auth.sign_in("agent@enlaces.ec", PASSWORD)

        assert seen == [None]

    async def test_stop_releases_auth_listener(self, auth, store, make_user):
        """After stop() the resolver ignores auth changes."""
        await make_user("agent@enlaces.ec")
        resolver = SessionResolver(auth, store)
        await resolver.start()
        resolver.stop()
        resolver.stop()

        await auth.sign_in("agent@enlaces.ec", PASSWORD)

        assert resolver.current is None
        assert not resolver.started

    async def test_failing_callback_does_not_break_others(self, auth, store, make_user):
        """A raising callback is logged and the rest still run."""
        await make_user("agent@enlaces.ec")
        resolver = SessionResolver(auth, store)
        seen = []

        def broken(session):
            raise RuntimeError("boom")

        resolver.on_session_change(broken)
        resolver.on_session_change(seen.append)
        await resolver.start()
        await auth.sign_in("agent@enlaces.ec", PASSWORD)

        assert seen[-1].email == "agent@enlaces.ec"


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
