"""
Session resolution.

Bridges auth state notifications from the provider into Session values by
loading the user profile for each authenticated identity.
"""

import asyncio
from typing import Callable, List, Optional

from loguru import logger
from pydantic import ValidationError as RecordValidationError

from ..backends.base import AuthProvider, DataStore, Subscription, Unsubscribe, join_path
from .errors import ProfileFetchFailed
from .models import Identity, Session, UserProfile


USERS_PATH = "users"

SessionCallback = Callable[[Optional[Session]], None]


def profile_path(uid: str) -> str:
    return join_path(USERS_PATH, uid)


class SessionResolver:
    """
    Resolves the active Session from auth state changes.

    For each identity reported by the provider one profile read is awaited
    before the new Session is published. While that read is outstanding
    `loading` is True. A failed read never blocks the user: the session is
    published with a least privileged profile instead.
    """

    def __init__(
        self,
        auth: AuthProvider,
        store: DataStore,
        profile_fetch_timeout: Optional[float] = None,
    ):
        """
        Initialize resolver.

        Args:
            auth: Authentication provider to listen to
            store: Data store holding ``users/{uid}`` profiles
            profile_fetch_timeout: Seconds to wait for a profile read, None waits forever
        """
        self.auth = auth
        self.store = store
        self.profile_fetch_timeout = profile_fetch_timeout
        self._current: Optional[Session] = None
        self._loading = True
        self._callbacks: List[SessionCallback] = []
        self._auth_subscription: Optional[Unsubscribe] = None
        self._resolve_lock = asyncio.Lock()

    @property
    def current(self) -> Optional[Session]:
        return self._current

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def started(self) -> bool:
        return self._auth_subscription is not None

    async def start(self) -> Optional[Session]:
        """
        Start listening to the auth provider and resolve the resumed identity.

        Returns:
            The resolved Session, or None if nobody is signed in
        """
        if self._auth_subscription is None:
            self._auth_subscription = self.auth.on_auth_state_change(self._on_auth_state)
            await self._on_auth_state(self.auth.current_identity())
        return self._current

    def stop(self) -> None:
        """Release the auth provider listener."""
        if self._auth_subscription is not None:
            self._auth_subscription()
            self._auth_subscription = None

    def on_session_change(self, callback: SessionCallback) -> Unsubscribe:
        """
        Register interest in session transitions.

        Args:
            callback: Called with the new Session, or None on sign out

        Returns:
            Handle that removes the callback; calling it twice is a no-op
        """
        self._callbacks.append(callback)

        def release() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return Subscription(release, name="session-change")

    async def _on_auth_state(self, identity: Optional[Identity]) -> None:
        async with self._resolve_lock:
            self._loading = True
            try:
                session = await self._resolve(identity)
            finally:
                self._loading = False
            self._publish(session)

    async def _resolve(self, identity: Optional[Identity]) -> Optional[Session]:
        if identity is None:
            return None

        try:
            profile = await self._fetch_profile(identity.uid)
        except ProfileFetchFailed as e:
            logger.error(f"{e}; continuing with least privileged profile")
            return Session(
                identity=identity,
                profile=UserProfile.least_privileged(),
                synthesized=True,
                profile_missing=e.missing,
            )

        return Session(identity=identity, profile=profile)

    async def _fetch_profile(self, uid: str) -> UserProfile:
        try:
            if self.profile_fetch_timeout is None:
                record = await self.store.read(profile_path(uid))
            else:
                record = await asyncio.wait_for(
                    self.store.read(profile_path(uid)),
                    timeout=self.profile_fetch_timeout,
                )
        except asyncio.TimeoutError:
            raise ProfileFetchFailed(uid, f"timed out after {self.profile_fetch_timeout}s")
        except Exception as e:
            raise ProfileFetchFailed(uid, str(e)) from e

        if record is None:
            raise ProfileFetchFailed(uid, "profile record missing", missing=True)
        if not isinstance(record, dict):
            raise ProfileFetchFailed(uid, f"unexpected profile record type {type(record).__name__}")

        try:
            return UserProfile.from_record(record)
        except RecordValidationError as e:
            raise ProfileFetchFailed(uid, f"malformed profile record: {e}") from e

    def _publish(self, session: Optional[Session]) -> None:
        self._current = session
        if session is None:
            logger.info("Session cleared")
        else:
            logger.info(f"Session resolved: {session.email} ({session.uid}) role={session.role.value}")

        for callback in list(self._callbacks):
            try:
                callback(session)
            except Exception as e:
                logger.error(f"Session callback failed: {e}")
