"""
Collaborator interfaces for the external backend service.

The access control core only talks to these protocols. Concrete backends
live in :mod:`enlaces.backends.memory` and :mod:`enlaces.backends.firebase`.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Optional, Protocol

from loguru import logger

if TYPE_CHECKING:
    from ..access.models import Identity


AuthStateHandler = Callable[[Optional["Identity"]], Awaitable[None]]
ValueHandler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


def join_path(*parts: str) -> str:
    """Join key path segments, ignoring empty ones and stray slashes."""
    segments: List[str] = []
    for part in parts:
        segments.extend(s for s in str(part).split("/") if s)
    return "/".join(segments)


def split_path(path: str) -> List[str]:
    joined = join_path(path)
    return joined.split("/") if joined else []


def tree_get(root: Any, segments: List[str]) -> Any:
    """Value at `segments` in a JSON-like tree; empty mappings read as None."""
    node = root
    for segment in segments:
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node if node != {} else None


def tree_set(root: dict, segments: List[str], value: Any) -> None:
    """
    Set the value at `segments` (non-empty) in place.

    None removes the value and prunes branches left empty.
    """
    node = root
    trail = []
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            if value is None:
                return
            child = {}
            node[segment] = child
        trail.append((node, segment))
        node = child

    if value is None:
        node.pop(segments[-1], None)
        for parent, segment in reversed(trail):
            if parent[segment]:
                break
            del parent[segment]
    else:
        node[segments[-1]] = value


class Subscription:
    """
    Unsubscribe handle that releases its listener at most once.

    Calling the handle a second time is a no-op.
    """

    def __init__(self, release: Callable[[], None], name: str = ""):
        self._release: Optional[Callable[[], None]] = release
        self.name = name

    @property
    def active(self) -> bool:
        return self._release is not None

    def __call__(self) -> None:
        release, self._release = self._release, None
        if release is None:
            logger.debug(f"Subscription '{self.name}' already released")
            return
        release()


class AuthProvider(Protocol):
    """
    External authentication provider.

    Registering a handler does not replay the current state; callers read
    :meth:`current_identity` after registering.
    """

    def current_identity(self) -> Optional["Identity"]: ...

    async def sign_in(self, email: str, password: str) -> "Identity": ...

    async def sign_out(self) -> None: ...

    def on_auth_state_change(self, handler: AuthStateHandler) -> Unsubscribe: ...

    async def create_account(self, email: str, password: str) -> "Identity": ...

    async def update_display_name(self, identity: "Identity", name: str) -> None: ...


class DataStore(Protocol):
    """
    Realtime key-path store.

    Paths are slash separated (``users/{uid}``). Multi-path operations are
    not transactional.
    """

    async def read(self, path: str) -> Any: ...

    async def write(self, path: str, value: Any) -> None: ...

    async def update(self, path: str, values: dict) -> None: ...

    async def remove(self, path: str) -> None: ...

    async def push(self, path: str, value: Any) -> str: ...

    def subscribe(self, path: str, handler: ValueHandler) -> Unsubscribe: ...


class AuthStateBroadcaster:
    """
    Serial delivery of auth state changes to registered handlers.

    Notifications never overlap: a new change waits until every handler has
    finished processing the previous one.
    """

    def __init__(self):
        self._handlers: List[AuthStateHandler] = []
        self._delivery_lock = asyncio.Lock()

    def on_auth_state_change(self, handler: AuthStateHandler) -> Unsubscribe:
        self._handlers.append(handler)

        def release() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return Subscription(release, name="auth-state")

    async def _broadcast(self, identity: Optional["Identity"]) -> None:
        async with self._delivery_lock:
            for handler in list(self._handlers):
                try:
                    await handler(identity)
                except Exception as e:
                    logger.error(f"Auth state handler failed: {e}")
