"""
Shared fixtures for the access control tests.

All tests run against the in-memory backends. The counting variants record
every remote call so tests can assert that nothing reached the backend.
"""

from collections import Counter
from typing import Any, Optional

import pytest

from enlaces.access.models import Identity
from enlaces.access.permissions import Role
from enlaces.access.session import profile_path
from enlaces.app import EnlacesApp, build_services
from enlaces.backends.memory import MemoryAuthProvider, MemoryDataStore
from enlaces.config import Settings


PASSWORD = "secreto123"


class CountingAuthProvider(MemoryAuthProvider):
    """Memory auth provider that counts account management calls."""

    def __init__(self):
        super().__init__(bcrypt_rounds=4)
        self.calls = Counter()

    async def create_account(self, email: str, password: str) -> Identity:
        self.calls["create_account"] += 1
        return await super().create_account(email, password)

    async def update_display_name(self, identity: Identity, name: str) -> None:
        self.calls["update_display_name"] += 1
        await super().update_display_name(identity, name)


class CountingDataStore(MemoryDataStore):
    """Memory store that counts writes and can be told to fail them."""

    def __init__(self):
        super().__init__()
        self.calls = Counter()
        self.fail_writes = False
        self.fail_reads = False

    async def read(self, path: str) -> Any:
        self.calls["read"] += 1
        if self.fail_reads:
            raise ConnectionError("simulated network failure")
        return await super().read(path)

    async def write(self, path: str, value: Any) -> None:
        self.calls["write"] += 1
        if self.fail_writes:
            raise ConnectionError("simulated network failure")
        await super().write(path, value)

    async def update(self, path: str, values: dict) -> None:
        self.calls["update"] += 1
        await super().update(path, values)

    @property
    def remote_writes(self) -> int:
        return self.calls["write"] + self.calls["update"]


@pytest.fixture
def auth() -> CountingAuthProvider:
    return CountingAuthProvider()


@pytest.fixture
def store() -> CountingDataStore:
    return CountingDataStore()


@pytest.fixture
async def app(auth, store) -> EnlacesApp:
    application = build_services(Settings(), auth, store)
    await application.start()
    yield application
    await application.close()


async def add_user(
    auth: MemoryAuthProvider,
    store: MemoryDataStore,
    email: str,
    role: Optional[str] = Role.AGENT.value,
    display_name: str = "Usuario Prueba",
    department: str = "",
    with_profile: bool = True,
) -> str:
    """Create a credential and, unless told otherwise, its profile. Returns the uid."""
    identity = await auth.create_account(email, PASSWORD)
    if with_profile:
        record = {
            "email": email,
            "displayName": display_name,
            "department": department,
            "isActive": True,
        }
        if role is not None:
            record["role"] = role
        await MemoryDataStore.write(store, profile_path(identity.uid), record)
    return identity.uid


@pytest.fixture
def make_user(auth, store):
    async def factory(email: str, role: Optional[str] = Role.AGENT.value, **kwargs) -> str:
        return await add_user(auth, store, email, role, **kwargs)
    return factory


@pytest.fixture
def sign_in_as(app, make_user):
    """Create a user with `role` and sign in as them. Returns the uid."""
    async def factory(role: Optional[str], email: Optional[str] = None) -> str:
        email = email or f"{role or 'none'}@enlaces.ec"
        uid = await make_user(email, role)
        await app.access.sign_in(email, PASSWORD)
        return uid
    return factory
