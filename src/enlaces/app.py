"""
Application wiring.

Builds the backend adapters and the access control services from Settings.
One EnlacesApp is created per client process and passed to every consumer.
"""

from dataclasses import dataclass
from typing import Optional

import aiohttp
from loguru import logger

from .access.control import AccessControlService
from .access.permissions import Role
from .access.session import SessionResolver, profile_path
from .access.users import UserAdministration
from .backends.base import AuthProvider, DataStore
from .backends.firebase import FirebaseAuthProvider, FirebaseDataStore
from .backends.memory import MemoryAuthProvider, MemoryDataStore
from .calls import CallLog
from .config import Settings


@dataclass
class EnlacesApp:
    """
    Wired application services.

    Use as an async context manager, or call start() and close().
    """
    settings: Settings
    auth: AuthProvider
    store: DataStore
    resolver: SessionResolver
    access: AccessControlService
    users: UserAdministration
    calls: CallLog
    http: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        await self.resolver.start()

    async def close(self) -> None:
        self.resolver.stop()
        if isinstance(self.store, FirebaseDataStore):
            await self.store.close()
        if self.http is not None:
            await self.http.close()

    async def __aenter__(self) -> "EnlacesApp":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def build_services(settings: Settings, auth: AuthProvider, store: DataStore,
                   http: Optional[aiohttp.ClientSession] = None) -> EnlacesApp:
    """Wire the access control services on top of existing backends."""
    resolver = SessionResolver(auth, store, profile_fetch_timeout=settings.profile_fetch_timeout)
    access = AccessControlService(auth, store, resolver)
    return EnlacesApp(
        settings=settings,
        auth=auth,
        store=store,
        resolver=resolver,
        access=access,
        users=UserAdministration(access, auth, store, min_password_length=settings.min_password_length),
        calls=CallLog(access, store),
        http=http,
    )


async def build_app(settings: Settings) -> EnlacesApp:
    """
    Build the application for the configured backend.

    The memory backend is seeded with the bootstrap admin account when one
    is configured.
    """
    if settings.backend == "firebase":
        http = aiohttp.ClientSession()
        auth = FirebaseAuthProvider(settings.firebase_api_key, http)
        store = FirebaseDataStore(settings.firebase_database_url, http, auth.fresh_id_token)
        logger.info(f"Using Firebase backend: {settings.firebase_database_url}")
        return build_services(settings, auth, store, http)

    auth = MemoryAuthProvider()
    store = MemoryDataStore()
    if settings.bootstrap_admin_email and settings.bootstrap_admin_password:
        await seed_admin(auth, store, settings.bootstrap_admin_email, settings.bootstrap_admin_password)
    logger.info("Using in-memory backend")
    return build_services(settings, auth, store)


async def seed_admin(auth: MemoryAuthProvider, store: MemoryDataStore, email: str, password: str) -> str:
    """Create an admin credential and profile directly, bypassing the workflow."""
    identity = await auth.create_account(email, password)
    await auth.update_display_name(identity, "Administrador")
    await store.write(profile_path(identity.uid), {
        "email": identity.email,
        "displayName": "Administrador",
        "role": Role.ADMIN.value,
        "department": "",
        "isActive": True,
        "createdBy": "system",
    })
    logger.info(f"Bootstrap admin created: {email}")
    return identity.uid
