"""
User administration workflow.

Create, update and delete user profiles. Every entry point re-checks the
caller's permission when invoked, independently of what the UI showed.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger
from pydantic import ValidationError as RecordValidationError

from ..backends.base import AuthProvider, DataStore, Unsubscribe
from .control import AccessControlService
from .errors import (
    ProfileWriteFailedAfterAccountCreated,
    SelfDeletionForbidden,
    UserNotFound,
    ValidationError,
)
from .models import Identity, UserProfile
from .permissions import DEFAULT_ROLE, Capability, Role
from .session import USERS_PATH, profile_path
from .validators import MIN_PASSWORD_LENGTH, validate_display_name, validate_new_user


UserEntry = Tuple[str, UserProfile]
UserListHandler = Callable[[List[UserEntry]], None]


@dataclass
class NewUser:
    """
    Account creation input.

    Attributes:
        email: Login email
        password: Initial password
        display_name: Name shown in the application
        role: Assigned role, agent if omitted
        department: Department the user belongs to
    """
    email: str
    password: str
    display_name: str
    role: Union[Role, str, None] = None
    department: str = ""


@dataclass
class UserPatch:
    """Profile fields to change; None leaves a field untouched."""
    display_name: Optional[str] = None
    role: Union[Role, str, None] = None
    department: Optional[str] = None
    is_active: Optional[bool] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_role(value: Union[Role, str, None], field: str = "role") -> Role:
    if value is None:
        return DEFAULT_ROLE
    try:
        return Role(value)
    except (TypeError, ValueError):
        raise ValidationError({field: "Rol inválido"})


class UserAdministration:
    """
    Privileged user profile operations.

    Requires the canCreateUsers capability for every operation.
    """

    def __init__(
        self,
        access: AccessControlService,
        auth: AuthProvider,
        store: DataStore,
        min_password_length: int = MIN_PASSWORD_LENGTH,
    ):
        """
        Initialize workflow.

        Args:
            access: Access control service of the acting client
            auth: Authentication provider used to create credentials
            store: Data store holding ``users/{uid}`` profiles
            min_password_length: Minimum accepted password length
        """
        self.access = access
        self.auth = auth
        self.store = store
        self.min_password_length = min_password_length

    def _require(self) -> str:
        self.access.require_permission(Capability.CREATE_USERS)
        return self.access.user_id

    async def create_user(self, new_user: NewUser) -> Identity:
        """
        Create a credential and its user profile.

        Args:
            new_user: Account creation input

        Returns:
            Identity of the created credential

        Raises:
            PermissionDeniedError: If the caller lacks canCreateUsers
            ValidationError: If any field is invalid (no remote call is made)
            AuthProviderError: If the provider rejects the new account
            ProfileWriteFailedAfterAccountCreated: If the credential was created
                but the profile could not be stored
        """
        actor = self._require()

        errors = validate_new_user(
            new_user.email,
            new_user.password,
            new_user.display_name,
            self.min_password_length,
        )
        try:
            role = _parse_role(new_user.role)
        except ValidationError as e:
            errors.update(e.errors)
        if errors:
            logger.warning(f"Create user rejected: invalid fields {sorted(errors)}")
            raise ValidationError(errors)

        email = new_user.email.strip()
        display_name = new_user.display_name.strip()

        identity = await self.auth.create_account(email, new_user.password)
        try:
            await self.auth.update_display_name(identity, display_name)

            now = _now()
            profile = {
                "email": identity.email,
                "displayName": display_name,
                "role": role.value,
                "department": (new_user.department or "").strip(),
                "isActive": True,
                "createdAt": now,
                "createdBy": actor,
                "updatedAt": now,
                "updatedBy": actor,
            }
            await self.store.write(profile_path(identity.uid), profile)
        except Exception as e:
            logger.error(
                f"Account {identity.email} ({identity.uid}) created but profile was not stored: {e}"
            )
            raise ProfileWriteFailedAfterAccountCreated(identity, e) from e

        logger.info(f"User created: {identity.email} ({identity.uid}) role={role.value} by {actor}")
        return Identity(uid=identity.uid, email=identity.email, display_name=display_name)

    async def update_user(self, user_id: str, patch: UserPatch) -> Dict[str, Any]:
        """
        Update the supplied profile fields.

        Email and password are never changed here.

        Args:
            user_id: Profile to update
            patch: Fields to change

        Returns:
            The values written, including updatedAt/updatedBy

        Raises:
            PermissionDeniedError: If the caller lacks canCreateUsers
            ValidationError: If a supplied field is invalid
            UserNotFound: If no profile exists for `user_id`
        """
        actor = self._require()

        values: Dict[str, Any] = {}
        errors: Dict[str, str] = {}

        if patch.display_name is not None:
            reason = validate_display_name(patch.display_name)
            if reason:
                errors["displayName"] = reason
            else:
                values["displayName"] = patch.display_name.strip()
        if patch.role is not None:
            try:
                values["role"] = _parse_role(patch.role).value
            except ValidationError as e:
                errors.update(e.errors)
        if patch.department is not None:
            values["department"] = patch.department.strip()
        if patch.is_active is not None:
            values["isActive"] = bool(patch.is_active)

        if errors:
            raise ValidationError(errors)

        if not await self.store.read(profile_path(user_id)):
            logger.warning(f"Update rejected: no profile for {user_id}")
            raise UserNotFound(user_id)

        values["updatedAt"] = _now()
        values["updatedBy"] = actor

        await self.store.update(profile_path(user_id), values)
        logger.info(f"User updated: {user_id} fields={sorted(values)} by {actor}")
        return values

    async def deactivate_user(self, user_id: str) -> Dict[str, Any]:
        """Mark a profile inactive."""
        return await self.update_user(user_id, UserPatch(is_active=False))

    async def delete_user(self, user_id: str) -> None:
        """
        Remove a user profile.

        The auth provider credential is left in place; it resolves to a
        least privileged session and cannot sign in to the application.

        Raises:
            SelfDeletionForbidden: If `user_id` is the caller's own id
            PermissionDeniedError: If the caller lacks canCreateUsers
        """
        if user_id == self.access.user_id:
            logger.warning(f"User {user_id} attempted to delete their own profile")
            raise SelfDeletionForbidden(user_id)

        actor = self._require()
        await self.store.remove(profile_path(user_id))
        logger.info(f"User profile deleted: {user_id} by {actor}")

    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        """Read one profile, None if it doesn't exist."""
        self._require()
        record = await self.store.read(profile_path(user_id))
        if not record:
            return None
        return UserProfile.from_record(record)

    async def list_users(self) -> List[UserEntry]:
        """Read every profile once, sorted by display name."""
        self._require()
        return profiles_from_snapshot(await self.store.read(USERS_PATH))

    def watch_users(self, handler: UserListHandler) -> Unsubscribe:
        """
        Subscribe to the live user list.

        Args:
            handler: Called with (uid, profile) pairs sorted by display name

        Returns:
            Handle that releases the subscription
        """
        self._require()

        def on_value(value: Any) -> None:
            handler(profiles_from_snapshot(value))

        return self.store.subscribe(USERS_PATH, on_value)


def profiles_from_snapshot(value: Any) -> List[UserEntry]:
    """Convert a ``users`` snapshot into sorted (uid, profile) pairs."""
    if not isinstance(value, dict):
        return []

    entries = []
    for uid, record in value.items():
        if not isinstance(record, dict):
            logger.warning(f"Skipping malformed user record {uid}")
            continue
        try:
            entries.append((uid, UserProfile.from_record(record)))
        except RecordValidationError as e:
            logger.warning(f"Skipping malformed user record {uid}: {e}")

    entries.sort(key=lambda entry: (entry[1].display_name or entry[1].email).lower())
    return entries


def role_counts(users: Iterable[UserEntry]) -> Dict[Role, int]:
    """Number of users per role, every role present."""
    counts = Counter(profile.role for _, profile in users)
    return {role: counts.get(role, 0) for role in Role}
