"""
In-process auth provider and data store.

Thread-safe stand-ins for the hosted backend, used for local development
and tests. Passwords are kept as bcrypt hashes, as a real provider would;
hashing runs in a worker thread so the event loop isn't blocked.
"""

import asyncio
import copy
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import bcrypt
from loguru import logger

from ..access.errors import AuthErrorKind, AuthProviderError, StoreError
from ..access.models import Identity
from ..access.validators import EMAIL_PATTERN, MIN_PASSWORD_LENGTH
from .base import (
    AuthStateBroadcaster,
    Subscription,
    Unsubscribe,
    ValueHandler,
    join_path,
    split_path,
    tree_get,
    tree_set,
)


MAX_FAILED_ATTEMPTS = 5


@dataclass
class _Account:
    uid: str
    email: str
    password_hash: str
    display_name: Optional[str] = None
    disabled: bool = False
    failed_attempts: int = 0


class MemoryAuthProvider(AuthStateBroadcaster):
    """
    In-memory authentication provider.

    Accounts are keyed by lower-cased email. After MAX_FAILED_ATTEMPTS wrong
    passwords every further sign in fails with TOO_MANY_ATTEMPTS.
    """

    def __init__(self, bcrypt_rounds: int = 12, max_failed_attempts: int = MAX_FAILED_ATTEMPTS):
        """
        Initialize provider.

        Args:
            bcrypt_rounds: bcrypt cost factor (lower it in tests)
            max_failed_attempts: Wrong passwords allowed before throttling
        """
        super().__init__()
        self.bcrypt_rounds = bcrypt_rounds
        self.max_failed_attempts = max_failed_attempts
        self._accounts: Dict[str, _Account] = {}
        self._lock = threading.RLock()
        self._current: Optional[Identity] = None

    def current_identity(self) -> Optional[Identity]:
        return self._current

    async def sign_in(self, email: str, password: str) -> Identity:
        """
        Verify credentials and make the account the current identity.

        Raises:
            AuthProviderError: On unknown user, wrong password, disabled
                account or too many failed attempts
        """
        with self._lock:
            account = self._accounts.get(email.strip().lower())
            if account is None:
                logger.warning(f"Sign in failed: user '{email}' not found")
                raise AuthProviderError(AuthErrorKind.USER_NOT_FOUND, email)

            if account.failed_attempts >= self.max_failed_attempts:
                logger.warning(f"Sign in throttled for '{email}'")
                raise AuthProviderError(AuthErrorKind.TOO_MANY_ATTEMPTS, email)

            password_hash = account.password_hash

        matches = await asyncio.to_thread(bcrypt.checkpw, password.encode("utf-8"), password_hash.encode("utf-8"))

        with self._lock:
            if not matches:
                account.failed_attempts += 1
                logger.warning(f"Sign in failed: invalid password for '{email}'")
                raise AuthProviderError(AuthErrorKind.WRONG_PASSWORD, email)

            if account.disabled:
                logger.warning(f"Sign in failed: account '{email}' is disabled")
                raise AuthProviderError(AuthErrorKind.ACCOUNT_DISABLED, email)

            account.failed_attempts = 0
            identity = self._identity(account)
            self._current = identity

        logger.info(f"Signed in: {identity.email} ({identity.uid})")
        await self._broadcast(identity)
        return identity

    async def sign_out(self) -> None:
        if self._current is None:
            return
        logger.info(f"Signed out: {self._current.email}")
        self._current = None
        await self._broadcast(None)

    async def create_account(self, email: str, password: str) -> Identity:
        """
        Create a credential. The current identity is left unchanged.

        Raises:
            AuthProviderError: INVALID_EMAIL, WEAK_PASSWORD or EMAIL_IN_USE
        """
        if not EMAIL_PATTERN.match(email.strip()):
            raise AuthProviderError(AuthErrorKind.INVALID_EMAIL, email)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthProviderError(AuthErrorKind.WEAK_PASSWORD)

        key = email.strip().lower()
        with self._lock:
            if key in self._accounts:
                raise AuthProviderError(AuthErrorKind.EMAIL_IN_USE, email)

        hashed = await asyncio.to_thread(
            bcrypt.hashpw,
            password.encode("utf-8"),
            bcrypt.gensalt(rounds=self.bcrypt_rounds),
        )

        with self._lock:
            # Another caller may have taken the email while hashing
            if key in self._accounts:
                raise AuthProviderError(AuthErrorKind.EMAIL_IN_USE, email)

            password_hash = hashed.decode("utf-8")
            account = _Account(uid=uuid.uuid4().hex, email=email.strip(), password_hash=password_hash)
            self._accounts[key] = account

        logger.info(f"Account created: {account.email} ({account.uid})")
        return self._identity(account)

    async def update_display_name(self, identity: Identity, name: str) -> None:
        with self._lock:
            account = self._account_by_uid(identity.uid)
            account.display_name = name
            if self._current is not None and self._current.uid == identity.uid:
                self._current = self._identity(account)

    def set_disabled(self, uid: str, disabled: bool = True) -> None:
        """Disable or re-enable an account."""
        with self._lock:
            self._account_by_uid(uid).disabled = disabled

    def has_account(self, uid: str) -> bool:
        with self._lock:
            return any(a.uid == uid for a in self._accounts.values())

    def _account_by_uid(self, uid: str) -> _Account:
        for account in self._accounts.values():
            if account.uid == uid:
                return account
        raise AuthProviderError(AuthErrorKind.USER_NOT_FOUND, uid)

    @staticmethod
    def _identity(account: _Account) -> Identity:
        return Identity(uid=account.uid, email=account.email, display_name=account.display_name)


class MemoryDataStore:
    """
    In-memory hierarchical key-value store with live subscriptions.

    Values are JSON-like trees. Writing None removes a path and empty
    branches are pruned. Subscribers are called with the current value
    on subscribe and again after every change at, above or below their
    path.
    """

    def __init__(self):
        self._root: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._subscribers: List[Tuple[str, ValueHandler]] = []

    async def read(self, path: str) -> Any:
        with self._lock:
            return copy.deepcopy(tree_get(self._root, split_path(path)))

    async def write(self, path: str, value: Any) -> None:
        segments = split_path(path)
        with self._lock:
            self._set(segments, copy.deepcopy(value))
        self._notify(segments)

    async def update(self, path: str, values: dict) -> None:
        """Merge child values into `path`; None children are removed."""
        segments = split_path(path)
        with self._lock:
            for key, value in values.items():
                self._set(segments + split_path(key), copy.deepcopy(value))
        self._notify(segments)

    async def remove(self, path: str) -> None:
        await self.write(path, None)

    async def push(self, path: str, value: Any) -> str:
        """Store `value` under a new unique child key and return the key."""
        key = uuid.uuid4().hex
        await self.write(join_path(path, key), value)
        return key

    def subscribe(self, path: str, handler: ValueHandler) -> Unsubscribe:
        entry = (join_path(path), handler)
        with self._lock:
            self._subscribers.append(entry)
            value = copy.deepcopy(tree_get(self._root, split_path(path)))
        handler(value)

        def release() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return Subscription(release, name=entry[0])

    def subscriber_count(self, path: Optional[str] = None) -> int:
        with self._lock:
            if path is None:
                return len(self._subscribers)
            return sum(1 for p, _ in self._subscribers if p == join_path(path))

    def _set(self, segments: List[str], value: Any) -> None:
        if segments:
            tree_set(self._root, segments, value)
        elif value is None or isinstance(value, dict):
            self._root = value or {}
        else:
            raise StoreError("/", "root value must be a mapping")

    def _notify(self, changed: List[str]) -> None:
        with self._lock:
            affected = []
            for path, handler in self._subscribers:
                watched = split_path(path)
                shorter = min(len(watched), len(changed))
                if watched[:shorter] == changed[:shorter]:
                    affected.append((handler, copy.deepcopy(tree_get(self._root, watched))))

        for handler, value in affected:
            try:
                handler(value)
            except Exception as e:
                logger.error(f"Store subscriber failed: {e}")
