"""
Firebase backend over its REST APIs.

FirebaseAuthProvider talks to the Identity Toolkit API; FirebaseDataStore
talks to the Realtime Database REST API and uses its event stream for
subscriptions. Both share one aiohttp ClientSession owned by the caller.
"""

import asyncio
import copy
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
import jwt
from loguru import logger

from ..access.errors import AuthErrorKind, AuthProviderError, StoreError
from ..access.models import Identity
from .base import (
    AuthStateBroadcaster,
    Subscription,
    Unsubscribe,
    ValueHandler,
    join_path,
    split_path,
    tree_set,
)


IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{method}"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

# Seconds before expiry at which the ID token is refreshed
TOKEN_REFRESH_MARGIN = 60
DEFAULT_TOKEN_LIFETIME = 3600

# Identity Toolkit error codes -> normalized kinds
FIREBASE_AUTH_ERRORS: Dict[str, AuthErrorKind] = {
    "EMAIL_NOT_FOUND": AuthErrorKind.USER_NOT_FOUND,
    "INVALID_PASSWORD": AuthErrorKind.WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": AuthErrorKind.INVALID_CREDENTIALS,
    "USER_DISABLED": AuthErrorKind.ACCOUNT_DISABLED,
    "TOO_MANY_ATTEMPTS_TRY_LATER": AuthErrorKind.TOO_MANY_ATTEMPTS,
    "EMAIL_EXISTS": AuthErrorKind.EMAIL_IN_USE,
    "WEAK_PASSWORD": AuthErrorKind.WEAK_PASSWORD,
    "INVALID_EMAIL": AuthErrorKind.INVALID_EMAIL,
}


def auth_error_from_response(payload: Any) -> AuthProviderError:
    """
    Map an Identity Toolkit error body to an AuthProviderError.

    Messages look like ``"WEAK_PASSWORD : Password should be at least 6 characters"``.
    """
    message = ""
    if isinstance(payload, dict):
        message = str(payload.get("error", {}).get("message", ""))
    code = message.split(":", 1)[0].strip()
    return AuthProviderError(FIREBASE_AUTH_ERRORS.get(code, AuthErrorKind.UNKNOWN), message)


def identity_from_token(id_token: str, display_name: Optional[str] = None) -> Identity:
    """
    Build an Identity from a Firebase ID token.

    The signature is not verified here; the token was just issued to us by
    the provider over TLS and is only used to read the claims.
    """
    claims = jwt.decode(id_token, options={"verify_signature": False})
    return Identity(
        uid=claims.get("user_id") or claims["sub"],
        email=claims.get("email", ""),
        display_name=display_name or claims.get("name"),
        token=id_token,
    )


class FirebaseAuthProvider(AuthStateBroadcaster):
    """
    Email/password authentication against Firebase Authentication.

    ID tokens last an hour. `fresh_id_token()` exchanges the refresh token
    through the Secure Token API shortly before expiry, so long running
    clients keep a valid token for store requests.
    """

    def __init__(self, api_key: str, http: aiohttp.ClientSession):
        """
        Initialize provider.

        Args:
            api_key: Web API key of the Firebase project
            http: Shared HTTP session
        """
        super().__init__()
        self.api_key = api_key
        self.http = http
        self._current: Optional[Identity] = None
        self._refresh_token: Optional[str] = None
        self._expires_at = 0.0
        self._refresh_lock = asyncio.Lock()

    def current_identity(self) -> Optional[Identity]:
        return self._current

    @property
    def id_token(self) -> Optional[str]:
        return self._current.token if self._current else None

    async def fresh_id_token(self) -> Optional[str]:
        """
        ID token of the signed in identity, refreshed when close to expiry.

        Returns:
            The token, or None when nobody is signed in

        Raises:
            AuthProviderError: If the refresh token was rejected
        """
        async with self._refresh_lock:
            if self._current is not None and self._refresh_token and self._token_expiring():
                await self._refresh()
        return self.id_token

    async def sign_in(self, email: str, password: str) -> Identity:
        data = await self._call("signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        identity = identity_from_token(data["idToken"], data.get("displayName") or None)
        self._current = identity
        self._store_tokens(data.get("refreshToken"), data.get("expiresIn"))
        logger.info(f"Signed in: {identity.email} ({identity.uid})")
        await self._broadcast(identity)
        return identity

    async def sign_out(self) -> None:
        if self._current is None:
            return
        logger.info(f"Signed out: {self._current.email}")
        self._current = None
        self._refresh_token = None
        await self._broadcast(None)

    async def create_account(self, email: str, password: str) -> Identity:
        """Create a credential. The signed in identity is left unchanged."""
        data = await self._call("signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        identity = identity_from_token(data["idToken"])
        logger.info(f"Account created: {identity.email} ({identity.uid})")
        return identity

    async def update_display_name(self, identity: Identity, name: str) -> None:
        if not identity.token:
            raise AuthProviderError(AuthErrorKind.UNKNOWN, f"no token for {identity.uid}")
        await self._call("update", {
            "idToken": identity.token,
            "displayName": name,
            "returnSecureToken": False,
        })

    def _token_expiring(self) -> bool:
        return time.monotonic() >= self._expires_at - TOKEN_REFRESH_MARGIN

    def _store_tokens(self, refresh_token: Optional[str], expires_in: Any) -> None:
        self._refresh_token = refresh_token or None
        self._expires_at = time.monotonic() + float(expires_in or DEFAULT_TOKEN_LIFETIME)

    async def _refresh(self) -> None:
        signed_in = self._current
        body = await self._post(SECURE_TOKEN_URL, "Token refresh", data={
            "grant_type": "refresh_token",
            "refresh_token": self._refresh_token,
        })

        # Signed out or switched user while the request was in flight
        if self._current is not signed_in:
            return

        self._current = identity_from_token(body["id_token"], signed_in.display_name)
        self._store_tokens(body.get("refresh_token"), body.get("expires_in"))
        logger.debug(f"ID token refreshed for {signed_in.email}")

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post(IDENTITY_TOOLKIT_URL.format(method=method), f"Identity Toolkit {method}", json=payload)

    async def _post(self, url: str, label: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with self.http.post(url, params={"key": self.api_key}, **kwargs) as resp:
                body = await resp.json(content_type=None)
                if resp.status != 200:
                    error = auth_error_from_response(body)
                    logger.warning(f"{label} failed: {error.detail}")
                    raise error
                return body
        except aiohttp.ClientError as e:
            logger.error(f"{label} request failed: {e}")
            raise AuthProviderError(AuthErrorKind.NETWORK, str(e)) from e


class FirebaseDataStore:
    """
    Firebase Realtime Database over REST.

    Requests are authorized with the ID token awaited from `token_source`.
    Subscriptions open a streaming request in a background task and must
    be created from within a running event loop.
    """

    def __init__(
        self,
        database_url: str,
        http: aiohttp.ClientSession,
        token_source: Callable[[], Awaitable[Optional[str]]],
    ):
        self.database_url = database_url.rstrip("/")
        self.http = http
        self.token_source = token_source
        self._streams: Dict[int, asyncio.Task] = {}

    def _url(self, path: str) -> str:
        return f"{self.database_url}/{join_path(path)}.json"

    async def _params(self) -> Dict[str, str]:
        token = await self.token_source()
        return {"auth": token} if token else {}

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        kwargs: Dict[str, Any] = {"params": await self._params()}
        if payload is not None:
            kwargs["json"] = payload
        try:
            async with self.http.request(method, self._url(path), **kwargs) as resp:
                body = await resp.json(content_type=None)
                if resp.status != 200:
                    detail = body.get("error") if isinstance(body, dict) else body
                    raise StoreError(path, f"HTTP {resp.status}: {detail}")
                return body
        except aiohttp.ClientError as e:
            raise StoreError(path, str(e)) from e

    async def read(self, path: str) -> Any:
        return await self._request("GET", path)

    async def write(self, path: str, value: Any) -> None:
        if value is None:
            await self.remove(path)
            return
        await self._request("PUT", path, value)

    async def update(self, path: str, values: dict) -> None:
        await self._request("PATCH", path, values)

    async def remove(self, path: str) -> None:
        await self._request("DELETE", path)

    async def push(self, path: str, value: Any) -> str:
        body = await self._request("POST", path, value)
        return body["name"]

    def subscribe(self, path: str, handler: ValueHandler) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._stream(path, handler))
        self._streams[id(task)] = task
        task.add_done_callback(lambda done: self._stream_finished(path, done))

        def release() -> None:
            self._streams.pop(id(task), None)
            task.cancel()

        return Subscription(release, name=join_path(path))

    async def close(self) -> None:
        """Cancel every open stream."""
        tasks = list(self._streams.values())
        self._streams.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _stream(self, path: str, handler: ValueHandler) -> None:
        # Local mirror of the watched subtree, rooted under "value"
        mirror: Dict[str, Any] = {}
        event: Optional[str] = None

        try:
            async with self.http.get(
                self._url(path),
                params=await self._params(),
                headers={"Accept": "text/event-stream"},
                timeout=aiohttp.ClientTimeout(total=None, sock_read=None),
            ) as resp:
                if resp.status != 200:
                    logger.error(f"Stream for '{path}' rejected: HTTP {resp.status}")
                    return

                async for raw in resp.content:
                    line = raw.decode("utf-8").strip()
                    if line.startswith("event:"):
                        event = line[len("event:"):].strip()
                    elif line.startswith("data:") and event in ("put", "patch"):
                        self._dispatch(path, mirror, event, line[len("data:"):].strip(), handler)
                    elif line.startswith("data:") and event in ("cancel", "auth_revoked"):
                        logger.warning(f"Stream for '{path}' closed by server: {event}")
                        return
        except aiohttp.ClientError as e:
            logger.error(f"Stream for '{path}' failed: {e}")

    @staticmethod
    def _dispatch(path: str, mirror: Dict[str, Any], event: str, payload: str, handler: ValueHandler) -> None:
        try:
            message = json.loads(payload)
            apply_stream_event(mirror, event, message["path"], message["data"])
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Skipping malformed {event} event on '{path}': {e}")
            return

        try:
            handler(copy.deepcopy(mirror.get("value")))
        except Exception as e:
            logger.error(f"Store subscriber for '{path}' failed: {e}")

    def _stream_finished(self, path: str, task: asyncio.Task) -> None:
        self._streams.pop(id(task), None)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Stream for '{path}' stopped: {error}")


def apply_stream_event(mirror: Dict[str, Any], event: str, path: str, data: Any) -> None:
    """Apply a ``put`` or ``patch`` stream event to a mirror rooted at ``value``."""
    segments = ["value"] + split_path(path)
    if event == "put":
        tree_set(mirror, segments, data)
    else:
        for key, value in (data or {}).items():
            tree_set(mirror, segments + split_path(key), value)
