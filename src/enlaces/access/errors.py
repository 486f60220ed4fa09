"""
Error taxonomy for access control and user administration.

Every error raised by the package derives from AccessError so that a
presentation layer can catch one type and show `user_message`.
"""

from enum import Enum
from typing import Dict, Optional

from .models import Identity


class AccessError(Exception):
    """Base class for all Enlaces EPN access errors."""

    user_message = "Error inesperado"


class ValidationError(AccessError):
    """
    Raised before any remote call when input fails validation.

    Attributes:
        errors: Mapping of field name to the reason it was rejected
    """

    user_message = "Por favor corrige los errores en el formulario"

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        details = ", ".join(f"{name}: {reason}" for name, reason in self.errors.items())
        super().__init__(f"Invalid input ({details})")

    @property
    def fields(self) -> frozenset:
        """Names of every rejected field."""
        return frozenset(self.errors)


class PermissionDeniedError(AccessError):
    """
    Raised when a session attempts an action it doesn't have permission for.

    Attributes:
        user_id: The acting user, None when nobody is signed in
        capability: The capability that was required
    """

    user_message = "No tienes permisos para realizar esta acción"

    def __init__(self, user_id: Optional[str], capability: str):
        self.user_id = user_id
        self.capability = capability
        super().__init__(f"User {user_id} denied permission (requires: {capability})")


class AuthErrorKind(str, Enum):
    """Failure categories reported by the authentication provider."""
    INVALID_CREDENTIALS = "invalid_credentials"
    USER_NOT_FOUND = "user_not_found"
    WRONG_PASSWORD = "wrong_password"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    ACCOUNT_DISABLED = "account_disabled"
    EMAIL_IN_USE = "email_in_use"
    WEAK_PASSWORD = "weak_password"
    INVALID_EMAIL = "invalid_email"
    NETWORK = "network"
    UNKNOWN = "unknown"


AUTH_ERROR_MESSAGES: Dict[AuthErrorKind, str] = {
    AuthErrorKind.INVALID_CREDENTIALS: "Credenciales incorrectas",
    AuthErrorKind.USER_NOT_FOUND: "Usuario no encontrado",
    AuthErrorKind.WRONG_PASSWORD: "Contraseña incorrecta",
    AuthErrorKind.TOO_MANY_ATTEMPTS: "Demasiados intentos. Intenta más tarde",
    AuthErrorKind.ACCOUNT_DISABLED: "Esta cuenta ha sido deshabilitada",
    AuthErrorKind.EMAIL_IN_USE: "Este email ya está registrado",
    AuthErrorKind.WEAK_PASSWORD: "La contraseña debe tener al menos 6 caracteres",
    AuthErrorKind.INVALID_EMAIL: "Email inválido",
    AuthErrorKind.NETWORK: "Error de conexión. Intenta nuevamente",
    AuthErrorKind.UNKNOWN: "Error de conexión. Intenta nuevamente",
}


class AuthProviderError(AccessError):
    """
    Failure reported by the external authentication provider.

    Attributes:
        kind: Normalized failure category
        detail: Provider specific message, for logs only
    """

    def __init__(self, kind: AuthErrorKind, detail: str = ""):
        self.kind = kind
        self.detail = detail
        self.user_message = AUTH_ERROR_MESSAGES[kind]
        message = f"Auth provider error: {kind.value}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class UnauthorizedAccountError(AccessError):
    """Credential is valid but has no user profile in the store."""

    user_message = "Usuario no autorizado. Contacta al administrador."

    def __init__(self, uid: str):
        self.uid = uid
        super().__init__(f"Account {uid} has no user profile")


class StoreError(AccessError):
    """Failure reading or writing the realtime data store."""

    user_message = "Error de conexión con la base de datos"

    def __init__(self, path: str, detail: str = ""):
        self.path = path
        self.detail = detail
        super().__init__(f"Store operation failed at '{path}': {detail}")


class ProfileFetchFailed(AccessError):
    """
    Profile read failed while resolving a session. Never surfaced to callers.

    Attributes:
        missing: True when the read succeeded but no record exists
    """

    def __init__(self, uid: str, reason: str, missing: bool = False):
        self.uid = uid
        self.reason = reason
        self.missing = missing
        super().__init__(f"Could not load profile for {uid}: {reason}")


class ProfileWriteFailedAfterAccountCreated(AccessError):
    """
    The credential was created but its user profile could not be written.

    The account exists with the auth provider and must be reconciled by an
    operator. It is not rolled back.

    Attributes:
        identity: The credential that was created
        cause: The error raised by the profile write
    """

    user_message = (
        "La cuenta fue creada pero no se pudo guardar el perfil. "
        "Contacta al administrador del sistema."
    )

    def __init__(self, identity: Identity, cause: BaseException):
        self.identity = identity
        self.cause = cause
        super().__init__(
            f"Account {identity.uid} ({identity.email}) created but profile write failed: {cause}"
        )


class SelfDeletionForbidden(AccessError):
    """Raised when a session tries to delete its own user profile."""

    user_message = "No puedes eliminar tu propia cuenta"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} cannot delete their own account")


class UserNotFound(AccessError):
    """Raised when an operation targets a user profile that doesn't exist."""

    user_message = "El usuario no existe"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User profile {user_id} not found")
