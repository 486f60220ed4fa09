"""
Input validation for user administration.

Validators return a user-facing reason string, or None when the value is
valid. Reasons are shown next to the offending form field.
"""

import re
from typing import Dict, Optional

MIN_PASSWORD_LENGTH = 6

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email(email: Optional[str]) -> Optional[str]:
    if not email or not email.strip():
        return "El email es requerido"
    if not EMAIL_PATTERN.match(email.strip()):
        return "Email inválido"
    return None


def validate_password(password: Optional[str], min_length: int = MIN_PASSWORD_LENGTH) -> Optional[str]:
    if not password:
        return "La contraseña es requerida"
    if len(password) < min_length:
        return f"La contraseña debe tener al menos {min_length} caracteres"
    return None


def validate_display_name(name: Optional[str]) -> Optional[str]:
    if not name or not name.strip():
        return "El nombre es requerido"
    return None


def validate_new_user(
    email: Optional[str],
    password: Optional[str],
    display_name: Optional[str],
    min_password_length: int = MIN_PASSWORD_LENGTH,
) -> Dict[str, str]:
    """
    Validate account creation input.

    Returns:
        Dict mapping every invalid field to its reason (empty if all valid)
    """
    checks = (
        ("email", validate_email(email)),
        ("password", validate_password(password, min_password_length)),
        ("displayName", validate_display_name(display_name)),
    )
    return {name: reason for name, reason in checks if reason}
