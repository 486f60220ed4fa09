"""
Runtime configuration.

Settings come from ``ENLACES_*`` environment variables, optionally loaded
from a ``.env`` file.
"""

import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from .access.validators import MIN_PASSWORD_LENGTH


ENV_PREFIX = "ENLACES_"


class Settings(BaseModel):
    """
    Application settings.

    Attributes:
        backend: "memory" for the in-process backend, "firebase" for the hosted one
        firebase_api_key: Web API key (firebase backend)
        firebase_database_url: Realtime Database URL (firebase backend)
        profile_fetch_timeout: Seconds to wait for a profile read; None waits forever
        log_level: loguru level name
        min_password_length: Minimum password length for new accounts
        bootstrap_admin_email: Admin account seeded into the memory backend
        bootstrap_admin_password: Password of the seeded admin account
    """
    backend: Literal["memory", "firebase"] = "memory"
    firebase_api_key: Optional[str] = None
    firebase_database_url: Optional[str] = None
    profile_fetch_timeout: Optional[float] = Field(None, gt=0)
    log_level: str = "INFO"
    min_password_length: int = Field(MIN_PASSWORD_LENGTH, ge=MIN_PASSWORD_LENGTH)
    bootstrap_admin_email: Optional[str] = None
    bootstrap_admin_password: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _check_firebase(self) -> "Settings":
        if self.backend == "firebase" and not (self.firebase_api_key and self.firebase_database_url):
            raise ValueError(
                "firebase backend requires ENLACES_FIREBASE_API_KEY and ENLACES_FIREBASE_DATABASE_URL"
            )
        return self

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[Path] = None,
    ) -> "Settings":
        """
        Load settings from the environment.

        Args:
            environ: Variables to read (default: os.environ after loading .env)
            env_file: Optional .env file to load first

        Raises:
            pydantic.ValidationError: If a value is invalid
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None and raw.strip() != "":
                values[name] = raw.strip()
        return cls.model_validate(values)
