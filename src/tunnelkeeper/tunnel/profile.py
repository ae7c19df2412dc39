"""Server profile: where a tunnel connects and as whom."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, SecretStr, field_validator

HOSTNAME_RE = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
USERNAME_RE = re.compile(r"^[a-zA-Z0-9._-]+$")


class ServerProfile(BaseModel):
    """An SSH server to tunnel through.

    The private key is carried as secret key material; it is written to a
    0600 file only for the lifetime of a session.
    """

    id: str = Field(min_length=1, description="Stable profile identifier.")
    name: str = Field(default="", description="Display name.")
    hostname: str = Field(description="Server hostname or IPv4 address.")
    port: int = Field(default=22, ge=1, le=65535, description="Server SSH port.")
    username: str = Field(description="Login user.")
    private_key: SecretStr = Field(description="Private key material (OpenSSH or PEM).")

    @field_validator("hostname")
    @classmethod
    def _validate_hostname(cls, v: str) -> str:
        if len(v) > 253 or not HOSTNAME_RE.match(v):
            raise ValueError(f"invalid hostname: {v!r}")
        return v

    @field_validator("username")
    @classmethod
    def _validate_username(cls, v: str) -> str:
        if len(v) > 32 or not USERNAME_RE.match(v) or v.startswith("-"):
            raise ValueError(f"invalid username: {v!r}")
        return v

    @property
    def destination(self) -> str:
        """``user@host`` as passed to ssh."""
        return f"{self.username}@{self.hostname}"
