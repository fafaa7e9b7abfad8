"""Pydantic models describing the webmail runtime configuration document."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class DatabaseSettings(BaseModel):
    """Relational store holding accounts, mail credentials and sessions."""

    model_config = ConfigDict(extra="forbid")

    url: str = "sqlite:///webmail.db"
    echo: bool = False


class AuthSettings(BaseModel):
    """Token signing secret and session lifetime."""

    model_config = ConfigDict(extra="forbid")

    token_secret: str = Field(min_length=32)
    session_ttl_s: int = Field(default=7 * 24 * 60 * 60, gt=0)


class ServerEndpoint(BaseModel):
    """Host/port/TLS triple for one mail protocol."""

    model_config = ConfigDict(extra="forbid")

    host: str
    port: int = Field(gt=0, lt=65536)
    secure: bool = True


class MailSettings(BaseModel):
    """Provider defaults applied when a registration omits server details."""

    model_config = ConfigDict(extra="forbid")

    imap: ServerEndpoint = Field(
        default_factory=lambda: ServerEndpoint(host="imap.gmail.com", port=993, secure=True)
    )
    smtp: ServerEndpoint = Field(
        default_factory=lambda: ServerEndpoint(host="smtp.gmail.com", port=587, secure=False)
    )
    timeout_s: float = Field(default=30.0, gt=0)


class CacheSettings(BaseModel):
    """Bounds for the per-account mail handle cache."""

    model_config = ConfigDict(extra="forbid")

    max_handles: int = Field(default=256, gt=0)
    idle_timeout_s: int = Field(default=900, gt=0)


class MaintenanceSettings(BaseModel):
    """Schedule of the background session sweep and handle reaper."""

    model_config = ConfigDict(extra="forbid")

    interval_s: int = Field(default=300, gt=0)


class ServerSettings(BaseModel):
    """HTTP listener settings used by ``webmail serve``."""

    model_config = ConfigDict(extra="forbid")

    host: str = "0.0.0.0"
    port: int = Field(default=3001, gt=0, lt=65536)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


class RuntimeConfig(BaseModel):
    """Root configuration loaded from ``config.yaml``."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings
    mail: MailSettings = Field(default_factory=MailSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    maintenance: MaintenanceSettings = Field(default_factory=MaintenanceSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
