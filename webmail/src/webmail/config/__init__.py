"""Webmail configuration package.

What:
  Provide a single import surface for configuration loading and the pydantic
  schema used by the API server, the CLI and the maintenance sweep.

Why:
  Callers should never parse ``config.yaml`` themselves; going through the
  loader guarantees strict validation and the shared cache.

Interfaces:
  - get_runtime_config / load_runtime_config / reset_runtime_config
  - RuntimeConfig and its section models
  - ConfigLoadError / RuntimeConfigError
"""

from .loader import (
    ConfigLoadError,
    RuntimeConfigError,
    get_runtime_config,
    load_runtime_config,
    reset_runtime_config,
)
from .schema import (
    AuthSettings,
    CacheSettings,
    DatabaseSettings,
    MailSettings,
    MaintenanceSettings,
    RuntimeConfig,
    ServerEndpoint,
    ServerSettings,
)

__all__ = [
    "get_runtime_config",
    "load_runtime_config",
    "reset_runtime_config",
    "ConfigLoadError",
    "RuntimeConfigError",
    "RuntimeConfig",
    "AuthSettings",
    "CacheSettings",
    "DatabaseSettings",
    "MailSettings",
    "MaintenanceSettings",
    "ServerEndpoint",
    "ServerSettings",
]
