"""Strict loader for the webmail runtime configuration document.

What:
  Locate, parse, validate, and cache ``config.yaml`` for the API server, the CLI
  and the maintenance sweep.

Why:
  Configuration lives outside the application bundle and carries the token
  signing secret. Centralising discovery and validation guarantees every entry
  point runs with the same fully validated settings and fails loudly when the
  document is missing or malformed.

How:
  Resolve candidate file locations based on an explicit parameter, the
  ``WEBMAIL_CONFIG_PATH`` environment variable, and well-known defaults. Parse
  the YAML payload with PyYAML's ``safe_load``, validate it through the pydantic
  :class:`~webmail.config.schema.RuntimeConfig` model, and memoise the result.

Interfaces:
  :func:`load_runtime_config`, :func:`get_runtime_config`,
  :func:`reset_runtime_config`, :class:`ConfigLoadError`,
  :class:`RuntimeConfigError`.

Invariants:
  - Only payloads that pass strict pydantic validation are returned.
  - The cache honours explicit reload requests and the precedence order of
    candidate paths.

Safety/Performance:
  - File errors are converted into typed exceptions carrying path context; no
    failure is silently replaced with defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

import yaml
from pydantic import ValidationError as _PydanticValidationError

from .schema import RuntimeConfig


class ConfigLoadError(Exception):
    """Base error for configuration parsing or validation failures."""


class RuntimeConfigError(ConfigLoadError):
    """Error raised when ``config.yaml`` cannot be located, read or validated.

    What:
      Signal issues related specifically to runtime configuration discovery or
      schema validation.

    Why:
      The CLI distinguishes configuration mistakes (exit code 1 with a
      remediation hint) from failures that happen later while serving requests.

    How:
      Subclass :class:`ConfigLoadError` so upstream handlers can catch the broad
      category or the specialised variant as needed.
    """


_CONFIG_ENV = "WEBMAIL_CONFIG_PATH"
_DEFAULT_LOCATIONS: Tuple[Path, ...] = (
    Path("config.yaml"),
    Path("/etc/webmail/config.yaml"),
)
_RUNTIME_CACHE: Optional[Tuple[Path, RuntimeConfig]] = None


def _candidate_paths(path: Optional[Path]) -> Iterable[Path]:
    """Yield configuration file locations in priority order.

    What:
      Produce the ordered list of paths that should be inspected for
      ``config.yaml``.

    Why:
      Operators override the configuration path through a CLI option, an
      environment variable, or well-known defaults; this helper captures that
      precedence chain in one place.

    How:
      Accumulate deduplicated :class:`~pathlib.Path` objects by checking the
      explicit argument, the ``WEBMAIL_CONFIG_PATH`` environment variable, and
      the default locations, expanding ``~`` on the way.

    Args:
      path: Explicit path requested by the caller, or ``None``.

    Yields:
      Candidate paths ordered from most specific to least specific.
    """

    seen: set[Path] = set()
    if path is not None:
        candidate = path.expanduser()
        seen.add(candidate)
        yield candidate
    env_path = os.environ.get(_CONFIG_ENV)
    if env_path:
        candidate = Path(env_path).expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate
    for default in _DEFAULT_LOCATIONS:
        candidate = default.expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate


def _parse_config_payload(text: str, source: Path) -> dict[str, Any]:
    """Parse ``config.yaml`` text into a mapping ready for validation."""

    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise RuntimeConfigError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise RuntimeConfigError("config.yaml must contain a mapping at the top-level")
    return payload


def _load_runtime_from_path(path: Path) -> RuntimeConfig:
    """Load and validate ``config.yaml`` from a specific path.

    What:
      Read the file at ``path`` and convert it into a validated
      :class:`RuntimeConfig` model.

    Why:
      Splitting the functionality keeps :func:`load_runtime_config` focused on
      path discovery while this helper handles IO and schema validation.

    How:
      Read the file contents, parse them via :func:`_parse_config_payload`, and
      validate using :meth:`RuntimeConfig.model_validate`, wrapping filesystem
      and validation failures in :class:`RuntimeConfigError`.

    Args:
      path: Filesystem location of the runtime configuration.

    Returns:
      The validated :class:`RuntimeConfig` model.

    Raises:
      RuntimeConfigError: If the file cannot be read or fails validation.
    """

    try:
        text = path.read_text()
    except FileNotFoundError as exc:
        raise RuntimeConfigError(f"Configuration file missing: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem surface
        raise RuntimeConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    payload = _parse_config_payload(text, path)
    try:
        return RuntimeConfig.model_validate(payload)
    except _PydanticValidationError as exc:
        raise RuntimeConfigError(f"Invalid config.yaml: {exc}") from exc


def load_runtime_config(
    path: Optional[Path | str] = None,
    *,
    reload: bool = False,
) -> RuntimeConfig:
    """Resolve, parse, and cache the runtime configuration.

    What:
      Locate ``config.yaml`` using the configured precedence chain, parse it, and
      return a validated :class:`RuntimeConfig` instance.

    Why:
      The app factory, the handle cache and the CLI all need runtime settings;
      caching avoids repeated disk IO while ``reload`` enables deterministic
      refreshes during tests.

    How:
      Convert string paths to :class:`~pathlib.Path`, consult the module cache
      unless ``reload`` is requested, iterate through candidate paths until an
      existing file is found, and store the successful result.

    Args:
      path: Optional explicit location of ``config.yaml``.
      reload: When ``True`` forces a fresh load bypassing the cache.

    Returns:
      The validated runtime configuration.

    Raises:
      RuntimeConfigError: If no suitable configuration file can be located or
      validated.
    """

    global _RUNTIME_CACHE

    requested_path = Path(path).expanduser() if isinstance(path, (str, Path)) else None
    if not reload and _RUNTIME_CACHE is not None:
        cached_path, cached_config = _RUNTIME_CACHE
        if requested_path is None or cached_path == requested_path:
            return cached_config

    errors: list[str] = []
    for candidate in _candidate_paths(requested_path):
        if not candidate.exists():
            errors.append(str(candidate))
            continue
        config = _load_runtime_from_path(candidate)
        _RUNTIME_CACHE = (candidate, config)
        return config

    searched = ", ".join(errors) if errors else "<none>"
    raise RuntimeConfigError(f"Unable to locate config.yaml (searched: {searched})")


def get_runtime_config() -> RuntimeConfig:
    """Return the cached runtime configuration, loading it on demand."""

    return load_runtime_config()


def reset_runtime_config() -> None:
    """Clear the runtime configuration cache.

    Test suites and the CLI ``--config`` option use this to force the next
    :func:`load_runtime_config` call to read from disk again.
    """

    global _RUNTIME_CACHE
    _RUNTIME_CACHE = None
