"""Webmail logging helpers with JSON emission and secret redaction.

What:
  Offer a small facade over Python streams so every webmail component emits
  JSON log lines with consistent fields and automatic removal of credentials
  and message content.

Why:
  The service handles mailbox passwords, bearer tokens, and user mail. A
  structured layout keeps operational logs greppable while a central redaction
  step prevents any of those values from reaching shared log storage when a
  call site passes them along as context.

How:
  Provide a :class:`JsonLogger` dataclass bound to a target stream and a
  component label. ``extra`` dictionaries are copied and scrubbed via a
  recursive redaction helper before being serialised with ``json.dump``.

Interfaces:
  :class:`JsonLogger`, :func:`get_logger`.

Invariants & Safety:
  - Every payload includes an ISO8601 timestamp, severity, and component name.
  - Sensitive keys (:data:`SENSITIVE_KEYS`) are replaced with ``[redacted]``
    even inside nested dictionaries.
  - Streams are flushed after every write.
"""
from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset(
    {"password", "imap_pass", "smtp_pass", "token", "token_secret", "subject", "body"}
)


@dataclass
class JsonLogger:
    """Structured JSON logger with automatic redaction.

    What:
      Emit single-line JSON log entries that include timestamps, severity, a
      component tag, and optional supplemental fields.

    Why:
      Centralising structured logging avoids duplicating the redaction logic and
      guarantees a uniform schema for log shippers and test assertions.

    How:
      Store the destination stream (``None`` means whatever ``sys.stdout`` is at
      write time) and component label, then expose helper
      methods (:meth:`log`, :meth:`info`, :meth:`warning`, :meth:`error`) that
      merge a canonical payload with redacted extras.
    """

    stream: Any = None
    component: str = "webmail"

    def log(self, level: str, message: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        """Emit a structured JSON log entry.

        Args:
          level: Human-readable severity (e.g., ``"info"`` or ``"error"``).
          message: Core log message.
          extra: Optional context dictionary that will be redacted recursively.
        """

        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": message,
            "component": self.component,
        }
        if extra:
            payload.update(self._redact(extra))
        stream = self.stream if self.stream is not None else sys.stdout
        json.dump(payload, stream, separators=(",", ":"), default=str)
        stream.write("\n")
        stream.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log("DEBUG", message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("INFO", message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("WARN", message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log("ERROR", message, extra=kwargs)

    @staticmethod
    def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
        """Remove sensitive keys from a payload recursively.

        What:
          Produce a copy of ``data`` where keys listed in
          :data:`SENSITIVE_KEYS` carry the ``[redacted]`` sentinel.

        Why:
          Call sites often log request context wholesale; masking at the sink
          means a forgotten password field never leaves the process.

        How:
          Walk the dictionary, replace known keys, and recurse into nested
          dictionaries while preserving structure.

        Args:
          data: Arbitrary metadata to sanitise.

        Returns:
          A copy of ``data`` with sensitive values masked.
        """

        result: Dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS:
                result[key] = REDACTED
            elif isinstance(value, dict):
                result[key] = JsonLogger._redact(value)
            else:
                result[key] = value
        return result


def get_logger(component: str) -> JsonLogger:
    """Construct a :class:`JsonLogger` for the requested component.

    Call sites use this instead of instantiating :class:`JsonLogger` so the
    default stream and redaction rules can evolve in one place.
    """

    return JsonLogger(component=component)
