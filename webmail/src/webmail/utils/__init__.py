"""Expose the public utility surface for webmail.

What:
  Re-export the structured logger factory used by every component.

Why:
  ``from webmail.utils import get_logger`` keeps call sites independent of the
  module layout. The MIME helpers are imported from ``webmail.utils.mime``
  directly because they pull in the mail models.

Interfaces:
  ``get_logger``.
"""

from .logging import get_logger

__all__ = ["get_logger"]
