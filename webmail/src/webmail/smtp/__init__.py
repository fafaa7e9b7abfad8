"""Outbound mail delivery.

Interfaces:
  ``SmtpConfig``, ``SmtpTransport``, ``OutboundMessage``, ``Attachment`` and
  ``SendResult``.
"""

from .transport import Attachment, OutboundMessage, SendResult, SmtpConfig, SmtpTransport

__all__ = ["Attachment", "OutboundMessage", "SendResult", "SmtpConfig", "SmtpTransport"]
