"""Outbound mail transport built on :mod:`smtplib`.

What:
  Assemble a MIME message from a compose request and hand it to the account's
  SMTP server.

Why:
  Sending is the only operation where a provider rejection is an expected
  outcome rather than an error: the API reports it as ``success: false``
  together with the server's reason. Keeping that contract here means the API
  layer never inspects SMTP exceptions.

How:
  :class:`OutboundMessage` validates the recipients before any network IO.
  :class:`SmtpTransport` builds an :class:`email.message.EmailMessage`
  (plain-text and HTML alternatives, optional attachments, generated
  ``Message-ID``), connects with implicit TLS or STARTTLS depending on the
  configuration, authenticates, and sends to every ``To``/``Cc``/``Bcc``
  recipient.

Interfaces:
  :class:`SmtpConfig`, :class:`Attachment`, :class:`OutboundMessage`,
  :class:`SendResult`, :class:`SmtpTransport`.

Invariants & Safety:
  - A message without ``To`` recipients never reaches the transport.
  - ``Bcc`` recipients are delivered but never written into the headers.
  - :meth:`SmtpTransport.send` does not raise for SMTP or socket failures.
"""
from __future__ import annotations

import contextlib
import mimetypes
import re
import smtplib
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Iterator, List, Optional, Tuple

from ..config.loader import get_runtime_config
from ..errors import ValidationError
from ..utils.logging import get_logger

LOGGER = get_logger("webmail.smtp")

_LINE_BREAKS = re.compile(r"[\r\n]")


@dataclass
class SmtpConfig:
    """Connection parameters and sender identity for one account."""

    host: str
    username: str
    password: str
    from_email: str
    port: int = 587
    secure: bool = False
    timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.timeout is None:
            self.timeout = get_runtime_config().mail.timeout_s


@dataclass
class Attachment:
    """Decoded attachment payload."""

    filename: str
    content: bytes
    content_type: Optional[str] = None

    def mime_type(self) -> Tuple[str, str]:
        content_type = self.content_type or mimetypes.guess_type(self.filename)[0]
        if not content_type or "/" not in content_type:
            content_type = "application/octet-stream"
        maintype, subtype = content_type.split("/", 1)
        return maintype, subtype


@dataclass
class OutboundMessage:
    """Compose request ready for delivery.

    Raises:
      ValidationError: When ``to`` is empty, or the subject or an attachment
        filename contains a line break.
    """

    to: List[str]
    subject: str
    body_html: str
    body_text: Optional[str] = None
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.to:
            raise ValidationError("At least one recipient is required")
        if _LINE_BREAKS.search(self.subject or ""):
            raise ValidationError("Subject must not contain line breaks")
        for attachment in self.attachments:
            if _LINE_BREAKS.search(attachment.filename):
                raise ValidationError(f"Attachment filename {attachment.filename!r} must not contain line breaks")

    @property
    def recipients(self) -> List[str]:
        return [*self.to, *self.cc, *self.bcc]


@dataclass
class SendResult:
    """Outcome of a delivery attempt."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class SmtpTransport:
    """Deliver :class:`OutboundMessage` objects through one SMTP account.

    The transport opens a fresh SMTP session per message; providers close idle
    submission connections quickly, so there is nothing worth keeping open.
    """

    def __init__(self, config: SmtpConfig):
        self._config = config

    @property
    def config(self) -> SmtpConfig:
        return self._config

    def build(self, message: OutboundMessage) -> EmailMessage:
        """Render ``message`` as a MIME document with a fresh ``Message-ID``."""

        mime = EmailMessage()
        mime["From"] = self._config.from_email
        mime["To"] = ", ".join(message.to)
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)
        mime["Subject"] = message.subject
        mime["Date"] = formatdate(localtime=True)
        domain = self._config.from_email.rpartition("@")[2] or None
        mime["Message-ID"] = make_msgid(domain=domain)

        if message.body_text:
            mime.set_content(message.body_text)
            mime.add_alternative(message.body_html, subtype="html")
        else:
            mime.set_content(message.body_html, subtype="html")

        for attachment in message.attachments:
            maintype, subtype = attachment.mime_type()
            mime.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype,
                filename=attachment.filename,
            )
        return mime

    @contextlib.contextmanager
    def _session(self) -> Iterator[smtplib.SMTP]:
        config = self._config
        context = ssl.create_default_context()
        if config.secure:
            server = smtplib.SMTP_SSL(config.host, config.port, timeout=config.timeout, context=context)
        else:
            server = smtplib.SMTP(config.host, config.port, timeout=config.timeout)
        with server:
            if not config.secure:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=context)
                    server.ehlo()
            server.login(config.username, config.password)
            yield server

    def send(self, message: OutboundMessage) -> SendResult:
        """Deliver ``message`` and report the outcome.

        What:
          Build the MIME document, authenticate against the account's SMTP
          server and submit it to every recipient.

        Why:
          The compose endpoint reports provider rejections to the user instead
          of failing the request, so failures are returned rather than raised.

        How:
          Any :class:`smtplib.SMTPException` or socket error is logged and
          converted into ``SendResult(success=False, error=...)``.

        Args:
          message: Validated outbound message.

        Returns:
          :class:`SendResult` carrying the ``Message-ID`` on success.
        """

        mime = self.build(message)
        try:
            with self._session() as server:
                server.send_message(
                    mime,
                    from_addr=self._config.from_email,
                    to_addrs=message.recipients,
                )
        except (smtplib.SMTPException, OSError) as exc:
            LOGGER.error("smtp_send_failed", host=self._config.host, error=str(exc))
            return SendResult(success=False, error=str(exc))
        message_id = mime["Message-ID"]
        LOGGER.info(
            "smtp_sent",
            host=self._config.host,
            message_id=message_id,
            recipients=len(message.recipients),
        )
        return SendResult(success=True, message_id=message_id)
