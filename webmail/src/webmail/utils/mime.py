"""MIME normalisation helpers turning IMAP fetch data into API messages.

What:
  Convert the ``FLAGS``/``ENVELOPE``/``BODY[]`` portion of an IMAP fetch
  response into a :class:`~webmail.models.MailMessage`.

Why:
  Provider mail arrives in every shape (HTML only, text only, multipart with
  attachments, no body at all, encoded-word subjects). Clients need one stable
  representation, so the fallback rules live here rather than in each caller.

How:
  Parse the raw RFC822 bytes with ``mail-parser`` for the bodies, read the
  addressing and date from the IMAP envelope (falling back to the parsed
  headers), and apply the body fallback chain HTML -> text with ``<br>`` line
  breaks -> :data:`NO_CONTENT`.

Interfaces:
  :func:`parse_body`, :func:`render_html`, :func:`normalize_message`.

Invariants & Safety:
  - ``bodyHtml`` is never empty.
  - Dates are always timezone-aware UTC so batches sort consistently.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from email.header import decode_header, make_header
from typing import Any, Iterable, List, Mapping, Optional

import mailparser
from imapclient import SEEN

from ..models import MailMessage


NO_CONTENT = "(No content)"
NO_SUBJECT = "(No Subject)"
UNKNOWN_SENDER = "Unknown"


@dataclass
class ParsedBody:
    """Bodies and fallback headers extracted from raw message bytes."""

    html: str
    text: str
    subject: Optional[str]
    date: Optional[datetime]


def parse_body(raw: bytes) -> ParsedBody:
    """Parse raw RFC822 bytes with ``mail-parser``.

    What:
      Extract the HTML and plain-text bodies plus the header subject and date.

    Why:
      The envelope carries no body, and multipart messages can hold several
      text parts; ``mail-parser`` already walks the MIME tree and decodes
      transfer encodings and charsets.

    How:
      Join every ``text/html`` part and every ``text/plain`` part with newlines.

    Args:
      raw: Message bytes as retrieved from ``BODY[]``.

    Returns:
      :class:`ParsedBody` with empty strings for missing bodies.
    """

    mail = mailparser.parse_from_bytes(raw)
    html = "\n".join(part for part in mail.text_html if part)
    text = "\n".join(part for part in mail.text_plain if part)
    subject = mail.subject or None
    date = mail.date if isinstance(mail.date, datetime) else None
    return ParsedBody(html=html, text=text, subject=subject, date=date)


def render_html(html: str, text: str) -> str:
    """Apply the HTML -> text -> placeholder fallback chain."""

    if html:
        return html
    if text:
        return text.replace("\n", "<br>")
    return NO_CONTENT


def _decode(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    try:
        return str(make_header(decode_header(value)))
    except (LookupError, UnicodeError):
        # unknown or mislabelled charset: keep the encoded-word text as is
        return value


def _address(entry: Any) -> Optional[str]:
    """Return ``mailbox@host`` for an envelope address, ``None`` for groups."""

    mailbox = getattr(entry, "mailbox", None)
    host = getattr(entry, "host", None)
    if not mailbox or not host:
        return None
    return f"{_decode(mailbox)}@{_decode(host)}"


def _addresses(entries: Optional[Iterable[Any]]) -> List[str]:
    result: List[str] = []
    for entry in entries or ():
        address = _address(entry)
        if address:
            result.append(address)
    return result


def _as_utc(value: Optional[datetime], *, naive_is_local: bool) -> Optional[datetime]:
    """Convert ``value`` to an aware UTC datetime.

    imapclient normalises envelope dates to naive local time while
    ``mail-parser`` reports naive UTC, hence the explicit flag.
    """

    if value is None:
        return None
    if value.tzinfo is None and not naive_is_local:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_message(uid: int, folder: str, data: Mapping[bytes, Any]) -> MailMessage:
    """Build a :class:`MailMessage` from one IMAP fetch entry.

    What:
      Combine the envelope, flags and parsed body of a message into the API
      representation.

    Why:
      The mailbox client fetches whole pages at once; normalising each entry
      independently lets the caller skip one broken message without losing the
      rest of the page.

    How:
      Read ``ENVELOPE`` for subject, sender, recipients and date; parse
      ``BODY[]`` through :func:`parse_body`; derive ``unread`` from the absence
      of ``\\Seen`` in ``FLAGS``.

    Args:
      uid: Message UID, which doubles as the public message id.
      folder: Folder the message was fetched from.
      data: Fetch response entry keyed by IMAP data item names.

    Returns:
      The normalised message.

    Raises:
      Exception: Whatever the MIME parser raises for undecodable payloads.
    """

    envelope = data.get(b"ENVELOPE")
    flags = data.get(b"FLAGS") or ()
    raw = data.get(b"BODY[]")

    body = parse_body(raw) if raw else ParsedBody(html="", text="", subject=None, date=None)

    subject = _decode(getattr(envelope, "subject", None)) or body.subject or NO_SUBJECT
    senders = _addresses(getattr(envelope, "from_", None))
    date = (
        _as_utc(getattr(envelope, "date", None), naive_is_local=True)
        or _as_utc(body.date, naive_is_local=False)
        or datetime.now(timezone.utc)
    )

    return MailMessage(
        id=str(uid),
        subject=subject,
        sender=senders[0] if senders else UNKNOWN_SENDER,
        to=_addresses(getattr(envelope, "to", None)),
        date=date,
        body_html=render_html(body.html, body.text),
        body_text=body.text,
        folder=folder,
        unread=SEEN not in flags,
        uid=uid,
    )
