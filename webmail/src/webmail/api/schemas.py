"""Request models and response views shared by the REST and RPC surfaces."""
from __future__ import annotations

import base64
import binascii
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from ..auth.service import CredentialInput, sanitize_credential
from ..errors import ValidationError
from ..models import MailFolder, MailMessage
from ..smtp.transport import Attachment, OutboundMessage
from ..storage import MailCredential

MAX_PAGE_SIZE = 100
_UID_PATTERN = re.compile(r"[0-9]+")


class ApiModel(BaseModel):
    """Base for request bodies: camelCase on the wire, unknown keys ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RegisterRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=6)
    imap_pass: Optional[str] = None
    smtp_pass: Optional[str] = None
    from_email: Optional[EmailStr] = None
    imap_host: Optional[str] = None
    imap_port: Optional[int] = Field(default=None, gt=0, lt=65536)
    imap_secure: Optional[bool] = None
    imap_user: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(default=None, gt=0, lt=65536)
    smtp_secure: Optional[bool] = None
    smtp_user: Optional[str] = None

    @field_validator("imap_pass", "smtp_pass", "from_email", mode="before")
    @classmethod
    def _blank_is_missing(cls, value: Any) -> Any:
        return value if value != "" else None

    def credentials(self) -> CredentialInput:
        return CredentialInput(
            imap_pass=self.imap_pass,
            smtp_pass=self.smtp_pass,
            from_email=self.from_email,
            imap_host=self.imap_host,
            imap_port=self.imap_port,
            imap_secure=self.imap_secure,
            imap_user=self.imap_user,
            smtp_host=self.smtp_host,
            smtp_port=self.smtp_port,
            smtp_secure=self.smtp_secure,
            smtp_user=self.smtp_user,
        )


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=1)


class CredentialsUpdate(ApiModel):
    """Credential update body.

    Server fields are accepted so existing clients can send the whole record,
    but only the two secrets and ``fromEmail`` are applied.
    """

    imap_pass: Optional[str] = None
    smtp_pass: Optional[str] = None
    from_email: Optional[EmailStr] = None
    imap_host: Optional[str] = None
    imap_port: Optional[int] = None
    imap_secure: Optional[bool] = None
    imap_user: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_secure: Optional[bool] = None
    smtp_user: Optional[str] = None

    @field_validator("imap_pass", "smtp_pass", "from_email", mode="before")
    @classmethod
    def _blank_is_missing(cls, value: Any) -> Any:
        return value if value != "" else None


class AttachmentIn(ApiModel):
    filename: str = Field(min_length=1)
    content: str
    content_type: Optional[str] = None

    def decode(self) -> Attachment:
        try:
            payload = base64.b64decode(self.content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError(f"Attachment {self.filename} is not valid base64") from exc
        return Attachment(filename=self.filename, content=payload, content_type=self.content_type)


class _OutgoingBase(ApiModel):
    to: List[EmailStr] = Field(min_length=1)
    cc: Optional[List[EmailStr]] = None
    bcc: Optional[List[EmailStr]] = None
    body_text: Optional[str] = None
    attachments: Optional[List[AttachmentIn]] = None

    def _outbound(self, subject: str, body_html: str) -> OutboundMessage:
        return OutboundMessage(
            to=list(self.to),
            subject=subject,
            body_html=body_html,
            body_text=self.body_text,
            cc=list(self.cc or []),
            bcc=list(self.bcc or []),
            attachments=[item.decode() for item in self.attachments or []],
        )


class ComposeRequest(_OutgoingBase):
    """REST compose body; ``body`` carries the HTML part."""

    subject: str = ""
    body: str = ""

    def outbound(self) -> OutboundMessage:
        return self._outbound(self.subject, self.body)


class SendEmailInput(_OutgoingBase):
    """RPC ``email.sendEmail`` input."""

    subject: str = Field(min_length=1)
    body_html: str = ""

    def outbound(self) -> OutboundMessage:
        return self._outbound(self.subject, self.body_html)


class MessagesQuery(ApiModel):
    """RPC ``email.getMessages`` input with page and limit clamped into range."""

    folder: str = "INBOX"
    page: int = 1
    limit: int = 20

    @field_validator("page")
    @classmethod
    def _clamp_page(cls, value: int) -> int:
        return max(1, value)

    @field_validator("limit")
    @classmethod
    def _clamp_limit(cls, value: int) -> int:
        return min(MAX_PAGE_SIZE, max(1, value))


class MessageRef(ApiModel):
    id: str
    folder: str = "INBOX"


def parse_uid(value: str) -> int:
    """Parse a message id; raises :class:`ValidationError` unless it is a decimal UID."""

    if not _UID_PATTERN.fullmatch(value or ""):
        raise ValidationError("Invalid email ID")
    return int(value)


def message_view(message: MailMessage) -> Dict[str, Any]:
    return message.model_dump(mode="json", by_alias=True)


def messages_view(messages: Iterable[MailMessage]) -> List[Dict[str, Any]]:
    return [message_view(message) for message in messages]


def folders_view(folders: Iterable[MailFolder]) -> List[Dict[str, Any]]:
    return [folder.model_dump(mode="json") for folder in folders]


def credential_view(record: MailCredential) -> Dict[str, Any]:
    return {to_camel(key): value for key, value in sanitize_credential(record).items()}


def describe_errors(errors: Iterable[Mapping[str, Any]]) -> str:
    """Render pydantic error entries as ``field: message`` pairs."""

    parts: List[str] = []
    for error in errors:
        location = ".".join(
            str(item) for item in error.get("loc", ()) if item not in ("body", "query", "path", "header")
        )
        message = str(error.get("msg", "Invalid input"))
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid input"
