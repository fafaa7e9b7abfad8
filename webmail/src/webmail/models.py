"""Normalised mailbox shapes shared by the mailbox layer and both API surfaces."""
from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MailMessage(BaseModel):
    """One message as presented to API clients.

    Built fresh from IMAP responses on every fetch and never cached. Field
    names serialise in camelCase (``bodyHtml``, ``from``) to match the wire
    format both API surfaces share.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    subject: str
    sender: str = Field(alias="from")
    to: List[str] = Field(default_factory=list)
    date: datetime
    body_html: str
    body_text: str = ""
    folder: str
    unread: bool
    uid: int


class MailFolder(BaseModel):
    """A selectable folder and its unseen message count."""

    name: str
    count: int = 0
