"""FastAPI dependencies resolving services and the authenticated account."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from ..errors import Unauthorized
from .services import Services

BEARER_PREFIX = "Bearer "
MISSING_HEADER = "Missing authorization header"


@dataclass(frozen=True)
class Principal:
    account_id: str
    token: str


def get_services(request: Request) -> Services:
    return request.app.state.services


def authenticate(services: Services, authorization: Optional[str]) -> Principal:
    """Resolve an ``Authorization`` header value to a :class:`Principal`.

    Raises:
      Unauthorized: ``Missing authorization header`` when the header is absent
        or not a bearer credential, ``Invalid token`` when verification fails.
    """

    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise Unauthorized(MISSING_HEADER)
    token = authorization[len(BEARER_PREFIX):]
    return Principal(account_id=services.auth.verify_token(token), token=token)


def current_principal(
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> Principal:
    return authenticate(services, authorization)
