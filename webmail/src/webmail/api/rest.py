"""REST routes mounted under ``/api``.

What:
  Expose registration, login, credential management, folder listing, message
  browsing, flag changes and compose as plain HTTP/JSON endpoints.

Why:
  Simple clients and scripts talk to the service without an RPC client; the
  routes mirror the RPC procedures one to one.

How:
  Synchronous route functions run in FastAPI's worker pool and block only on
  their own account's IMAP or SMTP traffic. Authentication comes from
  :func:`~webmail.api.deps.current_principal`; domain errors raised here reach
  the application's :class:`~webmail.errors.WebmailError` handler, except on
  register and login, which report every failure as 400 and 401 respectively.
"""
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..errors import NotFound, WebmailError
from .deps import Principal, current_principal, get_services
from .schemas import (
    ComposeRequest,
    CredentialsUpdate,
    LoginRequest,
    RegisterRequest,
    credential_view,
    folders_view,
    message_view,
    messages_view,
    parse_uid,
)
from .services import Services

router = APIRouter()


@router.post("/auth/register", status_code=201)
def register(body: RegisterRequest, services: Services = Depends(get_services)) -> Any:
    try:
        result = services.auth.register(body.email, body.password, body.credentials())
    except WebmailError as exc:
        return JSONResponse(status_code=400, content={"error": exc.message})
    return result.as_dict()


@router.post("/auth/login")
def login(body: LoginRequest, services: Services = Depends(get_services)) -> Any:
    try:
        result = services.auth.login(body.email, body.password)
    except WebmailError as exc:
        return JSONResponse(status_code=401, content={"error": exc.message})
    return result.as_dict()


@router.post("/auth/logout")
def logout(
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> Dict[str, bool]:
    services.auth.logout(principal.token)
    return {"success": True}


@router.get("/user/profile")
def profile(principal: Principal = Depends(current_principal)) -> Dict[str, str]:
    return {"userId": principal.account_id}


@router.get("/user/credentials")
def get_credentials(
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return credential_view(services.auth.get_credentials(principal.account_id))


@router.put("/user/credentials")
def update_credentials(
    body: CredentialsUpdate,
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    record = services.auth.update_credentials(
        principal.account_id,
        imap_pass=body.imap_pass,
        smtp_pass=body.smtp_pass,
        from_email=body.from_email,
    )
    return credential_view(record)


@router.get("/folders")
def folders(
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return folders_view(services.handles.get(principal.account_id).list_folders())


@router.get("/messages")
def list_messages(
    folder: str = Query("INBOX"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    handle = services.handles.get(principal.account_id)
    return messages_view(handle.list_messages(folder, page, limit))


@router.get("/messages/{message_id}")
def get_message(
    message_id: str,
    folder: str = Query("INBOX"),
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    uid = parse_uid(message_id)
    message = services.handles.get(principal.account_id).get_message(uid, folder)
    if message is None:
        raise NotFound("Email not found")
    return message_view(message)


@router.put("/messages/{message_id}/read")
def mark_read(
    message_id: str,
    folder: str = Query("INBOX"),
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> Dict[str, bool]:
    uid = parse_uid(message_id)
    services.handles.get(principal.account_id).mark_read(uid, folder)
    return {"success": True}


@router.delete("/messages/{message_id}")
def delete_message(
    message_id: str,
    folder: str = Query("INBOX"),
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> Dict[str, bool]:
    uid = parse_uid(message_id)
    services.handles.get(principal.account_id).delete_message(uid, folder)
    return {"success": True}


@router.post("/compose")
def compose(
    body: ComposeRequest,
    principal: Principal = Depends(current_principal),
    services: Services = Depends(get_services),
) -> Any:
    outbound = body.outbound()
    result = services.handles.get(principal.account_id).send(outbound)
    if not result.success:
        return JSONResponse(status_code=500, content={"success": False, "error": result.error})
    return {"success": True, "message": "Email sent successfully", "messageId": result.message_id}
