"""RPC procedures mounted under ``/api/trpc``.

What:
  Serve the ``auth.*`` and ``email.*`` procedures used by the web client with
  tRPC wire conventions: queries via ``GET /api/trpc/<name>?input=<json>``,
  mutations via ``POST /api/trpc/<name>`` with a JSON body, results wrapped as
  ``{"result": {"data": ...}}`` and failures as
  ``{"error": {"message": ..., "code": ...}}``.

Why:
  The browser client was written against tRPC; keeping its envelope lets it
  talk to this service unchanged while the business rules stay shared with the
  REST routes.

How:
  Procedures register themselves in :data:`PROCEDURES` through the
  :func:`procedure` decorator, declaring their kind, whether they need a bearer
  token, and an optional pydantic input model. :func:`dispatch` authenticates,
  validates the input, calls the handler and converts any
  :class:`~webmail.errors.WebmailError` into the error envelope with the
  status from the error table.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..errors import NotFound, ValidationError, WebmailError
from ..utils.logging import get_logger
from .deps import Principal, authenticate, get_services
from .schemas import (
    CredentialsUpdate,
    LoginRequest,
    MessageRef,
    MessagesQuery,
    RegisterRequest,
    SendEmailInput,
    credential_view,
    describe_errors,
    folders_view,
    message_view,
    messages_view,
    parse_uid,
)
from .services import Services

LOGGER = get_logger("webmail.rpc")

QUERY = "query"
MUTATION = "mutation"


@dataclass
class RpcContext:
    services: Services
    principal: Optional[Principal] = None

    @property
    def account_id(self) -> str:
        assert self.principal is not None
        return self.principal.account_id


@dataclass(frozen=True)
class Procedure:
    name: str
    kind: str
    handler: Callable[[RpcContext, Any], Any]
    protected: bool = True
    input_model: Optional[Type[BaseModel]] = None


PROCEDURES: Dict[str, Procedure] = {}


def procedure(
    name: str,
    *,
    kind: str,
    protected: bool = True,
    input_model: Optional[Type[BaseModel]] = None,
) -> Callable[[Callable[[RpcContext, Any], Any]], Callable[[RpcContext, Any], Any]]:
    def decorator(handler: Callable[[RpcContext, Any], Any]) -> Callable[[RpcContext, Any], Any]:
        PROCEDURES[name] = Procedure(
            name=name, kind=kind, handler=handler, protected=protected, input_model=input_model
        )
        return handler

    return decorator


def error_envelope(message: str, code: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"message": message, "code": code}})


def dispatch(services: Services, name: str, kind: str, authorization: Optional[str], payload: Any) -> JSONResponse:
    """Run procedure ``name`` and wrap its result or error in the RPC envelope."""

    proc = PROCEDURES.get(name)
    if proc is None:
        return error_envelope(f'No "{kind}"-procedure on path "{name}"', NotFound.rpc_code, NotFound.status_code)
    if proc.kind != kind:
        return error_envelope(
            f'Unsupported {"GET" if kind == QUERY else "POST"}-request to {proc.kind} procedure at path "{name}"',
            "METHOD_NOT_SUPPORTED",
            405,
        )
    try:
        context = RpcContext(services=services)
        if proc.protected:
            context.principal = authenticate(services, authorization)
        data = None
        if proc.input_model is not None:
            try:
                data = proc.input_model.model_validate(payload if payload is not None else {})
            except PydanticValidationError as exc:
                raise ValidationError(describe_errors(exc.errors())) from exc
        result = proc.handler(context, data)
    except WebmailError as exc:
        LOGGER.warning("rpc_failed", procedure=name, code=exc.rpc_code, error=exc.message)
        return error_envelope(exc.message, exc.rpc_code, exc.status_code)
    return JSONResponse(content={"result": {"data": jsonable_encoder(result)}})


router = APIRouter()


@router.get("/{name}")
def rpc_query(
    name: str,
    request: Request,
    input: Optional[str] = Query(default=None),
    services: Services = Depends(get_services),
) -> JSONResponse:
    payload = None
    if input:
        try:
            payload = json.loads(input)
        except ValueError:
            error = ValidationError("Input is not valid JSON")
            return error_envelope(error.message, error.rpc_code, error.status_code)
    return dispatch(services, name, QUERY, request.headers.get("authorization"), payload)


@router.post("/{name}")
def rpc_mutation(
    name: str,
    request: Request,
    payload: Any = Body(default=None),
    services: Services = Depends(get_services),
) -> JSONResponse:
    return dispatch(services, name, MUTATION, request.headers.get("authorization"), payload)


@procedure("auth.register", kind=MUTATION, protected=False, input_model=RegisterRequest)
def _register(ctx: RpcContext, data: RegisterRequest) -> Dict[str, Any]:
    return ctx.services.auth.register(data.email, data.password, data.credentials()).as_dict()


@procedure("auth.login", kind=MUTATION, protected=False, input_model=LoginRequest)
def _login(ctx: RpcContext, data: LoginRequest) -> Dict[str, Any]:
    return ctx.services.auth.login(data.email, data.password).as_dict()


@procedure("auth.logout", kind=MUTATION)
def _logout(ctx: RpcContext, _data: None) -> Dict[str, bool]:
    assert ctx.principal is not None
    ctx.services.auth.logout(ctx.principal.token)
    return {"success": True}


@procedure("email.getProfile", kind=QUERY)
def _get_profile(ctx: RpcContext, _data: None) -> Dict[str, str]:
    return {"userId": ctx.account_id}


@procedure("email.getCredentials", kind=QUERY)
def _get_credentials(ctx: RpcContext, _data: None) -> Dict[str, Any]:
    return credential_view(ctx.services.auth.get_credentials(ctx.account_id))


@procedure("email.updateCredentials", kind=MUTATION, input_model=CredentialsUpdate)
def _update_credentials(ctx: RpcContext, data: CredentialsUpdate) -> Dict[str, Any]:
    record = ctx.services.auth.update_credentials(
        ctx.account_id,
        imap_pass=data.imap_pass,
        smtp_pass=data.smtp_pass,
        from_email=data.from_email,
    )
    return credential_view(record)


@procedure("email.getFolders", kind=QUERY)
def _get_folders(ctx: RpcContext, _data: None) -> Any:
    return folders_view(ctx.services.handles.get(ctx.account_id).list_folders())


@procedure("email.getMessages", kind=QUERY, input_model=MessagesQuery)
def _get_messages(ctx: RpcContext, data: MessagesQuery) -> Any:
    handle = ctx.services.handles.get(ctx.account_id)
    return messages_view(handle.list_messages(data.folder, data.page, data.limit))


@procedure("email.getMessage", kind=QUERY, input_model=MessageRef)
def _get_message(ctx: RpcContext, data: MessageRef) -> Any:
    uid = parse_uid(data.id)
    message = ctx.services.handles.get(ctx.account_id).get_message(uid, data.folder)
    if message is None:
        raise NotFound("Email not found")
    return message_view(message)


@procedure("email.sendEmail", kind=MUTATION, input_model=SendEmailInput)
def _send_email(ctx: RpcContext, data: SendEmailInput) -> Dict[str, Any]:
    outbound = data.outbound()
    result = ctx.services.handles.get(ctx.account_id).send(outbound)
    if result.success:
        return {"success": True, "messageId": result.message_id}
    return {"success": False, "error": result.error}


@procedure("email.markAsRead", kind=MUTATION, input_model=MessageRef)
def _mark_as_read(ctx: RpcContext, data: MessageRef) -> Dict[str, bool]:
    uid = parse_uid(data.id)
    ctx.services.handles.get(ctx.account_id).mark_read(uid, data.folder)
    return {"success": True}


@procedure("email.deleteEmail", kind=MUTATION, input_model=MessageRef)
def _delete_email(ctx: RpcContext, data: MessageRef) -> Dict[str, bool]:
    uid = parse_uid(data.id)
    ctx.services.handles.get(ctx.account_id).delete_message(uid, data.folder)
    return {"success": True}
