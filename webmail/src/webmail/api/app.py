"""FastAPI application factory.

What:
  Assemble the REST and RPC routers, CORS, error handlers and the background
  maintenance loop into one ASGI application.

Why:
  Tests build an app around in-memory services while ``webmail serve`` builds
  one from the runtime configuration; a factory keeps both paths identical.

How:
  :func:`create_app` stores the :class:`~webmail.api.services.Services`
  container on ``app.state``. The lifespan runs one maintenance sweep at
  startup, then an asyncio task repeats it every ``maintenance.interval_s``
  seconds in a worker thread until shutdown, when every mail handle is closed.

Interfaces:
  :func:`create_app`.

Invariants & Safety:
  - REST failures are rendered as ``{"error": message}``; failures under
    ``/api/trpc`` use the RPC error envelope.
  - A failing sweep is logged and retried on the next tick.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config.loader import get_runtime_config
from ..config.schema import RuntimeConfig
from ..errors import ValidationError, WebmailError
from ..utils.logging import get_logger
from . import rest, rpc
from .schemas import describe_errors
from .services import Services, build_services, run_maintenance

LOGGER = get_logger("webmail.api")

API_PREFIX = "/api"
RPC_PREFIX = "/api/trpc"


async def _maintenance_loop(services: Services, interval_s: float, stop: asyncio.Event) -> None:
    while not stop.is_set():
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_s)
        except asyncio.TimeoutError:
            pass
        else:
            return
        try:
            await asyncio.to_thread(run_maintenance, services)
        except Exception as exc:  # keep the loop alive across transient database errors
            LOGGER.error("maintenance_failed", error=str(exc))


def _is_rpc(request: Request) -> bool:
    return request.url.path.startswith(RPC_PREFIX)


def _error_response(request: Request, error: WebmailError) -> JSONResponse:
    if _is_rpc(request):
        return rpc.error_envelope(error.message, error.rpc_code, error.status_code)
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


def create_app(config: Optional[RuntimeConfig] = None, services: Optional[Services] = None) -> FastAPI:
    """Build the webmail ASGI application.

    Args:
      config: Runtime configuration; defaults to :func:`get_runtime_config`.
      services: Pre-built services, mainly for tests; built from ``config``
        when omitted.
    """

    if services is None:
        services = build_services(config or get_runtime_config())
    runtime = services.config

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        LOGGER.info("starting", database=services.database.engine.url.render_as_string(hide_password=True))
        await asyncio.to_thread(run_maintenance, services)
        stop = asyncio.Event()
        task = asyncio.create_task(_maintenance_loop(services, runtime.maintenance.interval_s, stop))
        try:
            yield
        finally:
            stop.set()
            await task
            services.handles.close_all()
            LOGGER.info("stopped")

    app = FastAPI(title="webmail", version="1.0.0", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WebmailError)
    async def _handle_webmail_error(request: Request, exc: WebmailError) -> JSONResponse:
        if exc.status_code >= 500:
            LOGGER.error("request_failed", path=request.url.path, error=exc.message)
        return _error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(request, ValidationError(describe_errors(exc.errors())))

    app.include_router(rest.router, prefix=API_PREFIX)
    app.include_router(rpc.router, prefix=RPC_PREFIX)
    return app
