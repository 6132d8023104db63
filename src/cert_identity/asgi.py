"""
FastAPI + Uvicorn ASGI application.

Serves certificate login and the expiry-warning interrupt over HTTP. TLS is
terminated in front of this service (nginx, an ingress); the terminator
verifies the client certificate and forwards it URL-escaped in a header
(nginx: `proxy_set_header X-SSL-Client-Cert $ssl_client_escaped_cert;`).

Routes:
  GET /login            resolve the certificate, maybe suspend for the expiry warning
  GET /expirywarning    show the warning, or resume the login when `proceed` is present
  GET /health           liveness
  GET /info             metadata

Endpoints are plain `def`: the core is blocking (LDAP, PostgreSQL), so FastAPI
runs each request in its threadpool.

Entry point for production: uvicorn cert_identity.asgi:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import unquote

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from railway.failure import FailureDescription
from railway.http_support import ErrorResponse, HttpStatusMapper

from cert_identity import __version__
from cert_identity.adapters.state_store import PsycopgStateStore
from cert_identity.config import AppSettings
from cert_identity.domain.models import Identity, Render, Resume
from cert_identity.expiry_filter import WARNING_PATH, with_state_id
from cert_identity.main import Components, build_components, configure_structlog
from cert_identity.pipeline import Authenticated, run_login
from cert_identity.scheduler import create_purge_scheduler

# ─────────────────────── Global State ───────────────────────
# Set during app startup; tests assign _components directly.

_components: Components | None = None
_scheduler: BackgroundScheduler | None = None
_error_message: str | None = None
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: load settings, wire components, prepare the state store, start the purge scheduler.
    Shutdown: stop the scheduler.
    """
    global _components, _scheduler, _error_message

    try:
        settings = AppSettings()
    except Exception as e:
        _error_message = f"Configuration error: {e}"
        log.error("asgi.startup_error", error=_error_message)
        raise

    configure_structlog(settings.log_level)
    components = build_components(settings)

    if isinstance(components.state_store, PsycopgStateStore) and settings.state.create_schema:
        created = components.state_store.ensure_schema()
        if created.is_failure():
            _error_message = str(created.error())
            log.error("asgi.schema_error", failure=_error_message)

    _components = components
    _scheduler = create_purge_scheduler(
        components.state_store.purge_expired,
        cron=settings.state.purge_cron,
    )
    _scheduler.start()
    log.info("asgi.startup_complete", version=__version__)

    yield

    log.info("asgi.shutdown")
    _scheduler.shutdown(wait=False)
    _scheduler = None


app = FastAPI(
    title="cert-identity",
    description="X.509 client certificate login against an LDAP directory",
    version=__version__,
    lifespan=lifespan,
)


# ─────────────────────── Helpers ───────────────────────


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"status": "unavailable", "reason": "Service not initialized"},
    )


def _failure_response(failure: FailureDescription) -> JSONResponse:
    status = HttpStatusMapper.map_failure(failure)
    if HttpStatusMapper.is_client_error(failure):
        log.info("http.request_rejected", failure=str(failure), status=status)
    else:
        log.error("http.request_failed", failure=str(failure), status=status)
    return JSONResponse(status_code=status, content=ErrorResponse.from_failure(failure).to_dict())


def _authenticated_response(identity: Identity) -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content={"status": "authenticated", "dn": identity.dn, "attributes": identity.attributes},
    )


def _client_certificate(request: Request, header: str) -> bytes | None:
    """The forwarded client certificate, or None when the header is absent or empty."""
    value = request.headers.get(header, "").strip()
    if not value:
        return None
    return unquote(value).encode("utf-8")


# ─────────────────────── Routes ───────────────────────


@app.get("/login")
def login(request: Request, passive: bool = False) -> Response:
    """
    Log in with the forwarded client certificate.

    Returns 200 with the identity, 303 to the expiry warning when the login
    is suspended, or an error body whose `reason` names the resolution failure.
    """
    if _components is None:
        return _unavailable()

    certificate = _client_certificate(request, _components.client_cert_header)
    result = run_login(
        certificate,
        _components.resolver,
        _components.expiry_filter,
        passive=passive,
    )
    if result.is_failure():
        return _failure_response(result.error())

    match result.value():
        case Authenticated(identity):
            log.info("login.authenticated", dn=identity.dn)
            return _authenticated_response(identity)
        case suspended:
            return RedirectResponse(url=suspended.target, status_code=303)


@app.get(WARNING_PATH)
def expiry_warning(
    request: Request,
    state_id: str | None = Query(default=None, alias="StateId"),
) -> Response:
    """
    Warning page for a suspended login.

    Any `proceed` parameter (even empty) resumes the login; otherwise the
    warning data is returned together with the URL that acknowledges it.
    """
    if _components is None:
        return _unavailable()

    acknowledged = "proceed" in request.query_params
    decision = _components.warning_controller.handle(state_id, acknowledged)
    if decision.is_failure():
        return _failure_response(decision.error())

    match decision.value():
        case Resume(working_state):
            resumed = _components.resumer.resume(working_state)
            if resumed.is_failure():
                return _failure_response(resumed.error())
            return _authenticated_response(resumed.value())
        case Render(days_left, renew_url, token):
            return JSONResponse(
                status_code=200,
                content={
                    "status": "warning",
                    "days_left": days_left,
                    "renew_url": renew_url,
                    "state_id": token,
                    "proceed_url": with_state_id(request.url.path, token) + "&proceed=",
                },
            )


@app.get("/health")
def health() -> JSONResponse:
    """Liveness: 200 once components are wired and startup reported no error."""
    if _error_message:
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": _error_message})
    if _components is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return JSONResponse(status_code=200, content={"status": "healthy"})


@app.get("/info")
def info() -> dict[str, Any]:
    """Application metadata for debugging and monitoring."""
    return {
        "name": "cert-identity",
        "version": __version__,
        "initialized": _components is not None,
        "expiry_warning": _components is not None and _components.expiry_filter is not None,
        "cross_check": _components is not None and _components.resolver.cross_check_enabled,
        "purge_scheduler_running": _scheduler is not None and _scheduler.running,
        "has_error": _error_message is not None,
    }
