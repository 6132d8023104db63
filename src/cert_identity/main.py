"""
Application entry point — wires dependencies and starts the web service.

Composition root: creates concrete adapters, injects them into the resolver,
the expiry filter and the warning controller.

This is the ONLY place where concrete adapter classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Configure structlog for structured logging
  2. Load and validate configuration from environment
  3. Create concrete adapters (LDAP directory, certificate parser, state store)
  4. Wire the core components
  5. Serve the ASGI app with uvicorn
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import timedelta

import structlog

from cert_identity.adapters.certificate_parser import X509CertificateParser
from cert_identity.adapters.ldap_directory import Ldap3DirectoryClient
from cert_identity.adapters.state_store import InMemoryStateStore, PsycopgStateStore
from cert_identity.config import AppSettings
from cert_identity.expiry_filter import WARNING_PATH, ExpiryWarningFilter
from cert_identity.expiry_warning import ExpiryWarningController
from cert_identity.matcher import DirectoryMatcher
from cert_identity.pipeline import LoginResumer
from cert_identity.resolver import CertificateResolver


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured logging.

    Colored, human-readable console output with ISO timestamps; events below
    `log_level` are dropped by the filtering bound logger.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


type _StateStore = InMemoryStateStore | PsycopgStateStore


@dataclass(frozen=True, slots=True)
class Components:
    """Everything the web layer needs, fully wired."""

    resolver: CertificateResolver
    expiry_filter: ExpiryWarningFilter | None
    warning_controller: ExpiryWarningController
    resumer: LoginResumer
    state_store: _StateStore
    client_cert_header: str


def _create_state_store(settings: AppSettings) -> _StateStore:
    ttl = timedelta(minutes=settings.state.ttl_minutes)
    if settings.state.uses_database:
        return PsycopgStateStore(dsn=settings.state.get_dsn(), ttl=ttl)
    return InMemoryStateStore(ttl=ttl)


def build_components(settings: AppSettings) -> Components:
    """Instantiate all concrete adapters and wire the core from application settings."""
    directory = settings.directory()
    client = Ldap3DirectoryClient(
        urls=directory.urls,
        bind_dn=directory.bind_dn,
        bind_password=(
            None if directory.bind_password is None else directory.bind_password.get_secret_value()
        ),
        start_tls=directory.start_tls,
        timeout=directory.timeout_seconds,
    )
    parser = X509CertificateParser()
    resolver = CertificateResolver(
        parser=parser,
        matcher=DirectoryMatcher(client, directory.search_bases),
        attribute_mapping=settings.x509.mappings(),
        stored_certificate_attributes=settings.x509.stored_certificate_attributes,
        identity_attributes=directory.attributes,
        certificate_match=settings.x509.certificate_match,
    )
    state_store = _create_state_store(settings)
    expiry_filter = (
        ExpiryWarningFilter(
            parser=parser,
            state_store=state_store,
            warning_url=WARNING_PATH,
            warn_days_before=settings.expiry.warn_days_before,
            renew_url=settings.expiry.renew_url,
        )
        if settings.expiry.enabled
        else None
    )
    return Components(
        resolver=resolver,
        expiry_filter=expiry_filter,
        warning_controller=ExpiryWarningController(state_store),
        resumer=LoginResumer(),
        state_store=state_store,
        client_cert_header=settings.x509.client_cert_header,
    )


def main() -> None:
    """Validate configuration, then serve the ASGI application."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()
    log.info(
        "app.starting",
        backend=settings.x509.backend,
        cross_check=bool(settings.x509.stored_certificate_attributes),
        expiry_warning=settings.expiry.enabled,
        state_store="postgresql" if settings.state.uses_database else "memory",
    )

    import uvicorn

    uvicorn.run("cert_identity.asgi:app", host="0.0.0.0", port=8000, log_level="info")


if __name__ == "__main__":
    main()
