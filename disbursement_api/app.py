"""
app.py -- FastAPI application factory.

Purpose:
- Load configuration and configure structured logging.
- Initialize the database engine (unless a session factory is injected).
- Register routers under /api and the exception -> envelope mapping.
- Define the /health endpoint.

Run with ``uvicorn disbursement_api.app:create_app --factory``.
This file should stay clean: no business logic here.
"""

from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from disbursement_api.dependencies import CredentialResolver, resolve_user_credential
from disbursement_api.errors import register_exception_handlers
from disbursement_api.routes import approvals, charities, milestones
from disbursement_config import DisbursementConfig, get_active_config
from disbursement_kernel import __version__
from disbursement_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from disbursement_kernel.domain.clock import Clock, SystemClock
from disbursement_kernel.logging_config import LogContext, configure_logging, get_logger

logger = get_logger("api.app")


def create_app(
    session_factory: sessionmaker[Session] | None = None,
    config: DisbursementConfig | None = None,
    credential_resolver: CredentialResolver | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    config = config or get_active_config()
    configure_logging(level=config.logging.level)

    if session_factory is None:
        db = config.database
        engine = init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
        )
        create_tables(engine)
        session_factory = get_session_factory()

    app = FastAPI(
        title=config.api.title,
        description="Multi-signature approval and milestone-gated disbursement of charity funds",
        version=__version__,
    )
    app.state.config = config
    app.state.session_factory = session_factory
    app.state.credential_resolver = credential_resolver or resolve_user_credential
    app.state.clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Middleware
    # -------------------------------------------------------------------------

    if config.api.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(config.api.cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next):
        correlation_id = request.headers.get("X-Request-ID") or str(uuid4())
        with LogContext.bind(correlation_id=correlation_id):
            response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response

    # -------------------------------------------------------------------------
    # Routers and error mapping
    # -------------------------------------------------------------------------

    register_exception_handlers(app)
    app.include_router(charities.router, prefix="/api")
    app.include_router(approvals.router, prefix="/api")
    app.include_router(milestones.router, prefix="/api")

    @app.get("/health")
    def health():
        return {"status": "ok", "message": "Disbursement API running"}

    logger.info(
        "app_created",
        extra={"config_id": config.config_id, "config_version": config.version},
    )
    return app
