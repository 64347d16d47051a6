"""FastAPI application exposing the form runtime to a hosting UI."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stepform import __version__
from stepform.core.config import Settings
from stepform.core.types import HealthStatus
from stepform.db.engine import DatabaseManager
from stepform.forms.loader import load_form_configs
from stepform.forms.schema import StepSchemaBuilder
from stepform.forms.session import FormSessionStore
from stepform.forms.transport import HttpSubmissionTransport, SubmissionTransport
from stepform.forms.visibility import VisibilityResolver
from stepform.repositories.postgres.sessions import PostgresFormSessionRepository
from stepform.repositories.protocols import FormSessionRepository
from stepform.web.form_router import router as form_router

_PROJECT_ROOT = Path(__file__).resolve().parents[3]


def _resolve_forms_dir(forms_dir: str) -> Path:
    path = Path(forms_dir)
    if path.is_absolute() or path.exists():
        return path
    return _PROJECT_ROOT / path


def create_app(
    settings: Settings | None = None,
    transport: SubmissionTransport | None = None,
    session_store: FormSessionRepository | PostgresFormSessionRepository | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Uses the factory pattern so tests can create isolated app instances
    with their own transport and session store.

    Args:
        settings: Application settings. Defaults to Settings().
        transport: Submission transport. Defaults to an HTTP transport
            posting to ``settings.submission.endpoint``.
        session_store: Session storage. Defaults to Postgres when
            ``settings.session.database_url`` is set, in-memory otherwise.

    Returns:
        A configured FastAPI instance.
    """
    if settings is None:
        settings = Settings()

    logging.getLogger("stepform").setLevel(settings.log_level.upper())

    database: DatabaseManager | None = None
    if session_store is None:
        if settings.session.database_url:
            database = DatabaseManager(settings.session.database_url, echo=settings.debug)
            session_store = PostgresFormSessionRepository(database)
        else:
            session_store = FormSessionStore(prefix=settings.session.storage_prefix)

    owns_transport = transport is None
    if transport is None:
        transport = HttpSubmissionTransport(settings.submission)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if database is not None:
            await database.create_all()
        yield
        if owns_transport and isinstance(transport, HttpSubmissionTransport):
            await transport.close()
        if database is not None:
            await database.close()

    app = FastAPI(
        title="stepform",
        description="Multi-step form runtime: schemas, visibility, conditions and sessions",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    visibility = VisibilityResolver(max_depth=settings.forms.max_dependency_depth)

    # Store on app state for access in route handlers
    app.state.settings = settings
    app.state.db_manager = database
    app.state.forms = load_form_configs(_resolve_forms_dir(settings.forms.forms_dir))
    app.state.session_store = session_store
    app.state.transport = transport
    app.state.visibility = visibility
    app.state.schema_builder = StepSchemaBuilder(visibility=visibility)

    app.include_router(form_router)

    @app.get("/health")
    async def health() -> HealthStatus:
        return HealthStatus(
            service="stepform",
            healthy=True,
            details={"forms": len(app.state.forms), "version": __version__},
        )

    return app
