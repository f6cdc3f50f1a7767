from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cinerecap.api.rate_limit import RateLimitMiddleware
from cinerecap.api.routes import router
from cinerecap.api.session import create_session_store
from cinerecap.core.authz import load_authorized_users
from cinerecap.core.config import Settings, configure_logging
from cinerecap.core.view import ViewRegistry

logger = logging.getLogger(__name__)


def _parse_csv_env(name: str) -> list[str]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return []

    # Support both comma-separated values and newline-separated values (common in PaaS).
    parts = [p.strip() for p in raw.replace("\n", ",").split(",")]
    return [p for p in parts if p]


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="CineRecap AI", version="0.1.0")

    # Attach shared components.
    app.state.settings = settings
    app.state.session_store = create_session_store(settings)
    app.state.authorized_users = load_authorized_users(settings.users_file)
    app.state.views = ViewRegistry(max_views=settings.max_sessions)

    if not settings.api_key:
        logger.warning("No API key configured; recap requests will fail")

    # CORS is opt-in, e.g.
    #   CINERECAP_CORS_ORIGINS=https://your.site,https://admin.your.site
    cors_origins = _parse_csv_env("CINERECAP_CORS_ORIGINS")
    if cors_origins:
        # The session cookie needs credentials, which a wildcard origin cannot carry.
        allow_all = "*" in cors_origins
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if allow_all else cors_origins,
            allow_credentials=not allow_all,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    app.add_middleware(RateLimitMiddleware)

    # Ensure unexpected errors don't leak internals.
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(_request, exc: Exception):
        logger.exception("Unhandled error", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.include_router(router)
    return app


app = create_app()
