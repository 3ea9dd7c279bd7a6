from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth_store import AuthStore
from .config import AppConfig, configure_logging, get_config
from .errors import (
    AuthError,
    CapacityReachedError,
    NotFoundError,
    ProfileNotFoundError,
    SupabaseError,
)
from .identity import SupabaseAuth
from .routes import activities as activity_routes
from .routes import auth as auth_routes
from .routes import enrollments as enrollment_routes
from .routes import profile as profile_routes
from .routes import reviews as review_routes
from .storage import FileStorage
from .supabase import SupabaseClient

logger = logging.getLogger(__name__)


def build_auth_store(config: AppConfig, redirects: Optional[List[str]] = None) -> AuthStore:
    """Composition root: one provider client, one REST client, one store."""

    storage = FileStorage(config.resolved_state_dir)
    base_url = config.supabase_url.rstrip("/")
    auth = SupabaseAuth(base_url, config.supabase_anon_key, storage=storage)
    supabase = SupabaseClient(
        base_url=base_url,
        anon_key=config.supabase_anon_key,
        token_source=lambda: auth.access_token,
    )

    def redirect(path: str) -> None:
        logger.info("redirecting to login", extra={"path": path})
        if redirects is not None:
            redirects.append(path)

    return AuthStore(
        auth,
        supabase,
        storage=storage,
        placeholder=config.is_placeholder,
        login_path=config.login_path,
        email_redirect_to=config.site_url,
        redirect=redirect,
    )


def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[AuthStore] = None,
    redirects: Optional[List[str]] = None,
) -> FastAPI:
    config = config or get_config()
    configure_logging(config.log_level)
    redirects = redirects if redirects is not None else []

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        auth_store = store or build_auth_store(config, redirects)
        app.state.auth_store = auth_store
        await auth_store.start()
        try:
            yield
        finally:
            await auth_store.close()

    app = FastAPI(
        title="KidHub API",
        version="0.1.0",
        description="Children's activity marketplace over Supabase",
        lifespan=lifespan,
    )
    app.state.redirects = redirects

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    app.include_router(auth_routes.router)
    app.include_router(activity_routes.router)
    app.include_router(enrollment_routes.router)
    app.include_router(review_routes.router)
    app.include_router(profile_routes.router)

    @app.exception_handler(AuthError)
    async def auth_error_handler(_: Request, exc: AuthError) -> JSONResponse:
        status = 401 if exc.status == 401 else 400
        return JSONResponse(status_code=status, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(SupabaseError)
    async def supabase_error_handler(_: Request, exc: SupabaseError) -> JSONResponse:
        logger.error(
            "supabase request failed",
            extra={"action": exc.action, "status": exc.status_code},
        )
        status = exc.status_code if exc.status_code >= 400 else 500
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @app.exception_handler(CapacityReachedError)
    async def capacity_handler(_: Request, exc: CapacityReachedError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ProfileNotFoundError)
    async def profile_not_found_handler(_: Request, exc: ProfileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "demo": config.is_placeholder}

    return app


app = create_app()
