from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import Settings
from .db import Base, make_engine, make_session_factory
from .deps import enforce_csrf
from .logging_setup import RequestLoggingMiddleware
from .routers import csrf, files, logs, settings as settings_router
from .security import apply_security_headers, new_csrf_token

logger = structlog.get_logger()


def _parse_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(',') if origin.strip()]


async def security_middleware(request: Request, call_next):
    path = request.url.path

    if request.method in {'POST', 'PUT', 'PATCH', 'DELETE'} and path.startswith('/api/'):
        try:
            enforce_csrf(request)
        except HTTPException as exc:
            return apply_security_headers(JSONResponse({'detail': exc.detail}, status_code=exc.status_code))

    response = await call_next(request)
    return apply_security_headers(response)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error('unhandled_exception', method=request.method, path=request.url.path, exc_info=exc)
    return JSONResponse({'detail': 'Internal server error. Please try again.'}, status_code=500)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    Path(settings.cdn_path).mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=app.state.engine)
    logger.info('startup', cdn_path=settings.cdn_path, public_hostname=settings.public_hostname)
    try:
        yield
    finally:
        app.state.engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = make_engine(settings.database_url)
    app.state.session_factory = make_session_factory(app.state.engine)
    app.state.csrf_token = new_csrf_token()

    app.middleware('http')(security_middleware)
    app.add_middleware(RequestLoggingMiddleware)

    origins = _parse_origins(settings.allowed_origins)
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
            allow_headers=['Accept', 'Authorization', 'Content-Type', 'X-CSRF-Token'],
            expose_headers=['Link', 'X-Request-ID'],
            max_age=300,
        )

    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get('/healthz')
    def healthz():
        return {'ok': True}

    app.include_router(csrf.router)
    app.include_router(files.router)
    app.include_router(files.metadata_router)
    app.include_router(logs.router)
    app.include_router(settings_router.router)

    if settings.static_dir:
        app.mount('/', StaticFiles(directory=settings.static_dir, html=True), name='static')

    return app
