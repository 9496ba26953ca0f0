from __future__ import annotations

from secrets import compare_digest

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from .config import Settings
from .db import get_db
from .services.content_hash import ContentAddresser
from .services.file_ops import FileOps
from .services.stores import ActivityLog, HashCache, RuntimeSettings, SettingsStore, load_runtime_settings

IDENTITY_HEADER = 'Cf-Access-Authenticated-User-Email'


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def client_ip(request: Request) -> str:
    cf = request.headers.get('cf-connecting-ip', '').strip()
    if cf:
        return cf
    xff = request.headers.get('x-forwarded-for', '')
    if xff:
        return xff.split(',')[0].strip()
    return request.client.host if request.client else 'unknown'


def require_identity(request: Request, settings: Settings = Depends(get_settings)) -> str:
    if settings.dev_mode:
        return 'dev'
    identity = request.headers.get(IDENTITY_HEADER, '').strip()
    if not identity:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Unauthorized: edge authentication required',
        )
    return identity


def enforce_csrf(request: Request):
    if request.method in {'GET', 'HEAD', 'OPTIONS'}:
        return

    expected = request.app.state.csrf_token
    header = request.headers.get('X-CSRF-Token', '')
    if not header or not compare_digest(header.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Invalid or missing CSRF token')


def get_runtime_settings(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)) -> RuntimeSettings:
    return load_runtime_settings(SettingsStore(db), settings)


def get_file_ops(
    request: Request,
    db: Session = Depends(get_db),
    runtime: RuntimeSettings = Depends(get_runtime_settings),
) -> FileOps:
    return FileOps(runtime, ContentAddresser(HashCache(db)), ActivityLog(db), source=client_ip(request))
