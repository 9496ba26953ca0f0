from __future__ import annotations

import os

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_runtime_settings, require_identity
from ..schemas import ApiResponse, SettingsOut, SettingsUpdateRequest
from ..services.stores import RuntimeSettings, SettingsStore
from ..services.upload_validator import parse_blocked_extensions

router = APIRouter(prefix='/api/settings', tags=['settings'])
logger = structlog.get_logger()


@router.get('', response_model=SettingsOut)
def get_settings(runtime: RuntimeSettings = Depends(get_runtime_settings), _=Depends(require_identity)):
    return SettingsOut(
        base_directory=runtime.base_directory,
        max_upload_size=runtime.max_upload_size,
        blocked_extensions=runtime.blocked_extensions,
        public_hostname=runtime.public_hostname,
    )


@router.put('', response_model=ApiResponse)
def update_settings(payload: SettingsUpdateRequest, db: Session = Depends(get_db), _=Depends(require_identity)):
    updates: dict[str, str] = {}

    if payload.base_directory is not None:
        if not os.path.isabs(payload.base_directory):
            raise HTTPException(status_code=400, detail='base_directory must be an absolute path')
        updates['base_directory'] = payload.base_directory
    if payload.max_upload_size is not None:
        updates['max_upload_size'] = str(payload.max_upload_size)
    if payload.blocked_extensions is not None:
        updates['blocked_extensions'] = ','.join(parse_blocked_extensions(','.join(payload.blocked_extensions)))
    if payload.public_hostname is not None:
        updates['public_hostname'] = payload.public_hostname.strip()

    if updates:
        SettingsStore(db).set_many(updates)
        logger.info('settings_updated', keys=sorted(updates))
    return ApiResponse(ok=True, message='Settings updated successfully')
