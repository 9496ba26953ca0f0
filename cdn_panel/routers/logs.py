from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import require_identity
from ..schemas import ActivityOut, LogsResponse
from ..services.stores import ActivityLog

router = APIRouter(prefix='/api/logs', tags=['logs'])

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


@router.get('', response_model=LogsResponse)
def get_logs(
    limit: int = Query(default=DEFAULT_LIMIT),
    offset: int = Query(default=0),
    db: Session = Depends(get_db),
    _=Depends(require_identity),
):
    if limit < 1 or limit > MAX_LIMIT:
        limit = DEFAULT_LIMIT
    offset = max(offset, 0)

    records = ActivityLog(db).page(limit, offset)
    return LogsResponse(logs=[ActivityOut.model_validate(r) for r in records], limit=limit, offset=offset)
