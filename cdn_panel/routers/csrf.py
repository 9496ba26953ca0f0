from __future__ import annotations

from fastapi import APIRouter, Request

from ..schemas import CsrfTokenResponse

router = APIRouter(prefix='/api', tags=['csrf'])


@router.get('/csrf-token', response_model=CsrfTokenResponse)
def get_csrf_token(request: Request):
    return CsrfTokenResponse(token=request.app.state.csrf_token)
