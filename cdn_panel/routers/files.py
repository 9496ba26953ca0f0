from __future__ import annotations

import tempfile

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ..deps import get_file_ops, require_identity
from ..errors import FileOpError
from ..schemas import (
    ContentResponse,
    DeleteRequest,
    FileEntryOut,
    FileMetadataOut,
    ListResponse,
    MkdirRequest,
    MoveRequest,
    PathResponse,
    RelocateResponse,
    RenameRequest,
    ZipRequest,
)
from ..services.file_ops import FileOps, archive_filename
from ..services.path_guard import validate_path

router = APIRouter(prefix='/api/files', tags=['files'])
metadata_router = APIRouter(prefix='/api', tags=['metadata'])

_ARCHIVE_SPOOL_BYTES = 16 * 1024 * 1024
_ARCHIVE_CHUNK = 1024 * 1024


def _http_error(exc: FileOpError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


@router.get('', response_model=ListResponse)
def list_files(
    path: str = Query(default='/'),
    sort_by: str = Query(default='name', alias='sort'),
    order: str = Query(default='asc', alias='dir'),
    ops: FileOps = Depends(get_file_ops),
    _=Depends(require_identity),
):
    try:
        items = ops.list_dir(path, sort_by=sort_by, order=order)
    except FileOpError as exc:
        raise _http_error(exc)
    current = ops.guard.to_virtual(validate_path(path, ops.root))
    return ListResponse(path=current, files=[FileEntryOut(**vars(item)) for item in items])


@metadata_router.get('/metadata', response_model=FileMetadataOut)
def get_metadata(path: str = Query(..., min_length=1), ops: FileOps = Depends(get_file_ops), _=Depends(require_identity)):
    try:
        meta = ops.metadata(path)
    except FileOpError as exc:
        raise _http_error(exc)
    return FileMetadataOut(**vars(meta))


@router.post('/upload', status_code=201, response_model=ContentResponse)
def upload(
    file: UploadFile = File(...),
    directory: str = Form(default='/'),
    overwrite: bool = Form(default=False),
    ops: FileOps = Depends(get_file_ops),
    _=Depends(require_identity),
):
    try:
        path, digest = ops.upload(directory, file.filename or '', file.file, overwrite=overwrite)
    except FileOpError as exc:
        raise _http_error(exc)
    return ContentResponse(message='File uploaded successfully', path=path, sha256=digest)


@router.post('/replace', response_model=ContentResponse)
def replace(
    path: str = Form(..., min_length=1),
    file: UploadFile = File(...),
    ops: FileOps = Depends(get_file_ops),
    _=Depends(require_identity),
):
    try:
        virtual, digest = ops.replace(path, file.file)
    except FileOpError as exc:
        raise _http_error(exc)
    return ContentResponse(message='File replaced successfully', path=virtual, sha256=digest)


@router.post('/rename', response_model=RelocateResponse)
def rename(payload: RenameRequest, ops: FileOps = Depends(get_file_ops), _=Depends(require_identity)):
    try:
        old_path, new_path = ops.rename(payload.path, payload.new_name)
    except FileOpError as exc:
        raise _http_error(exc)
    return RelocateResponse(message='File renamed successfully', old_path=old_path, new_path=new_path)


@router.post('/move', response_model=RelocateResponse)
def move(payload: MoveRequest, ops: FileOps = Depends(get_file_ops), _=Depends(require_identity)):
    try:
        old_path, new_path = ops.move(payload.path, payload.destination)
    except FileOpError as exc:
        raise _http_error(exc)
    return RelocateResponse(message='File moved successfully', old_path=old_path, new_path=new_path)


@router.post('/delete', response_model=PathResponse)
def delete(payload: DeleteRequest, ops: FileOps = Depends(get_file_ops), _=Depends(require_identity)):
    try:
        path = ops.delete(payload.path, payload.confirm_filename)
    except FileOpError as exc:
        raise _http_error(exc)
    return PathResponse(message='File deleted successfully', path=path)


@router.post('/mkdir', status_code=201, response_model=PathResponse)
def mkdir(payload: MkdirRequest, ops: FileOps = Depends(get_file_ops), _=Depends(require_identity)):
    try:
        path = ops.mkdir(payload.path, payload.name)
    except FileOpError as exc:
        raise _http_error(exc)
    return PathResponse(message='Directory created successfully', path=path)


@router.post('/zip')
def download_zip(payload: ZipRequest, ops: FileOps = Depends(get_file_ops), _=Depends(require_identity)):
    if not payload.paths:
        raise HTTPException(status_code=400, detail='No paths provided')

    archive = tempfile.SpooledTemporaryFile(max_size=_ARCHIVE_SPOOL_BYTES)
    try:
        ops.write_archive(payload.paths, archive)
    except FileOpError as exc:
        archive.close()
        raise _http_error(exc)

    archive.seek(0)
    headers = {'Content-Disposition': f'attachment; filename="{archive_filename(payload.paths)}"'}
    return StreamingResponse(
        iter(lambda: archive.read(_ARCHIVE_CHUNK), b''),
        media_type='application/zip',
        headers=headers,
        background=BackgroundTask(archive.close),
    )
