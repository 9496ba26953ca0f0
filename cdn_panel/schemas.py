from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiResponse(BaseModel):
    ok: bool
    message: str
    data: Optional[Any] = None


class CsrfTokenResponse(BaseModel):
    token: str


class FileEntryOut(BaseModel):
    name: str
    path: str
    is_dir: bool
    size: int
    modified: datetime
    mime_type: Optional[str] = None


class ListResponse(BaseModel):
    path: str
    files: list[FileEntryOut]


class FileMetadataOut(BaseModel):
    name: str
    path: str
    full_path: str
    size: int
    mime_type: str
    sha256: str
    created: datetime
    modified: datetime
    public_url: str


class RenameRequest(BaseModel):
    path: str
    new_name: str


class MoveRequest(BaseModel):
    path: str
    destination: str


class DeleteRequest(BaseModel):
    path: str
    confirm_filename: str = ''


class MkdirRequest(BaseModel):
    path: str = ''
    name: str


class ZipRequest(BaseModel):
    paths: list[str] = Field(default_factory=list)


class ContentResponse(BaseModel):
    message: str
    path: str
    sha256: str


class PathResponse(BaseModel):
    message: str
    path: str


class RelocateResponse(BaseModel):
    message: str
    old_path: str
    new_path: str


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    action: str
    file_path: str
    source_ip: Optional[str] = None


class LogsResponse(BaseModel):
    logs: list[ActivityOut]
    limit: int
    offset: int


class SettingsOut(BaseModel):
    base_directory: str
    max_upload_size: int
    blocked_extensions: list[str]
    public_hostname: str


class SettingsUpdateRequest(BaseModel):
    base_directory: Optional[str] = Field(default=None, min_length=1)
    max_upload_size: Optional[int] = Field(default=None, ge=1)
    blocked_extensions: Optional[list[str]] = None
    public_hostname: Optional[str] = Field(default=None, min_length=1, max_length=253)
