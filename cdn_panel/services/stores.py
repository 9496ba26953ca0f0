from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from ..config import Settings
from ..models import ActivityRecord, FileHash, Setting
from .upload_validator import parse_blocked_extensions

SETTING_KEYS = ('base_directory', 'max_upload_size', 'blocked_extensions', 'public_hostname')


class SettingsStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> str | None:
        row = self.db.get(Setting, key)
        return row.value if row else None

    def get_all(self) -> dict[str, str]:
        return {row.key: row.value for row in self.db.scalars(select(Setting))}

    def set_many(self, values: dict[str, str]) -> None:
        for key, value in values.items():
            self.db.merge(Setting(key=key, value=value))
        self.db.commit()


class HashCache:
    def __init__(self, db: Session):
        self.db = db

    def get(self, path: str) -> str | None:
        row = self.db.get(FileHash, path)
        return row.sha256 if row else None

    def put(self, path: str, sha256: str) -> None:
        self.db.merge(FileHash(path=path, sha256=sha256))
        self.db.commit()

    def delete(self, path: str, recursive: bool = False) -> None:
        condition = FileHash.path == path
        if recursive:
            prefix = path.rstrip('/') + '/'
            condition = or_(condition, FileHash.path.startswith(prefix, autoescape=True))
        self.db.execute(delete(FileHash).where(condition))
        self.db.commit()


class ActivityLog:
    def __init__(self, db: Session):
        self.db = db

    def append(self, action: str, path: str, source: str | None) -> None:
        self.db.add(ActivityRecord(action=action, file_path=path, source_ip=source))
        self.db.commit()

    def page(self, limit: int, offset: int) -> list[ActivityRecord]:
        query = (
            select(ActivityRecord)
            .order_by(ActivityRecord.timestamp.desc(), ActivityRecord.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.scalars(query))


@dataclass(frozen=True)
class RuntimeSettings:
    base_directory: str
    max_upload_size: int
    blocked_extensions: list[str]
    public_hostname: str


def load_runtime_settings(store: SettingsStore, defaults: Settings) -> RuntimeSettings:
    stored = store.get_all()

    try:
        max_size = int(stored.get('max_upload_size') or 0)
    except ValueError:
        max_size = 0

    blocked_raw = stored.get('blocked_extensions') or defaults.blocked_extensions
    return RuntimeSettings(
        base_directory=stored.get('base_directory') or defaults.cdn_path,
        max_upload_size=max_size if max_size > 0 else defaults.max_upload_size,
        blocked_extensions=parse_blocked_extensions(blocked_raw),
        public_hostname=stored.get('public_hostname') or defaults.public_hostname,
    )
