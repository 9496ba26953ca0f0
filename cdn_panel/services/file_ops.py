from __future__ import annotations

import errno
import os
import posixpath
import shutil
import stat
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO, Literal, Optional

import structlog

from ..errors import (
    Conflict,
    ConfirmationMismatch,
    InternalIO,
    IsADirectory,
    OutsideRoot,
    SymlinkNotAllowed,
)
from . import upload_validator
from .content_hash import ContentAddresser
from .path_guard import PathGuard
from .stores import ActivityLog, RuntimeSettings

logger = structlog.get_logger()

_O_NOFOLLOW = getattr(os, 'O_NOFOLLOW', 0)

DISPLAY_MIME_TYPES = {
    'html': 'text/html',
    'css': 'text/css',
    'js': 'application/javascript',
    'json': 'application/json',
    'png': 'image/png',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'gif': 'image/gif',
    'svg': 'image/svg+xml',
    'pdf': 'application/pdf',
    'zip': 'application/zip',
    'txt': 'text/plain',
    'md': 'text/markdown',
}


def display_mime(name: str) -> str:
    return DISPLAY_MIME_TYPES.get(upload_validator.extension_of(name), upload_validator.OCTET_STREAM)


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass(frozen=True)
class FileEntry:
    name: str
    path: str
    is_dir: bool
    size: int
    modified: datetime
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class FileMetadata:
    name: str
    path: str
    full_path: str
    size: int
    mime_type: str
    sha256: str
    created: datetime
    modified: datetime
    public_url: str


@dataclass(frozen=True)
class ArchiveEntry:
    arcname: str
    status: Literal['added', 'skipped']
    reason: Optional[str] = None


def sort_entries(items: list[FileEntry], sort_by: str = 'name', descending: bool = False) -> None:
    key_map = {
        'name': lambda i: i.name.lower(),
        'size': lambda i: i.size,
        'modified': lambda i: i.modified,
    }
    items.sort(key=key_map.get(sort_by, key_map['name']), reverse=descending)
    # stable: directories first whatever the direction
    items.sort(key=lambda i: not i.is_dir)


def archive_filename(paths: list[str]) -> str:
    if len(paths) == 1:
        base = posixpath.basename(paths[0].rstrip('/')).replace('"', '')
        if base:
            return f'{base}.zip'
    return 'download.zip'


class FileOps:
    """Filesystem operations confined to one base directory.

    Every operation validates all of its inputs before touching the disk and
    performs at most one mutation. Cache updates and the activity record
    follow a successful mutation only.
    """

    def __init__(
        self,
        runtime: RuntimeSettings,
        hashes: ContentAddresser,
        activity: ActivityLog,
        source: str | None = None,
    ):
        self.runtime = runtime
        self.guard = PathGuard(runtime.base_directory)
        self.hashes = hashes
        self.activity = activity
        self.source = source

    @property
    def root(self) -> str:
        return self.guard.root

    def list_dir(self, rel: str, sort_by: str = 'name', order: str = 'asc') -> list[FileEntry]:
        target = self.guard.resolve_dir(rel)
        virtual_dir = self.guard.to_virtual(target)

        items: list[FileEntry] = []
        try:
            with os.scandir(target) as it:
                for entry in it:
                    if entry.is_symlink():
                        continue
                    try:
                        st = entry.stat(follow_symlinks=False)
                    except OSError:
                        continue
                    is_dir = stat.S_ISDIR(st.st_mode)
                    items.append(
                        FileEntry(
                            name=entry.name,
                            path=posixpath.join(virtual_dir, entry.name),
                            is_dir=is_dir,
                            size=st.st_size,
                            modified=_timestamp(st.st_mtime),
                            mime_type=None if is_dir else display_mime(entry.name),
                        )
                    )
        except OSError:
            raise self._failure('list', virtual_dir)

        sort_entries(items, sort_by, order == 'desc')
        return items

    def metadata(self, rel: str) -> FileMetadata:
        full = self.guard.resolve(rel)
        virtual = self.guard.to_virtual(full)
        try:
            st = os.lstat(full)
            if stat.S_ISDIR(st.st_mode):
                raise IsADirectory()
            digest = self.hashes.hash_of(virtual, full)
        except OSError:
            raise self._failure('hash', virtual)

        host = self.runtime.public_hostname
        return FileMetadata(
            name=os.path.basename(full),
            path=virtual,
            full_path=full,
            size=st.st_size,
            mime_type=display_mime(os.path.basename(full)),
            sha256=digest,
            created=_timestamp(getattr(st, 'st_birthtime', st.st_mtime)),
            modified=_timestamp(st.st_mtime),
            public_url=f'https://{host}/{virtual.lstrip("/")}',
        )

    def upload(self, directory: str, filename: str, stream: BinaryIO, overwrite: bool = False) -> tuple[str, str]:
        name = upload_validator.normalize_name(filename)
        upload_validator.check_extension(name, self.runtime.blocked_extensions)
        dest = self.guard.resolve_parent(posixpath.join(directory or '/', name))
        content = upload_validator.read_capped(stream, self.runtime.max_upload_size)
        upload_validator.check_content(name, content)

        self._write(dest, content, exclusive=not overwrite)

        virtual = self.guard.to_virtual(dest)
        digest = self.hashes.record(virtual, content)
        self.activity.append('upload', virtual, self.source)
        logger.info('file_uploaded', path=virtual, size=len(content), overwrite=overwrite)
        return virtual, digest

    def replace(self, rel: str, stream: BinaryIO) -> tuple[str, str]:
        full = self.guard.resolve(rel)
        if os.path.isdir(full):
            raise IsADirectory('cannot replace a directory')

        name = os.path.basename(full)
        upload_validator.check_extension(name, self.runtime.blocked_extensions)
        content = upload_validator.read_capped(stream, self.runtime.max_upload_size)
        upload_validator.check_content(name, content)

        self._write(full, content, exclusive=False)

        virtual = self.guard.to_virtual(full)
        digest = self.hashes.record(virtual, content)
        self.activity.append('replace', virtual, self.source)
        logger.info('file_replaced', path=virtual, size=len(content))
        return virtual, digest

    def rename(self, rel: str, new_name: str) -> tuple[str, str]:
        src = self._resolve_mutable(rel)
        name = upload_validator.normalize_name(new_name)
        upload_validator.check_extension(name, self.runtime.blocked_extensions)

        dst = self.guard.child(os.path.dirname(src), name)
        if os.path.lexists(dst):
            raise Conflict()
        return self._relocate('rename', src, dst)

    def move(self, rel: str, destination: str) -> tuple[str, str]:
        src = self._resolve_mutable(rel)
        dst_dir = self.guard.resolve_dir(destination)
        if dst_dir == src or dst_dir.startswith(src + os.sep):
            raise Conflict('cannot move a directory into itself')

        dst = self.guard.child(dst_dir, os.path.basename(src))
        if os.path.lexists(dst):
            raise Conflict('file already exists at destination')
        return self._relocate('move', src, dst)

    def delete(self, rel: str, confirm_filename: str) -> str:
        target = self._resolve_mutable(rel)
        if confirm_filename != os.path.basename(target):
            raise ConfirmationMismatch()

        virtual = self.guard.to_virtual(target)
        is_dir = os.path.isdir(target)
        try:
            if is_dir:
                shutil.rmtree(target)
            else:
                os.unlink(target)
        except OSError:
            raise self._failure('delete', virtual)

        self.hashes.invalidate(virtual, recursive=is_dir)
        self.activity.append('delete', virtual, self.source)
        logger.info('file_deleted', path=virtual, is_dir=is_dir)
        return virtual

    def mkdir(self, rel: str, name: str) -> str:
        dir_name = upload_validator.normalize_name(name)
        target = self.guard.resolve_parent(posixpath.join(rel or '/', dir_name))

        virtual = self.guard.to_virtual(target)
        try:
            os.mkdir(target, 0o755)
        except FileExistsError:
            raise Conflict('directory already exists')
        except OSError:
            raise self._failure('mkdir', virtual)

        self.activity.append('mkdir', virtual, self.source)
        logger.info('directory_created', path=virtual)
        return virtual

    def write_archive(self, paths: list[str], fileobj: BinaryIO) -> list[ArchiveEntry]:
        """Write a ZIP of ``paths`` into ``fileobj``.

        Every path is validated before the archive is opened. Once writing has
        started, unreadable entries are reported as skipped and the rest of the
        archive is still produced.
        """
        targets = [self.guard.resolve(p) for p in paths]

        entries: list[ArchiveEntry] = []
        with zipfile.ZipFile(fileobj, mode='w', compression=zipfile.ZIP_DEFLATED, strict_timestamps=False) as zf:
            for full in targets:
                if os.path.isdir(full):
                    entries.extend(self._archive_tree(zf, full))
                else:
                    entries.append(self._archive_entry(zf, full, os.path.basename(full)))

        skipped = sum(1 for e in entries if e.status == 'skipped')
        logger.info('archive_written', requested=len(paths), entries=len(entries), skipped=skipped)
        return entries

    def _archive_tree(self, zf: zipfile.ZipFile, top: str) -> list[ArchiveEntry]:
        base = os.path.dirname(top)
        entries: list[ArchiveEntry] = []

        def _arcname(path: str) -> str:
            return os.path.relpath(path, base).replace(os.sep, '/')

        def _on_error(exc: OSError) -> None:
            entries.append(ArchiveEntry(_arcname(exc.filename or top), 'skipped', exc.strerror or str(exc)))

        for current, dirnames, filenames in os.walk(top, onerror=_on_error):
            entries.append(self._archive_entry(zf, current, _arcname(current) + '/'))

            kept = []
            for name in sorted(dirnames):
                if os.path.islink(os.path.join(current, name)):
                    entries.append(ArchiveEntry(_arcname(os.path.join(current, name)), 'skipped', 'symlink'))
                else:
                    kept.append(name)
            dirnames[:] = kept

            for name in sorted(filenames):
                entries.append(self._archive_entry(zf, os.path.join(current, name), _arcname(os.path.join(current, name))))
        return entries

    @staticmethod
    def _archive_entry(zf: zipfile.ZipFile, full: str, arcname: str) -> ArchiveEntry:
        try:
            mode = os.lstat(full).st_mode
            if stat.S_ISLNK(mode):
                return ArchiveEntry(arcname, 'skipped', 'symlink')
            if not (stat.S_ISREG(mode) or stat.S_ISDIR(mode)):
                return ArchiveEntry(arcname, 'skipped', 'not a regular file')
            zf.write(full, arcname)
        except (OSError, ValueError) as exc:
            logger.warning('archive_entry_skipped', arcname=arcname, error=str(exc))
            return ArchiveEntry(arcname, 'skipped', str(exc))
        return ArchiveEntry(arcname, 'added')

    def _resolve_mutable(self, rel: str) -> str:
        full = self.guard.resolve(rel)
        if full == self.guard.root:
            raise OutsideRoot('operation not permitted on the base directory')
        return full

    def _relocate(self, action: str, src: str, dst: str) -> tuple[str, str]:
        old_virtual = self.guard.to_virtual(src)
        new_virtual = self.guard.to_virtual(dst)
        is_dir = os.path.isdir(src)
        try:
            os.rename(src, dst)
        except OSError:
            raise self._failure(action, old_virtual)

        self.hashes.invalidate(old_virtual, recursive=is_dir)
        self.activity.append(action, f'{old_virtual} -> {new_virtual}', self.source)
        logger.info('file_relocated', action=action, old_path=old_virtual, new_path=new_virtual)
        return old_virtual, new_virtual

    def _write(self, full: str, content: bytes, exclusive: bool) -> None:
        flags = os.O_WRONLY | os.O_CREAT | _O_NOFOLLOW
        flags |= os.O_EXCL if exclusive else os.O_TRUNC
        try:
            fd = os.open(full, flags, 0o644)
        except FileExistsError:
            raise Conflict('file already exists')
        except IsADirectoryError:
            raise Conflict('a directory with this name already exists')
        except OSError as exc:
            if exc.errno == errno.ELOOP:
                raise SymlinkNotAllowed()
            raise self._failure('write', self.guard.to_virtual(full))

        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
        except OSError:
            virtual = self.guard.to_virtual(full)
            # contents on disk are now partial
            self.hashes.invalidate(virtual)
            raise self._failure('write', virtual)

    @staticmethod
    def _failure(op: str, path: str) -> InternalIO:
        logger.exception('file_op_failed', op=op, path=path)
        return InternalIO(f'failed to {op} {path}')
