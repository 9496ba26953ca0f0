from __future__ import annotations

import os
import stat

from ..errors import (
    InternalIO,
    InvalidFilename,
    NotADirectory,
    NotFound,
    OutsideRoot,
    PathTraversal,
    SymlinkNotAllowed,
)


def canonical_root(root: str) -> str:
    return os.path.realpath(os.path.abspath(root))


def _is_within(candidate: str, root: str) -> bool:
    if candidate == root:
        return True
    return candidate.startswith(root.rstrip(os.sep) + os.sep)


def validate_path(requested_path: str, root: str) -> str:
    """Lexically confine ``requested_path`` under ``root``.

    ``root`` must already be canonical. Nothing is read from disk here; callers
    that need the target to exist go through :class:`PathGuard`.
    """
    if not requested_path:
        requested_path = '/'

    if '..' in requested_path or '\x00' in requested_path:
        raise PathTraversal()

    candidate = os.path.normpath(os.path.join(root, requested_path.lstrip('/')))
    if not _is_within(candidate, root):
        raise OutsideRoot()
    return candidate


class PathGuard:
    """Maps client-supplied virtual paths onto canonical paths under one root.

    Symlinks are never followed: every component between the root and the
    requested leaf is ``lstat``-ed and a link anywhere on the way is rejected.
    """

    def __init__(self, root: str):
        self.root = canonical_root(root)

    def resolve(self, virtual: str) -> str:
        full = validate_path(virtual, self.root)
        self._lstat_chain(full)
        return full

    def resolve_dir(self, virtual: str) -> str:
        full = validate_path(virtual, self.root)
        if not stat.S_ISDIR(self._lstat_chain(full).st_mode):
            raise NotADirectory()
        return full

    def resolve_parent(self, virtual: str) -> str:
        full = validate_path(virtual, self.root)
        if full == self.root:
            raise OutsideRoot('operation not permitted on the base directory')
        return self.child(os.path.dirname(full), os.path.basename(full))

    def child(self, directory: str, name: str) -> str:
        """Path of ``name`` inside the canonical ``directory``; the leaf may be absent."""
        if name in ('', '.', '..') or os.sep in name or (os.altsep and os.altsep in name):
            raise InvalidFilename()
        if not stat.S_ISDIR(self._lstat_chain(directory).st_mode):
            raise NotADirectory()

        full = os.path.join(directory, name)
        try:
            leaf = os.lstat(full)
        except FileNotFoundError:
            return full
        except OSError as exc:
            raise InternalIO() from exc
        if stat.S_ISLNK(leaf.st_mode):
            raise SymlinkNotAllowed()
        return full

    def to_virtual(self, full: str) -> str:
        rel = os.path.relpath(full, self.root)
        if rel == '.':
            return '/'
        return '/' + rel.replace(os.sep, '/')

    def _lstat_chain(self, full: str) -> os.stat_result:
        if not _is_within(full, self.root):
            raise OutsideRoot()

        current = self.root
        result = self._lstat(current)
        rel = os.path.relpath(full, self.root)
        if rel == '.':
            return result

        for part in rel.split(os.sep):
            current = os.path.join(current, part)
            result = self._lstat(current)
            if stat.S_ISLNK(result.st_mode):
                raise SymlinkNotAllowed()
        return result

    @staticmethod
    def _lstat(path: str) -> os.stat_result:
        try:
            return os.lstat(path)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFound()
        except OSError as exc:
            raise InternalIO() from exc
