from __future__ import annotations


class FileOpError(Exception):
    status_code = 400
    message = 'Invalid request'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class PathTraversal(FileOpError):
    message = 'path traversal attempt detected'


class OutsideRoot(FileOpError):
    message = 'path is outside base directory'


class SymlinkNotAllowed(FileOpError):
    message = 'symlinks are not allowed'


class NotFound(FileOpError):
    status_code = 404
    message = 'path not found'


class InvalidFilename(FileOpError):
    message = 'invalid filename'


class BlockedExtension(FileOpError):
    message = 'file extension is blocked'


class MIMEMismatch(FileOpError):
    message = 'MIME type does not match extension'


class TooLarge(FileOpError):
    message = 'file exceeds maximum size'


class NotADirectory(FileOpError):
    message = 'path is not a directory'


class IsADirectory(FileOpError):
    message = 'path is a directory'


class ConfirmationMismatch(FileOpError):
    message = 'filename confirmation does not match'


class Conflict(FileOpError):
    status_code = 409
    message = 'a file with this name already exists'


class InternalIO(FileOpError):
    status_code = 500
    message = 'filesystem operation failed'
