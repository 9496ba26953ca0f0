from __future__ import annotations

import posixpath
import re
from typing import BinaryIO

import puremagic

from ..errors import BlockedExtension, InvalidFilename, MIMEMismatch, TooLarge

DEFAULT_BLOCKED_EXTENSIONS = [
    'php', 'phtml', 'phar', 'cgi', 'pl', 'py', 'sh',
    'exe', 'dll', 'so', 'bin', 'bat', 'cmd', 'ps1',
    'asp', 'aspx', 'jsp', 'jspx', 'cfm', 'htaccess',
]

# Expected type per extension. Extensions missing here are not content-checked.
EXPECTED_MIME_TYPES = {
    'avif': 'image/avif',
    'css': 'text/css',
    'gif': 'image/gif',
    'htm': 'text/html',
    'html': 'text/html',
    'jpeg': 'image/jpeg',
    'jpg': 'image/jpeg',
    'js': 'text/javascript',
    'mjs': 'text/javascript',
    'json': 'application/json',
    'pdf': 'application/pdf',
    'png': 'image/png',
    'svg': 'image/svg+xml',
    'txt': 'text/plain',
    'wasm': 'application/wasm',
    'webp': 'image/webp',
    'xml': 'text/xml',
}

OCTET_STREAM = 'application/octet-stream'
SNIFF_LEN = 512
_READ_CHUNK = 1024 * 1024

_FILENAME_RE = re.compile(r'[a-zA-Z0-9][a-zA-Z0-9._-]*')
_WHITESPACE = b'\t\n\x0c\r '
_HTML_SIGNATURES = (
    b'<!DOCTYPE HTML', b'<HTML', b'<HEAD', b'<SCRIPT', b'<IFRAME', b'<H1', b'<DIV',
    b'<FONT', b'<TABLE', b'<A', b'<STYLE', b'<TITLE', b'<B', b'<BODY', b'<BR', b'<P',
    b'<!--',
)
_TEXT_BOMS = (b'\xef\xbb\xbf', b'\xfe\xff', b'\xff\xfe')
_BINARY_BYTES = frozenset([*range(0x00, 0x09), 0x0B, *range(0x0E, 0x1B), *range(0x1C, 0x20)])
# Media formats whose signatures are printable ASCII (PDF, PostScript, GIF).
# Other magic matches on a control-free head are text formats and sniff as text/plain.
_PRINTABLE_SIGNATURE_FAMILIES = ('image/', 'audio/', 'video/', 'font/')
_PRINTABLE_SIGNATURE_TYPES = frozenset({'application/pdf', 'application/postscript'})


def normalize_name(raw: str) -> str:
    name = posixpath.basename(raw.replace('\\', '/').rstrip('/'))
    if name in ('', '.', '..') or not name.isascii():
        raise InvalidFilename()

    normalized = name.lower().replace(' ', '-')
    if not _FILENAME_RE.fullmatch(normalized):
        raise InvalidFilename()
    return normalized


def extension_of(name: str) -> str:
    _, dot, ext = name.rpartition('.')
    return ext.lower() if dot else ''


def parse_blocked_extensions(value: str | None) -> list[str]:
    if not value:
        return list(DEFAULT_BLOCKED_EXTENSIONS)
    return [part.strip().lstrip('.').lower() for part in value.split(',') if part.strip().lstrip('.')]


def check_extension(name: str, blocked: list[str]) -> None:
    ext = extension_of(name)
    if not ext:
        return
    if ext in {b.lower() for b in blocked}:
        raise BlockedExtension()


def _markup_type(head: bytes) -> str | None:
    data = head.lstrip(_WHITESPACE)
    upper = data.upper()
    for sig in _HTML_SIGNATURES:
        if upper.startswith(sig) and len(data) > len(sig) and data[len(sig)] in b' >':
            return 'text/html'
    if data.startswith(b'<?xml'):
        return 'text/xml'
    return None


def _magic_type(head: bytes) -> str | None:
    try:
        mime = puremagic.from_string(head, mime=True)
    except (puremagic.PureError, ValueError):
        return None
    return mime or None


def _has_printable_signature(mime: str) -> bool:
    base = _base_type(mime)
    if base == 'image/svg+xml':
        return False
    return base.startswith(_PRINTABLE_SIGNATURE_FAMILIES) or base in _PRINTABLE_SIGNATURE_TYPES


def sniff_mime(content: bytes) -> str:
    """Best guess at the content type of ``content``, ignoring any client claims."""
    head = content[:SNIFF_LEN]
    if not head:
        return 'text/plain'

    markup = _markup_type(head)
    if markup:
        return markup
    if head.startswith(_TEXT_BOMS):
        return 'text/plain'

    binary = any(b in _BINARY_BYTES for b in head)
    magic = _magic_type(head)
    if magic and (binary or _has_printable_signature(magic)):
        return magic
    return OCTET_STREAM if binary else 'text/plain'


def _base_type(mime: str) -> str:
    return mime.split(';', 1)[0].strip().lower()


def is_allowed_mismatch(expected: str, detected: str) -> bool:
    if expected.startswith('text/') and detected == OCTET_STREAM:
        return True
    if expected == 'image/svg+xml' and detected in ('text/xml', 'text/plain', 'text/html', 'application/xml'):
        return True
    if expected in ('application/javascript', 'text/javascript') and detected == 'text/plain':
        return True
    if expected == 'text/css' and detected == 'text/plain':
        return True
    if expected == 'application/json' and detected == 'text/plain':
        return True
    return False


def check_content(name: str, content: bytes) -> None:
    expected = EXPECTED_MIME_TYPES.get(extension_of(name))
    if not expected:
        return

    expected_base = _base_type(expected)
    detected_base = _base_type(sniff_mime(content))
    if detected_base in (expected_base, OCTET_STREAM):
        return
    if not is_allowed_mismatch(expected_base, detected_base):
        raise MIMEMismatch()


def read_capped(stream: BinaryIO, max_size: int) -> bytes:
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = stream.read(min(_READ_CHUNK, max_size + 1 - total))
        if not chunk:
            break
        chunks.append(chunk)
        total += len(chunk)
        if total > max_size:
            raise TooLarge()
    return b''.join(chunks)
