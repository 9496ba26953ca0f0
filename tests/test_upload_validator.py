from __future__ import annotations

import io

import pytest

from cdn_panel.errors import BlockedExtension, InvalidFilename, MIMEMismatch, TooLarge
from cdn_panel.services import upload_validator as uv

PNG_BYTES = b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89'


@pytest.mark.parametrize(
    ('raw', 'expected'),
    [
        ('Notes.TXT', 'notes.txt'),
        ('My Holiday Photo.png', 'my-holiday-photo.png'),
        ('/var/tmp/report.pdf', 'report.pdf'),
        ('C:\\Users\\me\\logo.svg', 'logo.svg'),
        ('archive_2024-01.tar.gz', 'archive_2024-01.tar.gz'),
        ('dir/', 'dir'),
    ],
)
def test_normalize_name(raw, expected):
    assert uv.normalize_name(raw) == expected


@pytest.mark.parametrize('raw', ['', '.', '..', '/', '.env', '-rf', '_x', 'caf\u00e9.txt', 'tab\tname', 'semi;colon', '\u212aelvin.txt'])
def test_normalize_name_rejects(raw):
    with pytest.raises(InvalidFilename):
        uv.normalize_name(raw)


@pytest.mark.parametrize('raw', ['Notes.TXT', 'My Holiday Photo.png', 'a', 'x.y.z', 'readme'])
def test_normalize_name_is_idempotent(raw):
    once = uv.normalize_name(raw)
    assert uv.normalize_name(once) == once


def test_extension_blocklist_is_case_insensitive():
    with pytest.raises(BlockedExtension):
        uv.check_extension('shell.php', uv.DEFAULT_BLOCKED_EXTENSIONS)
    with pytest.raises(BlockedExtension):
        uv.check_extension('run.sh', ['SH'])
    uv.check_extension('readme', uv.DEFAULT_BLOCKED_EXTENSIONS)
    uv.check_extension('notes.txt', uv.DEFAULT_BLOCKED_EXTENSIONS)


def test_parse_blocked_extensions():
    assert uv.parse_blocked_extensions('') == uv.DEFAULT_BLOCKED_EXTENSIONS
    assert uv.parse_blocked_extensions(None) == uv.DEFAULT_BLOCKED_EXTENSIONS
    assert uv.parse_blocked_extensions(' EXE, .Bat ,,sh') == ['exe', 'bat', 'sh']


@pytest.mark.parametrize(
    ('content', 'expected'),
    [
        (b'', 'text/plain'),
        (b'hello', 'text/plain'),
        (b'  <!DOCTYPE html><html></html>', 'text/html'),
        (b'<script>alert(1)</script>', 'text/html'),
        (b'<?xml version="1.0"?><root/>', 'text/xml'),
        (PNG_BYTES, 'image/png'),
    ],
)
def test_sniff_mime(content, expected):
    assert uv.sniff_mime(content) == expected


def test_png_with_script_content_is_rejected():
    with pytest.raises(MIMEMismatch):
        uv.check_content('image.png', b'alert(document.cookie);\n')
    with pytest.raises(MIMEMismatch):
        uv.check_content('image.png', b'<script>alert(1)</script>')


def test_real_png_is_accepted():
    uv.check_content('image.png', PNG_BYTES)


@pytest.mark.parametrize(
    ('name', 'content'),
    [
        ('style.css', b'body { color: red; }\n'),
        ('app.js', b'const answer = 42;\n'),
        ('data.json', b'{"key": "value"}\n'),
        ('notes.txt', b'hello'),
        ('icon.svg', b'<?xml version="1.0"?><svg xmlns="http://www.w3.org/2000/svg"></svg>'),
        ('unknown.xyz', b'\x00anything goes'),
        ('readme', b'no extension at all'),
    ],
)
def test_compatible_content_is_accepted(name, content):
    uv.check_content(name, content)


def test_text_sniffed_as_html_for_css_is_rejected():
    with pytest.raises(MIMEMismatch):
        uv.check_content('style.css', b'<html><body>not css</body></html>')


def test_allowed_mismatch_table_is_asymmetric():
    assert uv.is_allowed_mismatch('application/json', 'text/plain')
    assert not uv.is_allowed_mismatch('text/plain', 'application/json')
    assert uv.is_allowed_mismatch('image/svg+xml', 'application/xml')
    assert not uv.is_allowed_mismatch('image/png', 'text/plain')


def test_read_capped_enforces_ceiling():
    assert uv.read_capped(io.BytesIO(b'12345'), 5) == b'12345'
    with pytest.raises(TooLarge):
        uv.read_capped(io.BytesIO(b'123456'), 5)


def test_unrecognised_binary_falls_back_to_octet_stream(monkeypatch):
    monkeypatch.setattr(uv, '_magic_type', lambda _head: None)

    assert uv.sniff_mime(b'\x00\x01\x02\x03') == 'application/octet-stream'
    assert uv.sniff_mime(b'plain words') == 'text/plain'
    # text expectations tolerate an opaque binary sniff
    uv.check_content('blob.txt', b'\x00\x01\x02binary')


@pytest.mark.parametrize(
    ('name', 'content'),
    [
        ('app.js', b'import x from "./x.js";\nexport default x;\n'),
        ('module.mjs', b'import { render } from "./view.mjs";\n'),
        ('notes.txt', b'From: alice@example.com\nTo: bob@example.com\n\nhi\n'),
        ('mail.txt', b'Return-Path: <alice@example.com>\nSubject: hi\n'),
        ('archive.txt', b'From alice@example.com Mon Jan  1 00:00:00 2024\n'),
        ('contact.txt', b'BEGIN:VCARD\nVERSION:3.0\nFN:Alice\nEND:VCARD\n'),
        ('event.txt', b'BEGIN:VCALENDAR\nVERSION:2.0\nEND:VCALENDAR\n'),
        ('subs.txt', b'WEBVTT\n\n00:00.000 --> 00:01.000\nhello\n'),
        ('signed.txt', b'-----BEGIN PGP MESSAGE-----\n\nhQEMA...\n'),
    ],
)
def test_text_formats_with_magic_signatures_are_accepted(name, content):
    assert uv.sniff_mime(content) == 'text/plain'
    uv.check_content(name, content)


def test_magic_text_types_on_control_free_head_sniff_as_plain_text(monkeypatch):
    monkeypatch.setattr(uv, '_magic_type', lambda _head: 'text/x-python')
    assert uv.sniff_mime(b'import os\n') == 'text/plain'

    monkeypatch.setattr(uv, '_magic_type', lambda _head: 'message/rfc822')
    assert uv.sniff_mime(b'From: a@example.com\n') == 'text/plain'


def test_printable_media_signatures_are_kept(monkeypatch):
    monkeypatch.setattr(uv, '_magic_type', lambda _head: 'application/pdf')
    assert uv.sniff_mime(b'%PDF-1.7\n') == 'application/pdf'

    monkeypatch.setattr(uv, '_magic_type', lambda _head: 'image/gif')
    assert uv.sniff_mime(b'GIF89a') == 'image/gif'
    with pytest.raises(MIMEMismatch):
        uv.check_content('notes.txt', b'GIF89a')
