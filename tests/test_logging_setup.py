from __future__ import annotations

from structlog.testing import capture_logs
from starlette.requests import Request

from cdn_panel.logging_setup import REQUEST_ID_HEADER, request_id_for


def _request(headers: dict[str, str]) -> Request:
    scope = {
        'type': 'http',
        'method': 'GET',
        'path': '/api/files',
        'headers': [(k.lower().encode(), v.encode()) for k, v in headers.items()],
    }
    return Request(scope)


def test_request_id_reuses_well_formed_header():
    assert request_id_for(_request({REQUEST_ID_HEADER: 'edge-1234.abc'})) == 'edge-1234.abc'


def test_request_id_replaces_malformed_header():
    generated = request_id_for(_request({REQUEST_ID_HEADER: 'bad id\nwith newline'}))

    assert len(generated) == 32
    assert generated != 'bad id\nwith newline'
    assert len(request_id_for(_request({}))) == 32


def test_responses_carry_request_id(client):
    resp = client.get('/api/files', headers={REQUEST_ID_HEADER: 'trace-42'})
    assert resp.headers[REQUEST_ID_HEADER] == 'trace-42'

    first = client.get('/api/files').headers[REQUEST_ID_HEADER]
    second = client.get('/api/files').headers[REQUEST_ID_HEADER]
    assert first != second


def test_http_request_summary_is_logged(client):
    with capture_logs() as logs:
        client.get('/api/files', params={'path': '/missing'})
        client.get('/healthz')

    summaries = [entry for entry in logs if entry['event'] == 'http_request']
    assert len(summaries) == 1
    assert summaries[0]['status'] == 404
    assert summaries[0]['path'] == '/api/files'
    assert summaries[0]['log_level'] == 'info'
