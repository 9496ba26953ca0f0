from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cdn_panel import models  # noqa: F401  registers tables on Base
from cdn_panel.config import Settings
from cdn_panel.db import Base, make_engine, make_session_factory
from cdn_panel.main import create_app
from cdn_panel.services.content_hash import ContentAddresser
from cdn_panel.services.file_ops import FileOps
from cdn_panel.services.stores import ActivityLog, HashCache, RuntimeSettings
from cdn_panel.services.upload_validator import DEFAULT_BLOCKED_EXTENSIONS


@pytest.fixture
def root(tmp_path):
    path = tmp_path / 'cdn'
    path.mkdir()
    return path


@pytest.fixture
def db(tmp_path):
    engine = make_engine(f'sqlite:///{tmp_path / "panel.db"}')
    Base.metadata.create_all(bind=engine)
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def runtime(root):
    return RuntimeSettings(
        base_directory=str(root),
        max_upload_size=1024 * 1024,
        blocked_extensions=list(DEFAULT_BLOCKED_EXTENSIONS),
        public_hostname='cdn.example.com',
    )


@pytest.fixture
def ops(runtime, db):
    return FileOps(runtime, ContentAddresser(HashCache(db)), ActivityLog(db), source='127.0.0.1')


@pytest.fixture
def settings(tmp_path, root):
    return Settings(
        _env_file=None,
        cdn_path=str(root),
        database_url=f'sqlite:///{tmp_path / "api.db"}',
        public_hostname='cdn.example.com',
        dev_mode=True,
    )


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        test_client.headers['X-CSRF-Token'] = app.state.csrf_token
        yield test_client
