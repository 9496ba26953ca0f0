from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .services.upload_validator import DEFAULT_BLOCKED_EXTENSIONS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8')

    app_name: str = 'CDN Panel'
    app_host: str = '0.0.0.0'
    app_port: int = 8080
    database_url: str = 'sqlite:///./cdn_panel.db'
    cdn_path: str = '/srv/cdn'
    public_hostname: str = 'localhost'
    max_upload_size: int = Field(default=100 * 1024 * 1024, ge=1)
    blocked_extensions: str = ','.join(DEFAULT_BLOCKED_EXTENSIONS)
    allowed_origins: str = '*'
    dev_mode: bool = False
    static_dir: str = ''
    log_level: str = 'info'
    log_json: bool = True
