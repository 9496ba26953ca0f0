"""Entry point for ``python -m cdn_panel``."""

from __future__ import annotations

import uvicorn

from .config import Settings
from .logging_setup import configure_logging
from .main import create_app


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level, json_logs=settings.log_json)
    uvicorn.run(
        create_app(settings),
        host=settings.app_host,
        port=settings.app_port,
        log_level='warning',
        access_log=False,
    )


if __name__ == '__main__':
    main()
