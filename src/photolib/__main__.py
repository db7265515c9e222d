from __future__ import annotations

import logging

import uvicorn

from photolib.core.logging import setup_logging
from photolib.core.settings import load_settings

logger = logging.getLogger(__name__)


def main() -> int:
    settings = load_settings()
    setup_logging(settings.log_dir, debug=settings.debug)
    try:
        uvicorn.run(
            "photolib.main:build_app",
            factory=True,
            host=settings.host,
            port=settings.port,
            log_level="info",
        )
    except Exception as exc:
        logger.exception("photolib server crashed: %s", exc)
        raise
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
