"""Run the sync server: ``python -m blobsync``."""

import uvicorn

from .config import get_settings
from .logging_config import setup_logging


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        "blobsync.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
