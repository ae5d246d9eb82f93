from __future__ import annotations

import logging
import sys

import uvicorn

from .app import create_app
from .config_loader import load_config_from_env


def setup_logging(level: str = "INFO") -> None:
    """Log to stdout with timestamp, logger name and level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    # httpx logs every webhook request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main() -> None:
    config = load_config_from_env()
    setup_logging(config.log_level)

    logger = logging.getLogger(__name__)
    logger.info("Starting image overlay gateway")
    logger.info(
        f"Server configuration: host={config.host}, port={config.port}, "
        f"batch_concurrency={config.batch_concurrency}, public_dir={config.public_dir}"
    )

    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
