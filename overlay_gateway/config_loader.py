"""Configuration loader for the overlay gateway - loads from environment variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .app import GatewayConfig


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


def load_config_from_env() -> GatewayConfig:
    """
    Load GatewayConfig from environment variables.

    Loads .env file if present and reads configuration values.

    Environment Variables:
        HOST: Server host (default: 0.0.0.0)
        PORT: Server port (default: 5000)
        LOG_LEVEL: Root log level (default: INFO)
        PUBLIC_DIR: Directory served under /output (default: public)
        BATCH_CONCURRENCY: Number of batches processed at once (default: 1)
        TRANSFORM_WORKERS: Labeling threads per batch (default: CPU count - 1)
        TRANSFORM_QUEUE_SIZE: Pending images buffered per batch (default: 2 x workers)
        FFMPEG_BINARY: ffmpeg executable (default: ffmpeg)
        TRANSFORM_TIMEOUT: Seconds allowed per image, empty for none (default: none)
        LABEL_COLOR: Label font colour (default: red)
        LABEL_FONT_SCALE: Label size as a fraction of image height (default: 0.05)
        WEBHOOK_TIMEOUT_MS: Webhook request timeout in milliseconds, 0 for none (default: 10000)
        JWT_SECRET: Secret used to verify Bearer tokens (default: your-secret-key)
        JWT_ALGORITHM: Token signing algorithm (default: HS256)

    Returns:
        GatewayConfig object with values from environment
    """
    load_dotenv()

    webhook_timeout_ms = float(os.getenv("WEBHOOK_TIMEOUT_MS", "10000"))

    return GatewayConfig(
        public_dir=Path(os.getenv("PUBLIC_DIR", "public")),
        batch_concurrency=int(os.getenv("BATCH_CONCURRENCY", "1")),
        # Transform settings
        transform_workers=_optional_int("TRANSFORM_WORKERS"),
        transform_queue_size=_optional_int("TRANSFORM_QUEUE_SIZE"),
        ffmpeg_binary=os.getenv("FFMPEG_BINARY", "ffmpeg"),
        transform_timeout=_optional_float("TRANSFORM_TIMEOUT"),
        label_color=os.getenv("LABEL_COLOR", "red"),
        label_font_scale=float(os.getenv("LABEL_FONT_SCALE", "0.05")),
        # Webhook settings
        webhook_timeout=webhook_timeout_ms / 1000.0 if webhook_timeout_ms > 0 else None,
        # Auth settings
        jwt_secret=os.getenv("JWT_SECRET", "your-secret-key"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        # Server settings
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
