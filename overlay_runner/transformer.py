"""Label overlay for a single image using the ffmpeg command-line tool."""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

ORIGINAL_PREFIX = "original_"
OUTPUT_PREFIX = "image_"
IMAGE_SUFFIX = ".png"


class TransformError(Exception):
    """The external tool failed or could not be started."""
    pass


@dataclass(frozen=True)
class LabelStyle:
    color: str = "red"
    font_scale: float = 0.05


def original_filename(number: int) -> str:
    return f"{ORIGINAL_PREFIX}{number}{IMAGE_SUFFIX}"


def output_filename(number: int) -> str:
    return f"{OUTPUT_PREFIX}{number}{IMAGE_SUFFIX}"


def build_drawtext_filter(number: int, style: LabelStyle = LabelStyle()) -> str:
    """
    Build the ffmpeg video filter that centers ``Image: <number>`` on the frame.

    The colon inside the text is escaped for the filtergraph parser.
    """
    return (
        f"drawtext=text='Image\\: {number}'"
        f":fontcolor={style.color}"
        f":fontsize=h*{style.font_scale}"
        ":x=(w-text_w)/2:y=(h-text_h)/2"
    )


def transform_image(
    image_bytes: bytes,
    output_path: Path,
    number: int,
    *,
    ffmpeg_binary: str = "ffmpeg",
    style: LabelStyle = LabelStyle(),
    timeout: Optional[float] = None,
) -> Path:
    """
    Write ``image_bytes`` to disk and render the labeled copy at ``output_path``.

    Args:
        image_bytes: Raw uploaded image
        output_path: Destination of the labeled image
        number: Label value, 1-based position of the image in its batch
        ffmpeg_binary: Executable name or path of ffmpeg
        style: Label colour and size relative to image height
        timeout: Seconds to wait for ffmpeg, ``None`` waits forever

    Returns:
        ``output_path`` once the file has been written

    Raises:
        TransformError: ffmpeg exited non-zero, timed out or could not be run
    """
    if number < 1:
        raise ValueError(f"label must be a positive integer, got {number}")

    output_path = Path(output_path)
    original_path = output_path.parent / original_filename(number)
    original_path.write_bytes(image_bytes)

    command = [
        ffmpeg_binary,
        "-i",
        str(original_path),
        "-vf",
        build_drawtext_filter(number, style),
        "-y",
        str(output_path),
    ]
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        output_path.unlink(missing_ok=True)
        raise TransformError(f"{ffmpeg_binary} timed out after {timeout}s") from exc
    except OSError as exc:
        raise TransformError(f"could not run {ffmpeg_binary}: {exc}") from exc
    finally:
        original_path.unlink(missing_ok=True)

    if result.returncode != 0:
        output_path.unlink(missing_ok=True)
        stderr_tail = (result.stderr or "").strip().splitlines()[-1:]
        detail = f": {stderr_tail[0]}" if stderr_tail else ""
        raise TransformError(f"{ffmpeg_binary} exited with code {result.returncode}{detail}")

    logger.debug("Labeled image %s -> %s", number, output_path)
    return output_path
