"""Shared fixtures: a labeling stand-in that never shells out to ffmpeg."""

import io
from pathlib import Path

import pytest
from PIL import Image

from overlay_runner import TransformError


class FakeTransform:
    """Copies the input bytes to the output path, failing for chosen labels."""

    def __init__(self, fail_on=(), crash_on=()):
        self.fail_on = set(fail_on)
        self.crash_on = set(crash_on)
        self.calls = []

    def __call__(self, image_bytes: bytes, output_path: Path, number: int) -> Path:
        self.calls.append(number)
        if number in self.fail_on:
            raise TransformError(f"ffmpeg exited with code 1 for {number}")
        if number in self.crash_on:
            raise RuntimeError("worker blew up")
        Path(output_path).write_bytes(image_bytes)
        return Path(output_path)


@pytest.fixture
def fake_transform():
    return FakeTransform()


@pytest.fixture
def png_bytes():
    """Build small distinct PNG images."""

    def _make(shade: int = 0) -> bytes:
        buffer = io.BytesIO()
        Image.new("RGB", (16, 16), color=(shade % 256, 30, 40)).save(buffer, format="PNG")
        return buffer.getvalue()

    return _make


@pytest.fixture
def transform_factory():
    return FakeTransform
