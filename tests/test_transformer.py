"""Tests for the ffmpeg label transformer."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from overlay_runner.transformer import (
    LabelStyle,
    TransformError,
    build_drawtext_filter,
    original_filename,
    output_filename,
    transform_image,
)


def test_filenames_follow_naming_convention():
    assert original_filename(3) == "original_3.png"
    assert output_filename(12) == "image_12.png"


def test_drawtext_filter_centers_label():
    vf = build_drawtext_filter(5)
    assert "text='Image\\: 5'" in vf
    assert "fontcolor=red" in vf
    assert "fontsize=h*0.05" in vf
    assert "x=(w-text_w)/2" in vf
    assert "y=(h-text_h)/2" in vf


def test_drawtext_filter_uses_style():
    vf = build_drawtext_filter(1, LabelStyle(color="yellow", font_scale=0.1))
    assert "fontcolor=yellow" in vf
    assert "fontsize=h*0.1" in vf


def test_transform_runs_ffmpeg_and_removes_original(tmp_path):
    output_path = tmp_path / "image_2.png"
    original_path = tmp_path / "original_2.png"
    seen = {}

    def fake_run(command, **kwargs):
        seen["command"] = command
        seen["original"] = original_path.read_bytes()
        Path(command[-1]).write_bytes(b"labeled")
        return MagicMock(returncode=0, stderr="")

    with patch("overlay_runner.transformer.subprocess.run", side_effect=fake_run) as mock_run:
        result = transform_image(b"raw image", output_path, 2, ffmpeg_binary="/usr/bin/ffmpeg")

    assert result == output_path
    assert output_path.read_bytes() == b"labeled"
    assert not original_path.exists()
    assert seen["original"] == b"raw image"
    command = seen["command"]
    assert command[0] == "/usr/bin/ffmpeg"
    assert command[1:3] == ["-i", str(original_path)]
    assert command[3] == "-vf"
    assert "Image\\: 2" in command[4]
    assert command[-2:] == ["-y", str(output_path)]
    assert mock_run.call_args.kwargs["timeout"] is None


def test_nonzero_exit_raises_and_cleans_up(tmp_path):
    output_path = tmp_path / "image_1.png"

    def fake_run(command, **kwargs):
        Path(command[-1]).write_bytes(b"partial")
        return MagicMock(returncode=1, stderr="frame=0\nInvalid data found when processing input\n")

    with patch("overlay_runner.transformer.subprocess.run", side_effect=fake_run):
        with pytest.raises(TransformError, match="exited with code 1: Invalid data"):
            transform_image(b"not an image", output_path, 1)

    assert not output_path.exists()
    assert not (tmp_path / "original_1.png").exists()


@pytest.mark.parametrize(
    "error",
    [
        FileNotFoundError("No such file or directory: 'ffmpeg'"),
        PermissionError("Permission denied: 'ffmpeg'"),
    ],
)
def test_unrunnable_binary_raises_transform_error(tmp_path, error):
    with patch("overlay_runner.transformer.subprocess.run", side_effect=error):
        with pytest.raises(TransformError, match="could not run ffmpeg"):
            transform_image(b"data", tmp_path / "image_1.png", 1)

    assert not (tmp_path / "original_1.png").exists()


def test_timeout_raises_transform_error(tmp_path):
    with patch(
        "overlay_runner.transformer.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="ffmpeg", timeout=2.0),
    ):
        with pytest.raises(TransformError, match="timed out"):
            transform_image(b"data", tmp_path / "image_4.png", 4, timeout=2.0)

    assert not (tmp_path / "original_4.png").exists()


def test_label_must_be_positive(tmp_path):
    with pytest.raises(ValueError):
        transform_image(b"data", tmp_path / "image_0.png", 0)
    assert list(tmp_path.iterdir()) == []
