"""
FFmpeg utilities for video assembly.

Provides a clean interface to ffmpeg for turning a directory of numbered frame
images into one video file.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from videomem.config import CodecConfig
from videomem.exceptions import VideomemError
from videomem.io import FFMPEG_FRAME_PATTERN
from videomem.logging_utils import get_component_logger


class FFmpegError(VideomemError):
    """Error during FFmpeg execution."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str | None = None):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


def check_ffmpeg(ffmpeg_path: str = "ffmpeg") -> bool:
    """
    Check if ffmpeg is available and working.

    Args:
        ffmpeg_path: Path to ffmpeg binary

    Returns:
        True if ffmpeg is available
    """
    try:
        result = subprocess.run(
            [ffmpeg_path, "-version"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError):
        return False


def build_encode_command(
    frames_dir: Path,
    output_path: Path,
    codec: CodecConfig,
    ffmpeg_path: str = "ffmpeg",
) -> list[str]:
    """Build the ffmpeg argument list for assembling frames into a video."""
    cmd = [
        ffmpeg_path,
        "-y",
        "-framerate",
        str(codec.video_fps),
        "-i",
        str(frames_dir / FFMPEG_FRAME_PATTERN),
        "-c:v",
        codec.codec_name,
        "-pix_fmt",
        codec.pix_fmt,
        "-s",
        f"{codec.frame_width}x{codec.frame_height}",
    ]

    # Bitrate wins over constant quality when a preset sets both
    if codec.video_bitrate:
        cmd += ["-b:v", codec.video_bitrate]
    elif codec.video_crf is not None:
        cmd += ["-crf", str(codec.video_crf)]

    cmd += list(codec.extra_ffmpeg_args)
    cmd.append(str(output_path))
    return cmd


def encode_video(
    frames_dir: Path,
    output_path: Path,
    codec: CodecConfig,
    *,
    ffmpeg_path: str = "ffmpeg",
    timeout: float = 3600,
    logger: logging.Logger | None = None,
) -> Path:
    """
    Assemble ``frame_%06d.png`` images into a video.

    Args:
        frames_dir: Directory holding the numbered frames
        output_path: Path for the output video
        codec: Codec preset
        ffmpeg_path: Path to ffmpeg binary
        timeout: Seconds before ffmpeg is killed
        logger: Logger for the command line and result (default: videomem.ffmpeg)

    Returns:
        Path to the video

    Raises:
        FFmpegError: If ffmpeg fails, times out or is missing
    """
    logger = get_component_logger("ffmpeg", logger)
    frames_dir = Path(frames_dir)
    output_path = Path(output_path)

    # Ensure output directory exists
    output_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = build_encode_command(frames_dir, output_path, codec, ffmpeg_path)
    logger.debug(f"Running ffmpeg: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )

        if result.returncode != 0:
            raise FFmpegError(
                f"FFmpeg failed with code {result.returncode}",
                returncode=result.returncode,
                stderr=result.stderr,
            )

        logger.info(f"Encoded video to: {output_path}")
        return output_path

    except subprocess.TimeoutExpired as e:
        raise FFmpegError(f"FFmpeg timed out encoding {frames_dir}") from e
    except FileNotFoundError as e:
        raise FFmpegError(f"FFmpeg not found at: {ffmpeg_path}") from e
