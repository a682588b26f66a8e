"""
Tool path resolution for FFmpeg and yt-dlp.

FFmpeg is located with a hybrid approach:
1. First tries the bundled FFmpeg from the imageio-ffmpeg package
2. Falls back to system FFmpeg if available
3. Raises an error if neither is available

yt-dlp is expected as the console script installed with the yt-dlp package,
or at the path configured through YTDLP_PATH.
"""

import shutil
import subprocess
import logging
from typing import Optional
from functools import lru_cache

import config

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_ffmpeg_path() -> str:
    """
    Get the path to FFmpeg executable.

    Tries multiple sources in order:
    1. Bundled FFmpeg from imageio-ffmpeg package
    2. System FFmpeg from PATH

    Returns:
        str: Path to FFmpeg executable

    Raises:
        RuntimeError: If FFmpeg is not available from any source
    """
    # Try 1: Use bundled FFmpeg from imageio-ffmpeg
    try:
        import imageio_ffmpeg
        ffmpeg_path = imageio_ffmpeg.get_ffmpeg_exe()

        result = subprocess.run(
            [ffmpeg_path, '-version'],
            capture_output=True,
            timeout=5
        )

        if result.returncode == 0:
            logger.info(f"✅ Using bundled FFmpeg from imageio-ffmpeg: {ffmpeg_path}")
            return ffmpeg_path
    except ImportError:
        logger.warning("imageio-ffmpeg not installed, trying system FFmpeg...")
    except Exception as e:
        logger.warning(f"Failed to use bundled FFmpeg: {e}, trying system FFmpeg...")

    # Try 2: Use system FFmpeg
    system_ffmpeg = shutil.which('ffmpeg')
    if system_ffmpeg:
        logger.info(f"✅ Using system FFmpeg from PATH: {system_ffmpeg}")
        return system_ffmpeg

    logger.error("System FFmpeg not found in PATH")
    raise RuntimeError(
        "FFmpeg is not available. Please install imageio-ffmpeg (pip install imageio-ffmpeg) "
        "or install FFmpeg manually from https://ffmpeg.org/download.html"
    )


@lru_cache(maxsize=1)
def get_ytdlp_path() -> str:
    """
    Get the path to the yt-dlp executable.

    Raises:
        RuntimeError: If yt-dlp cannot be found
    """
    resolved = shutil.which(config.YTDLP_PATH)
    if resolved:
        return resolved
    raise RuntimeError(
        f"yt-dlp executable '{config.YTDLP_PATH}' not found. Install it with: pip install yt-dlp"
    )


def check_ffmpeg_available() -> bool:
    try:
        get_ffmpeg_path()
        return True
    except RuntimeError:
        return False


def check_ytdlp_available() -> bool:
    try:
        get_ytdlp_path()
        return True
    except RuntimeError:
        return False


def get_ffmpeg_version() -> Optional[str]:
    """
    Get the version of the available FFmpeg.

    Returns:
        str: FFmpeg version string, or None if not available
    """
    try:
        ffmpeg_path = get_ffmpeg_path()
        result = subprocess.run(
            [ffmpeg_path, '-version'],
            capture_output=True,
            text=True,
            timeout=5
        )

        if result.returncode == 0:
            # Extract version from first line
            return result.stdout.split('\n')[0]

        return None
    except Exception as e:
        logger.error(f"Failed to get FFmpeg version: {e}")
        return None
