"""Utils package for utility functions."""

from .ffmpeg_utils import (
    get_ffmpeg_path,
    get_ytdlp_path,
    check_ffmpeg_available,
    check_ytdlp_available,
    get_ffmpeg_version,
)
from .timecodes import parse_timestamp, format_timestamp, format_duration

__all__ = [
    'get_ffmpeg_path',
    'get_ytdlp_path',
    'check_ffmpeg_available',
    'check_ytdlp_available',
    'get_ffmpeg_version',
    'parse_timestamp',
    'format_timestamp',
    'format_duration',
]
