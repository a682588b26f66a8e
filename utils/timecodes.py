"""Parsing and formatting of clip timestamps."""

import re

TIME_PATTERNS = [
    r'^\d{1,2}:\d{2}:\d{2}(\.\d{1,3})?$',
    r'^\d{1,2}:\d{2}(\.\d{1,3})?$',
    r'^\d+(\.\d{1,3})?$',
]


def parse_timestamp(value: str) -> float:
    """Convert ``HH:MM:SS[.mmm]``, ``MM:SS[.mmm]`` or plain seconds to seconds."""
    value = (value or '').strip()
    if not any(re.match(pattern, value) for pattern in TIME_PATTERNS):
        raise ValueError(
            f"Invalid time '{value}'. Use HH:MM:SS, HH:MM:SS.mmm, MM:SS or seconds"
        )

    parts = value.split(':')
    seconds = float(parts[-1])
    minutes = int(parts[-2]) if len(parts) >= 2 else 0
    hours = int(parts[-3]) if len(parts) == 3 else 0

    if len(parts) >= 2 and seconds >= 60:
        raise ValueError(f"Invalid time '{value}': seconds must be below 60")
    if len(parts) == 3 and minutes >= 60:
        raise ValueError(f"Invalid time '{value}': minutes must be below 60")

    return round(hours * 3600 + minutes * 60 + seconds, 3)


def format_timestamp(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS.mmm``."""
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rest = divmod(total_ms, 3600 * 1000)
    minutes, rest = divmod(rest, 60 * 1000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def format_duration(seconds: int) -> str:
    """Format whole seconds as ``HH:MM:SS``."""
    seconds = max(0, int(seconds))
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"
