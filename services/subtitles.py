"""
WebVTT cue shifting.

yt-dlp fetches subtitles for the whole video even when only a section of the
media is downloaded, so cue times have to be moved back by the clip start
before the subtitles are burned into the clip.
"""

import re
import logging
from typing import List, Optional

from services.errors import SubtitleError
from utils.timecodes import format_timestamp

logger = logging.getLogger(__name__)

OFFSET_MARKER = "NOTE clippa-offset="

CUE_TIMING = re.compile(
    r'^(?P<start>(?:\d{2,}:)?\d{2}:\d{2}\.\d{3})\s+-->\s+(?P<end>(?:\d{2,}:)?\d{2}:\d{2}\.\d{3})(?P<settings>.*)$'
)

# Karaoke-style word timings used by auto-generated captions
INLINE_TIMESTAMP = re.compile(r'<((?:\d{2,}:)?\d{2}:\d{2}\.\d{3})>')


def _cue_seconds(stamp: str) -> float:
    parts = stamp.split(':')
    seconds = float(parts[-1])
    minutes = int(parts[-2])
    hours = int(parts[-3]) if len(parts) == 3 else 0
    return hours * 3600 + minutes * 60 + seconds


def _split_blocks(text: str) -> List[str]:
    normalized = text.replace('\r\n', '\n').replace('\r', '\n')
    return [block for block in re.split(r'\n{2,}', normalized.strip('\n')) if block.strip()]


def shift_vtt(text: str, offset: float, duration: Optional[float] = None) -> str:
    """
    Move every cue in ``text`` back by ``offset`` seconds.

    Cues that end before the clip starts are dropped and cues that straddle
    the start are clamped to zero. With ``duration`` set, cues that start
    after the clip ends are dropped and end times are clamped to it.

    Raises:
        SubtitleError: the text is not WebVTT or was already shifted.
    """
    # Some providers prefix the header with a UTF-8 byte order mark
    blocks = _split_blocks(text.lstrip("\ufeff"))
    if not blocks or not blocks[0].startswith('WEBVTT'):
        raise SubtitleError("Subtitle file is not WebVTT")
    if any(block.startswith(OFFSET_MARKER) for block in blocks):
        raise SubtitleError("Subtitle cues have already been shifted")

    output = [blocks[0], f"{OFFSET_MARKER}{offset:.3f}"]
    kept = dropped = 0

    for block in blocks[1:]:
        lines = block.split('\n')
        timing_index = next((i for i, line in enumerate(lines) if CUE_TIMING.match(line.strip())), None)
        if timing_index is None:
            # STYLE, REGION and NOTE blocks pass through untouched
            output.append(block)
            continue

        match = CUE_TIMING.match(lines[timing_index].strip())
        start = _cue_seconds(match.group('start')) - offset
        end = _cue_seconds(match.group('end')) - offset

        if end <= 0 or (duration is not None and start >= duration):
            dropped += 1
            continue

        start = max(0.0, start)
        if duration is not None:
            end = min(end, duration)

        lines[timing_index] = f"{format_timestamp(start)} --> {format_timestamp(end)}{match.group('settings')}"
        for i in range(timing_index + 1, len(lines)):
            lines[i] = INLINE_TIMESTAMP.sub(
                lambda m: f"<{format_timestamp(_cue_seconds(m.group(1)) - offset)}>", lines[i]
            )
        output.append('\n'.join(lines))
        kept += 1

    logger.info(f"Shifted subtitles by {offset:.3f}s: {kept} cues kept, {dropped} dropped")
    return '\n\n'.join(output) + '\n'


def shift_vtt_file(path: str, offset: float, duration: Optional[float] = None) -> None:
    """Rewrite the WebVTT file at ``path`` in place with shifted cues."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise SubtitleError(f"Could not read subtitles: {e}")

    shifted = shift_vtt(text, offset, duration)

    try:
        with open(path, 'w', encoding='utf-8') as f:
            f.write(shifted)
    except OSError as e:
        raise SubtitleError(f"Could not write subtitles: {e}")
