"""
Crop, subtitle burn-in and final packaging through ffmpeg.
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Optional

import config
from models.requests import CropRatio
from services.errors import ProcessError, ProcessTimeoutError, TranscodeError
from services.process_runner import run_process
from utils.ffmpeg_utils import get_ffmpeg_path

logger = logging.getLogger(__name__)

CROP_FILTERS = {
    CropRatio.VERTICAL: "crop='min(iw,ih*9/16)':'min(ih,iw*16/9)',scale=1080:1920",
    CropRatio.SQUARE: "crop='min(iw,ih)':'min(iw,ih)',scale=1080:1080",
}


def escape_filter_path(path: str) -> str:
    """Quote a file path for use inside an ffmpeg filtergraph argument."""
    escaped = path.replace('\\', '/').replace(':', '\\:').replace("'", "\\'")
    return f"'{escaped}'"


def _bitrate_times(value: str, factor: int) -> str:
    """Multiply an ffmpeg bitrate like ``8M`` or ``4500k``."""
    value = value.strip()
    if value and value[-1].lower() in ('k', 'm'):
        return f"{int(float(value[:-1]) * factor)}{value[-1]}"
    return str(int(float(value) * factor))


@dataclass
class TranscodeOptions:
    """Everything ffmpeg needs to turn a downloaded segment into the clip."""

    input_path: str
    output_path: str
    crop_ratio: CropRatio = CropRatio.ORIGINAL
    subtitle_path: Optional[str] = None
    stream_copy: Optional[bool] = None
    preset: str = config.VIDEO_PRESET
    crf: int = config.VIDEO_CRF
    max_bitrate: str = config.VIDEO_MAX_BITRATE
    audio_bitrate: str = config.AUDIO_BITRATE
    threads: int = config.FFMPEG_THREADS

    @property
    def filters(self) -> List[str]:
        chain = []
        if self.crop_ratio in CROP_FILTERS:
            chain.append(CROP_FILTERS[self.crop_ratio])
        if self.subtitle_path:
            chain.append(f"subtitles={escape_filter_path(self.subtitle_path)}")
        return chain

    @property
    def requires_reencode(self) -> bool:
        # Filters change pixel data, which copied streams cannot carry
        return bool(self.filters)

    def validate(self) -> None:
        if not self.input_path or not os.path.isfile(self.input_path):
            raise TranscodeError(f"Input file not found: {self.input_path}")
        if os.path.abspath(self.input_path) == os.path.abspath(self.output_path):
            raise TranscodeError("Input and output paths must differ")
        if self.subtitle_path and not os.path.isfile(self.subtitle_path):
            raise TranscodeError(f"Subtitle file not found: {self.subtitle_path}")
        if self.stream_copy and self.requires_reencode:
            raise TranscodeError("Stream copy cannot be combined with crop or subtitle filters")
        if not 0 <= self.crf <= 51:
            raise TranscodeError(f"CRF must be between 0 and 51, got {self.crf}")
        try:
            _bitrate_times(self.max_bitrate, 2)
        except ValueError:
            raise TranscodeError(f"Invalid max bitrate: {self.max_bitrate}")

    def to_args(self) -> List[str]:
        self.validate()
        args = ['-hide_banner', '-loglevel', 'warning', '-nostats', '-y', '-i', self.input_path]

        copy = self.stream_copy if self.stream_copy is not None else not self.requires_reencode
        if copy:
            args.extend(['-c', 'copy'])
        else:
            if self.filters:
                args.extend(['-vf', ','.join(self.filters)])
            args.extend([
                '-c:v', 'libx264',
                '-profile:v', 'high',
                '-level', '4.0',
                '-pix_fmt', 'yuv420p',
                '-preset', self.preset,
                '-crf', str(self.crf),
                '-maxrate', self.max_bitrate,
                '-bufsize', _bitrate_times(self.max_bitrate, 2),
                '-c:a', 'aac',
                '-b:a', self.audio_bitrate,
            ])

        args.extend([
            '-movflags', '+faststart',
            '-threads', str(self.threads),
            self.output_path,
        ])
        return args


class ClipTranscoder:
    """Runs ffmpeg on a downloaded segment with a hard wall-clock limit."""

    def __init__(self, ffmpeg_path: Optional[str] = None, timeout: float = config.TRANSCODE_TIMEOUT):
        self._ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    @property
    def ffmpeg_path(self) -> str:
        return self._ffmpeg_path or get_ffmpeg_path()

    async def transcode(self, options: TranscodeOptions) -> str:
        """Produce ``options.output_path`` and delete the input on success."""
        args = options.to_args()
        mode = 're-encode' if options.requires_reencode else 'stream copy'
        logger.info(f"Transcoding {options.input_path} ({mode}, crop={options.crop_ratio.value})")

        try:
            await run_process(self.ffmpeg_path, args, timeout=self.timeout, label='ffmpeg')
        except ProcessTimeoutError as e:
            self._discard(options.output_path)
            raise TranscodeError(f"Transcode timed out after {e.timeout:g}s")
        except ProcessError as e:
            self._discard(options.output_path)
            raise TranscodeError(f"Transcode failed: {e.describe()}")
        except RuntimeError as e:
            raise TranscodeError(str(e))

        if not os.path.isfile(options.output_path) or os.path.getsize(options.output_path) == 0:
            self._discard(options.output_path)
            raise TranscodeError("ffmpeg reported success but the output file is missing or empty")

        self._discard(options.input_path)
        return options.output_path

    def _discard(self, path: str) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")
