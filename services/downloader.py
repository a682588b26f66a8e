"""
Segment download through the yt-dlp command line tool.

Only the requested time range is fetched (``--download-sections``). The
output path is fixed up front from the job id so the produced file never has
to be discovered from yt-dlp's console output.
"""

import os
import base64
import shutil
import logging
from dataclasses import dataclass
from typing import List, Optional

import config
from models.requests import ClipRequest
from services.errors import DownloadError, ProcessError
from services.process_runner import run_process
from utils.ffmpeg_utils import get_ffmpeg_path, get_ytdlp_path
from utils.timecodes import format_timestamp

logger = logging.getLogger(__name__)

USER_AGENT = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
REFERER = 'https://www.youtube.com/'

MEDIA_EXTENSIONS = ('mp4', 'mkv', 'webm', 'mov', 'm4v')
PARTIAL_SUFFIXES = ('.part', '.ytdl', '.temp')


def build_format_selector(format_id: Optional[str] = None, max_height: int = config.MAX_DOWNLOAD_HEIGHT) -> str:
    """
    Build a yt-dlp format selector with graduated fallbacks.

    Prefers H.264 in mp4 up to ``max_height``, then any mp4 pair, then the
    best single file. A requested format id is tried first, paired with the
    best audio in case it is a video-only stream.
    """
    default = '/'.join([
        f'bestvideo[height<={max_height}][vcodec^=avc1][ext=mp4]+bestaudio[ext=m4a]',
        f'bestvideo[height<={max_height}][ext=mp4]+bestaudio[ext=m4a]',
        'bestvideo[ext=mp4]+bestaudio[ext=m4a]',
        'best[ext=mp4]',
        'best',
    ])
    if not format_id:
        return default
    return f'{format_id}+bestaudio[ext=m4a]/{format_id}+bestaudio/{format_id}/{default}'


def resolve_cookies_file() -> Optional[str]:
    """Return the first configured cookies file that exists, if any."""
    for candidate in (config.COOKIES_SECRET_PATH, config.COOKIES_PATH):
        if candidate and os.path.isfile(candidate):
            return candidate
    return None


def prepare_cookies(work_dir: str) -> Optional[str]:
    """
    Put a private, writable cookies file into the job's work directory.

    yt-dlp writes its cookie jar back on exit and secret mounts are
    read-only, so the file is always copied.
    """
    target = os.path.join(work_dir, 'cookies.txt')
    source = resolve_cookies_file()
    try:
        if source:
            shutil.copyfile(source, target)
            logger.info(f"Using cookies from {source}")
            return target
        if config.YOUTUBE_COOKIES_CONTENT:
            with open(target, 'wb') as f:
                f.write(base64.b64decode(config.YOUTUBE_COOKIES_CONTENT))
            logger.info("Using cookies from YOUTUBE_COOKIES_CONTENT")
            return target
    except (OSError, ValueError) as e:
        logger.warning(f"Could not prepare cookies file, continuing without: {e}")
    return None


@dataclass
class DownloadOptions:
    """Everything yt-dlp needs for one segment download."""

    url: str
    start: float
    end: float
    output_base: str
    format_selector: str
    subtitles: bool = False
    subtitle_langs: str = config.SUBTITLE_LANGS
    cookies_path: Optional[str] = None
    proxy: Optional[str] = None
    ffmpeg_location: Optional[str] = None
    concurrent_fragments: int = config.YTDL_CONCURRENT_FRAGMENTS

    def validate(self) -> None:
        if not self.url:
            raise DownloadError("A source URL is required")
        if self.start < 0 or self.end <= self.start:
            raise DownloadError(f"Invalid section {self.start}-{self.end}")
        if not self.output_base or not os.path.isabs(self.output_base):
            raise DownloadError("output_base must be an absolute path")
        if self.concurrent_fragments < 1:
            raise DownloadError("concurrent_fragments must be at least 1")

    @property
    def section(self) -> str:
        return f"*{format_timestamp(self.start)}-{format_timestamp(self.end)}"

    @property
    def output_template(self) -> str:
        return f"{self.output_base}.%(ext)s"

    @property
    def expected_path(self) -> str:
        return f"{self.output_base}.mp4"

    def to_args(self) -> List[str]:
        self.validate()
        args = [
            self.url,
            '-f', self.format_selector,
            '--download-sections', self.section,
            '-o', self.output_template,
            '--merge-output-format', 'mp4',
            '--remux-video', 'mp4',
            '--no-playlist',
            '--no-progress',
            '--no-check-certificates',
            '--no-warnings',
            '--add-header', f'referer:{REFERER}',
            '--add-header', f'user-agent:{USER_AGENT}',
            '--concurrent-fragments', str(self.concurrent_fragments),
        ]
        if self.ffmpeg_location:
            args.extend(['--ffmpeg-location', self.ffmpeg_location])
        if self.proxy:
            args.extend(['--proxy', self.proxy])
        if self.cookies_path:
            args.extend(['--cookies', self.cookies_path])
        if self.subtitles:
            args.extend([
                '--write-subs',
                '--write-auto-subs',
                '--sub-langs', self.subtitle_langs,
                '--sub-format', 'vtt',
            ])
        return args


@dataclass
class DownloadResult:
    video_path: str
    subtitle_path: Optional[str] = None


def find_media_file(options: DownloadOptions) -> Optional[str]:
    """Expected path first, then any finished media file sharing the base name."""
    if os.path.isfile(options.expected_path):
        return options.expected_path

    directory = os.path.dirname(options.output_base)
    prefix = os.path.basename(options.output_base) + '.'
    try:
        names = sorted(os.listdir(directory))
    except OSError:
        return None
    for name in names:
        if not name.startswith(prefix) or name.endswith(PARTIAL_SUFFIXES):
            continue
        if name.rsplit('.', 1)[-1].lower() in MEDIA_EXTENSIONS:
            path = os.path.join(directory, name)
            logger.info(f"Found downloaded file by directory scan: {path}")
            return path
    return None


def find_subtitle_file(options: DownloadOptions) -> Optional[str]:
    directory = os.path.dirname(options.output_base)
    prefix = os.path.basename(options.output_base) + '.'
    try:
        names = sorted(os.listdir(directory))
    except OSError:
        return None
    for name in names:
        if name.startswith(prefix) and name.endswith('.vtt'):
            return os.path.join(directory, name)
    return None


class SegmentDownloader:
    """Runs yt-dlp for one clip request inside a job work directory."""

    def __init__(self, ytdlp_path: Optional[str] = None, ffmpeg_path: Optional[str] = None,
                 timeout: float = config.DOWNLOAD_TIMEOUT):
        self._ytdlp_path = ytdlp_path
        self._ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    @property
    def ytdlp_path(self) -> str:
        return self._ytdlp_path or get_ytdlp_path()

    @property
    def ffmpeg_path(self) -> str:
        return self._ffmpeg_path or get_ffmpeg_path()

    def build_options(self, job_id: str, request: ClipRequest, work_dir: str) -> DownloadOptions:
        return DownloadOptions(
            url=request.url,
            start=request.start_seconds,
            end=request.end_seconds,
            output_base=os.path.join(os.path.abspath(work_dir), f"{job_id}.source"),
            format_selector=build_format_selector(request.format_id),
            subtitles=request.subtitles,
            cookies_path=prepare_cookies(work_dir),
            proxy=config.YOUTUBE_PROXY_URL,
            ffmpeg_location=self.ffmpeg_path,
        )

    async def download(self, job_id: str, request: ClipRequest, work_dir: str) -> DownloadResult:
        try:
            options = self.build_options(job_id, request, work_dir)
            await run_process(self.ytdlp_path, options.to_args(), timeout=self.timeout, label='yt-dlp')
        except ProcessError as e:
            raise DownloadError(f"Download failed: {e.describe()}")
        except RuntimeError as e:
            raise DownloadError(str(e))

        video_path = find_media_file(options)
        if not video_path:
            raise DownloadError("yt-dlp reported success but no output file was found")

        subtitle_path = find_subtitle_file(options) if request.subtitles else None
        if request.subtitles and not subtitle_path:
            logger.warning(f"Job {job_id}: no subtitles available for {request.url}")

        logger.info(f"Job {job_id}: downloaded {video_path}")
        return DownloadResult(video_path=video_path, subtitle_path=subtitle_path)
