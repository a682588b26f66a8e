"""
Source lookups that do not download media: available formats and metadata.
"""

import re
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, parse_qs

import isodate
from googleapiclient.discovery import build
from yt_dlp import YoutubeDL

import config
from services.downloader import USER_AGENT, resolve_cookies_file
from services.errors import ProbeError
from utils.timecodes import format_duration

logger = logging.getLogger(__name__)


def extract_youtube_id(url: str) -> Optional[str]:
    parsed = urlparse(url)
    if 'v=' in (parsed.query or ''):
        video_id = parse_qs(parsed.query).get('v')
        if video_id and len(video_id[0]) == 11:
            return video_id[0]
    match = re.search(r'(?:youtu\.be/|embed/|shorts/|/v/)([A-Za-z0-9_-]{11})', url)
    if match:
        return match.group(1)
    return None


def iso_duration_to_seconds(iso_duration: str) -> int:
    """YouTube Data API durations such as ``PT1H2M10S``; 0 when unparseable."""
    try:
        duration = isodate.parse_duration(iso_duration)
    except (isodate.ISO8601Error, TypeError, ValueError):
        return 0
    if isinstance(duration, isodate.Duration):
        # Years and months have no fixed length without a reference date
        duration = duration.totimedelta(start=datetime.now())
    return int(duration.total_seconds())


def summarize_formats(formats: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    One entry per video height, best first.

    At each height a format that already carries audio wins over a
    video-only one; ties go to the higher bitrate.
    """
    best: Dict[int, Dict[str, Any]] = {}
    for fmt in formats or []:
        height = fmt.get('height')
        if not height or fmt.get('vcodec') in (None, 'none') or not fmt.get('format_id'):
            continue
        if (fmt.get('protocol') or '').startswith('mhtml'):
            continue
        has_audio = fmt.get('acodec') not in (None, 'none')
        rank = (has_audio, fmt.get('tbr') or 0)
        current = best.get(height)
        if current is None or rank > current['rank']:
            best[height] = {'rank': rank, 'format': fmt}

    options = []
    for height in sorted(best, reverse=True):
        fmt = best[height]['format']
        fps = fmt.get('fps')
        label = f"{height}p"
        if fps and fps > 30:
            label += f"{int(round(fps))}"
        if fmt.get('ext'):
            label += f" ({fmt['ext']})"
        options.append({'format_id': str(fmt['format_id']), 'label': label})
    return options


class SourceProbe:
    """Wraps yt-dlp's Python API and the YouTube Data API for lookups."""

    def __init__(self, timeout: float = config.PROBE_TIMEOUT, api_key: Optional[str] = config.YOUTUBE_API_KEY):
        self.timeout = timeout
        self.api_key = api_key
        self._youtube = None

    def _ydl_options(self) -> Dict[str, Any]:
        opts = {
            'quiet': True,
            'no_warnings': True,
            'skip_download': True,
            'noplaylist': True,
            'socket_timeout': 20,
            'nocheckcertificate': True,
            'user_agent': USER_AGENT,
        }
        if config.YOUTUBE_PROXY_URL:
            opts['proxy'] = config.YOUTUBE_PROXY_URL
        cookies = resolve_cookies_file()
        if cookies:
            opts['cookiefile'] = cookies
        return opts

    def _extract_info_sync(self, url: str) -> Dict[str, Any]:
        with YoutubeDL(self._ydl_options()) as ydl:
            return ydl.extract_info(url, download=False) or {}

    async def _extract_info(self, url: str) -> Dict[str, Any]:
        loop = asyncio.get_event_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._extract_info_sync, url),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise ProbeError(f"Looking up the video timed out after {self.timeout:g}s")
        except Exception as e:
            logger.error(f"yt-dlp lookup failed for {url}: {e}")
            raise ProbeError("Unable to access this video. Please check the URL and try again.")

    async def get_formats(self, url: str) -> List[Dict[str, str]]:
        logger.info(f"Fetching formats for: {url}")
        info = await self._extract_info(url)
        return summarize_formats(info.get('formats') or [])

    def _youtube_service(self):
        if self._youtube is None:
            self._youtube = build('youtube', 'v3', developerKey=self.api_key, cache_discovery=False)
        return self._youtube

    def _youtube_info_sync(self, video_id: str) -> Optional[Dict[str, Any]]:
        response = self._youtube_service().videos().list(
            part="snippet,contentDetails",
            id=video_id
        ).execute()
        if not response.get('items'):
            return None
        item = response['items'][0]
        snippet = item['snippet']
        thumbnails = snippet.get('thumbnails', {})
        thumbnail = (thumbnails.get('high') or thumbnails.get('default') or {}).get('url')
        return {
            'title': snippet.get('title', 'Unknown'),
            'description': snippet.get('description'),
            'duration': format_duration(iso_duration_to_seconds(item['contentDetails'].get('duration', 'PT0S'))),
            'uploader': snippet.get('channelTitle'),
            'thumbnail': thumbnail,
        }

    async def get_video_info(self, url: str) -> Dict[str, Any]:
        """Title, description, duration (HH:MM:SS), uploader and thumbnail."""
        video_id = extract_youtube_id(url)
        if self.api_key and video_id:
            loop = asyncio.get_event_loop()
            try:
                info = await asyncio.wait_for(
                    loop.run_in_executor(None, self._youtube_info_sync, video_id),
                    timeout=self.timeout,
                )
                if info:
                    return info
                logger.warning(f"YouTube API returned no items for {video_id}, falling back to yt-dlp")
            except Exception as e:
                logger.warning(f"YouTube API lookup failed: {e}. Falling back to yt-dlp")

        info = await self._extract_info(url)
        duration = info.get('duration')
        return {
            'title': info.get('title') or 'Unknown',
            'description': info.get('description'),
            'duration': format_duration(duration) if duration else None,
            'uploader': info.get('uploader'),
            'thumbnail': info.get('thumbnail'),
        }
