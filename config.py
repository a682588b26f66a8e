"""
Configuration module for the Clippa backend.
Centralizes all environment variables and application constants.
"""

import os
import tempfile
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# =============================================================================
# Server Configuration
# =============================================================================

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3001"))
RELOAD = os.getenv("RELOAD", "false").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "info")
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "false").lower() == "true"
LOG_FILE_NAME = os.getenv("LOG_FILE_NAME", "clippa_api.log")

# =============================================================================
# Cleanup Configuration
# =============================================================================

# Cleanup interval in seconds (default: 1 hour)
CLEANUP_INTERVAL = int(os.getenv("CLEANUP_INTERVAL", "3600"))

# Job and artifact retention time in hours (default: 24 hours)
FILE_RETENTION_HOURS = int(os.getenv("FILE_RETENTION_HOURS", "24"))

# =============================================================================
# Concurrency Configuration
# =============================================================================

# Pipelines allowed to run at the same time
MAX_CONCURRENT_JOBS = int(os.getenv("MAX_CONCURRENT_JOBS", "3"))

# Accepted jobs allowed to wait for a free slot; beyond this requests get 429
MAX_QUEUED_JOBS = int(os.getenv("MAX_QUEUED_JOBS", "10"))

# FFmpeg thread count for processing
FFMPEG_THREADS = int(os.getenv("FFMPEG_THREADS", "4"))

# yt-dlp concurrent fragment downloads
YTDL_CONCURRENT_FRAGMENTS = int(os.getenv("YTDL_CONCURRENT_FRAGMENTS", "8"))

# =============================================================================
# Timeouts and Limits (in seconds)
# =============================================================================

DOWNLOAD_TIMEOUT = int(os.getenv("DOWNLOAD_TIMEOUT", "900"))
TRANSCODE_TIMEOUT = int(os.getenv("TRANSCODE_TIMEOUT", "600"))
PROBE_TIMEOUT = int(os.getenv("PROBE_TIMEOUT", "30"))

# Maximum clip duration: 30 minutes
MAX_CLIP_DURATION = int(os.getenv("MAX_CLIP_DURATION", "1800"))

# =============================================================================
# Paths
# =============================================================================

# Temporary directory for per-job work directories
TEMP_DIR = os.getenv("TEMP_DIR", tempfile.gettempdir())

# JSON job records (JOB_STORE_BACKEND=file)
JOBS_DIR = os.getenv("JOBS_DIR", os.path.join(TEMP_DIR, "clippa_jobs"))

# Finished clips that are served by this backend instead of object storage
OUTPUT_DIR = os.getenv("OUTPUT_DIR", os.path.join(TEMP_DIR, "clippa_output"))

# =============================================================================
# Job Store Configuration
# =============================================================================

# One of: memory, file, supabase
JOB_STORE_BACKEND = os.getenv("JOB_STORE_BACKEND", "memory").lower()

# =============================================================================
# Object Storage Configuration
# =============================================================================

SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip()
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "").strip()
SUPABASE_BUCKET = os.getenv("SUPABASE_BUCKET", "videos")
SUPABASE_JOBS_TABLE = os.getenv("SUPABASE_JOBS_TABLE", "clip_jobs")

# Clips larger than this stay on local disk and are streamed by the backend
STORAGE_MAX_UPLOAD_MB = float(os.getenv("STORAGE_MAX_UPLOAD_MB", "50"))

# =============================================================================
# Tool Configuration
# =============================================================================

# yt-dlp executable (installed as a console script with the yt-dlp package)
YTDLP_PATH = os.getenv("YTDLP_PATH", "yt-dlp")

# Highest resolution picked by the default format selector
MAX_DOWNLOAD_HEIGHT = int(os.getenv("MAX_DOWNLOAD_HEIGHT", "1080"))

# Subtitle languages requested from yt-dlp
SUBTITLE_LANGS = os.getenv("SUBTITLE_LANGS", "en.*,en")

# Encoder settings used whenever a clip has to be re-encoded
VIDEO_PRESET = os.getenv("VIDEO_PRESET", "veryfast")
VIDEO_CRF = int(os.getenv("VIDEO_CRF", "23"))
VIDEO_MAX_BITRATE = os.getenv("VIDEO_MAX_BITRATE", "8M")
AUDIO_BITRATE = os.getenv("AUDIO_BITRATE", "128k")

# =============================================================================
# YouTube Configuration
# =============================================================================

# Optional proxy URL for source site requests
YOUTUBE_PROXY_URL = os.getenv("YOUTUBE_PROXY_URL")

# Cookies file mounted as a deployment secret (read-only)
COOKIES_SECRET_PATH = os.getenv("COOKIES_SECRET_PATH", "/etc/secrets/cookies.txt")

# Local cookies file (Netscape format) used during development
COOKIES_PATH = os.getenv("COOKIES_PATH", "cookies.txt")

# Content of a cookies file (Base64 encoded, optional)
YOUTUBE_COOKIES_CONTENT = os.getenv("YOUTUBE_COOKIES_CONTENT")

# YouTube Data API key used for video metadata (optional)
YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY")
