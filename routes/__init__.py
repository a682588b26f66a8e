"""Routes package."""

from .clip import router as clip_router
from .video_info import router as video_info_router
from .health import router as health_router
from .app import router as app_router

__all__ = [
    'clip_router',
    'video_info_router',
    'health_router',
    'app_router',
]
