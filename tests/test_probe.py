import asyncio
from unittest.mock import MagicMock

import pytest

from services.errors import ProbeError
from services.probe import SourceProbe, extract_youtube_id, iso_duration_to_seconds, summarize_formats


@pytest.mark.parametrize("url, expected", [
    ("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42", "dQw4w9WgXcQ"),
    ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/shorts/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/embed/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://www.instagram.com/reel/C1a2b3c4d5e/", None),
])
def test_extract_youtube_id(url, expected):
    assert extract_youtube_id(url) == expected


def test_iso_duration_to_seconds():
    assert iso_duration_to_seconds("PT1H2M10S") == 3730
    assert iso_duration_to_seconds("PT45S") == 45
    assert iso_duration_to_seconds("PT1M30.5S") == 90
    assert iso_duration_to_seconds("P1W") == 7 * 24 * 3600
    assert iso_duration_to_seconds("P1DT1S") == 86401
    assert iso_duration_to_seconds("garbage") == 0


def test_summarize_formats_one_entry_per_height_best_first():
    formats = [
        {"format_id": "sb0", "height": 90, "vcodec": "none", "protocol": "mhtml"},
        {"format_id": "140", "vcodec": "none", "acodec": "mp4a.40.2", "ext": "m4a"},
        {"format_id": "136", "height": 720, "vcodec": "avc1", "acodec": "none", "ext": "mp4", "tbr": 2500},
        {"format_id": "22", "height": 720, "vcodec": "avc1", "acodec": "mp4a", "ext": "mp4", "tbr": 1200},
        {"format_id": "299", "height": 1080, "vcodec": "avc1", "acodec": "none", "ext": "mp4", "fps": 60, "tbr": 5000},
        {"format_id": "303", "height": 1080, "vcodec": "vp9", "acodec": "none", "ext": "webm", "fps": 60, "tbr": 4000},
    ]

    assert summarize_formats(formats) == [
        {"format_id": "299", "label": "1080p60 (mp4)"},
        {"format_id": "22", "label": "720p (mp4)"},
    ]


def test_summarize_formats_handles_missing_data():
    assert summarize_formats([]) == []
    assert summarize_formats([{"format_id": "x", "height": None}]) == []


def test_get_formats_uses_extracted_info(monkeypatch):
    probe = SourceProbe(timeout=5, api_key=None)
    monkeypatch.setattr(probe, "_extract_info_sync", lambda url: {
        "formats": [{"format_id": "18", "height": 360, "vcodec": "avc1", "acodec": "mp4a", "ext": "mp4"}],
    })

    assert asyncio.run(probe.get_formats("https://youtu.be/dQw4w9WgXcQ")) == [
        {"format_id": "18", "label": "360p (mp4)"},
    ]


def test_extraction_failure_becomes_probe_error(monkeypatch):
    probe = SourceProbe(timeout=5, api_key=None)

    def fail(url):
        raise RuntimeError("ERROR: Video unavailable")

    monkeypatch.setattr(probe, "_extract_info_sync", fail)

    with pytest.raises(ProbeError, match="Unable to access"):
        asyncio.run(probe.get_formats("https://youtu.be/dQw4w9WgXcQ"))


def test_video_info_from_yt_dlp_without_api_key(monkeypatch):
    probe = SourceProbe(timeout=5, api_key=None)
    monkeypatch.setattr(probe, "_extract_info_sync", lambda url: {
        "title": "Reel", "duration": 75, "uploader": "someone", "thumbnail": "https://img/1.jpg",
    })

    info = asyncio.run(probe.get_video_info("https://www.instagram.com/reel/C1a2b3c4d5e/"))

    assert info["title"] == "Reel"
    assert info["duration"] == "00:01:15"
    assert info["description"] is None


def test_video_info_prefers_youtube_api(monkeypatch):
    probe = SourceProbe(timeout=5, api_key="key")
    youtube = MagicMock()
    youtube.videos.return_value.list.return_value.execute.return_value = {
        "items": [{
            "snippet": {
                "title": "Never Gonna Give You Up",
                "description": "Official video",
                "channelTitle": "Rick Astley",
                "thumbnails": {"high": {"url": "https://i.ytimg.com/hq.jpg"}},
            },
            "contentDetails": {"duration": "PT3M33S"},
        }],
    }
    probe._youtube = youtube
    monkeypatch.setattr(probe, "_extract_info_sync", MagicMock(side_effect=AssertionError("not used")))

    info = asyncio.run(probe.get_video_info("https://youtu.be/dQw4w9WgXcQ"))

    youtube.videos.return_value.list.assert_called_once_with(part="snippet,contentDetails", id="dQw4w9WgXcQ")
    assert info == {
        "title": "Never Gonna Give You Up",
        "description": "Official video",
        "duration": "00:03:33",
        "uploader": "Rick Astley",
        "thumbnail": "https://i.ytimg.com/hq.jpg",
    }
