"""
Shared fixtures.

Pipeline tests run real subprocesses against small stand-ins for yt-dlp and
ffmpeg written into ``tmp_path``; they record their arguments so tests can
inspect the command lines.
"""

import json
import os
import stat
import sys
import textwrap

import pytest

import config
from models.requests import ClipRequest
from services.clipper import ClipService
from services.downloader import SegmentDownloader
from services.job_store import MemoryJobRepository
from services.storage import LocalStorage
from services.transcoder import ClipTranscoder

SAMPLE_VTT = textwrap.dedent("""\
    WEBVTT
    Kind: captions
    Language: en

    00:00:10.000 --> 00:00:12.000
    before the clip

    00:01:30.000 --> 00:01:35.000
    inside the clip
    """)

FAKE_YTDLP = textwrap.dedent("""\
    import json, os, sys
    args = sys.argv[1:]
    with open(os.environ["FAKE_TOOL_LOG"] + ".yt-dlp.json", "w") as f:
        json.dump(args, f)
    mode = os.environ.get("FAKE_YTDLP_MODE", "ok")
    if mode == "fail":
        sys.stderr.write("ERROR: [youtube] abc: Sign in to confirm you are not a bot\\n")
        sys.exit(1)
    template = args[args.index("-o") + 1]
    if mode == "webm":
        open(template.replace("%(ext)s", "webm"), "wb").write(b"webm media")
    elif mode != "nothing":
        open(template.replace("%(ext)s", "mp4"), "wb").write(b"fake media")
    if "--write-subs" in args and mode == "badsubs":
        open(template.replace("%(ext)s", "en.vtt"), "wb").write(b"WEBVTT\\n\\n00:01:30.000 --> 00:01:35.000\\ncaf\\xe9\\n")
    elif "--write-subs" in args and mode != "nosubs":
        open(template.replace("%(ext)s", "en.vtt"), "w").write(os.environ["FAKE_VTT"])
    """)

FAKE_FFMPEG = textwrap.dedent("""\
    import json, os, sys, time
    args = sys.argv[1:]
    with open(os.environ["FAKE_TOOL_LOG"] + ".ffmpeg.json", "w") as f:
        json.dump(args, f)
    mode = os.environ.get("FAKE_FFMPEG_MODE", "ok")
    if mode == "slow":
        time.sleep(30)
    if mode == "fail":
        sys.stderr.write("Invalid data found when processing input\\n")
        sys.exit(1)
    if mode == "empty":
        open(args[-1], "wb").close()
        sys.exit(0)
    open(args[-1], "wb").write(b"transcoded clip")
    """)


def write_tool(directory, name, body):
    path = directory / name
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


def read_tool_args(tool_log, tool):
    with open(f"{tool_log}.{tool}.json") as f:
        return json.load(f)


def make_request(**overrides):
    payload = {
        "url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "startTime": "00:01:00.000",
        "endTime": "00:01:40.000",
        "userId": "user-1",
    }
    payload.update(overrides)
    return ClipRequest(**payload)


@pytest.fixture(autouse=True)
def no_cookies(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "COOKIES_SECRET_PATH", str(tmp_path / "missing-secret-cookies.txt"))
    monkeypatch.setattr(config, "COOKIES_PATH", str(tmp_path / "missing-cookies.txt"))
    monkeypatch.setattr(config, "YOUTUBE_COOKIES_CONTENT", None)
    monkeypatch.setattr(config, "YOUTUBE_PROXY_URL", None)


@pytest.fixture
def tools(tmp_path, monkeypatch):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    tool_log = str(tmp_path / "tool-args")
    monkeypatch.setenv("FAKE_TOOL_LOG", tool_log)
    monkeypatch.setenv("FAKE_VTT", SAMPLE_VTT)
    return {
        "ytdlp": write_tool(bin_dir, "yt-dlp", FAKE_YTDLP),
        "ffmpeg": write_tool(bin_dir, "ffmpeg", FAKE_FFMPEG),
        "log": tool_log,
    }


@pytest.fixture
def service(tmp_path, tools):
    work_root = tmp_path / "work"
    output_dir = tmp_path / "output"
    return ClipService(
        job_store=MemoryJobRepository(),
        storage=LocalStorage(str(output_dir)),
        downloader=SegmentDownloader(ytdlp_path=tools["ytdlp"], ffmpeg_path=tools["ffmpeg"], timeout=30),
        transcoder=ClipTranscoder(ffmpeg_path=tools["ffmpeg"], timeout=30),
        temp_dir=str(work_root),
        max_concurrent=2,
        max_queued=2,
    )
