import textwrap

import pytest

from services.errors import SubtitleError
from services.subtitles import OFFSET_MARKER, shift_vtt, shift_vtt_file


def vtt(*cues):
    return "WEBVTT\n\n" + "\n\n".join(cues) + "\n"


def test_shifts_cue_by_clip_start():
    shifted = shift_vtt(vtt("00:01:30.000 --> 00:01:35.000\nhello"), offset=60.0)
    assert "00:00:30.000 --> 00:00:35.000" in shifted
    assert "hello" in shifted


def test_drops_cues_that_end_before_the_clip():
    shifted = shift_vtt(vtt(
        "00:00:10.000 --> 00:00:12.000\ngone",
        "00:01:05.000 --> 00:01:06.000\nkept",
    ), offset=60.0)
    assert "gone" not in shifted
    assert "00:00:05.000 --> 00:00:06.000" in shifted


def test_clamps_cue_straddling_the_clip_start():
    shifted = shift_vtt(vtt("00:00:58.000 --> 00:01:02.500\nstraddle"), offset=60.0)
    assert "00:00:00.000 --> 00:00:02.500" in shifted


def test_duration_drops_late_cues_and_clamps_end():
    shifted = shift_vtt(vtt(
        "00:01:08.000 --> 00:01:15.000\nruns past the end",
        "00:01:20.000 --> 00:01:22.000\nafter the end",
    ), offset=60.0, duration=10.0)
    assert "00:00:08.000 --> 00:00:10.000" in shifted
    assert "after the end" not in shifted


def test_keeps_cue_settings_identifiers_and_hourless_timings():
    shifted = shift_vtt(vtt("intro\n01:30.000 --> 01:31.000 align:start position:0%\nhi"), offset=60.0)
    assert "intro\n00:00:30.000 --> 00:00:31.000 align:start position:0%\nhi" in shifted


def test_shifts_inline_word_timestamps():
    shifted = shift_vtt(vtt("00:01:30.000 --> 00:01:32.000\nhey<00:01:31.000><c> there</c>"), offset=60.0)
    assert "hey<00:00:31.000><c> there</c>" in shifted


def test_refuses_to_shift_twice():
    once = shift_vtt(vtt("00:01:30.000 --> 00:01:35.000\nhello"), offset=60.0)
    assert OFFSET_MARKER in once
    with pytest.raises(SubtitleError):
        shift_vtt(once, offset=60.0)


def test_rejects_non_webvtt_text():
    with pytest.raises(SubtitleError):
        shift_vtt("1\n00:00:01,000 --> 00:00:02,000\nsrt cue\n", offset=0.0)


def test_shift_vtt_file_rewrites_in_place(tmp_path):
    path = tmp_path / "clip.en.vtt"
    path.write_text(textwrap.dedent("""\
        WEBVTT
        Kind: captions

        00:01:30.000 --> 00:01:35.000
        hello
        """), encoding="utf-8")

    shift_vtt_file(str(path), offset=60.0)

    content = path.read_text(encoding="utf-8")
    assert content.startswith("WEBVTT\nKind: captions")
    assert "00:00:30.000 --> 00:00:35.000" in content


def test_shift_vtt_file_missing_file(tmp_path):
    with pytest.raises(SubtitleError):
        shift_vtt_file(str(tmp_path / "nope.vtt"), offset=1.0)


def test_accepts_byte_order_mark_before_header():
    shifted = shift_vtt("\ufeff" + vtt("00:01:30.000 --> 00:01:35.000\nhello"), offset=60.0)
    assert shifted.startswith("WEBVTT")
    assert "00:00:30.000 --> 00:00:35.000" in shifted


def test_shift_vtt_file_undecodable_bytes(tmp_path):
    path = tmp_path / "clip.en.vtt"
    path.write_bytes(b"WEBVTT\n\n00:01:30.000 --> 00:01:35.000\ncaf\xe9\n")

    with pytest.raises(SubtitleError, match="Could not read subtitles"):
        shift_vtt_file(str(path), offset=60.0)
