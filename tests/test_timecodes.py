import pytest

from utils.timecodes import format_duration, format_timestamp, parse_timestamp


@pytest.mark.parametrize("value, expected", [
    ("00:01:30", 90.0),
    ("00:01:30.250", 90.25),
    ("1:02:03", 3723.0),
    ("02:05", 125.0),
    ("02:05.5", 125.5),
    ("45", 45.0),
    (" 00:00:07.125 ", 7.125),
])
def test_parse_timestamp_accepts_supported_forms(value, expected):
    assert parse_timestamp(value) == expected


@pytest.mark.parametrize("value", ["", "abc", "1:2:3:4", "00:61", "00:75:00", "-5", "00:01:30,000"])
def test_parse_timestamp_rejects_malformed_values(value):
    with pytest.raises(ValueError):
        parse_timestamp(value)


def test_format_timestamp_pads_and_keeps_milliseconds():
    assert format_timestamp(90) == "00:01:30.000"
    assert format_timestamp(3723.456) == "01:02:03.456"
    assert format_timestamp(-3) == "00:00:00.000"


def test_format_duration():
    assert format_duration(3730) == "01:02:10"
    assert format_duration(0) == "00:00:00"
