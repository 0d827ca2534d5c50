"""Tests for wiotp_gateway._codec and the topic helpers in wiotp_gateway.const."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
import json

import pytest

from wiotp_gateway._codec import decode, encode_event, format_timestamp, parse_timestamp
from wiotp_gateway.const import CommandTopic, Topic


class TestEncodeEvent:
    def test_envelope_shape(self):
        when = datetime(2026, 10, 18, 9, 15, 2, 123456, tzinfo=UTC)
        raw = encode_event({"temp": 21.5}, when)
        assert raw == b'{"ts":"2026-10-18T09:15:02.123+00:00","d":{"temp":21.5}}'

    def test_default_timestamp_is_now(self):
        before = datetime.now(UTC) - timedelta(seconds=1)
        body = json.loads(encode_event([1, 2, 3]))
        assert parse_timestamp(body["ts"]) >= before
        assert body["d"] == [1, 2, 3]

    def test_null_data(self):
        body = json.loads(encode_event(None))
        assert body["d"] is None

    def test_unserialisable_raises_type_error(self):
        with pytest.raises(TypeError):
            encode_event({"when": datetime.now(UTC)})


class TestTimestamps:
    def test_format_millisecond_precision(self):
        when = datetime(2026, 1, 2, 3, 4, 5, 678999, tzinfo=UTC)
        assert format_timestamp(when) == "2026-01-02T03:04:05.678+00:00"

    def test_parse_iso_with_offset(self):
        ts = parse_timestamp("2026-10-18T11:15:02.123+02:00")
        assert ts.utcoffset() == timedelta(hours=2)
        assert ts.astimezone(UTC).hour == 9

    def test_parse_iso_zulu(self):
        ts = parse_timestamp("2026-10-18T09:15:02Z")
        assert ts.tzinfo is not None
        assert ts.astimezone(timezone.utc).hour == 9

    def test_parse_naive_assumed_utc(self):
        ts = parse_timestamp("2026-10-18T09:15:02")
        assert ts.tzinfo is UTC

    def test_parse_epoch_seconds(self):
        ts = parse_timestamp(0)
        assert ts == datetime(1970, 1, 1, tzinfo=UTC)

    @pytest.mark.parametrize("value", ["yesterday", "", None, True, {"a": 1}])
    def test_parse_invalid_raises(self, value):
        with pytest.raises(ValueError):
            parse_timestamp(value)


class TestDecode:
    def test_decode_object(self):
        assert decode(b'{"ts": 1, "d": 2}') == {"ts": 1, "d": 2}

    def test_decode_invalid_raises_value_error(self):
        with pytest.raises(ValueError, match="not valid JSON"):
            decode(b"not json")

    def test_decode_invalid_utf8_raises_value_error(self):
        with pytest.raises(ValueError):
            decode(b"\xff\xfe\x00")


class TestTopic:
    def test_event_topic(self):
        assert Topic.event("sensor", "s-7", "reading") == (
            "iot-2/type/sensor/id/s-7/evt/reading/fmt/json"
        )

    def test_command_topic_defaults(self):
        assert Topic.command("sensor", "s-7") == "iot-2/type/sensor/id/s-7/cmd/+/fmt/json"

    def test_command_topic_explicit(self):
        assert Topic.command("sensor", "s-7", "reboot", "xml") == (
            "iot-2/type/sensor/id/s-7/cmd/reboot/fmt/xml"
        )

    def test_parse_command(self):
        parsed = Topic.parse_command("iot-2/type/foo/id/bar/cmd/reboot/fmt/json")
        assert parsed == CommandTopic("foo", "bar", "reboot", "json")
        assert parsed.device_type == "foo"
        assert parsed.format == "json"

    @pytest.mark.parametrize(
        "topic",
        [
            "iot-2/type/foo/id/bar/evt/reading/fmt/json",
            "iot-2/type/foo/id/bar/cmd/reboot",
            "iot-2/type/foo/id/bar/cmd/reboot/fmt/json/extra",
            "iot-3/type/foo/id/bar/cmd/reboot/fmt/json",
            "iot-2/type//id/bar/cmd/reboot/fmt/json",
            "iot-2/type/foo/id/bar/cmd/reboot/fmt/",
            "",
        ],
    )
    def test_parse_non_command_returns_none(self, topic):
        assert Topic.parse_command(topic) is None
