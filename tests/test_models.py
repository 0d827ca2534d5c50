"""Tests for wiotp_gateway.models — Command decoding and ConnectionState."""

from __future__ import annotations

from datetime import UTC, datetime
import json

import pytest

from wiotp_gateway.exceptions import GatewayProtocolError
from wiotp_gateway.models import Command, ConnectionState


def _body(payload) -> bytes:
    return json.dumps(payload).encode()


class TestCommandFromMessage:
    def test_json_command(self):
        payload = _body({"ts": "2026-10-18T09:15:02.123+00:00", "d": {"delay": 5}})
        cmd = Command.from_message("foo", "bar", "reboot", "json", payload)
        assert cmd.device_type == "foo"
        assert cmd.device_id == "bar"
        assert cmd.command == "reboot"
        assert cmd.format == "json"
        assert cmd.timestamp == datetime(2026, 10, 18, 9, 15, 2, 123000, tzinfo=UTC)
        assert cmd.data == {"delay": 5}
        assert cmd.payload == payload

    def test_json_without_d_uses_whole_body(self):
        body = {"ts": "2026-10-18T09:15:02Z", "delay": 5}
        cmd = Command.from_message("foo", "bar", "reboot", "json", _body(body))
        assert cmd.data == body

    def test_missing_ts_raises(self):
        with pytest.raises(GatewayProtocolError, match="no timestamp"):
            Command.from_message("foo", "bar", "reboot", "json", _body({"d": {}}))

    def test_bad_ts_raises(self):
        with pytest.raises(GatewayProtocolError):
            Command.from_message("foo", "bar", "reboot", "json", _body({"ts": "soon"}))

    def test_invalid_json_raises(self):
        with pytest.raises(GatewayProtocolError):
            Command.from_message("foo", "bar", "reboot", "json", b"{not json")

    def test_non_object_body_raises(self):
        with pytest.raises(GatewayProtocolError, match="not a JSON object"):
            Command.from_message("foo", "bar", "reboot", "json", b"[1, 2]")

    def test_non_json_format_kept_opaque(self):
        before = datetime.now(UTC)
        cmd = Command.from_message("foo", "bar", "upload", "text", b"hello")
        assert cmd.format == "text"
        assert cmd.data == b"hello"
        assert cmd.timestamp >= before


class TestCommandToDict:
    def test_to_dict_json(self):
        payload = _body({"ts": "2026-10-18T09:15:02.123+00:00", "d": [1]})
        cmd = Command.from_message("foo", "bar", "reboot", "json", payload)
        assert cmd.to_dict() == {
            "type": "foo",
            "id": "bar",
            "command": "reboot",
            "format": "json",
            "timestamp": "2026-10-18T09:15:02.123000+00:00",
            "data": [1],
        }

    def test_to_dict_decodes_bytes(self):
        cmd = Command.from_message("foo", "bar", "upload", "text", b"hello")
        d = cmd.to_dict()
        assert d["data"] == "hello"
        json.dumps(d)  # must be serialisable


class TestConnectionState:
    def test_values(self):
        assert {s.value for s in ConnectionState} == {"disconnected", "connecting", "connected"}
