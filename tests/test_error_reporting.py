"""Tests for wiotp_gateway.error_reporting — scrubbing, opt-in init, gateway tags."""

from __future__ import annotations

import sys
from unittest.mock import MagicMock

import pytest

from wiotp_gateway import error_reporting
from wiotp_gateway.error_reporting import (
    REDACTED,
    _scrub_event,
    init_error_reporting,
    tag_gateway,
)
from wiotp_gateway.gateway import GatewayClient
from wiotp_gateway.options import Identity

DSN = "https://k@example.invalid/1"


@pytest.fixture
def fake_sdk(monkeypatch):
    """Install a fake sentry_sdk module and reset the enabled flag."""
    sdk = MagicMock()
    monkeypatch.setitem(sys.modules, "sentry_sdk", sdk)
    monkeypatch.setattr(error_reporting, "_enabled", False)
    monkeypatch.delenv("WIOTP_SENTRY_DSN", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    return sdk


def _crumbs(*messages: str) -> dict:
    return {"breadcrumbs": {"values": [{"message": m} for m in messages]}}


class TestScrubEvent:
    def test_gateway_credentials_in_extra(self):
        event = {
            "extra": {
                "auth_token": "tok",
                "Authentication-Token": "tok",
                "API-Key": "a-abc123-xyz",
                "device_id": "gw-01",
            }
        }
        extra = _scrub_event(event, {})["extra"]
        assert extra["auth_token"] == REDACTED
        assert extra["Authentication-Token"] == REDACTED
        assert extra["API-Key"] == REDACTED
        assert extra["device_id"] == "gw-01"

    def test_payload_fields_redacted(self):
        event = {"extra": {"payload": b'{"ts":1}', "topic": "iot-2/type/a/id/b/evt/c/fmt/json"}}
        extra = _scrub_event(event, {})["extra"]
        assert extra["payload"] == REDACTED
        assert extra["topic"].startswith("iot-2/")

    @pytest.mark.parametrize(
        "message",
        [
            'Payload = b\'{"ts":"2026-10-18T09:15:02.123+00:00","d":{"temp":21.5}}\'',
            "→ MQTT [iot-2/type/sensor/id/s-7/evt/reading/fmt/json] b'{}'",
            "← MQTT [iot-2/type/foo/id/bar/cmd/reboot/fmt/json] b'{}'",
            "Command received: Command(device_type='foo', ...)",
            "Authentication-Token = s3cr3t",
        ],
    )
    def test_sensitive_breadcrumb_messages(self, message):
        event = _scrub_event(_crumbs(message), {})
        assert event["breadcrumbs"]["values"][0]["message"] == REDACTED

    def test_ordinary_breadcrumb_kept(self):
        event = _scrub_event(_crumbs("Gateway connected (client_id=g:abc123:gw:g1)"), {})
        assert event["breadcrumbs"]["values"][0]["message"].startswith("Gateway connected")

    def test_breadcrumb_data_scrubbed(self):
        event = {"breadcrumbs": {"values": [{"data": {"auth_key": "k", "d": {"x": 1}, "qos": 1}}]}}
        data = _scrub_event(event, {})["breadcrumbs"]["values"][0]["data"]
        assert data == {"auth_key": REDACTED, "d": REDACTED, "qos": 1}

    def test_event_without_extra_or_breadcrumbs(self):
        assert _scrub_event({"message": "hi"}, {}) == {"message": "hi"}


class TestInitErrorReporting:
    def test_disabled_flag(self, fake_sdk):
        assert init_error_reporting(dsn=DSN, enabled=False) is False
        fake_sdk.init.assert_not_called()

    def test_empty_env_var_disables(self, fake_sdk, monkeypatch):
        monkeypatch.setenv("WIOTP_SENTRY_DSN", "")
        monkeypatch.setenv("SENTRY_DSN", DSN)
        assert init_error_reporting() is False
        fake_sdk.init.assert_not_called()

    def test_no_dsn_is_noop(self, fake_sdk):
        assert init_error_reporting() is False
        fake_sdk.init.assert_not_called()

    def test_dsn_initializes_with_scrubber(self, fake_sdk):
        assert init_error_reporting(dsn=DSN, environment="testing") is True
        kwargs = fake_sdk.init.call_args.kwargs
        assert kwargs["environment"] == "testing"
        assert kwargs["send_default_pii"] is False
        assert kwargs["before_send"] is _scrub_event

    def test_sdk_failure_is_logged_not_raised(self, fake_sdk):
        fake_sdk.init.side_effect = RuntimeError("bad dsn")
        assert init_error_reporting(dsn=DSN) is False


class TestTagGateway:
    def test_noop_when_disabled(self, fake_sdk):
        tag_gateway(Identity("abc123", "gw", "g1"), "g:abc123:gw:g1")
        fake_sdk.set_tag.assert_not_called()

    def test_tags_identity_when_enabled(self, fake_sdk):
        init_error_reporting(dsn=DSN)
        tag_gateway(Identity("abc123", "gw", "g1"), "g:abc123:gw:g1")
        fake_sdk.set_tag.assert_any_call("wiotp.org_id", "abc123")
        fake_sdk.set_tag.assert_any_call("wiotp.device_type", "gw")
        fake_sdk.set_tag.assert_any_call("wiotp.client_id", "g:abc123:gw:g1")

    def test_gateway_client_tags_itself(self, fake_sdk, sample_options, mock_transport):
        init_error_reporting(dsn=DSN)
        GatewayClient(sample_options)
        fake_sdk.set_tag.assert_any_call("wiotp.client_id", "g:abc123:raspi-gw:gw-01")
