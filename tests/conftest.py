"""
pytest fixtures and mock MQTT transport for wiotp-gateway tests.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from wiotp_gateway.options import GatewayOptions

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_options() -> GatewayOptions:
    """Valid token-authenticated gateway options."""
    return GatewayOptions(
        org_id="abc123",
        device_type="raspi-gw",
        device_id="gw-01",
        auth_method="token",
        auth_token="s3cr3t-token",
    )


@pytest.fixture
def sample_command_body() -> bytes:
    """A JSON command body with a valid timestamp."""
    return json.dumps({"ts": "2026-10-18T09:15:02.123+00:00", "d": {"delay": 5}}).encode()


@pytest.fixture
def mock_transport():
    """
    Patch MqttTransport inside wiotp_gateway.gateway.

    Yields ``(instance, MockTransport)``. The instance starts disconnected;
    awaiting ``connect()`` flips ``is_connected`` to True. ``subscribe``
    succeeds by default.
    """
    with patch("wiotp_gateway.gateway.MqttTransport") as MockT:  # noqa: N806
        instance = MagicMock()
        instance.is_connected = False

        async def _connect() -> None:
            instance.is_connected = True

        async def _disconnect() -> None:
            instance.is_connected = False

        instance.connect = AsyncMock(side_effect=_connect)
        instance.disconnect = AsyncMock(side_effect=_disconnect)
        instance.publish = AsyncMock()
        instance.subscribe = MagicMock(return_value=True)
        MockT.return_value = instance
        yield instance, MockT


@pytest.fixture
def mock_paho_client():
    """
    Return a MagicMock that pretends to be a paho-mqtt Client.

    Auto-fires the ``on_connect`` callback (paho v2 signature, rc=0) when
    ``connect()`` is called.
    """
    with patch("paho.mqtt.client.Client") as MockClient:  # noqa: N806
        mock_instance = MagicMock()
        MockClient.return_value = mock_instance

        def connect_side_effect(host, port, **kwargs):
            if mock_instance.on_connect:
                mock_instance.on_connect(mock_instance, None, None, 0, None)

        mock_instance.connect.side_effect = connect_side_effect
        mock_instance.loop_start = MagicMock()
        mock_instance.loop_stop = MagicMock()
        mock_instance.disconnect = MagicMock()
        mock_instance.subscribe = MagicMock(return_value=(0, 1))
        mock_instance.publish = MagicMock()

        yield mock_instance
