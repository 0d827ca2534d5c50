"""
wiotp_gateway — Python gateway client for the Watson IoT Platform.

A gateway connects many end devices to the platform: it publishes events on
their behalf (and its own), subscribes to commands addressed to them, and
keeps those subscriptions alive across reconnects.

Quick start::

    import asyncio
    from wiotp_gateway import GatewayClient, GatewayOptions

    async def main():
        options = GatewayOptions(
            org_id="abc123",
            device_type="raspi-gw",
            device_id="gw-01",
            auth_method="token",
            auth_token="s3cr3t",
        )
        async with GatewayClient(options) as gw:
            gw.set_command_callback(lambda cmd: print(cmd.command, cmd.data))
            gw.subscribe_to_device_commands("sensor", "s-7")
            await gw.publish_device_event("sensor", "s-7", "reading", {"temp": 21.5})
            await gw.publish_gateway_event("status", {"up": True})
            await asyncio.sleep(60)

    asyncio.run(main())

Options can also be loaded from a properties file
(:meth:`GatewayOptions.from_file`) or ``WIOTP_*`` environment variables
(:meth:`GatewayOptions.from_env`).
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

from ._codec import decode, encode_event
from .api import GatewayApiClient
from .const import CommandTopic, Topic
from .error_reporting import init_error_reporting, tag_gateway
from .exceptions import (
    GatewayApiError,
    GatewayAuthError,
    GatewayConfigError,
    GatewayConnectionError,
    GatewayError,
    GatewayProtocolError,
    GatewayTimeoutError,
)
from .gateway import GatewayClient
from .models import Command, ConnectionState
from .options import GatewayOptions, Identity
from .registry import SubscriptionRegistry

__all__ = [  # noqa: RUF022
    # Version
    "__version__",
    # Codec helpers
    "decode",
    "encode_event",
    # Error reporting
    "init_error_reporting",
    "tag_gateway",
    # Topic helpers
    "CommandTopic",
    "Topic",
    # Configuration
    "GatewayOptions",
    "Identity",
    # Models
    "Command",
    "ConnectionState",
    "SubscriptionRegistry",
    # Clients
    "GatewayApiClient",
    "GatewayClient",
    # Exceptions (alphabetical)
    "GatewayApiError",
    "GatewayAuthError",
    "GatewayConfigError",
    "GatewayConnectionError",
    "GatewayError",
    "GatewayProtocolError",
    "GatewayTimeoutError",
]

# Opt-in error reporting: enabled only when WIOTP_SENTRY_DSN / SENTRY_DSN is set
init_error_reporting()
