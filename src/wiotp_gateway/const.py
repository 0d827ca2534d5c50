"""
wiotp_gateway.const — Protocol constants for the Watson IoT Platform gateway interface.

All topic templates, port numbers, and default values used by the MQTT
transport, the gateway client and the REST API client.

Topic grammar (wire contract)::

    iot-2/type/{device_type}/id/{device_id}/evt/{event}/fmt/json       — publish
    iot-2/type/{device_type}/id/{device_id}/cmd/{command}/fmt/{format} — subscribe
"""

from __future__ import annotations

from typing import NamedTuple

# ---------------------------------------------------------------------------
# Broker
# ---------------------------------------------------------------------------

#: Default platform domain; the broker host is ``{org}.messaging.{domain}``.
DEFAULT_DOMAIN = "internetofthings.ibmcloud.com"

#: Broker host template.
BROKER_HOST_TMPL = "{org}.messaging.{domain}"

#: Broker plaintext port.
MQTT_PORT = 1883

#: Broker TLS port.
MQTT_PORT_TLS = 8883

#: Organization id that selects the unauthenticated quickstart service.
QUICKSTART_ORG = "quickstart"

# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

#: The only MQTT authentication method gateways support.
AUTH_METHOD_TOKEN = "token"

#: Auth-method marker passed to the REST API client for gateway credentials.
AUTH_METHOD_GATEWAY = "gateway"

#: Auth-method marker for API-key credentials on the REST API client.
AUTH_METHOD_APIKEY = "apikey"

#: MQTT username used with token authentication.
TOKEN_AUTH_USERNAME = "use-token-auth"

#: Separator between client id components (``g:{org}:{type}:{id}``).
CLIENT_ID_DELIMITER = ":"

#: Client id prefix identifying a gateway connection.
GATEWAY_CLIENT_PREFIX = "g"

# ---------------------------------------------------------------------------
# MQTT topic templates
# ---------------------------------------------------------------------------

#: Topic root shared by every device event and command.
TOPIC_ROOT = "iot-2"

#: Template for publishing device events (gateway → platform).
TOPIC_EVENT_TMPL = "iot-2/type/{device_type}/id/{device_id}/evt/{event}/fmt/json"

#: Template for device command subscriptions (platform → gateway).
TOPIC_COMMAND_TMPL = "iot-2/type/{device_type}/id/{device_id}/cmd/{command}/fmt/{fmt}"

#: Single-level wildcard matching every command name.
ALL_COMMANDS = "+"

#: Default message format.
DEFAULT_FORMAT = "json"

#: Valid MQTT quality-of-service levels.
VALID_QOS: frozenset[int] = frozenset({0, 1, 2})

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

#: MQTT keepalive interval in seconds.
MQTT_KEEPALIVE = 60

#: Default timeout (seconds) waiting for broker connection.
DEFAULT_CONNECT_TIMEOUT = 10.0

#: Default timeout (seconds) waiting for a publish acknowledgment.
DEFAULT_PUBLISH_TIMEOUT = 30.0

# ---------------------------------------------------------------------------
# REST API
# ---------------------------------------------------------------------------

#: REST API base URL template.
API_BASE_URL_TMPL = "https://{org}.{domain}/api/v0002"


# ---------------------------------------------------------------------------
# Topic helper
# ---------------------------------------------------------------------------


class CommandTopic(NamedTuple):
    """Fields captured from a command topic."""

    device_type: str
    device_id: str
    command: str
    format: str


class Topic:
    """
    Helper for building and decomposing Watson IoT Platform topic strings.

    Example::

        Topic.event("gw", "gw-01", "status")
        # "iot-2/type/gw/id/gw-01/evt/status/fmt/json"
        Topic.command("sensor", "s-7")
        # "iot-2/type/sensor/id/s-7/cmd/+/fmt/json"
        Topic.parse_command("iot-2/type/foo/id/bar/cmd/reboot/fmt/json")
        # CommandTopic(device_type="foo", device_id="bar", command="reboot", format="json")
    """

    @staticmethod
    def event(device_type: str, device_id: str, event: str) -> str:
        """Build a device event publish topic."""
        return TOPIC_EVENT_TMPL.format(device_type=device_type, device_id=device_id, event=event)

    @staticmethod
    def command(
        device_type: str,
        device_id: str,
        command: str = ALL_COMMANDS,
        fmt: str = DEFAULT_FORMAT,
    ) -> str:
        """Build a device command subscription topic."""
        return TOPIC_COMMAND_TMPL.format(
            device_type=device_type, device_id=device_id, command=command, fmt=fmt
        )

    @staticmethod
    def parse_command(topic: str) -> CommandTopic | None:
        """
        Extract the four command fields from a concrete command topic.

        Returns ``None`` if the topic does not have the exact shape
        ``iot-2/type/{t}/id/{i}/cmd/{c}/fmt/{f}`` with non-empty captures.
        """
        parts = topic.split("/")
        if len(parts) != 9:
            return None
        root, type_kw, device_type, id_kw, device_id, cmd_kw, command, fmt_kw, fmt = parts
        if (root, type_kw, id_kw, cmd_kw, fmt_kw) != (TOPIC_ROOT, "type", "id", "cmd", "fmt"):
            return None
        if not all((device_type, device_id, command, fmt)):
            return None
        return CommandTopic(device_type, device_id, command, fmt)
