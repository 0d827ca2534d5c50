"""
wiotp_gateway.gateway — GatewayClient: publish events and receive commands as a gateway.

A gateway connects to the Watson IoT Platform broker once and then:

- publishes events for itself and for the devices connected behind it;
- subscribes to commands addressed to itself (automatically) or to any of
  those devices (:meth:`GatewayClient.subscribe_to_device_commands`);
- hands decoded commands to a single registered callback.

Every subscription is recorded in a :class:`~wiotp_gateway.registry.SubscriptionRegistry`
and the whole registry is replayed after each successful (re)connect, so a
dropped connection never loses a subscription.

Usage::

    async with GatewayClient(GatewayOptions.from_file("gateway.properties")) as gw:
        gw.set_command_callback(lambda cmd: print(cmd.command, cmd.data))
        gw.subscribe_to_device_commands("sensor", "s-7")
        ok = await gw.publish_device_event("sensor", "s-7", "reading", {"temp": 21.5})
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from ._codec import encode_event
from .api import GatewayApiClient
from .const import (
    ALL_COMMANDS,
    AUTH_METHOD_GATEWAY,
    AUTH_METHOD_TOKEN,
    CLIENT_ID_DELIMITER,
    DEFAULT_FORMAT,
    GATEWAY_CLIENT_PREFIX,
    QUICKSTART_ORG,
    TOKEN_AUTH_USERNAME,
    VALID_QOS,
    Topic,
)
from .error_reporting import tag_gateway
from .exceptions import GatewayConfigError, GatewayError, GatewayProtocolError
from .models import Command, ConnectionState
from .mqtt import MqttTransport
from .options import GatewayOptions, Identity
from .registry import SubscriptionRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from types import TracebackType

logger = logging.getLogger(__name__)


class GatewayClient:
    """
    MQTT client used by a gateway to talk to the Watson IoT Platform.

    Construction validates the identity and fails fast; no connection is
    attempted until :meth:`connect` is awaited.

    Args:
        options: :class:`~wiotp_gateway.options.GatewayOptions` or a mapping
                 accepted by :meth:`GatewayOptions.from_dict`.

    Raises:
        GatewayConfigError: If the organization id is missing or cannot be
            derived from the auth key, if quickstart is requested, if the
            device type / id is missing, or if the auth method is not ``token``.
    """

    def __init__(self, options: GatewayOptions | Mapping[str, Any]) -> None:
        if not isinstance(options, GatewayOptions):
            options = GatewayOptions.from_dict(options)

        org_id = options.resolve_org_id()
        if org_id is None:
            raise GatewayConfigError("Invalid auth key: cannot derive an organization id")
        if org_id.lower() == QUICKSTART_ORG:
            raise GatewayConfigError("There is no quickstart support for gateways")
        if not options.device_type or not options.device_id:
            raise GatewayConfigError("Gateway device type and device id are required")

        if options.auth_method is None:
            username, password = None, None
        elif options.auth_method != AUTH_METHOD_TOKEN:
            raise GatewayConfigError(f"Unsupported authentication method: {options.auth_method}")
        else:
            username, password = TOKEN_AUTH_USERNAME, options.auth_token

        self._options = options
        self._identity = Identity(org_id, options.device_type, options.device_id)
        self._client_id = CLIENT_ID_DELIMITER.join(
            (GATEWAY_CLIENT_PREFIX, org_id, options.device_type, options.device_id)
        )
        self._transport = MqttTransport(
            host=options.broker_host(org_id),
            client_id=self._client_id,
            port=options.effective_port,
            username=username,
            password=password,
            keepalive=options.keepalive,
            clean_session=options.clean_session,
            tls=options.secure,
            tls_ca_certs=options.tls_ca_certs,
        )
        self._transport.set_message_handler(self._on_message)
        self._transport.set_connection_lost_handler(self._on_connection_lost)
        tag_gateway(self._identity, self._client_id)

        self._registry = SubscriptionRegistry()
        self._command_callback: Callable[[Command], Any] | None = None
        self._callback_lock = threading.Lock()
        self._state = ConnectionState.DISCONNECTED
        self._connect_lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._message_count = 0

        self.api = GatewayApiClient(options.merged(auth_method=AUTH_METHOD_GATEWAY))
        """REST API client authenticated with this gateway's credentials."""

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GatewayClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Identity:
        """Gateway identity (org id, device type, device id)."""
        return self._identity

    @property
    def client_id(self) -> str:
        """MQTT client id, ``g:{org}:{type}:{id}``."""
        return self._client_id

    @property
    def state(self) -> ConnectionState:
        """Current connection lifecycle state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """True if connected to the broker."""
        return self._state is ConnectionState.CONNECTED and self._transport.is_connected

    @property
    def message_count(self) -> int:
        """Number of events published and acknowledged since construction."""
        return self._message_count

    @property
    def subscriptions(self) -> list[tuple[str, int]]:
        """Snapshot of every registered ``(topic, qos)`` subscription."""
        return self._registry.entries()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Connect to the broker and subscribe every registered topic.

        The gateway's own command topic (all commands, JSON, QoS 0) is
        registered first. Concurrent calls are serialised; a call made while
        already connected returns immediately.

        Raises:
            GatewayConnectionError: If the broker cannot be reached or refuses.
            GatewayAuthError:       If the broker refuses the credentials.
            GatewayTimeoutError:    If the broker does not answer in time.
        """
        async with self._connect_lock:
            if self.is_connected:
                logger.debug("Already connected (client_id=%s)", self._client_id)
                return
            self._state = ConnectionState.CONNECTING
            try:
                await self._transport.connect()
            except GatewayError:
                self._state = ConnectionState.DISCONNECTED
                raise
            self._state = ConnectionState.CONNECTED
            logger.info("Gateway connected (client_id=%s)", self._client_id)

            self._registry.register(
                Topic.command(self._identity.device_type, self._identity.device_id), 0
            )
            self._resubscribe_all()

    async def disconnect(self) -> None:
        """Disconnect from the broker and close the REST API session."""
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        await self._transport.disconnect()
        self._state = ConnectionState.DISCONNECTED
        await self.api.disconnect()

    def _resubscribe_all(self) -> None:
        """Subscribe every registry entry once; a failure never stops the loop."""
        entries = self._registry.entries()
        logger.info("Subscribing to %d registered topic(s)", len(entries))
        for topic, qos in entries:
            logger.debug("%s = %d", topic, qos)
            if not self._transport.subscribe(topic, qos):
                logger.warning("Subscription to %s failed; will retry on next reconnect", topic)

    def _on_connection_lost(self, cause: str) -> None:
        """Transport callback (on the asyncio loop): schedule the reconnect."""
        if self._reconnect_task is not None and not self._reconnect_task.done():
            logger.debug("Reconnect already pending; ignoring connection lost: %s", cause)
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._handle_connection_lost(cause)
        )

    async def _handle_connection_lost(self, cause: str) -> None:
        """
        Reconnect after an unexpected disconnect and replay the registry.

        Topics are replayed only once :meth:`connect` succeeds. A failed
        reconnect is logged and leaves the client disconnected.
        """
        logger.warning("Connection lost: %s", cause)
        if not self._transport.is_connected:
            self._state = ConnectionState.DISCONNECTED
        try:
            await self.connect()
        except GatewayError as exc:
            logger.error("Reconnect failed: %s", exc)

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish_gateway_event(self, event: str, data: Any, qos: int = 0) -> bool:
        """Publish an event on behalf of the gateway itself."""
        return await self.publish_device_event(
            self._identity.device_type, self._identity.device_id, event, data, qos
        )

    async def publish_device_event(
        self,
        device_type: str,
        device_id: str,
        event: str,
        data: Any,
        qos: int = 0,
    ) -> bool:
        """
        Publish an event on behalf of a device connected through the gateway.

        The payload is ``{"ts": <ISO-8601>, "d": data}`` on topic
        ``iot-2/type/{device_type}/id/{device_id}/evt/{event}/fmt/json``,
        never retained. Waits for the broker acknowledgment.

        Args:
            device_type: Device type.
            device_id:   Device id.
            event:       Event name.
            data:        JSON-serialisable payload data.
            qos:         Quality of Service (0, 1 or 2).

        Returns:
            ``True`` if the broker acknowledged the publish. ``False`` when
            not connected or on any send failure; nothing is raised.
        """
        if not self.is_connected:
            logger.debug("Not connected; dropping event %s for %s/%s", event, device_type, device_id)
            return False
        if qos not in VALID_QOS:
            logger.error("Invalid QoS %r for event %s; not publishing", qos, event)
            return False

        topic = Topic.event(device_type, device_id, event)
        try:
            payload = encode_event(data)
        except (TypeError, ValueError) as exc:
            logger.error("Cannot encode event %s for %s: %s", event, topic, exc)
            return False

        logger.debug("Topic   = %s", topic)
        logger.debug("Payload = %s", payload[:160])
        try:
            await self._transport.publish(topic, payload, qos=qos, retain=False)
        except GatewayError as exc:
            logger.error("Publish to %s failed: %s", topic, exc)
            return False
        self._message_count += 1
        return True

    # ------------------------------------------------------------------
    # Subscribe
    # ------------------------------------------------------------------

    def subscribe_to_device_commands(
        self,
        device_type: str,
        device_id: str,
        command: str = ALL_COMMANDS,
        fmt: str = DEFAULT_FORMAT,
        qos: int = 0,
    ) -> bool:
        """
        Subscribe to commands for a device, on behalf of that device.

        The topic is recorded in the registry first, so it is (re)subscribed
        on every future connect even if this call cannot subscribe now.

        Args:
            device_type: Device type.
            device_id:   Device id.
            command:     Command name (default ``"+"``, all commands).
            fmt:         Message format (default ``"json"``).
            qos:         Quality of Service (0, 1 or 2).

        Returns:
            ``True`` if the transport accepted the subscription now.

        Raises:
            ValueError: If *qos* is not 0, 1 or 2.
        """
        if qos not in VALID_QOS:
            raise ValueError(f"QoS must be 0, 1 or 2, got {qos!r}")
        topic = Topic.command(device_type, device_id, command, fmt)
        self._registry.register(topic, qos)
        if not self.is_connected:
            logger.debug("Not connected; %s will be subscribed on connect", topic)
            return False
        return self._transport.subscribe(topic, qos)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_command_callback(self, callback: Callable[[Command], Any] | None) -> None:
        """
        Register the single handler for decoded commands (``None`` removes it).

        The handler is called synchronously on the asyncio loop. Without a
        handler, incoming messages are not decoded at all.
        """
        with self._callback_lock:
            self._command_callback = callback

    def _on_message(self, topic: str, payload: bytes) -> None:
        """Transport callback: decode a command message and dispatch it."""
        with self._callback_lock:
            callback = self._command_callback
        if callback is None:
            return

        fields = Topic.parse_command(topic)
        if fields is None:
            return

        try:
            command = Command.from_message(
                fields.device_type, fields.device_id, fields.command, fields.format, payload
            )
        except GatewayProtocolError as exc:
            logger.warning("Command is not formatted properly, so not processing: %s", exc)
            return

        logger.debug("Command received: %s", command)
        try:
            callback(command)
        except Exception:  # noqa: BLE001
            logger.exception("Command callback failed for %s", topic)
