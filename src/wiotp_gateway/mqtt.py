"""
wiotp_gateway.mqtt — Async MQTT transport layer for the gateway client.

Wraps ``paho-mqtt`` in an asyncio-friendly interface. The transport owns the
paho client and its network thread; it knows nothing about topics, the
subscription registry or commands. Those live in
:class:`~wiotp_gateway.gateway.GatewayClient`, which registers two handlers:

- a message handler, called with ``(topic, payload)`` for every message;
- a connection-lost handler, called with the disconnect cause.

Both are invoked on the asyncio loop (bridged from the paho thread via
``loop.call_soon_threadsafe``).

Reconnection is not paho's job here: on an unexpected disconnect the paho
network loop is stopped and the connection-lost handler decides what to do.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    import paho.mqtt.client as _paho

from .const import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_PUBLISH_TIMEOUT,
    MQTT_KEEPALIVE,
    MQTT_PORT_TLS,
)
from .exceptions import GatewayAuthError, GatewayConnectionError, GatewayTimeoutError

logger = logging.getLogger(__name__)

#: CONNACK codes meaning the credentials were refused: MQTT 3.1.1 (4, 5)
#: and their paho v2 ``ReasonCode`` values (134, 135).
_AUTH_REFUSED_CODES: frozenset[int] = frozenset({4, 5, 134, 135})


class MqttTransport:
    """
    Asyncio-compatible MQTT transport for the Watson IoT Platform broker.

    Uses paho-mqtt v2 (``CallbackAPIVersion.VERSION2``) in its callback-based
    API, bridged to asyncio via ``loop.call_soon_threadsafe``.

    Example::

        transport = MqttTransport(
            host="abc123.messaging.internetofthings.ibmcloud.com",
            client_id="g:abc123:raspi-gw:gw-01",
            username="use-token-auth",
            password="s3cr3t",
        )
        transport.set_message_handler(lambda topic, payload: print(topic))
        await transport.connect()
        await transport.publish("iot-2/type/raspi-gw/id/gw-01/evt/status/fmt/json", b"{}")
        await transport.disconnect()
    """

    def __init__(
        self,
        host: str,
        client_id: str,
        port: int = MQTT_PORT_TLS,
        username: str | None = None,
        password: str | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT,
        keepalive: int = MQTT_KEEPALIVE,
        clean_session: bool = True,
        tls: bool = True,
        tls_ca_certs: str | None = None,
    ) -> None:
        self._host = host
        self._client_id = client_id
        self._port = port
        self._username = username
        self._password = password
        self._connect_timeout = connect_timeout
        self._publish_timeout = publish_timeout
        self._keepalive = keepalive
        self._clean_session = clean_session
        self._tls = tls
        self._tls_ca_certs = tls_ca_certs

        # paho Client, typed via the TYPE_CHECKING import
        self._client: _paho.Client | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._connected = asyncio.Event()
        # set on any CONNACK, accepted or refused
        self._connack = asyncio.Event()
        self._refused_rc: Any = None
        # True once the broker accepted the current session
        self._established = False
        # True while a caller-requested disconnect is in progress
        self._closing = False
        self._message_handler: Callable[[str, bytes], None] | None = None
        self._connection_lost_handler: Callable[[str], None] | None = None

    @property
    def host(self) -> str:
        """Broker host name."""
        return self._host

    @property
    def client_id(self) -> str:
        """MQTT client id."""
        return self._client_id

    @property
    def is_connected(self) -> bool:
        """True if the MQTT connection is established."""
        return self._connected.is_set()

    def set_message_handler(self, handler: Callable[[str, bytes], None] | None) -> None:
        """Register the callback invoked (on the asyncio loop) for every message."""
        self._message_handler = handler

    def set_connection_lost_handler(self, handler: Callable[[str], None] | None) -> None:
        """Register the callback invoked (on the asyncio loop) on an unexpected disconnect."""
        self._connection_lost_handler = handler

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Connect to the MQTT broker.

        A previous paho client (left behind by a lost connection) is
        stopped and replaced.

        Raises:
            GatewayConnectionError: If paho-mqtt is missing, the broker is unreachable
                                    or it refuses the connection.
            GatewayAuthError:       If the broker refuses the credentials.
            GatewayTimeoutError:    If the broker does not respond within timeout.
        """
        try:
            import paho.mqtt.client as mqtt  # noqa: PLC0415
        except ImportError as exc:
            raise GatewayConnectionError(
                "paho-mqtt is required: pip install python-wiotp-gateway"
            ) from exc

        self._loop = asyncio.get_running_loop()
        self._connected.clear()
        self._connack.clear()
        self._refused_rc = None
        self._established = False
        self._closing = False

        if self._client is not None:
            # paho.loop_stop() joins the network thread; run it off-loop.
            await self._loop.run_in_executor(None, self._client.loop_stop)

        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,  # type: ignore[attr-defined]
            client_id=self._client_id,
            protocol=mqtt.MQTTv311,
            clean_session=self._clean_session,
        )
        if self._username:
            self._client.username_pw_set(self._username, self._password)

        if self._tls:
            import ssl  # noqa: PLC0415

            # ca_certs=None falls back to the system trust store
            self._client.tls_set(ca_certs=self._tls_ca_certs, cert_reqs=ssl.CERT_REQUIRED)

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        try:
            self._client.connect(self._host, self._port, keepalive=self._keepalive)
        except OSError as exc:
            raise GatewayConnectionError(
                f"Cannot connect to MQTT broker {self._host}:{self._port}: {exc}"
            ) from exc

        self._client.loop_start()

        try:
            await asyncio.wait_for(self._connack.wait(), timeout=self._connect_timeout)
        except TimeoutError as exc:
            await self._loop.run_in_executor(None, self._client.loop_stop)
            raise GatewayTimeoutError(
                f"Timed out waiting for MQTT connection to {self._host}:{self._port}"
            ) from exc

        if self._refused_rc is not None:
            rc = self._refused_rc
            await self._loop.run_in_executor(None, self._client.loop_stop)
            if rc in _AUTH_REFUSED_CODES:
                raise GatewayAuthError(
                    f"MQTT broker {self._host} refused the credentials (rc={rc})"
                )
            raise GatewayConnectionError(
                f"MQTT broker {self._host} refused the connection (rc={rc})"
            )

        logger.info("MQTT connected to %s:%d (client_id=%s)", self._host, self._port, self._client_id)

    async def disconnect(self) -> None:
        """
        Cleanly disconnect from the MQTT broker.

        Sends an MQTT DISCONNECT, then joins the paho network thread in a
        thread-pool executor so the event loop is not blocked.
        """
        if self._client:
            self._closing = True
            self._client.disconnect()
            await asyncio.get_running_loop().run_in_executor(None, self._client.loop_stop)
            self._connected.clear()
            logger.info("MQTT disconnected from %s", self._host)

    # ------------------------------------------------------------------
    # Publish / subscribe
    # ------------------------------------------------------------------

    async def publish(
        self,
        topic: str,
        payload: bytes,
        qos: int = 0,
        retain: bool = False,
    ) -> None:
        """
        Publish *payload* to *topic* and wait for the broker acknowledgment.

        The blocking ``wait_for_publish`` runs in the default executor so
        concurrent publishers do not serialise on the event loop.

        Raises:
            GatewayConnectionError: If not connected or the publish is rejected.
            GatewayTimeoutError:    If the acknowledgment does not arrive in time.
        """
        if self._client is None or not self.is_connected:
            raise GatewayConnectionError("Not connected to MQTT broker. Call connect() first.")
        try:
            info = self._client.publish(topic, payload, qos=qos, retain=retain)
        except ValueError as exc:
            # wildcard topic, invalid QoS or oversized payload
            raise GatewayConnectionError(f"Publish to {topic} rejected: {exc}") from exc
        if info.rc != 0:
            raise GatewayConnectionError(f"Publish to {topic} rejected (rc={info.rc})")
        try:
            await asyncio.get_running_loop().run_in_executor(
                None, info.wait_for_publish, self._publish_timeout
            )
        except (RuntimeError, ValueError) as exc:
            raise GatewayConnectionError(f"Publish to {topic} failed: {exc}") from exc
        if not info.is_published():
            raise GatewayTimeoutError(
                f"Publish to {topic} not acknowledged within {self._publish_timeout}s"
            )
        logger.debug("→ MQTT [%s] %s", topic, payload[:160])

    def subscribe(self, topic: str, qos: int = 0) -> bool:
        """
        Request a subscription to *topic* at *qos*.

        Never raises: failures are logged and reported as ``False``.
        """
        if self._client is None or not self.is_connected:
            logger.warning("Cannot subscribe to %s: not connected", topic)
            return False
        try:
            rc, _mid = self._client.subscribe(topic, qos=qos)
        except ValueError as exc:
            logger.warning("Subscribe to %s rejected: %s", topic, exc)
            return False
        if rc != 0:
            logger.warning("Subscribe to %s failed rc=%s", topic, rc)
            return False
        logger.debug("Subscribed: %s (qos=%d)", topic, qos)
        return True

    # ------------------------------------------------------------------
    # paho-mqtt callbacks (called from paho thread → bridge to asyncio)
    # ------------------------------------------------------------------

    def _on_connect(
        self,
        client: Any,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        props: Any,
    ) -> None:
        """
        paho-mqtt v2 on_connect callback.

        ``reason_code`` is a ``ReasonCode`` object under paho v2;
        ``getattr(..., "value", ...)`` normalises it to an ``int``. Either
        outcome wakes the pending :meth:`connect`.
        """
        rc = getattr(reason_code, "value", reason_code)
        if rc == 0:
            self._established = True
            if self._loop:
                self._loop.call_soon_threadsafe(self._connected.set)
        else:
            logger.error("MQTT connect refused rc=%s", rc)
            self._refused_rc = rc
        if self._loop:
            self._loop.call_soon_threadsafe(self._connack.set)

    def _on_disconnect(
        self,
        client: Any,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: Any,
        props: Any,
    ) -> None:
        """
        paho-mqtt v2 on_disconnect callback.

        An unexpected disconnect stops paho's own reconnect loop (``loop_stop``
        from the network thread only flags it to exit) and hands the cause to
        the connection-lost handler. A disconnect before the broker ever
        accepted the session is left to :meth:`connect` to report.
        """
        rc = getattr(reason_code, "value", reason_code)
        if self._loop:
            self._loop.call_soon_threadsafe(self._connected.clear)
        established, self._established = self._established, False
        if self._closing or not established:
            return
        logger.warning("MQTT connection lost rc=%s", rc)
        client.loop_stop()
        if self._loop and self._connection_lost_handler:
            self._loop.call_soon_threadsafe(self._connection_lost_handler, str(reason_code))

    def _on_message(self, client: Any, userdata: Any, msg: Any) -> None:
        """paho-mqtt on_message callback: forward ``(topic, payload)`` to the handler."""
        logger.debug("← MQTT [%s] %s", msg.topic, bytes(msg.payload)[:160])
        if self._loop and self._message_handler:
            self._loop.call_soon_threadsafe(self._message_handler, msg.topic, bytes(msg.payload))
