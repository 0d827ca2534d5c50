"""
wiotp_gateway.exceptions — Custom exception hierarchy for the wiotp-gateway library.

All exceptions raised by the library are subclasses of ``GatewayError``,
making it easy to catch them with a single ``except GatewayError`` clause.

Hierarchy::

    GatewayError
    ├── GatewayConfigError         # Invalid identity / auth configuration
    ├── GatewayConnectionError     # MQTT or HTTP connection failed
    │   └── GatewayTimeoutError    # Connection or publish acknowledgment timed out
    ├── GatewayProtocolError       # Malformed inbound command
    ├── GatewayAuthError           # REST authentication / authorisation failure
    └── GatewayApiError            # REST API returned an error status

Publish and subscribe failures on :class:`~wiotp_gateway.gateway.GatewayClient`
never surface as exceptions; they are reported via return values and logs.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all wiotp-gateway exceptions."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class GatewayConfigError(GatewayError, ValueError):
    """
    The gateway identity or authentication settings are unusable.

    Raised at construction time when the organization id is missing or
    cannot be derived from the auth key, when quickstart mode is requested
    (not supported for gateways), or when the authentication method is not
    ``token``. No connection is attempted.
    """


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class GatewayConnectionError(GatewayError):
    """
    MQTT broker connection or HTTP request failed at the network level.

    Also raised by the transport when a publish is rejected or is not
    acknowledged by the broker.
    """


class GatewayTimeoutError(GatewayConnectionError):
    """A connection attempt or publish acknowledgment timed out."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class GatewayProtocolError(GatewayError):
    """
    Unexpected or malformed data received from the broker.

    Raised when an inbound command payload cannot be parsed or carries no
    valid timestamp.
    """


# ---------------------------------------------------------------------------
# REST API
# ---------------------------------------------------------------------------


class GatewayAuthError(GatewayError):
    """The broker (CONNACK 4/5) or REST API (HTTP 401/403) rejected the credentials."""


class GatewayApiError(GatewayError):
    """
    The REST API returned an error response.

    Attributes:
        status: HTTP status code of the failed response.
    """

    def __init__(self, message: str, status: int = 0) -> None:
        super().__init__(message)
        self.status = status

    def __str__(self) -> str:
        if self.status:
            return f"GatewayApiError(status={self.status}): {self.args[0]}"
        return f"GatewayApiError: {self.args[0]}"
