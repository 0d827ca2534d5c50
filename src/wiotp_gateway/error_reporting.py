"""
wiotp_gateway.error_reporting — Opt-in Sentry/GlitchTip reporting for gateways.

Nothing is sent unless a DSN is configured (``WIOTP_SENTRY_DSN`` or
``SENTRY_DSN``) and ``sentry-sdk`` is installed. Once enabled:

- every :class:`~wiotp_gateway.gateway.GatewayClient` tags events with its
  org id, device type and client id (:func:`tag_gateway`);
- ``before_send`` strips gateway credentials (auth token, API key) and MQTT
  message bodies, which carry device data, from extras and breadcrumbs.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .options import Identity

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

#: Field names whose values are gateway credentials.
_CREDENTIAL_FIELDS: tuple[str, ...] = (
    "auth_token",
    "auth-token",
    "authentication-token",
    "auth_key",
    "auth-key",
    "api-key",
    "api_key",
    "password",
    "secret",
)

#: Field names whose values are MQTT message bodies.
_PAYLOAD_FIELDS: tuple[str, ...] = ("payload", "data", "d")

#: Log-message fragments that precede credentials or message bodies
#: (see the debug logs in ``gateway.py`` and ``mqtt.py``).
_SENSITIVE_MESSAGE_MARKERS: tuple[str, ...] = (
    "payload =",
    "mqtt [",
    "command received",
    "use-token-auth",
    "auth-token",
    "authentication-token",
    "api-key",
    "password",
)

_enabled = False


def init_error_reporting(
    dsn: str | None = None,
    environment: str = "production",
    enabled: bool = True,
) -> bool:
    """
    Initialise Sentry/GlitchTip error reporting.

    Args:
        dsn:         Sentry DSN. Falls back to ``WIOTP_SENTRY_DSN`` then
                     ``SENTRY_DSN``. ``WIOTP_SENTRY_DSN=""`` disables reporting.
        environment: Environment tag (production/development/testing).
        enabled:     Master switch; ``False`` skips initialisation.

    Returns:
        ``True`` if the SDK was initialised.
    """
    global _enabled  # noqa: PLW0603
    if not enabled:
        return False

    env_dsn = os.environ.get("WIOTP_SENTRY_DSN")
    if env_dsn == "":
        return False
    dsn = dsn or env_dsn or os.environ.get("SENTRY_DSN")
    if not dsn:
        return False

    try:
        import sentry_sdk  # noqa: PLC0415
    except ImportError:
        logger.debug("sentry-sdk not installed; error reporting disabled")
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            traces_sample_rate=0.1,
            send_default_pii=False,
            before_send=_scrub_event,  # type: ignore[arg-type, unused-ignore]
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to initialize error reporting: %s", exc)
        return False
    _enabled = True
    logger.debug("Error reporting initialized (dsn=%s...)", dsn[:30])
    return True


def tag_gateway(identity: Identity, client_id: str) -> None:
    """Tag future error reports with the gateway identity (no-op when disabled)."""
    if not _enabled:
        return
    import sentry_sdk  # noqa: PLC0415

    sentry_sdk.set_tag("wiotp.org_id", identity.org_id)
    sentry_sdk.set_tag("wiotp.device_type", identity.device_type)
    sentry_sdk.set_tag("wiotp.client_id", client_id)


def _is_credential(key: str) -> bool:
    k = key.lower()
    return any(field in k for field in _CREDENTIAL_FIELDS)


def _scrub_fields(values: dict[str, Any]) -> None:
    for key in list(values):
        if _is_credential(key) or key.lower() in _PAYLOAD_FIELDS:
            values[key] = REDACTED


def _scrub_event(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    """``before_send`` hook: remove gateway credentials and message bodies."""
    if isinstance(event.get("extra"), dict):
        _scrub_fields(event["extra"])

    for crumb in event.get("breadcrumbs", {}).get("values", []):
        message = crumb.get("message")
        if message is not None:
            lowered = str(message).lower()
            if any(marker in lowered for marker in _SENSITIVE_MESSAGE_MARKERS):
                crumb["message"] = REDACTED
        if isinstance(crumb.get("data"), dict):
            _scrub_fields(crumb["data"])

    return event
