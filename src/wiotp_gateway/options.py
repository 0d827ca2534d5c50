"""
wiotp_gateway.options — Gateway configuration and identity.

Options can be built directly, from a mapping (old-style ``org``/``type``/``id``
keys or new-style ``Organization-ID``/``Device-Type``/``Device-ID`` keys),
from a Java-style properties file, or from ``WIOTP_*`` environment variables.

Example properties file::

    # gateway.properties
    Organization-ID = abc123
    Device-Type = raspi-gw
    Device-ID = gw-01
    Authentication-Method = token
    Authentication-Token = s3cr3t
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .const import (
    API_BASE_URL_TMPL,
    BROKER_HOST_TMPL,
    DEFAULT_DOMAIN,
    MQTT_KEEPALIVE,
    MQTT_PORT,
    MQTT_PORT_TLS,
    QUICKSTART_ORG,
)
from .exceptions import GatewayConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

#: Recognised mapping keys (old and new style) → GatewayOptions field name.
_KEY_ALIASES: dict[str, str] = {
    "org": "org_id",
    "Organization-ID": "org_id",
    "type": "device_type",
    "Device-Type": "device_type",
    "id": "device_id",
    "Device-ID": "device_id",
    "auth-method": "auth_method",
    "Authentication-Method": "auth_method",
    "auth-token": "auth_token",
    "Authentication-Token": "auth_token",
    "auth-key": "auth_key",
    "API-Key": "auth_key",
    "domain": "domain",
    "Domain": "domain",
    "port": "port",
    "Port": "port",
    "secure": "secure",
    "Secure": "secure",
    "clean-session": "clean_session",
    "Clean-Session": "clean_session",
    "keepalive": "keepalive",
    "tls-ca-certs": "tls_ca_certs",
}

#: Environment variable → GatewayOptions field name.
_ENV_VARS: dict[str, str] = {
    "WIOTP_ORG_ID": "org_id",
    "WIOTP_DEVICE_TYPE": "device_type",
    "WIOTP_DEVICE_ID": "device_id",
    "WIOTP_AUTH_METHOD": "auth_method",
    "WIOTP_AUTH_TOKEN": "auth_token",
    "WIOTP_AUTH_KEY": "auth_key",
    "WIOTP_DOMAIN": "domain",
    "WIOTP_PORT": "port",
}

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _trimmed(value: Any) -> str | None:
    """Strip whitespace; empty strings become ``None``."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise GatewayConfigError(f"Option {key!r} must be a boolean, got {value!r}")


def _as_int(value: Any, key: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise GatewayConfigError(f"Option {key!r} must be an integer, got {value!r}") from exc


@dataclass(frozen=True)
class Identity:
    """Immutable gateway identity: ``{org_id, device_type, device_id}``."""

    org_id: str
    device_type: str
    device_id: str


@dataclass
class GatewayOptions:
    """
    Connection and identity settings for a gateway.

    Args:
        org_id:        Organization id. When empty it is derived from
                       ``auth_key`` (see :meth:`resolve_org_id`).
        device_type:   Gateway device type.
        device_id:     Gateway device id.
        auth_method:   ``"token"`` (the only MQTT method gateways support) or
                       ``None`` for no credentials.
        auth_token:    Authentication token sent as the MQTT password.
        auth_key:      API key; its characters 3-8 carry the org id.
        domain:        Platform domain (default ``internetofthings.ibmcloud.com``).
        port:          Broker port; ``None`` picks 8883 (secure) or 1883.
        secure:        Use TLS for the broker connection (default ``True``).
        clean_session: MQTT clean-session flag.
        keepalive:     MQTT keepalive interval in seconds.
        tls_ca_certs:  CA bundle path used to verify the broker certificate.
    """

    org_id: str | None = None
    device_type: str | None = None
    device_id: str | None = None
    auth_method: str | None = None
    auth_token: str | None = None
    auth_key: str | None = None
    domain: str = DEFAULT_DOMAIN
    port: int | None = None
    secure: bool = True
    clean_session: bool = True
    keepalive: int = MQTT_KEEPALIVE
    tls_ca_certs: str | None = None

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> GatewayOptions:
        """
        Build options from a mapping of old- or new-style keys.

        Field names (``org_id``, ``device_type`` ...) are accepted too.
        Unknown keys are ignored. String values are whitespace-trimmed and
        empty strings count as unset.
        """
        field_names = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, raw in values.items():
            name = _KEY_ALIASES.get(key, key if key in field_names else None)
            if name is None:
                logger.debug("Ignoring unknown option %r", key)
                continue
            value = _trimmed(raw) if not isinstance(raw, (bool, int)) else raw
            if value is None:
                continue
            if name in ("secure", "clean_session"):
                value = _as_bool(value, key)
            elif name in ("port", "keepalive"):
                value = _as_int(value, key)
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: str | Path) -> GatewayOptions:
        """
        Load options from a Java-style properties file.

        Lines are ``key=value`` or ``key: value``; blank lines and lines
        starting with ``#`` or ``!`` are skipped.

        Raises:
            GatewayConfigError: If the file cannot be read.
        """
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise GatewayConfigError(f"Cannot read options file {path}: {exc}") from exc

        values: dict[str, str] = {}
        for line in text.splitlines():
            stripped = line.strip()
            if not stripped or stripped[0] in "#!":
                continue
            sep = min((i for i in (stripped.find("="), stripped.find(":")) if i >= 0), default=-1)
            if sep < 0:
                logger.warning("Skipping malformed line in %s: %r", path, stripped)
                continue
            values[stripped[:sep].strip()] = stripped[sep + 1 :].strip()
        return cls.from_dict(values)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewayOptions:
        """Load options from ``WIOTP_*`` environment variables."""
        env = os.environ if environ is None else environ
        return cls.from_dict({field: env[var] for var, field in _ENV_VARS.items() if var in env})

    def merged(self, **overrides: Any) -> GatewayOptions:
        """Return a copy with every non-``None`` override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def resolve_org_id(self) -> str | None:
        """
        Return the organization id for this gateway.

        An explicit ``org_id`` wins. Otherwise the org id is characters 3-8
        (1-indexed) of an auth key at least 8 characters long; a shorter key
        yields ``None``. With no auth key at all the result is
        ``"quickstart"``.
        """
        org = _trimmed(self.org_id)
        if org:
            return org
        key = _trimmed(self.auth_key)
        if key and key != QUICKSTART_ORG:
            if len(key) >= 8:
                return key[2:8]
            return None
        return QUICKSTART_ORG

    @property
    def effective_port(self) -> int:
        """Configured port, or the default for the chosen security mode."""
        if self.port is not None:
            return self.port
        return MQTT_PORT_TLS if self.secure else MQTT_PORT

    def broker_host(self, org_id: str) -> str:
        """MQTT broker host name for *org_id*."""
        return BROKER_HOST_TMPL.format(org=org_id, domain=self.domain)

    def api_base_url(self, org_id: str) -> str:
        """REST API base URL for *org_id*."""
        return API_BASE_URL_TMPL.format(org=org_id, domain=self.domain)
