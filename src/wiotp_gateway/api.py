"""
wiotp_gateway.api — GatewayApiClient: thin REST client for the Watson IoT Platform.

Created alongside every :class:`~wiotp_gateway.gateway.GatewayClient` from the
same options, with the ``gateway`` auth-method marker so that requests are
authenticated as the gateway itself (HTTP basic auth, username
``g/{org}/{type}/{id}``, password = auth token).

Only a handful of representative operations are exposed; anything else can be
reached through :meth:`GatewayApiClient.request`.

References:
    Watson IoT Platform HTTP API v0002 — ``https://{org}.internetofthings.ibmcloud.com/api/v0002``
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from .const import AUTH_METHOD_APIKEY, AUTH_METHOD_GATEWAY
from .exceptions import GatewayApiError, GatewayAuthError, GatewayConfigError, GatewayConnectionError

if TYPE_CHECKING:
    from types import TracebackType

    from .options import GatewayOptions

logger = logging.getLogger(__name__)


class GatewayApiClient:
    """
    Async REST API client authenticated with gateway (or API-key) credentials.

    Use as an async context manager, or call :meth:`connect` /
    :meth:`disconnect` manually. The HTTP session is also created lazily on
    the first request.

    Example::

        async with GatewayApiClient(options.merged(auth_method="gateway")) as api:
            device = await api.get_device("sensor", "s-7")

    Args:
        options:  Gateway options; ``auth_method`` selects the credentials
                  (``"gateway"`` or ``"apikey"``).
        base_url: Override the REST API base URL.
        timeout:  Total request timeout in seconds.

    Raises:
        GatewayConfigError: If no organization id can be resolved.
    """

    def __init__(
        self,
        options: GatewayOptions,
        base_url: str | None = None,
        timeout: float = 20.0,
    ) -> None:
        org_id = options.resolve_org_id()
        if not org_id:
            raise GatewayConfigError("Invalid auth key: cannot derive an organization id")
        self._org_id = org_id
        self._base_url = (base_url or options.api_base_url(org_id)).rstrip("/")
        self._auth = self._build_auth(options, org_id)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    @staticmethod
    def _build_auth(options: GatewayOptions, org_id: str) -> aiohttp.BasicAuth | None:
        method = (options.auth_method or "").lower()
        token = options.auth_token or ""
        if method == AUTH_METHOD_GATEWAY:
            username = f"g/{org_id}/{options.device_type}/{options.device_id}"
            return aiohttp.BasicAuth(username, token)
        if method == AUTH_METHOD_APIKEY:
            return aiohttp.BasicAuth(options.auth_key or "", token)
        return None

    @property
    def base_url(self) -> str:
        """REST API base URL."""
        return self._base_url

    @property
    def auth(self) -> aiohttp.BasicAuth | None:
        """Basic-auth credentials sent with every request (``None`` if anonymous)."""
        return self._auth

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GatewayApiClient:
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
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Create the HTTP session."""
        await self._get_session()

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                auth=self._auth,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        return self._session

    # ------------------------------------------------------------------
    # Request helper
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Send a REST request and return the parsed JSON body.

        Args:
            method: HTTP method (``"GET"``, ``"POST"``, ``"PUT"``, ``"DELETE"``).
            path:   API path relative to the base URL.
            body:   JSON body for non-GET requests.
            params: Query parameters.

        Returns:
            Decoded JSON, or ``None`` for empty responses.

        Raises:
            GatewayConnectionError: On network failure.
            GatewayAuthError:       On 401/403 responses.
            GatewayApiError:        On any other error status.
        """
        session = await self._get_session()
        request_method = getattr(session, method.lower(), None)
        if request_method is None:
            raise ValueError(f"Unsupported HTTP method: {method!r}")

        kwargs: dict[str, Any] = {"params": params}
        if method.upper() != "GET" and body is not None:
            kwargs["json"] = body

        url = self._base_url + path
        logger.debug("%s %s", method.upper(), url)
        try:
            async with request_method(url, **kwargs) as resp:
                if resp.status == 401:
                    raise GatewayAuthError(f"401 Unauthorized on {path}")
                if resp.status == 403:
                    raise GatewayAuthError(f"403 Forbidden on {path}")
                if resp.status >= 400:
                    detail = await resp.text()
                    raise GatewayApiError(
                        f"{method.upper()} {path} failed: {detail[:200]}", status=resp.status
                    )
                if resp.status == 204:
                    return None
                return await resp.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise GatewayConnectionError(f"Network error on {path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_organization_details(self) -> dict[str, Any]:
        """
        Get details of the organization the gateway belongs to.

        REST: ``GET /``
        """
        return await self.request("GET", "/")

    async def get_device(self, device_type: str, device_id: str) -> dict[str, Any]:
        """
        Get a device registered in the organization.

        REST: ``GET /device/types/{type}/devices/{id}``
        """
        return await self.request("GET", f"/device/types/{device_type}/devices/{device_id}")

    async def register_device_under_gateway(
        self,
        device_type: str,
        device_id: str,
        gateway_type: str,
        gateway_id: str,
        device_info: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Register a device that connects through the given gateway.

        REST: ``POST /device/types/{type}/devices``
        """
        body: dict[str, Any] = {
            "deviceId": device_id,
            "gatewayTypeId": gateway_type,
            "gatewayId": gateway_id,
        }
        if device_info:
            body["deviceInfo"] = device_info
        if metadata:
            body["metadata"] = metadata
        return await self.request("POST", f"/device/types/{device_type}/devices", body)
