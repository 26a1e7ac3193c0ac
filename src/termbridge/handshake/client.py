"""HTTP handshake client.

Posts the connection request to the backend and returns the session id
that the channel endpoint is keyed on. Mirrors the backend's REST
surface: ``POST /connect`` and ``GET /health``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from termbridge.domain.errors import HandshakeError
from termbridge.domain.models import ConnectionRequest, HandshakeResponse
from termbridge.protocol import build_channel_url

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Connection failed"


class HandshakeClient:
    """Negotiates sessions with the backend over HTTP.

    Example usage::

        async with HandshakeClient("http://localhost:8080") as client:
            session_id = await client.connect(request)
            url = client.channel_url(session_id)
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        timeout: float = 10.0,
        connect_path: str = "/connect",
        channel_path: str = "/ws",
        health_path: str = "/health",
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._connect_path = connect_path
        self._channel_path = channel_path
        self._health_path = health_path
        self._verify = verify
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                verify=self._verify,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def connect(self, request: ConnectionRequest) -> str:
        """Run the handshake and return the allocated session id.

        Raises:
            HandshakeError: On network failure, a non-2xx status, a
                malformed response, or a backend-reported failure. A
                message supplied by the backend is carried verbatim.
        """
        client = self._get_client()
        try:
            resp = await client.post(self._connect_path, json=request.to_payload())
        except httpx.HTTPError as e:
            raise HandshakeError(f"{GENERIC_FAILURE}: {e}") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise HandshakeError(
                f"{GENERIC_FAILURE}: backend answered HTTP {resp.status_code}"
            ) from e

        try:
            result = HandshakeResponse.model_validate(body)
        except ValidationError as e:
            raise HandshakeError(f"{GENERIC_FAILURE}: malformed backend response") from e

        if not result.success:
            logger.info("Handshake refused for %s: %s", request.display_name, result.message)
            raise HandshakeError(result.message or GENERIC_FAILURE, backend_message=result.message)
        if resp.is_error:
            raise HandshakeError(f"{GENERIC_FAILURE}: backend answered HTTP {resp.status_code}")
        if not result.session_id:
            raise HandshakeError("Backend returned no session id")

        logger.info(
            "Handshake succeeded for %s:%d [%s]",
            request.display_name, request.port, result.session_id,
        )
        return result.session_id

    async def health(self) -> dict[str, Any]:
        """Fetch the backend's health document."""
        client = self._get_client()
        try:
            resp = await client.get(self._health_path)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise HandshakeError(f"Health check failed: {e}") from e

    def channel_url(self, session_id: str) -> str:
        """The channel endpoint for ``session_id``."""
        return build_channel_url(self._base_url, self._channel_path, session_id)

    async def __aenter__(self) -> HandshakeClient:
        self._get_client()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.aclose()
