"""HTTP transport for the Transifex API."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol

import httpx

from txsync.app_config import AppConfig
from txsync.errors import RequestFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Request:
    """One outbound call, relative to the API base URL."""
    method: str
    path: str
    payload: Optional[Dict[str, Any]] = None
    allow_not_found: bool = False


@dataclass(frozen=True)
class Response:
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


class Transport(Protocol):
    async def send(self, request: Request) -> Response:
        ...


class HttpxTransport:
    """Sends requests with basic auth and JSON bodies over a shared httpx client."""

    def __init__(self, config: AppConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(
            base_url=config.api_url,
            auth=httpx.BasicAuth(config.login or "", config.password or ""),
            headers={"Accept": "application/json"},
            timeout=config.request_timeout_seconds,
        )

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(self, request: Request) -> Response:
        """
        Send a request and decode its JSON body.

        Raises:
            RequestFailed: On connection errors or timeouts. HTTP error statuses
                are returned as responses so the caller can decide on retries.
        """
        logger.debug("%s %s", request.method, request.path)
        try:
            response = await self._client.request(request.method, request.path, json=request.payload)
        except httpx.HTTPError as e:
            raise RequestFailed(f"{request.method} {request.path} failed: {e}", url=request.path) from e

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.text
        return Response(status_code=response.status_code, headers=response.headers, body=body)
