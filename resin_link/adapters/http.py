"""Timeout-bounded HTTP client used by every backend adapter."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import aiohttp

from ..core.errors import DecodeError, HttpStatusError, RequestTimeoutError, TransportError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class HttpResponse:
    status: int
    body: bytes
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            DecodeError: If the body is not valid JSON.
        """
        try:
            return json.loads(self.body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise DecodeError(f"Malformed JSON response: {exc}") from exc

    def raise_for_status(self) -> None:
        if not self.ok:
            detail = self.text().strip()[:200]
            raise HttpStatusError(self.status, detail or None)


class BoundedHttpClient:
    """Wraps an aiohttp session so that no request outlives its timeout.

    The session is created without a transport timeout; the bound is enforced
    with :func:`asyncio.timeout` around the whole exchange (connect, headers and
    body), so even a peer that accepts the connection and never answers fails
    with :class:`RequestTimeoutError` close to the configured bound.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        session: Optional[aiohttp.ClientSession] = None,
        label: str = "backend",
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._label = label
        self._headers = dict(headers or {})
        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    def url_for(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self._base_url}{path}"

    async def send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        data: Any = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """Send a request and read the full response body.

        Args:
            method: HTTP verb.
            path: Path relative to the base URL.
            params: Optional query parameters.
            json_body: Optional JSON request payload.
            data: Optional form/body payload.
            timeout: Override for the client-wide bound, in seconds.

        Raises:
            RequestTimeoutError: If no complete response arrives within the bound.
            TransportError: On connection refusal, reset or other client errors.
        """
        bound = self._timeout if timeout is None else timeout
        url = self.url_for(path)
        session = await self._ensure_session()

        try:
            async with asyncio.timeout(bound):
                async with session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    data=data,
                    headers=self._headers,
                ) as response:
                    body = await response.read()
                    return HttpResponse(
                        status=response.status,
                        body=body,
                        headers=dict(response.headers),
                    )
        except TimeoutError as exc:
            LOGGER.warning(
                "%s %s %s timed out after %.3fs", self._label, method, url, bound
            )
            raise RequestTimeoutError(
                f"{self._label} {method} {url} timed out after {bound:.3f}s"
            ) from exc
        except (aiohttp.ClientError, OSError) as exc:
            LOGGER.debug("%s %s %s failed: %s", self._label, method, url, exc)
            raise TransportError(f"{self._label} {method} {url} failed: {exc}") from exc

    async def get(self, path: str, **kwargs: Any) -> HttpResponse:
        return await self.send("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> HttpResponse:
        return await self.send("POST", path, **kwargs)

    async def get_json(self, path: str, **kwargs: Any) -> Any:
        response = await self.get(path, **kwargs)
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session
