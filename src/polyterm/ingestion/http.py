"""Shared async HTTP client for all upstream families."""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from polyterm.errors import UpstreamMalformed, UpstreamUnavailable

log = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 15.0


class UpstreamClient:
    """Thin wrapper over one ``httpx.AsyncClient``.

    Every call is bounded by the client timeout. Transport failures and non-2xx
    statuses raise ``UpstreamUnavailable`` (with ``status`` when there was a
    response); bodies that are not JSON raise ``UpstreamMalformed``.

    If an external client is passed in, it won't be closed by ``close()``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ):
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
            follow_redirects=True,
        )

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", url, params=_clean_params(params))

    async def post_json(self, url: str, body: dict[str, Any]) -> Any:
        return await self._request("POST", url, json=body)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            log.warning("upstream_transport_error", method=method, url=url, error=str(e))
            raise UpstreamUnavailable(f"{method} {url} failed: {e}", url=url) from e
        if resp.status_code < 200 or resp.status_code >= 300:
            log.warning("upstream_status", method=method, url=str(resp.url), status=resp.status_code)
            raise UpstreamUnavailable(
                f"{method} {url} returned {resp.status_code}",
                url=str(resp.url),
                status=resp.status_code,
            )
        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            log.warning("upstream_malformed", method=method, url=str(resp.url), error=str(e))
            raise UpstreamMalformed(f"{method} {url} returned a non-JSON body", url=str(resp.url)) from e

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    """Drop unset params and render booleans the way the upstream APIs expect."""
    if params is None:
        return None
    out: dict[str, Any] = {}
    for key, value in params.items():
        if value is None or value == "":
            continue
        out[key] = str(value).lower() if isinstance(value, bool) else value
    return out
