"""Asynchronous HTTP transport for registry documents and tarballs.

This module provides :class:`RegistryClient`, a thin wrapper around
:class:`httpx.AsyncClient` that maps transport failures and error status
codes onto the :mod:`npmreadfile.exceptions` hierarchy:

- **404** -- :class:`~npmreadfile.exceptions.NotFoundError`.
- **other 4xx / 5xx** -- :class:`~npmreadfile.exceptions.UpstreamError`.
- **network errors and timeouts** -- :class:`~npmreadfile.exceptions.UpstreamError`.

Failed requests are not retried.  A fresh :class:`httpx.AsyncClient` is
opened per call so that a client instance can be shared across event loops
and concurrent requests without lifecycle bookkeeping.  Tests inject an
:class:`httpx.MockTransport` through the ``transport`` argument.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from npmreadfile import __version__
from npmreadfile.exceptions import NotFoundError, UpstreamError

logger = logging.getLogger(__name__)

REGISTRY_ACCEPT = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8, */*"
"""Accept header for package documents; prefers the abbreviated install format."""


class RegistryClient:
    """HTTP client for an npm-compatible registry.

    Args:
        timeout: Per-request timeout in seconds.
        verify_ssl: Verify TLS certificates.
        headers: Extra headers sent with every request.
        transport: Optional :class:`httpx.AsyncBaseTransport`, mainly for
            tests.

    Example::

        client = RegistryClient(timeout=10)
        doc = await client.get_json("https://registry.npmjs.org/lodash")
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._headers = {"User-Agent": f"npm-readfile/{__version__}", **(headers or {})}
        self._transport = transport

    def _open(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            verify=self._verify_ssl,
            headers=self._headers,
            follow_redirects=True,
            transport=self._transport,
        )

    async def get_json(self, url: str, accept: str = REGISTRY_ACCEPT) -> Any:
        """GET *url* and decode the body as JSON.

        Raises:
            NotFoundError: On HTTP 404.
            UpstreamError: On other error statuses, network failures, or a
                body that is not JSON.
        """
        logger.debug("GET %s", url)
        try:
            async with self._open() as client:
                response = await client.get(url, headers={"Accept": accept})
        except httpx.RequestError as exc:
            raise UpstreamError(f"Request to {url} failed: {exc}") from exc

        self._raise_for_status(response, url)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"Invalid JSON from {url}: {exc}") from exc

    @asynccontextmanager
    async def stream(self, url: str) -> AsyncIterator[httpx.Response]:
        """Open a streaming GET for *url*.

        Use as ``async with client.stream(url) as response`` and consume
        ``response.aiter_bytes()``.  Errors raised while reading the body
        are mapped to :class:`~npmreadfile.exceptions.UpstreamError` too.
        """
        logger.debug("GET (stream) %s", url)
        try:
            async with self._open() as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        await response.aread()
                    self._raise_for_status(response, url)
                    yield response
        except httpx.RequestError as exc:
            raise UpstreamError(f"Download of {url} failed: {exc}") from exc
        except httpx.StreamError as exc:
            raise UpstreamError(f"Download of {url} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, url: str) -> None:
        """Raise a typed exception for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        try:
            detail = response.json()
            if isinstance(detail, dict):
                msg = detail.get("error") or detail.get("message") or ""
            else:
                msg = str(detail)
        except Exception:
            msg = response.text[:200] if response.text else ""

        full_msg = f"HTTP {status} from {url}"
        if msg:
            full_msg = f"{full_msg}: {msg}"

        if status == 404:
            raise NotFoundError(full_msg)
        raise UpstreamError(full_msg)
