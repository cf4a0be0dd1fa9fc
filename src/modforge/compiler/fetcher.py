# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Download of URL-addressed modules.

A URL is fetched at most once per process lifetime. Loopback origins
(``localhost``, ``127.0.0.1``) are the exception: they are fetched on every
request so that local fixtures can change during development.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass, field

from modforge.compiler.errors import FetchError
from modforge.workspace.import_map import ImportMap

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

USER_AGENT = "modforge"
SLOW_FETCH_MS = 5000

_LOOPBACK_RE = re.compile(r"^http://(localhost|127\.0\.0\.1)(:\d+)?/", re.IGNORECASE)


@dataclass
class HttpResponse:
    """The parts of an HTTP response the fetcher needs."""

    status: int
    reason: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass
class FetchResult:
    """A downloaded remote module.

    Attributes:
        url: The requested URL (before import map substitution).
        resolved_url: The URL actually fetched.
        text: The decoded response body.
        content_type: The response ``Content-Type`` header, lower-cased.
    """

    url: str
    resolved_url: str
    text: str
    content_type: str = ""


Opener = Callable[[str], HttpResponse]


def is_loopback_url(url: str) -> bool:
    return bool(_LOOPBACK_RE.match(url))


def urllib_open(url: str) -> HttpResponse:
    """Issue a GET request with :mod:`urllib` and return the response.

    Non-2xx statuses are returned, not raised; transport failures raise
    :class:`urllib.error.URLError`.
    """
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        with urllib.request.urlopen(request) as response:
            return HttpResponse(
                status=response.status,
                reason=response.reason or "",
                headers={k.lower(): v for k, v in response.headers.items()},
                body=response.read(),
            )
    except urllib.error.HTTPError as exc:
        return HttpResponse(status=exc.code, reason=str(exc.reason or ""))


class RemoteFetcher:
    """Fetches remote modules with per-process deduplication.

    Args:
        import_map: Substitutions applied to a URL before it is requested.
        opener: Blocking function performing one GET request; run in a
            worker thread.
    """

    def __init__(self, import_map: ImportMap | None = None, *, opener: Opener = urllib_open) -> None:
        self.import_map = import_map if import_map is not None else ImportMap()
        self._opener = opener
        self._resolved: dict[str, FetchResult] = {}
        self._inflight: dict[str, asyncio.Future[FetchResult]] = {}
        self.request_count = 0

    def resolve_url(self, url: str) -> str:
        return self.import_map.resolve(url)

    def is_revalidated(self, url: str) -> bool:
        """Return True if *url* is fetched again on every request."""
        return is_loopback_url(self.resolve_url(url))

    async def fetch(self, url: str) -> FetchResult:
        """Return the content of *url*, downloading it if needed.

        Concurrent requests for one URL share a single download.

        Raises:
            FetchError: On a transport failure or a non-200 response.
        """
        resolved = self.resolve_url(url)
        revalidate = is_loopback_url(resolved)
        if not revalidate and url in self._resolved:
            return self._resolved[url]

        pending = self._inflight.get(url)
        if pending is not None:
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._download(url, resolved))
        self._inflight[url] = task
        try:
            result = await asyncio.shield(task)
        finally:
            if self._inflight.get(url) is task:
                del self._inflight[url]
        if not revalidate:
            self._resolved[url] = result
        return result

    # ################
    # Implementation
    # ################

    async def _download(self, url: str, resolved: str) -> FetchResult:
        if resolved != url:
            logger.info("Download %s (via %s)", url, resolved)
        else:
            logger.info("Download %s", url)
        self.request_count += 1
        started = time.perf_counter()
        try:
            response = await asyncio.to_thread(self._opener, resolved)
        except (urllib.error.URLError, OSError) as exc:
            raise FetchError(url, str(getattr(exc, "reason", exc))) from exc
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms >= SLOW_FETCH_MS:
            logger.warning("Slow download %s: %.0fms", resolved, elapsed_ms)
        else:
            logger.debug("Fetched %s in %.0fms (status %d)", resolved, elapsed_ms, response.status)
        if response.status != 200:
            raise FetchError(url, f"{response.status} - {response.reason}".rstrip(" -"))
        try:
            text = response.body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FetchError(url, f"response is not valid UTF-8: {exc}") from exc
        return FetchResult(
            url=url,
            resolved_url=resolved,
            text=text,
            content_type=response.headers.get("content-type", "").lower(),
        )
