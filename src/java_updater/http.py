"""Minimal HTTP transport built on :mod:`urllib.request`.

Requests carry a timeout and are retried a bounded number of times with
exponential backoff when the failure looks transient (connection errors,
malformed status lines, timeouts, 5xx responses). Client errors (4xx) fail
immediately. Retries only cover establishing the response; a body that breaks
or ends early mid-stream is reported as a :class:`NetworkError` straight away.
"""
from __future__ import annotations

import http.client
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable, Mapping
from typing import IO, Any, Protocol

from . import __version__

__all__ = [
    "DEFAULT_RETRIES",
    "DEFAULT_TIMEOUT",
    "HttpClient",
    "NetworkError",
    "Sink",
    "build_url",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 2
DEFAULT_BACKOFF = 0.5
CHUNK_SIZE = 1024 * 1024
USER_AGENT = f"java-updater/{__version__}"


class NetworkError(RuntimeError):
    """Raised when a request cannot be completed."""


class Sink(Protocol):
    """Anything bytes can be written to."""

    def write(self, data: bytes, /) -> int: ...


class HttpClient:
    """Issue GET requests with timeout and retry handling."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        backoff: float = DEFAULT_BACKOFF,
        opener: Callable[..., IO[bytes]] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Configure the client; *opener* and *sleep* are injectable for tests."""
        self.timeout = timeout
        self.retries = max(0, retries)
        self.backoff = backoff
        self._opener = opener or urllib.request.urlopen
        self._sleep = sleep

    def get_json(self, url: str, params: Mapping[str, str] | None = None) -> Any:
        """GET *url* (with optional query *params*) and decode a JSON body."""
        full_url = build_url(url, params)
        with self._open(full_url, accept="application/json") as response:
            try:
                payload = response.read()
            except (OSError, http.client.HTTPException) as exc:
                raise NetworkError(f"Reading response from {full_url} failed: {exc}") from exc
        try:
            return json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise NetworkError(f"{full_url} returned invalid JSON: {exc}") from exc

    def download(self, url: str, sink: Sink) -> int:
        """Stream the body of *url* into *sink* and return the byte count."""
        total = 0
        with self._open(url, accept="application/octet-stream") as response:
            try:
                for chunk in iter(lambda: response.read(CHUNK_SIZE), b""):
                    sink.write(chunk)
                    total += len(chunk)
            except (OSError, http.client.HTTPException) as exc:
                raise NetworkError(f"Download from {url} interrupted: {exc}") from exc
        LOGGER.debug("Downloaded %d bytes from %s", total, url)
        return total

    def _open(self, url: str, *, accept: str) -> IO[bytes]:
        request = urllib.request.Request(
            url,
            headers={"Accept": accept, "User-Agent": USER_AGENT},
        )
        attempt = 0
        while True:
            try:
                return self._opener(request, timeout=self.timeout)
            except urllib.error.HTTPError as exc:
                if exc.code < 500 or attempt >= self.retries:
                    raise NetworkError(f"GET {url} failed with HTTP {exc.code}") from exc
                reason: object = f"HTTP {exc.code}"
            except (
                urllib.error.URLError,
                http.client.HTTPException,
                TimeoutError,
                ConnectionError,
            ) as exc:
                if attempt >= self.retries:
                    raise NetworkError(f"GET {url} failed: {exc}") from exc
                reason = exc
            delay = self.backoff * (2**attempt)
            attempt += 1
            LOGGER.warning(
                "GET %s failed (%s); retry %d/%d in %.1fs",
                url,
                reason,
                attempt,
                self.retries,
                delay,
            )
            self._sleep(delay)


def build_url(url: str, params: Mapping[str, str] | None = None) -> str:
    """Append *params* to *url* as an encoded query string."""
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urllib.parse.urlencode(dict(params))}"
