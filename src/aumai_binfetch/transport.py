"""Thin ``requests`` wrapper shared by every network-facing component."""

from __future__ import annotations

import logging
from pathlib import Path

import requests

from aumai_binfetch import __version__
from aumai_binfetch.errors import NetworkError

logger = logging.getLogger(__name__)

CLIENT_ID = "aumai-binfetch"
USER_AGENT = f"{CLIENT_ID}/{__version__}"
DEFAULT_TIMEOUT = 30.0
DEFAULT_DOWNLOAD_TIMEOUT = 300.0
CHUNK_SIZE = 65536


class HttpClient:
    """Issue GET requests with a fixed client identity and bounded timeouts.

    Transport failures (connection errors, timeouts, broken streams) are
    surfaced as :class:`~aumai_binfetch.errors.NetworkError`.  Status codes
    are left to the caller in :meth:`get`; the convenience helpers treat any
    non-2xx response as a :class:`NetworkError`.

    Args:
        session: Optional pre-built session (tests pass an in-memory fake).
        token: Optional API token sent as a bearer token on API requests only.
        timeout: Timeout in seconds for metadata requests.
        download_timeout: Timeout in seconds for asset downloads.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
    ) -> None:
        self.session = session if session is not None else requests.Session()
        self.token = token or None
        self.timeout = timeout
        self.download_timeout = download_timeout

    def _headers(self, accept: str, authenticated: bool) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": accept}
        if authenticated and self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get(
        self,
        url: str,
        *,
        accept: str = "*/*",
        authenticated: bool = False,
        stream: bool = False,
        timeout: float | None = None,
    ) -> requests.Response:
        """Send a GET request and return the raw response, whatever its status."""
        logger.debug("GET %s", url)
        try:
            return self.session.get(
                url,
                headers=self._headers(accept, authenticated),
                timeout=timeout if timeout is not None else self.timeout,
                stream=stream,
            )
        except requests.Timeout as exc:
            raise NetworkError(f"Request to {url} timed out", url=url) from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {url} failed: {exc}", url=url) from exc

    @staticmethod
    def raise_for_status(response: requests.Response, url: str) -> None:
        if not 200 <= response.status_code < 300:
            raise NetworkError(
                f"GET {url} returned HTTP {response.status_code}",
                url=url,
                status=response.status_code,
            )

    def fetch_bytes(self, url: str) -> bytes:
        """Download a small resource (sidecar, key) fully into memory."""
        response = self.get(url, timeout=self.timeout)
        self.raise_for_status(response, url)
        try:
            return response.content
        except requests.RequestException as exc:
            raise NetworkError(f"Reading {url} failed: {exc}", url=url) from exc

    def download(self, url: str, destination: Path) -> Path:
        """Stream *url* into *destination* chunk by chunk.

        A partial file is deleted before the error propagates.
        """
        response = self.get(url, stream=True, timeout=self.download_timeout)
        with response:
            self.raise_for_status(response, url)
            written = 0
            try:
                with destination.open("wb") as fh:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            fh.write(chunk)
                            written += len(chunk)
            except requests.RequestException as exc:
                destination.unlink(missing_ok=True)
                raise NetworkError(
                    f"Download of {url} was interrupted: {exc}", url=url
                ) from exc
        logger.debug("Downloaded %d bytes from %s", written, url)
        return destination


__all__ = [
    "CLIENT_ID",
    "DEFAULT_DOWNLOAD_TIMEOUT",
    "DEFAULT_TIMEOUT",
    "USER_AGENT",
    "HttpClient",
]
