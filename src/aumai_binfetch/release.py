"""Resolve a release reference into a tag and its downloadable assets."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests
from pydantic import ValidationError

from aumai_binfetch.errors import NetworkError, RateLimited, ReleaseNotFound
from aumai_binfetch.models import Asset, Release, ReleaseReference
from aumai_binfetch.transport import HttpClient

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


def _int_header(response: requests.Response, name: str) -> int | None:
    value = response.headers.get(name)
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


class ReleaseClient:
    """Fetch release metadata from the GitHub REST API.

    Args:
        http: Transport used for every request.
        api_url: Base URL of the API, for GitHub Enterprise installations.
    """

    def __init__(
        self, http: HttpClient | None = None, api_url: str = GITHUB_API_URL
    ) -> None:
        self.http = http or HttpClient()
        self.api_url = api_url.rstrip("/")

    def release_url(self, reference: ReleaseReference) -> str:
        base = f"{self.api_url}/repos/{reference.repository}/releases"
        if reference.is_latest:
            return f"{base}/latest"
        return f"{base}/tags/{quote(reference.version, safe='')}"

    def fetch(
        self, reference: ReleaseReference, include_prereleases: bool = False
    ) -> Release:
        """Resolve *reference* to a :class:`Release`.

        ``latest`` means the most recent published, non-draft, non-prerelease
        release unless *include_prereleases* is set, in which case the newest
        non-draft release of any kind is used.

        Raises:
            ReleaseNotFound: the repository or tag does not exist.
            RateLimited: the API is throttling this client.
            NetworkError: transport failures and unexpected responses.
        """
        if reference.is_latest and include_prereleases:
            url = f"{self.api_url}/repos/{reference.repository}/releases"
            payload = self._get(url, reference)
            if not isinstance(payload, list) or not all(
                isinstance(item, dict) for item in payload
            ):
                raise NetworkError(f"Unexpected release list from {url}", url=url)
            published = [item for item in payload if not item.get("draft")]
            if not published:
                raise ReleaseNotFound(
                    f"{reference.repository} has no published releases",
                    repository=reference.repository,
                )
            release = self._parse(published[0], url)
        else:
            url = self.release_url(reference)
            release = self._parse(self._get(url, reference), url)

        logger.info(
            "Resolved %s@%s to %s (%d assets)",
            reference.repository,
            reference.version,
            release.tag_name,
            len(release.assets),
        )
        logger.debug("Assets: %s", ", ".join(release.asset_names()))
        return release

    def _get(self, url: str, reference: ReleaseReference) -> Any:
        response = self.http.get(
            url, accept="application/vnd.github+json", authenticated=True
        )
        status = response.status_code
        if status == 404:
            raise ReleaseNotFound(
                f"Release {reference.version!r} not found for {reference.repository}",
                repository=reference.repository,
                version=reference.version,
            )
        remaining = response.headers.get("X-RateLimit-Remaining")
        if status == 429 or (status == 403 and remaining == "0"):
            reset_at = _int_header(response, "X-RateLimit-Reset")
            raise RateLimited(
                f"GitHub API rate limit exceeded for {reference.repository}"
                + (f"; resets at {reset_at}" if reset_at else ""),
                reset_at=reset_at,
                retry_after=_int_header(response, "Retry-After"),
            )
        HttpClient.raise_for_status(response, url)
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError(f"Malformed JSON from {url}", url=url) from exc

    @staticmethod
    def _parse(payload: Any, url: str) -> Release:
        try:
            return Release(
                tag_name=payload["tag_name"],
                draft=bool(payload.get("draft", False)),
                prerelease=bool(payload.get("prerelease", False)),
                assets=[
                    Asset(
                        name=item["name"],
                        download_url=item["browser_download_url"],
                        size=item.get("size") or 0,
                    )
                    for item in payload.get("assets") or []
                ],
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as exc:
            raise NetworkError(
                f"Unexpected release payload from {url}: {exc}", url=url
            ) from exc


__all__ = ["GITHUB_API_URL", "ReleaseClient"]
