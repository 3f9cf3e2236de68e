"""HTTP client for channel manifests and launcher content."""

from __future__ import annotations

import time
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import structlog
from pydantic import ValidationError

from channel_launcher.core.config import ChannelConfig
from channel_launcher.core.errors import ManifestFetchError
from channel_launcher.core.types import Advertisement, VersionManifest

logger = structlog.get_logger()


def with_query(url: str, **params: str) -> str:
    """Add or replace query parameters on a URL."""
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(params)
    return urlunsplit(parts._replace(query=urlencode(query)))


class ManifestFetcher:
    """Fetches the version manifest and advertisement for a channel.

    Responses are JSON envelopes of the form ``{"data": {...}}``.
    Transient HTTP failures are retried with exponential backoff.
    """

    def __init__(
        self,
        channel: ChannelConfig,
        timeout: float = 30.0,
        max_retries: int = 3,
        client: httpx.Client | None = None,
        backoff: float = 1.0,
    ):
        """Initialize manifest fetcher.

        Args:
            channel: Channel to query
            timeout: Request timeout in seconds
            max_retries: Retries after the first failed attempt
            client: Optional preconfigured HTTP client
            backoff: Base delay in seconds between retries
        """
        self.channel = channel
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    def _fetch_json(self, url: str) -> dict[str, Any]:
        """Fetch a JSON envelope with retry logic.

        Raises:
            ManifestFetchError: If all attempts fail or the body is not JSON
        """
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                response = self.client.get(url)
                response.raise_for_status()
                body = response.json()
                break
            except httpx.HTTPError as e:
                last_error = e
                if attempt < self.max_retries:
                    wait_time = self.backoff * (2 ** attempt)
                    logger.debug(
                        "manifest_retry",
                        url=url,
                        attempt=attempt + 1,
                        wait=wait_time,
                        error=str(e)
                    )
                    time.sleep(wait_time)
                    continue
                logger.error("manifest_fetch_failed", url=url, error=str(e))
                raise ManifestFetchError(f"Failed to fetch {url}: {e}", url=url) from e
            except ValueError as e:
                raise ManifestFetchError(f"Invalid JSON from {url}", url=url) from e
        else:
            raise ManifestFetchError(f"Failed to fetch {url}: {last_error}", url=url)

        if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
            raise ManifestFetchError(f"Missing data envelope in response from {url}", url=url)
        return body["data"]

    def fetch_manifest(self) -> VersionManifest:
        """Fetch the channel's version manifest.

        Returns:
            Parsed version manifest

        Raises:
            ManifestFetchError: On network failure or schema mismatch
        """
        data = self._fetch_json(self.channel.update_url)
        try:
            manifest = VersionManifest.model_validate(data)
        except ValidationError as e:
            raise ManifestFetchError(
                f"Malformed manifest: {e}", url=self.channel.update_url
            ) from e

        logger.info(
            "manifest_fetched",
            channel=self.channel.id,
            latest=manifest.latest_version,
            diffs=len(manifest.game.diffs),
            predownload=manifest.pre_download_game is not None,
        )
        return manifest

    def fetch_content(self) -> Advertisement:
        """Fetch the advertisement payload in the channel's language."""
        url = with_query(self.channel.adv_url, language=self.channel.adv_language)
        data = self._fetch_json(url)
        try:
            content = Advertisement.model_validate(data.get("adv", {}))
        except ValidationError as e:
            raise ManifestFetchError(f"Malformed content: {e}", url=url) from e

        logger.debug("content_fetched", channel=self.channel.id, language=self.channel.adv_language)
        return content

    def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> ManifestFetcher:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
