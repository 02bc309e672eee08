"""Release feed client for downloading the configuration tool.

This module provides an async wrapper around a GitHub-compatible release
API for:
- Listing repository tags
- Fetching the release published for a tag
- Downloading release assets

Includes retry logic with exponential backoff for transient failures.
"""

import asyncio
import platform
import random
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import structlog

from devbox.common.errors import ReleaseFeedError

logger = structlog.get_logger(__name__)

# platform.machine() values mapped to the architecture string used in
# release asset names
ARCHITECTURE_ALIASES = {
    "amd64": "x86_64",
    "x86_64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


def host_architecture(machine: Optional[str] = None) -> str:
    """Return the release asset architecture string for this host.

    Args:
        machine: Override for platform.machine(), used in tests.

    Raises:
        ReleaseFeedError: If the architecture has no published builds.
    """
    raw = (machine if machine is not None else platform.machine()).lower()
    try:
        return ARCHITECTURE_ALIASES[raw]
    except KeyError:
        raise ReleaseFeedError(f"No release builds for architecture {raw!r}") from None


def select_asset(release: Dict[str, Any], architecture: str) -> str:
    """Pick the download URL of the release asset for an architecture.

    Assets whose download URL contains the architecture string match.
    Zip archives are preferred over other matches.

    Args:
        release: Release object as returned by the feed.
        architecture: Architecture string, e.g. "x86_64".

    Returns:
        The browser download URL of the chosen asset.

    Raises:
        ReleaseFeedError: If no asset matches.
    """
    urls = [
        asset.get("browser_download_url", "")
        for asset in release.get("assets", [])
    ]
    matching = [url for url in urls if architecture in url]
    if not matching:
        raise ReleaseFeedError(
            f"Release {release.get('tag_name', '?')} has no asset for {architecture}"
        )

    archives = [url for url in matching if url.lower().endswith(".zip")]
    return (archives or matching)[0]


class ReleaseFeedClient:
    """Async release feed client with retry logic.

    Attributes:
        repository: owner/name of the repository publishing releases.
        base_url: Base URL of the API (default: https://api.github.com).
        token: Optional API token.
        max_retries: Maximum number of retry attempts for transient failures.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with ReleaseFeedClient("PowerShell/DSC") as feed:
        ...     tags = await feed.list_tags()
    """

    # HTTP status codes that should trigger a retry
    RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        repository: str,
        base_url: str = "https://api.github.com",
        token: str = "",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.repository = repository
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "devbox-provision/0.1",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ReleaseFeedClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate backoff delay with full jitter.

        Args:
            attempt: The current retry attempt (0-indexed).

        Returns:
            Delay in seconds before the next retry.
        """
        exponential_delay = self.base_delay * (2 ** attempt)
        capped_delay = min(exponential_delay, self.max_delay)
        return random.uniform(0, capped_delay)

    async def _request(self, url: str) -> httpx.Response:
        """GET a URL, retrying transient failures.

        Args:
            url: API path or absolute URL.

        Returns:
            The successful HTTP response.

        Raises:
            ReleaseFeedError: On a non-retryable status or when retries
                are exhausted.
        """
        last_error = ""

        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.get(url)
            except httpx.RequestError as exc:
                last_error = str(exc)
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Release feed request error, retrying",
                        error=last_error,
                        attempt=attempt + 1,
                        max_retries=self.max_retries,
                        delay=delay,
                        url=url,
                    )
                    await asyncio.sleep(delay)
                    continue
                break

            if response.status_code in self.RETRYABLE_STATUS_CODES:
                last_error = f"HTTP {response.status_code}"
                if attempt < self.max_retries:
                    delay = self._calculate_backoff(attempt)
                    logger.warning(
                        "Retryable error from release feed",
                        status_code=response.status_code,
                        attempt=attempt + 1,
                        max_retries=self.max_retries,
                        delay=delay,
                        url=url,
                    )
                    await asyncio.sleep(delay)
                    continue
                break

            if response.status_code >= 400:
                logger.error(
                    "Release feed error",
                    status_code=response.status_code,
                    url=url,
                    response_body=response.text[:500],
                )
                raise ReleaseFeedError(
                    f"Release feed error: {response.status_code}",
                    status_code=response.status_code,
                    request_url=str(response.url),
                )

            return response

        raise ReleaseFeedError(
            f"Release feed request failed after {self.max_retries} retries: {last_error}",
            request_url=url,
        )

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ReleaseFeedError(
                f"Release feed returned invalid JSON: {exc}",
                status_code=response.status_code,
                request_url=str(response.url),
            ) from exc

    async def list_tags(self) -> List[str]:
        """List tag names in the order the feed returns them.

        Raises:
            ReleaseFeedError: If the request fails or the payload is not a
                list of tag objects.
        """
        response = await self._request(f"/repos/{self.repository}/tags")
        payload = self._decode(response)
        try:
            return [tag["name"] for tag in payload]
        except (KeyError, TypeError) as exc:
            raise ReleaseFeedError(
                f"Unexpected tag list for {self.repository}: {exc!r}",
                status_code=response.status_code,
                request_url=str(response.url),
            ) from exc

    async def get_release_by_tag(self, tag: str) -> Dict[str, Any]:
        """Fetch the release object published for a tag.

        Raises:
            ReleaseFeedError: If the request fails or the payload is not a
                release object.
        """
        response = await self._request(f"/repos/{self.repository}/releases/tags/{tag}")
        release = self._decode(response)
        if not isinstance(release, dict) or not isinstance(release.get("assets", []), list):
            raise ReleaseFeedError(
                f"Unexpected release payload for {self.repository} {tag}",
                status_code=response.status_code,
                request_url=str(response.url),
            )
        return release

    async def download(self, url: str, destination: Path) -> Path:
        """Download an asset to a local file.

        Args:
            url: Absolute asset download URL.
            destination: File to write.

        Returns:
            The destination path.
        """
        response = await self._request(url)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(response.content)
        logger.info("Downloaded release asset", url=url, destination=str(destination))
        return destination
