"""Fetches manifest documents over HTTP."""

from typing import Optional

import httpx

from depsera.core.config import settings
from depsera.core.host_rate_limiter import HostConcurrencyLimiter
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger
from depsera.platform.manifest import metrics
from depsera.platform.manifest.exceptions import ManifestFetchError
from depsera.platform.manifest.url_safety import is_private_url


class ManifestFetcher:
    """Retrieves the raw manifest body for a team.

    Each fetch takes a slot from the host concurrency limiter for the manifest's
    hostname. When the host is at capacity the fetch fails immediately; there is no
    queueing and no retry. The slot is always released.
    """

    USER_AGENT = "Depsera-Manifest-Sync/1.0"

    def __init__(
        self,
        host_limiter: HostConcurrencyLimiter,
        timeout: Optional[float] = None,
        max_body_bytes: Optional[int] = None,
        allow_private_urls: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the fetcher.

        Args:
            host_limiter: Per-hostname concurrency limiter
            timeout: Request timeout in seconds (defaults to settings)
            max_body_bytes: Largest accepted body (defaults to settings)
            allow_private_urls: Permit private/local hosts (defaults to settings)
            transport: Optional httpx transport, mainly for tests
            logger: Optional contextual logger
        """
        self.host_limiter = host_limiter
        self.timeout = timeout if timeout is not None else settings.MANIFEST_FETCH_TIMEOUT_SECONDS
        self.max_body_bytes = max_body_bytes or settings.MANIFEST_MAX_BODY_BYTES
        self.allow_private_urls = (
            allow_private_urls
            if allow_private_urls is not None
            else settings.MANIFEST_ALLOW_PRIVATE_URLS
        )
        self._transport = transport
        self.logger = logger or default_logger.with_context(component="manifest_fetcher")

    async def fetch(self, url: str) -> bytes:
        """Fetch the manifest body.

        Args:
            url: Manifest URL

        Returns:
            Raw response body

        Raises:
            ManifestFetchError: If the manifest cannot be retrieved
        """
        self._check_url(url)

        hostname = self.host_limiter.get_hostname(url)
        if not self.host_limiter.acquire(hostname):
            metrics.host_limit_rejections_total.inc()
            raise ManifestFetchError(
                f"Too many concurrent requests to {hostname}, try again later"
            )

        try:
            body = await self._get(url)
        finally:
            self.host_limiter.release(hostname)

        self.logger.debug(f"[ManifestFetcher] Fetched {len(body)} bytes from {hostname}")
        return body

    def _check_url(self, url: str) -> None:
        scheme = url.split("://", 1)[0].lower() if "://" in url else ""
        if scheme not in ("http", "https"):
            raise ManifestFetchError("Manifest URL must use http or https")
        if not self.allow_private_urls and is_private_url(url):
            raise ManifestFetchError("Manifest URL targets a private or local address")

    async def _get(self, url: str) -> bytes:
        headers = {"Accept": "application/json", "User-Agent": self.USER_AGENT}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers=headers,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if not self.allow_private_urls and is_private_url(str(response.url)):
                        raise ManifestFetchError(
                            "Manifest URL redirected to a private or local address"
                        )
                    if not response.is_success:
                        raise ManifestFetchError(
                            f"HTTP {response.status_code}: {response.reason_phrase}",
                            status_code=response.status_code,
                        )
                    return await self._read_limited(response)
        except httpx.TimeoutException as e:
            raise ManifestFetchError(f"Manifest fetch timed out ({self.timeout:g}s)") from e
        except httpx.HTTPError as e:
            raise ManifestFetchError(f"Failed to fetch manifest: {e}") from e

    async def _read_limited(self, response: httpx.Response) -> bytes:
        too_large = f"Manifest exceeds maximum size of {self.max_body_bytes} bytes"

        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit():
            if int(content_length) > self.max_body_bytes:
                raise ManifestFetchError(too_large)

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > self.max_body_bytes:
                raise ManifestFetchError(too_large)
        return bytes(body)
