"""Tests for the manifest fetcher."""

import asyncio

import httpx
import pytest

from depsera.core.host_rate_limiter import HostConcurrencyLimiter
from depsera.platform.manifest import metrics
from depsera.platform.manifest.exceptions import ManifestFetchError
from depsera.platform.manifest.fetcher import ManifestFetcher

URL = "https://manifests.example.com/team.json"


def _rejections() -> float:
    return metrics.manifest_registry.get_sample_value(
        "depsera_manifest_host_limit_rejections_total"
    ) or 0.0


def make_fetcher(handler, limiter=None, **kwargs) -> ManifestFetcher:
    return ManifestFetcher(
        limiter or HostConcurrencyLimiter(max_concurrent=2),
        transport=httpx.MockTransport(handler),
        allow_private_urls=kwargs.pop("allow_private_urls", False),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_fetch_returns_body_and_sends_headers():
    """Test a successful fetch returns the raw body."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b'{"version": 1}')

    body = await make_fetcher(handler).fetch(URL)

    assert body == b'{"version": 1}'
    assert seen[0].headers["user-agent"] == ManifestFetcher.USER_AGENT
    assert seen[0].headers["accept"] == "application/json"


@pytest.mark.asyncio
async def test_non_2xx_is_fetch_error():
    """Test that an error status becomes a fetch error carrying the status."""
    fetcher = make_fetcher(lambda request: httpx.Response(404))

    with pytest.raises(ManifestFetchError) as exc_info:
        await fetcher.fetch(URL)

    assert exc_info.value.status_code == 404
    assert str(exc_info.value) == "HTTP 404: Not Found"


@pytest.mark.asyncio
async def test_timeout_is_fetch_error():
    """Test that a timeout names the configured timeout."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ManifestFetchError) as exc_info:
        await make_fetcher(handler, timeout=10.0).fetch(URL)

    assert str(exc_info.value) == "Manifest fetch timed out (10s)"


@pytest.mark.asyncio
async def test_connection_error_is_fetch_error():
    """Test that transport errors are wrapped."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ManifestFetchError) as exc_info:
        await make_fetcher(handler).fetch(URL)

    assert "Failed to fetch manifest" in str(exc_info.value)


@pytest.mark.asyncio
async def test_body_over_limit_is_rejected():
    """Test that oversized bodies are rejected while streaming."""
    fetcher = make_fetcher(
        lambda request: httpx.Response(200, content=b"x" * 64), max_body_bytes=32
    )

    with pytest.raises(ManifestFetchError) as exc_info:
        await fetcher.fetch(URL)

    assert "exceeds maximum size of 32 bytes" in str(exc_info.value)


@pytest.mark.asyncio
async def test_content_length_over_limit_is_rejected():
    """Test that a declared Content-Length above the limit is rejected up front."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"{}", headers={"content-length": "999999"})

    with pytest.raises(ManifestFetchError):
        await make_fetcher(handler, max_body_bytes=32).fetch(URL)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    ["ftp://manifests.example.com/team.json", "manifests.example.com/team.json"],
)
async def test_non_http_urls_are_rejected(url):
    """Test that only http and https URLs are fetched."""
    fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"{}"))

    with pytest.raises(ManifestFetchError, match="http or https"):
        await fetcher.fetch(url)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    [
        "http://localhost/manifest.json",
        "http://127.0.0.1/manifest.json",
        "http://10.0.0.8/manifest.json",
        "http://[::1]/manifest.json",
        "http://config.internal/manifest.json",
    ],
)
async def test_private_urls_are_rejected(url):
    """Test that private and local targets are refused by default."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, content=b"{}")

    with pytest.raises(ManifestFetchError, match="private or local"):
        await make_fetcher(handler).fetch(url)
    assert calls == []


@pytest.mark.asyncio
async def test_private_urls_allowed_when_configured():
    """Test that the private-URL check can be disabled."""
    fetcher = make_fetcher(
        lambda request: httpx.Response(200, content=b"{}"), allow_private_urls=True
    )

    assert await fetcher.fetch("http://localhost/manifest.json") == b"{}"


@pytest.mark.asyncio
async def test_redirect_to_private_host_is_rejected():
    """Test that a public URL cannot redirect into the private network."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "manifests.example.com":
            return httpx.Response(302, headers={"location": "http://169.254.169.254/latest"})
        return httpx.Response(200, content=b"{}")

    with pytest.raises(ManifestFetchError, match="redirected"):
        await make_fetcher(handler).fetch(URL)


@pytest.mark.asyncio
async def test_host_at_capacity_fails_immediately():
    """Test that a full host rejects without calling the server."""
    limiter = HostConcurrencyLimiter(max_concurrent=1)
    limiter.acquire("manifests.example.com")
    calls = []
    before = _rejections()

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, content=b"{}")

    with pytest.raises(ManifestFetchError, match="Too many concurrent requests"):
        await make_fetcher(handler, limiter=limiter).fetch(URL)

    assert calls == []
    assert _rejections() == before + 1


@pytest.mark.asyncio
async def test_slot_released_after_success_and_failure():
    """Test that the host slot is always returned."""
    limiter = HostConcurrencyLimiter(max_concurrent=1)

    await make_fetcher(lambda r: httpx.Response(200, content=b"{}"), limiter=limiter).fetch(URL)
    assert limiter.get_active_count("manifests.example.com") == 0

    with pytest.raises(ManifestFetchError):
        await make_fetcher(lambda r: httpx.Response(500), limiter=limiter).fetch(URL)
    assert limiter.get_active_count("manifests.example.com") == 0


@pytest.mark.asyncio
async def test_slot_held_while_request_in_flight():
    """Test that a second fetch to the same host is rejected while the first runs."""
    limiter = HostConcurrencyLimiter(max_concurrent=1)
    started = asyncio.Event()
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        started.set()
        await release.wait()
        return httpx.Response(200, content=b"{}")

    fetcher = make_fetcher(handler, limiter=limiter)
    first = asyncio.create_task(fetcher.fetch(URL))
    await started.wait()

    with pytest.raises(ManifestFetchError, match="Too many concurrent requests"):
        await fetcher.fetch(URL)

    release.set()
    assert await first == b"{}"
