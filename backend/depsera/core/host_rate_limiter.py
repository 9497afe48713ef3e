"""Per-hostname concurrency limiter for outbound requests."""

import threading
from typing import Dict, Optional
from urllib.parse import urlparse

from depsera.core.config import settings
from depsera.core.logging import ContextualLogger
from depsera.core.logging import logger as default_logger


class HostConcurrencyLimiter:
    """Non-blocking admission counter keyed by hostname.

    ``acquire`` never waits: it either takes a slot and returns True or returns False
    when the host is at capacity. Every successful ``acquire`` must be paired with a
    ``release``. Instances are injected where they are needed; nothing here is global.
    """

    def __init__(
        self,
        max_concurrent: Optional[int] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the limiter.

        Args:
            max_concurrent: Slots per hostname (defaults to MANIFEST_HOST_CONCURRENCY_LIMIT)
            logger: Optional contextual logger
        """
        self.max_concurrent = (
            max_concurrent
            if max_concurrent is not None
            else settings.MANIFEST_HOST_CONCURRENCY_LIMIT
        )
        self.logger = logger or default_logger.with_context(component="host_rate_limiter")
        self._active: Dict[str, int] = {}
        self._lock = threading.Lock()

    def acquire(self, hostname: str) -> bool:
        """Try to take a slot for the hostname.

        Args:
            hostname: Host to take a slot for

        Returns:
            True if a slot was taken, False if the host is at capacity
        """
        with self._lock:
            current = self._active.get(hostname, 0)
            if current >= self.max_concurrent:
                self.logger.debug(
                    f"Host {hostname} at capacity ({current}/{self.max_concurrent})"
                )
                return False
            self._active[hostname] = current + 1
            return True

    def release(self, hostname: str) -> None:
        """Return a slot for the hostname. Releasing an idle host is a no-op."""
        with self._lock:
            current = self._active.get(hostname, 0)
            if current <= 1:
                self._active.pop(hostname, None)
            else:
                self._active[hostname] = current - 1

    def get_active_count(self, hostname: str) -> int:
        """Number of slots currently held for the hostname."""
        with self._lock:
            return self._active.get(hostname, 0)

    def clear(self) -> None:
        """Drop all held slots."""
        with self._lock:
            self._active.clear()

    @staticmethod
    def get_hostname(url: str) -> str:
        """Extract the hostname from a URL.

        Falls back to the raw string when the URL cannot be parsed, so that malformed
        URLs still share a bucket.
        """
        try:
            hostname = urlparse(url).hostname
        except ValueError:
            return url
        return hostname or url
