"""Checks for URLs that point at private or local network addresses."""

import ipaddress
from urllib.parse import urlparse

BLOCKED_HOSTNAME_SUFFIXES = (".local", ".internal", ".localhost")


def is_private_host(hostname: str) -> bool:
    """Return True if the hostname is a local name or a non-global IP literal.

    Hostnames are not resolved; only literal addresses and well-known local names
    are recognised.
    """
    host = hostname.strip("[]").lower().rstrip(".")
    if host == "localhost" or host.endswith(BLOCKED_HOSTNAME_SUFFIXES):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return not address.is_global


def is_private_url(url: str) -> bool:
    """Return True if the URL's host is private. Unparseable URLs count as private."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return True
    if not hostname:
        return True
    return is_private_host(hostname)
