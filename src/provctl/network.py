"""Small HTTP helpers for reachability checks and public address lookup."""
from __future__ import annotations

import logging
import urllib.error
import urllib.request

LOGGER = logging.getLogger(__name__)

PUBLIC_IP_URL = "https://ifconfig.me/ip"


def http_reachable(url: str, *, timeout: float = 5.0) -> bool:
    """Return ``True`` when *url* answers with any HTTP status."""
    req = urllib.request.Request(url, method="GET")
    try:
        with urllib.request.urlopen(req, timeout=timeout):  # noqa: S310
            return True
    except urllib.error.HTTPError:
        # Any HTTP status means the server is listening.
        return True
    except (urllib.error.URLError, OSError) as exc:
        LOGGER.debug("%s unreachable: %s", url, exc)
        return False


def lookup_public_ip(*, url: str = PUBLIC_IP_URL, timeout: float = 5.0) -> str | None:
    """Return this host's public address as reported by *url*."""
    req = urllib.request.Request(url, headers={"Accept": "text/plain"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
            text = resp.read().decode("utf-8").strip()
    except (urllib.error.URLError, OSError) as exc:
        LOGGER.debug("Public IP lookup failed: %s", exc)
        return None
    return text or None


__all__ = ["PUBLIC_IP_URL", "http_reachable", "lookup_public_ip"]
