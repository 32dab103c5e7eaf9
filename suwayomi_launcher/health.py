"""Health probing of the Suwayomi server."""

from __future__ import annotations

import logging
import time

import httpx

logger = logging.getLogger(__name__)

HEALTH_ENDPOINT = "/api/v1/settings/about/"
POLL_INTERVAL = 0.3
STARTUP_TIMEOUT = 60.0


def health_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}{HEALTH_ENDPOINT}"


def is_server_healthy(base_url: str, timeout: float = POLL_INTERVAL) -> bool:
    """Single bounded probe. Only an exact 200 counts as healthy."""
    url = health_url(base_url)
    try:
        # The probe targets the server directly, proxy env vars do not apply.
        response = httpx.get(url, timeout=timeout, trust_env=False)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        # ValueError covers UnicodeError from IDNA-encoding a bad host.
        logger.debug(f"Health probe {url} failed: {e}")
        return False
    if response.status_code != 200:
        logger.debug(f"Health probe {url} returned {response.status_code}")
        return False
    return True


def wait_for_server(
    base_url: str,
    timeout: float = STARTUP_TIMEOUT,
    interval: float = POLL_INTERVAL,
) -> bool:
    """
    Poll the health endpoint until it answers 200 or `timeout` seconds pass.

    Returns:
        True once healthy, False when the deadline elapsed
    """
    started = time.monotonic()
    while time.monotonic() - started < timeout:
        if is_server_healthy(base_url, timeout=interval):
            logger.info(f"Server healthy at {base_url}")
            return True
        time.sleep(interval)
    return False
