# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import asyncio
import logging
import socket
import time
from typing import List, Optional

import aiohttp

logger = logging.getLogger(__name__)


class EndpointUnavailableError(RuntimeError):
    """The serving endpoint is not reachable or not serving a model."""


async def check_health(base_url: str, timeout_s: float = 5.0) -> bool:
    """GET {base_url}/health and report whether it answered 2xx."""
    url = base_url.rstrip("/") + "/health"
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout_s)) as session:
            async with session.get(url) as resp:
                return 200 <= resp.status < 300
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.debug("Health probe %s failed: %s", url, e)
        return False


def _local_ipv4_addresses() -> List[str]:
    """Non-loopback IPv4 addresses of this host, skipping the default docker bridge."""
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    except OSError:
        return []
    addrs: List[str] = []
    for info in infos:
        ip = info[4][0]
        if ip.startswith("127.") or ip.startswith("172.17.") or ip in addrs:
            continue
        addrs.append(ip)
    return addrs


async def resolve_api_url(url: Optional[str] = None, *, port: int, timeout_s: float = 5.0) -> str:
    """Pick the API base URL: explicit, then localhost, then a host address that answers /health."""
    if url:
        return url.rstrip("/")

    local = f"http://localhost:{port}"
    if await check_health(local, timeout_s):
        return local
    for ip in _local_ipv4_addresses():
        candidate = f"http://{ip}:{port}"
        if await check_health(candidate, timeout_s):
            return candidate
    return local


async def require_healthy(base_url: str, timeout_s: float = 5.0) -> None:
    if not await check_health(base_url, timeout_s):
        raise EndpointUnavailableError(
            f"TensorRT-LLM is not accessible at {base_url}; make sure the server is running"
        )


async def wait_for_endpoint(
    base_url: str,
    *,
    timeout_s: float = 120.0,
    interval_s: float = 5.0,
    log_every_s: float = 30.0,
    probe_timeout_s: float = 5.0,
) -> float:
    """Poll the health probe until it succeeds. Returns the seconds waited."""
    t0 = time.monotonic()
    next_log = log_every_s
    while True:
        if await check_health(base_url, timeout_s=probe_timeout_s):
            elapsed = time.monotonic() - t0
            logger.info("API ready after %.0fs", elapsed)
            return elapsed

        elapsed = time.monotonic() - t0
        if elapsed >= timeout_s:
            raise EndpointUnavailableError(f"API at {base_url} not ready within {timeout_s:.0f}s")
        if elapsed >= next_log:
            logger.info("[%.0fs] Still waiting for %s", elapsed, base_url)
            next_log += log_every_s
        await asyncio.sleep(min(interval_s, max(timeout_s - elapsed, 0.0)))


async def detect_model(base_url: str, timeout_s: float = 10.0) -> str:
    """Return the id of the first model listed by {base_url}/v1/models."""
    url = base_url.rstrip("/") + "/v1/models"
    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout_s)) as session:
            async with session.get(url) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        raise EndpointUnavailableError(f"Could not detect model from {url}: {e}") from e

    models = data.get("data") if isinstance(data, dict) else None
    if not models or not isinstance(models[0], dict) or "id" not in models[0]:
        raise EndpointUnavailableError(f"Could not detect model from {url}: no models listed")
    return str(models[0]["id"])
