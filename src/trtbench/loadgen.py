# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, List, Sequence

import aiohttp
from tqdm import tqdm

from .types import LoadGenResult, RequestOutcome, RequestSpec

logger = logging.getLogger(__name__)


def _token_count(usage: Any, key: str) -> int:
    if not isinstance(usage, dict):
        return 0
    try:
        return int(usage.get(key) or 0)
    except (TypeError, ValueError):
        return 0


async def _one_request(
    session: aiohttp.ClientSession,
    url: str,
    req: RequestSpec,
    *,
    model: str,
    timeout_s: float = 120.0,
) -> RequestOutcome:
    payload = {
        "model": model,
        "messages": [{"role": "user", "content": req.prompt}],
        "max_tokens": req.max_tokens,
        "temperature": req.temperature,
    }
    headers = {"Content-Type": "application/json"}
    t0 = time.perf_counter()
    try:
        async with session.post(
            url, json=payload, headers=headers, timeout=aiohttp.ClientTimeout(total=timeout_s)
        ) as resp:
            resp.raise_for_status()
            data = await resp.json(content_type=None)
    except asyncio.TimeoutError:
        latency_ms = (time.perf_counter() - t0) * 1000.0
        return RequestOutcome(success=False, latency_ms=latency_ms, error=f"timeout after {timeout_s:g}s")
    except (aiohttp.ClientError, ValueError) as e:
        latency_ms = (time.perf_counter() - t0) * 1000.0
        return RequestOutcome(success=False, latency_ms=latency_ms, error=f"{type(e).__name__}: {e}")

    latency_ms = (time.perf_counter() - t0) * 1000.0
    usage = data.get("usage") if isinstance(data, dict) else None
    input_tokens = _token_count(usage, "prompt_tokens")
    output_tokens = _token_count(usage, "completion_tokens")
    return RequestOutcome(
        success=True,
        latency_ms=latency_ms,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        ttft_ms=latency_ms / output_tokens if output_tokens > 0 else latency_ms,
    )


async def run_load(
    *,
    base_url: str,
    requests_: Sequence[RequestSpec],
    concurrency: int,
    model: str,
    timeout_s: float = 120.0,
    progress_every: int = 10,
    progress_bar: bool = False,
) -> LoadGenResult:
    """Send every request once against an OpenAI-compatible server, at most ``concurrency`` in flight.

    Outcomes are collected in completion order by this coroutine alone; the
    request tasks never touch shared state.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    url = base_url.rstrip("/") + "/v1/chat/completions"
    connector = aiohttp.TCPConnector(limit=0, ttl_dns_cache=60)
    timeout = aiohttp.ClientTimeout(total=None)
    sem = asyncio.Semaphore(concurrency)

    outcomes: List[RequestOutcome] = []
    total = len(requests_)
    failed = 0

    async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
        async def bounded(req: RequestSpec) -> RequestOutcome:
            async with sem:
                return await _one_request(session, url, req, model=model, timeout_s=timeout_s)

        t0 = time.perf_counter()
        tasks = [asyncio.create_task(bounded(r)) for r in requests_]
        for fut in tqdm(asyncio.as_completed(tasks), total=total, desc="requests", disable=not progress_bar):
            outcome = await fut
            outcomes.append(outcome)
            if not outcome.success:
                failed += 1
                logger.debug("Request failed: %s", outcome.error)

            completed = len(outcomes)
            if progress_every > 0 and completed % progress_every == 0:
                logger.info("Progress: %d/%d requests (%d failed)", completed, total, failed)

        t1 = time.perf_counter()

    return LoadGenResult(concurrency=concurrency, started_s=t0, finished_s=t1, outcomes=outcomes)


def make_request_set(prompts: Sequence[str], *, max_tokens: int = 128, temperature: float = 0.7) -> List[RequestSpec]:
    return [RequestSpec(prompt=p, max_tokens=max_tokens, temperature=temperature) for p in prompts]
