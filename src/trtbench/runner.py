# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import asyncio
import csv
import json
import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from .analysis import MATRIX_COLUMNS, format_matrix
from .config import EndpointConfig, ExperimentConfig, WorkloadConfig, apply_profile
from .dataset import load_prompts, resolve_dataset
from .endpoint import EndpointUnavailableError, detect_model, require_healthy, resolve_api_url, wait_for_endpoint
from .loadgen import make_request_set, run_load
from .metrics import format_summary, report_to_json, summarize_outcomes, write_report
from .types import BenchmarkReport

logger = logging.getLogger(__name__)


def _write_json(path: Path, obj: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2)


async def run_benchmark_async(
    *,
    ep: EndpointConfig,
    wrk: WorkloadConfig,
    exp: ExperimentConfig,
    output: Optional[str | Path] = None,
    progress_bar: bool = False,
) -> BenchmarkReport:
    """Probe the endpoint, run one benchmark, print the summary and optionally save the report.

    Raises EndpointUnavailableError before any request is sent if the server
    does not answer its health probe or lists no model.
    """
    base_url = await resolve_api_url(ep.url, port=ep.port, timeout_s=ep.health_timeout_s)
    logger.info("Checking TensorRT-LLM availability at %s", base_url)
    await require_healthy(base_url, timeout_s=ep.health_timeout_s)

    model = ep.model or await detect_model(base_url)
    logger.info("Model: %s", model)

    dataset = await resolve_dataset(wrk.dataset_path)
    logger.info("Loading %d prompts from %s", wrk.num_prompts, dataset)
    prompts = load_prompts(
        dataset,
        wrk.num_prompts,
        min_chars=wrk.min_prompt_chars,
        max_chars=wrk.max_prompt_chars,
        seed=wrk.seed,
    )
    logger.info("Loaded %d prompts", len(prompts))

    reqs = make_request_set(prompts, max_tokens=wrk.max_tokens, temperature=wrk.temperature)
    logger.info("Starting benchmark: %d requests, concurrency %d", len(reqs), wrk.concurrency)
    result = await run_load(
        base_url=base_url,
        requests_=reqs,
        concurrency=wrk.concurrency,
        model=model,
        timeout_s=ep.request_timeout_s,
        progress_every=exp.progress_every,
        progress_bar=progress_bar,
    )

    report = summarize_outcomes(
        result,
        model=model,
        num_prompts=wrk.num_prompts,
        platform=exp.platform,
        dataset=wrk.dataset_label,
    )
    print(format_summary(report))

    if output:
        path = write_report(output, report)
        print(f"  Results saved to: {path}")
    return report


def run_benchmark(**kwargs: Any) -> BenchmarkReport:
    return asyncio.run(run_benchmark_async(**kwargs))


def _matrix_row(model: str, profile: str, wrk: WorkloadConfig, status: str, report: Optional[BenchmarkReport]) -> Dict[str, Any]:
    row: Dict[str, Any] = {c: None for c in MATRIX_COLUMNS}
    row.update({"model": model, "profile": profile, "concurrency": wrk.concurrency, "status": status})
    if report is not None:
        row.update({k: v for k, v in report_to_json(report).items() if k in row})
    return row


async def run_sweep_async(
    *,
    ep: EndpointConfig,
    wrk: WorkloadConfig,
    exp: ExperimentConfig,
    profiles: Optional[Sequence[str]] = None,
) -> Path:
    """Benchmark the running endpoint once per profile and write a comparison matrix.

    Artifacts under ``exp.results_dir``: one ``bench_<profile>_<ts>.json`` per
    successful profile, plus ``results_<ts>.csv``, ``results_<ts>.json`` and
    ``summary_<ts>.txt``.
    """
    profiles = list(profiles or exp.profiles)
    out = Path(exp.results_dir)
    out.mkdir(parents=True, exist_ok=True)
    ts = time.strftime("%Y%m%d_%H%M%S")

    base_url = await resolve_api_url(ep.url, port=ep.port, timeout_s=ep.health_timeout_s)
    model = ep.model or ""
    rows: List[Dict[str, Any]] = []

    for i, profile in enumerate(profiles, start=1):
        pw = apply_profile(replace(wrk), profile)
        logger.info("Benchmarking profile %s (%d/%d)", profile, i, len(profiles))

        try:
            await wait_for_endpoint(base_url, timeout_s=ep.ready_timeout_s)
        except EndpointUnavailableError as e:
            logger.error("API not ready for profile %s: %s", profile, e)
            rows.append(_matrix_row(model or "unknown", profile, pw, "API_TIMEOUT", None))
            continue

        try:
            report = await run_benchmark_async(
                ep=replace(ep, url=base_url, model=ep.model or model or None),
                wrk=pw,
                exp=exp,
                output=out / f"bench_{profile}_{ts}.json",
            )
        except (EndpointUnavailableError, FileNotFoundError, ValueError, aiohttp.ClientError) as e:
            logger.error("Benchmark failed for profile %s: %s", profile, e)
            rows.append(_matrix_row(model or "unknown", profile, pw, "BENCH_FAILED", None))
            continue

        model = report.model
        logger.info(
            "Results: output=%.2f tok/s, latency=%.2fms", report.output_throughput_tps, report.mean_latency_ms
        )
        rows.append(_matrix_row(report.model, profile, pw, "SUCCESS", report))

    with (out / f"results_{ts}.csv").open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(MATRIX_COLUMNS))
        writer.writeheader()
        writer.writerows(rows)

    _write_json(out / f"results_{ts}.json", {"timestamp": ts, "endpoint": base_url, "results": rows})

    succeeded = sum(1 for r in rows if r["status"] == "SUCCESS")
    summary = "\n".join(
        [
            "TensorRT-LLM Benchmark Sweep Results",
            "====================================",
            "",
            f"Timestamp:  {ts}",
            f"Endpoint:   {base_url}",
            f"Profiles:   {', '.join(profiles)}",
            f"Successful: {succeeded}",
            f"Failed:     {len(rows) - succeeded}",
            "",
            format_matrix(rows),
            "",
        ]
    )
    (out / f"summary_{ts}.txt").write_text(summary, encoding="utf-8")
    print(summary)
    return out


def run_sweep(**kwargs: Any) -> Path:
    return asyncio.run(run_sweep_async(**kwargs))
