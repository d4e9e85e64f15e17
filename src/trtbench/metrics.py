# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, Sequence

import numpy as np

from .types import BenchmarkReport, LoadGenResult

# Serialized field order of a report file.
REPORT_FIELDS = (
    "platform",
    "model",
    "num_prompts",
    "concurrency",
    "dataset",
    "duration_s",
    "successful_requests",
    "failed_requests",
    "output_throughput_tps",
    "total_throughput_tps",
    "request_throughput_rps",
    "mean_latency_ms",
    "p50_latency_ms",
    "p99_latency_ms",
    "mean_ttft_ms",
    "total_input_tokens",
    "total_output_tokens",
)


def percentile_floor(values: Sequence[float], q: float) -> float:
    """Sorted-index percentile: element ``floor(q * n)``, clamped to the last one. No interpolation."""
    if len(values) == 0:
        return 0.0
    x = np.sort(np.asarray(values, dtype=np.float64))
    idx = min(max(int(math.floor(q * len(x))), 0), len(x) - 1)
    return float(x[idx])


def _mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def _rate(amount: float, duration_s: float) -> float:
    return amount / duration_s if duration_s > 0 else 0.0


def summarize_outcomes(
    result: LoadGenResult,
    *,
    model: str,
    num_prompts: int,
    platform: str = "TensorRT-LLM",
    dataset: str = "ShareGPT_V3",
) -> BenchmarkReport:
    """Reduce a load run to a BenchmarkReport.

    Latency, TTFT and token figures come from successful requests only, so a
    run with no successes reports zeros rather than averaging error latencies.
    """
    ok = [o for o in result.outcomes if o.success]
    latencies = [o.latency_ms for o in ok]
    input_tokens = sum(o.input_tokens for o in ok)
    output_tokens = sum(o.output_tokens for o in ok)

    duration = result.wall_time_s
    rate_window = duration if ok else 0.0

    return BenchmarkReport(
        platform=platform,
        model=model,
        num_prompts=num_prompts,
        concurrency=result.concurrency,
        dataset=dataset,
        duration_s=max(duration, 0.0),
        total_requests=len(result.outcomes),
        successful_requests=len(ok),
        failed_requests=len(result.outcomes) - len(ok),
        total_input_tokens=input_tokens,
        total_output_tokens=output_tokens,
        mean_latency_ms=_mean(latencies),
        p50_latency_ms=float(np.median(latencies)) if latencies else 0.0,
        p99_latency_ms=percentile_floor(latencies, 0.99),
        mean_ttft_ms=_mean([o.ttft_ms for o in ok]),
        output_throughput_tps=_rate(output_tokens, rate_window),
        total_throughput_tps=_rate(input_tokens + output_tokens, rate_window),
        request_throughput_rps=_rate(len(ok), rate_window),
    )


def report_to_json(report: BenchmarkReport) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in REPORT_FIELDS:
        value = getattr(report, name)
        out[name] = round(value, 2) if isinstance(value, float) else value
    return out


def dumps_report(report: BenchmarkReport) -> str:
    return json.dumps(report_to_json(report), indent=2)


def write_report(path: str | Path, report: BenchmarkReport) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps_report(report) + "\n", encoding="utf-8")
    return path


def format_summary(report: BenchmarkReport) -> str:
    rule = "  " + "━" * 67
    lines = [
        rule,
        "  Benchmark Results",
        rule,
        "",
        "  Test Configuration:",
        f"    Platform:           {report.platform}",
        f"    Model:              {report.model}",
        f"    Num Prompts:        {report.num_prompts}",
        f"    Concurrency:        {report.concurrency}",
        f"    Dataset:            {report.dataset}",
        "",
        "  Throughput Metrics:",
        f"    Duration:           {report.duration_s:.2f}s",
        f"    Requests/sec:       {report.request_throughput_rps:.2f}",
        f"    Output tok/s:       {report.output_throughput_tps:.2f}",
        f"    Total tok/s:        {report.total_throughput_tps:.2f}",
        "",
        "  Latency Metrics:",
        f"    Mean Latency:       {report.mean_latency_ms:.2f} ms",
        f"    P50 Latency:        {report.p50_latency_ms:.2f} ms",
        f"    P99 Latency:        {report.p99_latency_ms:.2f} ms",
        f"    Mean TTFT:          {report.mean_ttft_ms:.2f} ms",
        "",
        "  Request Statistics:",
        f"    Completed:          {report.successful_requests}/{report.total_requests}",
        f"    Failed:             {report.failed_requests}",
        f"    Total Input Tokens: {report.total_input_tokens}",
        f"    Total Output Tokens:{report.total_output_tokens}",
    ]
    return "\n".join(lines)
