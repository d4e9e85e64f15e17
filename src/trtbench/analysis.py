# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

import pandas as pd

MATRIX_COLUMNS = (
    "model",
    "profile",
    "concurrency",
    "output_throughput_tps",
    "total_throughput_tps",
    "mean_latency_ms",
    "p99_latency_ms",
    "status",
)


def load_reports(run_dir: str | Path) -> pd.DataFrame:
    """Load every saved benchmark report under ``run_dir`` into one frame.

    Sweep aggregates (``results_*.json``) are skipped; so is any JSON file
    that is not a report object.
    """
    run_dir = Path(run_dir)
    rows: List[Dict[str, Any]] = []
    for p in sorted(run_dir.glob("**/*.json")):
        if p.name.startswith("results_"):
            continue
        with p.open("r", encoding="utf-8") as f:
            obj = json.load(f)
        if not isinstance(obj, dict) or "successful_requests" not in obj:
            continue
        obj["source"] = str(p)
        rows.append(obj)
    if not rows:
        raise FileNotFoundError(f"No benchmark reports under {run_dir}")
    return pd.DataFrame(rows)


def comparison_matrix(df: pd.DataFrame) -> pd.DataFrame:
    keep = [
        "model", "concurrency", "num_prompts", "successful_requests", "failed_requests",
        "output_throughput_tps", "total_throughput_tps", "request_throughput_rps",
        "mean_latency_ms", "p50_latency_ms", "p99_latency_ms",
    ]
    cols = [c for c in keep if c in df.columns]
    out = df[cols].copy()
    out.sort_values([c for c in ("model", "concurrency") if c in cols], inplace=True)
    out.reset_index(drop=True, inplace=True)
    return out


def _cell(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return "-"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def format_matrix(rows: Iterable[Mapping[str, Any]]) -> str:
    """Fixed-width results table. Rows whose status is not SUCCESS show only the status."""
    fmt = "%-30s %-10s %4s %12s %12s %12s %12s"
    lines = [
        fmt % ("Model", "Profile", "C", "Out TPS", "Tot TPS", "Mean(ms)", "P99(ms)"),
        fmt % ("-" * 30, "-" * 10, "-" * 4, "-" * 12, "-" * 12, "-" * 12, "-" * 12),
    ]
    for r in rows:
        status = r.get("status", "SUCCESS")
        head = (_cell(r.get("model")), _cell(r.get("profile")), _cell(r.get("concurrency")))
        if status == "SUCCESS":
            tail = tuple(
                _cell(r.get(k))
                for k in ("output_throughput_tps", "total_throughput_tps", "mean_latency_ms", "p99_latency_ms")
            )
        else:
            tail = ("-", "-", "-", f"({status})")
        lines.append(fmt % (head + tail))
    return "\n".join(lines)


def format_report_frame(df: pd.DataFrame) -> str:
    """Render a comparison_matrix() frame with format_matrix()."""
    return format_matrix(df.to_dict(orient="records"))
