# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import List, Optional

import aiohttp

from .analysis import comparison_matrix, format_report_frame, load_reports
from .config import PROFILES, apply_profile, load_experiment_config
from .endpoint import EndpointUnavailableError
from .runner import run_benchmark, run_sweep

logger = logging.getLogger("trtbench")


def _add_common(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--config", default=None, help="Path to YAML config")
    sp.add_argument("-u", "--url", default=None, help="API base URL (default: auto-detect)")
    sp.add_argument("--port", type=int, default=None, help="API port used for auto-detection")
    sp.add_argument("--model", default=None, help="Model id (default: read from /v1/models)")
    sp.add_argument("-d", "--dataset", default=None, help="ShareGPT JSON or prompts JSONL (auto-downloads if missing)")
    sp.add_argument("--max-tokens", type=int, default=None, help="max_tokens per request")
    sp.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    sp.add_argument("--seed", type=int, default=None, help="Prompt sampling seed")
    sp.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="trtbench", description="Benchmark a TensorRT-LLM OpenAI-compatible server")
    sub = p.add_subparsers(dest="cmd", required=True)

    runp = sub.add_parser("run", help="Benchmark the currently running server")
    _add_common(runp)
    runp.add_argument("-n", "--num-prompts", type=int, default=None, help="Number of prompts (default: 100)")
    runp.add_argument("-c", "--concurrency", type=int, default=None, help="Max concurrent requests (default: 32)")
    mode = runp.add_mutually_exclusive_group()
    mode.add_argument("-s", "--single", action="store_true", help="Single-request latency test (1 prompt)")
    mode.add_argument("-q", "--quick", action="store_true", help="Quick mode: 20 prompts, concurrency 16")
    mode.add_argument("--profile", choices=sorted(PROFILES), default=None, help="Named benchmark profile")
    runp.add_argument("-o", "--output", default=None, help="Write the report to this JSON file")
    runp.add_argument("--progress-bar", action="store_true", help="Show a tqdm progress bar")

    sw = sub.add_parser("sweep", help="Run several profiles and write a comparison matrix")
    _add_common(sw)
    sw.add_argument("--profiles", default=None, help=f"Comma-separated profiles ({', '.join(PROFILES)})")
    sw.add_argument("--results-dir", default=None, help="Output directory (default: benchmark_results)")

    sm = sub.add_parser("summarize", help="Print a comparison matrix of saved reports")
    sm.add_argument("--runs", required=True, help="Directory containing report JSON files")
    sm.add_argument("--csv", default=None, help="Also write the matrix to this CSV file")

    ap = sub.add_parser("print-config", help="Print the parsed config for debugging")
    ap.add_argument("--config", required=True)

    return p


def _configure(args: argparse.Namespace):
    exp, ep, wrk = load_experiment_config(args.config)
    if args.url is not None:
        ep.url = args.url
    if args.port is not None:
        ep.port = args.port
    if args.model is not None:
        ep.model = args.model
    if args.timeout is not None:
        ep.request_timeout_s = args.timeout
    if args.dataset is not None:
        wrk.dataset_path = args.dataset
    if args.max_tokens is not None:
        wrk.max_tokens = args.max_tokens
    if args.seed is not None:
        wrk.seed = args.seed
    return exp, ep, wrk


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.cmd == "print-config":
        exp, ep, wrk = load_experiment_config(args.config)
        print(json.dumps({"experiment": asdict(exp), "endpoint": asdict(ep), "workload": asdict(wrk)}, indent=2))
        return 0

    try:
        if args.cmd == "summarize":
            df = comparison_matrix(load_reports(args.runs))
            if args.csv:
                df.to_csv(args.csv, index=False)
            print(format_report_frame(df))
            return 0

        exp, ep, wrk = _configure(args)
        if args.cmd == "sweep":
            if args.results_dir is not None:
                exp.results_dir = args.results_dir
            profiles = [s.strip() for s in args.profiles.split(",") if s.strip()] if args.profiles else exp.profiles
            for name in profiles:
                if name not in PROFILES:
                    raise ValueError(f"Unknown profile {name!r}")
            out = run_sweep(ep=ep, wrk=wrk, exp=exp, profiles=profiles)
            print(f"Wrote {out}")
            return 0

        if args.single:
            apply_profile(wrk, "single")
        elif args.quick:
            apply_profile(wrk, "quick")
        elif args.profile:
            apply_profile(wrk, args.profile)
        if args.num_prompts is not None:
            wrk.num_prompts = args.num_prompts
        if args.concurrency is not None:
            wrk.concurrency = args.concurrency

        run_benchmark(ep=ep, wrk=wrk, exp=exp, output=args.output, progress_bar=args.progress_bar)
        return 0
    except (EndpointUnavailableError, FileNotFoundError, ValueError, aiohttp.ClientError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
