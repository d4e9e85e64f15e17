# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

"""Aggregate saved benchmark reports and plot throughput/latency against concurrency.

Usage
-----
python scripts/analyze_results.py --runs benchmark_results --out benchmark_results/plots

Requires the plotting extra: pip install -e '.[plots]'
If you did not install the package, the script will automatically add ./src to
PYTHONPATH when run from the repo root.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import matplotlib.pyplot as plt

from trtbench.analysis import comparison_matrix, load_reports


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--runs", required=True, help="Directory containing benchmark report JSON files")
    ap.add_argument("--out", required=True, help="Output directory for tables and figures")
    args = ap.parse_args()

    out = Path(args.out)
    out.mkdir(parents=True, exist_ok=True)

    summ = comparison_matrix(load_reports(args.runs))
    summ.to_csv(out / "summary.csv", index=False)

    for metric, fname, ylabel in [
        ("output_throughput_tps", "output_throughput_tps.png", "Output throughput (tokens/s)"),
        ("p99_latency_ms", "p99_latency_ms.png", "P99 latency (ms)"),
    ]:
        plt.figure()
        for model, g in summ.groupby("model"):
            g = g.sort_values("concurrency")
            plt.plot(g["concurrency"], g[metric], marker="o", label=model)
        plt.xlabel("Concurrency")
        plt.ylabel(ylabel)
        plt.legend()
        plt.tight_layout()
        plt.savefig(out / fname, dpi=200)
        plt.close()

    print(f"Wrote {out}")


if __name__ == "__main__":
    main()
