# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York
"""End-to-end benchmark and sweep tests against the fake server."""

from __future__ import annotations

import csv
import json
from pathlib import Path

import pytest

from trtbench.config import EndpointConfig, ExperimentConfig, WorkloadConfig
from trtbench.endpoint import EndpointUnavailableError
from trtbench.metrics import REPORT_FIELDS
from trtbench.runner import run_benchmark_async, run_sweep_async

from conftest import FakeLLM


def _configs(url: str, dataset: Path, results_dir: Path | None = None):
    ep = EndpointConfig(url=url, ready_timeout_s=1.0)
    wrk = WorkloadConfig(dataset_path=str(dataset), num_prompts=8, concurrency=4, seed=0)
    exp = ExperimentConfig(results_dir=str(results_dir) if results_dir else "benchmark_results")
    return ep, wrk, exp


class TestRunBenchmark:
    @pytest.mark.asyncio
    async def test_writes_report(self, fake_llm: FakeLLM, sharegpt_file: Path, tmp_path: Path, capsys) -> None:
        ep, wrk, exp = _configs(fake_llm.base_url, sharegpt_file)
        out = tmp_path / "results.json"

        report = await run_benchmark_async(ep=ep, wrk=wrk, exp=exp, output=out)

        assert report.model == "test-model"
        assert report.total_requests == 8
        assert report.successful_requests == 8
        assert report.total_output_tokens == 8 * 50

        data = json.loads(out.read_text(encoding="utf-8"))
        assert tuple(data) == REPORT_FIELDS
        assert data["num_prompts"] == 8
        assert data["concurrency"] == 4
        assert "Completed:          8/8" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_configured_model_skips_detection(self, fake_llm: FakeLLM, sharegpt_file: Path) -> None:
        ep, wrk, exp = _configs(fake_llm.base_url, sharegpt_file)
        ep.model = "pinned"
        fake_llm.models = []
        report = await run_benchmark_async(ep=ep, wrk=wrk, exp=exp)
        assert report.model == "pinned"
        assert {r["model"] for r in fake_llm.requests} == {"pinned"}

    @pytest.mark.asyncio
    async def test_unhealthy_endpoint_aborts_before_dispatch(self, fake_llm: FakeLLM, sharegpt_file: Path) -> None:
        fake_llm.healthy = False
        ep, wrk, exp = _configs(fake_llm.base_url, sharegpt_file)
        with pytest.raises(EndpointUnavailableError):
            await run_benchmark_async(ep=ep, wrk=wrk, exp=exp)
        assert fake_llm.requests == []

    @pytest.mark.asyncio
    async def test_fewer_prompts_than_requested(self, fake_llm: FakeLLM, sharegpt_file: Path) -> None:
        ep, wrk, exp = _configs(fake_llm.base_url, sharegpt_file)
        wrk.num_prompts = 100
        report = await run_benchmark_async(ep=ep, wrk=wrk, exp=exp)
        assert report.num_prompts == 100
        assert report.total_requests == 40

    @pytest.mark.asyncio
    async def test_failed_requests_still_report(self, fake_llm: FakeLLM, sharegpt_file: Path, capsys) -> None:
        fake_llm.status = 500
        ep, wrk, exp = _configs(fake_llm.base_url, sharegpt_file)
        report = await run_benchmark_async(ep=ep, wrk=wrk, exp=exp)
        assert report.successful_requests == 0
        assert report.failed_requests == 8
        assert "Completed:          0/8" in capsys.readouterr().out


class TestSweep:
    @pytest.mark.asyncio
    async def test_sweep_writes_matrix(self, fake_llm: FakeLLM, sharegpt_file: Path, tmp_path: Path) -> None:
        results = tmp_path / "results"
        ep, wrk, exp = _configs(fake_llm.base_url, sharegpt_file, results)

        out = await run_sweep_async(ep=ep, wrk=wrk, exp=exp, profiles=["single", "quick"])

        assert out == results
        bench = sorted(p.name for p in results.glob("bench_*.json"))
        assert len(bench) == 2
        assert bench[0].startswith("bench_quick_") and bench[1].startswith("bench_single_")

        (csv_path,) = results.glob("results_*.csv")
        with csv_path.open(newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [(r["profile"], r["concurrency"], r["status"]) for r in rows] == [
            ("single", "1", "SUCCESS"),
            ("quick", "16", "SUCCESS"),
        ]
        assert rows[0]["model"] == "test-model"

        (json_path,) = results.glob("results_*.json")
        assert len(json.loads(json_path.read_text())["results"]) == 2
        (summary,) = results.glob("summary_*.txt")
        assert "Successful: 2" in summary.read_text()

    @pytest.mark.asyncio
    async def test_sweep_records_unready_endpoint(self, fake_llm: FakeLLM, sharegpt_file: Path, tmp_path: Path) -> None:
        fake_llm.healthy = False
        ep, wrk, exp = _configs(fake_llm.base_url, sharegpt_file, tmp_path)
        ep.ready_timeout_s = 0.1

        await run_sweep_async(ep=ep, wrk=wrk, exp=exp, profiles=["single"])

        (csv_path,) = tmp_path.glob("results_*.csv")
        with csv_path.open(newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["status"] == "API_TIMEOUT"
        assert fake_llm.requests == []

    @pytest.mark.asyncio
    async def test_sweep_continues_past_failed_profiles(self, fake_llm: FakeLLM, tmp_path: Path) -> None:
        ep, wrk, exp = _configs(fake_llm.base_url, tmp_path / "missing.json", tmp_path / "results")

        await run_sweep_async(ep=ep, wrk=wrk, exp=exp, profiles=["single", "quick"])

        results = tmp_path / "results"
        (csv_path,) = results.glob("results_*.csv")
        with csv_path.open(newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [(r["profile"], r["status"]) for r in rows] == [("single", "BENCH_FAILED"), ("quick", "BENCH_FAILED")]
        assert list(results.glob("bench_*.json")) == []
        (json_path,) = results.glob("results_*.json")
        assert [r["status"] for r in json.loads(json_path.read_text())["results"]] == ["BENCH_FAILED"] * 2
        (summary,) = results.glob("summary_*.txt")
        assert "Failed:     2" in summary.read_text()
        assert fake_llm.requests == []

    @pytest.mark.asyncio
    async def test_sweep_records_bad_prompt_file(self, fake_llm: FakeLLM, tmp_path: Path) -> None:
        bad = tmp_path / "prompts.jsonl"
        bad.write_text(json.dumps({"text": "no prompt key here"}) + "\n", encoding="utf-8")
        ep, wrk, exp = _configs(fake_llm.base_url, bad, tmp_path)

        await run_sweep_async(ep=ep, wrk=wrk, exp=exp, profiles=["single"])

        (csv_path,) = tmp_path.glob("results_*.csv")
        with csv_path.open(newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert rows[0]["status"] == "BENCH_FAILED"
        assert rows[0]["model"] == "unknown"
