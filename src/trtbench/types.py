# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class RequestSpec:
    """A single request to an OpenAI-compatible /v1/chat/completions endpoint."""

    prompt: str
    max_tokens: int = 128
    temperature: float = 0.7


@dataclass(frozen=True)
class RequestOutcome:
    """Result of one completion request. Failures carry the error text."""

    success: bool
    latency_ms: float
    input_tokens: int = 0
    output_tokens: int = 0
    # latency / output_tokens, not a streamed first-token measurement
    ttft_ms: float = 0.0
    error: Optional[str] = None


@dataclass
class LoadGenResult:
    """Raw outcomes of one load generation run, in completion order."""

    concurrency: int
    started_s: float
    finished_s: float
    outcomes: List[RequestOutcome] = field(default_factory=list)

    @property
    def wall_time_s(self) -> float:
        return self.finished_s - self.started_s


@dataclass(frozen=True)
class BenchmarkReport:
    """Aggregated metrics from one benchmark run."""

    platform: str
    model: str
    num_prompts: int
    concurrency: int
    dataset: str
    duration_s: float

    # Request accounting
    total_requests: int
    successful_requests: int
    failed_requests: int

    # Token accounting (successful requests only)
    total_input_tokens: int
    total_output_tokens: int

    # Latency statistics (milliseconds, successful requests only)
    mean_latency_ms: float
    p50_latency_ms: float
    p99_latency_ms: float
    mean_ttft_ms: float

    # Derived throughput metrics
    output_throughput_tps: float
    total_throughput_tps: float
    request_throughput_rps: float
