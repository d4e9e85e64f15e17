# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York


from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

DEFAULT_PORT = 8355

# name -> (num_prompts, concurrency)
PROFILES: Dict[str, Tuple[int, int]] = {
    "single": (1, 1),
    "quick": (20, 16),
    "short": (50, 24),
    "medium": (100, 32),
    "throughput": (200, 48),
}


def _default_port() -> int:
    return int(os.environ.get("TRT_PORT", DEFAULT_PORT))


@dataclass
class EndpointConfig:
    url: Optional[str] = None     # Auto-detected from host/port when unset.
    port: int = field(default_factory=_default_port)
    model: Optional[str] = None   # Read from /v1/models when unset.

    request_timeout_s: float = 120.0
    health_timeout_s: float = 5.0
    ready_timeout_s: float = 120.0


@dataclass
class WorkloadConfig:
    dataset_path: Optional[str] = None  # Auto-downloads ShareGPT when unset.
    dataset_label: str = "ShareGPT_V3"
    num_prompts: int = 100
    concurrency: int = 32
    max_tokens: int = 128
    temperature: float = 0.7
    seed: Optional[int] = None

    # Prompt length filter, in characters: [min, max)
    min_prompt_chars: int = 50
    max_prompt_chars: int = 2000


@dataclass
class ExperimentConfig:
    name: str = "default"
    platform: str = "TensorRT-LLM"
    results_dir: str = "benchmark_results"
    profiles: List[str] = field(default_factory=lambda: ["quick"])
    progress_every: int = 10


def apply_profile(wrk: WorkloadConfig, profile: str) -> WorkloadConfig:
    """Set num_prompts/concurrency from a named benchmark profile."""
    try:
        wrk.num_prompts, wrk.concurrency = PROFILES[profile]
    except KeyError:
        raise ValueError(f"Unknown profile {profile!r}; choose from {', '.join(PROFILES)}") from None
    return wrk


def load_yaml(path: str | Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_experiment_config(path: str | Path | None = None) -> tuple[ExperimentConfig, EndpointConfig, WorkloadConfig]:
    cfg = load_yaml(path) if path else {}
    exp = ExperimentConfig(**cfg.get("experiment", {}))
    ep = EndpointConfig(**cfg.get("endpoint", {}))
    wrk = WorkloadConfig(**cfg.get("workload", {}))
    for name in exp.profiles:
        if name not in PROFILES:
            raise ValueError(f"Unknown profile {name!r} in {path}")
    return exp, ep, wrk
