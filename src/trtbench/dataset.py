# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York

"""Prompt corpus loading.

Two formats are understood:

* ShareGPT JSON: a list of ``{"conversations": [{"from": ..., "value": ...}]}``
  items. Only turns from the ``human`` role are used.
* JSONL: one ``{"prompt": ...}`` object per line.
"""

from __future__ import annotations

import json
import logging
import random
import tempfile
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence

import aiohttp
from tqdm import tqdm

logger = logging.getLogger(__name__)

DEFAULT_DATASET = "ShareGPT_V3_unfiltered_cleaned_split.json"
DATASET_URL = (
    "https://huggingface.co/datasets/anon8231489123/ShareGPT_Vicuna_unfiltered"
    "/resolve/main/ShareGPT_V3_unfiltered_cleaned_split.json"
)


def _iter_sharegpt_human_turns(data: Iterable) -> Iterator[str]:
    for item in data:
        if not isinstance(item, dict):
            continue
        for conv in item.get("conversations") or []:
            if isinstance(conv, dict) and conv.get("from") == "human":
                yield conv.get("value") or ""


def select_prompts(
    candidates: Iterable[str],
    num_prompts: int,
    *,
    min_chars: int = 50,
    max_chars: int = 2000,
    seed: Optional[int] = None,
) -> List[str]:
    """Filter candidates by length, collect up to 2x the need, then sample without replacement."""
    if num_prompts <= 0:
        return []

    pool: List[str] = []
    seen = set()
    for text in candidates:
        if not (min_chars <= len(text) < max_chars) or text in seen:
            continue
        seen.add(text)
        pool.append(text)
        if len(pool) >= num_prompts * 2:
            break

    if len(pool) < num_prompts:
        logger.warning("Only %d qualifying prompts found (%d requested)", len(pool), num_prompts)
        return pool
    return random.Random(seed).sample(pool, num_prompts)


def load_sharegpt_prompts(
    path: str | Path,
    num_prompts: int,
    *,
    min_chars: int = 50,
    max_chars: int = 2000,
    seed: Optional[int] = None,
) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} is not a ShareGPT dataset (expected a JSON list)")
    return select_prompts(
        _iter_sharegpt_human_turns(data), num_prompts, min_chars=min_chars, max_chars=max_chars, seed=seed
    )


def load_jsonl_prompts(path: str | Path) -> List[str]:
    prompts: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            obj = json.loads(line)
            if not isinstance(obj, dict) or "prompt" not in obj:
                raise ValueError(f"{path}:{lineno}: missing 'prompt'")
            prompts.append(obj["prompt"])
    if not prompts:
        raise ValueError(f"No prompts found in {path}")
    return prompts


def load_prompts(
    path: str | Path,
    num_prompts: int,
    *,
    min_chars: int = 50,
    max_chars: int = 2000,
    seed: Optional[int] = None,
) -> List[str]:
    """Load up to ``num_prompts`` prompts from a ShareGPT JSON or JSONL file."""
    path = Path(path)
    if path.suffix == ".jsonl":
        return select_prompts(
            load_jsonl_prompts(path), num_prompts, min_chars=min_chars, max_chars=max_chars, seed=seed
        )
    return load_sharegpt_prompts(path, num_prompts, min_chars=min_chars, max_chars=max_chars, seed=seed)


async def download_dataset(url: str, dest: str | Path, *, chunk_size: int = 1 << 20) -> Path:
    """Stream ``url`` to ``dest``. The file only appears at ``dest`` once complete."""
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    part = dest.with_name(dest.name + ".part")

    timeout = aiohttp.ClientTimeout(total=None, sock_read=300)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(url) as resp:
            resp.raise_for_status()
            total = resp.content_length
            try:
                with part.open("wb") as f, tqdm(
                    total=total, unit="B", unit_scale=True, desc=dest.name
                ) as bar:
                    async for chunk in resp.content.iter_chunked(chunk_size):
                        f.write(chunk)
                        bar.update(len(chunk))
            except BaseException:
                part.unlink(missing_ok=True)
                raise

    part.replace(dest)
    return dest


async def resolve_dataset(
    path: str | Path | None = None,
    *,
    search_dirs: Optional[Sequence[str | Path]] = None,
    download: bool = True,
    url: str = DATASET_URL,
) -> Path:
    """Return a usable dataset path, downloading the default ShareGPT file if needed."""
    if path is not None:
        p = Path(path)
        if not p.is_file():
            raise FileNotFoundError(f"Dataset not found at {p}")
        return p

    dirs = [Path(d) for d in search_dirs] if search_dirs is not None else [Path("."), Path(tempfile.gettempdir())]
    for d in dirs:
        candidate = d / DEFAULT_DATASET
        if candidate.is_file():
            logger.info("Using dataset %s", candidate)
            return candidate

    if not download:
        raise FileNotFoundError(f"{DEFAULT_DATASET} not found in {', '.join(str(d) for d in dirs)}")

    dest = Path(tempfile.gettempdir()) / DEFAULT_DATASET
    logger.info("Downloading ShareGPT dataset to %s", dest)
    return await download_dataset(url, dest)
