# Copyright (c) 2025 Vahab Jabrayilov (vjabrayilov@cs.columbia.edu)
# Copyright (c) 2025 DAPLab of Columbia University (https://daplab.cs.columbia.edu/)
# Copyright (c) 2025 The Trustees of Columbia University in the City of New York
"""Pytest fixtures for trtbench tests."""

from __future__ import annotations

import asyncio
import json
import socket
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer


class FakeLLM:
    """In-process stand-in for an OpenAI-compatible chat completions server."""

    def __init__(self) -> None:
        self.healthy = True
        self.status = 200
        self.delay_s = 0.0
        self.models: List[str] = ["test-model"]
        self.prompt_tokens = 10
        self.completion_tokens = 50
        self.include_usage = True
        self.raw_body: Optional[str] = None
        self.dataset_body = b""
        self.requests: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.base_url = ""

    async def health(self, request: web.Request) -> web.Response:
        return web.Response(status=200 if self.healthy else 503)

    async def list_models(self, request: web.Request) -> web.Response:
        return web.json_response({"object": "list", "data": [{"id": m, "object": "model"} for m in self.models]})

    async def chat(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.requests.append(body)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
        finally:
            self.in_flight -= 1

        if self.status != 200:
            return web.json_response({"error": {"message": "internal error"}}, status=self.status)
        if self.raw_body is not None:
            return web.Response(text=self.raw_body, content_type="text/plain")

        resp: Dict[str, Any] = {
            "id": f"chatcmpl-{len(self.requests)}",
            "object": "chat.completion",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": "ok"}, "finish_reason": "stop"}],
        }
        if self.include_usage:
            resp["usage"] = {
                "prompt_tokens": self.prompt_tokens,
                "completion_tokens": self.completion_tokens,
                "total_tokens": self.prompt_tokens + self.completion_tokens,
            }
        return web.json_response(resp)

    async def dataset_file(self, request: web.Request) -> web.Response:
        return web.Response(body=self.dataset_body, content_type="application/json")

    async def dataset_truncated(self, request: web.Request) -> web.StreamResponse:
        # Advertise more bytes than are sent, then drop the connection.
        resp = web.StreamResponse()
        resp.content_length = len(self.dataset_body) * 2
        await resp.prepare(request)
        await resp.write(self.dataset_body)
        request.transport.close()
        return resp

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.health)
        app.router.add_get("/v1/models", self.list_models)
        app.router.add_post("/v1/chat/completions", self.chat)
        app.router.add_get("/files/sharegpt.json", self.dataset_file)
        app.router.add_get("/files/truncated.json", self.dataset_truncated)
        return app


@pytest_asyncio.fixture
async def fake_llm() -> AsyncGenerator[FakeLLM, None]:
    llm = FakeLLM()
    server = TestServer(llm.app())
    await server.start_server()
    llm.base_url = str(server.make_url("/")).rstrip("/")
    yield llm
    await server.close()


@pytest.fixture
def closed_url() -> str:
    """URL of a local port with nothing listening."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return f"http://127.0.0.1:{port}"


def make_prompt(i: int, length: int = 80) -> str:
    head = f"Question {i}: "
    return head + "x" * max(length - len(head), 0)


@pytest.fixture
def sharegpt_file(tmp_path: Path) -> Path:
    """ShareGPT-style dataset with 40 qualifying human turns plus noise."""
    items = []
    for i in range(40):
        items.append(
            {
                "id": f"conv-{i}",
                "conversations": [
                    {"from": "human", "value": make_prompt(i)},
                    {"from": "gpt", "value": f"Answer {i}: " + "a" * 70},
                    {"from": "human", "value": "too short"},
                    {"from": "human", "value": "y" * 2500},
                ],
            }
        )
    path = tmp_path / "sharegpt.json"
    path.write_text(json.dumps(items), encoding="utf-8")
    return path
