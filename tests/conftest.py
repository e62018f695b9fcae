"""Pytest fixtures for flatrag tests."""

from __future__ import annotations

import json
import os
from pathlib import Path

import httpx
import pytest

from flatrag.config import Settings


# --- Fake providers ---


class FakeProvider:
    """httpx.MockTransport handler recording requests and serving canned replies.

    Embedding requests are answered from ``vectors`` (text -> vector), falling
    back to ``default_vector``. Completion requests get ``completion_body``.
    """

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        default_vector: list[float] | None = None,
        completion_body: dict | None = None,
        status_code: int = 200,
    ) -> None:
        self.vectors = vectors or {}
        self.default_vector = default_vector or [1.0, 0.0, 0.0]
        self.completion_body = completion_body if completion_body is not None else {"content": "answer"}
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    @property
    def embedded_texts(self) -> list[str]:
        return [
            json.loads(r.content)["input"]
            for r in self.requests
            if "embeddings" in r.url.path
        ]

    @property
    def completion_payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if "embeddings" not in r.url.path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="provider exploded")
        if "embeddings" in request.url.path:
            text = json.loads(request.content)["input"]
            vector = self.vectors.get(text, self.default_vector)
            return httpx.Response(200, json={"data": [{"embedding": vector}]})
        return httpx.Response(200, json=self.completion_body)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate tests from FLATRAG_* variables and any ./.env file."""
    for key in list(os.environ):
        if key.startswith("FLATRAG_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary topics directory, no completion endpoint."""
    return Settings(
        topics_directory=tmp_path / "topics",
        embedding_url="http://embed.test/v1/embeddings",
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
async def http_client(provider: FakeProvider):
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider)) as client:
        yield client


def write_chunk_file(path: Path, records: list[dict]) -> Path:
    """Write raw chunk records as a JSONL chunk-store file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(json.dumps(r) for r in records), encoding="utf-8")
    return path
