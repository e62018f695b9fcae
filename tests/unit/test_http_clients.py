"""Unit tests for the embedding and completion clients."""

import json

import httpx
import pytest

from flatrag.completion import CompletionClient
from flatrag.config import ProviderKind, Settings
from flatrag.embedder import EmbeddingClient, extract_embedding
from flatrag.errors import (
    CompletionRequestFailed,
    EmbeddingRequestFailed,
    FlatRAGError,
    MalformedCompletionResponse,
    MalformedEmbeddingResponse,
    RequestFailed,
    RequestTimeout,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _json_reply(body, status: int = 200):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, json=body)

    return handler, seen


# --- Embedding ---


async def test_embed_sends_input_and_bearer(settings: Settings) -> None:
    """POSTs {input} with the API key as a bearer token."""
    handler, seen = _json_reply({"data": [{"embedding": [0.1, 0.2, 0.3]}]})
    s = settings.updated(api_key="k-123")
    async with _client(handler) as http:
        vector = await EmbeddingClient(s, client=http).embed("hello")

    assert vector == [0.1, 0.2, 0.3]
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://embed.test/v1/embeddings"
    assert json.loads(request.content) == {"input": "hello"}
    assert request.headers["Authorization"] == "Bearer k-123"


async def test_embed_without_key_has_no_auth_header(settings: Settings) -> None:
    """No API key, no Authorization header."""
    handler, seen = _json_reply({"data": [{"embedding": [1.0]}]})
    async with _client(handler) as http:
        await EmbeddingClient(settings, client=http).embed("x")
    assert "Authorization" not in seen[0].headers


async def test_embed_non_success_status(settings: Settings) -> None:
    """A non-2xx reply carries status and body."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="model loading")

    async with _client(handler) as http:
        with pytest.raises(EmbeddingRequestFailed) as excinfo:
            await EmbeddingClient(settings, client=http).embed("x")
    assert excinfo.value.status_code == 503
    assert excinfo.value.body == "model loading"


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"data": []},
        {"data": [{}]},
        {"data": [{"embedding": "nope"}]},
        {"data": [{"embedding": [1.0, "x"]}]},
        {"embeddings": [[1.0]]},
        [1.0, 2.0],
    ],
)
def test_extract_embedding_rejects_other_shapes(body) -> None:
    """Anything but data[0].embedding as numbers is malformed."""
    with pytest.raises(MalformedEmbeddingResponse):
        extract_embedding(body)


async def test_embed_non_json_body(settings: Settings) -> None:
    """A 200 with a non-JSON body is malformed."""
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    async with _client(handler) as http:
        with pytest.raises(MalformedEmbeddingResponse):
            await EmbeddingClient(settings, client=http).embed("x")


async def test_embed_timeout(settings: Settings) -> None:
    """Transport timeouts surface as RequestTimeout."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    async with _client(handler) as http:
        with pytest.raises(RequestTimeout) as excinfo:
            await EmbeddingClient(settings.updated(request_timeout=2.5), client=http).embed("x")
    assert excinfo.value.timeout == 2.5


# --- Completion ---


async def test_complete_echoes_without_endpoint(settings: Settings) -> None:
    """No completion URL: the prompt comes back unchanged, nothing is sent."""
    handler, seen = _json_reply({"content": "never"})
    async with _client(handler) as http:
        assert await CompletionClient(settings, client=http).complete("the prompt") == "the prompt"
    assert seen == []


async def test_complete_flat_shape(settings: Settings) -> None:
    """Flat providers get {prompt, temperature, n_predict}; reply is trimmed."""
    handler, seen = _json_reply({"content": "  answer \n"})
    s = settings.updated(completion_url="http://llm.test/completion", temperature=0.7, n_predict=64)
    async with _client(handler) as http:
        assert await CompletionClient(s, client=http).complete("p") == "answer"
    assert json.loads(seen[0].content) == {"prompt": "p", "temperature": 0.7, "n_predict": 64}


async def test_complete_chat_shape(settings: Settings) -> None:
    """Chat providers get {model, messages, max_tokens, temperature}."""
    handler, seen = _json_reply({"choices": [{"message": {"content": " hi "}}]})
    s = settings.updated(
        completion_url="https://api.openai.com/v1/chat/completions",
        model_name="gpt-mini",
        max_tokens=42,
        api_key="sk",
    )
    assert s.completion_provider is ProviderKind.CHAT
    async with _client(handler) as http:
        assert await CompletionClient(s, client=http).complete("p") == "hi"
    assert json.loads(seen[0].content) == {
        "model": "gpt-mini",
        "messages": [{"role": "user", "content": "p"}],
        "max_tokens": 42,
        "temperature": 0.0,
    }
    assert seen[0].headers["Authorization"] == "Bearer sk"


def test_complete_explicit_provider_overrides_url(settings: Settings) -> None:
    """An explicit provider kind decides the body even for a local URL."""
    s = settings.updated(completion_url="http://localhost:8080/v1/chat/completions",
                         completion_provider=ProviderKind.CHAT)
    assert "messages" in CompletionClient(s).build_payload("p")


async def test_complete_non_success_status(settings: Settings) -> None:
    """Non-2xx replies raise CompletionRequestFailed with the status."""
    handler, _ = _json_reply({"error": "rate limited"}, status=429)
    s = settings.updated(completion_url="http://llm.test/completion")
    async with _client(handler) as http:
        with pytest.raises(CompletionRequestFailed) as excinfo:
            await CompletionClient(s, client=http).complete("p")
    assert excinfo.value.status_code == 429


async def test_complete_unknown_shape_raises(settings: Settings) -> None:
    """A reply with neither shape is malformed by default."""
    handler, _ = _json_reply({"text": "something else"})
    s = settings.updated(completion_url="http://llm.test/completion")
    async with _client(handler) as http:
        with pytest.raises(MalformedCompletionResponse):
            await CompletionClient(s, client=http).complete("p")


async def test_complete_unknown_shape_lenient(settings: Settings) -> None:
    """lenient_completion restores the silent empty-string result."""
    handler, _ = _json_reply({"text": "something else"})
    s = settings.updated(completion_url="http://llm.test/completion", lenient_completion=True)
    async with _client(handler) as http:
        assert await CompletionClient(s, client=http).complete("p") == ""


async def test_client_opens_own_http_client(settings: Settings) -> None:
    """Without an injected client, ``async with`` owns and closes one."""
    async with EmbeddingClient(settings) as embedder:
        assert embedder._client is not None
        own = embedder._client
    assert own.is_closed
    assert embedder._client is None


async def test_complete_chat_empty_content(settings: Settings) -> None:
    """An empty chat answer is still an answer; a missing one is malformed."""
    s = settings.updated(completion_url="https://api.openai.com/v1/chat/completions")
    handler, _ = _json_reply({"choices": [{"message": {"role": "assistant", "content": ""}}]})
    async with _client(handler) as http:
        assert await CompletionClient(s, client=http).complete("p") == ""

    handler, _ = _json_reply({"choices": [{"message": {"role": "assistant"}}]})
    async with _client(handler) as http:
        with pytest.raises(MalformedCompletionResponse):
            await CompletionClient(s, client=http).complete("p")


async def test_connection_failure_is_request_failed(settings: Settings) -> None:
    """Transport errors other than timeouts become RequestFailed."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as http:
        with pytest.raises(RequestFailed) as excinfo:
            await EmbeddingClient(settings, client=http).embed("x")
    assert isinstance(excinfo.value, FlatRAGError)
    assert excinfo.value.url == "http://embed.test/v1/embeddings"
    assert "connection refused" in excinfo.value.reason

    s = settings.updated(completion_url="http://llm.test/completion")
    async with _client(handler) as http:
        with pytest.raises(RequestFailed):
            await CompletionClient(s, client=http).complete("p")
