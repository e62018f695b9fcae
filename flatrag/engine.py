"""Public entry point: ingest documents, search topics, answer questions."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import httpx

from .chunk_store import ChunkStore
from .completion import CompletionClient
from .config import Settings
from .embedder import EmbeddingClient
from .filters import Filter, coerce_filters
from .ingest import Ingestor
from .retriever import Retriever
from .vector_store import ScoredChunk

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No relevant chunks found above similarity threshold"

PROMPT_TEMPLATE = (
    'Use the information between the dashes "---" to answer the question that follows:'
    "\n\n---\n\n{context}\n\n---\n\nQuestion: {question}"
)

FilterArg = Sequence[Union[Filter, str]]


@dataclass
class QueryResult:
    """Structured answer returned by ``Engine.query(..., raw=True)``."""
    chunks: List[ScoredChunk] = field(default_factory=list)
    prompt: Optional[str] = None
    response: Optional[str] = None   # set only when a completion URL is configured

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"chunks": [c.to_dict() for c in self.chunks]}
        if self.prompt is not None:
            out["prompt"] = self.prompt
        if self.response is not None:
            out["response"] = self.response
        return out


def build_prompt(context: str, question: str) -> str:
    return PROMPT_TEMPLATE.format(context=context, question=question)


class Engine:
    """Composes retrieval, prompt assembly and completion.

    Settings are an immutable snapshot. ``update_settings`` swaps in a new
    one; every operation captures the snapshot current at its start and
    uses it until it finishes.

    Usage::

        async with Engine.from_env(completion_url="http://localhost:8080/completion") as engine:
            await engine.ingest("blog/pets/cats.txt")
            print(await engine.query("pets", "Are cats mammals?"))
    """

    def __init__(self, settings: Optional[Settings] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self._settings = settings or Settings()
        self._client = client
        self._owns_client = False

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None, **overrides) -> "Engine":
        return cls(Settings.from_env(env_file=env_file, **overrides))

    async def __aenter__(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.request_timeout)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    # --- Settings ---

    @property
    def settings(self) -> Settings:
        return self._settings

    def update_settings(self, **changes) -> Settings:
        self._settings = self._settings.updated(**changes)
        return self._settings

    # --- Components bound to one snapshot ---

    def _embedder(self, settings: Settings) -> EmbeddingClient:
        return EmbeddingClient(settings, client=self._client)

    def _retriever(self, settings: Settings) -> Retriever:
        return Retriever(settings, self._embedder(settings), ChunkStore(settings))

    # --- Operations ---

    async def ingest(self, file_path: Union[str, Path], topic: Optional[str] = None) -> Path:
        settings = self._settings
        return await Ingestor(settings, self._embedder(settings)).ingest(file_path, topic)

    async def ingest_many(self, file_paths: Iterable[Union[str, Path]],
                          topic: Optional[str] = None) -> List[Path]:
        settings = self._settings
        return await Ingestor(settings, self._embedder(settings)).ingest_many(file_paths, topic)

    async def search(self, topic: str, question: str,
                     filters: FilterArg = ()) -> List[ScoredChunk]:
        return await self._retriever(self._settings).search(
            topic, question, coerce_filters(filters))

    async def complete(self, prompt: str) -> str:
        return await CompletionClient(self._settings, client=self._client).complete(prompt)

    def documents(self, topic: str) -> List[Path]:
        return ChunkStore(self._settings).documents(topic)

    async def query(self, topic: str, question: str, filters: FilterArg = (),
                    raw: bool = False) -> Union[str, QueryResult]:
        """Answer ``question`` from the chunks stored under ``topic``.

        Args:
            topic: Topic to search.
            question: The user's question.
            filters: Filter objects or ``key<op>value`` strings, ANDed.
            raw: Return a ``QueryResult`` instead of a string.

        Returns:
            String mode: the completion text, or the assembled prompt when no
            completion URL is configured, or ``NO_RESULTS_MESSAGE``.
            Raw mode: ``QueryResult``; ``chunks`` is empty when nothing matched.
        """
        settings = self._settings
        chunks = await self._retriever(settings).search(topic, question, coerce_filters(filters))

        if not chunks:
            logger.debug(NO_RESULTS_MESSAGE)
            return QueryResult(chunks=[]) if raw else NO_RESULTS_MESSAGE

        context = "\n\n".join(c.text for c in chunks)
        prompt = build_prompt(context, question)
        completer = CompletionClient(settings, client=self._client)

        if raw:
            response = await completer.complete(prompt) if settings.has_completion else None
            return QueryResult(chunks=chunks, prompt=prompt, response=response)

        if not settings.has_completion:
            return prompt
        return await completer.complete(prompt)
