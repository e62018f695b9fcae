"""Document extraction and the ingestion pipeline.

A source document is plain text with an optional YAML front-matter header::

    ---
    category: pets
    date: 2024-03-01
    ---
    cats are mammals
    dogs are mammals

The header becomes document-level metadata copied onto every chunk.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from .chunk_store import ChunkStore
from .chunker import chunk_lines
from .config import Settings
from .embedder import EmbeddingClient
from .vector_store import Chunk

logger = logging.getLogger(__name__)

FRONT_MATTER_DELIMITER = "---"


@dataclass
class Document:
    """Extracted document: metadata header plus text body."""
    body: str
    source_file: str
    meta: Dict[str, Any] = field(default_factory=dict)


def extract(file_path: Union[str, Path]) -> Document:
    """Read a document and split off its front matter.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the front matter is not a YAML mapping.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    text = path.read_text(encoding="utf-8")
    meta, body = split_front_matter(text)
    return Document(body=body, source_file=str(path), meta=meta)


def split_front_matter(text: str):
    """Return ``(meta, body)``; documents without a header get empty metadata."""
    text = text.lstrip("\ufeff")
    lines = text.split("\n")
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        return {}, text

    for i in range(1, len(lines)):
        if lines[i].strip() == FRONT_MATTER_DELIMITER:
            header = "\n".join(lines[1:i])
            body = "\n".join(lines[i + 1:])
            break
    else:
        # Unterminated header: treat the whole file as body
        return {}, text

    try:
        meta = yaml.safe_load(header)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid front matter: {e}") from e
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise ValueError("Front matter must be a mapping of keys to values")
    return _plain_meta(meta), body


def _plain_meta(value):
    """Make YAML-decoded values JSON friendly (dates become ISO strings)."""
    if isinstance(value, dict):
        return {str(k): _plain_meta(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain_meta(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class Ingestor:
    """extract -> chunk -> embed -> store, for one document at a time.

    Every run re-embeds the whole document and replaces its chunk file;
    no change detection is done.
    """

    def __init__(self, settings: Settings, embedder: EmbeddingClient,
                 store: Optional[ChunkStore] = None):
        self.settings = settings
        self.embedder = embedder
        self.store = store or ChunkStore(settings)

    async def ingest(self, file_path: Union[str, Path], topic: Optional[str] = None) -> Path:
        """Ingest one document and return the chunk file written.

        Args:
            file_path: Document to ingest.
            topic: Target topic; defaults to the document's parent directory name.
        """
        path = Path(file_path)
        topic = topic or path.resolve().parent.name
        document = await asyncio.to_thread(extract, path)

        windows = chunk_lines(document.body, self.settings.chunk_size)
        logger.debug("%s: %d chunk(s) of up to %d line(s)",
                     path.name, len(windows), self.settings.chunk_size)

        chunks: List[Chunk] = []
        for text in windows:
            vector = await self.embedder.embed(text)
            chunks.append(Chunk(text=text, embedding=vector, meta=document.meta))

        out = await self.store.write(topic, path.name, chunks)
        logger.debug("Ingested %s -> %s", path, out)
        return out

    async def ingest_many(self, file_paths: Iterable[Union[str, Path]],
                          topic: Optional[str] = None) -> List[Path]:
        """Ingest independent documents concurrently."""
        return list(await asyncio.gather(*(self.ingest(p, topic) for p in file_paths)))
