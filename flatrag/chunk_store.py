"""Flat-file chunk persistence: one JSONL file per document, grouped by topic.

Layout::

    <topics_directory>/<topic>/<embeddings_directory>/<document stem>.jsonl
"""
import asyncio
import json
import logging
import os
import tempfile
from datetime import date, datetime
from pathlib import Path
from typing import List, Sequence

from .config import Settings
from .errors import ChunkStoreCorrupt
from .vector_store import Chunk, chunk_from_record

logger = logging.getLogger(__name__)

CHUNK_FILE_SUFFIX = ".jsonl"


def _json_default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class ChunkStore:
    """Reads and writes chunk-store files under a topics directory."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def topic_dir(self, topic: str) -> Path:
        return self.settings.topics_directory / topic / self.settings.embeddings_directory

    def path_for(self, topic: str, document_name: str) -> Path:
        stem = Path(document_name).stem
        return self.topic_dir(topic) / f"{stem}{CHUNK_FILE_SUFFIX}"

    def documents(self, topic: str) -> List[Path]:
        """Chunk-store files currently present for ``topic``."""
        directory = self.topic_dir(topic)
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.rglob(f"*{CHUNK_FILE_SUFFIX}") if p.is_file())

    async def write(self, topic: str, document_name: str, chunks: Sequence[Chunk]) -> Path:
        """Replace the document's chunk file with ``chunks``, one record per line."""
        path = self.path_for(topic, document_name)
        lines = [json.dumps(c.to_record(), ensure_ascii=False, default=_json_default)
                 for c in chunks]
        await asyncio.to_thread(_atomic_write, path, "\n".join(lines))
        logger.debug("Wrote %d chunk(s) to %s", len(lines), path)
        return path

    async def read(self, topic: str) -> List[Chunk]:
        """Every chunk stored for ``topic``, file by file, line by line.

        Raises:
            ChunkStoreCorrupt: If any line is not a valid chunk record.
        """
        chunks: List[Chunk] = []
        for path in self.documents(topic):
            chunks.extend(await asyncio.to_thread(_read_file, path))
        logger.debug("Loaded %d chunk(s) for topic '%s'", len(chunks), topic)
        return chunks

    async def delete(self, topic: str, document_name: str) -> bool:
        path = self.path_for(topic, document_name)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        logger.debug("Deleted %s", path)
        return True


def _atomic_write(path: Path, content: str) -> None:
    # Readers see either the previous file or the complete new one
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _read_file(path: Path) -> List[Chunk]:
    chunks = []
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise ChunkStoreCorrupt(path, line_number, e.msg) from e
            chunk = chunk_from_record(record)
            if chunk is None:
                raise ChunkStoreCorrupt(path, line_number, "missing text, embedding or meta")
            chunks.append(chunk)
    return chunks
