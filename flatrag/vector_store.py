"""Chunk records and numpy-based similarity scoring."""
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from .errors import DimensionMismatch


@dataclass(frozen=True)
class Chunk:
    """A window of document text, its embedding, and the document's metadata."""
    text: str
    embedding: List[float]
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> Dict[str, Any]:
        return {"text": self.text, "embedding": list(self.embedding), "meta": self.meta}


@dataclass(frozen=True)
class ScoredChunk(Chunk):
    """A chunk scored against one query. Never persisted."""
    score: float = 0.0       # cosine similarity, higher is closer
    distance: float = 0.0    # Euclidean distance, lower is closer

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __repr__(self):
        preview = self.text[:30].replace("\n", " ")
        return (f"ScoredChunk(score={self.score:.4f}, "
                f"distance={self.distance:.4f}, '{preview}')")


def _as_pair(a: Sequence[float], b: Sequence[float]):
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatch(va.size, vb.size)
    return va, vb


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product over the product of magnitudes.

    Returns NaN when either vector has zero magnitude.

    Raises:
        DimensionMismatch: If the vectors differ in length.
    """
    va, vb = _as_pair(a, b)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return math.nan
    return float(np.dot(va, vb) / denom)


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Root of the summed squared differences.

    Raises:
        DimensionMismatch: If the vectors differ in length.
    """
    va, vb = _as_pair(a, b)
    return float(np.linalg.norm(va - vb))


def score_chunks(chunks: Iterable[Chunk], query: Sequence[float]) -> List[ScoredChunk]:
    """Score every chunk against ``query``, dropping those with undefined similarity."""
    scored = []
    for chunk in chunks:
        score = cosine_similarity(chunk.embedding, query)
        if math.isnan(score):
            continue
        scored.append(ScoredChunk(
            text=chunk.text,
            embedding=chunk.embedding,
            meta=chunk.meta,
            score=score,
            distance=euclidean_distance(chunk.embedding, query),
        ))
    return scored


def rank(scored: Iterable[ScoredChunk], top_k: int) -> List[ScoredChunk]:
    """Highest similarity first; equal scores keep their input order."""
    return sorted(scored, key=lambda c: c.score, reverse=True)[:top_k]


def within_thresholds(chunk: ScoredChunk, min_similarity: float,
                      max_distance: float) -> bool:
    """Both bounds are inclusive."""
    return chunk.score >= min_similarity and chunk.distance <= max_distance


def chunk_from_record(record: Any) -> Optional[Chunk]:
    """Build a Chunk from a decoded JSON record, or None if the shape is wrong."""
    if not isinstance(record, dict):
        return None
    text = record.get("text")
    embedding = record.get("embedding")
    meta = record.get("meta")
    if meta is None:
        meta = {}
    if not isinstance(text, str) or not isinstance(embedding, list) or not isinstance(meta, dict):
        return None
    try:
        vector = [float(x) for x in embedding]
    except (TypeError, ValueError):
        return None
    return Chunk(text=text, embedding=vector, meta=meta)
