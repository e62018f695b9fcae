"""Two-stage retrieval: cosine similarity selects, Euclidean distance sifts."""
import logging
from typing import List, Optional, Sequence

from .chunk_store import ChunkStore
from .config import Settings
from .embedder import EmbeddingClient
from .filters import Filter, matches
from .vector_store import ScoredChunk, rank, score_chunks, within_thresholds

logger = logging.getLogger(__name__)


class Retriever:
    """Ranks a topic's stored chunks against a question.

    Cosine similarity ignores magnitude and picks semantically aligned
    candidates; Euclidean distance then drops candidates whose direction
    matches but whose overall geometry does not.
    """

    def __init__(self, settings: Settings, embedder: EmbeddingClient,
                 store: Optional[ChunkStore] = None):
        self.settings = settings
        self.embedder = embedder
        self.store = store or ChunkStore(settings)

    async def search(self, topic: str, question: str,
                     filters: Sequence[Filter] = ()) -> List[ScoredChunk]:
        """Find the chunks of ``topic`` relevant to ``question``.

        Steps: load, filter, embed the question, score, keep the top
        ``max_results`` by similarity, then apply both thresholds.

        Returns:
            Surviving chunks, highest similarity first. Empty when nothing
            passes; the question is not embedded if no chunk passes the filters.

        Raises:
            DimensionMismatch: If a stored embedding's length differs from the query's.
        """
        settings = self.settings
        candidates = []
        for chunk in await self.store.read(topic):
            if matches(chunk.meta, filters):
                candidates.append(chunk)
            else:
                logger.debug("Excluded by filter: %s", chunk.meta)

        if not candidates:
            logger.debug("No data matched filters %s", [str(f) for f in filters])
            return []

        query = await self.embedder.embed(question)
        top = rank(score_chunks(candidates, query), settings.max_results)

        logger.debug("Query: minimum score for inclusion is %s with a distance of %s",
                     settings.min_similarity, settings.max_distance)
        if top:
            logger.debug("Query: winning cosine similarity was %s, its Euclidean distance %s",
                         top[0].score, top[0].distance)
        for element in top:
            logger.debug("Candidate %r: similarity=%s distance=%s",
                         element.text, element.score, element.distance)

        return [c for c in top
                if within_thresholds(c, settings.min_similarity, settings.max_distance)]
