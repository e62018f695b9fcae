"""Embedding generation against an HTTP embedding endpoint."""
import logging
from typing import List

from .errors import EmbeddingRequestFailed, MalformedEmbeddingResponse
from .http_client import HTTPClient

logger = logging.getLogger(__name__)


class EmbeddingClient(HTTPClient):
    """Turns text into a vector with one request per call. No retries."""

    async def embed(self, text: str) -> List[float]:
        """Embed a single string.

        Sends ``{"input": text}`` to ``settings.embedding_url``.

        Returns:
            The embedding as a list of floats.

        Raises:
            EmbeddingRequestFailed: On a non-2xx status.
            MalformedEmbeddingResponse: If the body lacks ``data[0].embedding``.
            RequestTimeout: If the provider does not answer in time.
            RequestFailed: If the provider cannot be reached.
        """
        url = self.settings.embedding_url
        response = await self.post_json(url, {"input": text})

        if not response.is_success:
            logger.error(
                "Embedding request failed: status %d, body: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingRequestFailed(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError:
            raise MalformedEmbeddingResponse("Embedding response is not valid JSON") from None

        return extract_embedding(data)


def extract_embedding(data) -> List[float]:
    """Pull ``data[0].embedding`` out of an OpenAI-style embedding response."""
    items = data.get("data") if isinstance(data, dict) else None
    if not isinstance(items, list) or not items or not isinstance(items[0], dict):
        raise MalformedEmbeddingResponse("Embedding output malformed or missing")

    embedding = items[0].get("embedding")
    if not isinstance(embedding, list) or not embedding:
        raise MalformedEmbeddingResponse("Embedding output malformed or missing")
    if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in embedding):
        raise MalformedEmbeddingResponse("Embedding contains non-numeric values")

    return [float(x) for x in embedding]
