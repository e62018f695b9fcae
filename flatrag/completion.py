"""Completion backend adapter.

Two request shapes are supported, picked by ``settings.completion_provider``:

- ``chat``: ``{model, messages: [{role: "user", content}], max_tokens, temperature}``
  answered with ``{choices: [{message: {content}}]}``
- ``flat``: ``{prompt, temperature, n_predict}`` (llama.cpp server)
  answered with ``{content}``

Either response shape is accepted regardless of the request shape.
"""
import logging

from .config import ProviderKind
from .errors import CompletionRequestFailed, MalformedCompletionResponse
from .http_client import HTTPClient

logger = logging.getLogger(__name__)


class CompletionClient(HTTPClient):
    """Sends a prompt to the completion endpoint, or echoes it when none is set."""

    def build_payload(self, prompt: str) -> dict:
        settings = self.settings
        if settings.completion_provider == ProviderKind.CHAT:
            return {
                "model": settings.model_name,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": settings.max_tokens,
                "temperature": settings.temperature,
            }
        return {
            "prompt": prompt,
            "temperature": settings.temperature,
            "n_predict": settings.n_predict,
        }

    async def complete(self, prompt: str) -> str:
        """Return the model's reply to ``prompt``, trimmed.

        Without a completion URL the prompt is returned unchanged.

        Raises:
            CompletionRequestFailed: On a non-2xx status.
            MalformedCompletionResponse: If the reply has neither known shape
                (unless ``lenient_completion`` is set, then ``""`` is returned).
            RequestTimeout: If the provider does not answer in time.
            RequestFailed: If the provider cannot be reached.
        """
        if not self.settings.has_completion:
            return prompt

        url = self.settings.completion_url
        response = await self.post_json(url, self.build_payload(prompt))
        if not response.is_success:
            logger.error("Completion request failed: status %d, body: %s",
                         response.status_code, response.text[:200])
            raise CompletionRequestFailed(response.status_code)

        try:
            data = response.json()
        except ValueError:
            data = None
        return self.extract_text(data)

    def extract_text(self, data) -> str:
        content = _chat_content(data)
        if content is None and isinstance(data, dict) and isinstance(data.get("content"), str):
            content = data["content"]
        if content is not None:
            return content.strip()

        if self.settings.lenient_completion:
            logger.warning("Completion response had no recognizable content; returning empty text")
            return ""
        keys = list(data.keys()) if isinstance(data, dict) else type(data).__name__
        raise MalformedCompletionResponse(
            f"Completion response has neither choices[0].message.content nor content: {keys}"
        )


def _chat_content(data):
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None
