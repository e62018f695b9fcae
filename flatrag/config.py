"""Central configuration for the retrieval engine.

Values resolve with precedence: explicit argument > environment
(``FLATRAG_*``, optionally from a ``.env`` file) > built-in default.
A resolved ``Settings`` is frozen; ``updated()`` returns a new snapshot.
"""
import math
import os
from dataclasses import dataclass, replace, fields
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

ENV_PREFIX = "FLATRAG_"

# === Storage ===
TOPICS_DIRECTORY = "topics"         # Holds one directory per topic
EMBEDDINGS_DIRECTORY = "memory"     # JSONL chunk files inside each topic

# === Chunking ===
CHUNK_SIZE = 3                      # Lines per chunk

# === Retrieval ===
MAX_RESULTS = 3                     # Top-k kept after sorting by similarity
MIN_SIMILARITY = 0.4                # Cosine similarity floor (inclusive)
MAX_DISTANCE = 0.8                  # Euclidean distance ceiling (inclusive)

# === Endpoints ===
EMBEDDING_URL = "http://localhost:8080/v1/embeddings"
COMPLETION_URL = ""                 # Empty = echo the prompt back
REQUEST_TIMEOUT = 30.0              # Seconds, per outbound request

# === Completion ===
TEMPERATURE = 0.0
N_PREDICT = 128
MAX_TOKENS = 500
MODEL_NAME = ""

# URL fragments of hosted services that speak the chat-messages format.
CHAT_PROVIDER_HINTS = ("anthropic", "openai", "featherless", "openrouter", "atlas")


class ProviderKind(str, Enum):
    """Request/response shape spoken by the completion backend."""
    CHAT = "chat"   # {model, messages, max_tokens, temperature}
    FLAT = "flat"   # {prompt, temperature, n_predict} (llama.cpp style)

    @classmethod
    def from_url(cls, url: str) -> "ProviderKind":
        lowered = url.lower()
        if any(hint in lowered for hint in CHAT_PROVIDER_HINTS):
            return cls.CHAT
        return cls.FLAT


@dataclass(frozen=True)
class Settings:
    """Immutable configuration snapshot shared by every component."""
    embedding_url: str = EMBEDDING_URL
    completion_url: str = COMPLETION_URL
    completion_provider: Optional[ProviderKind] = None
    api_key: str = ""
    debug: bool = False
    topics_directory: Path = Path(TOPICS_DIRECTORY)
    embeddings_directory: str = EMBEDDINGS_DIRECTORY
    chunk_size: int = CHUNK_SIZE
    max_results: int = MAX_RESULTS
    min_similarity: float = MIN_SIMILARITY
    max_distance: float = MAX_DISTANCE
    temperature: float = TEMPERATURE
    n_predict: int = N_PREDICT
    max_tokens: int = MAX_TOKENS
    model_name: str = MODEL_NAME
    request_timeout: float = REQUEST_TIMEOUT
    lenient_completion: bool = False

    def __post_init__(self):
        # Normalise loosely-typed inputs so the snapshot is always consistent
        object.__setattr__(self, "topics_directory", Path(self.topics_directory))
        if self.completion_provider is None:
            kind = ProviderKind.from_url(self.completion_url)
        elif isinstance(self.completion_provider, ProviderKind):
            kind = self.completion_provider
        else:
            try:
                kind = ProviderKind(str(self.completion_provider).strip().lower())
            except ValueError:
                raise ConfigurationError(
                    f"Unknown completion provider '{self.completion_provider}'. "
                    f"Expected one of: {', '.join(k.value for k in ProviderKind)}"
                ) from None
        object.__setattr__(self, "completion_provider", kind)

        if self.chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.max_results < 1:
            raise ConfigurationError(f"max_results must be >= 1, got {self.max_results}")
        if self.request_timeout <= 0:
            raise ConfigurationError(
                f"request_timeout must be positive, got {self.request_timeout}")

    @property
    def has_completion(self) -> bool:
        return bool(self.completion_url)

    def updated(self, **changes) -> "Settings":
        """Return a new snapshot with ``changes`` applied.

        Changing the completion URL without naming a provider re-infers
        the provider kind from the new URL.
        """
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        if "completion_url" in changes and "completion_provider" not in changes:
            changes["completion_provider"] = None
        return replace(self, **changes)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None, **overrides) -> "Settings":
        """Resolve settings from explicit overrides, then environment, then defaults.

        Args:
            env_file: ``.env`` file to load first (default: ``./.env``).
                Variables already present in the process environment win
                over the file.
            **overrides: Explicit values; ``None`` means "not given".

        Raises:
            ConfigurationError: If an environment value cannot be parsed.
        """
        load_dotenv(env_file if env_file is not None else Path.cwd() / ".env")

        values = {
            "embedding_url": _env_str("EMBEDDING_URL", EMBEDDING_URL),
            "completion_url": _env_str("COMPLETION_URL", COMPLETION_URL),
            "completion_provider": _env_str("COMPLETION_PROVIDER", None),
            "api_key": _env_str("API_KEY", ""),
            "debug": _env_bool("DEBUG", False),
            "topics_directory": _env_str("TOPICS_DIR", TOPICS_DIRECTORY),
            "embeddings_directory": _env_str("EMBEDDINGS_DIR", EMBEDDINGS_DIRECTORY),
            "chunk_size": _env_int("CHUNK_SIZE", CHUNK_SIZE),
            "max_results": _env_int("MAX_RESULTS", MAX_RESULTS),
            "min_similarity": _env_float("MIN_SIMILARITY", MIN_SIMILARITY),
            "max_distance": _env_float("MAX_DISTANCE", MAX_DISTANCE),
            "temperature": _env_float("TEMPERATURE", TEMPERATURE),
            "n_predict": _env_int("N_PREDICT", N_PREDICT),
            "max_tokens": _env_int("MAX_TOKENS", MAX_TOKENS),
            "model_name": _env_str("MODEL_NAME", MODEL_NAME),
            "request_timeout": _env_float("TIMEOUT", REQUEST_TIMEOUT),
            "lenient_completion": _env_bool("LENIENT_COMPLETION", False),
        }

        unknown = set(overrides) - set(values)
        if unknown:
            raise ConfigurationError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        values.update({k: v for k, v in overrides.items() if v is not None})

        # An explicit URL with no explicit provider should not inherit an env provider
        if overrides.get("completion_url") is not None and overrides.get("completion_provider") is None:
            values["completion_provider"] = None

        return cls(**values)


# --- Environment readers ---

def _env_raw(key: str) -> Optional[str]:
    val = os.getenv(ENV_PREFIX + key)
    if val is None or not val.strip():
        return None
    return val.strip()


def _env_str(key: str, default: Optional[str]) -> Optional[str]:
    val = _env_raw(key)
    return val if val is not None else default


def _env_int(key: str, default: int) -> int:
    raw = _env_raw(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"Environment variable '{ENV_PREFIX + key}' is not a valid integer: '{raw}'."
        ) from None


def _env_float(key: str, default: float) -> float:
    raw = _env_raw(key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        value = math.nan
    if not math.isfinite(value):
        raise ConfigurationError(
            f"Environment variable '{ENV_PREFIX + key}' is not a valid number: '{raw}'."
        )
    return value


def _env_bool(key: str, default: bool) -> bool:
    raw = _env_raw(key)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise ConfigurationError(
        f"Environment variable '{ENV_PREFIX + key}' is not a valid boolean: '{raw}'."
    )
