"""
Vector memory configuration - every option is read from the environment.
Defaults match the documented configuration surface.
"""

import os
from pathlib import Path

from .. import VERSION as PACKAGE_VERSION

# Debug flag exposes API docs
DEBUG = os.getenv("DEBUG", "true").lower() == "true"

# Search defaults
VECTOR_TOP_K = int(os.getenv("VECTOR_TOP_K", "5"))
VECTOR_SIMILARITY_THRESHOLD = float(os.getenv("VECTOR_SIMILARITY_THRESHOLD", "0.3"))
SNIPPETS_ENABLED = os.getenv("SNIPPETS_ENABLED", "true").lower() == "true"
SNIPPET_LENGTH = int(os.getenv("SNIPPET_LENGTH", "200"))
INCLUDE_METADATA = os.getenv("INCLUDE_METADATA", "true").lower() == "true"

# Ingestion
FILE_CHUNK_SIZE = int(os.getenv("FILE_CHUNK_SIZE", "1000"))

# Embedding providers and cache
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence_transformer|ollama
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-mpnet-base-v2")
OLLAMA_EMBED_MODEL = os.getenv("OLLAMA_EMBED_MODEL", "nomic-embed-text")
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))
EMBEDDING_CACHE_TTL_MINUTES = float(os.getenv("EMBEDDING_CACHE_TTL_MINUTES", "30"))
EMBEDDING_CACHE_MAX_ENTRIES = int(os.getenv("EMBEDDING_CACHE_MAX_ENTRIES", "10000"))

# Persistence
PERSISTENCE_DIR = os.getenv("PERSISTENCE_DIR", "./data/vector_store")
PERSISTENCE_PRUNE_ORPHANS = os.getenv("PERSISTENCE_PRUNE_ORPHANS", "true").lower() == "true"
AUTO_PERSISTENCE_ENABLED = os.getenv("AUTO_PERSISTENCE_ENABLED", "false").lower() == "true"
AUTO_PERSISTENCE_INTERVAL_SEC = float(os.getenv("AUTO_PERSISTENCE_INTERVAL_SEC", "30"))

# Notification channel
EVENT_QUEUE_MAXSIZE = int(os.getenv("EVENT_QUEUE_MAXSIZE", "1000"))

VALID_EMBED_PROVIDERS = ["hash", "sentence_transformer", "ollama"]

# Version string
VERSION = PACKAGE_VERSION

# Snapshot index format version
INDEX_SCHEMA_VERSION = "1.0"


def get_embedding_provider(provider_name: str = None):
    """Get configured embedding provider implementation."""
    name = provider_name or os.getenv("EMBED_PROVIDER", EMBED_PROVIDER)

    if name == "hash":
        from ..vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(EMBED_DIM)
    elif name == "sentence_transformer":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME)
    elif name == "ollama":
        from ..vector.embeddings import OllamaEmbedding
        return OllamaEmbedding(OLLAMA_EMBED_MODEL)
    else:
        raise ValueError(f"Unknown EMBED_PROVIDER: {name}")


def get_persistence_dir() -> Path:
    """Snapshot base directory (re-read so tests can point it elsewhere)."""
    return Path(os.getenv("PERSISTENCE_DIR", PERSISTENCE_DIR))


def is_auto_persistence_enabled():
    """Check if the API should start the auto-persistence timer."""
    return os.getenv("AUTO_PERSISTENCE_ENABLED", "false").lower() == "true"


def get_auto_persistence_interval():
    """Get auto-persistence interval in seconds."""
    return AUTO_PERSISTENCE_INTERVAL_SEC


def get_cache_ttl_seconds():
    """Embedding cache entry lifetime in seconds."""
    return EMBEDDING_CACHE_TTL_MINUTES * 60


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if VECTOR_TOP_K < 1:
        issues.append("VECTOR_TOP_K must be >= 1")

    if not 0.0 <= VECTOR_SIMILARITY_THRESHOLD <= 1.0:
        issues.append(f"VECTOR_SIMILARITY_THRESHOLD must be within [0, 1]: {VECTOR_SIMILARITY_THRESHOLD}")

    if SNIPPET_LENGTH < 1:
        issues.append("SNIPPET_LENGTH must be >= 1")

    if FILE_CHUNK_SIZE < 1:
        issues.append("FILE_CHUNK_SIZE must be >= 1")

    if EMBEDDING_CACHE_TTL_MINUTES <= 0:
        issues.append("EMBEDDING_CACHE_TTL_MINUTES must be > 0")

    if EMBEDDING_CACHE_MAX_ENTRIES < 1:
        issues.append("EMBEDDING_CACHE_MAX_ENTRIES must be >= 1")

    if AUTO_PERSISTENCE_INTERVAL_SEC <= 0:
        issues.append("AUTO_PERSISTENCE_INTERVAL_SEC must be > 0")

    if EVENT_QUEUE_MAXSIZE < 1:
        issues.append("EVENT_QUEUE_MAXSIZE must be >= 1")

    if EMBED_PROVIDER not in VALID_EMBED_PROVIDERS:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if EMBED_DIM < 1:
        issues.append("EMBED_DIM must be >= 1")

    return issues
