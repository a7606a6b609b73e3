"""
Vector memory data model - stored records, ranked results and search envelopes.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np

from ..core import config


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VectorRecord:
    """Represents a vector record with its source text and metadata."""

    id: str = ""
    """Unique identifier for the vector record (generated on insert when empty)"""

    vector: Optional[np.ndarray] = None
    """The vector representation of the content"""

    content: str = ""
    """The source text that was embedded"""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Additional metadata associated with the vector"""

    created_at: datetime = field(default_factory=utc_now)
    """Creation timestamp (UTC)"""

    @property
    def dimension(self) -> int:
        return 0 if self.vector is None else int(len(self.vector))

    @property
    def consciousness_aware(self) -> bool:
        return bool(self.metadata.get("consciousness_aware", False))

    def to_dict(self, include_vector: bool = False, include_metadata: bool = True) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "dimension": self.dimension,
        }
        if include_metadata:
            data["metadata"] = dict(self.metadata)
        if include_vector and self.vector is not None:
            data["vector"] = [float(v) for v in self.vector]
        return data


@dataclass
class QueryResult:
    """Represents a search result from vector store."""

    id: str
    """Identifier for the matching record"""

    score: float
    """Cosine similarity of the match"""

    metadata: Dict[str, Any]
    """Metadata associated with the matched record"""

    record: Optional[VectorRecord] = None
    """The matched record itself"""


@dataclass
class RankedRecord:
    """Vector record with relevance score, rank and generated snippet."""

    record: VectorRecord
    similarity_score: float
    rank: int
    snippet: str = ""
    search_metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self, include_metadata: bool = True) -> Dict[str, Any]:
        return {
            "record": self.record.to_dict(include_metadata=include_metadata),
            "similarity_score": self.similarity_score,
            "rank": self.rank,
            "snippet": self.snippet,
            "search_metadata": dict(self.search_metadata),
        }


@dataclass
class SearchSnippet:
    """Generated text snippet with relevance information."""

    text: str
    source_record_id: str
    relevance_score: float
    highlighted_terms: List[str]
    start_position: int
    length: int


@dataclass
class AgentContext:
    """Caller objectives and state used to bias ranking."""

    agent_id: str = ""
    consciousness_state: str = ""
    current_objectives: List[str] = field(default_factory=list)
    memory_context: Dict[str, Any] = field(default_factory=dict)
    agent_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SemanticSearchOptions:
    """Options for configuring semantic search behavior."""

    top_k: int = config.VECTOR_TOP_K
    similarity_threshold: float = config.VECTOR_SIMILARITY_THRESHOLD
    generate_snippets: bool = config.SNIPPETS_ENABLED
    snippet_length: int = config.SNIPPET_LENGTH
    include_metadata: bool = config.INCLUDE_METADATA


@dataclass
class SemanticSearchResult:
    """Ranked search results plus timing, counts and a human-readable summary."""

    results: List[RankedRecord]
    query: str
    processing_time_ms: float = 0.0
    total_records_searched: int = 0
    result_count: int = 0
    search_metadata: Dict[str, Any] = field(default_factory=dict)
    response_summary: str = ""
    success: bool = True
    message: str = ""
    error_code: Optional[str] = None


def normalize_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Coerce metadata into JSON-compatible values.

    Accepts str/int/float/bool/None scalars, lists and string-keyed dicts
    (nested). Datetimes become ISO strings and numpy scalars plain numbers.

    Raises:
        ValueError: for keys that are not strings or unsupported values
    """
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise ValueError(f"metadata must be a dict, got {type(metadata).__name__}")
    return {_metadata_key(k): _metadata_value(v) for k, v in metadata.items()}


def _metadata_key(key: Any) -> str:
    if not isinstance(key, str):
        raise ValueError(f"metadata keys must be strings: {key!r}")
    return key


def _metadata_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {_metadata_key(k): _metadata_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_metadata_value(v) for v in value]
    raise ValueError(f"Unsupported metadata value type: {type(value).__name__}")
