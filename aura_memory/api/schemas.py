"""
Request and response models for the vector memory HTTP API.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from ..core import config


class HealthResponse(BaseModel):
    status: str
    version: str
    record_count: int
    dimension: Optional[int] = None
    embedding_available: bool
    auto_persistence: bool = False


class RecordCreateRequest(BaseModel):
    id: Optional[str] = None
    vector: List[float]
    content: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('vector')
    @classmethod
    def vector_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('vector cannot be empty')
        return v


class TextRecordRequest(BaseModel):
    text: str
    id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('text')
    @classmethod
    def text_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('text cannot be empty')
        return v


class RecordResponse(BaseModel):
    id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    dimension: int
    vector: Optional[List[float]] = None


class DeleteResponse(BaseModel):
    success: bool
    id: str


class VectorSearchRequest(BaseModel):
    vector: List[float]
    top_k: int = config.VECTOR_TOP_K

    @field_validator('vector')
    @classmethod
    def vector_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('vector cannot be empty')
        return v

    @field_validator('top_k')
    @classmethod
    def top_k_must_be_positive(cls, v):
        if v < 1:
            raise ValueError('top_k must be >= 1')
        return v


class VectorSearchHit(BaseModel):
    id: str
    score: float
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class VectorSearchResponse(BaseModel):
    results: List[VectorSearchHit]


class SemanticSearchRequest(BaseModel):
    query: str
    top_k: int = config.VECTOR_TOP_K
    similarity_threshold: float = config.VECTOR_SIMILARITY_THRESHOLD
    generate_snippets: bool = config.SNIPPETS_ENABLED
    snippet_length: int = config.SNIPPET_LENGTH
    include_metadata: bool = config.INCLUDE_METADATA

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v

    @field_validator('top_k', 'snippet_length')
    @classmethod
    def must_be_positive(cls, v):
        if v < 1:
            raise ValueError('value must be >= 1')
        return v

    @field_validator('similarity_threshold')
    @classmethod
    def threshold_in_range(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError('similarity_threshold must be within [0, 1]')
        return v


class AgentContextModel(BaseModel):
    agent_id: str = ""
    consciousness_state: str = ""
    current_objectives: List[str] = Field(default_factory=list)
    memory_context: Dict[str, Any] = Field(default_factory=dict)
    agent_metadata: Dict[str, Any] = Field(default_factory=dict)


class ContextSearchRequest(SemanticSearchRequest):
    agent_context: AgentContextModel


class RankedRecordResponse(BaseModel):
    id: str
    content: str
    similarity_score: float
    rank: int
    snippet: str = ""
    metadata: Optional[Dict[str, Any]] = None
    search_metadata: Dict[str, Any] = Field(default_factory=dict)


class SemanticSearchResponse(BaseModel):
    success: bool
    query: str
    results: List[RankedRecordResponse]
    result_count: int
    total_records_searched: int
    processing_time_ms: float
    response_summary: str
    search_metadata: Dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: Optional[str] = None


class FileProcessRequest(BaseModel):
    paths: List[str]
    chunk_size: Optional[int] = None

    @field_validator('paths')
    @classmethod
    def paths_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('paths cannot be empty')
        return v

    @field_validator('chunk_size')
    @classmethod
    def chunk_size_must_be_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError('chunk_size must be >= 1')
        return v


class FileResultResponse(BaseModel):
    file_path: str
    success: bool
    file_type: str
    chunk_count: int
    record_ids: List[str]
    elapsed_ms: float
    message: str = ""
    error_code: Optional[str] = None


class FileProcessResponse(BaseModel):
    total_files: int
    success_count: int
    failure_count: int
    success_rate: float
    results: List[FileResultResponse]


class PersistenceResponse(BaseModel):
    success: bool
    operation: str
    record_count: int
    elapsed_ms: float
    message: str = ""
    error_code: Optional[str] = None
    skipped_ids: List[str] = Field(default_factory=list)
    path: str = ""


class AutoPersistenceRequest(BaseModel):
    enabled: bool
    interval_sec: float = config.AUTO_PERSISTENCE_INTERVAL_SEC

    @field_validator('interval_sec')
    @classmethod
    def interval_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError('interval_sec must be > 0')
        return v


class AutoPersistenceResponse(BaseModel):
    enabled: bool
    interval_sec: Optional[float] = None
    run_count: int = 0
    failure_count: int = 0


class MetricsResponse(BaseModel):
    search: Dict[str, Any]
    store: Dict[str, Any]
    events: Dict[str, Any]
