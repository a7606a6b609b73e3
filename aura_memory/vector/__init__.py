"""
Vector memory - in-memory similarity index, embeddings and semantic search.
"""

# Package initialization for vector module
from .index import IVectorStore, VectorStore, FileProcessingResult, BatchProcessingResult, cosine_similarity
from .types import VectorRecord, QueryResult, RankedRecord, SearchSnippet, AgentContext, SemanticSearchOptions, SemanticSearchResult
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding, OllamaEmbedding, EmbeddingsService
from .cache import EmbeddingCache
from .semantic_search import SemanticSearchEngine, extract_query_terms
from .errors import (
    VectorStoreError,
    EmbeddingUnavailable,
    InvalidVector,
    PersistenceIOError,
    PartialLoadCorruption,
    OperationCancelled,
)

__all__ = [
    'IVectorStore',
    'VectorStore',
    'FileProcessingResult',
    'BatchProcessingResult',
    'cosine_similarity',
    'VectorRecord',
    'QueryResult',
    'RankedRecord',
    'SearchSnippet',
    'AgentContext',
    'SemanticSearchOptions',
    'SemanticSearchResult',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'OllamaEmbedding',
    'EmbeddingsService',
    'EmbeddingCache',
    'SemanticSearchEngine',
    'extract_query_terms',
    'VectorStoreError',
    'EmbeddingUnavailable',
    'InvalidVector',
    'PersistenceIOError',
    'PartialLoadCorruption',
    'OperationCancelled',
]
