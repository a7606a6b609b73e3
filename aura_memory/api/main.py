"""
HTTP surface for the vector memory service.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .schemas import (
    HealthResponse,
    RecordCreateRequest,
    TextRecordRequest,
    RecordResponse,
    DeleteResponse,
    VectorSearchRequest,
    VectorSearchHit,
    VectorSearchResponse,
    SemanticSearchRequest,
    ContextSearchRequest,
    RankedRecordResponse,
    SemanticSearchResponse,
    FileProcessRequest,
    FileResultResponse,
    FileProcessResponse,
    PersistenceResponse,
    AutoPersistenceRequest,
    AutoPersistenceResponse,
    MetricsResponse,
)
from ..core import config
from ..core.events import EventChannel
from ..core.persistence import PersistenceManager, PersistenceResult
from ..util.logging import logger
from ..vector.cache import EmbeddingCache
from ..vector.embeddings import EmbeddingsService
from ..vector.errors import EmbeddingUnavailable, InvalidVector, OperationCancelled, VectorStoreError
from ..vector.index import VectorStore
from ..vector.semantic_search import SemanticSearchEngine
from ..vector.types import AgentContext, SemanticSearchOptions, SemanticSearchResult, VectorRecord


def _status_for(error: Exception) -> int:
    if isinstance(error, InvalidVector):
        return 400
    if isinstance(error, EmbeddingUnavailable):
        return 503
    if isinstance(error, OperationCancelled):
        return 409
    if isinstance(error, ValueError):
        return 400
    return 500


def _http_error(error: Exception) -> HTTPException:
    code = error.code if isinstance(error, VectorStoreError) else "INVALID_REQUEST"
    message = error.message if isinstance(error, VectorStoreError) else str(error)
    return HTTPException(status_code=_status_for(error), detail={"error_code": code, "message": message})


def _record_response(record: VectorRecord, include_vector: bool = False) -> RecordResponse:
    return RecordResponse(
        id=record.id,
        content=record.content,
        metadata=record.metadata,
        created_at=record.created_at,
        dimension=record.dimension,
        vector=[float(v) for v in record.vector] if include_vector else None,
    )


def _search_response(result: SemanticSearchResult, include_metadata: bool) -> SemanticSearchResponse:
    return SemanticSearchResponse(
        success=result.success,
        query=result.query,
        results=[
            RankedRecordResponse(
                id=r.record.id,
                content=r.record.content,
                similarity_score=r.similarity_score,
                rank=r.rank,
                snippet=r.snippet,
                metadata=r.record.metadata if include_metadata else None,
                search_metadata=r.search_metadata,
            )
            for r in result.results
        ],
        result_count=result.result_count,
        total_records_searched=result.total_records_searched,
        processing_time_ms=result.processing_time_ms,
        response_summary=result.response_summary,
        search_metadata=result.search_metadata,
        message=result.message,
        error_code=result.error_code,
    )


def _search_options(req: SemanticSearchRequest) -> SemanticSearchOptions:
    return SemanticSearchOptions(
        top_k=req.top_k,
        similarity_threshold=req.similarity_threshold,
        generate_snippets=req.generate_snippets,
        snippet_length=req.snippet_length,
        include_metadata=req.include_metadata,
    )


def _raise_for_failed_search(result: SemanticSearchResult) -> None:
    if result.success:
        return
    status = 503 if result.error_code == EmbeddingUnavailable.code else 400
    raise HTTPException(status_code=status, detail={"error_code": result.error_code, "message": result.message})


def _persistence_response(result: PersistenceResult) -> PersistenceResponse:
    return PersistenceResponse(**result.to_dict())


def build_store(events: Optional[EventChannel] = None) -> VectorStore:
    """Vector store wired to the configured embedding provider and cache."""
    cache = EmbeddingCache(config.get_cache_ttl_seconds(), config.EMBEDDING_CACHE_MAX_ENTRIES)
    embeddings = EmbeddingsService(config.get_embedding_provider(), cache)
    return VectorStore(embeddings, events)


def create_app(
    store: Optional[VectorStore] = None,
    engine: Optional[SemanticSearchEngine] = None,
    persistence: Optional[PersistenceManager] = None,
    events: Optional[EventChannel] = None,
) -> FastAPI:
    """Build the FastAPI application around one store instance."""
    if events is None:
        events = store.events if store is not None and store.events is not None else EventChannel(config.EVENT_QUEUE_MAXSIZE)
    store = store if store is not None else build_store(events)
    engine = engine if engine is not None else SemanticSearchEngine(store, events)
    persistence = persistence if persistence is not None else PersistenceManager(store, events=events)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        issues = config.validate_config()
        for issue in issues:
            logger.warning(f"Configuration issue: {issue}")

        if config.is_auto_persistence_enabled():
            persistence.enable_auto_persistence(config.get_auto_persistence_interval())
        yield
        persistence.close()

    app = FastAPI(
        title="Aura Memory API",
        version=config.VERSION,
        description="Consciousness-aware vector store and semantic search",
        docs_url="/docs" if config.debug_enabled() else None,
        redoc_url="/redoc" if config.debug_enabled() else None,
        lifespan=lifespan,
    )

    # Add CORS middleware to allow frontend connections
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store
    app.state.engine = engine
    app.state.persistence = persistence
    app.state.events = events

    @app.get("/health", response_model=HealthResponse)
    def health_check_endpoint():
        """Check system health."""
        return HealthResponse(
            status="healthy" if store.embeddings.available else "degraded",
            version=config.VERSION,
            record_count=store.count(),
            dimension=store.dimension,
            embedding_available=store.embeddings.available,
            auto_persistence=persistence.auto_persistence_status()["enabled"],
        )

    @app.post("/records", response_model=RecordResponse)
    def put_record(req: RecordCreateRequest):
        try:
            record = store.put(VectorRecord(id=req.id or "", vector=req.vector, content=req.content, metadata=req.metadata))
        except (VectorStoreError, ValueError) as e:
            raise _http_error(e)
        return _record_response(record)

    @app.post("/records/text", response_model=RecordResponse)
    def add_text_record(req: TextRecordRequest):
        try:
            record = store.add_text(req.text, req.metadata, record_id=req.id or "")
        except (VectorStoreError, ValueError) as e:
            raise _http_error(e)
        return _record_response(record)

    @app.get("/records/{record_id}", response_model=RecordResponse)
    def get_record(record_id: str, include_vector: bool = False):
        record = store.get_by_id(record_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Record '{record_id}' not found")
        return _record_response(record, include_vector)

    @app.delete("/records/{record_id}", response_model=DeleteResponse)
    def delete_record(record_id: str):
        if not store.remove(record_id):
            raise HTTPException(status_code=404, detail=f"Record '{record_id}' not found")
        return DeleteResponse(success=True, id=record_id)

    @app.post("/search/vector", response_model=VectorSearchResponse)
    def vector_search(req: VectorSearchRequest):
        try:
            results = store.search(req.vector, req.top_k)
        except (VectorStoreError, ValueError) as e:
            raise _http_error(e)
        return VectorSearchResponse(
            results=[
                VectorSearchHit(id=r.id, score=r.score, content=r.record.content, metadata=r.metadata)
                for r in results
            ]
        )

    @app.post("/search", response_model=SemanticSearchResponse)
    def semantic_search(req: SemanticSearchRequest):
        result = engine.search(req.query, _search_options(req))
        _raise_for_failed_search(result)
        return _search_response(result, req.include_metadata)

    @app.post("/search/context", response_model=SemanticSearchResponse)
    def context_search(req: ContextSearchRequest):
        agent_context = AgentContext(**req.agent_context.model_dump())
        result = engine.search_with_context(req.query, agent_context, _search_options(req))
        _raise_for_failed_search(result)
        return _search_response(result, req.include_metadata)

    @app.post("/files", response_model=FileProcessResponse)
    def process_files(req: FileProcessRequest):
        batch = store.process_files(req.paths, req.chunk_size)
        return FileProcessResponse(
            total_files=batch.total_files,
            success_count=batch.success_count,
            failure_count=batch.failure_count,
            success_rate=batch.success_rate,
            results=[
                FileResultResponse(
                    file_path=r.file_path,
                    success=r.success,
                    file_type=r.file_type,
                    chunk_count=r.chunk_count,
                    record_ids=[record.id for record in r.records],
                    elapsed_ms=r.elapsed_ms,
                    message=r.message,
                    error_code=r.error_code,
                )
                for r in batch.results
            ],
        )

    @app.post("/persistence/save", response_model=PersistenceResponse)
    def save_snapshot():
        return _persistence_response(persistence.save())

    @app.post("/persistence/load", response_model=PersistenceResponse)
    def load_snapshot():
        return _persistence_response(persistence.load())

    @app.post("/persistence/auto", response_model=AutoPersistenceResponse)
    def configure_auto_persistence(req: AutoPersistenceRequest):
        if req.enabled:
            persistence.enable_auto_persistence(req.interval_sec)
        else:
            persistence.disable_auto_persistence()

        status = persistence.auto_persistence_status()
        return AutoPersistenceResponse(
            enabled=status["enabled"],
            interval_sec=status.get("interval_sec"),
            run_count=status.get("run_count", 0),
            failure_count=status.get("failure_count", 0),
        )

    @app.get("/metrics", response_model=MetricsResponse)
    def metrics():
        return MetricsResponse(
            search=engine.get_metrics(),
            store=store.get_stats(),
            events={"emitted": events.emitted, "dropped": events.dropped, "queued": events.qsize()},
        )

    return app


app = create_app()
