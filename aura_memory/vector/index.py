"""
Thread-safe in-memory vector store with linear-scan cosine search.
Records, text ingestion and file chunking all land here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
import hashlib
from pathlib import Path
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple
import uuid

import numpy as np

from .chunking import chunk_text, extract_text
from .embeddings import EmbeddingsService
from .errors import EmbeddingUnavailable, InvalidVector, OperationCancelled, VectorStoreError
from .types import QueryResult, VectorRecord, normalize_metadata, utc_now
from ..core import config
from ..core.events import EventChannel
from ..util.logging import logger


def cosine_similarity(a, b) -> float:
    """
    dot(a, b) / (|a| * |b|), or 0.0 when either magnitude is zero.

    Raises:
        InvalidVector: when the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64).reshape(-1)
    vb = np.asarray(b, dtype=np.float64).reshape(-1)
    if va.shape != vb.shape:
        raise InvalidVector(f"Vector dimension {vb.size} does not match {va.size}")

    magnitude = np.linalg.norm(va) * np.linalg.norm(vb)
    if magnitude == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / magnitude, -1.0, 1.0))


@dataclass
class FileProcessingResult:
    """Outcome of ingesting one file."""
    success: bool
    file_path: str
    records: List[VectorRecord] = field(default_factory=list)
    file_type: str = "text"
    elapsed_ms: float = 0.0
    message: str = ""
    error_code: Optional[str] = None

    @property
    def chunk_count(self) -> int:
        return len(self.records)


@dataclass
class BatchProcessingResult:
    """Outcome of ingesting several files."""
    total_files: int
    success_count: int
    failure_count: int
    results: List[FileProcessingResult] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        return self.success_count / self.total_files if self.total_files > 0 else 0.0


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @abstractmethod
    def put(self, record: VectorRecord) -> VectorRecord:
        """Insert or overwrite a record by id."""
        pass

    @abstractmethod
    def get_by_id(self, record_id: str) -> Optional[VectorRecord]:
        """Return the record, or None when absent."""
        pass

    @abstractmethod
    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[QueryResult]:
        """Search for similar vectors and return ranked results."""
        pass

    @abstractmethod
    def remove(self, record_id: str) -> bool:
        """Delete a vector record by ID."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass


class VectorStore(IVectorStore):
    """
    In-memory implementation of IVectorStore using cosine similarity.

    All vectors share one dimension, fixed by the first insert (or the
    constructor) and reset only by clear(). Reads take a consistent snapshot
    under the store lock; similarity is computed outside it, in one
    vectorized pass over the whole snapshot.
    """

    def __init__(
        self,
        embeddings: Optional[EmbeddingsService] = None,
        events: Optional[EventChannel] = None,
        dimension: Optional[int] = None,
    ):
        self.embeddings = embeddings if embeddings is not None else EmbeddingsService(None)
        self.events = events
        self._records: Dict[str, VectorRecord] = {}
        self._lock = threading.RLock()
        self._dimension = dimension
        self._snapshot: Optional[Tuple[List[VectorRecord], np.ndarray, np.ndarray]] = None

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    # Record operations

    def put(self, record: VectorRecord) -> VectorRecord:
        """
        Insert or overwrite a record by id, generating an id if absent.

        The stored record is a copy with a read-only float32 vector and
        normalised metadata; it is returned to the caller.

        Raises:
            InvalidVector: empty/non-finite vector or dimension mismatch
            ValueError: metadata that cannot be represented as JSON
        """
        start = time.monotonic()
        stored = self._prepare(record)

        with self._lock:
            self._check_dimension(stored.vector)
            if self._dimension is None:
                self._dimension = stored.dimension
            self._records[stored.id] = stored
            self._snapshot = None

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(f"Vector record added with ID: {stored.id}")
        self._emit("vectorstore.record.added", stored.id, elapsed_ms, True, dimension=stored.dimension)
        return stored

    def batch_put(self, records: Iterable[VectorRecord]) -> List[VectorRecord]:
        """Add multiple vector records to the store."""
        return [self.put(record) for record in records]

    def get_by_id(self, record_id: str) -> Optional[VectorRecord]:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            logger.debug(f"Vector record with ID: {record_id} not found")
        return record

    def remove(self, record_id: str) -> bool:
        start = time.monotonic()
        with self._lock:
            removed = self._records.pop(record_id, None) is not None
            if removed:
                self._snapshot = None

        if removed:
            self._emit("vectorstore.record.removed", record_id, (time.monotonic() - start) * 1000, True)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
            self._snapshot = None
            self._dimension = None

    def replace_all(self, records: Iterable[VectorRecord]) -> Tuple[List[VectorRecord], List[str]]:
        """
        Clear the store and bulk-insert records as one step.

        Records that fail validation are skipped.

        Returns:
            (stored records, ids rejected by validation)
        """
        prepared = []
        rejected = []
        for record in records:
            try:
                prepared.append(self._prepare(record))
            except ValueError as e:
                logger.warning(f"Rejected record {record.id!r} during bulk insert: {e}")
                rejected.append(record.id)

        stored = []
        with self._lock:
            self._records.clear()
            self._dimension = None
            for record in prepared:
                if self._dimension is not None and record.dimension != self._dimension:
                    logger.warning(
                        f"Rejected record {record.id!r} during bulk insert: dimension {record.dimension} != {self._dimension}"
                    )
                    rejected.append(record.id)
                    continue
                self._dimension = record.dimension
                self._records[record.id] = record
                stored.append(record)
            self._snapshot = None
        return stored, rejected

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def all_records(self) -> List[VectorRecord]:
        """Snapshot of every record in insertion order."""
        with self._lock:
            return list(self._records.values())

    # Search

    def search(self, query_vector, top_k: int = 5) -> List[QueryResult]:
        """
        Score every stored vector against query_vector and return the top_k.

        Results are sorted by descending cosine similarity; ties keep
        insertion order. An empty store returns an empty list.

        Raises:
            InvalidVector: empty query or dimension mismatch
        """
        start = time.monotonic()
        query = np.asarray(query_vector, dtype=np.float64).reshape(-1)
        if query.size == 0:
            raise InvalidVector("Query vector is empty")

        records, matrix, norms = self._get_snapshot()
        if not records or top_k < 1:
            if not records:
                logger.debug("search called on an empty vector store")
            return []

        if query.size != matrix.shape[1]:
            raise InvalidVector(
                f"Query dimension {query.size} does not match store dimension {matrix.shape[1]}",
                details={"expected": int(matrix.shape[1]), "actual": int(query.size)},
            )

        query_norm = np.linalg.norm(query)
        denominators = norms * query_norm
        dots = matrix @ query
        scores = np.divide(dots, denominators, out=np.zeros_like(dots), where=denominators != 0)
        scores = np.clip(scores, -1.0, 1.0)

        order = np.argsort(-scores, kind="stable")[:top_k]
        results = [
            QueryResult(
                id=records[i].id,
                score=float(scores[i]),
                metadata=records[i].metadata,
                record=records[i],
            )
            for i in order
        ]

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(f"Search completed. Found {len(results)} results of {len(records)} records")
        self._emit("vectorstore.search.complete", "vector", elapsed_ms, True, result_count=len(results))
        return results

    def search_text(self, query: str, top_k: int = 5, cancel_event: Optional[threading.Event] = None) -> List[QueryResult]:
        """
        Embed query (through the cache) and delegate to search().

        Raises:
            EmbeddingUnavailable: provider missing or failed
        """
        query_vector = self.embeddings.embed(query, cancel_event)
        return self.search(query_vector, top_k)

    # Ingestion

    def add_text(
        self,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
        record_id: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> VectorRecord:
        """
        Embed text and store it as a new record.

        Raises:
            ValueError: blank text
            EmbeddingUnavailable: provider missing or failed
        """
        if not text or not text.strip():
            raise ValueError("text cannot be empty")

        vector = self.embeddings.embed(text, cancel_event)
        return self.put(VectorRecord(id=record_id, vector=vector, content=text, metadata=metadata or {}))

    def process_file(
        self,
        path,
        chunk_size: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> FileProcessingResult:
        """
        Read a file, split it into sentence-bounded chunks and store each chunk.

        Every chunk is embedded before any is stored: when one embedding
        fails (or the operation is cancelled) nothing from this file is
        stored and the result reports the failure. A successful re-ingest
        replaces every chunk of the earlier version of the file; a failed
        one leaves that version untouched.

        Args:
            path: File to ingest
            chunk_size: Maximum chunk length, defaults to FILE_CHUNK_SIZE
            metadata: Extra metadata copied onto every chunk
            cancel_event: Cancellation signal checked between chunks

        Returns:
            FileProcessingResult with the created records in chunk order
        """
        start = time.monotonic()
        file_path = Path(path)
        if chunk_size is None:
            chunk_size = config.FILE_CHUNK_SIZE

        def failure(message: str, code: str, file_type: str = "text") -> FileProcessingResult:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.log_file_processing(str(file_path), 0, elapsed_ms, status="failed", details={"error": message})
            self._emit("vectorstore.file.processed", str(file_path), elapsed_ms, False, error_code=code)
            return FileProcessingResult(
                success=False,
                file_path=str(file_path),
                file_type=file_type,
                elapsed_ms=elapsed_ms,
                message=message,
                error_code=code,
            )

        if not file_path.is_file():
            return failure(f"File not found: {file_path}", "FILE_NOT_FOUND")

        try:
            text, file_type = extract_text(file_path)
        except (OSError, UnicodeDecodeError) as e:
            return failure(f"Unable to read file: {e}", "FILE_READ_ERROR")
        except ValueError as e:
            return failure(str(e), "FILE_FORMAT_ERROR")

        try:
            chunks = chunk_text(text, chunk_size)
        except ValueError as e:
            return failure(str(e), "INVALID_CHUNK_SIZE", file_type)

        try:
            vectors = self.embeddings.embed_texts(chunks, cancel_event)
        except (EmbeddingUnavailable, OperationCancelled) as e:
            return failure(e.message, e.code, file_type)

        path_digest = hashlib.sha1(str(file_path.resolve()).encode("utf-8")).hexdigest()[:8]
        id_prefix = f"{file_path.stem}_{path_digest}_chunk_"
        processed_at = datetime.now(timezone.utc).isoformat()
        records = []
        with self._lock:
            previous = [
                r for r in self._records.values()
                if r.id.startswith(id_prefix) or r.metadata.get("source_file") == str(file_path)
            ]
            try:
                for index, (chunk, vector) in enumerate(zip(chunks, vectors)):
                    chunk_metadata = dict(metadata or {})
                    chunk_metadata.update({
                        "source_file": str(file_path),
                        "file_name": file_path.name,
                        "file_type": file_type,
                        "chunk_index": index,
                        "chunk_count": len(chunks),
                        "processed_at": processed_at,
                    })
                    records.append(self.put(VectorRecord(
                        id=f"{id_prefix}{index}",
                        vector=vector,
                        content=chunk,
                        metadata=chunk_metadata,
                    )))
            except (InvalidVector, ValueError) as e:
                # Put back the previous version of this file
                for record in records:
                    self._records.pop(record.id, None)
                for record in previous:
                    self._records[record.id] = record
                self._snapshot = None
                code = e.code if isinstance(e, VectorStoreError) else "INVALID_METADATA"
                return failure(str(e), code, file_type)

            # Chunks left over from an earlier, longer version of this file
            current_ids = {r.id for r in records}
            for record in previous:
                if record.id not in current_ids:
                    self.remove(record.id)

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.log_file_processing(str(file_path), len(records), elapsed_ms, details={"file_type": file_type})
        self._emit("vectorstore.file.processed", str(file_path), elapsed_ms, True, chunk_count=len(records))
        return FileProcessingResult(
            success=True,
            file_path=str(file_path),
            records=records,
            file_type=file_type,
            elapsed_ms=elapsed_ms,
            message=f"Processed {len(records)} chunks",
        )

    def process_files(
        self,
        paths: Iterable,
        chunk_size: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BatchProcessingResult:
        """Ingest several files; one failing file never stops the batch."""
        results = []
        for path in paths:
            if cancel_event is not None and cancel_event.is_set():
                break
            results.append(self.process_file(path, chunk_size, cancel_event=cancel_event))

            if len(results) % 10 == 0:
                logger.info(f"Batch progress: {sum(r.success for r in results)}/{len(results)} files processed")

        success_count = sum(1 for r in results if r.success)
        return BatchProcessingResult(
            total_files=len(results),
            success_count=success_count,
            failure_count=len(results) - success_count,
            results=results,
        )

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            count = len(self._records)
            dimension = self._dimension
        return {
            "record_count": count,
            "dimension": dimension,
            "embedding_provider": type(self.embeddings.provider).__name__ if self.embeddings.available else None,
            "embedding_cache": self.embeddings.cache.stats(),
        }

    # Internals

    def _prepare(self, record: VectorRecord) -> VectorRecord:
        if record.vector is None:
            raise InvalidVector("Vector is empty", details={"record_id": record.id})
        try:
            vector = np.array(record.vector, dtype=np.float32, copy=True).reshape(-1)
        except (TypeError, ValueError) as e:
            raise InvalidVector(f"Vector is not numeric: {e}", details={"record_id": record.id}, cause=e)
        if vector.size == 0:
            raise InvalidVector("Vector is empty", details={"record_id": record.id})
        if not np.all(np.isfinite(vector)):
            raise InvalidVector("Vector contains NaN or infinite values", details={"record_id": record.id})
        vector.setflags(write=False)

        created_at = record.created_at or utc_now()
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return VectorRecord(
            id=record.id or str(uuid.uuid4()),
            vector=vector,
            content=record.content or "",
            metadata=normalize_metadata(record.metadata),
            created_at=created_at,
        )

    def _check_dimension(self, vector: np.ndarray) -> None:
        if self._dimension is not None and vector.size != self._dimension:
            raise InvalidVector(
                f"Vector dimension {vector.size} does not match expected dimension {self._dimension}",
                details={"expected": self._dimension, "actual": int(vector.size)},
            )

    def _get_snapshot(self) -> Tuple[List[VectorRecord], np.ndarray, np.ndarray]:
        with self._lock:
            if self._snapshot is None:
                records = list(self._records.values())
                if records:
                    matrix = np.vstack([r.vector for r in records]).astype(np.float64)
                else:
                    matrix = np.zeros((0, self._dimension or 0), dtype=np.float64)
                norms = np.linalg.norm(matrix, axis=1)
                self._snapshot = (records, matrix, norms)
            return self._snapshot

    def _emit(self, operation: str, identifier: str, elapsed_ms: float, success: bool, **details) -> None:
        if self.events is None:
            return
        try:
            self.events.emit(operation, identifier, elapsed_ms, success, **details)
        except Exception as e:
            logger.warning(f"Event delivery failed for {operation}: {e}")
