"""
Snapshot persistence for the vector store.

Layout under the base directory:
    vectors/<id>.bin               little-endian float32, 4 * dimension bytes
    metadata/<id>.json             {id, content, createdAt, metadata, vectorDimensions}
    indices/vector_index.json      {totalRecords, savedAt, records, consciousnessRecords, version}

The index is written last. Only ids listed in a completely written index are
ever restored; stray per-record files are ignored on load.
"""

import contextlib
import json
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import numpy as np

from . import config
from .events import EventChannel
from .heartbeat import Heartbeat
from ..util.logging import logger
from ..vector.errors import OperationCancelled, PartialLoadCorruption, PersistenceIOError, raise_if_cancelled
from ..vector.index import VectorStore
from ..vector.types import VectorRecord

VECTORS_DIR = "vectors"
METADATA_DIR = "metadata"
INDICES_DIR = "indices"
INDEX_FILE = "vector_index.json"

_EVENT_NAMES = {"save": "persistence.saved", "load": "persistence.loaded"}

# Serializes save/load across every manager in the process
_persistence_lock = threading.Lock()


@dataclass
class SnapshotIndex:
    """Authoritative list of the records in a completed snapshot."""
    total_records: int
    saved_at: datetime
    records: List[str]
    consciousness_records: int
    version: str = config.INDEX_SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        """Convert index to dictionary for JSON serialization."""
        return {
            "totalRecords": self.total_records,
            "savedAt": self.saved_at.isoformat(),
            "records": list(self.records),
            "consciousnessRecords": self.consciousness_records,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SnapshotIndex':
        """Create index from its JSON form; raises ValueError when malformed."""
        records = data.get("records")
        if not isinstance(records, list) or not all(isinstance(r, str) for r in records):
            raise ValueError("index 'records' must be a list of ids")
        return cls(
            total_records=int(data.get("totalRecords", len(records))),
            saved_at=datetime.fromisoformat(data["savedAt"]),
            records=records,
            consciousness_records=int(data.get("consciousnessRecords", 0)),
            version=str(data.get("version", config.INDEX_SCHEMA_VERSION)),
        )


@dataclass
class PersistenceResult:
    """Outcome of a save or load."""
    success: bool
    operation: str
    record_count: int = 0
    elapsed_ms: float = 0.0
    message: str = ""
    error_code: Optional[str] = None
    skipped_ids: List[str] = field(default_factory=list)
    path: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "operation": self.operation,
            "record_count": self.record_count,
            "elapsed_ms": round(self.elapsed_ms, 3),
            "message": self.message,
            "error_code": self.error_code,
            "skipped_ids": list(self.skipped_ids),
            "path": self.path,
        }


def record_file_stem(record_id: str) -> str:
    """File-system safe name for a record id."""
    return quote(record_id, safe="-_.")


def _atomic_write(path: Path, data: bytes) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


class PersistenceManager:
    """
    Saves and restores one VectorStore under a base directory.

    save() and load() never raise across this boundary: failures come back
    as a PersistenceResult with success=False and the store untouched.
    """

    def __init__(
        self,
        store: VectorStore,
        base_dir=None,
        events: Optional[EventChannel] = None,
        prune_orphans: Optional[bool] = None,
    ):
        self.store = store
        self.base_dir = Path(base_dir) if base_dir is not None else config.get_persistence_dir()
        self.events = events
        self.prune_orphans = config.PERSISTENCE_PRUNE_ORPHANS if prune_orphans is None else prune_orphans
        self._heartbeat: Optional[Heartbeat] = None
        self._timer_lock = threading.Lock()

    @property
    def vectors_dir(self) -> Path:
        return self.base_dir / VECTORS_DIR

    @property
    def metadata_dir(self) -> Path:
        return self.base_dir / METADATA_DIR

    @property
    def index_path(self) -> Path:
        return self.base_dir / INDICES_DIR / INDEX_FILE

    def has_snapshot(self) -> bool:
        return self.index_path.is_file()

    def save(self, cancel_event: Optional[threading.Event] = None) -> PersistenceResult:
        """
        Write every current record, then the index.

        Records added while a save is running may or may not be included.
        Cancelling leaves per-record files from this run on disk; they are
        ignored until a later save indexes them.
        """
        start = time.monotonic()
        with _persistence_lock:
            try:
                written = self._write_snapshot(cancel_event)
            except OperationCancelled as e:
                return self._finish("save", start, False, 0, e.message, e.code)
            except (OSError, TypeError, ValueError) as e:
                error = PersistenceIOError(f"Snapshot save failed: {e}", cause=e)
                return self._finish("save", start, False, 0, error.message, error.code)

        return self._finish("save", start, True, written, f"Saved {written} records")

    def load(self, cancel_event: Optional[threading.Event] = None) -> PersistenceResult:
        """
        Replace the store contents with the last completed snapshot.

        Unreadable records are skipped with a warning; the load still
        succeeds with the reduced count and error_code PARTIAL_LOAD_CORRUPTION.
        The store is only modified once every listed record has been read.
        """
        start = time.monotonic()
        with _persistence_lock:
            if not self.index_path.is_file():
                return self._finish("load", start, False, 0, f"No snapshot index at {self.index_path}", "SNAPSHOT_NOT_FOUND")

            try:
                index = SnapshotIndex.from_dict(json.loads(self.index_path.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
                error = PersistenceIOError(f"Snapshot index unreadable: {e}", cause=e)
                return self._finish("load", start, False, 0, error.message, error.code)

            records = []
            skipped = []
            try:
                for record_id in index.records:
                    raise_if_cancelled(cancel_event, "load")
                    try:
                        records.append(self._read_record(record_id))
                    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
                        logger.warning(f"Skipping unreadable persisted record {record_id!r}: {e}")
                        skipped.append(record_id)
            except OperationCancelled as e:
                return self._finish("load", start, False, 0, e.message, e.code)

            stored, rejected = self.store.replace_all(records)
            skipped.extend(rejected)

        message = f"Loaded {len(stored)} records"
        code = None
        if skipped:
            message += f", skipped {len(skipped)} unreadable"
            code = PartialLoadCorruption.code
        return self._finish("load", start, True, len(stored), message, code, skipped)

    # Auto-persistence

    def enable_auto_persistence(self, interval_sec: Optional[float] = None) -> None:
        """Start periodic saves, replacing any timer already running."""
        interval = interval_sec if interval_sec is not None else config.AUTO_PERSISTENCE_INTERVAL_SEC
        heartbeat = Heartbeat("auto_persistence", interval, self._auto_save)
        with self._timer_lock:
            if self._heartbeat is not None:
                self._heartbeat.stop()
            self._heartbeat = heartbeat
            heartbeat.start()

    def disable_auto_persistence(self) -> None:
        with self._timer_lock:
            if self._heartbeat is not None:
                self._heartbeat.stop()
                self._heartbeat = None

    def auto_persistence_status(self) -> Dict[str, Any]:
        with self._timer_lock:
            if self._heartbeat is None:
                return {"enabled": False}
            status = self._heartbeat.get_status()
        status["enabled"] = status["status"] == "running"
        return status

    def close(self) -> None:
        self.disable_auto_persistence()

    def _auto_save(self) -> None:
        purged = self.store.embeddings.cache.purge_expired()
        if purged:
            logger.debug(f"Purged {purged} expired embedding cache entries")

        result = self.save()
        if not result.success:
            raise PersistenceIOError(result.message)

    # Internals

    def _write_snapshot(self, cancel_event: Optional[threading.Event]) -> int:
        self.vectors_dir.mkdir(parents=True, exist_ok=True)
        self.metadata_dir.mkdir(parents=True, exist_ok=True)
        self.index_path.parent.mkdir(parents=True, exist_ok=True)

        records = self.store.all_records()
        for record in records:
            raise_if_cancelled(cancel_event, "save")
            stem = record_file_stem(record.id)
            vector = np.asarray(record.vector, dtype="<f4")
            _atomic_write(self.vectors_dir / f"{stem}.bin", vector.tobytes())
            document = {
                "id": record.id,
                "content": record.content,
                "createdAt": record.created_at.isoformat(),
                "metadata": record.metadata,
                "vectorDimensions": int(vector.size),
            }
            _atomic_write(self.metadata_dir / f"{stem}.json", json.dumps(document, indent=2).encode("utf-8"))

        raise_if_cancelled(cancel_event, "save")
        index = SnapshotIndex(
            total_records=len(records),
            saved_at=datetime.now(timezone.utc),
            records=[r.id for r in records],
            consciousness_records=sum(1 for r in records if r.consciousness_aware),
        )
        _atomic_write(self.index_path, json.dumps(index.to_dict(), indent=2).encode("utf-8"))

        if self.prune_orphans:
            self._prune({record_file_stem(r.id) for r in records})
        return len(records)

    def _read_record(self, record_id: str) -> VectorRecord:
        stem = record_file_stem(record_id)
        document = json.loads((self.metadata_dir / f"{stem}.json").read_text(encoding="utf-8"))
        if document.get("id") != record_id:
            raise ValueError(f"metadata file holds id {document.get('id')!r}")

        vector = np.frombuffer((self.vectors_dir / f"{stem}.bin").read_bytes(), dtype="<f4")
        dimensions = int(document["vectorDimensions"])
        if vector.size == 0 or vector.size != dimensions:
            raise ValueError(f"vector file has {vector.size} values, expected {dimensions}")

        created_at = datetime.fromisoformat(document["createdAt"])
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        return VectorRecord(
            id=record_id,
            vector=vector.astype(np.float32),
            content=document.get("content", ""),
            metadata=document.get("metadata") or {},
            created_at=created_at,
        )

    def _prune(self, keep: set) -> None:
        removed = 0
        for directory, suffix in ((self.vectors_dir, ".bin"), (self.metadata_dir, ".json")):
            for path in directory.glob(f"*{suffix}"):
                if path.name[:-len(suffix)] not in keep:
                    try:
                        path.unlink()
                        removed += 1
                    except OSError as e:
                        logger.warning(f"Could not prune orphaned snapshot file {path}: {e}")
        if removed:
            logger.debug(f"Pruned {removed} orphaned snapshot files")

    def _finish(
        self,
        operation: str,
        start: float,
        success: bool,
        record_count: int,
        message: str,
        error_code: Optional[str] = None,
        skipped_ids: Optional[List[str]] = None,
    ) -> PersistenceResult:
        elapsed_ms = (time.monotonic() - start) * 1000
        result = PersistenceResult(
            success=success,
            operation=operation,
            record_count=record_count,
            elapsed_ms=elapsed_ms,
            message=message,
            error_code=error_code,
            skipped_ids=skipped_ids or [],
            path=str(self.base_dir),
        )

        details = {"message": message}
        if error_code:
            details["error_code"] = error_code
        logger.log_persistence(operation, record_count, elapsed_ms, status="success" if success else "failed", details=details)

        if self.events is not None:
            try:
                self.events.emit(_EVENT_NAMES[operation], str(self.base_dir), elapsed_ms, success, record_count=record_count)
            except Exception as e:
                logger.warning(f"Event delivery failed for persistence.{operation}: {e}")
        return result
