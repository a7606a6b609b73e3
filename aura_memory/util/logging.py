"""
Structured operation logging for the vector memory layer.
Every store, search and persistence operation is reported through one logger.
"""

import logging
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for vector, search, persistence and heartbeat operations."""

    def __init__(self, name: str = "aura_memory"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_vector_operation(self, operation: str, record_id: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector store operation."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(sanitize_payload(details))

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation(f"vector.{operation}", status, log_details, level)

    def log_search(self, search_type: str, query: str, result_count: int, elapsed_ms: float, status: str = "success", details: Dict[str, Any] = None):
        """Log a completed (or failed) search."""
        log_details = {
            "query": query[:50] + "..." if len(query) > 50 else query,
            "result_count": result_count,
            "elapsed_ms": round(elapsed_ms, 2)
        }
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.ERROR
        self.log_operation(f"search.{search_type}", status, log_details, level)

    def log_persistence(self, operation: str, record_count: int, elapsed_ms: float, status: str = "success", details: Dict[str, Any] = None):
        """Log a snapshot save or load."""
        log_details = {
            "record_count": record_count,
            "elapsed_ms": round(elapsed_ms, 2)
        }
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.ERROR
        self.log_operation(f"persistence.{operation}", status, log_details, level)

    def log_file_processing(self, file_path: str, chunk_count: int, elapsed_ms: float, status: str = "success", details: Dict[str, Any] = None):
        """Log file ingestion."""
        log_details = {
            "file_path": file_path,
            "chunk_count": chunk_count,
            "elapsed_ms": round(elapsed_ms, 2)
        }
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation("vector.process_file", status, log_details, level)

    def log_heartbeat_task(self, task_name: str, start_time: float, end_time: float, status: str = "success", details: Dict[str, Any] = None):
        """Log periodic task execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Heartbeat task '{task_name}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Heartbeat task '{task_name}' failed after {duration_ms}ms"

        level = logging.DEBUG if status == "success" else logging.ERROR
        self.log_operation(f"heartbeat.{task_name}", status, log_details, level)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


def sanitize_payload(payload: Any, sensitive_fields: List[str] = None) -> Any:
    """Truncate long strings and vectors so log lines stay readable."""
    if sensitive_fields is None:
        sensitive_fields = ['vector', 'embedding']

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if k in sensitive_fields:
                sanitized[k] = f"[{len(v) if hasattr(v, '__len__') else '?'} values]"
            else:
                sanitized[k] = sanitize_payload(v, sensitive_fields)
        return sanitized
    elif isinstance(payload, str):
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, sensitive_fields) for item in payload[:20]]
    else:
        return payload


# Global logger instance
logger = StructuredLogger()
