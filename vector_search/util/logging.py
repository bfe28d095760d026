"""
Structured operation logging for the vector search service.
Content payloads are truncated before they reach a log line.
"""

import logging
from typing import Any, Dict, List


def _truncate(value: str, limit: int = 50) -> str:
    return value[:limit] + "..." if len(value) > limit else value


class StructuredLogger:
    """Structured logger for store, embedding and search operations."""

    def __init__(self, name: str = "vector_search"):
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

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "rejected", "unavailable"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_vector_operation(self, operation: str, record_id: Any, details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector store operation."""
        log_details = {"record_id": record_id}
        if details:
            log_details.update(details)

        self.log_operation(f"vector.{operation}", status, log_details)

    def log_document_insert(self, document_id: int, content: str, dimension: int, status: str = "success"):
        """Log a document insert; only a prefix of the content is kept."""
        self.log_vector_operation(
            "insert",
            document_id,
            {"content": _truncate(content), "dimension": dimension},
            status,
        )

    def log_embedding_call(self, provider: str, batch_size: int, start_time: float, end_time: float,
                           status: str = "success", details: Dict[str, Any] = None):
        """Log an embedding provider call with its latency."""
        log_details = {
            "provider": provider,
            "batch_size": batch_size,
            "duration_ms": round((end_time - start_time) * 1000, 2),
        }
        if details:
            log_details.update(details)

        self.log_operation("embedding.embed", status, log_details)

    def log_search(self, metric: str, threshold: float, limit: int, candidates: int, matches: int,
                   details: Dict[str, Any] = None):
        """Log a similarity search."""
        log_details = {
            "metric": metric,
            "threshold": threshold,
            "limit": limit,
            "candidates": candidates,
            "matches": matches,
        }
        if details:
            log_details.update(details)

        self.log_operation("search.query", "success", log_details)

    def log_validation_error(self, operation: str, field: str, message: str):
        """Log a rejected request, naming the offending field."""
        self.log_operation(f"{operation}.validation", "rejected", {"field": field, "message": message[:100]})

    def log_retry(self, operation: str, attempt: int, max_attempts: int, error: str, delay_sec: float):
        """Log a retry of a transient failure."""
        log_details = {
            "attempt": attempt,
            "max_attempts": max_attempts,
            "error": error[:100],
            "delay_sec": round(delay_sec, 3),
        }
        self.log_operation(f"retry.{operation}", "retrying", log_details)

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


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, sensitive_fields: List[str] = None) -> Any:
    """Sanitize request payloads before logging them.

    Embeddings are replaced by their length and content strings are truncated.
    """
    if sensitive_fields is None:
        sensitive_fields = ['api_key', 'password', 'secret', 'token']

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if k in sensitive_fields:
                sanitized[k] = "[REDACTED]"
            elif k in ('embedding', 'query_embedding') and isinstance(v, (list, tuple)):
                sanitized[k] = f"<vector dim={len(v)}>"
            else:
                sanitized[k] = sanitize_payload(v, sensitive_fields)
        return sanitized
    elif isinstance(payload, str):
        return _truncate(payload, 100)
    elif isinstance(payload, list):
        return [sanitize_payload(item, sensitive_fields) for item in payload]
    else:
        return payload
