"""
Structured logging for index, snapshot, rebuild and search operations.
"""

import logging
from typing import Any, Dict, List

SENSITIVE_FIELDS = ['text', 'query', 'vector', 'content', 'secret', 'password']


class StructuredLogger:
    """Structured logger for hybrid index operations."""

    def __init__(self, name: str = "spannlite"):
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

        self.logger.info(message)

    def log_index_operation(self, operation: str, document_id: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a per-document vector store operation."""
        log_details = {"document_id": document_id}
        if details:
            log_details.update(details)

        self.log_operation(f"index.{operation}", status, log_details)

    def log_snapshot_operation(self, operation: str, file_name: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a graph snapshot write, load or garbage collection."""
        log_details = {"file_name": file_name}
        if details:
            log_details.update(details)

        self.log_operation(f"snapshot.{operation}", status, log_details)

    def log_rebuild_phase(self, phase: str, start_time: float, end_time: float, status: str = "success", details: Dict[str, Any] = None):
        """Log one timed phase of an index rebuild."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "failed":
            log_details["message"] = f"Rebuild phase '{phase}' failed after {duration_ms}ms"

        self.log_operation(f"rebuild.{phase}", status, log_details)

    def log_search(self, query: str, probed: List[int], candidates: int, returned: int):
        """Log a two-phase search, never the full query text."""
        log_details = {
            "query": sanitize_payload(query, max_length=40),
            "probed_clusters": probed,
            "candidates": candidates,
            "returned": returned
        }
        self.log_operation("search", "success", log_details)

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


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with privacy controls."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        sanitized_payload = {}
        for k, v in payload.items():
            if k in sensitive_fields:
                sanitized_payload[k] = "[REDACTED]"
            elif isinstance(v, str) and len(v) > 100:
                sanitized_payload[k] = v[:97] + "..."
            else:
                sanitized_payload[k] = v
        log_details["payload"] = sanitized_payload

    if event_type.startswith("graph_snapshot"):
        operation = "snapshot"
    elif event_type.startswith("index_rebuild"):
        operation = "rebuild"
    else:
        operation = event_type.replace(".", "_")

    logger.log_operation(f"audit.{operation}", event_type, log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None, max_length: int = 100) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields, max_length)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:max_length] + "..." if len(payload) > max_length else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields, max_length) for item in payload]
    else:
        return payload
