"""
Error taxonomy for the hybrid search engine.
Configuration errors are fatal, the others describe conditions a caller can act on.
"""


class SearchEngineError(Exception):
    """Base class for all search engine errors."""
    pass


class ConfigurationError(SearchEngineError):
    """Invalid parameters, dimension mismatch, or use before initialization."""
    pass


class InsufficientDataError(SearchEngineError):
    """Corpus too small to build an index. Safe to retry once the corpus grows."""

    def __init__(self, count: int, required: int):
        self.count = count
        self.required = required
        super().__init__(
            f"Not enough embeddings ({count}) to build index. Need at least {required}."
        )


class CorruptionError(SearchEngineError):
    """Persisted graph snapshot failed magic, structure or checksum validation."""
    pass


class TransientStoreError(SearchEngineError):
    """Underlying store temporarily unavailable. Safe to retry the operation."""
    pass
