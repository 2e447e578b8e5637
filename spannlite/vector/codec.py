"""
Conversions between float vectors and their flat binary representation,
plus the normalization helpers every similarity computation relies on.
"""

from typing import Sequence, Union

import numpy as np

from ..core.errors import ConfigurationError

# Big-endian float32 for cross-platform determinism
FLOAT_DTYPE = np.dtype(">f4")

VectorLike = Union[np.ndarray, Sequence[float]]


def as_vector(vector: VectorLike) -> np.ndarray:
    """Coerce input into a 1-D float32 array."""
    arr = np.asarray(vector, dtype=np.float32)
    if arr.ndim != 1:
        raise ConfigurationError(f"Expected a 1-D vector, got shape {arr.shape}")
    return arr


def l2_normalize(vector: VectorLike) -> np.ndarray:
    """Scale a vector to unit Euclidean length."""
    arr = as_vector(vector)
    if not np.all(np.isfinite(arr)):
        raise ConfigurationError("Vector contains non-finite values")

    norm = float(np.linalg.norm(arr))
    if norm == 0:
        raise ConfigurationError("Cannot normalize a zero vector")

    return (arr / norm).astype(np.float32)


def is_unit(vector: VectorLike, tolerance: float = 1e-4) -> bool:
    return abs(float(np.linalg.norm(as_vector(vector))) - 1.0) <= tolerance


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product of two unit vectors."""
    return float(np.dot(a, b))


def vec_to_blob(vector: VectorLike) -> bytes:
    """Encode a vector as big-endian float32 bytes."""
    return as_vector(vector).astype(FLOAT_DTYPE).tobytes()


def blob_to_vec(blob: bytes, dim: int) -> np.ndarray:
    """Decode big-endian float32 bytes into a native float32 vector."""
    if len(blob) != dim * FLOAT_DTYPE.itemsize:
        raise ConfigurationError(
            f"Blob of {len(blob)} bytes does not hold a {dim}-dimensional vector"
        )
    return np.frombuffer(blob, dtype=FLOAT_DTYPE, count=dim).astype(np.float32)


def validate_embedding(vector: Union[np.ndarray, bytes], expected_dim: int) -> bool:
    """Check a vector (or its blob) against the expected dimension."""
    if isinstance(vector, (bytes, bytearray, memoryview)):
        return len(vector) == expected_dim * FLOAT_DTYPE.itemsize
    return len(vector) == expected_dim
