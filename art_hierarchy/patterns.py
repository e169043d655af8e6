"""
ART Pattern Operations - Feature Vectors and Matching Primitives
================================================================

Numpy implementations of the similarity measures used by every level:

- Feature vectors are immutable 1-D float64 arrays with values >= 0
  (upstream complement coding keeps them in [0, 1])
- Fuzzy-ART choice function: |x ^ w| / (alpha + |x|)
- Cosine similarity for top-down validation
- Bit-identity keys for the exact-match index

Two vectors being compared must have the same length; a mismatch raises
PatternError instead of truncating.
"""

from __future__ import annotations

import numpy as np
from typing import Sequence, Tuple, Union

from .errors import PatternError

# =============================================================================
# Constants
# =============================================================================

DEFAULT_ALPHA = 0.001  # Choice parameter, keeps the denominator away from 0

PatternLike = Union[np.ndarray, Sequence[float]]
PatternKey = Tuple[int, bytes]


# =============================================================================
# Construction
# =============================================================================

def as_feature_vector(values: PatternLike, name: str = "pattern") -> np.ndarray:
    """
    Validate and freeze a feature vector.

    Args:
        values: Sequence or array of non-negative reals
        name: Label used in error messages

    Returns:
        Read-only float64 array of shape (n,)

    Raises:
        PatternError: If values is None, empty, not 1-D, non-finite or negative
    """
    if values is None:
        raise PatternError(f"{name} cannot be None")

    try:
        vector = np.array(values, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise PatternError(f"{name} is not numeric: {e}") from e

    if vector.ndim != 1:
        raise PatternError(f"{name} must be one-dimensional, got shape {vector.shape}")
    if vector.size == 0:
        raise PatternError(f"{name} cannot be empty")
    if not np.all(np.isfinite(vector)):
        raise PatternError(f"{name} contains NaN or infinite values")
    if np.any(vector < 0.0):
        raise PatternError(f"{name} contains negative values")

    vector.setflags(write=False)
    return vector


def complement_code(values: PatternLike) -> np.ndarray:
    """
    Complement-code an input in [0, 1]: x -> [x, 1 - x].

    The result always has norm n, which keeps the asymmetric choice
    function well behaved.
    """
    x = as_feature_vector(values, name="input")
    if np.any(x > 1.0):
        raise PatternError("complement coding requires values in [0, 1]")
    return as_feature_vector(np.concatenate([x, 1.0 - x]))


def pattern_key(pattern: np.ndarray) -> PatternKey:
    """Bit-identity key for the exact-match index."""
    return pattern.size, pattern.tobytes()


def is_zero(pattern: np.ndarray) -> bool:
    """True when the pattern's L1 norm is 0."""
    return float(np.sum(pattern)) == 0.0


def _check_dims(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape != b.shape:
        raise PatternError(f"Dimension mismatch: {a.size} vs {b.size}")


# =============================================================================
# Similarity
# =============================================================================

def fuzzy_activation(
    x: np.ndarray,
    w: np.ndarray,
    alpha: float = DEFAULT_ALPHA,
) -> float:
    """
    Fuzzy-ART choice function.

    activation(x, w) = sum(min(x_i, w_i)) / (alpha + sum(x_i))

    Only the input's norm is in the denominator. A zero input activates
    nothing, including another zero vector.

    Args:
        x: Input pattern
        w: Category prototype
        alpha: Choice parameter

    Returns:
        Activation in [0, 1] for vectors in [0, 1]^n

    Raises:
        PatternError: On dimension mismatch
    """
    _check_dims(x, w)

    input_norm = float(np.sum(x))
    if input_norm == 0.0:
        return 0.0

    intersection = float(np.sum(np.minimum(x, w)))
    return intersection / (alpha + input_norm)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine similarity, 0.0 if either vector has zero norm.

    Raises:
        PatternError: On dimension mismatch
    """
    _check_dims(a, b)

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(a, b)) / (norm_a * norm_b)


__all__ = [
    'DEFAULT_ALPHA',
    'PatternLike',
    'PatternKey',
    'as_feature_vector',
    'complement_code',
    'pattern_key',
    'is_zero',
    'fuzzy_activation',
    'cosine_similarity',
]
