"""
Pluggable Strategies - Derived Patterns and Cross-Level Consistency
===================================================================

The controller delegates two narrow decisions:

- PatternTransform: what pattern level i+1 sees, given level i's pattern
  and its category assignment
- ConsistencyStrategy: how well a level's category coheres with the
  categories chosen below it

Both are small ABCs so alternative encodings can be swapped in without
touching the resonance control flow. Transforms must keep the previous
pattern as a prefix of the derived one: top-down validation compares the
original input against the leading coordinates of every prototype.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from .patterns import as_feature_vector


# =============================================================================
# Pattern Transforms
# =============================================================================

class PatternTransform(ABC):
    """Builds the pattern handed to the next level up."""

    @abstractmethod
    def transform(self, previous: np.ndarray, category_id: int, level_index: int) -> np.ndarray:
        """
        Args:
            previous: Pattern processed at level_index
            category_id: Category assigned at level_index
            level_index: Level that produced the assignment

        Returns:
            Feature vector for level_index + 1 (previous is its prefix)
        """
        ...


class CategoryCoordinateTransform(PatternTransform):
    """Append (category_id / 1000, level_index / 10) to the previous pattern."""

    def __init__(self, category_scale: float = 1000.0, level_scale: float = 10.0):
        if category_scale <= 0 or level_scale <= 0:
            raise ValueError("Scales must be positive")
        self.category_scale = category_scale
        self.level_scale = level_scale

    def transform(self, previous: np.ndarray, category_id: int, level_index: int) -> np.ndarray:
        extra = [category_id / self.category_scale, level_index / self.level_scale]
        return as_feature_vector(np.concatenate([previous, extra]))


class OneHotCategoryTransform(PatternTransform):
    """Append a one-hot block of the given width for category_id (modulo width)."""

    def __init__(self, width: int = 16):
        if width <= 0:
            raise ValueError(f"Width must be positive, got: {width}")
        self.width = width

    def transform(self, previous: np.ndarray, category_id: int, level_index: int) -> np.ndarray:
        block = np.zeros(self.width, dtype=np.float64)
        block[category_id % self.width] = 1.0
        return as_feature_vector(np.concatenate([previous, block]))


# =============================================================================
# Consistency Strategies
# =============================================================================

class ConsistencyStrategy(ABC):
    """Scores how a level's category coheres with lower-level assignments."""

    @abstractmethod
    def consistency(self, lower_ids: Sequence[int], category_id: int) -> float:
        """
        Args:
            lower_ids: Categories assigned at levels 0 .. i-1
            category_id: Category assigned at level i

        Returns:
            Consistency in [0, 1]; 1.0 when there are no lower levels
        """
        ...


class IdProximityConsistency(ConsistencyStrategy):
    """
    Product over lower levels of exp(-|id_i - id_j| / scale).

    Treats numeric closeness of assignment-order ids as relatedness, which
    is only a rough proxy.
    """

    def __init__(self, scale: float = 10.0):
        if scale <= 0:
            raise ValueError(f"Scale must be positive, got: {scale}")
        self.scale = scale

    def consistency(self, lower_ids: Sequence[int], category_id: int) -> float:
        score = 1.0
        for lower_id in lower_ids:
            score *= math.exp(-abs(category_id - lower_id) / self.scale)
        return max(0.0, min(1.0, score))


class UniformConsistency(ConsistencyStrategy):
    """Every assignment is fully consistent."""

    def consistency(self, lower_ids: Sequence[int], category_id: int) -> float:
        return 1.0


__all__ = [
    'PatternTransform',
    'CategoryCoordinateTransform',
    'OneHotCategoryTransform',
    'ConsistencyStrategy',
    'IdProximityConsistency',
    'UniformConsistency',
]
