"""
Level Store - Per-Level Category Table
======================================

One abstraction level (token, window, document, ...) of the hierarchy.
Each level owns its categories and decides, for every incoming pattern:

    exact-match index hit   -> MATCH (cached activation, exact)
    best activation >= rho  -> MATCH
    learning + capacity     -> NEW_CATEGORY (prototype = pattern)
    otherwise               -> NO_MATCH (learning disabled | capacity exhausted)

Concurrency:
    The activation scan reads a snapshot of the category table without a
    lock. Counters on a category are updated under that category's own
    lock, and category creation holds a short creation lock so the
    capacity bound holds with concurrent learners.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .config import HierarchyLevel, LevelConfig
from .errors import ConfigurationError, PatternError
from .patterns import (
    DEFAULT_ALPHA,
    PatternKey,
    PatternLike,
    as_feature_vector,
    fuzzy_activation,
    is_zero,
    pattern_key,
)


logger = logging.getLogger(__name__)

EXACT_CACHE_THRESHOLD = 0.9  # Only high-confidence matches enter the exact index
ACTIVATION_EMA_ALPHA = 0.1


# =============================================================================
# Results
# =============================================================================

class LevelOutcome(Enum):
    """What a level decided for one pattern."""
    MATCH = "match"
    NEW_CATEGORY = "new_category"
    NO_MATCH = "no_match"
    ERROR = "error"


class NoMatchReason(Enum):
    """Why no category was assigned."""
    LEARNING_DISABLED = "learning_disabled"
    CAPACITY_EXHAUSTED = "capacity_exhausted"  # Genuine resource exhaustion


@dataclass(frozen=True)
class LevelResult:
    """Outcome of LevelStore.process()."""
    outcome: LevelOutcome
    category_id: Optional[int] = None
    activation: float = 0.0
    exact: bool = False
    reason: Optional[NoMatchReason] = None
    message: Optional[str] = None
    processing_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome in (LevelOutcome.MATCH, LevelOutcome.NEW_CATEGORY)

    @property
    def is_new_category(self) -> bool:
        return self.outcome is LevelOutcome.NEW_CATEGORY

    @classmethod
    def match(cls, category_id: int, activation: float,
              processing_time_ms: float = 0.0, exact: bool = False) -> 'LevelResult':
        return cls(LevelOutcome.MATCH, category_id=category_id, activation=activation,
                   exact=exact, processing_time_ms=processing_time_ms)

    @classmethod
    def new_category(cls, category_id: int, processing_time_ms: float = 0.0) -> 'LevelResult':
        return cls(LevelOutcome.NEW_CATEGORY, category_id=category_id, activation=1.0,
                   processing_time_ms=processing_time_ms)

    @classmethod
    def no_match(cls, reason: NoMatchReason, processing_time_ms: float = 0.0) -> 'LevelResult':
        message = ("Learning disabled" if reason is NoMatchReason.LEARNING_DISABLED
                   else "Max categories reached")
        return cls(LevelOutcome.NO_MATCH, reason=reason, message=message,
                   processing_time_ms=processing_time_ms)

    @classmethod
    def error(cls, message: str, processing_time_ms: float = 0.0) -> 'LevelResult':
        return cls(LevelOutcome.ERROR, message=message, processing_time_ms=processing_time_ms)


@dataclass(frozen=True)
class LevelStatistics:
    """Point-in-time statistics for one level."""
    level_index: int
    kind: Optional[HierarchyLevel]
    vigilance: float
    max_categories: int
    current_categories: int
    total_processed: int
    total_matches: int
    total_new_categories: int
    match_rate: float
    new_category_rate: float
    average_activation: float

    def __str__(self) -> str:
        return (
            f"LevelStats(level={self.level_index}, vigilance={self.vigilance:.2f}, "
            f"categories={self.current_categories}/{self.max_categories}, "
            f"processed={self.total_processed}, "
            f"matches={self.total_matches}({self.match_rate * 100:.1f}%), "
            f"new={self.total_new_categories}({self.new_category_rate * 100:.1f}%), "
            f"avg_activation={self.average_activation:.3f})"
        )


# =============================================================================
# Category
# =============================================================================

@dataclass
class Category:
    """A learned category: prototype plus usage counters."""
    id: int
    prototype: np.ndarray
    # Creation counts as the first activation, at 1.0
    activation_count: int = 1
    total_activation: float = 1.0
    created: float = field(default_factory=time.time)
    last_activation_time: float = field(default_factory=time.time)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_activation(self, activation: float) -> None:
        with self._lock:
            self.activation_count += 1
            self.total_activation += activation
            self.last_activation_time = time.time()

    def refine(self, pattern: np.ndarray, learning_rate: float) -> None:
        """Move the prototype toward pattern: w <- w + beta * (x - w)."""
        with self._lock:
            updated = self.prototype + learning_rate * (pattern - self.prototype)
            updated.setflags(write=False)
            self.prototype = updated

    @property
    def average_activation(self) -> float:
        with self._lock:
            if self.activation_count <= 0:
                return 0.0
            return self.total_activation / self.activation_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'prototype': self.prototype.tolist(),
            'activation_count': self.activation_count,
            'total_activation': self.total_activation,
            'average_activation': self.average_activation,
            'created': self.created,
            'last_activation_time': self.last_activation_time,
        }


# =============================================================================
# Level Store
# =============================================================================

class LevelStore:
    """
    Category table and match/learn decision for one hierarchy level.

    The configured vigilance never changes after construction. Callers
    that need a different threshold for one call (adaptive retry) pass it
    to process() instead.
    """

    def __init__(
        self,
        vigilance: float,
        max_categories: int,
        level_index: int = 0,
        kind: Optional[HierarchyLevel] = None,
        learning_rate: float = 0.0,
        alpha: float = DEFAULT_ALPHA,
    ):
        """
        Args:
            vigilance: Match threshold in [0, 1]
            max_categories: Capacity of this level (> 0)
            level_index: Position in the hierarchy, 0 = lowest abstraction
            kind: Optional abstraction label
            learning_rate: Prototype learning rate in [0, 1], 0 keeps prototypes frozen
            alpha: Choice parameter of the activation function (> 0)
        """
        if not 0.0 <= vigilance <= 1.0:
            raise ConfigurationError(f"Vigilance must be between 0.0 and 1.0, got: {vigilance}")
        if max_categories <= 0:
            raise ConfigurationError(f"Max categories must be positive, got: {max_categories}")
        if level_index < 0:
            raise ConfigurationError(f"Level index must be non-negative, got: {level_index}")
        if not 0.0 <= learning_rate <= 1.0:
            raise ConfigurationError(f"Learning rate must be between 0.0 and 1.0, got: {learning_rate}")
        if alpha <= 0.0:
            raise ConfigurationError(f"Alpha must be positive, got: {alpha}")

        self._vigilance = float(vigilance)
        self._max_categories = int(max_categories)
        self._level_index = int(level_index)
        self._kind = kind
        self._learning_rate = float(learning_rate)
        self._alpha = float(alpha)

        self._categories: Dict[int, Category] = {}
        # key -> (category id, activation reported on a hit)
        self._exact_index: Dict[PatternKey, Tuple[int, float]] = {}
        self._id_counter = itertools.count()
        self._create_lock = threading.Lock()

        # Statistics
        self._stats_lock = threading.Lock()
        self._total_processed = 0
        self._total_matches = 0
        self._total_new_categories = 0
        self._average_activation = 0.0

        logger.debug(
            f"Created level {self._level_index} ({kind.value if kind else 'unnamed'}) "
            f"vigilance={self._vigilance}, max_categories={self._max_categories}"
        )

    @classmethod
    def from_config(cls, config: LevelConfig, level_index: int) -> 'LevelStore':
        return cls(
            vigilance=config.vigilance,
            max_categories=config.max_categories,
            level_index=level_index,
            kind=config.kind,
            learning_rate=config.learning_rate,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def vigilance(self) -> float:
        return self._vigilance

    @property
    def max_categories(self) -> int:
        return self._max_categories

    @property
    def level_index(self) -> int:
        return self._level_index

    @property
    def kind(self) -> Optional[HierarchyLevel]:
        return self._kind

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @property
    def category_count(self) -> int:
        return len(self._categories)

    # =========================================================================
    # Core Operations
    # =========================================================================

    def process(
        self,
        pattern: PatternLike,
        learning_enabled: bool = True,
        vigilance: Optional[float] = None,
    ) -> LevelResult:
        """
        Match a pattern against this level's categories, learning if allowed.

        Args:
            pattern: Feature vector (validated eagerly)
            learning_enabled: Whether a new category may be created
            vigilance: Threshold for this call only; None uses the configured vigilance

        Returns:
            LevelResult; internal faults come back as LevelOutcome.ERROR

        Raises:
            PatternError: If pattern is None, empty or malformed
            ConfigurationError: If the vigilance override is outside [0, 1]
        """
        pattern = as_feature_vector(pattern)
        if vigilance is None:
            threshold = self._vigilance
        elif 0.0 <= vigilance <= 1.0:
            threshold = float(vigilance)
        else:
            raise ConfigurationError(f"Vigilance override must be between 0.0 and 1.0, got: {vigilance}")

        start = time.perf_counter()
        with self._stats_lock:
            self._total_processed += 1

        try:
            return self._process(pattern, learning_enabled, threshold, start)
        except Exception as e:
            logger.exception(f"Error processing pattern at level {self._level_index}: {e}")
            return LevelResult.error(str(e), _elapsed_ms(start))

    def _process(
        self,
        pattern: np.ndarray,
        learning_enabled: bool,
        threshold: float,
        start: float,
    ) -> LevelResult:
        # Zero vectors never match, so they stay out of the exact index
        key = None if is_zero(pattern) else pattern_key(pattern)

        if key is not None:
            cached = self._exact_index.get(key)
            if cached is not None:
                cached_id, cached_activation = cached
                category = self._categories.get(cached_id)
                if category is not None:
                    category.record_activation(cached_activation)
                    self._record_match(cached_activation)
                    return LevelResult.match(cached_id, cached_activation, _elapsed_ms(start), exact=True)

        best_id, best_activation = self._find_best_category(pattern)

        if best_id is not None and best_activation >= threshold:
            category = self._categories.get(best_id)
            if category is not None:
                category.record_activation(best_activation)
                self._record_match(best_activation)

                if self._learning_rate > 0.0:
                    category.refine(pattern, self._learning_rate)
                    self._forget_keys(best_id)
                elif key is not None and best_activation > EXACT_CACHE_THRESHOLD:
                    self._exact_index[key] = (best_id, best_activation)

                return LevelResult.match(best_id, best_activation, _elapsed_ms(start))

        if not learning_enabled:
            return LevelResult.no_match(NoMatchReason.LEARNING_DISABLED, _elapsed_ms(start))

        category_id = self._create_category(pattern, key)
        if category_id is None:
            return LevelResult.no_match(NoMatchReason.CAPACITY_EXHAUSTED, _elapsed_ms(start))

        return LevelResult.new_category(category_id, _elapsed_ms(start))

    def activation(self, pattern: PatternLike, category_id: int) -> float:
        """Activation of one stored category for a pattern (0.0 if unknown)."""
        pattern = as_feature_vector(pattern)
        category = self._categories.get(category_id)
        if category is None:
            return 0.0
        return self._safe_activation(pattern, category)

    def _find_best_category(self, pattern: np.ndarray) -> Tuple[Optional[int], float]:
        """Highest activation over a snapshot of the table; ties keep the lowest id."""
        best_id = None
        best_activation = 0.0

        for category in list(self._categories.values()):
            activation = self._safe_activation(pattern, category)
            if activation > best_activation:
                best_activation = activation
                best_id = category.id

        return best_id, best_activation

    def _safe_activation(self, pattern: np.ndarray, category: Category) -> float:
        # A malformed prototype only loses its own contribution
        try:
            return fuzzy_activation(pattern, category.prototype, self._alpha)
        except PatternError as e:
            logger.warning(f"Level {self._level_index}, category {category.id}: {e}")
            return 0.0

    def _create_category(self, pattern: np.ndarray, key: Optional[PatternKey]) -> Optional[int]:
        with self._create_lock:
            if len(self._categories) >= self._max_categories:
                return None

            category_id = next(self._id_counter)
            self._categories[category_id] = Category(id=category_id, prototype=pattern)
            if key is not None:
                # The prototype is the pattern itself
                self._exact_index[key] = (category_id, 1.0)

        with self._stats_lock:
            self._total_new_categories += 1

        logger.debug(
            f"Created category {category_id} at level {self._level_index} "
            f"with pattern dimension {pattern.size}"
        )
        return category_id

    def _forget_keys(self, category_id: int) -> None:
        """Drop exact-index entries for a category whose prototype moved."""
        with self._create_lock:
            stale = [k for k, (cid, _) in list(self._exact_index.items()) if cid == category_id]
            for k in stale:
                del self._exact_index[k]

    def _record_match(self, activation: float) -> None:
        with self._stats_lock:
            self._total_matches += 1
            self._average_activation = (
                (1.0 - ACTIVATION_EMA_ALPHA) * self._average_activation
                + ACTIVATION_EMA_ALPHA * activation
            )

    # =========================================================================
    # Inspection
    # =========================================================================

    def get_category(self, category_id: int) -> Optional[Category]:
        return self._categories.get(category_id)

    def get_category_states(self) -> Dict[int, Category]:
        """Shallow copy of the category table."""
        return dict(self._categories)

    def get_statistics(self) -> LevelStatistics:
        with self._stats_lock:
            processed = self._total_processed
            matches = self._total_matches
            new_categories = self._total_new_categories
            average_activation = self._average_activation

        return LevelStatistics(
            level_index=self._level_index,
            kind=self._kind,
            vigilance=self._vigilance,
            max_categories=self._max_categories,
            current_categories=len(self._categories),
            total_processed=processed,
            total_matches=matches,
            total_new_categories=new_categories,
            match_rate=matches / processed if processed else 0.0,
            new_category_rate=new_categories / processed if processed else 0.0,
            average_activation=average_activation,
        )

    def reset(self) -> None:
        """Discard all categories, the exact index and statistics."""
        with self._create_lock:
            self._categories.clear()
            self._exact_index.clear()
            self._id_counter = itertools.count()

        with self._stats_lock:
            self._total_processed = 0
            self._total_matches = 0
            self._total_new_categories = 0
            self._average_activation = 0.0

        logger.debug(f"Reset level {self._level_index}")

    def __repr__(self) -> str:
        return (
            f"LevelStore(level={self._level_index}, vigilance={self._vigilance}, "
            f"categories={len(self._categories)}/{self._max_categories})"
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


__all__ = [
    'EXACT_CACHE_THRESHOLD',
    'LevelOutcome',
    'NoMatchReason',
    'LevelResult',
    'LevelStatistics',
    'Category',
    'LevelStore',
]
