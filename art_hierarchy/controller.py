"""
Resonance Controller - Bottom-Up / Top-Down Hierarchical Resonance
==================================================================

Per input:

    Start -> BottomUp --fail--> Aborted
                |
                v
             TopDown -> Evaluate --resonant--> Success
                            |
                            v
                      AdaptiveRetry --resonant--> Success
                            |
                            v (attempts exhausted)
                          Failed

Bottom-up: level i processes the derived pattern of level i-1 (level 0
sees the input). Top-down: from the highest level down, each assigned
prototype is scored against the original input (cosine, weighted
1 + 0.1 * i) and against lower-level assignments (consistency strategy),
producing a suggested vigilance delta per level.

Resonance holds when the mean activation, the mean validation and their
average (the resonance strength) all meet their thresholds. Adaptive
retries lower the effective vigilance by rate * attempt for the duration
of one pass; configured vigilances are never mutated.

The stability/plasticity balance and the metrics snapshot belong to the
controller instance, so independent hierarchies never share state.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import HierarchyConfig, ResonanceParameters
from .errors import ConfigurationError, PatternError
from .level import LevelStatistics, LevelStore
from .patterns import PatternLike, as_feature_vector, cosine_similarity, is_zero
from .results import (
    ResonanceMetrics,
    ResonanceResult,
    ResonanceStatus,
    StabilityPlasticityBalance,
)
from .strategies import (
    CategoryCoordinateTransform,
    ConsistencyStrategy,
    IdProximityConsistency,
    PatternTransform,
)
from .sync import ReadWriteLock


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

BALANCE_INITIAL = 0.5
BALANCE_STEP = 0.01
BALANCE_MIN = 0.1
BALANCE_MAX = 0.9

LEVEL_WEIGHT_STEP = 0.1          # Validation weight = 1 + 0.1 * level
ADJUSTED_VIGILANCE_MIN = 0.1
ADJUSTED_VIGILANCE_MAX = 0.99
HIGH_CONFIDENCE = 0.8            # Validation and consistency above this relax vigilance
LOW_VALIDATION = 0.6             # Validation below this tightens vigilance


# =============================================================================
# Per-Input State
# =============================================================================

@dataclass
class ResonanceState:
    """Lives for exactly one process_pattern() call."""
    resonance_id: int
    original_pattern: np.ndarray
    start_time: float = field(default_factory=time.time)
    resonance_strength: float = 0.0


@dataclass
class _BottomUpPass:
    success: bool
    category_ids: List[int]
    activations: List[float]
    error: Optional[str] = None


@dataclass
class _TopDownPass:
    validation_scores: List[float]
    vigilance_adjustments: List[float]


# =============================================================================
# Controller
# =============================================================================

class ResonanceController:
    """
    Orchestrates an ordered stack of LevelStores (lowest abstraction first).

    Thread-safe: process_pattern() may be called from many threads at once.
    """

    def __init__(
        self,
        levels: Sequence[LevelStore],
        parameters: Optional[ResonanceParameters] = None,
        transform: Optional[PatternTransform] = None,
        consistency: Optional[ConsistencyStrategy] = None,
        input_dim: Optional[int] = None,
    ):
        """
        Args:
            levels: Level stores from lowest to highest abstraction
            parameters: Resonance thresholds (defaults if None)
            transform: Derived-pattern encoding between levels
            consistency: Cross-level consistency score
            input_dim: Fixed input dimension; None locks it on the first input
        """
        if not levels:
            raise ConfigurationError("Levels cannot be empty")
        if input_dim is not None and input_dim <= 0:
            raise ConfigurationError(f"Input dimension must be positive, got: {input_dim}")

        self._levels: Tuple[LevelStore, ...] = tuple(levels)
        self._parameters = parameters if parameters is not None else ResonanceParameters.defaults()
        self._transform = transform or CategoryCoordinateTransform()
        self._consistency = consistency or IdProximityConsistency()

        self._configured_input_dim = input_dim
        self._input_dim = input_dim
        self._dim_lock = threading.Lock()

        self._active_resonances: Dict[int, ResonanceState] = {}

        # Balance and metrics, guarded by _lock
        self._lock = ReadWriteLock()
        self._resonance_ids = itertools.count(1)
        self._stability = BALANCE_INITIAL
        self._plasticity = BALANCE_INITIAL
        self._total_events = 0
        self._successful_events = 0
        self._metrics = ResonanceMetrics()

        logger.info(
            f"ResonanceController initialized with {len(self._levels)} levels "
            f"and parameters: {self._parameters}"
        )

    @classmethod
    def from_config(
        cls,
        config: HierarchyConfig,
        transform: Optional[PatternTransform] = None,
        consistency: Optional[ConsistencyStrategy] = None,
    ) -> 'ResonanceController':
        levels = [LevelStore.from_config(lc, i) for i, lc in enumerate(config.levels)]
        return cls(
            levels,
            parameters=config.resonance,
            transform=transform,
            consistency=consistency,
            input_dim=config.input_dim,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def levels(self) -> Tuple[LevelStore, ...]:
        return self._levels

    @property
    def parameters(self) -> ResonanceParameters:
        return self._parameters

    @property
    def input_dim(self) -> Optional[int]:
        return self._input_dim

    @property
    def active_resonance_count(self) -> int:
        return len(self._active_resonances)

    # =========================================================================
    # Entry Point
    # =========================================================================

    def process_pattern(
        self,
        input_pattern: PatternLike,
        learning_enabled: bool = True,
    ) -> ResonanceResult:
        """
        Run one input through the hierarchy.

        Args:
            input_pattern: Feature vector from upstream extraction
            learning_enabled: Whether levels may create categories

        Returns:
            ResonanceResult (SUCCESS, ABORTED or FAILED)

        Raises:
            PatternError: If the input is None, empty, malformed or has the wrong dimension
        """
        pattern = as_feature_vector(input_pattern, name="input pattern")
        self._check_input_dim(pattern)

        start = time.perf_counter()
        with self._lock.write_locked():
            resonance_id = next(self._resonance_ids)
            self._total_events += 1

        state = ResonanceState(resonance_id=resonance_id, original_pattern=pattern)
        self._active_resonances[resonance_id] = state

        try:
            result = self._resonate(pattern, learning_enabled, state)
        except Exception as e:
            logger.exception(f"Error in resonance processing: {e}")
            self._record_outcome(None, state)
            result = ResonanceResult.create_failure(
                f"Processing error: {e}",
                status=ResonanceStatus.ABORTED,
                resonance_id=resonance_id,
            )
        finally:
            self._active_resonances.pop(resonance_id, None)

        return result.with_processing_time(_elapsed_ms(start))

    def _resonate(
        self,
        pattern: np.ndarray,
        learning_enabled: bool,
        state: ResonanceState,
    ) -> ResonanceResult:
        bottom_up = self._bottom_up(pattern, learning_enabled)
        if not bottom_up.success:
            self._record_outcome(None, state)
            return ResonanceResult.create_failure(
                bottom_up.error or "Bottom-up pass failed",
                status=ResonanceStatus.ABORTED,
                resonance_id=state.resonance_id,
            )

        top_down = self._top_down(bottom_up.category_ids, pattern)
        if self._check_resonance(bottom_up, top_down, state):
            self._record_outcome(True, state)
            return self._success(bottom_up, top_down, state, attempts=0)

        attempts = 0
        # A zero input activates nothing, so relaxed vigilance cannot change the outcome
        if (learning_enabled and self._parameters.enable_adaptive_vigilance
                and not is_zero(pattern)):
            attempts = self._parameters.max_adaptation_attempts
            adapted = self._attempt_adaptive_resonance(pattern, state)
            if adapted is not None:
                self._record_outcome(True, state)
                return adapted

        self._record_outcome(False, state)
        return ResonanceResult.create_failure(
            "Resonance not achieved",
            status=ResonanceStatus.FAILED,
            resonance_id=state.resonance_id,
            resonance_strength=state.resonance_strength,
            attempts=attempts,
        )

    # =========================================================================
    # Bottom-Up
    # =========================================================================

    def _bottom_up(
        self,
        pattern: np.ndarray,
        learning_enabled: bool,
        vigilances: Optional[Sequence[float]] = None,
    ) -> _BottomUpPass:
        """Sequential pass from the lowest level up; stops at the first failure."""
        category_ids: List[int] = []
        activations: List[float] = []
        current = pattern

        for i, level in enumerate(self._levels):
            override = vigilances[i] if vigilances is not None else None
            try:
                result = level.process(current, learning_enabled, override)
                if not result.success:
                    error = result.message or "Unknown processing error"
                    return _BottomUpPass(False, category_ids, activations, f"Level {i} failed: {error}")

                category_ids.append(result.category_id)
                activations.append(result.activation)

                if i < len(self._levels) - 1:
                    current = self._transform.transform(current, result.category_id, i)

            except Exception as e:
                logger.error(f"Error in bottom-up processing at level {i}: {e}", exc_info=True)
                return _BottomUpPass(False, category_ids, activations, f"Level {i} exception: {e}")

        return _BottomUpPass(True, category_ids, activations)

    # =========================================================================
    # Top-Down
    # =========================================================================

    def _top_down(self, category_ids: Sequence[int], original: np.ndarray) -> _TopDownPass:
        """Validate assignments from the highest level down."""
        n = len(self._levels)
        validation_scores = [0.0] * n
        vigilance_adjustments = [0.0] * n

        for i in reversed(range(n)):
            level = self._levels[i]
            category = level.get_category(category_ids[i])

            if category is None:
                # Only possible if the level was reset mid-call
                logger.warning(f"Category {category_ids[i]} not found at level {i}")
                continue

            validation = self._validation_score(original, category.prototype, i)
            consistency = self._consistency.consistency(category_ids[:i], category_ids[i])

            validation_scores[i] = validation
            vigilance_adjustments[i] = self._vigilance_adjustment(
                validation, consistency, level.vigilance
            )

        return _TopDownPass(validation_scores, vigilance_adjustments)

    def _validation_score(self, original: np.ndarray, prototype: np.ndarray, level: int) -> float:
        """
        Weighted cosine between the input and the prototype's input coordinates.

        Derived patterns keep the input as their prefix, so every level's
        prototype can be compared over the leading len(original) entries.
        """
        if prototype.size < original.size:
            return 0.0
        try:
            similarity = cosine_similarity(original, prototype[:original.size])
        except PatternError:
            return 0.0

        weight = 1.0 + level * LEVEL_WEIGHT_STEP
        return max(0.0, min(1.0, similarity * weight))

    def _vigilance_adjustment(
        self,
        validation: float,
        consistency: float,
        current_vigilance: float,
    ) -> float:
        """Suggested vigilance delta: relax when confident, tighten when validation is low."""
        rate = self._parameters.vigilance_adaptation_rate

        target = 0.0
        if validation > HIGH_CONFIDENCE and consistency > HIGH_CONFIDENCE:
            target = -rate * 0.5
        elif validation < LOW_VALIDATION:
            target = rate

        new_vigilance = max(ADJUSTED_VIGILANCE_MIN,
                            min(ADJUSTED_VIGILANCE_MAX, current_vigilance + target))
        return new_vigilance - current_vigilance

    # =========================================================================
    # Resonance Decision
    # =========================================================================

    def _check_resonance(
        self,
        bottom_up: _BottomUpPass,
        top_down: _TopDownPass,
        state: ResonanceState,
    ) -> bool:
        n = len(self._levels)
        avg_activation = sum(bottom_up.activations) / n
        avg_validation = sum(top_down.validation_scores) / n
        strength = (avg_activation + avg_validation) / 2.0
        state.resonance_strength = strength

        params = self._parameters
        activation_ok = avg_activation >= params.min_activation_threshold
        validation_ok = avg_validation >= params.min_validation_threshold
        achieved = activation_ok and validation_ok and strength >= params.min_resonance_threshold

        logger.debug(
            f"Resonance check #{state.resonance_id}: activation={avg_activation:.3f} ({activation_ok}), "
            f"validation={avg_validation:.3f} ({validation_ok}), "
            f"strength={strength:.3f}, achieved={achieved}"
        )
        return achieved

    def _attempt_adaptive_resonance(
        self,
        pattern: np.ndarray,
        state: ResonanceState,
    ) -> Optional[ResonanceResult]:
        """Retry with progressively relaxed vigilance; None if every attempt fails."""
        max_attempts = self._parameters.max_adaptation_attempts

        for attempt in range(1, max_attempts + 1):
            relaxation = self._relaxation(attempt)
            vigilances = [max(0.0, level.vigilance - relaxation) for level in self._levels]

            bottom_up = self._bottom_up(pattern, True, vigilances)
            if not bottom_up.success:
                logger.debug(f"Adaptive attempt {attempt} aborted: {bottom_up.error}")
                continue

            top_down = self._top_down(bottom_up.category_ids, pattern)
            if self._check_resonance(bottom_up, top_down, state):
                logger.debug(
                    f"Adaptive resonance achieved on attempt {attempt} "
                    f"with relaxation {relaxation:.3f}"
                )
                return self._success(bottom_up, top_down, state, attempts=attempt)

        logger.debug(f"Adaptive resonance failed after {max_attempts} attempts")
        return None

    def _relaxation(self, attempt: int) -> float:
        relaxation = self._parameters.vigilance_adaptation_rate * attempt
        if self._parameters.balance_biased_retry:
            # Plasticity 0.5 leaves the step unchanged
            relaxation *= 2.0 * self.get_balance().plasticity
        return relaxation

    def _success(
        self,
        bottom_up: _BottomUpPass,
        top_down: _TopDownPass,
        state: ResonanceState,
        attempts: int,
    ) -> ResonanceResult:
        return ResonanceResult.create_success(
            category_ids=bottom_up.category_ids,
            vigilance_adjustments=top_down.vigilance_adjustments,
            resonance_strength=state.resonance_strength,
            resonance_id=state.resonance_id,
            activations=bottom_up.activations,
            validation_scores=top_down.validation_scores,
            attempts=attempts,
        )

    # =========================================================================
    # Balance & Metrics
    # =========================================================================

    def _record_outcome(self, successful: Optional[bool], state: ResonanceState) -> None:
        """Nudge the balance (unless the pass aborted) and refresh the metrics snapshot."""
        with self._lock.write_locked():
            if successful is True:
                self._successful_events += 1
                self._stability = min(BALANCE_MAX, self._stability + BALANCE_STEP)
                self._plasticity = max(BALANCE_MIN, self._plasticity - BALANCE_STEP)
            elif successful is False:
                self._plasticity = min(BALANCE_MAX, self._plasticity + BALANCE_STEP)
                self._stability = max(BALANCE_MIN, self._stability - BALANCE_STEP)

            self._metrics = ResonanceMetrics(
                total_events=self._total_events,
                successful_events=self._successful_events,
                success_rate=self._successful_events / self._total_events if self._total_events else 0.0,
                stability=self._stability,
                plasticity=self._plasticity,
                last_resonance_strength=state.resonance_strength,
                timestamp=time.time(),
            )

    def get_metrics(self) -> ResonanceMetrics:
        with self._lock.read_locked():
            return self._metrics

    def get_balance(self) -> StabilityPlasticityBalance:
        with self._lock.read_locked():
            return StabilityPlasticityBalance(self._stability, self._plasticity)

    def get_level_statistics(self) -> List[LevelStatistics]:
        return [level.get_statistics() for level in self._levels]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _check_input_dim(self, pattern: np.ndarray) -> None:
        with self._dim_lock:
            if self._input_dim is None:
                self._input_dim = pattern.size
            elif pattern.size != self._input_dim:
                raise PatternError(
                    f"Input dimension mismatch: expected {self._input_dim}, got {pattern.size}"
                )

    def reset(self) -> None:
        """Discard all learned state: categories, active resonances, counters and balance."""
        for level in self._levels:
            level.reset()

        with self._dim_lock:
            self._input_dim = self._configured_input_dim

        with self._lock.write_locked():
            self._active_resonances.clear()
            self._resonance_ids = itertools.count(1)
            self._stability = BALANCE_INITIAL
            self._plasticity = BALANCE_INITIAL
            self._total_events = 0
            self._successful_events = 0
            self._metrics = ResonanceMetrics()

        logger.info("ResonanceController reset completed")

    def __repr__(self) -> str:
        return f"ResonanceController(levels={len(self._levels)}, parameters={self._parameters})"


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


__all__ = [
    'ResonanceState',
    'ResonanceController',
]
