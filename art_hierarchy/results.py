"""
Resonance Results and Metrics
=============================

Typed outcomes handed back to callers. Every processed input yields a
ResonanceResult; nothing expected (no match, capacity, vigilance failure)
is raised.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple


class ResonanceStatus(Enum):
    """Terminal state of one processPattern call."""
    SUCCESS = "success"
    ABORTED = "aborted"   # Bottom-up pass could not assign every level
    FAILED = "failed"     # Assignments made but resonance never reached


@dataclass(frozen=True)
class ResonanceResult:
    """Result of ResonanceController.process_pattern()."""
    status: ResonanceStatus
    category_ids: Tuple[int, ...] = ()
    vigilance_adjustments: Tuple[float, ...] = ()
    activations: Tuple[float, ...] = ()
    validation_scores: Tuple[float, ...] = ()
    resonance_strength: float = 0.0
    resonance_id: Optional[int] = None
    attempts: int = 0                 # Adaptive attempts used, 0 = first pass
    reason: Optional[str] = None
    processing_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is ResonanceStatus.SUCCESS

    @property
    def top_category(self) -> Optional[int]:
        """Category at the highest level, if any."""
        return self.category_ids[-1] if self.category_ids else None

    @classmethod
    def create_success(
        cls,
        category_ids: Sequence[int],
        vigilance_adjustments: Sequence[float],
        resonance_strength: float,
        resonance_id: int,
        activations: Sequence[float] = (),
        validation_scores: Sequence[float] = (),
        attempts: int = 0,
        processing_time_ms: float = 0.0,
    ) -> 'ResonanceResult':
        return cls(
            status=ResonanceStatus.SUCCESS,
            category_ids=tuple(int(c) for c in category_ids),
            vigilance_adjustments=tuple(float(v) for v in vigilance_adjustments),
            activations=tuple(float(a) for a in activations),
            validation_scores=tuple(float(v) for v in validation_scores),
            resonance_strength=resonance_strength,
            resonance_id=resonance_id,
            attempts=attempts,
            processing_time_ms=processing_time_ms,
        )

    @classmethod
    def create_failure(
        cls,
        reason: str,
        status: ResonanceStatus = ResonanceStatus.FAILED,
        resonance_id: Optional[int] = None,
        resonance_strength: float = 0.0,
        attempts: int = 0,
        processing_time_ms: float = 0.0,
    ) -> 'ResonanceResult':
        return cls(
            status=status,
            reason=reason,
            resonance_id=resonance_id,
            resonance_strength=resonance_strength,
            attempts=attempts,
            processing_time_ms=processing_time_ms,
        )

    def with_processing_time(self, processing_time_ms: float) -> 'ResonanceResult':
        return replace(self, processing_time_ms=processing_time_ms)


@dataclass(frozen=True)
class ResonanceMetrics:
    """Point-in-time snapshot of controller-wide resonance statistics."""
    total_events: int = 0
    successful_events: int = 0
    success_rate: float = 0.0
    stability: float = 0.5
    plasticity: float = 0.5
    last_resonance_strength: float = 0.0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return (
            f"ResonanceMetrics(events={self.total_events}, "
            f"success={self.successful_events}({self.success_rate * 100:.1f}%), "
            f"stability={self.stability:.2f}, plasticity={self.plasticity:.2f}, "
            f"last_strength={self.last_resonance_strength:.3f})"
        )


@dataclass(frozen=True)
class StabilityPlasticityBalance:
    """Current stability/plasticity pair, each in [0.1, 0.9]."""
    stability: float
    plasticity: float

    @property
    def is_balanced(self) -> bool:
        return abs(self.stability - self.plasticity) < 0.2

    @property
    def is_stability_dominant(self) -> bool:
        return self.stability > self.plasticity + 0.1

    @property
    def is_plasticity_dominant(self) -> bool:
        return self.plasticity > self.stability + 0.1

    def describe(self) -> str:
        if self.is_balanced:
            return "balanced"
        return "stability-dominant" if self.is_stability_dominant else "plasticity-dominant"

    def __str__(self) -> str:
        return (
            f"Balance(stability={self.stability:.2f}, "
            f"plasticity={self.plasticity:.2f}, {self.describe()})"
        )


__all__ = [
    'ResonanceStatus',
    'ResonanceResult',
    'ResonanceMetrics',
    'StabilityPlasticityBalance',
]
