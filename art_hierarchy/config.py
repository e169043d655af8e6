"""
Hierarchy Configuration - Vigilance, Capacity and Resonance Thresholds
======================================================================

All parameters are validated when the models are built; out-of-range
values raise pydantic.ValidationError (a ValueError).

Usage:
    from art_hierarchy.config import HierarchyConfig

    config = HierarchyConfig.from_yaml(Path("hierarchy.yaml"))
    controller = ResonanceController.from_config(config)

YAML layout:
    input_dim: 8
    levels:
      - kind: token
        vigilance: 0.7
        max_categories: 100
      - kind: window
      - kind: document
    resonance:
      min_resonance_threshold: 0.7
      max_adaptation_attempts: 3
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Level Kinds
# =============================================================================

class HierarchyLevel(str, Enum):
    """Abstraction level a store operates at."""
    TOKEN = "token"         # Individual tokens
    WINDOW = "window"       # Phrases / sliding windows
    DOCUMENT = "document"   # Whole documents

    @property
    def level_number(self) -> int:
        return _LEVEL_INFO[self][0]

    @property
    def description(self) -> str:
        return _LEVEL_INFO[self][1]

    @property
    def default_vigilance(self) -> float:
        return _LEVEL_INFO[self][2]

    @classmethod
    def from_number(cls, level_number: int) -> "HierarchyLevel":
        for kind, info in _LEVEL_INFO.items():
            if info[0] == level_number:
                return kind
        raise ValueError(f"Invalid level number: {level_number}")


_LEVEL_INFO = {
    HierarchyLevel.TOKEN: (1, "Token-level processing", 0.7),
    HierarchyLevel.WINDOW: (2, "Window-level aggregation", 0.8),
    HierarchyLevel.DOCUMENT: (3, "Document-level synthesis", 0.9),
}

DEFAULT_MAX_CATEGORIES = 1000
MAX_ADAPTATION_ATTEMPTS_LIMIT = 100  # Hard bound so a call always terminates


# =============================================================================
# Models
# =============================================================================

class LevelConfig(BaseModel):
    """Configuration for one Level Store."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Optional[HierarchyLevel] = None
    vigilance: float = Field(ge=0.0, le=1.0)
    max_categories: int = Field(default=DEFAULT_MAX_CATEGORIES, gt=0)
    learning_rate: float = Field(default=0.0, ge=0.0, le=1.0)  # 0 = frozen prototypes

    @model_validator(mode="before")
    @classmethod
    def _default_vigilance(cls, data: Any) -> Any:
        # Vigilance falls back to the kind's default when omitted
        if isinstance(data, dict) and data.get("vigilance") is None and data.get("kind") is not None:
            data = dict(data)
            data["vigilance"] = HierarchyLevel(data["kind"]).default_vigilance
        return data


class ResonanceParameters(BaseModel):
    """Controller-wide resonance thresholds and adaptive retry settings."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    min_activation_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    min_validation_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    min_resonance_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    enable_adaptive_vigilance: bool = True
    vigilance_adaptation_rate: float = Field(default=0.05, gt=0.0)
    max_adaptation_attempts: int = Field(default=3, ge=0, le=MAX_ADAPTATION_ATTEMPTS_LIMIT)
    balance_biased_retry: bool = False  # Scale retry relaxation by plasticity

    @classmethod
    def defaults(cls) -> "ResonanceParameters":
        return cls()

    def __str__(self) -> str:
        return (
            f"ResonanceParams(min_act={self.min_activation_threshold:.2f}, "
            f"min_val={self.min_validation_threshold:.2f}, "
            f"min_res={self.min_resonance_threshold:.2f}, "
            f"adaptive={self.enable_adaptive_vigilance})"
        )


class HierarchyConfig(BaseModel):
    """Full hierarchy: ordered levels (lowest abstraction first) plus resonance parameters."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    levels: List[LevelConfig] = Field(min_length=1)
    resonance: ResonanceParameters = Field(default_factory=ResonanceParameters)
    input_dim: Optional[int] = Field(default=None, gt=0)

    @classmethod
    def default(cls, max_categories: int = DEFAULT_MAX_CATEGORIES) -> "HierarchyConfig":
        """Token -> window -> document with vigilances 0.7 / 0.8 / 0.9."""
        return cls(levels=[
            LevelConfig(kind=kind, max_categories=max_categories)
            for kind in HierarchyLevel
        ])

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HierarchyConfig":
        return cls.model_validate(d)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "HierarchyConfig":
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def save(self, path: Union[str, Path]) -> None:
        with open(path, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)


__all__ = [
    'HierarchyLevel',
    'DEFAULT_MAX_CATEGORIES',
    'MAX_ADAPTATION_ATTEMPTS_LIMIT',
    'LevelConfig',
    'ResonanceParameters',
    'HierarchyConfig',
]
