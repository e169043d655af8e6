"""
ART Hierarchy - Hierarchical Adaptive Resonance Category Formation
==================================================================

An ordered stack of abstraction levels (token -> window -> document)
learns prototype categories online and reconciles its choices through a
bottom-up / top-down resonance protocol.

Architecture:
    feature vector
        |
        v
    Level 0 --derived pattern--> Level 1 --derived pattern--> Level 2   (bottom-up)
        ^                           ^                            |
        +------ validation ---------+------ validation ----------+      (top-down)
        |
        v
    resonance decision -> success | adaptive retry | failure

Usage:
    from art_hierarchy import ResonanceController, HierarchyConfig

    controller = ResonanceController.from_config(HierarchyConfig.default())
    result = controller.process_pattern(features)
    if result.success:
        print(result.category_ids, result.resonance_strength)
"""

from .errors import ARTHierarchyError, PatternError, ConfigurationError
from .patterns import (
    DEFAULT_ALPHA,
    as_feature_vector,
    complement_code,
    cosine_similarity,
    fuzzy_activation,
)
from .config import (
    HierarchyLevel,
    LevelConfig,
    ResonanceParameters,
    HierarchyConfig,
)
from .level import (
    Category,
    LevelOutcome,
    LevelResult,
    LevelStatistics,
    LevelStore,
    NoMatchReason,
)
from .strategies import (
    PatternTransform,
    CategoryCoordinateTransform,
    OneHotCategoryTransform,
    ConsistencyStrategy,
    IdProximityConsistency,
    UniformConsistency,
)
from .results import (
    ResonanceStatus,
    ResonanceResult,
    ResonanceMetrics,
    StabilityPlasticityBalance,
)
from .controller import ResonanceController

__version__ = "0.1.0"

__all__ = [
    # Errors
    'ARTHierarchyError',
    'PatternError',
    'ConfigurationError',
    # Patterns
    'DEFAULT_ALPHA',
    'as_feature_vector',
    'complement_code',
    'cosine_similarity',
    'fuzzy_activation',
    # Config
    'HierarchyLevel',
    'LevelConfig',
    'ResonanceParameters',
    'HierarchyConfig',
    # Level Store
    'Category',
    'LevelOutcome',
    'LevelResult',
    'LevelStatistics',
    'LevelStore',
    'NoMatchReason',
    # Strategies
    'PatternTransform',
    'CategoryCoordinateTransform',
    'OneHotCategoryTransform',
    'ConsistencyStrategy',
    'IdProximityConsistency',
    'UniformConsistency',
    # Results
    'ResonanceStatus',
    'ResonanceResult',
    'ResonanceMetrics',
    'StabilityPlasticityBalance',
    # Controller
    'ResonanceController',
]
