"""
ART Hierarchy Test Configuration
================================

Shared fixtures: seeded RNG, level and controller factories.
"""

import os
import sys

import numpy as np
import pytest

# Add repository root for imports without installation
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from art_hierarchy import (
    HierarchyLevel,
    LevelStore,
    ResonanceController,
    ResonanceParameters,
)


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "concurrency: multi-threaded stress tests")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def rng():
    """Reproducible random number generator."""
    return np.random.default_rng(42)


@pytest.fixture
def make_level():
    """Factory for LevelStores with test-friendly defaults."""
    def _make(vigilance=0.7, max_categories=100, **kwargs):
        return LevelStore(vigilance=vigilance, max_categories=max_categories, **kwargs)
    return _make


@pytest.fixture
def make_controller():
    """Factory for controllers over fresh levels."""
    def _make(vigilances=(0.7, 0.8, 0.9), max_categories=100, learning_rate=0.0, **params):
        if isinstance(max_categories, int):
            max_categories = [max_categories] * len(vigilances)
        levels = [
            LevelStore(vigilance=v, max_categories=m, level_index=i, learning_rate=learning_rate)
            for i, (v, m) in enumerate(zip(vigilances, max_categories))
        ]
        return ResonanceController(levels, ResonanceParameters(**params))
    return _make


@pytest.fixture
def controller(make_controller):
    """Token / window / document hierarchy with vigilances 0.7 / 0.8 / 0.9."""
    return make_controller()


@pytest.fixture
def input_pattern():
    """Fixed 8-dimensional input in [0, 1]."""
    return np.array([0.1, 0.9, 0.3, 0.7, 0.5, 0.2, 0.8, 0.4])
