"""
Resonance Controller Tests - Hierarchical Bottom-Up / Top-Down Protocol
=======================================================================

Tests the per-input state machine end to end:
- Success, Aborted and Failed terminal states
- Adaptive retry without mutating configured vigilance
- Stability/plasticity balance bounds and metrics snapshots
- Entry-point validation and guaranteed cleanup of active resonances
"""

import math

import numpy as np
import pytest

from art_hierarchy import (
    HierarchyConfig,
    HierarchyLevel,
    LevelStore,
    OneHotCategoryTransform,
    PatternError,
    ResonanceController,
    ResonanceParameters,
    ResonanceStatus,
    UniformConsistency,
)


# =============================================================================
# Tests: Construction
# =============================================================================

class TestConstruction:
    """Controller construction and configuration."""

    def test_empty_levels_rejected(self):
        with pytest.raises(ValueError):
            ResonanceController([])

    def test_from_default_config(self):
        controller = ResonanceController.from_config(HierarchyConfig.default(max_categories=50))

        assert [level.kind for level in controller.levels] == list(HierarchyLevel)
        assert [level.vigilance for level in controller.levels] == [0.7, 0.8, 0.9]
        assert [level.level_index for level in controller.levels] == [0, 1, 2]
        assert all(level.max_categories == 50 for level in controller.levels)
        assert controller.parameters == ResonanceParameters.defaults()

    def test_initial_metrics_and_balance(self, controller):
        metrics = controller.get_metrics()
        balance = controller.get_balance()

        assert metrics.total_events == 0
        assert metrics.success_rate == 0.0
        assert balance.stability == 0.5
        assert balance.plasticity == 0.5
        assert balance.is_balanced


# =============================================================================
# Tests: Repeated Input Scenario
# =============================================================================

class TestRepeatedInput:
    """Same 8-d input five times through vigilances (0.7, 0.8, 0.9)."""

    def test_first_call_creates_categories_everywhere(self, controller, input_pattern):
        result = controller.process_pattern(input_pattern)

        assert result.status is ResonanceStatus.SUCCESS
        assert result.category_ids == (0, 0, 0)
        assert result.activations == (1.0, 1.0, 1.0)
        assert result.validation_scores == pytest.approx((1.0, 1.0, 1.0))
        assert result.resonance_strength == pytest.approx(1.0)
        assert result.attempts == 0
        for level in controller.levels:
            assert level.get_statistics().total_new_categories == 1

    def test_repeats_are_exact_matches(self, controller, input_pattern):
        controller.process_pattern(input_pattern)
        counts = []

        for _ in range(4):
            result = controller.process_pattern(input_pattern)
            assert result.success
            assert result.category_ids == (0, 0, 0)
            assert result.activations == (1.0, 1.0, 1.0)
            counts.append([level.get_category(0).activation_count for level in controller.levels])

        assert counts == [[2, 2, 2], [3, 3, 3], [4, 4, 4], [5, 5, 5]]
        for level in controller.levels:
            stats = level.get_statistics()
            assert stats.total_matches == 4
            assert stats.current_categories == 1

    def test_resonance_ids_increase(self, controller, input_pattern):
        ids = [controller.process_pattern(input_pattern).resonance_id for _ in range(5)]

        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    def test_vigilance_adjustments_relax_when_confident(self, controller, input_pattern):
        result = controller.process_pattern(input_pattern)

        # Validation 1.0 and consistency 1.0 everywhere: -rate / 2 per level
        assert result.vigilance_adjustments == pytest.approx((-0.025, -0.025, -0.025))

    def test_derived_pattern_grows_per_level(self, controller, input_pattern):
        controller.process_pattern(input_pattern)
        sizes = [level.get_category(0).prototype.size for level in controller.levels]

        assert sizes == [8, 10, 12]
        np.testing.assert_allclose(controller.levels[2].get_category(0).prototype[-4:],
                                   [0.0, 0.0, 0.0, 0.1])


# =============================================================================
# Tests: Aborted Bottom-Up Pass
# =============================================================================

class TestAborted:
    """Level failures abort the pass and skip top-down validation."""

    def test_zero_vector_without_learning(self, controller, input_pattern):
        controller.process_pattern(input_pattern)
        result = controller.process_pattern(np.zeros(8), learning_enabled=False)

        assert result.status is ResonanceStatus.ABORTED
        assert "Level 0 failed" in result.reason
        assert result.category_ids == ()

    def test_zero_vector_with_learning_never_resonates(self, make_controller):
        controller = make_controller()
        result = controller.process_pattern(np.zeros(8))

        assert result.status is ResonanceStatus.FAILED
        # One degenerate category, no retries
        assert result.attempts == 0
        assert controller.levels[0].category_count == 1

    def test_zero_vectors_leave_capacity_for_real_input(self, make_controller):
        controller = make_controller(max_categories=20)
        for _ in range(5):
            controller.process_pattern(np.zeros(8))

        assert controller.levels[0].category_count == 5
        result = controller.process_pattern(np.full(8, 0.5))
        assert result.status is ResonanceStatus.SUCCESS

    def test_unseen_input_without_learning(self, controller, input_pattern):
        result = controller.process_pattern(input_pattern, learning_enabled=False)

        assert result.status is ResonanceStatus.ABORTED
        assert result.reason == "Level 0 failed: Learning disabled"

    def test_capacity_exhaustion(self, make_controller):
        controller = make_controller(max_categories=[1, 10, 10])
        controller.process_pattern([1.0, 0.0, 0.0, 0.0])
        result = controller.process_pattern([0.0, 0.0, 1.0, 0.0])

        assert result.status is ResonanceStatus.ABORTED
        assert result.reason == "Level 0 failed: Max categories reached"
        assert controller.levels[0].category_count == 1

    def test_higher_level_failure_reports_level(self, make_controller):
        controller = make_controller(max_categories=[10, 1, 10])
        controller.process_pattern([1.0, 0.0, 0.0, 0.0])
        result = controller.process_pattern([0.0, 0.0, 1.0, 0.0])

        assert result.status is ResonanceStatus.ABORTED
        assert result.reason.startswith("Level 1 failed")

    def test_abort_does_not_nudge_balance(self, controller, input_pattern):
        controller.process_pattern(input_pattern, learning_enabled=False)
        metrics = controller.get_metrics()

        assert metrics.total_events == 1
        assert metrics.successful_events == 0
        assert metrics.stability == 0.5
        assert metrics.plasticity == 0.5

    def test_level_exception_aborts(self, controller, input_pattern, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("level exploded")

        monkeypatch.setattr(controller.levels[1], "process", boom)
        result = controller.process_pattern(input_pattern)

        assert result.status is ResonanceStatus.ABORTED
        assert result.reason == "Level 1 exception: level exploded"
        assert controller.active_resonance_count == 0

    def test_top_down_exception_cleans_up(self, controller, input_pattern, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("validation exploded")

        monkeypatch.setattr(controller, "_top_down", boom)
        result = controller.process_pattern(input_pattern)

        assert result.status is ResonanceStatus.ABORTED
        assert "validation exploded" in result.reason
        assert controller.active_resonance_count == 0
        assert controller.get_metrics().total_events == 1


# =============================================================================
# Tests: Adaptive Retry
# =============================================================================

def single_level_controller(vigilance, learning_rate=0.0, **params):
    level = LevelStore(vigilance=vigilance, max_categories=100, learning_rate=learning_rate)
    return ResonanceController([level], ResonanceParameters(**params))


class TestAdaptiveRetry:
    """Failed resonance retries with relaxed vigilance, bounded by max attempts."""

    def test_final_failure_after_attempts(self):
        controller = single_level_controller(0.5, min_resonance_threshold=0.95)
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])
        result = controller.process_pattern([1.0, 1.0, 1.0, 0.0])

        # activation 2/3.001, validation 2/sqrt(6)
        expected_strength = (2.0 / 3.001 + 2.0 / math.sqrt(6.0)) / 2.0
        assert result.status is ResonanceStatus.FAILED
        assert result.reason == "Resonance not achieved"
        assert result.attempts == 3
        assert result.resonance_strength == pytest.approx(expected_strength)
        assert controller.levels[0].vigilance == 0.5

    def test_adaptive_disabled(self):
        controller = single_level_controller(
            0.5, min_resonance_threshold=0.95, enable_adaptive_vigilance=False
        )
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])
        result = controller.process_pattern([1.0, 1.0, 1.0, 0.0])

        assert result.status is ResonanceStatus.FAILED
        assert result.attempts == 0

    def test_no_retry_without_learning(self):
        controller = single_level_controller(0.5, min_resonance_threshold=0.95)
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])
        result = controller.process_pattern([1.0, 1.0, 1.0, 0.0], learning_enabled=False)

        assert result.status is ResonanceStatus.FAILED
        assert result.attempts == 0
        assert controller.levels[0].get_statistics().total_processed == 2

    def test_frozen_retry_replays_first_assignment(self):
        controller = single_level_controller(0.9, min_activation_threshold=0.96)
        controller.process_pattern([1.0] * 19 + [0.0])
        result = controller.process_pattern([1.0] * 20)

        # Frozen prototypes: every relaxed attempt picks the same category and activation
        activation = 19.0 / 20.001
        validation = math.sqrt(19.0 / 20.0)
        assert result.status is ResonanceStatus.FAILED
        assert result.attempts == 3
        assert result.resonance_strength == pytest.approx((activation + validation) / 2)

        category = controller.levels[0].get_category(0)
        assert category.activation_count == 1 + 4
        assert category.total_activation == pytest.approx(1.0 + 4 * activation)

    def test_retry_succeeds_with_prototype_learning(self):
        controller = single_level_controller(0.5, learning_rate=0.5, min_resonance_threshold=0.95)
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])
        result = controller.process_pattern([1.0, 1.0, 1.0, 0.0])

        assert result.status is ResonanceStatus.SUCCESS
        assert result.attempts == 2
        assert result.resonance_strength >= 0.95
        np.testing.assert_allclose(controller.levels[0].get_category(0).prototype,
                                   [1.0, 1.0, 0.875, 0.0])

    def test_zero_attempts(self):
        controller = single_level_controller(
            0.5, min_resonance_threshold=0.95, max_adaptation_attempts=0
        )
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])
        result = controller.process_pattern([1.0, 1.0, 1.0, 0.0])

        assert result.status is ResonanceStatus.FAILED
        assert controller.levels[0].get_statistics().total_processed == 2

    def test_retry_vigilance_is_relaxed_per_attempt(self, monkeypatch):
        controller = single_level_controller(0.5, min_resonance_threshold=0.95)
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])
        level = controller.levels[0]
        seen = []
        original = level.process

        def spy(pattern, learning_enabled=True, vigilance=None):
            seen.append(vigilance)
            return original(pattern, learning_enabled, vigilance)

        monkeypatch.setattr(level, "process", spy)
        controller.process_pattern([1.0, 1.0, 1.0, 0.0])

        assert seen[0] is None
        assert seen[1:] == pytest.approx([0.45, 0.40, 0.35])

    def test_balance_biased_retry(self, monkeypatch):
        controller = single_level_controller(
            0.5, min_resonance_threshold=0.95, balance_biased_retry=True
        )
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])  # success: plasticity 0.49
        level = controller.levels[0]
        seen = []
        original = level.process

        def spy(pattern, learning_enabled=True, vigilance=None):
            seen.append(vigilance)
            return original(pattern, learning_enabled, vigilance)

        monkeypatch.setattr(level, "process", spy)
        controller.process_pattern([1.0, 1.0, 1.0, 0.0])

        assert seen[1] == pytest.approx(0.5 - 0.05 * 2 * 0.49)


# =============================================================================
# Tests: Invariants
# =============================================================================

class TestInvariants:
    """Properties that hold over arbitrary input streams."""

    def test_success_implies_thresholds(self, make_controller, rng):
        controller = make_controller()
        params = controller.parameters

        for _ in range(100):
            result = controller.process_pattern(rng.random(8))
            if result.success:
                n = len(controller.levels)
                assert result.resonance_strength >= params.min_resonance_threshold
                assert sum(result.activations) / n >= params.min_activation_threshold
                assert sum(result.validation_scores) / n >= params.min_validation_threshold

    def test_capacity_invariant(self, make_controller, rng):
        controller = make_controller(vigilances=(0.95, 0.95, 0.95), max_categories=[5, 7, 9])

        for _ in range(60):
            controller.process_pattern(rng.random(6))

        counts = [level.category_count for level in controller.levels]
        assert counts[0] <= 5 and counts[1] <= 7 and counts[2] <= 9

    def test_balance_bounds(self):
        controller = single_level_controller(
            0.5, min_resonance_threshold=0.95, enable_adaptive_vigilance=False
        )
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])
        for _ in range(60):
            controller.process_pattern([1.0, 1.0, 1.0, 0.0])

        balance = controller.get_balance()
        assert balance.stability == 0.1
        assert balance.plasticity == 0.9
        assert balance.is_plasticity_dominant
        assert balance.describe() == "plasticity-dominant"

        for _ in range(100):
            controller.process_pattern([1.0, 1.0, 0.0, 0.0])

        balance = controller.get_balance()
        assert balance.stability == 0.9
        assert balance.plasticity == 0.1
        assert balance.is_stability_dominant

    def test_determinism_without_learning(self, controller, input_pattern):
        controller.process_pattern(input_pattern)
        first = controller.process_pattern(input_pattern, learning_enabled=False)
        second = controller.process_pattern(input_pattern, learning_enabled=False)

        assert first.category_ids == second.category_ids
        assert first.activations == second.activations


# =============================================================================
# Tests: Metrics, Validation and Reset
# =============================================================================

class TestLifecycle:
    """Metrics snapshot, entry-point validation and reset."""

    def test_metrics_after_mixed_outcomes(self):
        controller = single_level_controller(
            0.5, min_resonance_threshold=0.95, enable_adaptive_vigilance=False
        )
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])   # success
        controller.process_pattern([1.0, 1.0, 1.0, 0.0])   # failure
        controller.process_pattern([1.0, 1.0, 0.0, 0.0])   # success

        metrics = controller.get_metrics()
        assert metrics.total_events == 3
        assert metrics.successful_events == 2
        assert metrics.success_rate == pytest.approx(2 / 3)
        assert metrics.stability == pytest.approx(0.51)
        assert metrics.plasticity == pytest.approx(0.49)
        assert metrics.last_resonance_strength == pytest.approx(1.0, abs=1e-3)
        assert metrics.to_dict()["total_events"] == 3

    @pytest.mark.parametrize("bad", [None, []])
    def test_invalid_input_raises(self, controller, bad):
        with pytest.raises(PatternError):
            controller.process_pattern(bad)

    def test_dimension_locked_by_first_input(self, controller, input_pattern):
        controller.process_pattern(input_pattern)

        with pytest.raises(PatternError):
            controller.process_pattern([0.5] * 6)
        assert controller.input_dim == 8

    def test_configured_dimension(self):
        config = HierarchyConfig.from_dict({
            'input_dim': 4,
            'levels': [{'kind': 'token'}],
        })
        controller = ResonanceController.from_config(config)

        with pytest.raises(PatternError):
            controller.process_pattern([0.5] * 8)
        assert controller.process_pattern([0.5] * 4).success

    def test_reset(self, controller, input_pattern):
        controller.process_pattern(input_pattern)
        controller.process_pattern(input_pattern)
        controller.reset()

        assert all(level.category_count == 0 for level in controller.levels)
        assert controller.get_metrics().total_events == 0
        assert controller.get_balance().stability == 0.5
        assert controller.active_resonance_count == 0
        assert controller.input_dim is None

        result = controller.process_pattern([0.5] * 6)
        assert result.resonance_id == 1
        assert result.category_ids == (0, 0, 0)

    def test_independent_controllers(self, make_controller, input_pattern):
        a = make_controller()
        b = make_controller()
        a.process_pattern(input_pattern)

        assert a.get_balance().stability == pytest.approx(0.51)
        assert b.get_balance().stability == 0.5
        assert b.get_metrics().total_events == 0

    def test_level_statistics(self, controller, input_pattern):
        controller.process_pattern(input_pattern)
        stats = controller.get_level_statistics()

        assert [s.level_index for s in stats] == [0, 1, 2]
        assert all(s.total_new_categories == 1 for s in stats)


# =============================================================================
# Tests: Pluggable Strategies
# =============================================================================

class TestStrategies:
    """Alternative transforms and consistency strategies plug into the controller."""

    def test_one_hot_transform(self, input_pattern):
        levels = [LevelStore(vigilance=0.8, max_categories=10, level_index=i) for i in range(2)]
        controller = ResonanceController(
            levels,
            transform=OneHotCategoryTransform(width=4),
            consistency=UniformConsistency(),
        )
        result = controller.process_pattern(input_pattern)

        assert result.success
        prototype = levels[1].get_category(0).prototype
        assert prototype.size == 12
        np.testing.assert_array_equal(prototype[-4:], [1.0, 0.0, 0.0, 0.0])

    def test_consistency_drives_adjustment(self, make_controller):
        controller = make_controller(vigilances=(0.5, 0.5))
        # Level 0 category 1 pairs with level 1 category 1: consistency 1
        controller.process_pattern([1.0, 0.0, 0.0, 0.0])
        result = controller.process_pattern([0.0, 0.0, 1.0, 0.0])

        assert result.category_ids == (1, 1)
        assert result.vigilance_adjustments == pytest.approx((-0.025, -0.025))
