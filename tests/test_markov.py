"""Tests for the cohort simulation and strategy comparison."""

import math

import numpy as np
import pytest

from chronic_cea.markov import (
    COST_SAVING_TRADE_OFF, DOMINANT, DOMINATED, EQUIVALENT, TRADE_OFF,
    CycleResult, ModelResult, classify, compare_strategies, run_cohort, start_distribution,
)
from chronic_cea.states import STATE_NAMES, HealthState
from chronic_cea.transitions import TransitionMatrix

# Per-person totals for the 5000/8000/12000/18000/25000 scenario, 10 cycles
STANDARD_COST = 66045.2788517596
STANDARD_QALYS = 7.5034767310
INTERVENTION_COST = 55188.7185357152
INTERVENTION_QALYS = 7.8726469912


class TestCohortSimulation:
    """Cycle-level behaviour of run_cohort."""

    def test_mass_conserved_every_cycle(self, matrices, scenario_states):
        for matrix in matrices.values():
            result = run_cohort(matrix, scenario_states, 10)
            for cycle in result.cycles:
                assert cycle.cohort.sum() == pytest.approx(1.0, abs=1e-9)
            assert result.final_cohort.sum() == pytest.approx(1.0, abs=1e-9)

    def test_dead_occupancy_non_decreasing(self, matrices, scenario_states):
        for matrix in matrices.values():
            trace = run_cohort(matrix, scenario_states, 25).trace()
            assert trace["dead"].is_monotonic_increasing

    def test_first_cycle_uses_start_distribution(self, matrices, scenario_states):
        result = run_cohort(matrices["standard"], scenario_states, 3)
        first = result.cycles[0]
        np.testing.assert_array_equal(first.cohort, [1, 0, 0, 0, 0, 0])
        assert first.cost == 5000
        assert first.effect == pytest.approx(0.9)

    def test_second_cycle_is_one_step_ahead(self, matrices, scenario_states):
        matrix = matrices["standard"]
        result = run_cohort(matrix, scenario_states, 2)
        np.testing.assert_allclose(result.cycles[1].cohort, matrix[0])

    def test_identity_matrix_keeps_start_state(self, scenario_states):
        result = run_cohort(TransitionMatrix(np.eye(6), STATE_NAMES), scenario_states, 10)
        assert result.total_effect == pytest.approx(10 * 0.9)
        assert result.total_cost == pytest.approx(10 * 5000)

    def test_zero_cycles(self, matrices, scenario_states):
        result = run_cohort(matrices["standard"], scenario_states, 0)
        assert result.total_cost == 0
        assert result.total_effect == 0
        assert result.cycles == []

    def test_cohort_vectors_read_only(self, matrices, scenario_states):
        result = run_cohort(matrices["standard"], scenario_states, 2)
        with pytest.raises(ValueError):
            result.cycles[0].cohort[0] = 0.5

    def test_state_order_must_match(self, matrices, scenario_states):
        with pytest.raises(ValueError, match="does not match"):
            run_cohort(matrices["standard"], list(reversed(scenario_states)), 5)

    def test_start_must_be_distribution(self, matrices, scenario_states):
        with pytest.raises(ValueError, match="probability vector"):
            run_cohort(matrices["standard"], scenario_states, 5, start=[0.5, 0, 0, 0, 0, 0])

    def test_absorbing_state_not_special_cased_by_name(self):
        names = ["well", "sick", "gone"]
        states = [HealthState("well", 100.0, 1.0), HealthState("sick", 500.0, 0.5),
                  HealthState("gone", 50.0, 0.0)]
        matrix = TransitionMatrix([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]], names)
        result = run_cohort(matrix, states, 3)
        # cycle 1 in "well", cycles 2-3 in the absorbing state, which still costs 50
        assert result.total_cost == pytest.approx(100 + 50 + 50)
        assert result.total_effect == pytest.approx(1.0)


class TestScenario:
    """Reference totals for the fixed-cost scenario."""

    def test_standard_totals(self, matrices, scenario_states):
        result = run_cohort(matrices["standard"], scenario_states, 10)
        assert result.total_cost == pytest.approx(STANDARD_COST, rel=1e-9)
        assert result.total_effect == pytest.approx(STANDARD_QALYS, rel=1e-9)

    def test_intervention_totals(self, matrices, scenario_states):
        result = run_cohort(matrices["intervention"], scenario_states, 10)
        assert result.total_cost == pytest.approx(INTERVENTION_COST, rel=1e-9)
        assert result.total_effect == pytest.approx(INTERVENTION_QALYS, rel=1e-9)

    def test_cohort_scaling(self, matrices, scenario_states):
        result = run_cohort(matrices["standard"], scenario_states, 10, cohort_size=1000)
        assert result.cohort_cost == pytest.approx(STANDARD_COST * 1000, rel=1e-9)
        assert result.cohort_effect == pytest.approx(STANDARD_QALYS * 1000, rel=1e-9)

    def test_discounting_opt_in(self, matrices, scenario_states):
        result = run_cohort(matrices["standard"], scenario_states, 10, discount_rate=0.03)
        assert result.total_cost == pytest.approx(57339.1022226937, rel=1e-9)
        assert result.total_effect == pytest.approx(6.6627431554, rel=1e-9)
        # first cycle is undiscounted
        assert result.cycles[0].cost == 5000

    def test_intervention_dominates(self, matrices, scenario_states):
        std = run_cohort(matrices["standard"], scenario_states, 10, strategy="standard")
        itv = run_cohort(matrices["intervention"], scenario_states, 10, strategy="intervention")
        assert itv.total_cost < std.total_cost
        assert itv.total_effect > std.total_effect
        icer = compare_strategies(itv, std)
        assert icer.category == DOMINANT
        assert icer.dominates
        assert "dominates" in icer.describe()
        assert icer.icer < 0

    def test_trace_layout(self, matrices, scenario_states):
        trace = run_cohort(matrices["standard"], scenario_states, 10).trace()
        assert len(trace) == 11
        assert list(trace.columns) == ["cycle"] + STATE_NAMES + ["cost", "effect"]
        assert trace["cost"].iloc[:10].sum() == pytest.approx(STANDARD_COST)


class TestICER:
    """Quadrant classification."""

    @pytest.mark.parametrize("d_cost, d_effect, expected", [
        (-100.0, 0.5, DOMINANT),
        (100.0, -0.5, DOMINATED),
        (100.0, 0.5, TRADE_OFF),
        (-100.0, -0.5, COST_SAVING_TRADE_OFF),
        (0.0, 0.0, EQUIVALENT),
    ])
    def test_classify(self, d_cost, d_effect, expected):
        assert classify(d_cost, d_effect) == expected

    def test_positive_icer_value(self):
        a = ModelResult("a", ["x"], [_cycle(3000.0, 1.5)], np.array([1.0]))
        b = ModelResult("b", ["x"], [_cycle(1000.0, 1.0)], np.array([1.0]))
        icer = compare_strategies(a, b)
        assert icer.icer == pytest.approx(4000.0)
        assert icer.category == TRADE_OFF
        assert "$4,000 per QALY" in icer.describe()

    def test_equal_effects_give_nan_ratio(self):
        a = ModelResult("a", ["x"], [_cycle(10.0, 1.0)], np.array([1.0]))
        b = ModelResult("b", ["x"], [_cycle(20.0, 1.0)], np.array([1.0]))
        icer = compare_strategies(a, b)
        assert math.isnan(icer.icer)
        assert icer.category == DOMINANT


def _cycle(cost, effect):
    return CycleResult(1, np.array([1.0]), cost, effect)


def test_start_distribution_named_state():
    start = start_distribution(STATE_NAMES, "totchr_2")
    np.testing.assert_array_equal(start, [0, 0, 1, 0, 0, 0])
