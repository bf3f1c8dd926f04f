"""Cohort Markov simulation and incremental cost-effectiveness comparison.

The cohort is a probability vector over health states. Each cycle accrues
cost and QALYs from the distribution occupied at the start of the cycle and
then advances one step through the transition matrix ("end" accounting, no
half-cycle correction).
"""

import logging
import math
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))
from chronic_cea.states import HealthState, state_costs, state_utilities
from chronic_cea.transitions import TransitionMatrix

logger = logging.getLogger("chronic_cea")

MASS_TOLERANCE = 1e-9

DOMINANT = "dominant"
DOMINATED = "dominated"
TRADE_OFF = "cost-effective-trade-off"
COST_SAVING_TRADE_OFF = "cost-saving-trade-off"
EQUIVALENT = "equivalent"


class CycleResult:
    """Cohort distribution and accrued outcomes for one cycle."""

    def __init__(self, cycle: int, cohort: np.ndarray, cost: float, effect: float):
        cohort = np.array(cohort, dtype=float)
        cohort.setflags(write=False)
        self.cycle = cycle
        self.cohort = cohort
        self.cost = cost
        self.effect = effect

    def __repr__(self) -> str:
        return f"CycleResult(cycle={self.cycle}, cost={self.cost:.2f}, effect={self.effect:.4f})"


class ModelResult:
    """Per-strategy sequence of cycle results with per-person totals."""

    def __init__(self, strategy: str, states: Sequence[str], cycles: List[CycleResult],
                 final_cohort: np.ndarray, cohort_size: float = 1, discount_rate: float = 0.0):
        self.strategy = strategy
        self.states = list(states)
        self.cycles = cycles
        self.final_cohort = np.array(final_cohort, dtype=float)
        self.final_cohort.setflags(write=False)
        self.cohort_size = cohort_size
        self.discount_rate = discount_rate

    @property
    def n_cycles(self) -> int:
        return len(self.cycles)

    @property
    def total_cost(self) -> float:
        return float(sum(c.cost for c in self.cycles))

    @property
    def total_effect(self) -> float:
        return float(sum(c.effect for c in self.cycles))

    @property
    def cohort_cost(self) -> float:
        return self.total_cost * self.cohort_size

    @property
    def cohort_effect(self) -> float:
        return self.total_effect * self.cohort_size

    def trace(self) -> pd.DataFrame:
        """State occupancy and outcomes per cycle, including the final distribution.

        Row ``t`` holds the distribution at the start of cycle ``t + 1``; the
        last row is the distribution after the final transition and carries no
        cost or effect.
        """
        rows = []
        for c in self.cycles:
            row = {"cycle": c.cycle - 1}
            row.update(dict(zip(self.states, c.cohort)))
            row["cost"] = c.cost
            row["effect"] = c.effect
            rows.append(row)
        final = {"cycle": self.n_cycles}
        final.update(dict(zip(self.states, self.final_cohort)))
        final["cost"] = np.nan
        final["effect"] = np.nan
        rows.append(final)
        return pd.DataFrame(rows, columns=["cycle"] + self.states + ["cost", "effect"])

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "n_cycles": self.n_cycles,
            "discount_rate": self.discount_rate,
            "cohort_size": self.cohort_size,
            "cost_per_person": self.total_cost,
            "qalys_per_person": self.total_effect,
            "cohort_cost": self.cohort_cost,
            "cohort_qalys": self.cohort_effect,
        }


def start_distribution(states: Sequence[str], start_state: Optional[str] = None) -> np.ndarray:
    """Point-mass starting cohort in ``start_state`` (default: first state)."""
    states = list(states)
    start = np.zeros(len(states))
    start[states.index(start_state) if start_state is not None else 0] = 1.0
    return start


def run_cohort(
    matrix: TransitionMatrix,
    states: Sequence[HealthState],
    n_cycles: int,
    start: Optional[Sequence[float]] = None,
    discount_rate: float = 0.0,
    cohort_size: float = 1,
    strategy: Optional[str] = None,
) -> ModelResult:
    """Advance a cohort through ``matrix`` for ``n_cycles`` annual cycles.

    Args:
        matrix: Transition matrix for the strategy.
        states: Health states in matrix order, supplying cost and utility.
        n_cycles: Number of cycles; 0 gives zero totals.
        start: Starting distribution. Defaults to everyone in the first state.
        discount_rate: Annual rate applied as ``(1 + r) ** -(t - 1)`` to both
            cost and effect of cycle ``t``.
        cohort_size: Number of people the per-person totals are scaled by.
        strategy: Label stored on the result; defaults to the matrix name.

    Returns:
        ModelResult with one CycleResult per cycle.
    """
    if n_cycles < 0:
        raise ValueError(f"n_cycles must be non-negative, got {n_cycles}")
    if discount_rate < 0:
        raise ValueError(f"discount_rate must be non-negative, got {discount_rate}")
    names = [s.name for s in states]
    if names != matrix.states:
        raise ValueError(f"State order {names} does not match matrix states {matrix.states}")

    costs = state_costs(states)
    utilities = state_utilities(states)
    cohort = start_distribution(names) if start is None else np.array(start, dtype=float)
    if cohort.shape != (len(names),) or (cohort < 0).any() or abs(cohort.sum() - 1.0) > MASS_TOLERANCE:
        raise ValueError(f"Start distribution must be a probability vector over {len(names)} states")

    p = matrix.probabilities
    cycles = []
    for t in range(1, n_cycles + 1):
        discount = (1.0 + discount_rate) ** -(t - 1)
        cost = float(cohort @ costs) * discount
        effect = float(cohort @ utilities) * discount
        cycles.append(CycleResult(t, cohort, cost, effect))
        cohort = cohort @ p

    return ModelResult(strategy or matrix.name, names, cycles, cohort,
                       cohort_size=cohort_size, discount_rate=discount_rate)


class ICERResult:
    """Incremental comparison of a strategy against a comparator."""

    def __init__(self, strategy: str, comparator: str, incremental_cost: float,
                 incremental_effect: float, icer: float, category: str):
        self.strategy = strategy
        self.comparator = comparator
        self.incremental_cost = incremental_cost
        self.incremental_effect = incremental_effect
        self.icer = icer
        self.category = category

    @property
    def dominates(self) -> bool:
        return self.category == DOMINANT

    def describe(self) -> str:
        if self.category == DOMINANT:
            return f"{self.strategy} dominates {self.comparator} (less costly, more effective)"
        if self.category == DOMINATED:
            return f"{self.strategy} is dominated by {self.comparator} (more costly, less effective)"
        if self.category == EQUIVALENT:
            return f"{self.strategy} and {self.comparator} have equal cost and effect"
        return f"ICER of {self.strategy} vs {self.comparator}: ${self.icer:,.0f} per QALY"

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "comparator": self.comparator,
            "incremental_cost": self.incremental_cost,
            "incremental_effect": self.incremental_effect,
            "icer": self.icer,
            "category": self.category,
        }


def classify(incremental_cost: float, incremental_effect: float) -> str:
    """Cost-effectiveness plane quadrant of an incremental (cost, effect) pair."""
    if incremental_cost == 0 and incremental_effect == 0:
        return EQUIVALENT
    if incremental_cost <= 0 and incremental_effect >= 0:
        return DOMINANT
    if incremental_cost >= 0 and incremental_effect <= 0:
        return DOMINATED
    if incremental_effect > 0:
        return TRADE_OFF
    return COST_SAVING_TRADE_OFF


def compare_strategies(result: ModelResult, comparator: ModelResult) -> ICERResult:
    """ICER of ``result`` relative to ``comparator``.

    ``icer`` is the signed ratio of incremental cost to incremental effect;
    it is NaN when the effects are equal. The category distinguishes
    dominance from a trade-off with the same sign.
    """
    d_cost = result.total_cost - comparator.total_cost
    d_effect = result.total_effect - comparator.total_effect
    icer = d_cost / d_effect if d_effect != 0 else math.nan
    category = classify(d_cost, d_effect)
    return ICERResult(result.strategy, comparator.strategy, d_cost, d_effect, icer, category)
