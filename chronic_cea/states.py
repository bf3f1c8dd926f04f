"""Health states of the chronic-condition cohort model."""

from typing import Dict, List, NamedTuple, Optional, Sequence

import numpy as np

from chronic_cea.errors import InvalidDistributionParameterError

STATE_NAMES = ["totchr_0", "totchr_1", "totchr_2", "totchr_3", "totchr_geq4", "dead"]

STATE_LABELS = {
    "totchr_0": "0 chronic conditions",
    "totchr_1": "1 chronic condition",
    "totchr_2": "2 chronic conditions",
    "totchr_3": "3 chronic conditions",
    "totchr_geq4": "4+ chronic conditions",
    "dead": "Dead",
}

DEFAULT_UTILITIES = {
    "totchr_0": 0.90,
    "totchr_1": 0.80,
    "totchr_2": 0.70,
    "totchr_3": 0.60,
    "totchr_geq4": 0.45,
    "dead": 0.0,
}


class HealthState(NamedTuple):
    """A model state with its annual cost and QALY weight."""

    name: str
    cost: float
    utility: float


def build_health_states(
    costs: Sequence[float],
    utilities: Optional[Dict[str, float]] = None,
    names: Sequence[str] = STATE_NAMES,
) -> List[HealthState]:
    """Pair bucket costs with utility weights in state order.

    ``costs`` holds one value per living state (buckets 0..4). The last name
    in ``names`` is the absorbing state and always gets cost 0 and utility 0.

    Raises:
        ValueError: If the number of costs does not match the living states.
        InvalidDistributionParameterError: If a cost is negative or a utility
            falls outside [0, 1].
    """
    if utilities is None:
        utilities = DEFAULT_UTILITIES
    costs = [float(c) for c in costs]
    living = list(names[:-1])
    if len(costs) != len(living):
        raise ValueError(f"Expected {len(living)} state costs, got {len(costs)}")

    states = []
    for name, cost in zip(living, costs):
        utility = float(utilities[name])
        if cost < 0:
            raise InvalidDistributionParameterError(f"cost_{name}", cost, "must be non-negative")
        if not 0.0 <= utility <= 1.0:
            raise InvalidDistributionParameterError(f"utility_{name}", utility, "must lie in [0, 1]")
        states.append(HealthState(name, cost, utility))
    states.append(HealthState(names[-1], 0.0, 0.0))
    return states


def state_costs(states: Sequence[HealthState]) -> np.ndarray:
    return np.array([s.cost for s in states], dtype=float)


def state_utilities(states: Sequence[HealthState]) -> np.ndarray:
    return np.array([s.utility for s in states], dtype=float)
