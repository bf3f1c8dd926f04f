"""Probabilistic sensitivity analysis of state costs and utilities.

Each trial draws one log-normal cost and one normal utility per state,
reruns the cohort model for every strategy with the same transition
matrices, and records the resulting per-person (cost, effect) pair.

Methods:
    - Log-normal costs: meanlog = log(point estimate), fixed sdlog
    - Normal utilities: sd proportional to the point estimate, clamped to [0, 1]
    - Net monetary benefit and acceptability curve over willingness-to-pay
"""

import argparse
import logging
import numbers
import sys
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))
from chronic_cea.errors import InvalidDistributionParameterError, OutOfRangeSampleError
from chronic_cea.markov import DOMINANT, ModelResult, classify, run_cohort, start_distribution
from chronic_cea.states import HealthState
from chronic_cea.transitions import TransitionMatrix
from chronic_cea.utils import load_config, setup_logging

logger = logging.getLogger("chronic_cea")

OUT_OF_RANGE_POLICIES = ("clamp", "raise")


class PSAConfig:
    """Distribution settings for a PSA run."""

    def __init__(self, n_trials: int = 1000, cost_log_sd: float = 0.1,
                 utility_relative_sd: float = 0.10, out_of_range: str = "clamp",
                 seed: Optional[int] = 42):
        self.n_trials = n_trials
        self.cost_log_sd = cost_log_sd
        self.utility_relative_sd = utility_relative_sd
        self.out_of_range = out_of_range
        self.seed = seed
        self.validate()

    @classmethod
    def from_config(cls, config: dict) -> "PSAConfig":
        psa_cfg = config.get("psa", {})
        return cls(
            n_trials=psa_cfg.get("n_trials", 1000),
            cost_log_sd=psa_cfg.get("cost_log_sd", 0.1),
            utility_relative_sd=psa_cfg.get("utility_relative_sd", 0.10),
            out_of_range=psa_cfg.get("out_of_range", "clamp"),
            seed=psa_cfg.get("random_seed", 42),
        )

    def validate(self) -> None:
        if isinstance(self.n_trials, float) and self.n_trials.is_integer():
            self.n_trials = int(self.n_trials)
        if isinstance(self.n_trials, bool) or not isinstance(self.n_trials, numbers.Integral) \
                or self.n_trials < 1:
            raise InvalidDistributionParameterError("n_trials", self.n_trials, "must be a positive integer")
        self.n_trials = int(self.n_trials)
        if not self.cost_log_sd > 0:
            raise InvalidDistributionParameterError("cost_log_sd", self.cost_log_sd, "log-normal scale must be positive")
        if not self.utility_relative_sd >= 0:
            raise InvalidDistributionParameterError(
                "utility_relative_sd", self.utility_relative_sd, "standard deviation must be non-negative")
        if self.out_of_range not in OUT_OF_RANGE_POLICIES:
            raise InvalidDistributionParameterError(
                "out_of_range", self.out_of_range, f"must be one of {OUT_OF_RANGE_POLICIES}")

    def to_dict(self) -> dict:
        return {
            "n_trials": self.n_trials,
            "cost_log_sd": self.cost_log_sd,
            "utility_relative_sd": self.utility_relative_sd,
            "out_of_range": self.out_of_range,
            "seed": self.seed,
        }


class PSADraw:
    """One Monte-Carlo trial: resampled states and the model result per strategy."""

    def __init__(self, trial: int, states: List[HealthState], results: Dict[str, ModelResult]):
        self.trial = trial
        self.states = states
        self.results = results

    def to_rows(self) -> List[dict]:
        params = {}
        for s in self.states:
            params[f"cost_{s.name}"] = s.cost
            params[f"utility_{s.name}"] = s.utility
        rows = []
        for strategy, result in self.results.items():
            row = {"trial": self.trial, "strategy": strategy,
                   "cost": result.total_cost, "effect": result.total_effect}
            row.update(params)
            rows.append(row)
        return rows


def check_point_estimates(states: Sequence[HealthState]) -> None:
    """Reject point estimates the sampling distributions cannot be centred on."""
    for s in states:
        if s.cost < 0:
            raise InvalidDistributionParameterError(
                f"cost_{s.name}", s.cost, "log-normal mean cost must not be negative")
        if not 0.0 <= s.utility <= 1.0:
            raise InvalidDistributionParameterError(
                f"utility_{s.name}", s.utility, "utility point estimate must lie in [0, 1]")


def draw_parameters(
    states: Sequence[HealthState], psa_config: PSAConfig, rng: np.random.RandomState,
) -> List[HealthState]:
    """Draw one cost and one utility per state.

    States with a zero point cost or zero utility keep that value, which is
    how an absorbing state with no cost or QALYs stays fixed. Costs are drawn
    before utilities so a given seed always yields the same sequence.
    """
    costs = np.array([s.cost for s in states], dtype=float)
    utilities = np.array([s.utility for s in states], dtype=float)

    drawn_costs = costs.copy()
    cost_mask = costs > 0
    drawn_costs[cost_mask] = rng.lognormal(
        mean=np.log(costs[cost_mask]), sigma=psa_config.cost_log_sd)

    drawn_utils = utilities.copy()
    util_mask = utilities > 0
    drawn_utils[util_mask] = rng.normal(
        loc=utilities[util_mask], scale=psa_config.utility_relative_sd * utilities[util_mask])

    out_of_range = (drawn_utils < 0) | (drawn_utils > 1)
    if out_of_range.any():
        if psa_config.out_of_range == "raise":
            i = int(np.flatnonzero(out_of_range)[0])
            raise OutOfRangeSampleError(f"utility_{states[i].name}", float(drawn_utils[i]))
        drawn_utils = np.clip(drawn_utils, 0.0, 1.0)

    return [HealthState(s.name, float(c), float(u))
            for s, c, u in zip(states, drawn_costs, drawn_utils)]


def iter_psa_draws(
    matrices: Dict[str, TransitionMatrix],
    states: Sequence[HealthState],
    psa_config: PSAConfig,
    n_cycles: int,
    rng: np.random.RandomState,
    start: Optional[Sequence[float]] = None,
    discount_rate: float = 0.0,
) -> Iterator[PSADraw]:
    """Yield one PSADraw per trial. Trials share nothing but the generator."""
    check_point_estimates(states)
    for trial in range(1, psa_config.n_trials + 1):
        drawn = draw_parameters(states, psa_config, rng)
        results = {
            strategy: run_cohort(matrix, drawn, n_cycles, start=start,
                                 discount_rate=discount_rate, strategy=strategy)
            for strategy, matrix in matrices.items()
        }
        yield PSADraw(trial, drawn, results)


def run_psa(
    matrices: Dict[str, TransitionMatrix],
    states: Sequence[HealthState],
    psa_config: Optional[PSAConfig] = None,
    config: Optional[dict] = None,
    rng: Optional[np.random.RandomState] = None,
) -> pd.DataFrame:
    """Run the PSA and return the raw per-trial, per-strategy outcomes.

    Args:
        matrices: Transition matrix per strategy; reused unchanged every trial.
        states: Point-estimate health states.
        psa_config: Distribution settings. If None, read from config.
        config: Configuration dictionary (model horizon, discounting, start state).
        rng: Random generator. If None, one is seeded from ``psa_config.seed``.

    Returns:
        DataFrame with columns ``trial, strategy, cost, effect`` followed by
        the drawn ``cost_<state>`` and ``utility_<state>`` of that trial.
    """
    if config is None:
        config = load_config()
    if psa_config is None:
        psa_config = PSAConfig.from_config(config)
    if rng is None:
        rng = np.random.RandomState(psa_config.seed)

    model_cfg = config.get("model", {})
    n_cycles = model_cfg.get("n_cycles", 10)
    discount_rate = model_cfg.get("discount_rate", 0.0)
    start = start_distribution([s.name for s in states], model_cfg.get("start_state"))

    logger.info(f"Running PSA: {psa_config.n_trials} trials x {len(matrices)} strategies, "
                f"{n_cycles} cycles")
    rows = []
    for draw in iter_psa_draws(matrices, states, psa_config, n_cycles, rng,
                               start=start, discount_rate=discount_rate):
        rows.extend(draw.to_rows())
    trials = pd.DataFrame(rows)
    logger.info("PSA complete")
    return trials


# ── Downstream summaries ─────────────────────────────────────────────


def summarize_psa(trials: pd.DataFrame) -> pd.DataFrame:
    """Mean, standard deviation and 95% interval of cost and effect per strategy."""
    grouped = trials.groupby("strategy")
    summary = pd.DataFrame({
        "n_trials": grouped["trial"].nunique(),
        "mean_cost": grouped["cost"].mean(),
        "sd_cost": grouped["cost"].std(),
        "cost_2.5%": grouped["cost"].quantile(0.025),
        "cost_97.5%": grouped["cost"].quantile(0.975),
        "mean_effect": grouped["effect"].mean(),
        "sd_effect": grouped["effect"].std(),
        "effect_2.5%": grouped["effect"].quantile(0.025),
        "effect_97.5%": grouped["effect"].quantile(0.975),
    })
    return summary.reset_index()


def incremental_outcomes(trials: pd.DataFrame, strategy: str = "intervention",
                         comparator: str = "standard") -> pd.DataFrame:
    """Per-trial incremental cost and effect of ``strategy`` over ``comparator``."""
    wide = trials.pivot(index="trial", columns="strategy", values=["cost", "effect"])
    inc = pd.DataFrame({
        "incremental_cost": wide[("cost", strategy)] - wide[("cost", comparator)],
        "incremental_effect": wide[("effect", strategy)] - wide[("effect", comparator)],
    })
    inc["category"] = [classify(c, e) for c, e in
                       zip(inc["incremental_cost"], inc["incremental_effect"])]
    return inc.reset_index()


def probability_cost_effective(trials: pd.DataFrame, wtp: float,
                               strategy: str = "intervention",
                               comparator: str = "standard") -> float:
    """Fraction of trials with positive incremental net monetary benefit at ``wtp``.

    At a willingness-to-pay of zero this is the fraction of trials in which
    ``strategy`` is cheaper.
    """
    inc = incremental_outcomes(trials, strategy, comparator)
    nmb = wtp * inc["incremental_effect"] - inc["incremental_cost"]
    return float((nmb > 0).mean())


def dominance_fraction(trials: pd.DataFrame, strategy: str = "intervention",
                       comparator: str = "standard") -> float:
    """Fraction of trials in which ``strategy`` dominates ``comparator``."""
    inc = incremental_outcomes(trials, strategy, comparator)
    return float((inc["category"] == DOMINANT).mean())


def acceptability_curve(trials: pd.DataFrame, thresholds: Sequence[float],
                        strategy: str = "intervention",
                        comparator: str = "standard") -> pd.DataFrame:
    """Cost-effectiveness acceptability curve over willingness-to-pay thresholds."""
    inc = incremental_outcomes(trials, strategy, comparator)
    rows = []
    for wtp in thresholds:
        nmb = wtp * inc["incremental_effect"] - inc["incremental_cost"]
        rows.append({"wtp": float(wtp), "probability_cost_effective": float((nmb > 0).mean())})
    return pd.DataFrame(rows)


if __name__ == "__main__":
    from chronic_cea.cost_aggregation import aggregate_state_costs
    from chronic_cea.data_loader import load_records
    from chronic_cea.states import build_health_states
    from chronic_cea.transitions import load_transition_matrices
    from chronic_cea.utils import save_table

    parser = argparse.ArgumentParser(description="Run the probabilistic sensitivity analysis")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--n-trials", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    setup_logging()
    config = load_config(args.config)
    if args.n_trials is not None:
        config["psa"]["n_trials"] = args.n_trials
    if args.seed is not None:
        config["psa"]["random_seed"] = args.seed

    costs = aggregate_state_costs(load_records(config=config), config)
    states = build_health_states(costs.values, config["model"]["utilities"])
    trials = run_psa(load_transition_matrices(config), states, config=config)
    save_table(trials, "psa_trials", config)
    save_table(summarize_psa(trials), "psa_summary", config)
