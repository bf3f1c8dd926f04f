"""End-to-end cost-effectiveness analysis: data, deterministic model, PSA, report."""

import argparse
import copy
import json
import sys
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))
from chronic_cea.cost_aggregation import aggregate_state_costs, summarize_buckets
from chronic_cea.data_loader import load_records
from chronic_cea.errors import CEAError
from chronic_cea.markov import compare_strategies, run_cohort, start_distribution
from chronic_cea.plots import plot_acceptability_curve, plot_ce_plane, plot_markov_trace, plot_psa_cloud
from chronic_cea.psa import (
    PSAConfig, acceptability_curve, dominance_fraction, probability_cost_effective,
    run_psa, summarize_psa,
)
from chronic_cea.reporting import generate_report
from chronic_cea.states import build_health_states
from chronic_cea.transitions import load_transition_matrices
from chronic_cea.utils import load_config, resolve_path, save_table, setup_logging

logger = setup_logging()


def run_deterministic(matrices: dict, states: list, config: dict) -> dict:
    """Run the cohort model once per strategy with point-estimate parameters."""
    model_cfg = config["model"]
    start = start_distribution([s.name for s in states], model_cfg.get("start_state"))
    results = {}
    for strategy, matrix in matrices.items():
        results[strategy] = run_cohort(
            matrix, states, model_cfg["n_cycles"], start=start,
            discount_rate=model_cfg.get("discount_rate", 0.0),
            cohort_size=model_cfg.get("cohort_size", 1),
            strategy=strategy,
        )
        logger.info(f"{strategy}: cost/person = ${results[strategy].total_cost:,.2f}, "
                    f"QALYs/person = {results[strategy].total_effect:.4f}")
    return results


def run_analysis(config: Optional[dict] = None, n_trials: Optional[int] = None,
                 seed: Optional[int] = None, make_figures: bool = True) -> dict:
    """Run every stage of the analysis and write tables, figures and the report.

    Args:
        config: Configuration dictionary. Left unmodified; overrides apply
            to a copy.
        n_trials: Override for the number of PSA trials.
        seed: Override for the PSA random seed.
        make_figures: Skip figure rendering when False.

    Returns:
        Dictionary with the deterministic results, ICER and PSA trials.
    """
    config = copy.deepcopy(config) if config is not None else load_config()
    if n_trials is not None:
        config["psa"]["n_trials"] = n_trials
    if seed is not None:
        config["psa"]["random_seed"] = seed

    # Model construction: any failure here aborts before outputs are written
    records = load_records(config=config)
    costs = aggregate_state_costs(records, config)
    states = build_health_states(costs.values, config["model"]["utilities"],
                                 config["transitions"]["states"])
    matrices = load_transition_matrices(config)
    psa_config = PSAConfig.from_config(config)

    # Deterministic analysis
    results = run_deterministic(matrices, states, config)
    reference = config["model"].get("reference_strategy", "standard")
    others = [s for s in results if s != reference]
    icer = compare_strategies(results[others[0]], results[reference])
    logger.info(icer.describe())

    # Probabilistic sensitivity analysis
    rng = np.random.RandomState(psa_config.seed)
    trials = run_psa(matrices, states, psa_config, config, rng=rng)
    summary = summarize_psa(trials)
    thresholds = config["psa"].get("wtp_thresholds", [0, 50000])
    threshold_table = pd.DataFrame({
        "wtp": thresholds,
        "probability_cost_effective": [
            probability_cost_effective(trials, wtp, others[0], reference) for wtp in thresholds],
    })
    threshold_table["dominance_fraction"] = dominance_fraction(trials, others[0], reference)
    ceac = acceptability_curve(
        trials,
        np.arange(0, config["psa"].get("ceac_max_wtp", 100000) + 1, config["psa"].get("ceac_step", 2500)),
        others[0], reference,
    )

    # Outputs
    save_table(summarize_buckets(records, config["data"].get("condition_cap", 4)), "bucket_costs", config)
    for strategy, matrix in matrices.items():
        save_table(matrix.to_frame(), f"transition_matrix_{strategy}", config, index=True)
    save_table(pd.DataFrame([r.to_dict() for r in results.values()]), "deterministic_results", config)
    for strategy, result in results.items():
        save_table(result.trace(), f"markov_trace_{strategy}", config)
    save_table(trials, "psa_trials", config)
    save_table(summary, "psa_summary", config)
    save_table(threshold_table, "psa_thresholds", config)
    save_table(ceac, "ceac", config)

    icer_record = icer.to_dict()
    icer_record["description"] = icer.describe()
    tables_dir = resolve_path(config["paths"]["tables_dir"])
    with open(tables_dir / "icer.json", "w") as f:
        json.dump(icer_record, f, indent=2, default=str)

    figures = []
    if make_figures:
        figures = [
            plot_ce_plane(results, config),
            plot_markov_trace(results, config),
            plot_psa_cloud(trials, config),
            plot_acceptability_curve(ceac, config),
        ]

    generate_report(config, figures)
    logger.info("Analysis complete.")
    return {"results": results, "icer": icer, "trials": trials, "psa_summary": summary}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the chronic disease cost-effectiveness analysis")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--n-trials", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--no-figures", action="store_true")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        run_analysis(config, n_trials=args.n_trials, seed=args.seed,
                     make_figures=not args.no_figures)
    except (CEAError, ValueError, OSError) as e:
        logger.error(f"Report build failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
