"""Figures for the cost-effectiveness report."""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import matplotlib.ticker as mticker
import pandas as pd
import seaborn as sns

sys.path.insert(0, str(Path(__file__).parent.parent))
from chronic_cea.markov import ModelResult
from chronic_cea.states import STATE_LABELS
from chronic_cea.utils import load_config, save_figure, setup_plotting

logger = logging.getLogger("chronic_cea")

DEFAULT_PALETTE = {"standard": "#2196F3", "intervention": "#F44336"}


def _palette(config: dict) -> dict:
    return config.get("plotting", {}).get("palette", DEFAULT_PALETTE)


def _dollar_axis(axis) -> None:
    axis.set_major_formatter(mticker.FuncFormatter(lambda v, _: f"${v:,.0f}"))


def plot_ce_plane(results: Dict[str, ModelResult], config: Optional[dict] = None) -> Path:
    """Deterministic cost-effectiveness plane: one point per strategy (cohort totals)."""
    if config is None:
        config = load_config()
    setup_plotting(config)
    palette = _palette(config)

    fig, ax = plt.subplots(figsize=(9, 7))
    for strategy, result in results.items():
        ax.scatter(result.cohort_effect, result.cohort_cost, s=140,
                   color=palette.get(strategy), label=strategy.title(), zorder=3)
        ax.annotate(strategy.title(), (result.cohort_effect, result.cohort_cost),
                    textcoords="offset points", xytext=(8, 8), fontsize=10)
    ax.set_xlabel("Total QALYs (cohort)")
    ax.set_ylabel("Total cost (cohort)")
    ax.set_title("Cost-Effectiveness Plane")
    _dollar_axis(ax.yaxis)
    ax.legend(loc="best")

    path = save_figure(fig, "ce_plane", config)
    logger.info("Cost-effectiveness plane saved")
    return path


def plot_psa_cloud(trials: pd.DataFrame, config: Optional[dict] = None) -> Path:
    """Per-trial (effect, cost) scatter coloured by strategy."""
    if config is None:
        config = load_config()
    setup_plotting(config)

    fig, ax = plt.subplots(figsize=(10, 7))
    sns.scatterplot(data=trials, x="effect", y="cost", hue="strategy",
                    palette=_palette(config), alpha=0.35, s=14, edgecolor=None, ax=ax)
    means = trials.groupby("strategy")[["effect", "cost"]].mean()
    ax.scatter(means["effect"], means["cost"], marker="X", s=160, color="black",
               label="Strategy mean", zorder=4)
    ax.set_xlabel("QALYs per person")
    ax.set_ylabel("Cost per person")
    ax.set_title(f"Probabilistic Sensitivity Analysis ({trials['trial'].nunique():,} trials)")
    _dollar_axis(ax.yaxis)
    ax.legend(loc="best")

    path = save_figure(fig, "psa_cloud", config)
    logger.info("PSA scatter saved")
    return path


def plot_markov_trace(results: Dict[str, ModelResult], config: Optional[dict] = None) -> Path:
    """State occupancy over cycles, one panel per strategy."""
    if config is None:
        config = load_config()
    setup_plotting(config)

    fig, axes = plt.subplots(1, len(results), figsize=(7 * len(results), 6), sharey=True, squeeze=False)
    for ax, (strategy, result) in zip(axes[0], results.items()):
        trace = result.trace()
        for state in result.states:
            ax.plot(trace["cycle"], trace[state], marker="o", markersize=3,
                    linewidth=1.8, label=STATE_LABELS.get(state, state))
        ax.set_title(strategy.title())
        ax.set_xlabel("Cycle (years)")
        ax.set_ylim(0, 1)
    axes[0][0].set_ylabel("Proportion of cohort")
    axes[0][-1].legend(loc="upper right", fontsize=9)
    fig.suptitle("Markov Trace by Strategy")

    path = save_figure(fig, "markov_trace", config)
    logger.info("Markov trace saved")
    return path


def plot_acceptability_curve(ceac: pd.DataFrame, config: Optional[dict] = None) -> Path:
    """Probability the intervention is cost-effective against willingness-to-pay."""
    if config is None:
        config = load_config()
    setup_plotting(config)

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(ceac["wtp"], ceac["probability_cost_effective"], color=_palette(config).get("intervention"),
            linewidth=2.5)
    ax.set_xlabel("Willingness to pay per QALY")
    ax.set_ylabel("Probability intervention is cost-effective")
    ax.set_ylim(-0.02, 1.02)
    ax.set_title("Cost-Effectiveness Acceptability Curve")
    _dollar_axis(ax.xaxis)

    path = save_figure(fig, "ceac", config)
    logger.info("Acceptability curve saved")
    return path
