"""Auto-generate COST_EFFECTIVENESS_REPORT.md from the saved analysis tables."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))
from chronic_cea.utils import format_currency, format_qalys, load_config, resolve_path

logger = logging.getLogger("chronic_cea")


def generate_report(config: Optional[dict] = None, figures: Sequence[Path] = ()) -> str:
    """Generate the complete markdown report from analysis outputs.

    Args:
        config: Configuration dictionary.
        figures: PNG paths rendered by the current run. The Figures section
            is omitted when empty.

    Returns:
        Markdown string of the complete report.
    """
    if config is None:
        config = load_config()

    tables_dir = resolve_path(config["paths"]["tables_dir"])

    sections = []
    sections.append(_header(config))
    sections.append(_bucket_costs(tables_dir))
    sections.append(_deterministic_results(tables_dir))
    sections.append(_psa_results(tables_dir, config))
    sections.append(_figures(config, figures))
    sections.append(_methodology(config))

    report = "\n\n".join(s for s in sections if s)

    report_path = resolve_path(config["paths"]["report"])
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with open(report_path, "w") as f:
        f.write(report + "\n")

    logger.info(f"Report written to {report_path}")
    return report


def _header(config: dict) -> str:
    model_cfg = config["model"]
    return f"""# Chronic Disease Management: Cost-Effectiveness Report

**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}
**Strategies:** Standard Care vs Intervention
**Horizon:** {model_cfg['n_cycles']} annual cycles, cohort of {model_cfg['cohort_size']:,}
**Discount rate:** {model_cfg.get('discount_rate', 0.0):.1%}"""


def _bucket_costs(tables_dir: Path) -> str:
    path = tables_dir / "bucket_costs.csv"
    if not path.exists():
        return ""
    df = pd.read_csv(path, dtype={"bucket": str})

    lines = ["""---

## State Costs

Mean annual expenditure per person by number of chronic conditions.

| Chronic conditions | N | Missing | Mean cost | SE | Median |
|--------------------|---|---------|-----------|----|--------|"""]
    for _, r in df.iterrows():
        lines.append(
            f"| {r['bucket']} | {int(r['n']):,} | {int(r['n_missing'])} | "
            f"${r['mean_cost']:,.0f} | ${r['se_mean']:,.0f} | ${r['median_cost']:,.0f} |"
        )
    return "\n".join(lines)


def _deterministic_results(tables_dir: Path) -> str:
    path = tables_dir / "deterministic_results.csv"
    if not path.exists():
        return ""
    df = pd.read_csv(path)

    lines = ["""---

## Deterministic Results

| Strategy | Cost / person | QALYs / person | Cohort cost | Cohort QALYs |
|----------|---------------|----------------|-------------|--------------|"""]
    for _, r in df.iterrows():
        lines.append(
            f"| {r['strategy'].title()} | ${r['cost_per_person']:,.2f} | {r['qalys_per_person']:.4f} | "
            f"{format_currency(r['cohort_cost'])} | {format_qalys(r['cohort_qalys'])} |"
        )

    icer_path = tables_dir / "icer.json"
    if icer_path.exists():
        with open(icer_path) as f:
            icer = json.load(f)
        lines.append("")
        lines.append(f"- **Incremental cost / person**: ${icer['incremental_cost']:,.2f}")
        lines.append(f"- **Incremental QALYs / person**: {icer['incremental_effect']:.4f}")
        lines.append(f"- **Classification**: {icer['category']}")
        lines.append(f"- **Conclusion**: {icer['description']}")
    return "\n".join(lines)


def _psa_results(tables_dir: Path, config: dict) -> str:
    path = tables_dir / "psa_summary.csv"
    if not path.exists():
        return ""
    df = pd.read_csv(path)
    psa_cfg = config.get("psa", {})

    lines = [f"""---

## Probabilistic Sensitivity Analysis

{int(df['n_trials'].max()):,} trials; costs log-normal (sdlog = {psa_cfg.get('cost_log_sd', 0.1)}),
utilities normal (sd = {psa_cfg.get('utility_relative_sd', 0.1):.0%} of the point estimate,
clamped to [0, 1]).

| Strategy | Mean cost | 95% interval | Mean QALYs | 95% interval |
|----------|-----------|--------------|------------|--------------|"""]
    for _, r in df.iterrows():
        lines.append(
            f"| {r['strategy'].title()} | ${r['mean_cost']:,.0f} | "
            f"${r['cost_2.5%']:,.0f} to ${r['cost_97.5%']:,.0f} | {r['mean_effect']:.3f} | "
            f"{r['effect_2.5%']:.3f} to {r['effect_97.5%']:.3f} |"
        )

    thresholds_path = tables_dir / "psa_thresholds.csv"
    if thresholds_path.exists():
        thr = pd.read_csv(thresholds_path)
        lines.append("")
        for _, r in thr.iterrows():
            lines.append(
                f"- Probability intervention is cost-effective at ${r['wtp']:,.0f}/QALY: "
                f"**{r['probability_cost_effective']:.1%}**"
            )
        if "dominance_fraction" in thr.columns:
            lines.append(f"- Trials in which the intervention dominates: "
                         f"**{thr['dominance_fraction'].iloc[0]:.1%}**")
    return "\n".join(lines)


FIGURE_TITLES = {
    "ce_plane": "Cost-effectiveness plane",
    "markov_trace": "Markov trace",
    "psa_cloud": "PSA scatter",
    "ceac": "Acceptability curve",
}


def _figures(config: dict, figures: Sequence[Path]) -> str:
    """Embed the figures rendered by this run; stale files on disk are ignored."""
    lines = []
    for path in figures:
        path = Path(path)
        title = FIGURE_TITLES.get(path.stem, path.stem)
        lines.append(f"![{title}]({config['paths']['figures_dir']}/{path.name})")
    if not lines:
        return ""
    return "---\n\n## Figures\n\n" + "\n\n".join(lines)


def _methodology(config: dict) -> str:
    return f"""---

## Methodology

- Individuals grouped by chronic-condition count, capped at {config['data'].get('condition_cap', 4)}
  (4 or more conditions share one state); state cost is the bucket mean, missing
  expenditures excluded.
- Six-state cohort Markov model with an absorbing Dead state; yearly cycles.
- Outcomes accrue from the distribution at the start of each cycle before the
  transition is applied; no half-cycle correction.
- The intervention halves every transition to a worse chronic-condition state,
  returning the removed probability to remaining in the current state.
- PSA resamples costs and utilities only; transition probabilities are fixed."""


if __name__ == "__main__":
    generate_report()
