"""Configuration, project logger, and output helpers shared by the model stages."""

import logging
import sys
from pathlib import Path
from typing import Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
import yaml

PROJECT_ROOT = Path(__file__).parent.parent


def load_config(config_path: Optional[str] = None) -> dict:
    """Read the YAML model configuration, ``config.yaml`` at the project root by default."""
    path = Path(config_path) if config_path is not None else PROJECT_ROOT / "config.yaml"
    with open(path, "r") as f:
        return yaml.safe_load(f)


def resolve_path(path) -> Path:
    """Anchor a relative output or data path at the project root."""
    path = Path(path)
    return path if path.is_absolute() else PROJECT_ROOT / path


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Return the ``chronic_cea`` logger, attaching a stdout handler on first use."""
    logger = logging.getLogger("chronic_cea")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def setup_plotting(config: Optional[dict] = None) -> None:
    """Apply the ``plotting`` section of the config to matplotlib and seaborn."""
    if config is None:
        config = load_config()
    plot_cfg = config.get("plotting", {})
    dpi = plot_cfg.get("dpi", 150)

    plt.style.use(plot_cfg.get("style", "seaborn-v0_8-whitegrid"))
    sns.set_context("paper", font_scale=plot_cfg.get("font_scale", 1.2))
    plt.rcParams.update({
        "figure.dpi": dpi,
        "savefig.dpi": dpi,
        "figure.figsize": plot_cfg.get("figsize_default", [10, 7]),
        "figure.constrained_layout.use": True,
    })


def save_figure(fig: plt.Figure, name: str, config: Optional[dict] = None) -> Path:
    """Write ``fig`` as ``<name>.png`` and ``<name>.pdf`` and return the PNG path."""
    if config is None:
        config = load_config()
    fig_dir = resolve_path(config["paths"]["figures_dir"])
    fig_dir.mkdir(parents=True, exist_ok=True)

    for ext in ("png", "pdf"):
        fig.savefig(fig_dir / f"{name}.{ext}", bbox_inches="tight")
    plt.close(fig)
    return fig_dir / f"{name}.png"


def save_table(df, name: str, config: Optional[dict] = None, index: bool = False) -> Path:
    """Write ``df`` to ``<tables_dir>/<name>.csv`` and return the path."""
    if config is None:
        config = load_config()
    table_dir = resolve_path(config["paths"]["tables_dir"])
    table_dir.mkdir(parents=True, exist_ok=True)
    path = table_dir / f"{name}.csv"
    df.to_csv(path, index=index)
    return path


def format_currency(value: float) -> str:
    """Abbreviate a dollar amount for report tables, e.g. ``$55.19M`` for a cohort total."""
    sign = "-" if value < 0 else ""
    value = abs(value)
    if value >= 1e6:
        return f"{sign}${value / 1e6:.2f}M"
    if value >= 1e3:
        return f"{sign}${value / 1e3:.1f}K"
    return f"{sign}${value:.2f}"


def format_qalys(value: float) -> str:
    return f"{value:,.3f}"
