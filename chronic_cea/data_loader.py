"""Individual-level expenditure loading and schema validation."""

import logging
import sys
from pathlib import Path
from typing import Optional

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))
from chronic_cea.utils import load_config, resolve_path

logger = logging.getLogger("chronic_cea")

COUNT_COLUMN = "chronic_condition_count"
EXPENDITURE_COLUMN = "annual_expenditure"

SCHEMA = {
    COUNT_COLUMN: "Int64",
    EXPENDITURE_COLUMN: "float64",
}


def load_records(
    filepath: Optional[str] = None,
    config: Optional[dict] = None,
) -> pd.DataFrame:
    """Read the individual records CSV with proper dtypes.

    The configured source columns (``totchr``/``totexp`` in MEPS extracts) are
    renamed to ``chronic_condition_count`` and ``annual_expenditure``. Blank
    expenditures are kept as missing; they are dropped at aggregation time.

    Args:
        filepath: Path to CSV. If None, uses config.
        config: Configuration dictionary.

    Returns:
        pandas DataFrame of validated records.
    """
    if config is None:
        config = load_config()
    if filepath is None:
        filepath = resolve_path(config["paths"]["raw_data"])

    data_cfg = config.get("data", {})
    count_col = data_cfg.get("count_column", "totchr")
    exp_col = data_cfg.get("expenditure_column", "totexp")

    df = pd.read_csv(filepath, na_values=["", "NA", "NULL", "."])
    missing = {count_col, exp_col} - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns in {filepath}: {missing}")

    df = df.rename(columns={count_col: COUNT_COLUMN, exp_col: EXPENDITURE_COLUMN})
    df[COUNT_COLUMN] = pd.to_numeric(df[COUNT_COLUMN], errors="coerce").astype("Int64")
    df[EXPENDITURE_COLUMN] = pd.to_numeric(df[EXPENDITURE_COLUMN], errors="coerce")

    validate_schema(df)
    logger.info(f"Loaded {len(df):,} records from {filepath}")
    return df


def validate_schema(df: pd.DataFrame) -> bool:
    """Validate DataFrame columns and value domains.

    Args:
        df: DataFrame to validate.

    Returns:
        True if schema matches.

    Raises:
        ValueError: If required columns are missing, a condition count is
            missing, or any value is negative.
    """
    expected = set(SCHEMA.keys())
    actual = set(df.columns)
    missing = expected - actual
    if missing:
        raise ValueError(f"Missing columns: {missing}")
    extra = actual - expected
    if extra:
        logger.warning(f"Extra columns found: {sorted(extra)}")

    counts = df[COUNT_COLUMN]
    if counts.isna().any():
        raise ValueError(f"{int(counts.isna().sum())} records have no chronic-condition count")
    if (counts < 0).any():
        raise ValueError("Chronic-condition counts must be non-negative")

    expenditure = df[EXPENDITURE_COLUMN]
    if (expenditure.dropna() < 0).any():
        raise ValueError("Annual expenditures must be non-negative")
    n_missing = int(expenditure.isna().sum())
    if n_missing:
        logger.warning(f"{n_missing} records have missing expenditure")
    return True
