"""Mean annual expenditure by chronic-condition bucket.

Individuals are grouped by their number of chronic conditions, with four or
more conditions collapsed into a single bucket, and the mean expenditure of
each bucket becomes the annual cost of the matching health state.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd
from scipy import stats

sys.path.insert(0, str(Path(__file__).parent.parent))
from chronic_cea.data_loader import COUNT_COLUMN, EXPENDITURE_COLUMN
from chronic_cea.errors import InsufficientDataError
from chronic_cea.utils import load_config

logger = logging.getLogger("chronic_cea")

DEFAULT_CAP = 4


def cap_condition_count(counts, cap: int = DEFAULT_CAP) -> pd.Series:
    """Collapse condition counts at or above ``cap`` into the ``cap`` bucket."""
    counts = pd.Series(counts)
    return counts.clip(upper=cap).astype("Int64")


def _bucketed(records: pd.DataFrame, cap: int) -> pd.DataFrame:
    df = records[[COUNT_COLUMN, EXPENDITURE_COLUMN]].copy()
    df["bucket"] = cap_condition_count(df[COUNT_COLUMN], cap)
    return df


def aggregate_state_costs(
    records: pd.DataFrame, config: Optional[dict] = None,
) -> pd.Series:
    """Compute the mean expenditure of every chronic-condition bucket.

    Args:
        records: DataFrame with ``chronic_condition_count`` and
            ``annual_expenditure`` columns.
        config: Configuration dictionary.

    Returns:
        Series indexed by bucket 0..cap holding mean annual cost.

    Raises:
        InsufficientDataError: If a bucket has no non-missing expenditure.
    """
    if config is None:
        config = load_config()
    cap = config.get("data", {}).get("condition_cap", DEFAULT_CAP)

    df = _bucketed(records, cap)
    observed = df.dropna(subset=[EXPENDITURE_COLUMN])
    means = observed.groupby("bucket")[EXPENDITURE_COLUMN].mean()
    means.index = means.index.astype(int)

    for bucket in range(cap + 1):
        if bucket not in means.index:
            n_rows = int((df["bucket"] == bucket).sum())
            raise InsufficientDataError(bucket, n_rows)

    means = means.reindex(range(cap + 1)).astype(float)
    means.index.name = "bucket"
    means.name = "mean_cost"
    logger.info("Mean annual cost by bucket: " + ", ".join(
        f"{b}={v:,.0f}" for b, v in means.items()))
    return means


def summarize_buckets(records: pd.DataFrame, cap: int = DEFAULT_CAP) -> pd.DataFrame:
    """Descriptive statistics of expenditure per bucket for reporting."""
    df = _bucketed(records, cap)
    rows = []
    for bucket in range(cap + 1):
        values = df.loc[df["bucket"] == bucket, EXPENDITURE_COLUMN]
        observed = values.dropna().to_numpy(dtype=float)
        rows.append({
            "bucket": f"{bucket}+" if bucket == cap else str(bucket),
            "n": int(len(values)),
            "n_missing": int(values.isna().sum()),
            "mean_cost": float(observed.mean()) if len(observed) else np.nan,
            "se_mean": float(stats.sem(observed)) if len(observed) > 1 else np.nan,
            "median_cost": float(np.median(observed)) if len(observed) else np.nan,
        })
    return pd.DataFrame(rows)
