"""Shared fixtures for the cost-effectiveness test suite."""

import copy
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
from chronic_cea.data_loader import COUNT_COLUMN, EXPENDITURE_COLUMN
from chronic_cea.states import DEFAULT_UTILITIES, build_health_states
from chronic_cea.transitions import load_transition_matrices
from chronic_cea.utils import load_config

SCENARIO_COSTS = [5000, 8000, 12000, 18000, 25000]


@pytest.fixture(scope="session")
def base_config():
    return load_config()


@pytest.fixture
def config(base_config, tmp_path):
    """Project configuration with every output redirected under tmp_path."""
    cfg = copy.deepcopy(base_config)
    cfg["paths"]["tables_dir"] = str(tmp_path / "tables")
    cfg["paths"]["figures_dir"] = str(tmp_path / "figures")
    cfg["paths"]["report"] = str(tmp_path / "REPORT.md")
    return cfg


@pytest.fixture
def matrices(base_config):
    return load_transition_matrices(base_config)


@pytest.fixture
def scenario_states():
    return build_health_states(SCENARIO_COSTS, DEFAULT_UTILITIES)


@pytest.fixture
def records():
    """Small record set with every bucket populated and one missing expenditure."""
    return pd.DataFrame({
        COUNT_COLUMN: pd.array([0, 0, 1, 1, 2, 2, 3, 3, 4, 5, 7, 0], dtype="Int64"),
        EXPENDITURE_COLUMN: [1000.0, 3000.0, 6000.0, 8000.0, 10000.0, 14000.0,
                             17000.0, 19000.0, 20000.0, 30000.0, 40000.0, np.nan],
    })
