"""Yearly transition probability matrices for the Standard and Intervention strategies."""

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))
from chronic_cea.errors import InvalidTransitionMatrixError
from chronic_cea.states import STATE_NAMES
from chronic_cea.utils import load_config

logger = logging.getLogger("chronic_cea")

ROW_SUM_TOLERANCE = 1e-9


class TransitionMatrix:
    """Validated, read-only row-stochastic matrix with state labels.

    ``probabilities[i, j]`` is the probability of moving from state ``i`` to
    state ``j`` over one cycle.
    """

    def __init__(self, probabilities, states: Sequence[str] = STATE_NAMES, name: str = ""):
        matrix = np.array(probabilities, dtype=float)
        states = list(states)
        _validate(matrix, states, name)
        matrix.setflags(write=False)
        self._matrix = matrix
        self._states = states
        self.name = name

    @property
    def probabilities(self) -> np.ndarray:
        return self._matrix

    @property
    def states(self) -> List[str]:
        return list(self._states)

    @property
    def n_states(self) -> int:
        return len(self._states)

    def __getitem__(self, key):
        return self._matrix[key]

    def __eq__(self, other) -> bool:
        if not isinstance(other, TransitionMatrix):
            return NotImplemented
        return self._states == other._states and np.array_equal(self._matrix, other._matrix)

    def __repr__(self) -> str:
        return f"TransitionMatrix(name={self.name!r}, states={self._states})"

    def absorbing_states(self) -> List[int]:
        """Indices of states that are never left once entered.

        A row counts as absorbing when it matches its identity row within the
        same tolerance used to validate row sums.
        """
        identity = np.eye(self.n_states)
        return [i for i in range(self.n_states)
                if np.allclose(self._matrix[i], identity[i], rtol=0.0, atol=ROW_SUM_TOLERANCE)]

    def reduce_progression(self, effect: float, name: Optional[str] = None) -> "TransitionMatrix":
        """Scale every worsening transition by ``1 - effect``.

        Worsening transitions are those to a higher-indexed, non-absorbing
        state. The removed probability is added back to the diagonal, so
        improvement and absorption probabilities are left unchanged.
        """
        if not 0.0 <= effect <= 1.0:
            raise ValueError(f"Progression effect must lie in [0, 1], got {effect}")
        absorbing = set(self.absorbing_states())
        reduced = self._matrix.copy()
        for i in range(self.n_states):
            if i in absorbing:
                continue
            for j in range(i + 1, self.n_states):
                if j in absorbing:
                    continue
                removed = reduced[i, j] * effect
                reduced[i, j] -= removed
                reduced[i, i] += removed
        return TransitionMatrix(reduced, self._states, name or f"{self.name}_reduced")

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self._matrix, index=self._states, columns=self._states)


def _validate(matrix: np.ndarray, states: List[str], name: str) -> None:
    label = f"'{name}' " if name else ""
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise InvalidTransitionMatrixError(f"Transition matrix {label}must be square, got shape {matrix.shape}")
    if len(states) != matrix.shape[0]:
        raise InvalidTransitionMatrixError(
            f"Transition matrix {label}has {matrix.shape[0]} rows but {len(states)} state labels"
        )
    if not np.all(np.isfinite(matrix)):
        raise InvalidTransitionMatrixError(f"Transition matrix {label}contains non-finite values")
    for i, state in enumerate(states):
        row = matrix[i]
        if (row < 0).any() or (row > 1).any():
            raise InvalidTransitionMatrixError(
                f"Row '{state}' of transition matrix {label}has probabilities outside [0, 1]", row=state
            )
        total = row.sum()
        if abs(total - 1.0) > ROW_SUM_TOLERANCE:
            raise InvalidTransitionMatrixError(
                f"Row '{state}' of transition matrix {label}sums to {total:.12f}, not 1", row=state
            )


def load_transition_matrices(config: Optional[dict] = None) -> Dict[str, TransitionMatrix]:
    """Build the Standard and Intervention matrices from configuration.

    The Intervention matrix is read from the literal table when one is
    configured and derived from Standard with ``intervention_effect``
    otherwise. Both matrices must share the same absorbing states.

    Returns:
        Dictionary keyed by strategy name.
    """
    if config is None:
        config = load_config()
    trans_cfg = config["transitions"]
    states = trans_cfg.get("states", STATE_NAMES)

    standard = TransitionMatrix(trans_cfg["standard"], states, name="standard")
    if trans_cfg.get("intervention") is not None:
        intervention = TransitionMatrix(trans_cfg["intervention"], states, name="intervention")
    else:
        effect = trans_cfg.get("intervention_effect", 0.5)
        intervention = standard.reduce_progression(effect, name="intervention")
        logger.info(f"Intervention matrix derived from standard with effect {effect}")

    if standard.absorbing_states() != intervention.absorbing_states():
        raise InvalidTransitionMatrixError(
            "Standard and intervention matrices disagree on absorbing states: "
            f"{standard.absorbing_states()} vs {intervention.absorbing_states()}"
        )
    return {"standard": standard, "intervention": intervention}
