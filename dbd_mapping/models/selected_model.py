"""Results of forward feature selection and the selected model."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from dbd_mapping.errors import TrainingError
from dbd_mapping.models.qrf.forest import QuantileForest


def _json_value(value: Any) -> Any:
    """Plain Python scalar; NaN and infinities become None."""
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and not np.isfinite(value):
        return None
    return value


@dataclass(frozen=True)
class CandidateResult:
    """One (feature subset, mtry) pair and its spatial CV performance."""

    features: tuple[str, ...]
    mtry: int
    r2: float
    mse: float
    rmse: float
    me: float
    oof_predictions: np.ndarray = field(repr=False)

    @property
    def added_feature(self) -> str:
        return self.features[-1]

    def rank_key(self) -> tuple[float, int, str]:
        """Sort key: highest R² first, then lower mtry, then feature name."""
        r2 = self.r2 if np.isfinite(self.r2) else -np.inf
        return (-r2, self.mtry, self.added_feature)


@dataclass(frozen=True)
class SelectionRound:
    """All candidates of one selection round and its outcome."""

    index: int
    candidates: tuple[CandidateResult, ...] = field(repr=False)
    winner: CandidateResult
    accepted: bool
    previous_best_r2: float

    def to_record(self) -> dict[str, Any]:
        return {
            "round": self.index,
            "feature": self.winner.added_feature,
            "features": "+".join(self.winner.features),
            "mtry": self.winner.mtry,
            "R2": self.winner.r2,
            "RMSE": self.winner.rmse,
            "ME": self.winner.me,
            "previous_best_R2": self.previous_best_r2,
            "accepted": self.accepted,
            "n_candidates": len(self.candidates),
        }


@dataclass
class SelectedModel:
    """Feature subset, mtry and the quantile forest refitted on all observations.

    ``validated`` is False when selection could not beat the baseline (or no
    feature could be used); ``selection_warning`` then says why.
    """

    features: list[str]
    mtry: int
    model: QuantileForest | None
    cv_metrics: dict[str, float]
    oof_predictions: np.ndarray
    response: np.ndarray
    training_features: pd.DataFrame
    fold_ids: np.ndarray | None = None
    validated: bool = True
    selection_warning: str | None = None
    history: list[SelectionRound] = field(default_factory=list)
    n_evaluations: int = 0
    n_trees: int = 500
    node_size: int = 5
    random_state: int = 42
    dissimilarity: Any = None

    def _require_model(self) -> QuantileForest:
        if self.model is None:
            raise TrainingError("Selected model has no fitted forest (empty feature subset)")
        return self.model

    def _matrix(self, X: pd.DataFrame | np.ndarray) -> np.ndarray:  # noqa: N803
        if isinstance(X, pd.DataFrame):
            missing = [f for f in self.features if f not in X.columns]
            if missing:
                raise KeyError(f"Missing selected features: {missing}")
            return X[self.features].to_numpy(dtype="float64")
        return np.asarray(X, dtype="float64")

    def predict(self, X: pd.DataFrame | np.ndarray, quantile: float = 0.5) -> np.ndarray:  # noqa: N803
        """Conditional quantile for rows of the selected features."""
        return self._require_model().predict(self._matrix(X), quantile=quantile)

    def predict_quantiles(
        self, X: pd.DataFrame | np.ndarray, quantiles: Sequence[float]  # noqa: N803
    ) -> np.ndarray:
        return self._require_model().predict_quantiles(self._matrix(X), quantiles)

    def variable_importance(self) -> dict[str, float]:
        return self._require_model().variable_importance()

    def history_frame(self) -> pd.DataFrame:
        """Per-round selection history as a DataFrame."""
        return pd.DataFrame([r.to_record() for r in self.history])

    def summary(self) -> dict[str, Any]:
        """Strict-JSON description (no arrays, no forest, non-finite values as null)."""
        return {
            "features": list(self.features),
            "mtry": int(self.mtry),
            "cv_metrics": {k: _json_value(float(v)) for k, v in self.cv_metrics.items()},
            "validated": bool(self.validated),
            "selection_warning": self.selection_warning,
            "n_observations": int(len(self.response)),
            "n_evaluations": int(self.n_evaluations),
            "n_trees": int(self.n_trees),
            "node_size": int(self.node_size),
            "random_state": int(self.random_state),
            "history": [
                {k: _json_value(v) for k, v in r.to_record().items()}
                for r in self.history
            ],
        }
