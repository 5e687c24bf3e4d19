"""Quantile regression forest backed by ``quantile-forest``.

Trees are grown on bootstrap samples as in an ordinary random forest, but
every leaf keeps all the training responses that fell into it. A query
point weights each training response by how often, and in how small a
leaf, it shares a leaf with the query (Meinshausen, 2006), and a quantile
prediction is the weighted empirical quantile of those responses. One
fitted ensemble serves any number of quantiles.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from quantile_forest import RandomForestQuantileRegressor  # type: ignore[import-untyped]
from sklearn.inspection import permutation_importance  # type: ignore[import-untyped]

from dbd_mapping.errors import TrainingError


class QuantileForest:
    """Quantile regression forest.

    Args:
        mtry: Features considered at each split (``None`` = all features)
        n_trees: Ensemble size
        node_size: Minimum number of bootstrap samples in a leaf
        random_state: Seed for bootstrap sampling and split selection
        n_jobs: Parallel tree building and quantile prediction (-1 = all cores)
    """

    def __init__(
        self,
        mtry: int | None = None,
        n_trees: int = 500,
        node_size: int = 5,
        random_state: int = 42,
        n_jobs: int = 1,
    ):
        self.mtry = mtry
        self.n_trees = n_trees
        self.node_size = node_size
        self.random_state = random_state
        self.n_jobs = n_jobs

    def fit(
        self,
        X: np.ndarray,  # noqa: N803
        y: np.ndarray,
        feature_names: Sequence[str] | None = None,
    ) -> "QuantileForest":
        """Fit the forest; every leaf keeps its training responses.

        Rows with NaN in ``X`` or ``y`` are removed first.

        Raises:
            TrainingError: No rows left, or mtry outside ``[1, n_features]``
        """
        X = np.asarray(X, dtype="float64")  # noqa: N806
        y = np.asarray(y, dtype="float64").ravel()
        if X.ndim == 1:
            X = X.reshape(-1, 1)  # noqa: N806
        if len(X) != len(y):
            raise TrainingError(f"X has {len(X)} rows but y has {len(y)} values")

        n_features = X.shape[1]
        if n_features == 0:
            raise TrainingError("Cannot fit a forest without features")

        complete = np.isfinite(X).all(axis=1) & np.isfinite(y)
        X, y = X[complete], y[complete]  # noqa: N806
        if len(y) == 0:
            raise TrainingError("No training rows left after removing missing values")

        mtry = n_features if self.mtry is None else int(self.mtry)
        if mtry < 1 or mtry > n_features:
            raise TrainingError(f"mtry={mtry} outside [1, {n_features}]")

        if feature_names is None:
            feature_names = [f"x{i}" for i in range(n_features)]
        if len(feature_names) != n_features:
            raise TrainingError(
                f"{len(feature_names)} feature names for {n_features} columns"
            )

        # max_samples_leaf=None keeps every in-bag response per leaf
        self.forest_ = RandomForestQuantileRegressor(
            n_estimators=self.n_trees,
            default_quantiles=0.5,
            max_features=mtry,
            min_samples_leaf=self.node_size,
            max_samples_leaf=None,
            bootstrap=True,
            n_jobs=self.n_jobs,
            random_state=self.random_state,
        )
        self.forest_.fit(X, y)

        self.feature_names_ = list(feature_names)
        self.mtry_ = mtry
        self.X_train_ = X
        self.y_train_ = y
        self._importance: dict[str, float] | None = None
        return self

    def _check_fitted(self) -> None:
        if not hasattr(self, "forest_"):
            raise TrainingError("QuantileForest is not fitted")

    def _as_query(self, X: np.ndarray) -> np.ndarray:  # noqa: N803
        X = np.asarray(X, dtype="float64")  # noqa: N806
        if X.ndim == 1:
            X = X.reshape(-1, len(self.feature_names_))  # noqa: N806
        if X.shape[1] != len(self.feature_names_):
            raise ValueError(
                f"Expected {len(self.feature_names_)} features, got {X.shape[1]}"
            )
        if not np.isfinite(X).all():
            raise ValueError("Query rows contain missing values")
        return X

    def predict_quantiles(
        self,
        X: np.ndarray,  # noqa: N803
        quantiles: Sequence[float] = (0.05, 0.5, 0.95),
    ) -> np.ndarray:
        """Conditional quantiles, shape (n_rows, n_quantiles).

        ``interpolation="lower"`` inverts the weighted ECDF, so every
        prediction is an observed training response.
        """
        self._check_fitted()
        quantiles = [float(q) for q in quantiles]
        if not all(0.0 <= q <= 1.0 for q in quantiles):
            raise ValueError(f"Quantiles must be in [0, 1], got {quantiles}")

        X = self._as_query(X)  # noqa: N806
        if len(X) == 0:
            return np.empty((0, len(quantiles)))
        predictions = self.forest_.predict(X, quantiles=quantiles, interpolation="lower")
        return np.asarray(predictions, dtype="float64").reshape(len(X), len(quantiles))

    def predict(self, X: np.ndarray, quantile: float = 0.5) -> np.ndarray:  # noqa: N803
        """One conditional quantile per row."""
        return self.predict_quantiles(X, [quantile])[:, 0]

    def variable_importance(self, n_repeats: int = 10) -> dict[str, float]:
        """Permutation importance (increase in MSE of the median) on training data."""
        self._check_fitted()
        if self._importance is None:
            result = permutation_importance(
                self.forest_,
                self.X_train_,
                self.y_train_,
                scoring="neg_mean_squared_error",
                n_repeats=n_repeats,
                random_state=self.random_state,
                n_jobs=self.n_jobs,
            )
            self._importance = dict(
                zip(self.feature_names_, (float(v) for v in result.importances_mean))
            )
        return dict(self._importance)


def fit_quantile_forest(
    X: np.ndarray,  # noqa: N803
    y: np.ndarray,
    mtry: int,
    n_trees: int = 500,
    node_size: int = 5,
    random_state: int = 42,
    n_jobs: int = 1,
    feature_names: Sequence[str] | None = None,
) -> QuantileForest:
    """Fit a ``QuantileForest`` with the given mtry and ensemble size."""
    return QuantileForest(
        mtry=mtry,
        n_trees=n_trees,
        node_size=node_size,
        random_state=random_state,
        n_jobs=n_jobs,
    ).fit(X, y, feature_names=feature_names)


def predict_quantile(
    model: QuantileForest, X: np.ndarray, quantile: float = 0.5  # noqa: N803
) -> np.ndarray:
    """Predict one conditional quantile with a fitted forest."""
    return model.predict(X, quantile=quantile)
