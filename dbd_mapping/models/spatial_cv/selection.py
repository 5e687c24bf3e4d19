"""Forward feature selection with spatial cross-validation.

Greedy search: starting from the empty subset, every round tries each
remaining predictor added to the current subset, for every mtry of the grid
(clipped to the subset size), and scores it by R² of pooled out-of-fold
median predictions. The round winner is accepted only when it beats the
best R² of all previously accepted subsets; the first round that does not
ends the search.
"""

from __future__ import annotations

from collections.abc import Sequence
import time

import numpy as np
import pandas as pd

from dbd_mapping.errors import NoFeatureImprovesError, TrainingError
from dbd_mapping.evaluation.metrics import validation_summary
from dbd_mapping.models.qrf.forest import fit_quantile_forest
from dbd_mapping.models.selected_model import CandidateResult, SelectedModel, SelectionRound
from dbd_mapping.models.spatial_cv.knndm import SpatialFolds
from dbd_mapping.models.spatial_cv.parallel import evaluate_candidates
from dbd_mapping.utils.helpers import format_duration
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("forward_selection")


def mtry_values(mtry_grid: Sequence[int] | None, n_features: int) -> list[int]:
    """mtry values usable for a subset of ``n_features`` (each in [1, n_features])."""
    if mtry_grid is None:
        return list(range(1, n_features + 1))
    return sorted({min(max(1, int(m)), n_features) for m in mtry_grid})


def _candidate(
    features: tuple[str, ...], mtry: int, oof: np.ndarray, y: np.ndarray
) -> CandidateResult:
    metrics = validation_summary(oof, y)
    return CandidateResult(
        features=features,
        mtry=mtry,
        r2=metrics["R2"],
        mse=metrics["MSE"],
        rmse=metrics["RMSE"],
        me=metrics["ME"],
        oof_predictions=oof,
    )


def forward_feature_selection(
    features: pd.DataFrame,
    response: np.ndarray,
    folds: SpatialFolds | np.ndarray,
    mtry_grid: Sequence[int] | None = None,
    n_trees: int = 500,
    node_size: int = 5,
    random_state: int = 42,
    n_workers: int | None = None,
    baseline_r2: float = 0.0,
    strict: bool = False,
    show_progress: bool = False,
) -> tuple[SelectedModel, list[SelectionRound]]:
    """Select predictors and mtry by forward search under spatial CV.

    Args:
        features: Predictor table (one column per candidate predictor)
        response: Response per row
        folds: SpatialFolds or an array of fold ids per row
        mtry_grid: Candidate mtry values (None = 1..subset size)
        n_trees: Ensemble size for every fit
        node_size: Minimum leaf size
        random_state: Seed shared by every fit
        n_workers: Candidate evaluation pool size (None = cores - 1)
        baseline_r2: R² the first round must exceed to count as validated
        strict: Raise NoFeatureImprovesError instead of recovering
        show_progress: tqdm progress per round

    Returns:
        (SelectedModel refitted on all rows, per-round history)

    Raises:
        TrainingError: Shape mismatch or no usable rows
        NoFeatureImprovesError: Only with ``strict=True``
    """
    fold_ids = np.asarray(folds.fold_ids if isinstance(folds, SpatialFolds) else folds)
    y = np.asarray(response, dtype="float64").ravel()
    if not (len(features) == len(y) == len(fold_ids)):
        raise TrainingError(
            f"Rows differ: features {len(features)}, response {len(y)}, folds {len(fold_ids)}"
        )

    names = [str(c) for c in features.columns]
    X = features.to_numpy(dtype="float64")  # noqa: N806
    complete = np.isfinite(X).all(axis=1) & np.isfinite(y)
    if not complete.all():
        logger.warning(f"Dropping {int((~complete).sum())} incomplete rows before selection")
        X, y, fold_ids = X[complete], y[complete], fold_ids[complete]  # noqa: N806
    if len(y) == 0:
        raise TrainingError("No complete rows for feature selection")

    n_folds = len(np.unique(fold_ids))
    selected: list[str] = []
    history: list[SelectionRound] = []
    best: CandidateResult | None = None
    best_r2 = -np.inf
    n_evaluations = 0
    warning: str | None = None
    start = time.time()

    while len(selected) < len(names):
        round_index = len(history) + 1
        remaining = [n for n in names if n not in selected]
        grid = mtry_values(mtry_grid, len(selected) + 1)
        subsets = [tuple(selected + [f]) for f in remaining]
        tasks = [(tuple(names.index(f) for f in s), m) for s in subsets for m in grid]

        oofs = evaluate_candidates(
            tasks,
            X,
            y,
            fold_ids,
            n_trees=n_trees,
            node_size=node_size,
            random_state=random_state,
            n_workers=n_workers,
            show_progress=show_progress,
            description=f"Round {round_index}",
        )
        n_evaluations += len(tasks) * n_folds
        candidates = [
            _candidate(s, m, oof, y)
            for (s, m), oof in zip(((s, m) for s in subsets for m in grid), oofs)
        ]
        winner = min(candidates, key=CandidateResult.rank_key)

        if round_index == 1 and not winner.r2 > baseline_r2:
            warning = (
                f"No single feature exceeds baseline R²={baseline_r2:.3f} "
                f"(best: {winner.added_feature}, R²={winner.r2:.3f}); "
                "keeping it as an unvalidated model"
            )
            if strict:
                raise NoFeatureImprovesError(warning)
            logger.warning(warning)
            history.append(SelectionRound(round_index, tuple(candidates), winner, True, best_r2))
            selected.append(winner.added_feature)
            best = winner
            break

        accepted = bool(winner.r2 > best_r2)
        history.append(SelectionRound(round_index, tuple(candidates), winner, accepted, best_r2))
        logger.info(
            f"Round {round_index}: +{winner.added_feature} (mtry={winner.mtry}) "
            f"R²={winner.r2:.4f} vs best {best_r2:.4f} -> "
            f"{'accepted' if accepted else 'stop'}; {len(tasks)} candidates, "
            f"{n_evaluations} fits so far"
        )
        if not accepted:
            break

        selected.append(winner.added_feature)
        best = winner
        best_r2 = winner.r2

    logger.info(
        f"Forward selection finished in {format_duration(time.time() - start)}: "
        f"{selected} after {len(history)} rounds ({n_evaluations} fits)"
    )

    if best is None:
        message = "No predictors available for selection"
        if strict:
            raise NoFeatureImprovesError(message)
        logger.warning(message)
        return (
            SelectedModel(
                features=[],
                mtry=0,
                model=None,
                cv_metrics={},
                oof_predictions=np.full(len(y), np.nan),
                response=y,
                training_features=pd.DataFrame(index=range(len(y))),
                fold_ids=fold_ids,
                validated=False,
                selection_warning=message,
                history=history,
                n_evaluations=n_evaluations,
                n_trees=n_trees,
                node_size=node_size,
                random_state=random_state,
            ),
            history,
        )

    columns = [names.index(f) for f in selected]
    final_model = fit_quantile_forest(
        X[:, columns],
        y,
        mtry=best.mtry,
        n_trees=n_trees,
        node_size=node_size,
        random_state=random_state,
        n_jobs=-1,
        feature_names=selected,
    )
    cv_metrics = {"R2": best.r2, "MSE": best.mse, "RMSE": best.rmse, "ME": best.me}

    selected_model = SelectedModel(
        features=list(selected),
        mtry=best.mtry,
        model=final_model,
        cv_metrics=cv_metrics,
        oof_predictions=best.oof_predictions,
        response=y,
        training_features=pd.DataFrame(X[:, columns], columns=selected),
        fold_ids=fold_ids,
        validated=warning is None,
        selection_warning=warning,
        history=history,
        n_evaluations=n_evaluations,
        n_trees=n_trees,
        node_size=node_size,
        random_state=random_state,
    )
    return selected_model, history
