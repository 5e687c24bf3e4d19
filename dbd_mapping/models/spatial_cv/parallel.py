"""Parallel spatial cross-validation of candidate models.

Each task is one (feature subset, mtry) pair; a worker runs the full k-fold
loop for it and returns pooled out-of-fold median predictions. The
regression matrix, response and fold ids are handed to each worker once
through the pool initializer and only read afterwards.
"""

from collections.abc import Sequence
from concurrent.futures import ProcessPoolExecutor
from functools import partial

import numpy as np
from tqdm import tqdm

from dbd_mapping.models.qrf.forest import fit_quantile_forest
from dbd_mapping.utils.helpers import default_n_workers
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("spatial_cv_parallel")

_SHARED: dict[str, np.ndarray] = {}


def cross_validate_candidate(
    X: np.ndarray,  # noqa: N803
    y: np.ndarray,
    fold_ids: np.ndarray,
    mtry: int,
    n_trees: int = 500,
    node_size: int = 5,
    random_state: int = 42,
) -> np.ndarray:
    """Pooled out-of-fold 0.5-quantile predictions for one candidate.

    Args:
        X: Predictor matrix restricted to the candidate subset
        y: Response
        fold_ids: Fold index per row
        mtry: Features per split
        n_trees: Ensemble size
        node_size: Minimum leaf size
        random_state: Seed shared by every fold fit

    Returns:
        Array of shape (n,) with the prediction made while each row was held out
    """
    oof = np.full(len(y), np.nan)
    for fold in np.unique(fold_ids):
        test = fold_ids == fold
        model = fit_quantile_forest(
            X[~test],
            y[~test],
            mtry=mtry,
            n_trees=n_trees,
            node_size=node_size,
            random_state=random_state,
            n_jobs=1,
        )
        oof[test] = model.predict(X[test], quantile=0.5)
    return oof


def _init_worker(X: np.ndarray, y: np.ndarray, fold_ids: np.ndarray) -> None:  # noqa: N803
    _SHARED["X"] = X
    _SHARED["y"] = y
    _SHARED["fold_ids"] = fold_ids


def _evaluate_task(
    task: tuple[tuple[int, ...], int], n_trees: int, node_size: int, random_state: int
) -> np.ndarray:
    columns, mtry = task
    return cross_validate_candidate(
        _SHARED["X"][:, list(columns)],
        _SHARED["y"],
        _SHARED["fold_ids"],
        mtry=mtry,
        n_trees=n_trees,
        node_size=node_size,
        random_state=random_state,
    )


def evaluate_candidates(
    tasks: Sequence[tuple[tuple[int, ...], int]],
    X: np.ndarray,  # noqa: N803
    y: np.ndarray,
    fold_ids: np.ndarray,
    n_trees: int = 500,
    node_size: int = 5,
    random_state: int = 42,
    n_workers: int | None = None,
    show_progress: bool = False,
    description: str = "Candidates",
) -> list[np.ndarray]:
    """Cross-validate every (column indices, mtry) task.

    Args:
        tasks: Column index tuples into ``X`` with their mtry
        X: Full predictor matrix
        y: Response
        fold_ids: Fold index per row
        n_trees: Ensemble size
        node_size: Minimum leaf size
        random_state: Seed shared by all fits
        n_workers: Pool size (None = cores - 1, 1 = run in this process)
        show_progress: Show a tqdm bar
        description: Progress bar label

    Returns:
        Out-of-fold predictions per task, in task order
    """
    n_workers = min(default_n_workers(n_workers), max(1, len(tasks)))
    worker = partial(
        _evaluate_task, n_trees=n_trees, node_size=node_size, random_state=random_state
    )

    if n_workers == 1:
        _init_worker(X, y, fold_ids)
        try:
            return [
                worker(task)
                for task in tqdm(tasks, desc=description, disable=not show_progress)
            ]
        finally:
            _SHARED.clear()

    logger.debug(f"Evaluating {len(tasks)} candidates on {n_workers} workers")
    with ProcessPoolExecutor(
        max_workers=n_workers, initializer=_init_worker, initargs=(X, y, fold_ids)
    ) as executor:
        return list(
            tqdm(
                executor.map(worker, tasks),
                total=len(tasks),
                desc=description,
                disable=not show_progress,
            )
        )
