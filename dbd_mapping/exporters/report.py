"""Plain-text run report and selection history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import numpy as np
import pandas as pd

from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("exporters")


def _fmt(value: float | None, digits: int = 4) -> str:
    if value is None or not np.isfinite(value):
        return "NA"
    return f"{value:.{digits}f}"


@dataclass
class RunReport:
    """Summary of one modelling run."""

    features: list[str]
    mtry: int
    cv_metrics: dict[str, float]
    validated: bool
    aoa_percent: float | None = None
    fold_method: str | None = None
    n_folds: int | None = None
    w_statistic: float | None = None
    di_threshold: float | None = None
    n_observations: int = 0
    n_evaluations: int = 0
    warnings: list[str] = field(default_factory=list)
    history: pd.DataFrame = field(default_factory=pd.DataFrame, repr=False)
    created: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_run(cls, model, folds=None, train_di=None, aoa_fraction: float | None = None) -> RunReport:
        """Collect the report fields from the run artefacts."""
        warnings = [model.selection_warning] if model.selection_warning else []
        return cls(
            features=list(model.features),
            mtry=int(model.mtry),
            cv_metrics=dict(model.cv_metrics),
            validated=bool(model.validated),
            aoa_percent=None if aoa_fraction is None else 100.0 * aoa_fraction,
            fold_method=None if folds is None else folds.method,
            n_folds=None if folds is None else folds.k,
            w_statistic=None if folds is None else folds.w_statistic,
            di_threshold=None if train_di is None else train_di.threshold,
            n_observations=len(model.response),
            n_evaluations=model.n_evaluations,
            warnings=warnings,
            history=model.history_frame(),
        )

    def to_text(self) -> str:
        lines = [
            "DBD mapping run report",
            f"Created: {self.created:%Y-%m-%d %H:%M:%S}",
            "",
            f"Observations: {self.n_observations}",
            f"Selected features: {', '.join(self.features) if self.features else '(none)'}",
            f"mtry: {self.mtry}",
            f"Validated: {'yes' if self.validated else 'no'}",
            "",
            "Spatial cross-validation",
            f"  Fold method: {self.fold_method or 'NA'}",
            f"  Folds: {self.n_folds if self.n_folds is not None else 'NA'}",
            f"  W statistic: {_fmt(self.w_statistic)}",
            f"  Model fits: {self.n_evaluations}",
            f"  ME: {_fmt(self.cv_metrics.get('ME'))}",
            f"  RMSE: {_fmt(self.cv_metrics.get('RMSE'))}",
            f"  R2: {_fmt(self.cv_metrics.get('R2'))}",
            "",
            "Area of applicability",
            f"  DI threshold: {_fmt(self.di_threshold)}",
            f"  Valid pixels inside AOA: {_fmt(self.aoa_percent, 1)}%",
        ]
        if self.warnings:
            lines += ["", "Warnings"] + [f"  - {w}" for w in self.warnings]
        if not self.history.empty:
            lines += ["", "Selection history", self.history.to_string(index=False)]
        return "\n".join(lines) + "\n"

    def write(self, path: str | Path) -> Path:
        """Write the text report and ``<stem>_history.csv`` beside it."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_text(), encoding="utf-8")
        if not self.history.empty:
            self.history.to_csv(path.with_name(f"{path.stem}_history.csv"), index=False)
        logger.info(f"Wrote run report {path}")
        return path
