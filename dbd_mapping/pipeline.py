"""End-to-end DBD mapping run.

1. kNNDM folds for the observations against the prediction domain
2. Forward feature selection with the quantile forest under those folds
3. Training dissimilarity (trainDI) of the selected model
4. Quantile, interval, DI and AOA rasters over the domain
5. Outputs: rasters, AOA polygons, serialized model, run report
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
import time

import numpy as np
from shapely.geometry.base import BaseGeometry

from dbd_mapping.applicability.aoa import (
    aoa_coverage,
    fit_from_model,
    score_area_of_applicability,
)
from dbd_mapping.config.settings import Settings
from dbd_mapping.errors import TrainingError
from dbd_mapping.exporters.aoa_polygons import polygonize_aoa, write_polygons
from dbd_mapping.exporters.rasters import AOA_NODATA, aoa_to_uint8, write_raster, write_rasters
from dbd_mapping.exporters.report import RunReport
from dbd_mapping.models.io import save_selected_model
from dbd_mapping.models.selected_model import SelectedModel, SelectionRound
from dbd_mapping.models.spatial_cv.knndm import SpatialFolds, knndm_partition
from dbd_mapping.models.spatial_cv.selection import forward_feature_selection
from dbd_mapping.prediction.engine import predict_domain, prediction_interval
from dbd_mapping.readers.domain import load_domain
from dbd_mapping.readers.point_set import PointSet
from dbd_mapping.readers.raster_stack import PredictorStack
from dbd_mapping.utils.helpers import ensure_directory, format_duration, set_random_seed
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("pipeline")


def quantile_label(q: float) -> str:
    """Raster name for a quantile, e.g. 0.05 -> ``dbd_q5``, 0.025 -> ``dbd_q2_5``."""
    return "dbd_q" + f"{q * 100:g}".replace(".", "_")


@dataclass
class PredictionProducts:
    """Rasters derived from a selected model on one grid."""

    predictions: dict[float, np.ndarray]
    width: np.ndarray
    ratio: np.ndarray
    di: np.ndarray | None = None
    aoa: np.ndarray | None = None

    @property
    def aoa_fraction(self) -> float | None:
        if self.di is None or self.aoa is None:
            return None
        return aoa_coverage(self.di, self.aoa)


@dataclass
class PipelineResult:
    folds: SpatialFolds
    model: SelectedModel
    history: list[SelectionRound]
    products: PredictionProducts
    report: RunReport
    outputs: dict[str, Path] = field(default_factory=dict)


def predict_products(
    model: SelectedModel,
    stack: PredictorStack,
    quantiles: Sequence[float] = (0.05, 0.5, 0.95),
    batch_size: int = 50_000,
) -> PredictionProducts:
    """Quantile grids, interval width/ratio and, when the model carries a
    training dissimilarity, DI and AOA."""
    quantiles = sorted(float(q) for q in quantiles)
    predictions = predict_domain(model, stack, quantiles=quantiles, batch_size=batch_size)
    width, ratio = prediction_interval(predictions, lower=quantiles[0], upper=quantiles[-1])

    di = aoa = None
    if model.dissimilarity is not None:
        di, aoa = score_area_of_applicability(model.dissimilarity, stack)
    else:
        logger.warning("Model has no training dissimilarity; skipping DI/AOA")
    return PredictionProducts(predictions, width, ratio, di, aoa)


def write_products(
    products: PredictionProducts, stack: PredictorStack, output_dir: Path
) -> dict[str, Path]:
    """Write every product raster (and AOA polygons) into ``output_dir``."""
    output_dir = ensure_directory(Path(output_dir))
    rasters = {quantile_label(q): grid for q, grid in products.predictions.items()}
    rasters["interval_width"] = products.width
    rasters["interval_ratio"] = products.ratio
    if products.di is not None:
        rasters["di"] = products.di
    outputs = write_rasters(output_dir, rasters, stack)

    if products.di is not None and products.aoa is not None:
        outputs["aoa"] = write_raster(
            output_dir / "aoa.tif",
            aoa_to_uint8(products.di, products.aoa),
            stack,
            dtype="uint8",
            nodata=AOA_NODATA,
            description="aoa",
        )
        polygons = polygonize_aoa(products.aoa, stack, valid=~np.isnan(products.di))
        outputs["aoa_polygons"] = write_polygons(polygons, output_dir / "aoa.gpkg")
    return outputs


def run_modeling(
    stack: PredictorStack,
    points: PointSet,
    domain: BaseGeometry,
    settings: Settings,
) -> PipelineResult:
    """Run partitioning, selection, applicability and prediction in memory.

    Args:
        stack: Predictor stack (cells outside the domain already NaN)
        points: Observations with extracted predictors
        domain: Prediction domain polygon
        settings: Run configuration

    Returns:
        PipelineResult with the in-memory products and report

    Raises:
        TrainingError: No predictor could be selected
    """
    start = time.time()
    set_random_seed(settings.random_state)
    logger.info(f"Modelling {len(points)} observations with {len(points.feature_names)} predictors")

    folds = knndm_partition(
        points.coords,
        domain,
        k=settings.partition.k,
        sample_size=settings.partition.sample_size,
        clustering=settings.partition.clustering,
        max_fold_fraction=settings.partition.max_fold_fraction,
        random_state=settings.random_state,
    )

    model, history = forward_feature_selection(
        points.predictors,
        points.response,
        folds,
        mtry_grid=settings.forest.mtry_grid,
        n_trees=settings.forest.n_trees,
        node_size=settings.forest.node_size,
        random_state=settings.random_state,
        n_workers=settings.selection.n_workers,
        baseline_r2=settings.selection.baseline_r2,
        strict=settings.selection.strict,
        show_progress=settings.selection.show_progress,
    )
    if model.model is None:
        raise TrainingError(model.selection_warning or "No predictor was selected")

    model.dissimilarity = fit_from_model(
        model,
        threshold_multiplier=settings.applicability.threshold_multiplier,
        use_cv_folds=settings.applicability.use_cv_folds,
    )

    products = predict_products(
        model,
        stack,
        quantiles=settings.prediction.quantiles,
        batch_size=settings.prediction.batch_size,
    )
    report = RunReport.from_run(
        model, folds=folds, train_di=model.dissimilarity, aoa_fraction=products.aoa_fraction
    )

    logger.info(
        f"Modelling finished in {format_duration(time.time() - start)}: "
        f"features={model.features}, mtry={model.mtry}, R²={model.cv_metrics['R2']:.3f}"
    )
    return PipelineResult(folds, model, history, products, report)


def run_pipeline(settings: Settings, output_dir: Path | None = None) -> PipelineResult:
    """Load inputs from ``settings.data``, model, and write every output."""
    output_dir = ensure_directory(Path(output_dir or settings.paths.output_dir))
    data = settings.data

    if data.predictor_stack is not None:
        full_stack = PredictorStack.from_file(data.predictor_stack, band_names=data.band_names)
    else:
        full_stack = PredictorStack.from_files(data.predictor_files)

    domain = load_domain(data.domain, layer=data.domain_layer, crs=full_stack.crs)
    points = PointSet.from_file(
        data.observations, data.response_column, full_stack, layer=data.observations_layer
    )
    stack = full_stack.mask(domain)

    result = run_modeling(stack, points, domain, settings)

    outputs = write_products(result.products, stack, output_dir)
    model_path = output_dir / settings.paths.model_file
    outputs["model"] = model_path
    outputs["model_summary"] = save_selected_model(result.model, model_path)
    outputs["report"] = result.report.write(output_dir / "report.txt")
    settings.to_yaml(output_dir / "config.yaml")
    outputs["config"] = output_dir / "config.yaml"

    result.outputs = outputs
    logger.info(f"Wrote {len(outputs)} outputs to {output_dir}")
    return result
