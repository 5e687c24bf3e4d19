"""Shared fixtures: a synthetic 3-band 10x10 predictor grid with observations."""

import os
from pathlib import Path
import tempfile

os.environ.setdefault("DBD_LOG_FILE", str(Path(tempfile.gettempdir()) / "dbd_mapping_tests.log"))

import numpy as np
import pandas as pd
import pytest
from rasterio.transform import from_origin
from shapely.geometry import box

from dbd_mapping.config.settings import (
    DataConfig,
    ForestConfig,
    PartitionConfig,
    SelectionConfig,
    Settings,
)
from dbd_mapping.models.qrf.forest import fit_quantile_forest
from dbd_mapping.models.selected_model import SelectedModel
from dbd_mapping.readers.point_set import PointSet
from dbd_mapping.readers.raster_stack import PredictorStack

CRS = "EPSG:32633"
TRANSFORM = from_origin(0.0, 10.0, 1.0, 1.0)


def cell_center(row: int, col: int) -> tuple[float, float]:
    """Centre of a cell on the 10x10 unit grid anchored at (0, 10)."""
    return col + 0.5, 10.0 - (row + 0.5)


@pytest.fixture
def stack() -> PredictorStack:
    """band1 holds each value 0..99 once, scattered over the grid; band2/3 are noise."""
    rng = np.random.default_rng(0)
    band1 = rng.permutation(100).reshape(10, 10).astype(float)
    band2 = rng.uniform(0, 1, (10, 10))
    band3 = rng.uniform(0, 1, (10, 10))
    return PredictorStack(
        np.stack([band1, band2, band3]), ("band1", "band2", "band3"), TRANSFORM, CRS
    )


@pytest.fixture
def domain():
    return box(0.0, 0.0, 10.0, 10.0)


@pytest.fixture
def points(stack) -> PointSet:
    """20 observations at band1 = 0, 5, ..., 95 with response 2 * band1 + noise."""
    rng = np.random.default_rng(1)
    band1 = stack.band("band1")
    coords = []
    for value in range(0, 100, 5):
        row, col = np.argwhere(band1 == value)[0]
        coords.append(cell_center(row, col))
    coords = np.array(coords)
    response = 2.0 * np.arange(0, 100, 5) + rng.normal(0.0, 1.0, 20)
    return PointSet.from_arrays(coords, response, stack)


@pytest.fixture
def regression_table():
    """30 rows: 'signal' drives the response, 'noise1'/'noise2' do not."""
    rng = np.random.default_rng(2)
    signal = np.linspace(0.0, 10.0, 30)
    features = pd.DataFrame(
        {
            "noise1": rng.uniform(0, 1, 30),
            "signal": rng.permutation(signal),
            "noise2": rng.uniform(0, 1, 30),
        }
    )
    response = 2.0 * features["signal"].to_numpy() + rng.normal(0.0, 0.2, 30)
    return features, response


@pytest.fixture
def band1_model(points) -> SelectedModel:
    """SelectedModel on band1 only, fitted directly (no selection)."""
    X = points.predictors[["band1"]]
    forest = fit_quantile_forest(
        X.to_numpy(), points.response, mtry=1, n_trees=30, node_size=2, feature_names=["band1"]
    )
    return SelectedModel(
        features=["band1"],
        mtry=1,
        model=forest,
        cv_metrics={"R2": 0.9, "MSE": 1.0, "RMSE": 1.0, "ME": 0.0},
        oof_predictions=np.zeros(len(points)),
        response=points.response,
        training_features=X.reset_index(drop=True),
        n_trees=30,
        node_size=2,
    )


@pytest.fixture
def fast_settings(tmp_path) -> Settings:
    """Small forests, 5 folds, in-process evaluation."""
    return Settings(
        data=DataConfig(predictor_stack=tmp_path / "stack.tif"),
        partition=PartitionConfig(k=5, sample_size=200),
        forest=ForestConfig(n_trees=40, node_size=2),
        selection=SelectionConfig(n_workers=1, show_progress=False),
        paths={"output_dir": tmp_path / "outputs", "log_file": tmp_path / "run.log"},
    )
