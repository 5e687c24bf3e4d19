"""Saving and loading the selected model."""

import json
from pathlib import Path

import joblib

from dbd_mapping.models.selected_model import SelectedModel
from dbd_mapping.utils.logger import setup_logger

logger = setup_logger("model_io")


def save_selected_model(model: SelectedModel, path: Path) -> Path:
    """Dump the model with joblib and write a JSON summary next to it.

    Args:
        model: Selected model (forest, features, history, dissimilarity)
        path: Target ``.joblib`` file

    Returns:
        Path of the JSON summary
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(model, path, compress=3)

    summary_path = path.with_suffix(".json")
    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(model.summary(), f, indent=2, allow_nan=False)

    logger.info(f"Saved selected model ({model.features}, mtry={model.mtry}) to {path}")
    return summary_path


def load_selected_model(path: Path) -> SelectedModel:
    """Load a model written by ``save_selected_model``."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Model file not found: {path}")

    model = joblib.load(path)
    if not isinstance(model, SelectedModel):
        raise TypeError(f"{path} does not contain a SelectedModel (got {type(model).__name__})")

    logger.info(f"Loaded selected model {model.features} (mtry={model.mtry}) from {path}")
    return model
