"""Quantile forest, spatial CV and the selected model."""

from dbd_mapping.models.io import load_selected_model, save_selected_model
from dbd_mapping.models.selected_model import CandidateResult, SelectedModel, SelectionRound

__all__ = [
    "CandidateResult",
    "SelectedModel",
    "SelectionRound",
    "load_selected_model",
    "save_selected_model",
]
