"""Tests for selected model serialization."""

import json

import joblib
import numpy as np
import pytest

from dbd_mapping.applicability.aoa import dissimilarity_index, fit_from_model
from dbd_mapping.models.io import load_selected_model, save_selected_model
from dbd_mapping.models.selected_model import CandidateResult, SelectionRound


class TestModelIO:
    """Save and reload a SelectedModel."""

    def test_roundtrip_predictions(self, band1_model, tmp_path):
        """A reloaded model predicts exactly like the original."""
        query = np.linspace(0, 99, 25).reshape(-1, 1)
        band1_model.dissimilarity = fit_from_model(band1_model)
        path = tmp_path / "models" / "selected_model.joblib"

        summary_path = save_selected_model(band1_model, path)
        loaded = load_selected_model(path)

        np.testing.assert_array_equal(
            loaded.predict_quantiles(query, [0.05, 0.5, 0.95]),
            band1_model.predict_quantiles(query, [0.05, 0.5, 0.95]),
        )
        assert loaded.features == band1_model.features
        assert loaded.mtry == band1_model.mtry
        np.testing.assert_array_equal(
            dissimilarity_index(loaded.dissimilarity, query),
            dissimilarity_index(band1_model.dissimilarity, query),
        )
        assert summary_path == path.with_suffix(".json")

    def test_summary_sidecar(self, band1_model, tmp_path):
        summary_path = save_selected_model(band1_model, tmp_path / "model.joblib")

        with open(summary_path) as f:
            summary = json.load(f)

        assert summary["features"] == ["band1"]
        assert summary["mtry"] == 1
        assert summary["validated"] is True
        assert summary["n_observations"] == len(band1_model.response)

    def test_summary_is_strict_json(self, band1_model, tmp_path):
        """Non-finite R² values in the history are written as null."""
        winner = CandidateResult(
            features=("band1",),
            mtry=1,
            r2=float("nan"),
            mse=1.0,
            rmse=1.0,
            me=0.0,
            oof_predictions=np.zeros(3),
        )
        band1_model.history = [
            SelectionRound(
                index=1, candidates=(winner,), winner=winner, accepted=False, previous_best_r2=-np.inf
            )
        ]
        band1_model.cv_metrics["R2"] = float("nan")

        summary_path = save_selected_model(band1_model, tmp_path / "model.joblib")

        def reject(constant):
            raise ValueError(f"non-standard JSON constant {constant}")

        summary = json.loads(summary_path.read_text(encoding="utf-8"), parse_constant=reject)
        assert summary["history"][0]["previous_best_R2"] is None
        assert summary["history"][0]["R2"] is None
        assert summary["cv_metrics"]["R2"] is None
        assert summary["history"][0]["mtry"] == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_selected_model(tmp_path / "missing.joblib")

    def test_wrong_content(self, tmp_path):
        path = tmp_path / "other.joblib"
        joblib.dump({"not": "a model"}, path)

        with pytest.raises(TypeError, match="SelectedModel"):
            load_selected_model(path)
