"""Tests for configuration settings."""

from pathlib import Path

import pytest
import yaml

from dbd_mapping.config.settings import (
    ApplicabilityConfig,
    DataConfig,
    ForestConfig,
    PartitionConfig,
    PredictionConfig,
    SelectionConfig,
    Settings,
)


class TestDataConfig:
    """Test input layer configuration."""

    def test_stack_source(self):
        """A single multi-band stack is a valid predictor source."""
        config = DataConfig(predictor_stack="stack.tif")

        assert config.predictor_stack == Path("stack.tif")
        assert config.response_column == "DBD"
        assert config.predictor_files == {}

    def test_files_source(self):
        """Per-band files are a valid predictor source."""
        config = DataConfig(predictor_files={"slope": "slope.tif", "depth": "depth.tif"})
        assert list(config.predictor_files) == ["slope", "depth"]

    def test_exactly_one_source(self):
        """Neither or both predictor sources are rejected."""
        with pytest.raises(ValueError, match="exactly one"):
            DataConfig()

        with pytest.raises(ValueError, match="exactly one"):
            DataConfig(predictor_stack="stack.tif", predictor_files={"a": "a.tif"})


class TestPartitionConfig:
    """Test fold settings."""

    def test_default_values(self):
        """Test default partition configuration."""
        config = PartitionConfig()

        assert config.k == 10
        assert config.sample_size == 1000
        assert config.clustering == "hierarchical"
        assert config.max_fold_fraction == 0.5

    def test_invalid_values(self):
        """k below 2 and unknown clustering methods are rejected."""
        with pytest.raises(ValueError):
            PartitionConfig(k=1)

        with pytest.raises(ValueError):
            PartitionConfig(clustering="dbscan")


class TestForestConfig:
    """Test forest settings."""

    def test_default_values(self):
        config = ForestConfig()

        assert config.n_trees == 500
        assert config.node_size == 5
        assert config.mtry_grid is None

    def test_mtry_grid_validation(self):
        """mtry values are sorted and deduplicated; non-positive values fail."""
        assert ForestConfig(mtry_grid=[3, 1, 3]).mtry_grid == [1, 3]

        with pytest.raises(ValueError, match="must be >= 1"):
            ForestConfig(mtry_grid=[0, 2])

        with pytest.raises(ValueError, match="must not be empty"):
            ForestConfig(mtry_grid=[])


class TestPredictionConfig:
    """Test prediction settings."""

    def test_default_values(self):
        config = PredictionConfig()

        assert config.quantiles == [0.05, 0.5, 0.95]
        assert config.batch_size == 50_000

    def test_quantiles_validation(self):
        """Test quantiles validation."""
        assert PredictionConfig(quantiles=[0.9, 0.5, 0.1]).quantiles == [0.1, 0.5, 0.9]

        with pytest.raises(ValueError, match="Quantiles must include 0.5"):
            PredictionConfig(quantiles=[0.1, 0.9])

        with pytest.raises(ValueError, match="All quantiles must be between 0 and 1"):
            PredictionConfig(quantiles=[0.1, 0.5, 1.5])


class TestSettings:
    """Test main settings class."""

    def test_default_sections(self):
        """Only the data section is required."""
        settings = Settings(data=DataConfig(predictor_stack="stack.tif"))

        assert settings.random_state == 42
        assert isinstance(settings.selection, SelectionConfig)
        assert isinstance(settings.applicability, ApplicabilityConfig)
        assert settings.applicability.threshold_multiplier == 3.0
        assert settings.selection.baseline_r2 == 0.0

    def test_data_required(self):
        with pytest.raises(ValueError):
            Settings()

    def test_yaml_roundtrip(self, tmp_path):
        """Test saving and loading settings from YAML."""
        settings = Settings(
            data=DataConfig(predictor_stack="stack.tif", response_column="dbd_g_cm3"),
            partition=PartitionConfig(k=5),
            forest=ForestConfig(n_trees=100, mtry_grid=[1, 2]),
            random_state=7,
        )
        config_path = tmp_path / "nested" / "config.yaml"
        settings.to_yaml(config_path)

        with open(config_path) as f:
            raw = yaml.safe_load(f)
        assert raw["data"]["response_column"] == "dbd_g_cm3"
        assert raw["forest"]["mtry_grid"] == [1, 2]

        loaded = Settings.from_yaml(config_path)
        assert loaded == settings

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Settings.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_not_a_mapping(self, tmp_path):
        """A YAML list is not a valid configuration."""
        config_path = tmp_path / "list.yaml"
        config_path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="Expected YAML mapping"):
            Settings.from_yaml(config_path)
