"""Configuration management for DBD mapping runs."""

from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from dbd_mapping.utils.helpers import load_yaml_to_dict, save_dict_to_yaml


class DataConfig(BaseModel):
    """Input layers."""

    predictor_stack: Optional[Path] = Field(
        default=None,
        description="Multi-band raster; band descriptions are used as predictor names",
    )
    predictor_files: Dict[str, Path] = Field(
        default_factory=dict,
        description="Predictor name -> single-band raster (co-registered)",
    )
    band_names: Optional[List[str]] = Field(
        default=None,
        description="Explicit band names for predictor_stack",
    )
    observations: Path = Field(
        default=Path("data/dbd_observations.gpkg"),
        description="Point layer with the response column",
    )
    observations_layer: Optional[str] = None
    response_column: str = Field(default="DBD", description="Numeric response field")
    domain: Path = Field(
        default=Path("data/domain.gpkg"),
        description="Polygon layer defining the prediction domain",
    )
    domain_layer: Optional[str] = None

    @model_validator(mode="after")
    def validate_predictor_source(self) -> "DataConfig":
        """Exactly one predictor source must be configured."""
        has_stack = self.predictor_stack is not None
        has_files = bool(self.predictor_files)
        if has_stack == has_files:
            raise ValueError(
                "Configure exactly one of predictor_stack or predictor_files"
            )
        return self


class PartitionConfig(BaseModel):
    """Nearest-neighbour distance matching fold settings."""

    k: int = Field(default=10, ge=2)
    sample_size: int = Field(default=1000, ge=10)
    clustering: Literal["hierarchical", "kmeans"] = "hierarchical"
    max_fold_fraction: float = Field(default=0.5, gt=0.0, le=1.0)


class ForestConfig(BaseModel):
    """Quantile regression forest settings."""

    n_trees: int = Field(default=500, ge=1)
    node_size: int = Field(default=5, ge=1)
    mtry_grid: Optional[List[int]] = None

    @field_validator("mtry_grid")
    @classmethod
    def validate_mtry_grid(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        """mtry values are positive; duplicates are dropped."""
        if v is None:
            return v
        if not v:
            raise ValueError("mtry_grid must not be empty")
        if any(m < 1 for m in v):
            raise ValueError("mtry_grid values must be >= 1")
        return sorted(set(v))


class SelectionConfig(BaseModel):
    """Forward feature selection settings."""

    baseline_r2: float = 0.0
    strict: bool = False
    n_workers: Optional[int] = Field(default=None, ge=1)
    show_progress: bool = True


class ApplicabilityConfig(BaseModel):
    """Area of applicability settings."""

    threshold_multiplier: float = Field(default=3.0, gt=0.0)
    use_cv_folds: bool = False


class PredictionConfig(BaseModel):
    """Full-domain prediction settings."""

    quantiles: List[float] = Field(default=[0.05, 0.5, 0.95])
    batch_size: int = Field(default=50_000, ge=1)

    @field_validator("quantiles")
    @classmethod
    def validate_quantiles(cls, v: List[float]) -> List[float]:
        """Validate quantile values."""
        if not all(0 <= q <= 1 for q in v):
            raise ValueError("All quantiles must be between 0 and 1")
        if 0.5 not in v:
            raise ValueError("Quantiles must include 0.5 (median)")
        return sorted(set(v))


class PathConfig(BaseModel):
    """Output locations."""

    output_dir: Path = Field(default=Path("outputs"))
    model_file: str = "selected_model.joblib"
    log_file: Path = Field(default=Path("logs/dbd_mapping.log"))


class Settings(BaseModel):
    """Main settings class containing all configuration."""

    data: DataConfig
    partition: PartitionConfig = Field(default_factory=PartitionConfig)
    forest: ForestConfig = Field(default_factory=ForestConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    applicability: ApplicabilityConfig = Field(default_factory=ApplicabilityConfig)
    prediction: PredictionConfig = Field(default_factory=PredictionConfig)
    paths: PathConfig = Field(default_factory=PathConfig)
    random_state: int = 42

    @classmethod
    def from_yaml(cls, config_path: Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_to_dict(Path(config_path)))

    def to_yaml(self, output_path: Path) -> None:
        """Save settings to a YAML file."""
        save_dict_to_yaml(self.model_dump(mode="json"), Path(output_path))
