from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ============================
# Preprocessing & Model Config
# ============================


class PreprocessConfig(BaseModel):
    """Settings for the image normalization graph.

    The defaults match the retrained Inception model: images scaled to
    299x299 pixels, each RGB byte converted to float using (value - mean) / std.
    """

    input_height: int = Field(
        299,
        ge=1,
        description="Height in pixels the image is resized to.",
    )
    input_width: int = Field(
        299,
        ge=1,
        description="Width in pixels the image is resized to.",
    )
    mean: float = Field(
        0.0,
        description="Value subtracted from every channel after resizing.",
    )
    std: float = Field(
        255.0,
        gt=0.0,
        description="Value every channel is divided by after mean subtraction.",
    )
    channels: Literal[1, 3] = Field(
        3,
        description="Number of color channels requested from the JPEG decoder (1 = grayscale, 3 = RGB).",
    )


class ModelConfig(BaseModel):
    """Configuration for the pre-trained classification model."""

    model_config = ConfigDict(protected_namespaces=())

    model_path: Path = Field(
        Path("output_graph.onnx"),
        description="Serialized ONNX classification model. Relative paths are resolved against models_dir.",
    )
    labels_path: Path = Field(
        Path("output_labels.txt"),
        description="Label file, one class name per line. Relative paths are resolved against models_dir.",
    )
    input_layer: str = Field(
        "Mul",
        description="Name of the model input the normalized image is fed to.",
    )
    output_layer: str = Field(
        "final_result",
        description="Name of the model output holding the [1, N] probabilities.",
    )
    providers: List[str] = Field(
        default_factory=lambda: ["CPUExecutionProvider"],
        description="ONNX Runtime execution providers, in priority order.",
    )

    def resolve_paths(self, models_dir: Path) -> "ModelConfig":
        """Return a copy whose relative model and label paths live under ``models_dir``."""
        return self.model_copy(
            update={
                "model_path": models_dir / self.model_path,
                "labels_path": models_dir / self.labels_path,
            }
        )


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocess: PreprocessConfig = Field(default_factory=PreprocessConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)


# ============================
# Settings (paths, env)
# ============================


class Settings(BaseSettings):
    """Environment-level settings: logging level and common directories."""

    log_level: str = "INFO"

    # Project root: <repo_root> (assumes imagelabel/ is under this)
    project_root: Path = Path(__file__).resolve().parents[1]

    configs_dir: Path = project_root / "configs"
    models_dir: Path = project_root / "models"

    model_config = SettingsConfigDict(
        env_prefix="IMAGELABEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()


# ============================
# Loader
# ============================


def load_app_config(config_path: str | Path) -> AppConfig:
    """Load application configuration from a YAML file.

    The following sections are recognised, both optional:
        - preprocess
        - model
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    preprocess_cfg = PreprocessConfig(**(raw.get("preprocess") or {}))
    model_cfg = ModelConfig(**(raw.get("model") or {}))

    return AppConfig(preprocess=preprocess_cfg, model=model_cfg)
