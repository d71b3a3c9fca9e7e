"""Configuration loader with Pydantic validation for the Rectify module.

This module provides type-safe configuration loading from YAML files using
Pydantic models for validation and default values, plus model path
resolution helpers.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

from docrectify.rectify.types import RectificationMethod

logger = logging.getLogger(__name__)

# Environment variable overriding the models directory
ENV_MODELS_DIR = "DOCRECTIFY_MODELS_DIR"
DEFAULT_MODELS_DIR = "models"
LAYOUT_SUBDIR = "layout"

MODEL_FILENAMES = {
    RectificationMethod.UVDOC_MASK: "uvdoc.onnx",
    RectificationMethod.DOCTR_CORNERS: "doctr.onnx",
}

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


def get_models_dir(models_dir: Optional[str] = None) -> Path:
    """Resolve the models directory: argument, then environment, then ./models."""
    if models_dir:
        return Path(models_dir)
    env_dir = os.environ.get(ENV_MODELS_DIR)
    if env_dir:
        return Path(env_dir)
    return Path(DEFAULT_MODELS_DIR)


def resolve_model_file(models_dir: Path, filename: str) -> Path:
    """Prefer <models_dir>/layout/<filename>, falling back to the flat layout."""
    organized = models_dir / LAYOUT_SUBDIR / filename
    if organized.exists():
        return organized
    return models_dir / filename


def default_model_path(
    method: RectificationMethod = RectificationMethod.UVDOC_MASK,
    models_dir: Optional[str] = None,
) -> Path:
    """Get the default model path for a rectification method.

    Example:
        >>> default_model_path(RectificationMethod.DOCTR_CORNERS, "/opt/models").name
        'doctr.onnx'
    """
    return resolve_model_file(get_models_dir(models_dir), MODEL_FILENAMES[method])


class RectifierConfig(BaseModel):
    """Rectifier configuration.

    Created once at startup and immutable afterwards; use
    ``update_model_path`` or ``model_copy`` for explicit reconfiguration.

    Attributes:
        enabled: Run rectification at all; disabled rectifiers pass images through
        method: Model output interpretation (uvdoc mask or doctr corners)
        model_path: Path to the ONNX model (defaults per method)
        mask_threshold: Mask probability at or above which a pixel is foreground
        output_height: Target output height in pixels (<= 0 means 1024)
        num_threads: Intra-op threads for inference (0 = backend default)
        min_mask_coverage: Minimum foreground fraction of the mask
        min_rect_area_ratio: Minimum quad area as a fraction of the model input
        min_rect_aspect: Minimum acceptable width/height ratio
        max_rect_aspect: Maximum acceptable width/height ratio
        min_corner_distance_ratio: Minimum corner spacing as a fraction of input width
        min_foreground_points: Minimum number of foreground mask pixels
        model_max_side: Maximum model input side (downscale only)
        model_min_side: Minimum model input side
        debug_dir: If set, debug PNGs are written here
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    enabled: bool = False
    method: RectificationMethod = RectificationMethod.UVDOC_MASK
    model_path: Path
    mask_threshold: float = Field(default=0.5, gt=0.0, le=1.0)
    output_height: int = 1024
    num_threads: int = Field(default=0, ge=0)
    min_mask_coverage: float = Field(default=0.05, gt=0.0, le=1.0)
    min_rect_area_ratio: float = Field(default=0.20, gt=0.0, le=1.0)
    min_rect_aspect: float = Field(default=0.2, gt=0.0)
    max_rect_aspect: float = Field(default=8.0, gt=0.0)
    min_corner_distance_ratio: float = Field(default=0.05, ge=0.0, lt=1.0)
    min_foreground_points: int = Field(default=100, ge=0)
    model_max_side: int = Field(default=1024, ge=32)
    model_min_side: int = Field(default=32, ge=1)
    debug_dir: Optional[Path] = None

    @model_validator(mode="before")
    @classmethod
    def _default_model_path(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("model_path"):
            data = dict(data)
            method = RectificationMethod(data.get("method", RectificationMethod.UVDOC_MASK))
            data["model_path"] = default_model_path(method)
        return data

    @model_validator(mode="after")
    def _check_aspect_bounds(self) -> "RectifierConfig":
        if self.min_rect_aspect >= self.max_rect_aspect:
            raise ValueError(
                f"min_rect_aspect ({self.min_rect_aspect}) must be less than "
                f"max_rect_aspect ({self.max_rect_aspect})"
            )
        if self.model_min_side > self.model_max_side:
            raise ValueError(
                f"model_min_side ({self.model_min_side}) must not exceed "
                f"model_max_side ({self.model_max_side})"
            )
        return self

    def update_model_path(self, models_dir: Optional[str]) -> "RectifierConfig":
        """Relocate the model under a new models directory.

        The filename component of the current model path is kept; if it has
        none, the method's default filename is used. An empty models_dir
        returns this configuration unchanged.

        Example:
            >>> cfg = RectifierConfig(model_path="/old/dir/uvdoc.onnx")
            >>> str(cfg.update_model_path("/new/dir").model_path)
            '/new/dir/uvdoc.onnx'
        """
        if not models_dir:
            return self
        filename = self.model_path.name
        if filename in ("", ".", "/"):
            filename = MODEL_FILENAMES[self.method]
        new_path = resolve_model_file(Path(models_dir), filename)
        logger.debug(f"Relocated rectification model {self.model_path} -> {new_path}")
        return self.model_copy(update={"model_path": new_path})


def load_config(config_path: Path) -> RectifierConfig:
    """Load and validate rectifier configuration from a YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated RectifierConfig

    Raises:
        FileNotFoundError: If config file does not exist
        yaml.YAMLError: If YAML parsing fails
        pydantic.ValidationError: If configuration validation fails
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.debug(f"Loading rectify config from {config_path}")
    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    config = RectifierConfig(**raw)
    logger.info(
        f"Loaded rectify configuration (enabled={config.enabled}, "
        f"method={config.method.value})"
    )
    return config


def get_default_config() -> RectifierConfig:
    """Get default configuration from the bundled config.yaml file.

    Falls back to hardcoded defaults if the file is missing.
    """
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return RectifierConfig()
