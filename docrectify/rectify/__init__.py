"""
Rectify module: document page detection and perspective correction.

Pipeline:
1. Resize and normalise the image for the layout model
2. Run the model (UVDoc-style mask or DocTR-style corner regression)
3. Fit and validate the page quadrilateral
4. Warp the page to a fronto-parallel rectangle

Rejections never fail the caller: the original image is passed through.
"""

from docrectify.rectify.config_loader import (
    RectifierConfig,
    default_model_path,
    get_default_config,
    load_config,
)
from docrectify.rectify.errors import (
    InferenceError,
    ModelNotFoundError,
    NilImageError,
    NormalizationError,
    RectifyError,
    SessionInitError,
    UnexpectedIOShapeError,
    UnexpectedOutputShapeError,
)
from docrectify.rectify.processor import Rectifier, compute_output_size
from docrectify.rectify.session import (
    InferenceSession,
    OnnxInferenceSession,
    open_session,
)
from docrectify.rectify.types import (
    DecisionStatus,
    RectificationMethod,
    RectificationResult,
    RejectionReason,
    TensorDescriptor,
)

__all__ = [
    "Rectifier",
    "compute_output_size",
    "RectifierConfig",
    "default_model_path",
    "get_default_config",
    "load_config",
    "InferenceSession",
    "OnnxInferenceSession",
    "open_session",
    "DecisionStatus",
    "RectificationMethod",
    "RectificationResult",
    "RejectionReason",
    "TensorDescriptor",
    "RectifyError",
    "ModelNotFoundError",
    "SessionInitError",
    "UnexpectedIOShapeError",
    "NormalizationError",
    "InferenceError",
    "UnexpectedOutputShapeError",
    "NilImageError",
]
