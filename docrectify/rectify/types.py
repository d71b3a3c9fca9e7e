"""
Data types and structures for the Rectify module.

Provides type-safe containers for tensor descriptors and rectification
results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class RectificationMethod(str, Enum):
    """How the model output is interpreted."""

    UVDOC_MASK = "uvdoc"  # Foreground mask in channel 2, fitted with a min-area rect
    DOCTR_CORNERS = "doctr"  # First 8 values are 4 regressed (x, y) corners


class DecisionStatus(Enum):
    """Rectification outcomes."""

    RECTIFIED = "RECTIFIED"
    PASSTHROUGH = "PASSTHROUGH"


class RejectionReason(Enum):
    """Specific reasons for passing the original image through."""

    NONE = "None"  # Rectified successfully
    DISABLED = "Disabled"  # Rectifier disabled or no session
    NORMALIZATION_FAILED = "Normalization Failed"  # Resize/normalize error
    INFERENCE_FAILED = "Inference Failed"  # Model run error
    UNEXPECTED_OUTPUT_SHAPE = "Unexpected Output Shape"  # Output tensor contract broken
    LOW_MASK_COVERAGE = "Low Mask Coverage"  # Foreground fraction below minimum
    TOO_FEW_POINTS = "Too Few Points"  # Foreground point count below minimum
    NO_RECTANGLE = "No Rectangle"  # Rectangle fitting produced no quad
    DEGENERATE_SHAPE = "Degenerate Shape"  # Corners too close or edges collapsed
    SMALL_AREA = "Small Area"  # Quad area ratio below minimum
    INVALID_ASPECT_RATIO = "Invalid Aspect Ratio"  # Aspect ratio out of bounds
    INVALID_OUTPUT_SIZE = "Invalid Output Size"  # Source-space edges collapsed
    WARP_FAILED = "Warp Failed"  # Singular homography or invalid warp input


@dataclass(frozen=True)
class TensorDescriptor:
    """
    Name and shape of a model input or output.

    Dynamic dimensions are reported as None.
    """

    name: str
    shape: Tuple[Optional[int], ...]

    @property
    def rank(self) -> int:
        return len(self.shape)


@dataclass
class RectificationResult:
    """
    Output from the rectification pipeline.

    Attributes:
        image: Rectified image, or the original image on pass-through.
        status: RECTIFIED or PASSTHROUGH.
        rejection_reason: Why the original image was passed through.
        error: Recoverable per-call error (normalisation, inference or
            output shape), None otherwise.
        model_quad: Quadrilateral in model-input coordinates, if one was found.
        source_quad: Quadrilateral in original-image coordinates, if rescaled.
        coverage: Mask foreground fraction (mask method only).
        output_size: (width, height) of the warped canvas, if computed.
    """

    image: Optional[np.ndarray]
    status: DecisionStatus
    rejection_reason: RejectionReason
    error: Optional[Exception] = None
    model_quad: Optional[np.ndarray] = None
    source_quad: Optional[np.ndarray] = None
    coverage: Optional[float] = None
    output_size: Optional[Tuple[int, int]] = field(default=None)

    def is_rectified(self) -> bool:
        """Check if the image was rectified."""
        return self.status == DecisionStatus.RECTIFIED

    def get_error_message(self) -> str:
        """Get human-readable description of the outcome."""
        if self.is_rectified():
            width, height = self.output_size or (0, 0)
            return f"Rectified to {width}x{height}"

        reason_messages = {
            RejectionReason.DISABLED: "Rectification disabled",
            RejectionReason.LOW_MASK_COVERAGE: (
                f"Mask coverage {self.coverage:.3f} below minimum"
                if self.coverage is not None
                else "Mask coverage below minimum"
            ),
        }
        if self.error is not None:
            return f"{self.rejection_reason.value}: {self.error}"
        return reason_messages.get(
            self.rejection_reason, f"Passed through: {self.rejection_reason.value}"
        )
