"""
Exception hierarchy for the Rectify module.

Construction-time errors (missing model, broken session, bad model I/O)
are raised. Per-call errors (normalisation, inference, output shape) are
attached to the RectificationResult so that callers always receive a
usable image.
"""


class RectifyError(Exception):
    """Base class for all rectification errors."""


class ModelNotFoundError(RectifyError, FileNotFoundError):
    """The configured model file does not exist."""


class SessionInitError(RectifyError, RuntimeError):
    """The inference backend could not be initialised."""


class UnexpectedIOShapeError(RectifyError, ValueError):
    """The model does not expose exactly one input and one output."""


class NormalizationError(RectifyError):
    """The image could not be resized or normalised for the model."""


class InferenceError(RectifyError):
    """Running the model failed."""


class UnexpectedOutputShapeError(RectifyError):
    """The model output does not match the configured method's contract."""


class NilImageError(RectifyError, ValueError):
    """An active rectifier was given no image."""
