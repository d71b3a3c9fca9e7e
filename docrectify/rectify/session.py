"""Inference session abstraction for the Rectify module.

The rectifier only needs a narrow capability from its model backend:
accept one tensor, return one tensor, and release resources on close.
``InferenceSession`` captures that contract so the geometry pipeline can be
driven by any backend (or a fake in tests); ``OnnxInferenceSession`` is the
onnxruntime implementation.

Example:
    >>> session = open_session(Path("models/layout/uvdoc.onnx"), num_threads=2)
    >>> output = session.run(tensor)
    >>> session.close()
"""

import logging
from pathlib import Path
from typing import Optional, Protocol, Tuple

import numpy as np

from docrectify.rectify.errors import (
    InferenceError,
    ModelNotFoundError,
    SessionInitError,
    UnexpectedIOShapeError,
)
from docrectify.rectify.types import TensorDescriptor

logger = logging.getLogger(__name__)


class InferenceSession(Protocol):
    """Single-input, single-output model session."""

    input: TensorDescriptor
    output: TensorDescriptor

    def run(self, tensor: np.ndarray) -> np.ndarray:
        """Run the model on one input tensor and return its only output."""
        ...

    def close(self) -> None:
        """Release backend resources. Must be idempotent."""
        ...


def _shape_of(node) -> Tuple[Optional[int], ...]:
    """Convert an onnxruntime node shape, mapping symbolic dims to None."""
    return tuple(dim if isinstance(dim, int) else None for dim in (node.shape or []))


class OnnxInferenceSession:
    """onnxruntime-backed InferenceSession.

    Args:
        model_path: Path to the ONNX model file.
        num_threads: Intra-op thread count; 0 keeps the onnxruntime default.

    Raises:
        SessionInitError: If onnxruntime is missing or the session fails to load.
        UnexpectedIOShapeError: If the model does not have exactly one input
            and one output.
    """

    def __init__(self, model_path: Path, num_threads: int = 0):
        try:
            import onnxruntime as ort
        except ImportError as e:
            logger.error(
                "Failed to import onnxruntime. Install with: pip install onnxruntime"
            )
            raise SessionInitError(
                "onnxruntime not installed. Run: pip install onnxruntime"
            ) from e

        try:
            options = ort.SessionOptions()
            if num_threads > 0:
                options.intra_op_num_threads = num_threads
            session = ort.InferenceSession(
                str(model_path),
                sess_options=options,
                providers=["CPUExecutionProvider"],
            )
        except Exception as e:
            logger.error(f"Failed to initialize ONNX session for {model_path}: {e}")
            raise SessionInitError(f"ONNX session initialization failed: {e}") from e

        inputs = session.get_inputs()
        outputs = session.get_outputs()
        if len(inputs) != 1 or len(outputs) != 1:
            raise UnexpectedIOShapeError(
                f"Unexpected model I/O (in:{len(inputs)} out:{len(outputs)}), "
                "expected exactly one input and one output"
            )

        self._session = session
        self.model_path = Path(model_path)
        self.input = TensorDescriptor(name=inputs[0].name, shape=_shape_of(inputs[0]))
        self.output = TensorDescriptor(
            name=outputs[0].name, shape=_shape_of(outputs[0])
        )
        logger.info(
            f"Loaded rectification model {self.model_path.name} "
            f"(input={self.input.name}{list(self.input.shape)}, "
            f"output={self.output.name}{list(self.output.shape)})"
        )

    @property
    def closed(self) -> bool:
        return self._session is None

    def run(self, tensor: np.ndarray) -> np.ndarray:
        if self._session is None:
            raise InferenceError("Session is closed")
        try:
            outputs = self._session.run([self.output.name], {self.input.name: tensor})
        except Exception as e:
            raise InferenceError(f"Model inference failed: {e}") from e
        if not outputs or outputs[0] is None:
            raise InferenceError("No output from model")
        return np.asarray(outputs[0])

    def close(self) -> None:
        if self._session is not None:
            logger.debug(f"Releasing ONNX session for {self.model_path.name}")
        self._session = None


def open_session(model_path: Path, num_threads: int = 0) -> OnnxInferenceSession:
    """Open an onnxruntime session after checking the model file exists.

    Raises:
        ModelNotFoundError: If model_path does not point to a file.
        SessionInitError: If the session cannot be created.
        UnexpectedIOShapeError: If the model I/O contract is not 1-in/1-out.
    """
    model_path = Path(model_path)
    if not model_path.is_file():
        raise ModelNotFoundError(f"Rectify model not found: {model_path}")
    return OnnxInferenceSession(model_path, num_threads=num_threads)
