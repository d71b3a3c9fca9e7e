"""
Main processor for the Rectify module.

Orchestrates the per-image pipeline:
1. Resize and normalise the image for the model
2. Run inference (serialised on the shared session)
3. Interpret the output as a quadrilateral (mask or corner method)
4. Validate the quadrilateral
5. Rescale it to the original image and compute the output size
6. Warp

Any rejection or recoverable error passes the original image through.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Optional, Tuple

import numpy as np

from docrectify.geometry import (
    minimum_area_rectangle,
    order_quadrilateral,
    scale_points,
    warp_perspective,
)
from docrectify.rectify.config_loader import RectifierConfig, get_default_config
from docrectify.rectify.debug import dump_compare_png, dump_mask_png, dump_overlay_png
from docrectify.rectify.errors import (
    InferenceError,
    NilImageError,
    NormalizationError,
    UnexpectedOutputShapeError,
)
from docrectify.rectify.preprocessing import (
    SIZE_MULTIPLE,
    normalize_image,
    resize_for_model,
)
from docrectify.rectify.session import InferenceSession, open_session
from docrectify.rectify.types import (
    DecisionStatus,
    RectificationMethod,
    RectificationResult,
    RejectionReason,
)
from docrectify.rectify.validator import (
    calculate_average_dimensions,
    validate_mask_coverage,
    validate_quadrilateral,
)

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_HEIGHT = 1024
MASK_CHANNEL = 2
CORNER_VALUES = 8


def _floor_to_multiple(value: int, multiple: int = SIZE_MULTIPLE) -> int:
    return max((value // multiple) * multiple, multiple)


def compute_output_size(
    quad: np.ndarray, output_height: int = DEFAULT_OUTPUT_HEIGHT
) -> Optional[Tuple[int, int]]:
    """
    Compute the canonical (width, height) of the rectified output.

    The aspect ratio comes from the averaged opposing edges of the quad;
    the height is output_height (1024 if <= 0). Both sides are floored to
    a multiple of 32, minimum 32.

    Returns:
        (width, height), or None if either averaged edge is <= 1.

    Example:
        >>> compute_output_size(np.array([[0, 0], [200, 0], [200, 100], [0, 100]]), 512)
        (1024, 512)
    """
    avg_width, avg_height = calculate_average_dimensions(quad)
    if avg_width <= 1 or avg_height <= 1:
        return None

    target_height = output_height if output_height > 0 else DEFAULT_OUTPUT_HEIGHT
    target_width = int(round(avg_width / avg_height * target_height))
    return _floor_to_multiple(target_width), _floor_to_multiple(target_height)


def mask_boundary_points(foreground: np.ndarray) -> np.ndarray:
    """
    Reduce a boolean mask to the leftmost and rightmost foreground pixel of each row.

    The convex hull of the result equals the hull of all foreground pixels,
    so the minimum-area rectangle is unchanged while far fewer points are
    passed to it.

    Returns:
        Array of (x, y) pixel coordinates, shape (N, 2).
    """
    rows = np.flatnonzero(foreground.any(axis=1))
    if len(rows) == 0:
        return np.empty((0, 2), dtype=np.float64)

    width = foreground.shape[1]
    band = foreground[rows]
    left = np.argmax(band, axis=1)
    right = width - 1 - np.argmax(band[:, ::-1], axis=1)

    xs = np.concatenate([left, right])
    ys = np.concatenate([rows, rows])
    return np.stack([xs, ys], axis=1).astype(np.float64)


class Rectifier:
    """
    Document rectifier: detects the page quadrilateral with a layout model
    and warps it to a fronto-parallel rectangle.

    Construction acquires the inference session (when enabled); release it
    with ``close()`` or by using the rectifier as a context manager. Calls
    to ``process`` may come from several threads; model inference is
    serialised on an internal lock.

    Example:
        >>> config = RectifierConfig(enabled=True, model_path="models/uvdoc.onnx")
        >>> with Rectifier(config) as rectifier:
        ...     result = rectifier.process(cv2.imread("page.jpg"))
        ...     print(result.get_error_message())
        Rectified to 768x1024
    """

    def __init__(
        self,
        config: Optional[RectifierConfig] = None,
        session: Optional[InferenceSession] = None,
    ):
        """
        Initialize the rectifier.

        Args:
            config: Rectifier configuration. If None, the bundled defaults are used.
            session: Pre-built inference session. If None and the rectifier is
                enabled, an onnxruntime session is opened from config.model_path.

        Raises:
            ModelNotFoundError: If enabled and the model file does not exist.
            SessionInitError: If the inference backend fails to initialise.
            UnexpectedIOShapeError: If the model is not single-input/single-output.
        """
        self.config = config if config is not None else get_default_config()
        self._lock = threading.Lock()
        self._session: Optional[InferenceSession] = None

        if not self.config.enabled:
            logger.info("Rectifier disabled, images will be passed through")
            return

        if session is None:
            session = open_session(self.config.model_path, self.config.num_threads)
        self._session = session
        logger.info(
            f"Rectifier ready (method={self.config.method.value}, "
            f"model={Path(self.config.model_path).name})"
        )

    @property
    def enabled(self) -> bool:
        """True when rectification is configured on and the session is open."""
        return self.config.enabled and self._session is not None

    def close(self) -> None:
        """Release the inference session. Safe to call more than once."""
        with self._lock:
            session, self._session = self._session, None
        if session is not None:
            session.close()
            logger.info("Rectifier session closed")

    def __enter__(self) -> "Rectifier":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def apply(self, image: Optional[np.ndarray]) -> Optional[np.ndarray]:
        """Rectify an image and return only the output image."""
        return self.process(image).image

    def process(self, image: Optional[np.ndarray]) -> RectificationResult:
        """
        Execute the rectification pipeline on one image.

        Args:
            image: Image array (H, W), (H, W, 3) or (H, W, 4), uint8, BGR(A).

        Returns:
            RectificationResult with the rectified image, or the original
            image plus the rejection reason (and recoverable error, if any).

        Raises:
            NilImageError: If the rectifier is enabled and image is None.
        """
        if not self.enabled:
            return self._passthrough(image, RejectionReason.DISABLED)
        if image is None:
            raise NilImageError("Image is None")

        config = self.config

        # Stage 1: Resize & normalise
        try:
            resized = resize_for_model(
                image, config.model_max_side, config.model_min_side
            )
            tensor, width, height = normalize_image(resized)
        except NormalizationError as e:
            logger.error(f"Rectification normalisation failed: {e}")
            return self._passthrough(
                image, RejectionReason.NORMALIZATION_FAILED, error=e
            )
        orig_height, orig_width = image.shape[:2]

        # Stage 2: Inference
        try:
            output = self._run(tensor)
        except InferenceError as e:
            logger.error(f"Rectification inference failed: {e}")
            return self._passthrough(image, RejectionReason.INFERENCE_FAILED, error=e)

        # Stage 3: Interpret output
        coverage = None
        try:
            if config.method == RectificationMethod.UVDOC_MASK:
                quad, reason, coverage = self._quad_from_mask(output, width, height)
            else:
                quad, reason = self._quad_from_corners(output, width, height)
        except UnexpectedOutputShapeError as e:
            logger.error(f"Rectification output rejected: {e}")
            return self._passthrough(
                image, RejectionReason.UNEXPECTED_OUTPUT_SHAPE, error=e
            )
        if quad is None:
            return self._passthrough(image, reason, coverage=coverage)

        # Stage 4: Validate in model-input space
        quad = order_quadrilateral(quad)
        reason = validate_quadrilateral(quad, width, height, config)
        if reason != RejectionReason.NONE:
            return self._passthrough(
                image, reason, model_quad=quad, coverage=coverage
            )

        # Stage 5: Rescale to the original image
        source_quad = scale_points(quad, orig_width / width, orig_height / height)
        output_size = compute_output_size(source_quad, config.output_height)
        if output_size is None:
            logger.warning("Rescaled quadrilateral collapsed, skipping warp")
            return self._passthrough(
                image,
                RejectionReason.INVALID_OUTPUT_SIZE,
                model_quad=quad,
                source_quad=source_quad,
                coverage=coverage,
            )
        if config.debug_dir is not None:
            dump_overlay_png(config.debug_dir, image, source_quad)

        # Stage 6: Warp
        out_width, out_height = output_size
        warped = warp_perspective(image, source_quad, out_width, out_height)
        if warped is None:
            logger.warning("Perspective warp failed, passing image through")
            return self._passthrough(
                image,
                RejectionReason.WARP_FAILED,
                model_quad=quad,
                source_quad=source_quad,
                coverage=coverage,
                output_size=output_size,
            )
        if config.debug_dir is not None:
            dump_compare_png(config.debug_dir, image, source_quad, warped)

        logger.info(
            f"Rectified {orig_width}x{orig_height} -> {out_width}x{out_height}"
        )
        return RectificationResult(
            image=warped,
            status=DecisionStatus.RECTIFIED,
            rejection_reason=RejectionReason.NONE,
            model_quad=quad,
            source_quad=source_quad,
            coverage=coverage,
            output_size=output_size,
        )

    def _run(self, tensor: np.ndarray) -> np.ndarray:
        with self._lock:
            if self._session is None:
                raise InferenceError("Rectifier session is closed")
            try:
                output = self._session.run(tensor)
            except InferenceError:
                raise
            except Exception as e:
                raise InferenceError(f"Model inference failed: {e}") from e
        if output is None:
            raise InferenceError("No output from model")
        return np.asarray(output)

    def _quad_from_mask(
        self, output: np.ndarray, width: int, height: int
    ) -> Tuple[Optional[np.ndarray], RejectionReason, Optional[float]]:
        if output.ndim != 4 or output.shape[0] < 1 or output.shape[1] <= MASK_CHANNEL:
            raise UnexpectedOutputShapeError(
                f"Expected mask output of shape (N, C>=3, H, W), got {output.shape}"
            )

        mask = output[0, MASK_CHANNEL].astype(np.float32)
        mask_height, mask_width = mask.shape
        foreground = mask >= self.config.mask_threshold
        count = int(np.count_nonzero(foreground))

        if self.config.debug_dir is not None:
            dump_mask_png(self.config.debug_dir, mask, self.config.mask_threshold)

        reason, coverage = validate_mask_coverage(
            count, mask_width, mask_height, self.config
        )
        if reason != RejectionReason.NONE:
            return None, reason, coverage

        rect = minimum_area_rectangle(mask_boundary_points(foreground))
        if len(rect) != 4:
            logger.warning("No rectangle found in mask")
            return None, RejectionReason.NO_RECTANGLE, coverage

        if (mask_width, mask_height) != (width, height):
            rect = scale_points(rect, width / mask_width, height / mask_height)
        logger.debug(f"Mask rectangle: {np.round(rect, 1).tolist()}")
        return rect, RejectionReason.NONE, coverage

    def _quad_from_corners(
        self, output: np.ndarray, width: int, height: int
    ) -> Tuple[Optional[np.ndarray], RejectionReason]:
        values = output.reshape(-1)
        if values.size < CORNER_VALUES:
            raise UnexpectedOutputShapeError(
                f"Expected at least {CORNER_VALUES} corner values, got {values.size}"
            )

        quad = values[:CORNER_VALUES].astype(np.float64).reshape(4, 2)
        in_unit_square = np.all((quad >= 0.0) & (quad <= 1.0), axis=1)
        if in_unit_square.any():
            quad = quad * np.array([width, height], dtype=np.float64)

        quad[:, 0] = np.clip(quad[:, 0], 0, width - 1)
        quad[:, 1] = np.clip(quad[:, 1], 0, height - 1)
        logger.debug(f"Regressed corners: {np.round(quad, 1).tolist()}")
        return quad, RejectionReason.NONE

    def _passthrough(
        self,
        image: Optional[np.ndarray],
        reason: RejectionReason,
        error: Optional[Exception] = None,
        **extra: Any,
    ) -> RectificationResult:
        if reason != RejectionReason.DISABLED:
            logger.warning(f"Rectification skipped: {reason.value}")
        return RectificationResult(
            image=image,
            status=DecisionStatus.PASSTHROUGH,
            rejection_reason=reason,
            error=error,
            **extra,
        )
