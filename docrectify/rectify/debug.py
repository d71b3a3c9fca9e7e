"""
Debug image dumps for the Rectify module.

All writers are best-effort: any failure is logged at warning level and
swallowed so that debugging never changes the rectification outcome.
"""

import logging
import time
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)

OUTLINE_COLOR = (0, 0, 255)  # Red (BGR)
BORDER_COLOR = (0, 255, 0)  # Green (BGR)
LINE_THICKNESS = 2
COMPARE_GAP = 10


def _debug_path(debug_dir: Path, prefix: str) -> Path:
    debug_dir = Path(debug_dir)
    debug_dir.mkdir(parents=True, exist_ok=True)
    return debug_dir / f"{prefix}_{time.monotonic_ns()}.png"


def _to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image.copy()


def _draw_quad(canvas: np.ndarray, quad: np.ndarray) -> None:
    pts = np.round(np.asarray(quad, dtype=np.float64)).astype(np.int32)
    cv2.polylines(
        canvas, [pts.reshape(-1, 1, 2)], True, OUTLINE_COLOR, LINE_THICKNESS
    )


def _write(path: Path, canvas: np.ndarray) -> Optional[Path]:
    if not cv2.imwrite(str(path), canvas):
        logger.warning(f"Failed to write debug image {path}")
        return None
    logger.debug(f"Wrote debug image {path}")
    return path


def dump_mask_png(
    debug_dir: Path, mask: np.ndarray, threshold: float
) -> Optional[Path]:
    """
    Save a mask visualisation: grayscale probabilities, red where the value
    meets the threshold.

    Args:
        debug_dir: Output directory (created if missing).
        mask: 2D float mask of shape (H, W).
        threshold: Foreground threshold.

    Returns:
        Path of the written file, or None if writing failed.
    """
    try:
        mask = np.asarray(mask, dtype=np.float32)
        gray = (np.clip(mask, 0.0, 1.0) * 255).astype(np.uint8)
        canvas = np.dstack([gray, gray, gray])
        positive = mask >= threshold
        canvas[positive, 0] = 0
        canvas[positive, 1] = 0
        return _write(_debug_path(debug_dir, "rect_mask"), canvas)
    except (OSError, ValueError, cv2.error) as e:
        logger.warning(f"Failed to dump mask debug image: {e}")
        return None


def dump_overlay_png(
    debug_dir: Path, image: np.ndarray, quad: np.ndarray
) -> Optional[Path]:
    """Save the source image with the detected quadrilateral outlined in red."""
    try:
        canvas = _to_bgr(image)
        _draw_quad(canvas, quad)
        return _write(_debug_path(debug_dir, "rect_overlay"), canvas)
    except (OSError, ValueError, cv2.error) as e:
        logger.warning(f"Failed to dump overlay debug image: {e}")
        return None


def dump_compare_png(
    debug_dir: Path, image: np.ndarray, quad: np.ndarray, warped: np.ndarray
) -> Optional[Path]:
    """
    Save a side-by-side comparison.

    Left: the source with the quadrilateral outlined in red. Right, after a
    10px gap: the warped output framed by a green border.
    """
    try:
        src = _to_bgr(image)
        dst = _to_bgr(warped)
        src_h, src_w = src.shape[:2]
        dst_h, dst_w = dst.shape[:2]

        canvas = np.zeros((max(src_h, dst_h), src_w + COMPARE_GAP + dst_w, 3), np.uint8)
        x_off = src_w + COMPARE_GAP
        canvas[:src_h, :src_w] = src
        canvas[:dst_h, x_off:x_off + dst_w] = dst

        _draw_quad(canvas, quad)
        cv2.rectangle(
            canvas,
            (x_off, 0),
            (x_off + dst_w - 1, dst_h - 1),
            BORDER_COLOR,
            LINE_THICKNESS,
        )
        return _write(_debug_path(debug_dir, "rect_compare"), canvas)
    except (OSError, ValueError, cv2.error) as e:
        logger.warning(f"Failed to dump comparison debug image: {e}")
        return None
