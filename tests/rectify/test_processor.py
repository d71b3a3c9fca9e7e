"""
Unit tests for the Rectifier pipeline.

The model is replaced by FakeSession so every stage of the pipeline can be
driven with synthetic output tensors.
"""

import threading
import time
from unittest.mock import patch

import numpy as np
import pytest

from docrectify.rectify.config_loader import RectifierConfig
from docrectify.rectify.errors import (
    InferenceError,
    ModelNotFoundError,
    NilImageError,
    NormalizationError,
    UnexpectedOutputShapeError,
)
from docrectify.rectify.processor import (
    Rectifier,
    compute_output_size,
    mask_boundary_points,
)
from docrectify.rectify.types import (
    DecisionStatus,
    RectificationMethod,
    RejectionReason,
)

SCENARIO_BLOCK = (15, 15, 49, 49)


@pytest.fixture
def page_image():
    """Provide a 64x64 BGR image with a light page on a dark background."""
    image = np.full((64, 64, 3), 30, dtype=np.uint8)
    image[15:49, 15:49] = 220
    return image


@pytest.fixture
def mask_config():
    """Provide an enabled mask-method configuration with small outputs."""
    return RectifierConfig(enabled=True, output_height=64)


@pytest.fixture
def corner_config():
    """Provide an enabled corner-method configuration with small outputs."""
    return RectifierConfig(enabled=True, method="doctr", output_height=64)


class TestComputeOutputSize:
    """Tests for compute_output_size function."""

    def test_landscape(self):
        """Test width follows the aspect ratio."""
        quad = np.array([[0, 0], [200, 0], [200, 100], [0, 100]])
        assert compute_output_size(quad, 512) == (1024, 512)

    def test_default_height(self):
        """Test non-positive heights fall back to 1024."""
        quad = np.array([[0, 0], [100, 0], [100, 100], [0, 100]])
        assert compute_output_size(quad, 0) == (1024, 1024)
        assert compute_output_size(quad, -5) == (1024, 1024)

    def test_floors_to_multiple_of_32(self):
        """Test both sides are floored to multiples of 32."""
        quad = np.array([[0, 0], [150, 0], [150, 100], [0, 100]])
        assert compute_output_size(quad, 100) == (128, 96)

    def test_minimum_side(self):
        """Test very thin pages keep at least 32 pixels."""
        quad = np.array([[0, 0], [10, 0], [10, 1000], [0, 1000]])
        assert compute_output_size(quad, 1024) == (32, 1024)

    def test_collapsed(self):
        """Test collapsed edges give no size."""
        quad = np.array([[0, 0], [1, 0], [1, 50], [0, 50]])
        assert compute_output_size(quad) is None


class TestMaskBoundaryPoints:
    """Tests for mask_boundary_points function."""

    def test_row_extremes(self):
        """Test only leftmost and rightmost pixels per row are kept."""
        mask = np.zeros((5, 6), dtype=bool)
        mask[1, 1:5] = True
        mask[3, 2] = True
        points = mask_boundary_points(mask)

        assert {tuple(p) for p in points.tolist()} == {(1, 1), (4, 1), (2, 3)}

    def test_empty_mask(self):
        """Test an empty mask gives no points."""
        assert mask_boundary_points(np.zeros((4, 4), dtype=bool)).shape == (0, 2)


class TestConstruction:
    """Test Rectifier construction and lifecycle."""

    def test_disabled_by_default(self):
        """Test the default configuration never opens a session."""
        rectifier = Rectifier()
        assert not rectifier.enabled
        assert rectifier.config.enabled is False

    def test_missing_model(self, tmp_path):
        """Test an enabled rectifier with a missing model fails to construct."""
        config = RectifierConfig(enabled=True, model_path=tmp_path / "missing.onnx")
        with pytest.raises(ModelNotFoundError):
            Rectifier(config)

    def test_injected_session(self, mask_config, fake_session_factory):
        """Test a provided session is used instead of opening a model."""
        rectifier = Rectifier(mask_config, session=fake_session_factory())
        assert rectifier.enabled

    def test_close_idempotent(self, mask_config, fake_session_factory):
        """Test close releases the session exactly once."""
        session = fake_session_factory()
        rectifier = Rectifier(mask_config, session=session)

        rectifier.close()
        rectifier.close()

        assert session.close_count == 1
        assert not rectifier.enabled

    def test_close_never_opened(self):
        """Test closing a disabled rectifier is a no-op."""
        Rectifier().close()

    def test_context_manager(self, mask_config, fake_session_factory):
        """Test the session is closed when leaving the context."""
        session = fake_session_factory()
        with Rectifier(mask_config, session=session) as rectifier:
            assert rectifier.enabled
        assert session.close_count == 1


class TestPassThrough:
    """Test disabled and invalid-input behaviour."""

    def test_disabled_returns_same_image(self, page_image):
        """Test a disabled rectifier returns the exact input instance."""
        result = Rectifier().process(page_image)

        assert result.image is page_image
        assert result.status == DecisionStatus.PASSTHROUGH
        assert result.rejection_reason == RejectionReason.DISABLED
        assert result.error is None

    def test_disabled_accepts_none(self):
        """Test a disabled rectifier passes None through."""
        assert Rectifier().apply(None) is None

    def test_closed_rectifier_passes_through(
        self, mask_config, fake_session_factory, page_image
    ):
        """Test processing after close is a pass-through."""
        rectifier = Rectifier(mask_config, session=fake_session_factory())
        rectifier.close()
        result = rectifier.process(page_image)
        assert result.rejection_reason == RejectionReason.DISABLED

    def test_enabled_rejects_none(self, mask_config, fake_session_factory):
        """Test an active rectifier refuses a missing image."""
        rectifier = Rectifier(mask_config, session=fake_session_factory())
        with pytest.raises(NilImageError):
            rectifier.process(None)

    def test_normalization_failure(self, mask_config, fake_session_factory):
        """Test images below the model minimum are passed through with an error."""
        session = fake_session_factory()
        rectifier = Rectifier(mask_config, session=session)
        tiny = np.zeros((16, 16, 3), dtype=np.uint8)
        result = rectifier.process(tiny)

        assert result.image is tiny
        assert result.rejection_reason == RejectionReason.NORMALIZATION_FAILED
        assert isinstance(result.error, NormalizationError)
        assert session.calls == []

    def test_inference_failure(self, mask_config, fake_session_factory, page_image):
        """Test backend errors are passed through as InferenceError."""
        session = fake_session_factory(error=RuntimeError("backend exploded"))
        result = Rectifier(mask_config, session=session).process(page_image)

        assert result.image is page_image
        assert result.rejection_reason == RejectionReason.INFERENCE_FAILED
        assert isinstance(result.error, InferenceError)
        assert "backend exploded" in result.get_error_message()

    def test_inference_returns_nothing(
        self, mask_config, fake_session_factory, page_image
    ):
        """Test a session returning None is an inference failure."""
        session = fake_session_factory(output=None)
        result = Rectifier(mask_config, session=session).process(page_image)
        assert result.rejection_reason == RejectionReason.INFERENCE_FAILED


class TestMaskMethod:
    """Test the mask interpretation path."""

    def test_square_block(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test a 34x34 foreground block is rectified to a square."""
        output = mask_output_factory(64, 64, SCENARIO_BLOCK)
        session = fake_session_factory(output=output)
        result = Rectifier(mask_config, session=session).process(page_image)

        assert result.is_rectified()
        assert result.rejection_reason == RejectionReason.NONE
        assert result.coverage == pytest.approx(34 * 34 / 4096)
        assert result.model_quad.shape == (4, 2)
        np.testing.assert_allclose(result.model_quad[0], [15, 15], atol=1e-6)
        np.testing.assert_allclose(result.model_quad[2], [48, 48], atol=1e-6)
        assert result.output_size == (64, 64)
        assert result.image.shape == (64, 64, 3)
        # The page fills the output
        assert result.image[32, 32].tolist() == [220, 220, 220]

    def test_tensor_passed_to_session(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test the model receives a normalised NCHW tensor."""
        session = fake_session_factory(output=mask_output_factory(64, 64))
        Rectifier(mask_config, session=session).process(page_image)

        (tensor,) = session.calls
        assert tensor.shape == (1, 3, 64, 64)
        assert tensor.dtype == np.float32
        assert tensor.max() <= 1.0

    def test_low_coverage(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test a nearly empty mask is passed through without error."""
        output = mask_output_factory(64, 64, (10, 10, 13, 13))
        result = Rectifier(
            mask_config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.image is page_image
        assert result.rejection_reason == RejectionReason.LOW_MASK_COVERAGE
        assert result.error is None
        assert result.coverage == pytest.approx(9 / 4096)

    def test_too_few_points(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test high coverage on a tiny mask still needs enough points."""
        output = mask_output_factory(8, 8, (1, 1, 7, 7))
        result = Rectifier(
            mask_config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.rejection_reason == RejectionReason.TOO_FEW_POINTS
        assert result.error is None

    def test_threshold_is_inclusive(
        self, fake_session_factory, mask_output_factory, page_image
    ):
        """Test values equal to the threshold count as foreground."""
        config = RectifierConfig(enabled=True, output_height=64, mask_threshold=0.75)
        output = mask_output_factory(64, 64, SCENARIO_BLOCK, value=0.75)
        result = Rectifier(
            config, session=fake_session_factory(output=output)
        ).process(page_image)
        assert result.is_rectified()

    def test_small_area(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test a thin strip fails the area gate."""
        output = mask_output_factory(64, 64, (2, 20, 62, 26))
        result = Rectifier(
            mask_config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.rejection_reason == RejectionReason.SMALL_AREA
        assert result.model_quad is not None
        assert result.image is page_image

    def test_mask_smaller_than_input(
        self, mask_config, fake_session_factory, mask_output_factory
    ):
        """Test a low-resolution mask is scaled into model-input space."""
        image = np.full((128, 128, 3), 200, dtype=np.uint8)
        output = mask_output_factory(64, 64, SCENARIO_BLOCK)
        result = Rectifier(
            mask_config, session=fake_session_factory(output=output)
        ).process(image)

        assert result.is_rectified()
        np.testing.assert_allclose(result.model_quad[0], [30, 30], atol=1e-6)
        np.testing.assert_allclose(result.model_quad[2], [96, 96], atol=1e-6)

    @pytest.mark.parametrize("shape", [(1, 2, 64, 64), (3, 64, 64), (1, 4096)])
    def test_unexpected_output_shape(
        self, mask_config, fake_session_factory, page_image, shape
    ):
        """Test outputs without a third channel are rejected with an error."""
        output = np.zeros(shape, dtype=np.float32)
        result = Rectifier(
            mask_config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.image is page_image
        assert result.rejection_reason == RejectionReason.UNEXPECTED_OUTPUT_SHAPE
        assert isinstance(result.error, UnexpectedOutputShapeError)

    def test_no_rectangle(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test rectangle fitting without a result passes through."""
        output = mask_output_factory(64, 64, SCENARIO_BLOCK)
        rectifier = Rectifier(mask_config, session=fake_session_factory(output=output))
        with patch(
            "docrectify.rectify.processor.minimum_area_rectangle",
            return_value=np.empty((0, 2)),
        ):
            result = rectifier.process(page_image)

        assert result.rejection_reason == RejectionReason.NO_RECTANGLE

    def test_grayscale_and_alpha_inputs(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test grayscale and BGRA images keep their channel layout."""
        output = mask_output_factory(64, 64, SCENARIO_BLOCK)
        rectifier = Rectifier(mask_config, session=fake_session_factory(output=output))

        gray = page_image[:, :, 0].copy()
        bgra = np.dstack([page_image, np.full((64, 64), 255, np.uint8)])

        assert rectifier.apply(gray).shape == (64, 64)
        assert rectifier.apply(bgra).shape == (64, 64, 4)


class TestCornerMethod:
    """Test the corner regression path."""

    def test_normalised_corners(self, corner_config, fake_session_factory, page_image):
        """Test corners in [0, 1] are scaled to the input size."""
        output = np.array(
            [[0.1, 0.1, 0.9, 0.1, 0.9, 0.9, 0.1, 0.9]], dtype=np.float32
        )
        result = Rectifier(
            corner_config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.is_rectified()
        np.testing.assert_allclose(result.model_quad[0], [6.4, 6.4], atol=1e-5)
        np.testing.assert_allclose(result.model_quad[2], [57.6, 57.6], atol=1e-5)
        assert result.coverage is None

    def test_pixel_corners_clamped(
        self, corner_config, fake_session_factory, page_image
    ):
        """Test out-of-range pixel corners are clamped into the image."""
        output = np.array([-5, -5, 100, -5, 100, 100, -5, 100], dtype=np.float32)
        result = Rectifier(
            corner_config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.is_rectified()
        np.testing.assert_allclose(
            result.model_quad, [[0, 0], [63, 0], [63, 63], [0, 63]]
        )

    def test_scrambled_corners_are_ordered(
        self, corner_config, fake_session_factory, page_image
    ):
        """Test corners in any order start at the top-left."""
        output = np.array([50, 50, 10, 10, 10, 50, 50, 10], dtype=np.float32)
        result = Rectifier(
            corner_config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.is_rectified()
        np.testing.assert_allclose(
            result.model_quad, [[10, 10], [50, 10], [50, 50], [10, 50]]
        )

    def test_one_pixel_candidate(self, corner_config, fake_session_factory, page_image):
        """Test a near-zero-area candidate is rejected."""
        output = np.array([10, 10, 11, 10, 11, 11, 10, 11], dtype=np.float32)
        result = Rectifier(
            corner_config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.image is page_image
        assert result.rejection_reason == RejectionReason.DEGENERATE_SHAPE
        assert result.error is None

    def test_too_few_values(self, corner_config, fake_session_factory, page_image):
        """Test fewer than 8 output values is an output shape error."""
        output = np.zeros(6, dtype=np.float32)
        result = Rectifier(
            corner_config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.rejection_reason == RejectionReason.UNEXPECTED_OUTPUT_SHAPE
        assert isinstance(result.error, UnexpectedOutputShapeError)

    def test_rescaled_to_original(self, fake_session_factory):
        """Test the quadrilateral is mapped back to original coordinates."""
        config = RectifierConfig(
            enabled=True,
            method=RectificationMethod.DOCTR_CORNERS,
            output_height=64,
            model_max_side=64,
        )
        image = np.full((128, 256, 3), 90, dtype=np.uint8)
        output = np.array(
            [0.25, 0.25, 0.75, 0.25, 0.75, 0.75, 0.25, 0.75], dtype=np.float32
        )
        session = fake_session_factory(output=output)
        result = Rectifier(config, session=session).process(image)

        assert session.calls[0].shape == (1, 3, 32, 64)
        assert result.is_rectified()
        np.testing.assert_allclose(
            result.source_quad, [[64, 32], [192, 32], [192, 96], [64, 96]]
        )
        assert result.output_size == (128, 64)
        assert result.image.shape == (64, 128, 3)


class TestLateFailures:
    """Test pass-through after validation."""

    def test_invalid_output_size(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test a collapsed output size passes the image through."""
        output = mask_output_factory(64, 64, SCENARIO_BLOCK)
        rectifier = Rectifier(mask_config, session=fake_session_factory(output=output))
        with patch(
            "docrectify.rectify.processor.compute_output_size", return_value=None
        ):
            result = rectifier.process(page_image)

        assert result.image is page_image
        assert result.rejection_reason == RejectionReason.INVALID_OUTPUT_SIZE
        assert result.source_quad is not None

    def test_warp_failure(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test a failed warp passes the image through without error."""
        output = mask_output_factory(64, 64, SCENARIO_BLOCK)
        rectifier = Rectifier(mask_config, session=fake_session_factory(output=output))
        with patch(
            "docrectify.rectify.processor.warp_perspective", return_value=None
        ):
            result = rectifier.process(page_image)

        assert result.image is page_image
        assert result.rejection_reason == RejectionReason.WARP_FAILED
        assert result.error is None
        assert result.output_size == (64, 64)


class TestDebugOutput:
    """Test debug artefacts produced during processing."""

    def test_writes_all_artefacts(
        self, fake_session_factory, mask_output_factory, page_image, tmp_path
    ):
        """Test mask, overlay and comparison images are written."""
        config = RectifierConfig(enabled=True, output_height=64, debug_dir=tmp_path)
        output = mask_output_factory(64, 64, SCENARIO_BLOCK)
        result = Rectifier(
            config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.is_rectified()
        names = sorted(p.name.rsplit("_", 1)[0] for p in tmp_path.glob("*.png"))
        assert names == ["rect_compare", "rect_mask", "rect_overlay"]

    def test_debug_failure_does_not_change_result(
        self, fake_session_factory, mask_output_factory, page_image, tmp_path
    ):
        """Test an unwritable debug directory is ignored."""
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("x")
        config = RectifierConfig(enabled=True, output_height=64, debug_dir=blocker)
        output = mask_output_factory(64, 64, SCENARIO_BLOCK)
        result = Rectifier(
            config, session=fake_session_factory(output=output)
        ).process(page_image)

        assert result.is_rectified()


class TestConcurrency:
    """Test session access from multiple threads."""

    def test_inference_is_serialised(
        self, mask_config, fake_session_factory, mask_output_factory, page_image
    ):
        """Test the session never runs two inferences at once."""
        output = mask_output_factory(64, 64, SCENARIO_BLOCK)
        state = {"active": 0, "peak": 0}
        guard = threading.Lock()

        def slow_run(tensor):
            with guard:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.01)
            with guard:
                state["active"] -= 1
            return output

        rectifier = Rectifier(mask_config, session=fake_session_factory(output=slow_run))
        results = []

        def worker():
            results.append(rectifier.process(page_image))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert state["peak"] == 1
        assert len(results) == 6
        assert all(r.is_rectified() for r in results)
