"""
Unit tests for comictranslator.image.inpainting module.
"""
import numpy as np
import pytest
from PIL import Image

from comictranslator.image.inpainting import rasterize_mask, remove_masked_content
from comictranslator.models import Rectangle
from conftest import FakeInpainter
from utils.exceptions import CollaboratorError


@pytest.fixture
def noisy_image():
    """A random RGB image so untouched pixels are easy to verify."""
    rng = np.random.default_rng(0)
    return Image.fromarray(rng.integers(0, 255, (70, 130, 3), dtype=np.uint8))


class TestRasterizeMask:
    """Tests for building the full-resolution mask."""

    def test_fills_region(self):
        """Test a region is filled with hard edges."""
        mask = rasterize_mask((20, 10), [Rectangle(2, 3, 5, 6)])

        assert mask.shape == (10, 20)
        assert mask[3:6, 2:5].min() == 255
        assert mask.sum() == 255 * 9

    def test_clips_to_image(self):
        """Test regions extending past the border are clipped."""
        mask = rasterize_mask((10, 10), [Rectangle(-5, -5, 3, 30)])

        assert mask[:, :3].min() == 255
        assert mask[:, 3:].max() == 0

    def test_fractional_region_rounds_outwards(self):
        """Test fractional coordinates cover every touched pixel."""
        mask = rasterize_mask((10, 10), [Rectangle(1.5, 1.5, 2.2, 2.2)])

        assert mask[1:3, 1:3].min() == 255
        assert mask.sum() == 255 * 4


class TestRemoveMaskedContent:
    """Tests for tiled inpainting."""

    def test_empty_mask_is_identity(self, noisy_image):
        """Test nothing to inpaint returns a pixel-identical image."""
        inpainter = FakeInpainter()

        result = remove_masked_content(noisy_image, [], inpainter, tile_size=32)

        np.testing.assert_array_equal(np.array(result), np.array(noisy_image))
        assert inpainter.calls == []

    def test_region_outside_image_is_identity(self, noisy_image):
        """Test regions clipped away entirely change nothing."""
        result = remove_masked_content(
            noisy_image, [Rectangle(500, 500, 600, 600)], FakeInpainter(), tile_size=32
        )

        np.testing.assert_array_equal(np.array(result), np.array(noisy_image))

    def test_only_masked_tiles_inpainted(self, noisy_image):
        """Test tiles without masked pixels are skipped."""
        inpainter = FakeInpainter()

        remove_masked_content(
            noisy_image, [Rectangle(5, 5, 10, 10)], inpainter, tile_size=32
        )

        assert len(inpainter.calls) == 1

    def test_edge_tiles_resized_to_model_size(self, noisy_image):
        """Test partial border tiles reach the inpainter at the full tile size."""
        inpainter = FakeInpainter()

        remove_masked_content(
            noisy_image, [Rectangle(129, 66, 130, 70)], inpainter, tile_size=32
        )

        assert inpainter.calls == [((32, 32, 3), (32, 32))]

    def test_masked_pixels_replaced_others_kept(self, noisy_image):
        """Test only masked pixels take inpainted values."""
        source = np.array(noisy_image)

        result = np.array(
            remove_masked_content(
                noisy_image, [Rectangle(40, 20, 80, 50)], FakeInpainter(), tile_size=32
            )
        )

        assert result[20:50, 40:80].min() == 255
        outside = np.ones(source.shape[:2], dtype=bool)
        outside[20:50, 40:80] = False
        np.testing.assert_array_equal(result[outside], source[outside])

    def test_whole_tile_when_not_masked_only(self, noisy_image):
        """Test masked_only=False pastes the entire inpainted tile."""
        result = np.array(
            remove_masked_content(
                noisy_image,
                [Rectangle(1, 1, 2, 2)],
                FakeInpainter(fill=7),
                tile_size=32,
                masked_only=False,
            )
        )

        assert (result[:32, :32] == 7).all()
        np.testing.assert_array_equal(result[32:], np.array(noisy_image)[32:])

    def test_wrong_output_shape_raises(self, noisy_image):
        """Test an inpainter returning the wrong shape is a collaborator failure."""
        with pytest.raises(CollaboratorError):
            remove_masked_content(
                noisy_image,
                [Rectangle(5, 5, 10, 10)],
                FakeInpainter(shape=(16, 16, 3)),
                tile_size=32,
            )

    def test_inpainter_exception_wrapped(self, noisy_image):
        """Test arbitrary inpainter errors surface as CollaboratorError."""

        class Broken:
            def inpaint(self, image_tile, mask_tile):
                raise RuntimeError("out of memory")

        with pytest.raises(CollaboratorError, match="out of memory"):
            remove_masked_content(
                noisy_image, [Rectangle(5, 5, 10, 10)], Broken(), tile_size=32
            )

    def test_output_size_matches_input(self, noisy_image):
        """Test the cleaned image keeps the input size."""
        result = remove_masked_content(
            noisy_image, [Rectangle(0, 0, 130, 70)], FakeInpainter(), tile_size=48
        )

        assert result.size == noisy_image.size
