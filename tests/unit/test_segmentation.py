"""
Unit tests for comictranslator.image.segmentation module.
"""
import numpy as np
import pytest

from comictranslator.image.segmentation import (extract_regions,
                                                segment_heatmap,
                                                upsample_heatmap)
from comictranslator.models import Rectangle


def _heatmap(shape=(64, 64), blocks=()):
    heatmap = np.zeros(shape, dtype=np.float32)
    for x1, y1, x2, y2, value in blocks:
        heatmap[y1 : y2 + 1, x1 : x2 + 1] = value
    return heatmap


def _coords(region):
    return (region.x1, region.y1, region.x2, region.y2)


class TestExtractRegions:
    """Tests for thresholding and connected component extraction."""

    def test_single_block(self):
        """Test a 10x10 block yields its inclusive bounding box."""
        heatmap = _heatmap(blocks=[(20, 20, 29, 29, 1.0)])

        regions = extract_regions(heatmap, 0.5)

        assert len(regions) == 1
        assert _coords(regions[0]) == (20, 20, 29, 29)
        assert regions[0].confidence == pytest.approx(1.0)
        assert regions[0].original is None

    def test_empty_heatmap(self):
        """Test an all-zero heatmap yields no regions."""
        assert extract_regions(np.zeros((32, 32)), 0.5) == []

    def test_threshold_is_strict(self):
        """Test cells equal to the threshold are background."""
        heatmap = _heatmap(blocks=[(20, 20, 29, 29, 0.5)])

        assert extract_regions(heatmap, 0.5) == []

    @pytest.mark.parametrize("side,expected", [(6, 0), (7, 1)])
    def test_noise_floor(self, side, expected):
        """Test components spanning 5 pixels or less are discarded."""
        heatmap = _heatmap(blocks=[(10, 10, 10 + side - 1, 10 + side - 1, 1.0)])

        assert len(extract_regions(heatmap, 0.5)) == expected

    def test_thin_component_discarded(self):
        """Test a wide but flat component is discarded by its height."""
        heatmap = _heatmap(blocks=[(5, 10, 50, 13, 1.0)])

        assert extract_regions(heatmap, 0.5) == []

    def test_diagonal_cells_connect(self):
        """Test blocks touching only at a corner form one 8-connected region."""
        heatmap = _heatmap(blocks=[(0, 0, 9, 9, 1.0), (10, 10, 19, 19, 1.0)])

        regions = extract_regions(heatmap, 0.5)

        assert len(regions) == 1
        assert _coords(regions[0]) == (0, 0, 19, 19)

    def test_confidence_is_mean_activation(self):
        """Test region confidence averages the heatmap over the component."""
        heatmap = _heatmap(blocks=[(10, 10, 19, 14, 0.6), (10, 15, 19, 19, 1.0)])

        regions = extract_regions(heatmap, 0.5)

        assert len(regions) == 1
        assert regions[0].confidence == pytest.approx(0.8)

    def test_raster_order(self):
        """Test regions are ordered by their first cell in raster order."""
        heatmap = _heatmap(
            blocks=[(5, 30, 15, 40, 1.0), (40, 5, 50, 15, 1.0), (20, 5, 30, 15, 1.0)]
        )

        regions = extract_regions(heatmap, 0.5)

        assert [_coords(r)[:2] for r in regions] == [(20, 5), (40, 5), (5, 30)]

    def test_padding_keeps_original(self):
        """Test padding enlarges the region and keeps the tight box."""
        heatmap = _heatmap(blocks=[(20, 20, 29, 29, 1.0)])

        regions = extract_regions(heatmap, 0.5, padding=(3, 4))

        assert _coords(regions[0]) == (17, 16, 32, 33)
        assert regions[0].original == Rectangle(20, 20, 29, 29)

    def test_rejects_non_2d(self):
        """Test a 3D heatmap raises ValueError."""
        with pytest.raises(ValueError):
            extract_regions(np.zeros((4, 4, 3)), 0.5)

    def test_regions_are_fixed_points(self):
        """Test re-segmenting each region's box reproduces the same box."""
        heatmap = _heatmap(
            blocks=[(5, 5, 20, 12, 0.9), (30, 30, 45, 50, 0.7), (50, 2, 60, 20, 1.0)]
        )

        for region in extract_regions(heatmap, 0.5):
            x1, y1, x2, y2 = (int(v) for v in _coords(region))
            window = heatmap[y1 : y2 + 1, x1 : x2 + 1]
            again = extract_regions(window, 0.5)
            assert len(again) == 1
            assert _coords(again[0]) == (0, 0, x2 - x1, y2 - y1)


class TestUpsampleHeatmap:
    """Tests for heatmap resizing."""

    def test_corners_align(self):
        """Test corner values map onto corner pixels."""
        heatmap = np.array([[0.0, 1.0], [1.0, 0.0]], dtype=np.float32)

        resized = upsample_heatmap(heatmap, 3, 3)

        assert resized.shape == (3, 3)
        assert resized[0, 0] == pytest.approx(0.0)
        assert resized[0, 2] == pytest.approx(1.0)
        assert resized[2, 0] == pytest.approx(1.0)
        assert resized[1, 1] == pytest.approx(0.5)

    def test_constant_map_stays_constant(self):
        """Test bilinear resizing does not invent activations."""
        resized = upsample_heatmap(np.full((8, 8), 0.3, dtype=np.float32), 40, 24)

        assert resized.shape == (40, 24)
        np.testing.assert_allclose(resized, 0.3, rtol=1e-5)

    def test_same_size_is_unchanged(self):
        """Test a heatmap already at the target size is returned as-is."""
        heatmap = _heatmap(blocks=[(1, 1, 3, 3, 1.0)], shape=(8, 8))

        np.testing.assert_array_equal(upsample_heatmap(heatmap, 8, 8), heatmap)


class TestSegmentHeatmap:
    """Tests for upsample-then-extract."""

    def test_upsampled_regions_in_image_space(self):
        """Test regions found on a half-resolution map land inside the image."""
        heatmap = _heatmap(shape=(32, 32), blocks=[(8, 8, 20, 20, 1.0)])

        regions = segment_heatmap(heatmap, (64, 64), 0.5)

        assert len(regions) == 1
        region = regions[0]
        assert 14 <= region.x1 <= 18
        assert 40 <= region.x2 <= 43
        assert region.x2 < 64 and region.y2 < 64
