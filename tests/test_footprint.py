"""
Unit tests for pixel footprints.
"""

import numpy as np
import pytest

try:
    from kronphot.footprint import Footprint
    from kronphot.geometry import Box2I, EllipseAxes
except ImportError:
    import sys
    import os
    sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

    from kronphot.footprint import Footprint
    from kronphot.geometry import Box2I, EllipseAxes


class TestFootprint:
    """Test footprint construction and properties."""

    def test_circle_pixels(self):
        """Test the pixels whose centers fall in a radius-2 circle."""
        footprint = Footprint.from_ellipse((10.0, 10.0), EllipseAxes.circle(2.0))

        assert footprint.area == 13
        assert footprint.bbox == Box2I(8, 8, 12, 12)
        assert len(footprint) == 13

    def test_ellipse_orientation(self):
        """Test that an elongated ellipse extends along its major axis."""
        along_x = Footprint.from_ellipse((20.0, 20.0), EllipseAxes(6.0, 1.0, 0.0))
        along_y = Footprint.from_ellipse((20.0, 20.0), EllipseAxes(6.0, 1.0, 0.5 * np.pi))

        assert along_x.bbox.width == 13
        assert along_x.bbox.height == 3
        assert along_y.bbox.width == 3
        assert along_y.bbox.height == 13

    def test_clipped(self):
        """Test clipping to a box."""
        footprint = Footprint.from_ellipse((0.0, 0.0), EllipseAxes.circle(2.0),
                                           clip=Box2I(0, 0, 10, 10))

        assert footprint.area == 6
        assert footprint.xs.min() == 0
        assert footprint.ys.min() == 0

    def test_empty(self):
        """Test degenerate and fully clipped footprints."""
        assert Footprint.from_ellipse((5.0, 5.0), EllipseAxes(2.0, 0.0)).area == 0

        footprint = Footprint.from_ellipse((50.0, 50.0), EllipseAxes.circle(2.0),
                                           clip=Box2I(0, 0, 10, 10))
        assert footprint.area == 0
        assert footprint.bbox.is_empty

    def test_from_mask(self):
        """Test footprint from a boolean mask with an origin."""
        mask = np.zeros((5, 5), dtype=bool)
        mask[1, 2] = True
        mask[3, 4] = True
        footprint = Footprint.from_mask(mask, x0=100, y0=200)

        assert sorted(zip(footprint.xs, footprint.ys)) == [(102, 201), (104, 203)]

    def test_mismatched_coordinates(self):
        """Test rejection of coordinate arrays of different length."""
        with pytest.raises(ValueError, match="same length"):
            Footprint([1, 2, 3], [1, 2])

    def test_disk_shape(self):
        """Test the second-moment shape of a disk: <x^2> = R^2/4."""
        radius = 20.0
        footprint = Footprint.from_ellipse((50.0, 50.0), EllipseAxes.circle(radius))
        shape = footprint.compute_shape()

        assert shape.determinant_radius == pytest.approx(radius / 2, rel=0.02)
        assert shape.axis_ratio == pytest.approx(1.0, rel=0.01)
