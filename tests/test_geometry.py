"""
Unit tests for the geometry module.
"""

import math

import numpy as np
import pytest
from skimage.transform import AffineTransform

try:
    from kronphot.geometry import Box2I, EllipseAxes, KronAperture, as_affine_transform
except ImportError:
    import sys
    import os
    sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

    from kronphot.geometry import Box2I, EllipseAxes, KronAperture, as_affine_transform


class TestBox2I:
    """Test integer pixel boxes."""

    def test_from_shape(self):
        """Test box covering an array with an offset origin."""
        box = Box2I.from_shape((10, 20), x0=5, y0=3)

        assert (box.min_x, box.min_y, box.max_x, box.max_y) == (5, 3, 24, 12)
        assert box.width == 20
        assert box.height == 10
        assert not box.is_empty

    def test_grow_and_clip(self):
        """Test growing and clipping."""
        box = Box2I(0, 0, 9, 9)
        grown = box.grow(2)

        assert grown == Box2I(-2, -2, 11, 11)
        assert grown.clipped(box) == box
        assert Box2I(20, 20, 30, 30).clipped(box).is_empty

    def test_contains(self):
        """Test containment."""
        box = Box2I(0, 0, 9, 9)

        assert box.contains(Box2I(2, 3, 9, 9))
        assert not box.contains(Box2I(-1, 3, 5, 5))
        assert not box.contains(Box2I(2, 3, 10, 5))

    def test_slices(self):
        """Test numpy slices relative to an array origin."""
        data = np.arange(100).reshape(10, 10)
        rows, cols = Box2I(12, 11, 13, 12).slices(x0=10, y0=10)

        np.testing.assert_array_equal(data[rows, cols], [[12, 13], [22, 23]])


class TestEllipseAxes:
    """Test the immutable ellipse core."""

    def test_normalization_swaps_axes(self):
        """Test that b > a is swapped and the angle rotated."""
        axes = EllipseAxes(1.0, 3.0, 0.0)

        assert axes.a == 3.0
        assert axes.b == 1.0
        assert abs(abs(axes.theta) - 0.5 * math.pi) < 1e-12

    def test_theta_wrapped(self):
        """Test that the angle is wrapped into [-pi/2, pi/2)."""
        axes = EllipseAxes(2.0, 1.0, math.pi)
        assert abs(axes.theta) < 1e-12

        axes = EllipseAxes(2.0, 1.0, 2.0)
        assert -0.5 * math.pi <= axes.theta < 0.5 * math.pi
        assert axes.theta == pytest.approx(2.0 - math.pi)

    def test_invalid_values(self):
        """Test rejection of negative or non-finite parameters."""
        with pytest.raises(ValueError, match="non-negative"):
            EllipseAxes(-1.0, 1.0)

        with pytest.raises(ValueError, match="finite"):
            EllipseAxes(np.nan, 1.0)

    def test_determinant_radius(self):
        """Test sqrt(a*b)."""
        assert EllipseAxes(4.0, 1.0).determinant_radius == pytest.approx(2.0)
        assert EllipseAxes.circle(3.0).determinant_radius == pytest.approx(3.0)

    def test_scaled_is_a_new_value(self):
        """Test that scaling returns a new ellipse and leaves the original alone."""
        axes = EllipseAxes(4.0, 2.0, 0.4)
        scaled = axes.scaled(1.5)

        assert (axes.a, axes.b) == (4.0, 2.0)
        assert scaled.a == pytest.approx(6.0)
        assert scaled.b == pytest.approx(3.0)
        assert scaled.theta == pytest.approx(0.4)

    def test_with_radius(self):
        """Test rescaling to a given determinant radius."""
        axes = EllipseAxes(4.0, 1.0, 0.2).with_radius(6.0)

        assert axes.determinant_radius == pytest.approx(6.0)
        assert axes.axis_ratio == pytest.approx(4.0)
        assert axes.theta == pytest.approx(0.2)

    def test_with_radius_degenerate(self):
        """Test that a zero-size ellipse cannot be rescaled."""
        with pytest.raises(ValueError, match="degenerate"):
            EllipseAxes(0.0, 0.0).with_radius(2.0)

    def test_moments_round_trip(self):
        """Test conversion to second moments and back."""
        axes = EllipseAxes(3.0, 1.0, 0.3)
        back = EllipseAxes.from_moments(*axes.to_moments())

        assert back.a == pytest.approx(3.0)
        assert back.b == pytest.approx(1.0)
        assert back.theta == pytest.approx(0.3)

    def test_transformed_scaling(self):
        """Test that a uniform scale doubles both axes."""
        axes = EllipseAxes(3.0, 1.0, 0.3).transformed(2.0 * np.eye(2))

        assert axes.a == pytest.approx(6.0)
        assert axes.b == pytest.approx(2.0)
        assert axes.theta == pytest.approx(0.3)

    def test_transformed_rotation(self):
        """Test that a quarter turn rotates the major axis."""
        axes = EllipseAxes(3.0, 1.0, 0.0).transformed(np.array([[0.0, -1.0], [1.0, 0.0]]))

        assert axes.a == pytest.approx(3.0)
        assert axes.b == pytest.approx(1.0)
        assert abs(abs(axes.theta) - 0.5 * math.pi) < 1e-9


class TestAffineTransform:
    """Test coercion of affine transforms."""

    def test_identity_for_none(self):
        """Test that None becomes the identity."""
        np.testing.assert_allclose(as_affine_transform(None).params, np.eye(3))

    def test_matrix(self):
        """Test a raw homogeneous matrix."""
        matrix = np.array([[2.0, 0.0, 1.0], [0.0, 2.0, -1.0], [0.0, 0.0, 1.0]])
        tform = as_affine_transform(matrix)

        np.testing.assert_allclose(tform.params, matrix)

    def test_bad_shape(self):
        """Test rejection of a non-3x3 matrix."""
        with pytest.raises(ValueError, match="3x3"):
            as_affine_transform(np.eye(2))


class TestKronAperture:
    """Test the aperture value type."""

    def test_properties(self):
        """Test center and radius access."""
        aperture = KronAperture((10, 20), EllipseAxes(4.0, 1.0))

        assert aperture.x == 10.0
        assert aperture.y == 20.0
        assert aperture.radius == pytest.approx(2.0)
        assert isinstance(aperture.center[0], float)

    def test_transformed_translation(self):
        """Test that a translation moves only the center."""
        aperture = KronAperture((10.0, 20.0), EllipseAxes(4.0, 1.0, 0.3))
        moved = aperture.transformed(AffineTransform(translation=(10.0, -5.0)))

        assert moved.center == pytest.approx((20.0, 15.0))
        assert moved.axes.a == pytest.approx(4.0)
        assert moved.axes.b == pytest.approx(1.0)
        assert moved.axes.theta == pytest.approx(0.3)

    def test_from_reference_identity(self):
        """Test that the identity transform only rescales the reference shape."""
        shape = EllipseAxes(3.0, 1.5, -0.2)
        aperture = KronAperture.from_reference((30.0, 40.0), shape, None, 5.0)

        assert aperture.center == pytest.approx((30.0, 40.0))
        assert aperture.radius == pytest.approx(5.0)
        assert aperture.axes.axis_ratio == pytest.approx(2.0)
        assert aperture.axes.theta == pytest.approx(-0.2)

    def test_from_reference_scale(self):
        """Test that a scaling transform scales the aperture."""
        tform = AffineTransform(scale=(2.0, 2.0))
        aperture = KronAperture.from_reference((10.0, 10.0), EllipseAxes.circle(1.0), tform, 3.0)

        assert aperture.center == pytest.approx((20.0, 20.0))
        assert aperture.radius == pytest.approx(6.0)
