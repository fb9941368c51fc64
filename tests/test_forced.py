"""
Tests for forced Kron photometry.
"""

import math

import numpy as np
import pytest
from skimage.transform import AffineTransform

try:
    from kronphot.config_manager import KronPhotometryConfig
    from kronphot.geometry import EllipseAxes
    from kronphot.image import MaskedImage
    from kronphot.kron import KronFailure, KronFailureKind, KronMeasurement, KronPhotometry, KronSource
    from kronphot.psf import GaussianPsf
except ImportError:
    import sys
    import os
    sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

    from kronphot.config_manager import KronPhotometryConfig
    from kronphot.geometry import EllipseAxes
    from kronphot.image import MaskedImage
    from kronphot.kron import KronFailure, KronFailureKind, KronMeasurement, KronPhotometry, KronSource
    from kronphot.psf import GaussianPsf


def elliptical_image(center=(50.0, 50.0), shape=(101, 101)):
    """Elongated, inclined Gaussian galaxy."""
    y, x = np.mgrid[:shape[0], :shape[1]]
    ixx, iyy, ixy = EllipseAxes(4.0, 2.0, 0.6).to_moments()
    inverse = np.linalg.inv([[ixx, ixy], [ixy, iyy]])
    dx = x - center[0]
    dy = y - center[1]
    q = inverse[0, 0] * dx * dx + 2 * inverse[0, 1] * dx * dy + inverse[1, 1] * dy * dy
    return MaskedImage(500.0 * np.exp(-0.5 * q), np.full(shape, 0.5))


@pytest.fixture
def reference():
    return KronSource(id=1, x=50.0, y=50.0, shape=EllipseAxes(4.0, 2.0, 0.6))


@pytest.fixture
def processor():
    return KronPhotometry(KronPhotometryConfig(n_iter_for_radius=3, minimum_radius=1.0))


class TestForcedPhotometry:
    """Test measuring in an aperture from a reference image."""

    def test_identity_reproduces_direct(self, processor, reference):
        """Test that the identity transform reproduces the direct measurement."""
        image = elliptical_image()
        direct = processor.measure(reference, image)
        forced = processor.measure_forced(reference, image, reference, direct)

        assert isinstance(forced, KronMeasurement)
        assert forced.aperture.center == pytest.approx(direct.aperture.center)
        assert forced.aperture.axes.a == pytest.approx(direct.aperture.axes.a)
        assert forced.aperture.axes.b == pytest.approx(direct.aperture.axes.b)
        assert forced.aperture.axes.theta == pytest.approx(direct.aperture.axes.theta)
        assert forced.radius == pytest.approx(direct.radius)
        assert forced.flux == pytest.approx(direct.flux, rel=1e-9)
        assert not forced.flags.failed

    def test_from_record(self, processor, reference):
        """Test a reference given as an output record."""
        image = elliptical_image()
        direct = processor.measure(reference, image)
        forced = processor.measure_forced(reference, image, reference, direct.to_record('kron'))

        assert forced.radius == pytest.approx(direct.radius)
        assert forced.flux == pytest.approx(direct.flux, rel=1e-9)

    def test_translation(self, processor, reference):
        """Test mapping the aperture into a shifted image."""
        direct = processor.measure(reference, elliptical_image())
        shifted = elliptical_image(center=(60.0, 45.0))
        target = KronSource(id=1, x=60.0, y=45.0)

        forced = processor.measure_forced(target, shifted, reference, direct,
                                          AffineTransform(translation=(10.0, -5.0)))

        assert forced.aperture.center == pytest.approx((60.0, 45.0))
        assert forced.radius == pytest.approx(direct.radius)
        assert forced.flux == pytest.approx(direct.flux, rel=1e-6)

    def test_scaling(self, processor, reference):
        """Test that a magnifying transform grows the aperture."""
        direct = processor.measure(reference, elliptical_image())
        matrix = np.array([[1.5, 0.0, -25.0], [0.0, 1.5, -25.0], [0.0, 0.0, 1.0]])

        forced = processor.measure_forced(reference, elliptical_image(), reference, direct, matrix)

        assert forced.radius == pytest.approx(1.5 * direct.radius)
        assert forced.aperture.center == pytest.approx((50.0, 50.0))

    def test_no_solver(self, processor, reference):
        """Test that forced mode does not solve for a radius."""
        record = {'kron_radius': 3.0}
        forced = processor.measure_forced(reference, elliptical_image(), reference, record)

        assert forced.radius == pytest.approx(3.0)
        assert math.isnan(forced.radius_for_radius)

    def test_psf_radius_recorded(self, processor, reference):
        """Test that the PSF radius is recorded when a PSF is given."""
        record = {'kron_radius': 3.0}
        with_psf = processor.measure_forced(reference, elliptical_image(), reference, record,
                                            psf=GaussianPsf(1.5))
        without_psf = processor.measure_forced(reference, elliptical_image(), reference, record)

        assert with_psf.psf_radius == pytest.approx(math.sqrt(0.5 * math.pi) * 1.5)
        assert math.isnan(without_psf.psf_radius)

    def test_missing_radius(self, processor, reference):
        """Test a record without a Kron radius."""
        forced = processor.measure_forced(reference, elliptical_image(), reference, {'flux': 1.0})

        assert isinstance(forced, KronFailure)
        assert forced.kind == KronFailureKind.BAD_RADIUS
        assert forced.flags.failed

    def test_failed_reference(self, processor, reference):
        """Test that a failed reference cannot be forced."""
        failure = KronFailure(source_id=1, kind=KronFailureKind.EDGE, message="edge")
        forced = processor.measure_forced(reference, elliptical_image(), reference, failure)

        assert forced.kind == KronFailureKind.BAD_RADIUS

    def test_reference_without_shape(self, processor):
        """Test a record reference whose source has no shape."""
        reference = KronSource(id=1, x=50.0, y=50.0)
        forced = processor.measure_forced(reference, elliptical_image(), reference,
                                          {'kron_radius': 3.0})

        assert forced.kind == KronFailureKind.INVALID_SHAPE

    def test_edge(self, processor, reference):
        """Test that a mapped aperture leaving the image fails with the edge flag."""
        record = {'kron_radius': 3.0}
        forced = processor.measure_forced(reference, elliptical_image(), reference, record,
                                          AffineTransform(translation=(-48.0, 0.0)))

        assert forced.kind == KronFailureKind.SUBPIXEL
        assert forced.flags.edge

    def test_batch(self, processor, reference):
        """Test forced photometry of several sources."""
        image = elliptical_image()
        direct = processor.measure(reference, image)
        results = processor.measure_sources_forced(image, [reference, reference],
                                                   [reference, reference],
                                                   [direct, {'kron_radius': 2.0}])

        assert results.n_sources_processed == 2
        assert results.n_sources_successful == 2
        assert results.measurements[0].flux == pytest.approx(direct.flux)
        assert results.measurements[1].radius == pytest.approx(2.0)

    def test_batch_mismatched(self, processor, reference):
        """Test rejection of mismatched batch inputs."""
        with pytest.raises(ValueError, match="Mismatched inputs"):
            processor.measure_sources_forced(elliptical_image(), [reference], [], [])
