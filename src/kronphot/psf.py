"""
PSF models and PSF-derived reference quantities for Kron photometry.

The PSF supplies two things: a reference Kron radius, used as a floor for
small or failed apertures, and the fraction of the PSF's own light that an
aperture of a given radius collects, recorded as an aperture-correction
factor.
"""

import logging
import math
from typing import Optional, Protocol, Tuple

import numpy as np
from scipy.ndimage import center_of_mass

from .aperture_flux import photometer
from .geometry import EllipseAxes, KronAperture
from .image import MaskedImage
from .utils import DataValidationError, validate_array

logger = logging.getLogger(__name__)

# Border added around a rendered PSF before integrating apertures on it
PSF_PAD = 5


class PsfModel(Protocol):
    """Anything that can report its shape and render itself at a position."""

    def compute_shape(self, center: Optional[Tuple[float, float]] = None) -> EllipseAxes:
        ...

    def compute_image(self, center: Optional[Tuple[float, float]] = None) -> np.ndarray:
        ...


class GaussianPsf:
    """
    Circular Gaussian PSF.

    Parameters:
    -----------
    sigma : float
        Gaussian standard deviation in pixels
    size : int, optional
        Side of the rendered stamp; made odd. Defaults to ``2*ceil(5*sigma) + 1``.
    """

    def __init__(self, sigma: float, size: Optional[int] = None):
        if not (np.isfinite(sigma) and sigma > 0):
            raise ValueError(f"PSF sigma must be positive, got {sigma}")
        self.sigma = float(sigma)
        if size is None:
            size = 2 * int(math.ceil(5 * self.sigma)) + 1
        if size % 2 == 0:
            size += 1
        self.size = int(size)

    def compute_shape(self, center: Optional[Tuple[float, float]] = None) -> EllipseAxes:
        return EllipseAxes.circle(self.sigma)

    def compute_image(self, center: Optional[Tuple[float, float]] = None) -> np.ndarray:
        """Stamp centered on its middle pixel, normalized to unit sum."""
        half = self.size // 2
        y, x = np.mgrid[-half:half + 1, -half:half + 1]
        stamp = np.exp(-0.5 * (x ** 2 + y ** 2) / self.sigma ** 2)
        return stamp / np.sum(stamp)

    def __repr__(self) -> str:
        return f"GaussianPsf(sigma={self.sigma}, size={self.size})"


class ImagePsf:
    """
    Empirical PSF given as a pixelized stamp.

    The stamp is normalized to unit sum; its shape is the flux-weighted
    second-moment ellipse about the center of mass.
    """

    def __init__(self, image: np.ndarray):
        image = np.asarray(image, dtype=np.float64)
        validate_array(image, name="PSF image", ndim=2, allow_nan=False)
        total = np.sum(image)
        if total <= 0:
            raise DataValidationError("PSF image must have positive total flux")
        self.image = image / total
        self._shape = self._measure_psf_shape(self.image)

    @staticmethod
    def _measure_psf_shape(psf: np.ndarray) -> EllipseAxes:
        y_center, x_center = center_of_mass(psf)
        y, x = np.ogrid[:psf.shape[0], :psf.shape[1]]
        total_flux = np.sum(psf)

        # Second moments
        m_xx = np.sum((x - x_center) ** 2 * psf) / total_flux
        m_yy = np.sum((y - y_center) ** 2 * psf) / total_flux
        m_xy = np.sum((x - x_center) * (y - y_center) * psf) / total_flux

        return EllipseAxes.from_moments(float(m_xx), float(m_yy), float(m_xy))

    def compute_shape(self, center: Optional[Tuple[float, float]] = None) -> EllipseAxes:
        return self._shape

    def compute_image(self, center: Optional[Tuple[float, float]] = None) -> np.ndarray:
        return self.image.copy()

    def __repr__(self) -> str:
        return f"ImagePsf(shape={self.image.shape})"


def calculate_psf_kron_radius(psf: PsfModel,
                              center: Tuple[float, float],
                              smoothing_sigma: float = 0.0) -> float:
    """
    Kron radius of the PSF, optionally broadened by the smoothing kernel.

    For a Gaussian of width sigma the Kron radius is ``sqrt(pi/2) * sigma``;
    the PSF's determinant radius stands in for sigma, and a smoothing Gaussian
    adds in quadrature.

    Parameters:
    -----------
    psf : PsfModel
        PSF to evaluate
    center : tuple
        Position (x, y) at which to evaluate the PSF
    smoothing_sigma : float, default=0.0
        Smoothing width; non-positive values are ignored

    Returns:
    --------
    float
        PSF Kron radius in pixels
    """
    psf_radius = psf.compute_shape(center).determinant_radius
    return math.sqrt(0.5 * math.pi) * math.hypot(psf_radius, max(0.0, smoothing_sigma))


def psf_aperture_flux(psf: Optional[PsfModel],
                      center: Tuple[float, float],
                      radius: float,
                      max_sinc_radius: float) -> float:
    """
    Flux of the normalized PSF inside a circular aperture of ``radius``.

    The rendered PSF is padded by ``PSF_PAD`` pixels (more if the aperture
    would not otherwise fit) and the aperture is centered on pixel
    ``int(0.5*(size - 1))``. Returns 1.0 when there is no PSF.
    """
    if psf is None:
        return 1.0

    stamp = np.asarray(psf.compute_image(center), dtype=np.float64)
    half = min(stamp.shape) // 2
    pad = max(PSF_PAD, int(math.ceil(radius)) - half + 2)
    padded = np.pad(stamp, pad, mode='constant', constant_values=0.0)

    height, width = padded.shape
    aperture = KronAperture((int(0.5 * (width - 1)), int(0.5 * (height - 1))),
                            EllipseAxes.circle(radius))
    flux, _ = photometer(MaskedImage(padded), aperture, max_sinc_radius)
    logger.debug(f"PSF flux within radius {radius:.3f}: {flux:.5f}")
    return flux
