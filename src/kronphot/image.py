"""
Pixel access for Kron photometry.

``MaskedImage`` couples an image plane with its variance plane and the
parent-frame coordinates of its first pixel, so that sub-images keep the
coordinates of the image they were cut from.
"""

import logging
from typing import Optional

import numpy as np
from astropy.convolution import Gaussian2DKernel, convolve

from .geometry import Box2I
from .utils import DataValidationError, EdgeTruncationError, validate_array

logger = logging.getLogger(__name__)


class MaskedImage:
    """
    Image and variance planes with a parent-frame origin.

    Parameters:
    -----------
    image : numpy.ndarray
        2D pixel intensities, indexed ``image[y, x]``
    variance : numpy.ndarray, optional
        Per-pixel variance with the same shape. Zero variance is assumed
        when omitted.
    x0, y0 : int
        Parent-frame coordinates of pixel ``image[0, 0]``
    """

    def __init__(self,
                 image: np.ndarray,
                 variance: Optional[np.ndarray] = None,
                 x0: int = 0,
                 y0: int = 0):
        image = np.asarray(image)
        validate_array(image, name="image", ndim=2)
        if not np.issubdtype(image.dtype, np.number):
            raise DataValidationError(f"image must be numeric, got {image.dtype}")

        if variance is None:
            variance = np.zeros(image.shape, dtype=np.float64)
        else:
            variance = np.asarray(variance)
            validate_array(variance, name="variance", shape=image.shape)

        self.image = image
        self.variance = variance
        self.x0 = int(x0)
        self.y0 = int(y0)

    @property
    def bbox(self) -> Box2I:
        return Box2I.from_shape(self.image.shape, self.x0, self.y0)

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]

    def subimage(self, bbox: Box2I, copy: bool = False) -> 'MaskedImage':
        """
        View (or copy) of the pixels inside ``bbox``.

        Raises:
        -------
        EdgeTruncationError
            If ``bbox`` is not entirely inside this image
        """
        if bbox.is_empty or not self.bbox.contains(bbox):
            raise EdgeTruncationError(f"Box {bbox} doesn't fit in image {self.bbox}")

        rows, cols = bbox.slices(self.x0, self.y0)
        image = self.image[rows, cols]
        variance = self.variance[rows, cols]
        if copy:
            image = image.copy()
            variance = variance.copy()
        return MaskedImage(image, variance, x0=bbox.min_x, y0=bbox.min_y)

    def smoothed(self, sigma: float) -> 'MaskedImage':
        """
        Copy of this image convolved with a normalized Gaussian.

        The kernel is ``2*int(2*sigma) + 1`` pixels on a side. Pixels closer to
        the border than the kernel half-width have no valid smoothed value and
        are set to NaN, so any sum over them is NaN too; callers grow their
        region by ``smoothing_half_width(sigma)`` before smoothing. The
        variance plane is carried over unchanged.
        """
        half = smoothing_half_width(sigma)
        size = 2 * half + 1
        kernel = Gaussian2DKernel(x_stddev=sigma, x_size=size, y_size=size)
        smoothed = convolve(self.image.astype(np.float64), kernel,
                            boundary=None, normalize_kernel=True)
        if half > 0:
            # edge pixels
            smoothed[:half, :] = np.nan
            smoothed[-half:, :] = np.nan
            smoothed[:, :half] = np.nan
            smoothed[:, -half:] = np.nan
        return MaskedImage(smoothed, self.variance.copy(), x0=self.x0, y0=self.y0)

    def __repr__(self) -> str:
        return f"MaskedImage(bbox={self.bbox}, dtype={self.image.dtype})"


def smoothing_half_width(sigma: float) -> int:
    """Half-width in pixels of the smoothing kernel for Gaussian ``sigma``."""
    return int(2 * sigma)
