"""
First elliptical moment of a light distribution.

Given the shape and orientation of an ellipse (axis ratio ``ab`` and angle
``theta``), the elliptical radius of a point is the semi-major axis of the
ellipse of that shape passing through it. With ``theta = 0`` the major axis
lies along x and the elliptical radius of ``(x, y)`` is
``sqrt(x**2 + (y*ab)**2)``. The flux-weighted mean of this radius over a
footprint is the quantity the Kron radius is built from.
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .footprint import Footprint
from .image import MaskedImage
from .utils import EdgeTruncationError

# <r> of a uniformly bright square pixel about its own center
PIXEL_MEAN_RADIUS = 0.38259771140356325


@dataclass
class FootprintMoment:
    """Running sums of I and r*I over one footprint."""

    sum: float = 0.0
    sum_r: float = 0.0

    @property
    def good(self) -> bool:
        """Whether the measurement might be trusted."""
        return self.sum > 0 and self.sum_r > 0

    @property
    def mean_radius(self) -> float:
        """Flux-weighted mean elliptical radius, <r>."""
        if self.sum == 0:
            return math.nan
        return self.sum_r / self.sum


def elliptical_radii(xs: np.ndarray,
                     ys: np.ndarray,
                     center: Tuple[float, float],
                     ab: float,
                     theta: float) -> np.ndarray:
    """
    Elliptical radius of each pixel position.

    Pixels within half a pixel of the center are treated specially. For an
    object centered in the pixel with constant surface brightness the exact
    result is ``PIXEL_MEAN_RADIUS``; at the pixel corner it is twice that.
    We interpolate linearly in the displacement and add in quadrature, which
    gains significant precision for flattened Gaussians.
    """
    dx = xs - center[0]
    dy = ys - center[1]
    cos_t, sin_t = math.cos(theta), math.sin(theta)
    du = dx * cos_t + dy * sin_t
    dv = -dx * sin_t + dy * cos_t

    r = np.hypot(du, dv * ab)
    offset = np.hypot(dx, dy)
    central = offset < 0.5
    if np.any(central):
        r[central] = np.hypot(r[central],
                              PIXEL_MEAN_RADIUS * (1 + offset[central] / math.sqrt(2)))
    return r


def measure_elliptical_moment(image: MaskedImage,
                              footprint: Footprint,
                              center: Tuple[float, float],
                              ab: float,
                              theta: float) -> FootprintMoment:
    """
    Accumulate the first elliptical moment over ``footprint``.

    Parameters:
    -----------
    image : MaskedImage
        Pixels to measure; any real dtype, summed in float64
    footprint : Footprint
        Pixels that contribute
    center : tuple
        Object center (x, y) in the parent frame
    ab : float
        Axis ratio a/b of the ellipse defining the radial coordinate
    theta : float
        Orientation of the major axis, radians from the x axis

    Returns:
    --------
    FootprintMoment
        The accumulated sums; check ``good`` before using ``mean_radius``

    Raises:
    -------
    EdgeTruncationError
        If the footprint's bounding box does not fit inside the image
    """
    moment = FootprintMoment()
    if footprint.area == 0:
        return moment

    bbox = footprint.bbox
    if not image.bbox.contains(bbox):
        raise EdgeTruncationError(f"Footprint {bbox} doesn't fit in image {image.bbox}")

    values = image.image[footprint.ys - image.y0, footprint.xs - image.x0].astype(np.float64)
    radii = elliptical_radii(footprint.xs.astype(np.float64), footprint.ys.astype(np.float64),
                             center, ab, theta)

    moment.sum = float(np.sum(values))
    moment.sum_r = float(np.sum(radii * values))
    return moment
