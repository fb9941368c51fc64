"""
Flux integration inside an elliptical aperture.

Large apertures are measured by summing every pixel whose center lies in
the ellipse; pixel quantization is negligible there. Apertures whose
semi-minor axis is at most ``max_sinc_radius`` are handed to SEP's exact
overlap integrator, where single-pixel quantization would otherwise
dominate the error.
"""

import logging
import math
from typing import Tuple

import numpy as np
import sep

from .footprint import Footprint
from .geometry import Box2I, KronAperture
from .image import MaskedImage
from .utils import SubpixelIntegrationError

logger = logging.getLogger(__name__)

# SEP aperture flag: aperture truncated at the image boundary
SEP_APER_TRUNC = 0x0010


def sum_footprint_flux(image: MaskedImage, aperture: KronAperture) -> Tuple[float, float]:
    """
    Sum of intensity and variance over the aperture's footprint.

    The footprint is clipped to the image; returns ``(sum, sqrt(sum_var))``.
    """
    footprint = Footprint.from_ellipse(aperture.center, aperture.axes, clip=image.bbox)
    if footprint.area == 0:
        return 0.0, 0.0
    rows = footprint.ys - image.y0
    cols = footprint.xs - image.x0
    flux = float(np.sum(image.image[rows, cols], dtype=np.float64))
    variance = float(np.sum(image.variance[rows, cols], dtype=np.float64))
    return flux, math.sqrt(variance)


def sinc_aperture_flux(image: MaskedImage, aperture: KronAperture) -> Tuple[float, float]:
    """
    Exact-overlap flux and uncertainty from ``sep.sum_ellipse``.

    Raises:
    -------
    SubpixelIntegrationError
        If the aperture does not fit inside the image
    """
    axes = aperture.axes
    c, s = math.cos(axes.theta), math.sin(axes.theta)
    half_x = math.sqrt((axes.a * c) ** 2 + (axes.b * s) ** 2)
    half_y = math.sqrt((axes.a * s) ** 2 + (axes.b * c) ** 2)
    region = Box2I(int(math.floor(aperture.x - half_x)) - 1, int(math.floor(aperture.y - half_y)) - 1,
                   int(math.ceil(aperture.x + half_x)) + 1, int(math.ceil(aperture.y + half_y)) + 1)
    region = region.clipped(image.bbox)
    if region.is_empty:
        raise SubpixelIntegrationError(_describe(aperture, "aperture lies outside the image"))

    rows, cols = region.slices(image.x0, image.y0)
    data = np.ascontiguousarray(image.image[rows, cols], dtype=np.float64)
    var = np.ascontiguousarray(image.variance[rows, cols], dtype=np.float64)

    flux, fluxerr, flag = sep.sum_ellipse(
        data,
        [aperture.x - region.min_x], [aperture.y - region.min_y],
        [axes.a], [axes.b], [axes.theta],
        r=1.0,
        var=var,
        subpix=0
    )

    if int(flag[0]) & SEP_APER_TRUNC:
        raise SubpixelIntegrationError(_describe(aperture, "aperture truncated at the image edge"))

    return float(flux[0]), float(fluxerr[0])


def photometer(image: MaskedImage,
               aperture: KronAperture,
               max_sinc_radius: float) -> Tuple[float, float]:
    """
    Flux and uncertainty inside ``aperture``.

    Parameters:
    -----------
    image : MaskedImage
        Image with variance plane
    aperture : KronAperture
        Aperture in which to measure
    max_sinc_radius : float
        Largest semi-minor axis measured with the exact integrator

    Returns:
    --------
    tuple
        (flux, flux_err)
    """
    if aperture.axes.b > max_sinc_radius:
        return sum_footprint_flux(image, aperture)
    return sinc_aperture_flux(image, aperture)


def measure_aperture(image: MaskedImage,
                     aperture: KronAperture,
                     n_radius_for_flux: float,
                     max_sinc_radius: float) -> Tuple[float, float]:
    """Photometer ``image`` inside ``aperture`` scaled by ``n_radius_for_flux``."""
    return photometer(image, aperture.scaled(n_radius_for_flux), max_sinc_radius)


def _describe(aperture: KronAperture, reason: str) -> str:
    axes = aperture.axes
    return (f"Measuring Kron flux for object at ({aperture.x:.3f}, {aperture.y:.3f}); "
            f"aperture radius {axes.a:g},{axes.b:g} theta {math.degrees(axes.theta):g}: {reason}")
