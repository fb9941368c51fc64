"""
Kron aperture photometry for astronomical images.
"""

__version__ = '0.1.0'

from .config_manager import ConfigManager, KronPhotometryConfig, LoggingConfig, load_config
from .footprint import Footprint
from .geometry import Box2I, EllipseAxes, KronAperture
from .image import MaskedImage
from .kron import (
    KronFailure,
    KronFailureKind,
    KronFlags,
    KronMeasurement,
    KronPhotometry,
    KronPhotometryResults,
    KronSource,
    determine_kron_aperture,
    enforce_minimum_radius_floor,
    extract_kron_table,
    fallback_aperture,
)
from .parallel_processing import ParallelProcessor
from .psf import GaussianPsf, ImagePsf, calculate_psf_kron_radius, psf_aperture_flux
from .utils import PhotometryError, setup_logging
