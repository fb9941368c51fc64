"""
Utilities for the Kron photometry package.

Logging setup, the exception hierarchy shared by every stage of the Kron
measurement, and small validation and monitoring helpers.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Optional, Tuple

import numpy as np
import psutil


# Configure logging
class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for different log levels."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(level: str = 'INFO',
                  log_file: Optional[str] = None,
                  enable_colors: bool = True) -> logging.Logger:
    """
    Set up logging for the Kron photometry package.

    Parameters:
    -----------
    level : str, default='INFO'
        Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
    log_file : str, optional
        Path to log file. If None, only logs to console
    enable_colors : bool, default=True
        Whether to use colored output for console logging

    Returns:
    --------
    logging.Logger
        Configured package logger
    """
    logger = logging.getLogger('kronphot')
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))

    if enable_colors and sys.stdout.isatty():
        console_formatter = ColoredFormatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
    else:
        console_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )

    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


class DataValidationError(Exception):
    """Custom exception for data validation errors."""
    pass


class ConfigurationError(Exception):
    """Custom exception for configuration errors."""
    pass


class PhotometryError(Exception):
    """Base exception for failures while measuring a Kron aperture or flux."""
    pass


class EdgeTruncationError(PhotometryError):
    """The requested pixel window does not fit inside the image."""
    pass


class DegenerateMomentError(PhotometryError):
    """The first-moment integral had a non-positive flux or radius sum."""
    pass


class InvalidShapeError(PhotometryError):
    """The source shape is unusable and no PSF is available to replace it."""
    pass


class NoFloorAvailableError(PhotometryError):
    """Minimum-radius enforcement was requested without a minimum or a PSF."""
    pass


class ExhaustedFallbackError(PhotometryError):
    """No minimum radius and no PSF radius to fall back on."""
    pass


class SubpixelIntegrationError(PhotometryError):
    """The exact small-aperture integral ran off the image."""
    pass


class BadRadiusError(PhotometryError):
    """The final Kron radius is not usable (zero or below machine epsilon)."""
    pass


@contextmanager
def memory_monitor(operation_name: str, logger: Optional[logging.Logger] = None):
    """
    Context manager to monitor memory usage during operations.

    Parameters:
    -----------
    operation_name : str
        Name of the operation being monitored
    logger : logging.Logger, optional
        Logger instance to use for reporting
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    process = psutil.Process()
    initial_memory = process.memory_info().rss / 1024 / 1024  # MB

    logger.debug(f"Starting {operation_name} - Initial memory: {initial_memory:.1f} MB")

    try:
        yield
    finally:
        final_memory = process.memory_info().rss / 1024 / 1024  # MB
        memory_delta = final_memory - initial_memory

        logger.debug(f"Completed {operation_name} - Final memory: {final_memory:.1f} MB "
                     f"({memory_delta:+.1f} MB)")


@contextmanager
def timing_context(operation_name: str, logger: Optional[logging.Logger] = None):
    """
    Context manager to time operations.

    Parameters:
    -----------
    operation_name : str
        Name of the operation being timed
    logger : logging.Logger, optional
        Logger instance to use for reporting
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.debug(f"Starting {operation_name}")

    try:
        yield
    finally:
        duration = time.time() - start_time
        logger.info(f"Completed {operation_name} in {duration:.2f} seconds")


def validate_array(arr: np.ndarray,
                   name: str = "Array",
                   ndim: Optional[int] = None,
                   shape: Optional[Tuple[int, ...]] = None,
                   allow_nan: bool = True) -> bool:
    """
    Validate numpy array properties.

    Parameters:
    -----------
    arr : numpy.ndarray
        Array to validate
    name : str, default="Array"
        Name for error messages
    ndim : int, optional
        Required number of dimensions
    shape : tuple, optional
        Required exact shape
    allow_nan : bool, default=True
        Whether to allow NaN values

    Returns:
    --------
    bool
        True if validation passes

    Raises:
    -------
    DataValidationError
        If validation fails
    """
    if not isinstance(arr, np.ndarray):
        raise DataValidationError(f"{name} must be a numpy array, got {type(arr)}")

    if arr.size == 0:
        raise DataValidationError(f"{name} is empty")

    if ndim is not None and arr.ndim != ndim:
        raise DataValidationError(f"{name} must be {ndim}-dimensional, got {arr.ndim} dimensions")

    if shape is not None and arr.shape != tuple(shape):
        raise DataValidationError(f"{name} shape {arr.shape} does not match {tuple(shape)}")

    if not allow_nan and np.any(np.isnan(arr)):
        raise DataValidationError(f"{name} contains NaN values")

    return True
