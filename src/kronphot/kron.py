"""
Kron photometry.

Estimates an adaptive elliptical aperture for each source from the first
radial moment of its light, refines it iteratively, applies the fallback and
minimum-radius policies and integrates the flux inside ``n_radius_for_flux``
Kron radii. A forced mode reuses the radius measured on a reference image,
mapping the reference aperture into the measured frame.

Every measurement returns either a ``KronMeasurement`` or a ``KronFailure``;
both carry the quality flags describing what happened on the way.
"""

import enum
import functools
import logging
import math
import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
from astropy.table import Table

from .aperture_flux import measure_aperture
from .config_manager import KronPhotometryConfig
from .footprint import Footprint
from .geometry import AffineLike, EllipseAxes, KronAperture
from .image import MaskedImage, smoothing_half_width
from .moments import measure_elliptical_moment
from .psf import PsfModel, calculate_psf_kron_radius, psf_aperture_flux
from .utils import (
    BadRadiusError,
    DegenerateMomentError,
    EdgeTruncationError,
    ExhaustedFallbackError,
    InvalidShapeError,
    NoFloorAvailableError,
    PhotometryError,
    SubpixelIntegrationError,
    memory_monitor,
    timing_context,
)

logger = logging.getLogger(__name__)

# Apertures with a smaller determinant radius cannot be measured
RADIUS_EPSILON = np.finfo(np.float32).eps

# Relative slack when comparing a radius with the floor it was raised to
FLOOR_RTOL = 1e-10


@dataclass
class KronSource:
    """A detected source to measure."""
    id: int
    x: float
    y: float
    shape: Optional[EllipseAxes] = None      # measured second-moment shape
    shape_flag: bool = False                 # True when ``shape`` is unreliable
    footprint: Optional[Footprint] = None    # detection footprint
    kron_axes: Optional[EllipseAxes] = None  # stored aperture for fixed mode

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x, self.y)

    @property
    def has_valid_shape(self) -> bool:
        return self.shape is not None and not self.shape_flag


@dataclass(frozen=True)
class KronFlags:
    """Quality flags of one measurement; ``failed`` stays set unless it completes."""
    edge: bool = False
    bad_radius: bool = False
    small_radius: bool = False
    used_minimum_radius: bool = False
    used_psf_radius: bool = False
    bad_shape: bool = False
    failed: bool = True

    def set(self, **flags: bool) -> 'KronFlags':
        return replace(self, **flags)

    def names(self) -> List[str]:
        """Names of the flags that are set."""
        return [name for name, value in asdict(self).items() if value]


class KronFailureKind(enum.Enum):
    """Why a measurement could not be completed."""
    EDGE = 'edge'
    DEGENERATE_MOMENT = 'degenerate_moment'
    INVALID_SHAPE = 'invalid_shape'
    NO_FLOOR = 'no_floor'
    EXHAUSTED_FALLBACK = 'exhausted_fallback'
    SUBPIXEL = 'subpixel'
    BAD_RADIUS = 'bad_radius'
    UNEXPECTED = 'unexpected'


_FAILURE_KINDS = [
    (EdgeTruncationError, KronFailureKind.EDGE, {'edge': True}),
    (SubpixelIntegrationError, KronFailureKind.SUBPIXEL, {'edge': True}),
    (ExhaustedFallbackError, KronFailureKind.EXHAUSTED_FALLBACK, {'bad_radius': True}),
    (BadRadiusError, KronFailureKind.BAD_RADIUS, {'bad_radius': True}),
    (DegenerateMomentError, KronFailureKind.DEGENERATE_MOMENT, {}),
    (InvalidShapeError, KronFailureKind.INVALID_SHAPE, {'bad_shape': True}),
    (NoFloorAvailableError, KronFailureKind.NO_FLOOR, {}),
]


def _record_flags(flags: KronFlags, prefix: str) -> Dict[str, bool]:
    record = {f'{prefix}_flag': flags.failed}
    for name in ('edge', 'bad_radius', 'small_radius', 'used_minimum_radius',
                 'used_psf_radius', 'bad_shape'):
        record[f'{prefix}_flag_{name}'] = getattr(flags, name)
    return record


@dataclass(frozen=True)
class KronMeasurement:
    """A completed Kron measurement."""
    source_id: int
    flux: float
    flux_err: float
    radius: float
    radius_for_radius: float
    psf_radius: float
    psf_factor: float
    aperture: KronAperture
    flags: KronFlags = field(default_factory=lambda: KronFlags(failed=False))

    succeeded = True

    def to_record(self, prefix: str = 'kron') -> Dict[str, Any]:
        """Output fields named ``{prefix}_<field>``."""
        record = {
            f'{prefix}_flux': self.flux,
            f'{prefix}_flux_err': self.flux_err,
            f'{prefix}_radius': self.radius,
            f'{prefix}_radius_for_radius': self.radius_for_radius,
            f'{prefix}_psf_radius': self.psf_radius,
            f'{prefix}_psf_factor': self.psf_factor,
        }
        record.update(_record_flags(self.flags, prefix))
        return record


@dataclass(frozen=True)
class KronFailure:
    """A measurement that was abandoned; no flux is available."""
    source_id: int
    kind: KronFailureKind
    message: str
    flags: KronFlags = field(default_factory=KronFlags)
    psf_radius: float = math.nan
    radius_for_radius: float = math.nan

    succeeded = False

    def to_record(self, prefix: str = 'kron') -> Dict[str, Any]:
        record = {
            f'{prefix}_flux': math.nan,
            f'{prefix}_flux_err': math.nan,
            f'{prefix}_radius': math.nan,
            f'{prefix}_radius_for_radius': self.radius_for_radius,
            f'{prefix}_psf_radius': self.psf_radius,
            f'{prefix}_psf_factor': math.nan,
        }
        record.update(_record_flags(self.flags, prefix))
        return record


KronResult = Union[KronMeasurement, KronFailure]


@dataclass
class KronPhotometryResults:
    """Container for the Kron photometry of many sources."""

    measurements: List[KronResult]
    config: KronPhotometryConfig

    # Global statistics
    statistics: Dict[str, Any] = field(default_factory=dict)

    # Processing information
    processing_time: float = 0.0
    n_sources_processed: int = 0
    n_sources_successful: int = 0


def _window_moment(image: MaskedImage,
                   window: EllipseAxes,
                   center: Tuple[float, float],
                   ab: float,
                   theta: float,
                   smoothing_sigma: float):
    """First moment over the pixels of ``window``, smoothing them first if asked."""
    footprint = Footprint.from_ellipse(center, window)
    if footprint.area == 0 or smoothing_sigma <= 0:
        return measure_elliptical_moment(image, footprint, center, ab, theta)

    bbox = footprint.bbox.grow(smoothing_half_width(smoothing_sigma)).clipped(image.bbox)
    if bbox.is_empty:
        raise EdgeTruncationError(f"Footprint {footprint.bbox} doesn't fit in image {image.bbox}")
    region = image.subimage(bbox).smoothed(smoothing_sigma)
    return measure_elliptical_moment(region, footprint, center, ab, theta)


def determine_kron_aperture(image: MaskedImage,
                            axes: EllipseAxes,
                            center: Tuple[float, float],
                            config: KronPhotometryConfig) -> Tuple[KronAperture, float]:
    """
    Iteratively solve for the Kron aperture of a source.

    Each iteration measures the first moment inside ``n_sigma_for_radius``
    times the current aperture and adopts the result; iteration stops after
    ``n_iter_for_radius`` passes or as soon as the estimate stops growing.

    Parameters:
    -----------
    image : MaskedImage
        Image to measure
    axes : EllipseAxes
        Initial shape of the aperture
    center : tuple
        Source center (x, y)
    config : KronPhotometryConfig
        Measurement options

    Returns:
    --------
    tuple
        (KronAperture, radius_for_radius), the latter being the determinant
        radius of the last window used (NaN if no iteration ran)

    Raises:
    -------
    EdgeTruncationError
        If the first window does not fit in the image
    DegenerateMomentError
        If the moment integral is not positive
    InvalidShapeError
        If ``axes`` is degenerate
    """
    if axes.b <= 0:
        raise InvalidShapeError(f"Degenerate aperture shape a={axes.a}, b={axes.b}")

    ab = axes.axis_ratio
    current = axes
    radius0 = axes.determinant_radius
    radius_for_radius = math.nan

    for i in range(config.n_iter_for_radius):
        window = current.scaled(config.n_sigma_for_radius)
        radius_for_radius = window.determinant_radius

        try:
            moment = _window_moment(image, window, center, ab, axes.theta, config.smoothing_sigma)
        except EdgeTruncationError as e:
            if i == 0:
                raise EdgeTruncationError(f"Determining Kron aperture: {e}") from e
            logger.debug(f"Kron window {window.a:.2f}x{window.b:.2f} at {center} left the image; "
                         f"keeping radius {current.determinant_radius:.3f}")
            break

        if not moment.good:
            raise DegenerateMomentError("Bad integral defining Kron radius")

        radius = moment.mean_radius * math.sqrt(window.b / window.a)
        current = current.with_radius(radius)
        if radius <= radius0:
            break
        radius0 = radius

    return KronAperture(center, current), radius_for_radius


def fallback_aperture(shape: EllipseAxes,
                      center: Tuple[float, float],
                      minimum_radius: float,
                      psf_radius: Optional[float],
                      exc: Exception) -> Tuple[KronAperture, str]:
    """
    Substitute aperture when the Kron radius could not be measured.

    The configured minimum radius wins over the PSF Kron radius. The
    substitute keeps the orientation and axis ratio of ``shape``.

    Returns:
    --------
    tuple
        (KronAperture, name of the flag recording which radius was used)

    Raises:
    -------
    ExhaustedFallbackError
        If neither radius is available; chained from ``exc``
    """
    if minimum_radius > 0:
        radius, choice = minimum_radius, 'used_minimum_radius'
    elif psf_radius is not None and psf_radius > 0:
        radius, choice = psf_radius, 'used_psf_radius'
    else:
        raise ExhaustedFallbackError(
            f"Bad Kron aperture, no minimum radius specified, and no PSF: {exc}") from exc

    base = shape if shape.determinant_radius > 0 else EllipseAxes.circle(1.0)
    return KronAperture(center, base.with_radius(radius)), choice


def enforce_minimum_radius_floor(aperture: KronAperture,
                                 minimum_radius: float,
                                 psf_radius: Optional[float],
                                 flags: Optional[KronFlags] = None) -> Tuple[KronAperture, KronFlags]:
    """
    Raise the aperture to the minimum radius, or else to the PSF Kron radius.

    Apertures already at (or above) the floor are returned unchanged, so
    applying this twice gives the same result as applying it once.

    Raises:
    -------
    NoFloorAvailableError
        If there is neither a minimum radius nor a PSF radius
    """
    flags = flags if flags is not None else KronFlags()
    if minimum_radius > 0:
        floor, choice = minimum_radius, 'used_minimum_radius'
    elif psf_radius is not None and psf_radius > 0:
        floor, choice = psf_radius, 'used_psf_radius'
    else:
        raise NoFloorAvailableError("No minimum radius and no PSF provided")

    radius = aperture.radius
    if radius >= floor or math.isclose(radius, floor, rel_tol=FLOOR_RTOL):
        return aperture, flags

    if radius > 0:
        aperture = aperture.with_radius(floor)
    else:
        aperture = KronAperture(aperture.center, EllipseAxes.circle(floor))
    return aperture, flags.set(small_radius=True, **{choice: True})


class KronPhotometry:
    """
    Kron aperture photometry processor.

    Measures sources one at a time (``measure``, ``measure_forced``) or as a
    batch in which each source is isolated from the failures of the others
    (``measure_sources``, ``measure_sources_forced``).
    """

    def __init__(self, config: Optional[KronPhotometryConfig] = None):
        """
        Initialize the Kron photometry processor.

        Parameters:
        -----------
        config : KronPhotometryConfig, optional
            Measurement configuration. If None, uses defaults.
        """
        self.logger = logging.getLogger(__name__)
        self.config = config or KronPhotometryConfig()
        self.config.validate()

    def _psf_radius(self, psf: Optional[PsfModel], center: Tuple[float, float]) -> float:
        if psf is None:
            return math.nan
        return calculate_psf_kron_radius(psf, center, self.config.smoothing_sigma)

    def _select_shape(self, source: KronSource, psf: Optional[PsfModel],
                      flags: KronFlags) -> Tuple[EllipseAxes, KronFlags]:
        if source.has_valid_shape:
            return source.shape, flags
        if psf is None:
            raise InvalidShapeError(f"Bad shape and no PSF for source {source.id}")
        self.logger.debug(f"Source {source.id}: bad shape, using the PSF shape")
        return psf.compute_shape(source.center), flags.set(bad_shape=True)

    def _widen_to_footprint(self, source: KronSource, axes: EllipseAxes) -> EllipseAxes:
        if source.footprint is None or source.footprint.area == 0:
            self.logger.debug(f"Source {source.id}: no footprint to widen the aperture")
            return axes
        if axes.determinant_radius <= 0:
            # left for the solver to reject as an invalid shape
            self.logger.debug(f"Source {source.id}: degenerate shape, not widened to the footprint")
            return axes

        # <r^2> = R^2/2 for a disk of radius R
        foot_radius = source.footprint.compute_shape().scaled(math.sqrt(2)).determinant_radius
        radius0 = axes.determinant_radius
        if foot_radius > radius0 * self.config.n_sigma_for_radius:
            return axes.with_radius(foot_radius / self.config.n_sigma_for_radius)
        return axes

    def measure(self,
                source: KronSource,
                image: MaskedImage,
                psf: Optional[PsfModel] = None) -> KronResult:
        """
        Measure the Kron aperture and flux of one source.

        Parameters:
        -----------
        source : KronSource
            Source to measure
        image : MaskedImage
            Image containing the source
        psf : PsfModel, optional
            PSF at the source, used for bad shapes, fallbacks and the radius floor

        Returns:
        --------
        KronMeasurement or KronFailure
        """
        config = self.config
        center = source.center
        psf_radius = self._psf_radius(psf, center)
        floor_psf_radius = psf_radius if psf is not None else None
        radius_for_radius = math.nan
        flags = KronFlags()

        try:
            axes, flags = self._select_shape(source, psf, flags)
            if config.use_footprint_radius:
                axes = self._widen_to_footprint(source, axes)

            if config.fixed:
                stored = source.kron_axes if source.kron_axes is not None else axes
                aperture = KronAperture(center, stored)
            else:
                try:
                    aperture, radius_for_radius = determine_kron_aperture(image, axes, center, config)
                except EdgeTruncationError:
                    raise
                except (DegenerateMomentError, InvalidShapeError) as e:
                    flags = flags.set(bad_radius=True)
                    aperture, choice = fallback_aperture(axes, center, config.minimum_radius,
                                                         floor_psf_radius, e)
                    flags = flags.set(**{choice: True})
                    self.logger.debug(f"Source {source.id}: {e}; falling back to radius "
                                      f"{aperture.radius:.3f} ({choice})")

            if config.enforce_minimum_radius:
                aperture, flags = enforce_minimum_radius_floor(aperture, config.minimum_radius,
                                                               floor_psf_radius, flags)

            return self._apply_aperture(source.id, image, psf, aperture, flags,
                                        psf_radius, radius_for_radius)
        except PhotometryError as e:
            return self._failure(source.id, e, flags, psf_radius, radius_for_radius)

    def measure_forced(self,
                       source: KronSource,
                       image: MaskedImage,
                       reference: KronSource,
                       reference_result: Union[KronMeasurement, Mapping[str, Any]],
                       transform: Optional[AffineLike] = None,
                       psf: Optional[PsfModel] = None) -> KronResult:
        """
        Measure flux in the aperture found on a reference image.

        Parameters:
        -----------
        source : KronSource
            Source in the measured image
        image : MaskedImage
            Image to measure
        reference : KronSource
            The same source as detected on the reference image
        reference_result : KronMeasurement or mapping
            Reference measurement, or a record holding ``{prefix}_radius``
        transform : AffineTransform or 3x3 array, optional
            Map from reference to measured pixel coordinates (identity if None)
        psf : PsfModel, optional
            PSF of the measured image; only recorded

        Returns:
        --------
        KronMeasurement or KronFailure
        """
        psf_radius = self._psf_radius(psf, source.center)
        flags = KronFlags()

        try:
            radius = self._reference_radius(reference_result)
            if isinstance(reference_result, KronMeasurement):
                ref_center = reference_result.aperture.center
                ref_shape = reference_result.aperture.axes
            elif reference.shape is not None:
                ref_center, ref_shape = reference.center, reference.shape
            else:
                raise InvalidShapeError(f"Reference source {reference.id} has no shape")

            if ref_shape.determinant_radius <= 0:
                raise InvalidShapeError(f"Reference source {reference.id} has a degenerate shape")

            aperture = KronAperture.from_reference(ref_center, ref_shape, transform, radius)
            return self._apply_aperture(source.id, image, psf, aperture, flags,
                                        psf_radius, math.nan)
        except PhotometryError as e:
            return self._failure(source.id, e, flags, psf_radius, math.nan)

    def _reference_radius(self, reference_result: Union[KronMeasurement, Mapping[str, Any]]) -> float:
        if isinstance(reference_result, KronFailure):
            raise BadRadiusError(f"Reference measurement failed ({reference_result.kind.value})")
        if isinstance(reference_result, KronMeasurement):
            radius = reference_result.radius
        else:
            key = f'{self.config.prefix}_radius'
            if key not in reference_result:
                raise BadRadiusError(f"Reference record has no '{key}' field")
            radius = float(reference_result[key])

        if not (np.isfinite(radius) and radius > 0):
            raise BadRadiusError(f"Reference Kron radius {radius} is not usable")
        return radius

    def _apply_aperture(self,
                        source_id: int,
                        image: MaskedImage,
                        psf: Optional[PsfModel],
                        aperture: KronAperture,
                        flags: KronFlags,
                        psf_radius: float,
                        radius_for_radius: float) -> KronMeasurement:
        """Integrate the flux in ``n_radius_for_flux`` times ``aperture``."""
        config = self.config
        radius = aperture.radius
        if not radius > RADIUS_EPSILON:
            raise BadRadiusError(f"Kron radius {radius} is too small to measure")

        flux, flux_err = measure_aperture(image, aperture, config.n_radius_for_flux,
                                          config.max_sinc_radius)

        psf_factor = math.nan
        if config.compute_psf_factor and psf is not None:
            psf_factor = psf_aperture_flux(psf, aperture.center, config.n_radius_for_flux * radius,
                                           config.max_sinc_radius)

        return KronMeasurement(
            source_id=source_id,
            flux=flux,
            flux_err=flux_err,
            radius=radius,
            radius_for_radius=radius_for_radius,
            psf_radius=psf_radius,
            psf_factor=psf_factor,
            aperture=aperture,
            flags=flags.set(failed=False)
        )

    def _failure(self, source_id: int, exc: Exception, flags: KronFlags,
                 psf_radius: float, radius_for_radius: float) -> KronFailure:
        kind = KronFailureKind.UNEXPECTED
        for exc_class, exc_kind, exc_flags in _FAILURE_KINDS:
            if isinstance(exc, exc_class):
                kind = exc_kind
                flags = flags.set(**exc_flags)
                break

        self.logger.debug(f"Kron photometry failed for source {source_id} ({kind.value}): {exc}")
        return KronFailure(source_id=source_id, kind=kind, message=str(exc),
                           flags=flags.set(failed=True), psf_radius=psf_radius,
                           radius_for_radius=radius_for_radius)

    def measure_isolated(self, source_id: int, measurement: Callable[[], KronResult]) -> KronResult:
        """Run one measurement, turning any exception into an ``UNEXPECTED`` failure."""
        try:
            return measurement()
        except Exception as e:
            self.logger.warning(f"Kron photometry failed for source {source_id}: {e}")
            return KronFailure(source_id=source_id, kind=KronFailureKind.UNEXPECTED, message=str(e))

    def measure_sources(self,
                        image: MaskedImage,
                        sources: Sequence[KronSource],
                        psf: Optional[PsfModel] = None) -> KronPhotometryResults:
        """
        Measure every source in ``sources``.

        Parameters:
        -----------
        image : MaskedImage
            Image containing the sources
        sources : sequence of KronSource
            Sources to measure
        psf : PsfModel, optional
            PSF of the image

        Returns:
        --------
        KronPhotometryResults
            One result per source, in input order
        """
        self.logger.info(f"Starting Kron photometry of {len(sources)} sources")

        tasks = [(source.id, functools.partial(self.measure, source, image, psf))
                 for source in sources]
        return self._run_batch(tasks, "Kron photometry")

    def measure_sources_forced(self,
                               image: MaskedImage,
                               sources: Sequence[KronSource],
                               references: Sequence[KronSource],
                               reference_results: Sequence[Union[KronMeasurement, Mapping[str, Any]]],
                               transform: Optional[AffineLike] = None,
                               psf: Optional[PsfModel] = None) -> KronPhotometryResults:
        """Forced Kron photometry of matched source, reference and reference-result lists."""
        if not (len(sources) == len(references) == len(reference_results)):
            raise ValueError(f"Mismatched inputs: {len(sources)} sources, {len(references)} references, "
                             f"{len(reference_results)} reference results")

        self.logger.info(f"Starting forced Kron photometry of {len(sources)} sources")
        tasks = [(source.id, functools.partial(self.measure_forced, source, image, reference,
                                               result, transform, psf))
                 for source, reference, result in zip(sources, references, reference_results)]
        return self._run_batch(tasks, "Forced Kron photometry")

    def _run_batch(self, tasks: Sequence[Tuple[int, Callable[[], KronResult]]],
                   label: str) -> KronPhotometryResults:
        start_time = time.time()
        with timing_context(label, self.logger), memory_monitor(label, self.logger):
            measurements = [self.measure_isolated(source_id, task) for source_id, task in tasks]
        processing_time = time.time() - start_time

        results = KronPhotometryResults(
            measurements=measurements,
            config=self.config,
            statistics=self.compute_statistics(measurements),
            processing_time=processing_time,
            n_sources_processed=len(measurements),
            n_sources_successful=sum(1 for m in measurements if m.succeeded)
        )

        self.logger.info(f"Successfully measured {results.n_sources_successful}/"
                         f"{results.n_sources_processed} sources")
        return results

    @staticmethod
    def compute_statistics(measurements: Sequence[KronResult]) -> Dict[str, Any]:
        """Counts of flags and failure kinds, and summary radii."""
        stats = {}
        stats['total_sources'] = len(measurements)
        stats['successful_sources'] = sum(1 for m in measurements if m.succeeded)

        flag_counts: Dict[str, int] = {}
        for m in measurements:
            for name in m.flags.names():
                flag_counts[name] = flag_counts.get(name, 0) + 1
        stats['flag_statistics'] = flag_counts

        failure_counts: Dict[str, int] = {}
        for m in measurements:
            if not m.succeeded:
                failure_counts[m.kind.value] = failure_counts.get(m.kind.value, 0) + 1
        stats['failure_statistics'] = failure_counts

        radii = [m.radius for m in measurements if m.succeeded]
        if radii:
            stats['radius_median'] = float(np.median(radii))
            stats['radius_std'] = float(np.std(radii))

        return stats

    def plot_kron_diagnostics(self, results: KronPhotometryResults,
                              output_path: Optional[str] = None) -> None:
        """Create diagnostic plots for Kron photometry."""
        try:
            fig, axes = plt.subplots(2, 2, figsize=(12, 10))
            measured = [m for m in results.measurements if m.succeeded]

            # Kron radius distribution
            radii = [m.radius for m in measured]
            if radii:
                axes[0, 0].hist(radii, bins=30, alpha=0.7)
            axes[0, 0].set_xlabel('Kron Radius (pixels)')
            axes[0, 0].set_ylabel('Count')
            axes[0, 0].set_title('Kron Radius Distribution')

            # Flux against radius
            positive = [(m.radius, m.flux) for m in measured if m.flux > 0]
            if positive:
                r, f = zip(*positive)
                axes[0, 1].scatter(r, f, s=5, alpha=0.6)
                axes[0, 1].set_yscale('log')
            axes[0, 1].set_xlabel('Kron Radius (pixels)')
            axes[0, 1].set_ylabel('Kron Flux')
            axes[0, 1].set_title('Flux vs Radius')

            # Flag statistics
            flag_counts = results.statistics.get('flag_statistics', {})
            if flag_counts:
                names = list(flag_counts.keys())
                axes[1, 0].bar(range(len(names)), list(flag_counts.values()))
                axes[1, 0].set_xticks(range(len(names)))
                axes[1, 0].set_xticklabels(names, rotation=45, ha='right')
            axes[1, 0].set_ylabel('Count')
            axes[1, 0].set_title('Quality Flags')

            # Window radius against the solved radius
            pairs = [(m.radius_for_radius, m.radius) for m in measured
                     if np.isfinite(m.radius_for_radius)]
            if pairs:
                window, solved = zip(*pairs)
                axes[1, 1].scatter(window, solved, s=5, alpha=0.6)
            axes[1, 1].set_xlabel('Radius used for radius (pixels)')
            axes[1, 1].set_ylabel('Kron Radius (pixels)')
            axes[1, 1].set_title('Moment Window')

            plt.tight_layout()

            if output_path:
                plt.savefig(output_path, dpi=150, bbox_inches='tight')
                self.logger.info(f"Kron photometry diagnostics saved to {output_path}")
            else:
                plt.show()

            plt.close(fig)

        except Exception as e:
            self.logger.warning(f"Failed to create diagnostic plots: {e}")


def extract_kron_table(results: KronPhotometryResults) -> Table:
    """
    Extract a Kron photometry table from results.

    Parameters:
    -----------
    results : KronPhotometryResults
        Kron photometry results

    Returns:
    --------
    Table
        Astropy table with one row per source
    """
    prefix = results.config.prefix
    records = [m.to_record(prefix) for m in results.measurements]

    table_data = {'id': [m.source_id for m in results.measurements]}
    if records:
        for key in records[0]:
            table_data[key] = [record[key] for record in records]
    else:
        for key in KronFailure(0, KronFailureKind.UNEXPECTED, '').to_record(prefix):
            table_data[key] = []

    return Table(table_data)
