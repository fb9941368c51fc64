"""
Geometry primitives for Kron apertures.

Integer pixel boxes, immutable ellipse cores and the Kron aperture value
type, plus the affine mapping used to carry an aperture from a reference
frame into the frame being measured.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np
from skimage.transform import AffineTransform


@dataclass(frozen=True)
class Box2I:
    """Integer pixel box with inclusive bounds, in parent-image coordinates."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @classmethod
    def from_shape(cls, shape: Tuple[int, int], x0: int = 0, y0: int = 0) -> 'Box2I':
        """Box covering an array of ``shape`` (ny, nx) whose first pixel is at (x0, y0)."""
        ny, nx = shape
        return cls(x0, y0, x0 + nx - 1, y0 + ny - 1)

    @property
    def width(self) -> int:
        return max(0, self.max_x - self.min_x + 1)

    @property
    def height(self) -> int:
        return max(0, self.max_y - self.min_y + 1)

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def grow(self, n: int) -> 'Box2I':
        return Box2I(self.min_x - n, self.min_y - n, self.max_x + n, self.max_y + n)

    def clipped(self, other: 'Box2I') -> 'Box2I':
        """Intersection with ``other`` (may be empty)."""
        return Box2I(max(self.min_x, other.min_x), max(self.min_y, other.min_y),
                     min(self.max_x, other.max_x), min(self.max_y, other.max_y))

    def contains(self, other: 'Box2I') -> bool:
        return (other.min_x >= self.min_x and other.min_y >= self.min_y and
                other.max_x <= self.max_x and other.max_y <= self.max_y)

    def slices(self, x0: int = 0, y0: int = 0) -> Tuple[slice, slice]:
        """Numpy (row, column) slices of this box in an array whose origin is (x0, y0)."""
        return (slice(self.min_y - y0, self.max_y - y0 + 1),
                slice(self.min_x - x0, self.max_x - x0 + 1))

    def __str__(self) -> str:
        return f"{self.min_x},{self.min_y}--{self.max_x},{self.max_y}"


@dataclass(frozen=True)
class EllipseAxes:
    """
    Ellipse core parametrized by semi-major axis, semi-minor axis and
    position angle (radians, counter-clockwise from the x axis).

    Values are normalized on construction so that ``a >= b`` and
    ``-pi/2 <= theta < pi/2``. Instances never change; every operation
    returns a new ellipse.
    """

    a: float
    b: float
    theta: float = 0.0

    def __post_init__(self):
        a, b, theta = float(self.a), float(self.b), float(self.theta)
        if not (np.isfinite(a) and np.isfinite(b) and np.isfinite(theta)):
            raise ValueError(f"Ellipse parameters must be finite: a={a}, b={b}, theta={theta}")
        if a < 0 or b < 0:
            raise ValueError(f"Ellipse axes must be non-negative: a={a}, b={b}")
        if b > a:
            a, b = b, a
            theta += 0.5 * math.pi
        theta = (theta + 0.5 * math.pi) % math.pi - 0.5 * math.pi
        object.__setattr__(self, 'a', a)
        object.__setattr__(self, 'b', b)
        object.__setattr__(self, 'theta', theta)

    @classmethod
    def circle(cls, radius: float) -> 'EllipseAxes':
        return cls(radius, radius, 0.0)

    @classmethod
    def from_moments(cls, ixx: float, iyy: float, ixy: float) -> 'EllipseAxes':
        """Ellipse whose second moments are (ixx, iyy, ixy)."""
        half_trace = 0.5 * (ixx + iyy)
        root = math.hypot(0.5 * (ixx - iyy), ixy)
        a2 = max(half_trace + root, 0.0)
        b2 = max(half_trace - root, 0.0)
        theta = 0.5 * math.atan2(2.0 * ixy, ixx - iyy)
        return cls(math.sqrt(a2), math.sqrt(b2), theta)

    def to_moments(self) -> Tuple[float, float, float]:
        """Second moments (ixx, iyy, ixy) of this ellipse."""
        c, s = math.cos(self.theta), math.sin(self.theta)
        a2, b2 = self.a ** 2, self.b ** 2
        return (a2 * c * c + b2 * s * s,
                a2 * s * s + b2 * c * c,
                (a2 - b2) * c * s)

    @property
    def determinant_radius(self) -> float:
        return math.sqrt(self.a * self.b)

    @property
    def axis_ratio(self) -> float:
        """a/b; infinite for a degenerate (b == 0) ellipse."""
        return self.a / self.b if self.b > 0 else math.inf

    def scaled(self, factor: float) -> 'EllipseAxes':
        """Uniformly scaled copy, keeping axis ratio and orientation."""
        return EllipseAxes(self.a * factor, self.b * factor, self.theta)

    def with_radius(self, radius: float) -> 'EllipseAxes':
        """Copy rescaled so that its determinant radius equals ``radius``."""
        current = self.determinant_radius
        if current <= 0:
            raise ValueError("Cannot rescale a degenerate ellipse")
        return self.scaled(radius / current)

    def transformed(self, linear: np.ndarray) -> 'EllipseAxes':
        """Ellipse mapped through the 2x2 linear transform ``linear``."""
        ixx, iyy, ixy = self.to_moments()
        q = np.array([[ixx, ixy], [ixy, iyy]])
        m = np.asarray(linear, dtype=float)
        q_new = m @ q @ m.T
        return EllipseAxes.from_moments(q_new[0, 0], q_new[1, 1], q_new[0, 1])


AffineLike = Union[AffineTransform, np.ndarray]


def as_affine_transform(transform: Optional[AffineLike]) -> AffineTransform:
    """
    Coerce ``transform`` into a scikit-image ``AffineTransform``.

    Accepts an existing transform (anything with a 3x3 ``params`` matrix),
    a 3x3 homogeneous matrix, or None for the identity.
    """
    if transform is None:
        return AffineTransform()
    if isinstance(transform, AffineTransform):
        return transform
    params = getattr(transform, 'params', transform)
    matrix = np.asarray(params, dtype=float)
    if matrix.shape != (3, 3):
        raise ValueError(f"Affine transform matrix must be 3x3, got {matrix.shape}")
    return AffineTransform(matrix=matrix)


@dataclass(frozen=True)
class KronAperture:
    """An elliptical aperture: a fixed center and an ellipse core."""

    center: Tuple[float, float]
    axes: EllipseAxes

    def __post_init__(self):
        object.__setattr__(self, 'center', (float(self.center[0]), float(self.center[1])))

    @property
    def x(self) -> float:
        return self.center[0]

    @property
    def y(self) -> float:
        return self.center[1]

    @property
    def radius(self) -> float:
        return self.axes.determinant_radius

    def scaled(self, factor: float) -> 'KronAperture':
        return KronAperture(self.center, self.axes.scaled(factor))

    def with_radius(self, radius: float) -> 'KronAperture':
        return KronAperture(self.center, self.axes.with_radius(radius))

    def transformed(self, transform: AffineLike) -> 'KronAperture':
        """Aperture mapped into another frame by an affine transform."""
        tform = as_affine_transform(transform)
        center = tform(np.array([[self.x, self.y]]))[0]
        return KronAperture((center[0], center[1]), self.axes.transformed(tform.params[:2, :2]))

    @classmethod
    def from_reference(cls,
                       center: Tuple[float, float],
                       shape: EllipseAxes,
                       transform: Optional[AffineLike],
                       radius: float) -> 'KronAperture':
        """
        Kron aperture for forced measurement.

        The reference shape is rescaled to the reference Kron radius in the
        reference frame, then center and shape are mapped through
        ``transform`` into the measurement frame.
        """
        return cls(center, shape.with_radius(radius)).transformed(transform)

    def __str__(self) -> str:
        return (f"({self.x:.3f}, {self.y:.3f}) a={self.axes.a:.4g} b={self.axes.b:.4g} "
                f"theta={math.degrees(self.axes.theta):.4g}")
