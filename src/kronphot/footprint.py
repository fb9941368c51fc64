"""
Pixel footprints.

A footprint is the set of integer pixel positions belonging to a region,
stored as parallel coordinate arrays in the parent frame.
"""

import math
from typing import Optional, Tuple

import numpy as np

from .geometry import Box2I, EllipseAxes


class Footprint:
    """
    Set of pixels covered by a region.

    Parameters:
    -----------
    xs, ys : numpy.ndarray
        Integer parent-frame coordinates of the covered pixels
    """

    def __init__(self, xs: np.ndarray, ys: np.ndarray):
        xs = np.asarray(xs, dtype=np.int64).ravel()
        ys = np.asarray(ys, dtype=np.int64).ravel()
        if xs.shape != ys.shape:
            raise ValueError("Footprint coordinate arrays must have the same length")
        self.xs = xs
        self.ys = ys

    @classmethod
    def from_ellipse(cls,
                     center: Tuple[float, float],
                     axes: EllipseAxes,
                     clip: Optional[Box2I] = None) -> 'Footprint':
        """
        Pixels whose centers fall inside an ellipse.

        Parameters:
        -----------
        center : tuple
            Ellipse center (x, y)
        axes : EllipseAxes
            Ellipse core
        clip : Box2I, optional
            Restrict the footprint to this box
        """
        xc, yc = center
        c, s = math.cos(axes.theta), math.sin(axes.theta)
        half_x = math.sqrt((axes.a * c) ** 2 + (axes.b * s) ** 2)
        half_y = math.sqrt((axes.a * s) ** 2 + (axes.b * c) ** 2)

        box = Box2I(int(math.ceil(xc - half_x)), int(math.ceil(yc - half_y)),
                    int(math.floor(xc + half_x)), int(math.floor(yc + half_y)))
        if clip is not None:
            box = box.clipped(clip)
        if box.is_empty or axes.b <= 0:
            return cls(np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64))

        ys, xs = np.mgrid[box.min_y:box.max_y + 1, box.min_x:box.max_x + 1]
        dx = xs - xc
        dy = ys - yc
        u = dx * c + dy * s
        v = -dx * s + dy * c
        inside = (u / axes.a) ** 2 + (v / axes.b) ** 2 <= 1.0
        return cls(xs[inside], ys[inside])

    @classmethod
    def from_mask(cls, mask: np.ndarray, x0: int = 0, y0: int = 0) -> 'Footprint':
        """Pixels where a boolean ``mask`` (indexed ``[y, x]``, origin (x0, y0)) is set."""
        ys, xs = np.nonzero(np.asarray(mask, dtype=bool))
        return cls(xs + x0, ys + y0)

    @property
    def area(self) -> int:
        return int(self.xs.size)

    @property
    def bbox(self) -> Box2I:
        """Smallest box containing every pixel; empty for an empty footprint."""
        if self.area == 0:
            return Box2I(0, 0, -1, -1)
        return Box2I(int(self.xs.min()), int(self.ys.min()), int(self.xs.max()), int(self.ys.max()))

    def compute_shape(self) -> EllipseAxes:
        """Unweighted second-moment ellipse of the pixel positions."""
        if self.area == 0:
            return EllipseAxes(0.0, 0.0)
        x = self.xs.astype(np.float64)
        y = self.ys.astype(np.float64)
        dx = x - x.mean()
        dy = y - y.mean()
        return EllipseAxes.from_moments(float(np.mean(dx * dx)), float(np.mean(dy * dy)),
                                        float(np.mean(dx * dy)))

    def __len__(self) -> int:
        return self.area

    def __repr__(self) -> str:
        return f"Footprint(area={self.area}, bbox={self.bbox})"
