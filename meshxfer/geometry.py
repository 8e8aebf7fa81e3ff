"""Bounding boxes and target query geometries.

.. autoclass:: BoundingBox
.. autoclass:: Point
.. autoclass:: Box
.. autoclass:: Cylinder
.. autoclass:: ElementGeometry
"""

__copyright__ = """
Copyright (C) 2026 University of Illinois Board of Trustees
"""

__license__ = """
Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in
all copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
THE SOFTWARE.
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import numpy.linalg as la

from meshxfer.topology import (
    ElementTopology,
    element_measure,
    point_in_element,
)


def _as_coords(values):
    coords = np.array(values, dtype=np.float64).reshape(-1)
    coords.setflags(write=False)
    return coords


@dataclass(frozen=True, eq=False)
class BoundingBox:
    """Axis-aligned box given by its *lo* and *hi* corners.

    Single-point boxes are legal. A box with any ``lo > hi`` is empty and is
    the identity of :meth:`union`.

    .. automethod:: empty
    .. automethod:: from_points
    .. automethod:: union
    .. automethod:: intersection
    .. automethod:: expanded
    .. automethod:: overlaps
    .. automethod:: contains_point
    """

    lo: np.ndarray
    hi: np.ndarray

    def __post_init__(self):
        lo = _as_coords(self.lo)
        hi = _as_coords(self.hi)
        if lo.shape != hi.shape:
            raise ValueError("Box corners must have the same dimension.")
        object.__setattr__(self, "lo", lo)
        object.__setattr__(self, "hi", hi)

    @classmethod
    def empty(cls, dim):
        """Return the empty box of dimension *dim*."""
        return cls(np.full(dim, np.inf), np.full(dim, -np.inf))

    @classmethod
    def from_points(cls, points):
        """Return the tight box around *points* of shape ``(npoints, dim)``."""
        points = np.asarray(points, dtype=np.float64)
        return cls(points.min(axis=0), points.max(axis=0))

    @property
    def dim(self):
        return len(self.lo)

    @property
    def is_empty(self):
        return bool(np.any(self.lo > self.hi))

    def volume(self):
        if self.is_empty:
            return 0.
        return float(np.prod(self.hi - self.lo))

    def union(self, other):
        return BoundingBox(np.minimum(self.lo, other.lo),
                           np.maximum(self.hi, other.hi))

    def intersection(self, other) -> Optional["BoundingBox"]:
        """Return the common box of *self* and *other*, or *None* if disjoint."""
        box = BoundingBox(np.maximum(self.lo, other.lo),
                          np.minimum(self.hi, other.hi))
        if box.is_empty:
            return None
        return box

    def expanded(self, tol):
        return BoundingBox(self.lo - tol, self.hi + tol)

    def overlaps(self, other):
        return bool(np.all(self.lo <= other.hi) and np.all(other.lo <= self.hi))

    def contains_point(self, point, tol=0.):
        point = np.asarray(point)
        return bool(np.all(self.lo - tol <= point) and np.all(point <= self.hi + tol))

    def __eq__(self, other):
        if not isinstance(other, BoundingBox):
            return NotImplemented
        return (np.array_equal(self.lo, other.lo)
                and np.array_equal(self.hi, other.hi))

    def __hash__(self):
        return hash((self.lo.tobytes(), self.hi.tobytes()))


# {{{ query geometries

@dataclass(frozen=True, eq=False)
class Point:
    """A point query. Its measure is zero."""

    coords: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "coords", _as_coords(self.coords))

    @property
    def dim(self):
        return len(self.coords)

    def measure(self):
        return 0.

    def bounding_box(self):
        return BoundingBox(self.coords, self.coords)

    def point_in_geometry(self, point, tol=0.):
        return bool(la.norm(np.asarray(point) - self.coords) <= tol)


@dataclass(frozen=True, eq=False)
class Box:
    """An axis-aligned box query with corners *lo* and *hi*."""

    lo: np.ndarray
    hi: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "lo", _as_coords(self.lo))
        object.__setattr__(self, "hi", _as_coords(self.hi))
        if np.any(self.lo > self.hi):
            raise ValueError("Box must have lo <= hi in every dimension.")

    @property
    def dim(self):
        return len(self.lo)

    def measure(self):
        return float(np.prod(self.hi - self.lo))

    def bounding_box(self):
        return BoundingBox(self.lo, self.hi)

    def point_in_geometry(self, point, tol=0.):
        return self.bounding_box().contains_point(point, tol)


@dataclass(frozen=True, eq=False)
class Cylinder:
    """A right circular cylinder with its axis parallel to *z*.

    *center* is the centroid of the cylinder; the cylinder spans
    ``center[2] +- length/2`` along its axis.
    """

    length: float
    radius: float
    center: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "center", _as_coords(self.center))
        if len(self.center) != 3:
            raise ValueError("Cylinders are three-dimensional.")
        if self.length < 0 or self.radius < 0:
            raise ValueError("Cylinder length and radius must be non-negative.")

    @property
    def dim(self):
        return 3

    def measure(self):
        return float(np.pi * self.radius**2 * self.length)

    def bounding_box(self):
        half = np.array([self.radius, self.radius, 0.5 * self.length])
        return BoundingBox(self.center - half, self.center + half)

    def point_in_geometry(self, point, tol=0.):
        offset = np.asarray(point, dtype=np.float64) - self.center
        return bool(
            la.norm(offset[:2]) <= self.radius + tol
            and abs(offset[2]) <= 0.5 * self.length + tol)


@dataclass(frozen=True, eq=False)
class ElementGeometry:
    """A single mesh element used as a target query.

    *nodes* are the physical node coordinates of shape ``(nnodes, dim)`` in
    canonical order for *topology*.
    """

    topology: ElementTopology
    nodes: np.ndarray
    _measure: Optional[float] = field(default=None, repr=False)

    def __post_init__(self):
        nodes = np.array(self.nodes, dtype=np.float64)
        nodes.setflags(write=False)
        object.__setattr__(self, "topology", ElementTopology(self.topology))
        object.__setattr__(self, "nodes", nodes)
        if self._measure is None:
            object.__setattr__(
                self, "_measure", element_measure(self.topology, nodes))

    @property
    def dim(self):
        return self.nodes.shape[1]

    def measure(self):
        return self._measure

    def bounding_box(self):
        return BoundingBox.from_points(self.nodes)

    def point_in_geometry(self, point, tol=0.):
        if not self.bounding_box().contains_point(point, tol):
            return False
        return point_in_element(self.topology, self.nodes, point, tol)

# }}}

# vim: foldmethod=marker
