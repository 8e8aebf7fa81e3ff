"""Adapter protocols that let client data structures take part in a transfer.

Client node, element, field, mesh and geometry types are never wrapped or
copied by these protocols. Instead, a *traits* object (usually a class with
static methods) tells the library how to read them.

.. autoclass:: NodeTraits
.. autoclass:: ElementTraits
.. autoclass:: FieldTraits
.. autoclass:: GeometryTraits
.. autoclass:: MeshTraits

Pluggable capabilities
----------------------

.. autoclass:: ElementMeasure
.. autoclass:: FieldIntegrator
.. autoclass:: FieldEvaluator

Stock implementations
---------------------

.. autoclass:: ArrayField
.. autoclass:: ArrayFieldTraits
.. autoclass:: ObjectGeometryTraits
.. autofunction:: component_major
.. autofunction:: check_traits
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

from typing import Any, Iterable, Protocol, Sequence, runtime_checkable

import numpy as np

from meshxfer.exceptions import PreconditionError
from meshxfer.topology import ElementTopology


# {{{ adapter protocols

@runtime_checkable
class NodeTraits(Protocol):
    """Read access to a client node type.

    All nodes of one mesh share the spatial dimension :meth:`dim`.
    """

    def dim(self) -> int:
        ...

    def handle(self, node: Any) -> int:
        ...

    def coordinates(self, node: Any) -> Iterable[float]:
        ...


@runtime_checkable
class ElementTraits(Protocol):
    """Read access to a client element type of a single topology."""

    def topology(self) -> ElementTopology:
        ...

    def nodes_per_element(self) -> int:
        ...

    def handle(self, element: Any) -> int:
        ...

    def connectivity(self, element: Any) -> Iterable[int]:
        """Return the node handles of *element* in client local order."""
        ...


@runtime_checkable
class FieldTraits(Protocol):
    """Read and write access to a client field.

    A field holds ``dim(field) * size(field)`` scalars in component-major
    order: all entities' component 0, then all entities' component 1, and so
    on. :meth:`values` must return a flat, writable view of that storage.
    """

    def dim(self, field: Any) -> int:
        ...

    def size(self, field: Any) -> int:
        ...

    def empty(self, field: Any) -> bool:
        ...

    def values(self, field: Any) -> np.ndarray:
        ...


@runtime_checkable
class GeometryTraits(Protocol):
    """Read access to a client geometry type used as a target query."""

    def dim(self, geometry: Any) -> int:
        ...

    def measure(self, geometry: Any) -> float:
        ...

    def bounding_box(self, geometry: Any):
        ...

    def point_in_geometry(self, geometry: Any, point: np.ndarray,
                          tol: float) -> bool:
        ...


@runtime_checkable
class MeshTraits(Protocol):
    """Bind node and element iteration of one client mesh block.

    .. attribute:: node_traits
    .. attribute:: element_traits
    """

    node_traits: NodeTraits
    element_traits: ElementTraits

    def dim(self, mesh: Any) -> int:
        ...

    def nodes(self, mesh: Any) -> Iterable[Any]:
        ...

    def elements(self, mesh: Any) -> Iterable[Any]:
        ...

    def permutation_list(self, mesh: Any) -> Sequence[int]:
        """Return, for each canonical node, the client local node index."""
        ...

# }}}


# {{{ capabilities

@runtime_checkable
class ElementMeasure(Protocol):
    """Return the measure of each element in *element_handles*."""

    def measure(self, element_handles: np.ndarray) -> np.ndarray:
        ...


@runtime_checkable
class FieldIntegrator(Protocol):
    """Integrate a source field over each element in *element_handles*.

    Returns a field (readable through the map's field traits) with one entity
    per handle, in the same order.
    """

    def integrate(self, element_handles: np.ndarray) -> Any:
        ...


@runtime_checkable
class FieldEvaluator(Protocol):
    """Evaluate a source field at points inside the given elements.

    *coords* are blocked (all x, then all y, ...) with one point per handle.
    """

    def evaluate(self, element_handles: np.ndarray, coords: np.ndarray) -> Any:
        ...

# }}}


def check_traits(traits, protocol, what="traits"):
    """Raise :class:`PreconditionError` unless *traits* satisfies *protocol*."""
    if not isinstance(traits, protocol):
        raise PreconditionError(
            f"{what} {traits!r} does not provide the {protocol.__name__} "
            "interface.")


def component_major(values, dim):
    """Return the ``(dim, size)`` view of a flat component-major array."""
    values = np.asarray(values)
    if dim == 0:
        return values.reshape(0, 0)
    if values.size % dim:
        raise PreconditionError(
            f"Field of {values.size} values cannot have {dim} components.")
    return values.reshape(dim, values.size // dim)


# {{{ stock implementations

class ArrayField:
    """A field stored in a flat :mod:`numpy` array in component-major order.

    .. automethod:: component
    """

    def __init__(self, size, dim, data=None):
        self.dim = dim
        self.size = size
        if data is None:
            data = np.zeros(dim * size)
        data = np.asarray(data, dtype=np.float64).reshape(-1)
        if len(data) != dim * size:
            raise PreconditionError(
                f"Expected {dim * size} values for a field of {size} entities "
                f"with {dim} components, got {len(data)}.")
        self.data = data

    @classmethod
    def from_components(cls, components):
        """Build a field from an array of shape ``(dim, size)``."""
        components = np.asarray(components, dtype=np.float64)
        dim, size = components.shape
        return cls(size, dim, components.reshape(-1))

    def component(self, d):
        """Return a view of component *d* for all entities."""
        return component_major(self.data, self.dim)[d]

    def __repr__(self):
        return f"ArrayField(size={self.size}, dim={self.dim})"


class ArrayFieldTraits:
    """:class:`FieldTraits` for :class:`ArrayField`."""

    @staticmethod
    def dim(field):
        return field.dim

    @staticmethod
    def size(field):
        return field.size

    @staticmethod
    def empty(field):
        return field.size == 0

    @staticmethod
    def values(field):
        return field.data


class ObjectGeometryTraits:
    """:class:`GeometryTraits` for objects that answer the queries themselves.

    Works with :mod:`meshxfer.geometry` types and any other object with a
    ``dim`` attribute and ``measure``, ``bounding_box`` and
    ``point_in_geometry`` methods.
    """

    @staticmethod
    def dim(geometry):
        return geometry.dim

    @staticmethod
    def measure(geometry):
        return geometry.measure()

    @staticmethod
    def bounding_box(geometry):
        return geometry.bounding_box()

    @staticmethod
    def point_in_geometry(geometry, point, tol):
        return geometry.point_in_geometry(point, tol)

# }}}

# vim: foldmethod=marker
