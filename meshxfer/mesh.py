"""Canonical, adapter-independent snapshot of one mesh block.

.. autoclass:: GenericMeshView
.. autofunction:: build_view
.. autoclass:: QuadratureElementMeasure
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

import logging

import numpy as np
from pytools import memoize_method

from meshxfer.exceptions import PreconditionError
from meshxfer.geometry import BoundingBox
from meshxfer.topology import (
    ElementTopology,
    element_measure,
    nodes_per_element,
)

logger = logging.getLogger(__name__)


class GenericMeshView:
    """Vertices, connectivity and topology of one mesh block.

    Coordinates are *blocked*: all x, then all y, and so on. Connectivity is
    blocked the same way, by local node index: node 0 of every element, then
    node 1 of every element, and so on. Connectivity entries are vertex
    handles. Canonical node *i* of an element is the client's local node
    ``permutation_list[i]``.

    A view with no vertices and no elements is *null*. It stands for a rank
    that owns nothing of this block and is not an error.

    .. attribute:: dim
    .. attribute:: topology
    .. attribute:: nodes_per_element
    .. attribute:: vertex_handles
    .. attribute:: coords
    .. attribute:: element_handles
    .. attribute:: connectivity
    .. attribute:: permutation_list

    .. automethod:: null
    .. automethod:: subset
    .. automethod:: concatenate
    .. automethod:: canonical_connectivity
    .. automethod:: element_nodes
    .. automethod:: element_bounding_boxes
    .. automethod:: bounding_box
    """

    def __init__(self, dim, vertex_handles, coords, topology,
                 element_handles, connectivity, permutation_list=None):
        self.dim = int(dim)
        self.topology = ElementTopology(topology)
        self.nodes_per_element = nodes_per_element(self.topology)

        self.vertex_handles = np.array(vertex_handles, dtype=np.int64).reshape(-1)
        self.coords = np.array(coords, dtype=np.float64).reshape(-1)
        self.element_handles = np.array(element_handles,
                                        dtype=np.int64).reshape(-1)
        self.connectivity = np.array(connectivity, dtype=np.int64).reshape(-1)

        if permutation_list is None:
            permutation_list = np.arange(self.nodes_per_element)
        self.permutation_list = np.array(permutation_list,
                                         dtype=np.int64).reshape(-1)

        self._check_invariants()

    def _check_invariants(self):
        nverts = len(self.vertex_handles)
        nels = len(self.element_handles)
        npe = self.nodes_per_element

        if self.dim not in (1, 2, 3):
            raise PreconditionError(f"Unsupported mesh dimension {self.dim}.")
        if len(self.coords) != self.dim * nverts:
            raise PreconditionError(
                f"Expected {self.dim * nverts} coordinates for {nverts} "
                f"vertices in {self.dim}D, got {len(self.coords)}.")
        if len(self.connectivity) != npe * nels:
            raise PreconditionError(
                f"Expected {npe * nels} connectivity entries for {nels} "
                f"{self.topology.name} elements, got {len(self.connectivity)}.")
        if sorted(self.permutation_list.tolist()) != list(range(npe)):
            raise PreconditionError(
                f"Permutation list {self.permutation_list.tolist()} is not a "
                f"permutation of {npe} local nodes.")
        if len(np.unique(self.vertex_handles)) != nverts:
            raise PreconditionError("Vertex handles are not unique.")
        if nels and not np.all(np.isin(self.connectivity, self.vertex_handles)):
            raise PreconditionError(
                "Connectivity refers to vertex handles not in the view.")

    @classmethod
    def null(cls, dim, topology):
        """Return a view with no vertices and no elements."""
        return cls(dim, [], [], topology, [], [])

    @property
    def is_null(self):
        return self.nelements == 0 and self.nvertices == 0

    @property
    def nvertices(self):
        return len(self.vertex_handles)

    @property
    def nelements(self):
        return len(self.element_handles)

    def vertex_coordinates(self):
        """Return the vertex coordinates as an array of shape ``(nverts, dim)``."""
        return self.coords.reshape(self.dim, self.nvertices).T

    @memoize_method
    def canonical_connectivity(self):
        """Return local vertex indices, shape ``(nelements, nodes_per_element)``.

        Columns are in canonical node order.
        """
        order = np.argsort(self.vertex_handles, kind="stable")
        local_conn = self.connectivity.reshape(
            self.nodes_per_element, self.nelements)[self.permutation_list].T
        positions = np.searchsorted(self.vertex_handles[order], local_conn)
        return order[positions].reshape(self.nelements, self.nodes_per_element)

    def element_nodes(self, i):
        """Return the nodes of element *i*, shape ``(nodes_per_element, dim)``."""
        return self.vertex_coordinates()[self.canonical_connectivity()[i]]

    def element_bounding_boxes(self):
        """Return ``(lo, hi)``, each of shape ``(nelements, dim)``."""
        if self.nelements == 0:
            return np.empty((0, self.dim)), np.empty((0, self.dim))
        el_coords = self.vertex_coordinates()[self.canonical_connectivity()]
        return el_coords.min(axis=1), el_coords.max(axis=1)

    def bounding_box(self):
        """Return the box of all elements, or *None* for an element-free view."""
        if self.nelements == 0:
            return None
        lo, hi = self.element_bounding_boxes()
        return BoundingBox(lo.min(axis=0), hi.max(axis=0))

    def subset(self, element_indices):
        """Return a self-contained view of the elements at *element_indices*.

        Only the vertices those elements reference are kept.
        """
        element_indices = np.asarray(element_indices, dtype=np.int64)
        if len(element_indices) == 0:
            return GenericMeshView.null(self.dim, self.topology)

        conn = self.connectivity.reshape(self.nodes_per_element, self.nelements)
        conn = conn[:, element_indices]

        used = np.isin(self.vertex_handles, conn)
        coords = self.coords.reshape(self.dim, self.nvertices)[:, used]

        return GenericMeshView(
            self.dim, self.vertex_handles[used], coords, self.topology,
            self.element_handles[element_indices], conn,
            self.permutation_list)

    @classmethod
    def concatenate(cls, views):
        """Merge views of the same block into one.

        Vertex handles are global, so a vertex present in more than one view
        is stored once.
        """
        views = [v for v in views if not v.is_null]
        if not views:
            raise PreconditionError("Need at least one non-null view to merge.")

        first = views[0]
        for view in views[1:]:
            if (view.dim != first.dim or view.topology != first.topology
                    or not np.array_equal(view.permutation_list,
                                          first.permutation_list)):
                raise PreconditionError(
                    "Cannot merge views of different dimension, topology or "
                    "node permutation.")

        all_handles = np.concatenate([v.vertex_handles for v in views])
        all_coords = np.concatenate(
            [v.coords.reshape(v.dim, v.nvertices) for v in views], axis=1)
        handles, first_index = np.unique(all_handles, return_index=True)

        connectivity = np.concatenate(
            [v.connectivity.reshape(v.nodes_per_element, v.nelements)
             for v in views], axis=1)

        return cls(first.dim, handles, all_coords[:, first_index],
                   first.topology,
                   np.concatenate([v.element_handles for v in views]),
                   connectivity, first.permutation_list)

    def __repr__(self):
        return (f"GenericMeshView(dim={self.dim}, topology={self.topology.name}, "
                f"nvertices={self.nvertices}, nelements={self.nelements})")


def build_view(mesh, mesh_traits):
    """Copy a client mesh block into a :class:`GenericMeshView`.

    Nodes and elements are each iterated once through *mesh_traits* (see
    :class:`~meshxfer.traits.MeshTraits`). The returned view holds no
    reference to client storage. A block without elements gives a null view.
    """
    node_traits = mesh_traits.node_traits
    element_traits = mesh_traits.element_traits

    dim = mesh_traits.dim(mesh)
    if node_traits.dim() != dim:
        raise PreconditionError(
            f"Node dimension {node_traits.dim()} does not match mesh "
            f"dimension {dim}.")

    topology = ElementTopology(element_traits.topology())
    npe = element_traits.nodes_per_element()
    if npe != nodes_per_element(topology):
        raise PreconditionError(
            f"{topology.name} elements have {nodes_per_element(topology)} "
            f"nodes, traits report {npe}.")

    vertex_handles = []
    coords = []
    for node in mesh_traits.nodes(mesh):
        node_coords = list(node_traits.coordinates(node))
        if len(node_coords) != dim:
            raise PreconditionError(
                f"Node {node_traits.handle(node)} has {len(node_coords)} "
                f"coordinates in a {dim}D mesh.")
        vertex_handles.append(node_traits.handle(node))
        coords.append(node_coords)

    element_handles = []
    connectivity = []
    for element in mesh_traits.elements(mesh):
        conn = list(element_traits.connectivity(element))
        if len(conn) != npe:
            raise PreconditionError(
                f"Element {element_traits.handle(element)} has {len(conn)} "
                f"nodes, expected {npe}.")
        element_handles.append(element_traits.handle(element))
        connectivity.append(conn)

    permutation_list = list(mesh_traits.permutation_list(mesh))

    if not element_handles:
        logger.debug("block without elements, returning a null view")
        return GenericMeshView.null(dim, topology)

    return GenericMeshView(
        dim, vertex_handles,
        np.array(coords, dtype=np.float64).reshape(-1, dim).T,
        topology, element_handles,
        np.array(connectivity, dtype=np.int64).T,
        permutation_list)


class QuadratureElementMeasure:
    """:class:`~meshxfer.traits.ElementMeasure` computed by quadrature.

    Looks up elements by handle in the blocks of a
    :class:`~meshxfer.managers.MeshManager` and integrates the Jacobian
    determinant over the reference element.
    """

    def __init__(self, mesh_manager):
        self._lookup = {}
        for view in mesh_manager.blocks:
            for i, handle in enumerate(view.element_handles.tolist()):
                self._lookup[handle] = (view, i)

    def measure(self, element_handles):
        result = np.empty(len(element_handles))
        for k, handle in enumerate(np.asarray(element_handles).tolist()):
            try:
                view, i = self._lookup[handle]
            except KeyError:
                raise PreconditionError(
                    f"Element handle {handle} is not on this rank.") from None
            result[k] = element_measure(view.topology, view.element_nodes(i))
        return result
