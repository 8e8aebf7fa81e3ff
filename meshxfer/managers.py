"""Containers that bind client data, its traits and a communicator.

.. autoclass:: MeshManager
.. autoclass:: GeometryManager
.. autoclass:: FieldManager
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

import numpy as np

from meshxfer.exceptions import PreconditionError
from meshxfer.geometry import BoundingBox
from meshxfer.mesh import GenericMeshView, build_view
from meshxfer.traits import (
    ArrayFieldTraits,
    FieldTraits,
    GeometryTraits,
    MeshTraits,
    ObjectGeometryTraits,
    check_traits,
)


def _union_boxes(boxes, dim):
    result = BoundingBox.empty(dim)
    for box in boxes:
        if box is not None:
            result = result.union(box)
    return None if result.is_empty else result


class MeshManager:
    """The source mesh blocks owned by this rank.

    Every rank must hold the same number of blocks, in the same order; a
    rank owning nothing of a block holds a null view for it.

    .. attribute:: blocks
    .. attribute:: comm
    .. attribute:: dim

    .. automethod:: from_adapters
    .. automethod:: local_bounding_box
    """

    def __init__(self, blocks, comm=None, dim=None):
        blocks = list(blocks)
        if dim is None:
            if not blocks:
                raise PreconditionError(
                    "Dimension is required for a manager without blocks.")
            dim = blocks[0].dim

        for i, view in enumerate(blocks):
            if not isinstance(view, GenericMeshView):
                raise PreconditionError(
                    f"Block {i} is a {type(view).__name__}, "
                    "not a GenericMeshView.")
            if view.dim != dim:
                raise PreconditionError(
                    f"Block {i} is {view.dim}D in a {dim}D mesh manager.")

        self.blocks = blocks
        self.comm = comm
        self.dim = dim

    @classmethod
    def from_adapters(cls, meshes, mesh_traits, comm=None, dim=None):
        """Build one view per client mesh block.

        *mesh_traits* is a single :class:`~meshxfer.traits.MeshTraits` for all
        blocks or a sequence with one entry per block.
        """
        meshes = list(meshes)
        if isinstance(mesh_traits, (list, tuple)):
            if len(mesh_traits) != len(meshes):
                raise PreconditionError(
                    f"Got {len(mesh_traits)} mesh traits for "
                    f"{len(meshes)} blocks.")
            traits_list = list(mesh_traits)
        else:
            traits_list = [mesh_traits] * len(meshes)

        for traits in traits_list:
            check_traits(traits, MeshTraits, "mesh traits")

        return cls([build_view(mesh, traits)
                    for mesh, traits in zip(meshes, traits_list)],
                   comm=comm, dim=dim)

    @property
    def nblocks(self):
        return len(self.blocks)

    def local_bounding_box(self):
        """Return the box around all local elements, or *None*."""
        return _union_boxes((view.bounding_box() for view in self.blocks),
                            self.dim)


class GeometryManager:
    """The target geometries owned by this rank, tagged with global ids.

    .. attribute:: geometries
    .. attribute:: gids
    .. attribute:: comm
    .. attribute:: dim
    .. attribute:: geometry_traits

    .. automethod:: local_bounding_box
    """

    def __init__(self, geometries, gids, comm=None, dim=None,
                 geometry_traits=None):
        if geometry_traits is None:
            geometry_traits = ObjectGeometryTraits()
        check_traits(geometry_traits, GeometryTraits, "geometry traits")

        geometries = list(geometries)
        gids = np.asarray(gids, dtype=np.int64).reshape(-1)
        if len(gids) != len(geometries):
            raise PreconditionError(
                f"Got {len(gids)} global ids for {len(geometries)} geometries.")
        if len(np.unique(gids)) != len(gids):
            raise PreconditionError("Geometry global ids are not unique.")

        if dim is None:
            if not geometries:
                raise PreconditionError(
                    "Dimension is required for a manager without geometries.")
            dim = geometry_traits.dim(geometries[0])
        for geom in geometries:
            if geometry_traits.dim(geom) != dim:
                raise PreconditionError(
                    f"Geometry {geom!r} is not {dim}D.")

        self.geometries = geometries
        self.gids = gids
        self.comm = comm
        self.dim = dim
        self.geometry_traits = geometry_traits

    def __len__(self):
        return len(self.geometries)

    def local_bounding_box(self):
        """Return the box around all local geometries, or *None*."""
        return _union_boxes(
            (self.geometry_traits.bounding_box(g) for g in self.geometries),
            self.dim)


class FieldManager:
    """A client field and the traits to access it.

    .. attribute:: field
    .. attribute:: comm
    .. attribute:: field_traits
    """

    def __init__(self, field, comm=None, field_traits=None):
        if field_traits is None:
            field_traits = ArrayFieldTraits()
        check_traits(field_traits, FieldTraits, "field traits")

        self.field = field
        self.comm = comm
        self.field_traits = field_traits

    @property
    def dim(self):
        return self.field_traits.dim(self.field)

    @property
    def size(self):
        return self.field_traits.size(self.field)

    def empty(self):
        return self.field_traits.empty(self.field)

    def values(self):
        """Return the flat, writable component-major storage of the field."""
        values = self.field_traits.values(self.field)
        if len(values) != self.dim * self.size:
            raise PreconditionError(
                f"Field storage holds {len(values)} values, expected "
                f"{self.dim} x {self.size}.")
        return values
