"""Rendezvous decomposition of source elements and target queries.

Source mesh blocks and target queries are partitioned independently across
ranks. The rendezvous step moves both into a common coarse spatial partition
so that each rank can resolve the queries of its cells by local search.

An item whose box straddles a cell seam is sent to the owner of every cell it
touches. Queries can therefore be resolved on more than one rank, but never
on none; callers remove the duplicates.

.. autofunction:: compute_global_box
.. autofunction:: exchange
.. autoclass:: RendezvousPartition
.. autoclass:: RendezvousElement
.. autoclass:: Rendezvous
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

import itertools
import logging
from typing import NamedTuple

import numpy as np
from pytools import ProcessLogger

from meshxfer.exceptions import PartitioningError, PreconditionError
from meshxfer.geometry import BoundingBox
from meshxfer.kdtree import KDTree
from meshxfer.logging_quantities import logmgr_add_timer
from meshxfer.mesh import GenericMeshView
from meshxfer.mpi import get_rank_and_size
from meshxfer.simutil import global_reduce

logger = logging.getLogger(__name__)


# {{{ collectives

def compute_global_box(comm, local_box, dim):
    """Return the box around *local_box* of all ranks.

    *local_box* may be *None* on ranks that own nothing. Returns *None* if no
    rank owns anything.

    .. note::
        This is a collective routine and must be called by all MPI ranks.
    """
    if local_box is None:
        local_box = BoundingBox.empty(dim)
    if global_reduce(local_box.dim != dim, "lor", comm=comm):
        raise PreconditionError(f"Local boxes must be {dim}D on every rank.")

    lo = [global_reduce(float(x), "min", comm=comm) for x in local_box.lo]
    hi = [global_reduce(float(x), "max", comm=comm) for x in local_box.hi]

    box = BoundingBox(lo, hi)
    if box.is_empty:
        return None
    return box


def exchange(comm, send_lists):
    """All-to-all exchange of one (possibly empty) list per destination rank.

    Returns the lists received, indexed by source rank.

    .. note::
        This is a collective routine and must be called by all MPI ranks.
    """
    _, size = get_rank_and_size(comm)
    if len(send_lists) != size:
        raise PreconditionError(
            f"Need one send list per rank ({size}), got {len(send_lists)}.")
    if comm is None:
        return [send_lists[0]]
    return comm.alltoall(send_lists)

# }}}


# {{{ partition

class RendezvousPartition:
    """Regular grid of at most *nranks* cells over the global box.

    Cells are added one axis at a time, always along the axis with the
    largest cell extent, for as long as the total cell count stays within
    *nranks*. Cell owners are row-major cell indices modulo *nranks*.

    All bounds are closed, so a point on a seam touches every adjacent cell.
    Such a point belongs to the lowest rank among their owners.

    .. attribute:: global_box
    .. attribute:: nranks
    .. attribute:: cells_per_axis

    .. automethod:: cells_overlapping
    .. automethod:: ranks_for_box
    .. automethod:: owner_rank
    """

    def __init__(self, global_box, nranks):
        if nranks < 1:
            raise PartitioningError(f"Cannot partition over {nranks} ranks.")
        if global_box is None or global_box.is_empty:
            raise PartitioningError("Cannot partition an empty box.")
        if not (np.all(np.isfinite(global_box.lo))
                and np.all(np.isfinite(global_box.hi))):
            raise PartitioningError(
                f"Global box [{global_box.lo}, {global_box.hi}] is not finite.")

        self.global_box = global_box
        self.nranks = nranks

        extent = global_box.hi - global_box.lo
        ncells = np.ones(global_box.dim, dtype=np.int64)
        while True:
            cell_extent = extent / ncells
            axis = int(np.argmax(cell_extent))
            if cell_extent[axis] <= 0:
                break
            trial = ncells.copy()
            trial[axis] += 1
            if np.prod(trial) > nranks:
                break
            ncells = trial

        self.cells_per_axis = ncells
        self._cell_size = extent / ncells

    @property
    def ncells(self):
        return int(np.prod(self.cells_per_axis))

    def _axis_range(self, axis, lo, hi):
        n = self.cells_per_axis[axis]
        h = self._cell_size[axis]
        if h == 0:
            return range(0, 1)
        origin = self.global_box.lo[axis]
        i0 = int(np.ceil((lo - origin) / h)) - 1
        i1 = int(np.floor((hi - origin) / h))
        i0 = min(max(i0, 0), n - 1)
        i1 = max(min(i1, n - 1), i0)
        return range(i0, i1 + 1)

    def cell_owner(self, cell):
        """Return the rank owning the cell with multi-index *cell*."""
        flat = int(np.ravel_multi_index(tuple(cell), tuple(self.cells_per_axis)))
        return flat % self.nranks

    def cells_overlapping(self, box):
        """Return the multi-indices of all cells touching *box*.

        Boxes reaching outside the global box are clamped to it.
        """
        ranges = [self._axis_range(axis, box.lo[axis], box.hi[axis])
                  for axis in range(self.global_box.dim)]
        return list(itertools.product(*ranges))

    def ranks_for_box(self, box):
        """Return the sorted owners of all cells touching *box*."""
        return sorted({self.cell_owner(cell)
                       for cell in self.cells_overlapping(box)})

    def owner_rank(self, point):
        """Return the single rank owning *point*."""
        point = np.asarray(point, dtype=np.float64)
        return min(self.cell_owner(cell)
                   for cell in self.cells_overlapping(BoundingBox(point, point)))

# }}}


class RendezvousElement(NamedTuple):
    """A source element as held by a rendezvous rank.

    .. attribute:: block
    .. attribute:: index

        Index of the element in the rendezvous view of *block*.

    .. attribute:: handle
    .. attribute:: source_rank

        Rank that owns the element in the source decomposition.
    """

    block: int
    index: int
    handle: int
    source_rank: int


class Rendezvous:
    """Source elements redistributed into a :class:`RendezvousPartition`.

    .. attribute:: partition
    .. attribute:: blocks

        One :class:`~meshxfer.mesh.GenericMeshView` per source block. Views
        of blocks with no elements in this rank's cells are null.

    .. automethod:: build
    .. automethod:: elements_containing_points
    .. automethod:: elements_in_geometry
    .. automethod:: element_bounding_box
    .. automethod:: procs_containing_points
    .. automethod:: procs_containing_boxes
    """

    def __init__(self, comm, dim, global_box, tolerance=1e-6, logmgr=None):
        self.comm = comm
        self.dim = dim
        self.tolerance = tolerance
        self.rank, self.nranks = get_rank_and_size(comm)
        self.partition = RendezvousPartition(global_box, self.nranks)
        self.logmgr = logmgr

        self.blocks = []
        self.trees = []
        self._source_ranks = []

    @property
    def nelements(self):
        return sum(view.nelements for view in self.blocks)

    def _check_block_layout(self, mesh_manager):
        layout = [(view.dim, int(view.topology)) for view in mesh_manager.blocks]
        if self.comm is None:
            return
        all_layouts = self.comm.allgather(layout)
        if any(other != all_layouts[0] for other in all_layouts):
            raise PreconditionError(
                "Source mesh blocks differ in number, dimension or topology "
                "across ranks.")

    def build(self, mesh_manager):
        """Redistribute the source elements of *mesh_manager*.

        .. note::
            This is a collective routine and must be called by all MPI ranks.
        """
        if mesh_manager.dim != self.dim:
            raise PreconditionError(
                f"Source mesh is {mesh_manager.dim}D, rendezvous is {self.dim}D.")

        t_build = logmgr_add_timer(self.logmgr, "t_rendezvous_build",
                                   "Time spent building the rendezvous [s]")

        with ProcessLogger(logger, f"rendezvous build on rank {self.rank}"):
            if t_build is not None:
                with t_build.get_sub_timer():
                    self._build(mesh_manager)
            else:
                self._build(mesh_manager)

        return self

    def _build(self, mesh_manager):
        self._check_block_layout(mesh_manager)

        send_lists = [[] for _ in range(self.nranks)]
        for iblock, view in enumerate(mesh_manager.blocks):
            if view.nelements == 0:
                continue
            lo, hi = view.element_bounding_boxes()
            per_rank = [[] for _ in range(self.nranks)]
            for i in range(view.nelements):
                box = BoundingBox(lo[i] - self.tolerance, hi[i] + self.tolerance)
                for dest in self.partition.ranks_for_box(box):
                    per_rank[dest].append(i)
            for dest, indices in enumerate(per_rank):
                if indices:
                    send_lists[dest].append((iblock, view.subset(indices)))

        received = exchange(self.comm, send_lists)

        self.blocks = []
        self.trees = []
        self._source_ranks = []
        for iblock, local_view in enumerate(mesh_manager.blocks):
            views = []
            source_ranks = []
            for src, payload in enumerate(received):
                for block_id, view in payload:
                    if block_id == iblock:
                        views.append(view)
                        source_ranks.append(np.full(view.nelements, src))

            if views:
                merged = GenericMeshView.concatenate(views)
                tree = KDTree(merged).build()
                ranks = np.concatenate(source_ranks).astype(np.int64)
            else:
                merged = GenericMeshView.null(self.dim, local_view.topology)
                tree = None
                ranks = np.empty(0, dtype=np.int64)

            self.blocks.append(merged)
            self.trees.append(tree)
            self._source_ranks.append(ranks)

        logger.info("rank %d: rendezvous holds %d elements in %d of %d blocks, "
                    "cells per axis %s",
                    self.rank, self.nelements,
                    sum(tree is not None for tree in self.trees),
                    len(self.blocks), self.partition.cells_per_axis.tolist())

    def _element(self, iblock, index):
        return RendezvousElement(
            iblock, int(index),
            int(self.blocks[iblock].element_handles[index]),
            int(self._source_ranks[iblock][index]))

    def element_bounding_box(self, iblock, index):
        """Return the bounding box of element *index* of block *iblock*."""
        tree = self.trees[iblock]
        return BoundingBox(tree.el_lo[index], tree.el_hi[index])

    def elements_containing_points(self, points):
        """Locate each point of *points* (shape ``(npoints, dim)``).

        Returns a list with a :class:`RendezvousElement` for every point that
        lies in a local element and *None* for every other point. Blocks are
        searched in order and the first hit wins.
        """
        result = []
        for point in np.asarray(points, dtype=np.float64).reshape(-1, self.dim):
            found = None
            for iblock, tree in enumerate(self.trees):
                if tree is None:
                    continue
                index = tree.locate_point(point, self.tolerance)
                if index is not None:
                    found = self._element(iblock, index)
                    break
            result.append(found)
        return result

    def elements_in_geometry(self, geometry, geometry_traits,
                             all_vertices_for_inclusion=False):
        """Return the local elements that lie in *geometry*.

        An element lies in the geometry if any of its vertices does, or all
        of them if *all_vertices_for_inclusion* is set, within the
        rendezvous tolerance.
        """
        box = geometry_traits.bounding_box(geometry)
        check = all if all_vertices_for_inclusion else any

        result = []
        for iblock, tree in enumerate(self.trees):
            if tree is None:
                continue
            view = self.blocks[iblock]
            for index in tree.find_overlapping(box, self.tolerance):
                nodes = view.element_nodes(index)
                if check(geometry_traits.point_in_geometry(
                        geometry, node, self.tolerance) for node in nodes):
                    result.append(self._element(iblock, index))
        return result

    def procs_containing_points(self, points):
        """Return the rendezvous rank owning each point of *points*."""
        return [self.partition.owner_rank(point)
                for point in np.asarray(points, dtype=np.float64).reshape(
                    -1, self.dim)]

    def procs_containing_boxes(self, boxes):
        """Return, for each box of *boxes*, the ranks whose cells it touches."""
        return [self.partition.ranks_for_box(box) for box in boxes]
