"""Consistent interpolation of a source field onto target points.

.. autoclass:: SharedDomainMap
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

from meshxfer.exceptions import PreconditionError
from meshxfer.geometry import BoundingBox
from meshxfer.logging_quantities import logmgr_add_timer, logmgr_set_rendezvous
from meshxfer.mpi import get_rank_and_size
from meshxfer.rendezvous import Rendezvous, compute_global_box, exchange
from meshxfer.simutil import raise_if_any_rank
from meshxfer.traits import component_major

logger = logging.getLogger(__name__)


class SharedDomainMap:
    """Evaluate a source field at target points that share its domain.

    Each target point is located in the source mesh through the rendezvous
    decomposition. The source rank owning the containing element evaluates
    the field there and the value is sent back to the rank owning the point.

    Points outside the source mesh are *missed*. Their target values are left
    untouched. With *store_missed_points* their local indices are kept and
    returned by :meth:`missed_points`.

    .. automethod:: setup
    .. automethod:: apply
    .. automethod:: missed_points
    """

    def __init__(self, comm, dim, tolerance=1e-6, store_missed_points=False,
                 logmgr=None):
        self.comm = comm
        self.dim = dim
        self.tolerance = tolerance
        self.store_missed_points = store_missed_points
        self.logmgr = logmgr

        self.rank, self.nranks = get_rank_and_size(comm)
        self.rendezvous = None
        self._missed = None
        self._ready = False

    @property
    def is_ready(self):
        return self._ready

    def missed_points(self):
        """Return the local indices of target points not found in the source.

        Only available when the map was built with *store_missed_points*.
        """
        if not self.store_missed_points:
            raise PreconditionError(
                "Missed points are only kept with store_missed_points=True.")
        if not self._ready:
            raise PreconditionError("missed_points() called before setup().")
        return self._missed

    def setup(self, source_mesh_manager, target_coords):
        """Locate the target points in the source mesh.

        *target_coords* are blocked: all x, then all y, and so on.

        .. note::
            This is a collective routine and must be called by all MPI ranks.
        """
        t_setup = logmgr_add_timer(self.logmgr, "t_shared_domain_setup",
                                   "Time spent in shared domain setup [s]")
        if t_setup is not None:
            with t_setup.get_sub_timer():
                self._setup(source_mesh_manager, target_coords)
        else:
            self._setup(source_mesh_manager, target_coords)

    def _setup(self, source_mesh_manager, target_coords):
        self._ready = False

        target_coords = np.asarray(target_coords, dtype=np.float64).reshape(-1)
        message = None
        if (source_mesh_manager.dim != self.dim
                or len(target_coords) % self.dim != 0):
            message = ("Source mesh and target coordinates must be "
                       f"{self.dim}D on every rank.")
        raise_if_any_rank(message, comm=self.comm)

        points = component_major(target_coords, self.dim).T
        self._npoints = len(points)
        self._source_points = [[] for _ in range(source_mesh_manager.nblocks)]

        local_box = source_mesh_manager.local_bounding_box()
        if len(points):
            point_box = BoundingBox.from_points(points)
            local_box = point_box if local_box is None \
                else local_box.union(point_box)

        global_box = compute_global_box(self.comm, local_box, self.dim)
        if global_box is None:
            self.rendezvous = None
            self._missed = np.empty(0, dtype=np.int64)
            self._ready = True
            return

        rendezvous = Rendezvous(self.comm, self.dim, global_box,
                                self.tolerance, logmgr=self.logmgr)
        rendezvous.build(source_mesh_manager)
        self.rendezvous = rendezvous
        logmgr_set_rendezvous(self.logmgr, rendezvous)

        send_lists = [[] for _ in range(self.nranks)]
        for index, dest in enumerate(rendezvous.procs_containing_points(points)):
            send_lists[dest].append((self.rank, index, points[index]))
        received = exchange(self.comm, send_lists)

        queries = [query for payload in received for query in payload]
        found = rendezvous.elements_containing_points(
            np.array([coords for _, _, coords in queries]).reshape(-1, self.dim))

        found_lists = [[] for _ in range(self.nranks)]
        missed_lists = [[] for _ in range(self.nranks)]
        for (owner, index, coords), element in zip(queries, found):
            if element is None:
                missed_lists[owner].append(index)
            else:
                found_lists[element.source_rank].append(
                    (owner, index, element.block, element.handle, coords))

        for payload in exchange(self.comm, found_lists):
            for owner, index, iblock, handle, coords in payload:
                self._source_points[iblock].append(
                    (owner, index, handle, coords))

        missed = sorted(index for payload in exchange(self.comm, missed_lists)
                        for index in payload)
        if missed:
            logger.info("rank %d: %d of %d target points not found in the "
                        "source mesh", self.rank, len(missed), self._npoints)
        self._missed = np.array(missed, dtype=np.int64) \
            if self.store_missed_points else None

        self._ready = True

    def apply(self, source_evaluator, target_field_manager):
        """Write the source field at the target points into the target field.

        .. note::
            This is a collective routine and must be called by all MPI ranks.
        """
        if not self._ready:
            raise PreconditionError("apply() called before setup().")

        t_apply = logmgr_add_timer(self.logmgr, "t_shared_domain_apply",
                                   "Time spent in shared domain apply [s]")
        if t_apply is not None:
            with t_apply.get_sub_timer():
                self._apply(source_evaluator, target_field_manager)
        else:
            self._apply(source_evaluator, target_field_manager)

    def _apply(self, source_evaluator, target_field_manager):
        field_traits = target_field_manager.field_traits
        field_dim = target_field_manager.dim

        message = None
        if target_field_manager.size != self._npoints:
            message = (f"Target field has {target_field_manager.size} entities "
                       f"for {self._npoints} target points.")
        elif self._npoints and target_field_manager.empty():
            message = "Target field is empty."
        else:
            try:
                target_field_manager.values()
            except PreconditionError as exc:
                message = str(exc)
        raise_if_any_rank(message, comm=self.comm)

        if self.rendezvous is None:
            return

        block_values = []
        for points in self._source_points:
            handles = np.array([handle for _, _, handle, _ in points],
                               dtype=np.int64)
            coords = np.array([c for _, _, _, c in points]).reshape(-1, self.dim)
            result = source_evaluator.evaluate(handles, coords.T.reshape(-1))
            try:
                values = component_major(field_traits.values(result),
                                         field_traits.dim(result))
            except PreconditionError as exc:
                values = np.empty((field_dim, 0))
                message = message or str(exc)
            if (len(handles) and values.shape != (field_dim, len(handles))
                    and message is None):
                message = ("Evaluator returned values of shape "
                           f"{values.shape}, expected "
                           f"{(field_dim, len(handles))}.")
            block_values.append(values)
        raise_if_any_rank(message, comm=self.comm)

        send_lists = [[] for _ in range(self.nranks)]
        for points, values in zip(self._source_points, block_values):
            for k, (owner, index, _, _) in enumerate(points):
                send_lists[owner].append((index, values[:, k].copy()))

        out = component_major(target_field_manager.values(), field_dim)
        for payload in exchange(self.comm, send_lists):
            for index, values in payload:
                out[:, index] = values
