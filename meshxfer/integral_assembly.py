"""Integral assembly of source element integrals onto target geometries.

.. autoclass:: IntegralAssemblyMap
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
from collections import defaultdict

import numpy as np

from meshxfer.exceptions import PreconditionError
from meshxfer.logging_quantities import logmgr_add_timer, logmgr_set_rendezvous
from meshxfer.mpi import get_rank_and_size
from meshxfer.rendezvous import Rendezvous, compute_global_box, exchange
from meshxfer.simutil import raise_if_any_rank
from meshxfer.traits import component_major

logger = logging.getLogger(__name__)

NORMALIZATIONS = ("element_measure", "geometry_measure", None)


class IntegralAssemblyMap:
    r"""Transfer element integrals of a source field onto target geometries.

    For each target geometry :math:`g` with contributing source elements
    :math:`E_g`, the assembled value is

    .. math::

        v_g = \frac{\sum_{e \in E_g} I_e}{\sum_{e \in E_g} m_e}

    where :math:`I_e` is the integral of the source field over element
    :math:`e` and :math:`m_e` its measure (*normalization* ``"element_measure"``).
    With ``"geometry_measure"`` the sum is divided by the measure of :math:`g`,
    and with *None* the raw sum is written.

    An element contributes to a geometry if any of its vertices lies in the
    geometry, or all of them if *all_vertices_for_inclusion* is set. Each
    (geometry, element) pair contributes exactly once, no matter how many
    rendezvous ranks see it.

    .. automethod:: setup
    .. automethod:: apply
    """

    def __init__(self, comm, dim, tolerance=1e-6,
                 all_vertices_for_inclusion=False,
                 normalization="element_measure", logmgr=None):
        if normalization not in NORMALIZATIONS:
            raise PreconditionError(
                f"Unknown normalization '{normalization}', expected one of "
                f"{NORMALIZATIONS}.")

        self.comm = comm
        self.dim = dim
        self.tolerance = tolerance
        self.all_vertices_for_inclusion = all_vertices_for_inclusion
        self.normalization = normalization
        self.logmgr = logmgr

        self.rank, self.nranks = get_rank_and_size(comm)
        self.rendezvous = None
        self._ready = False

    @property
    def is_ready(self):
        return self._ready

    # {{{ setup

    def setup(self, source_mesh_manager, source_measure,
              target_geometry_manager):
        """Find the source elements feeding each target geometry.

        .. note::
            This is a collective routine and must be called by all MPI ranks.
        """
        t_setup = logmgr_add_timer(self.logmgr, "t_assembly_setup",
                                   "Time spent in integral assembly setup [s]")
        if t_setup is not None:
            with t_setup.get_sub_timer():
                self._setup(source_mesh_manager, source_measure,
                            target_geometry_manager)
        else:
            self._setup(source_mesh_manager, source_measure,
                        target_geometry_manager)

    def _check_dimensions(self, source_mesh_manager, target_geometry_manager):
        message = None
        if (source_mesh_manager.dim != self.dim
                or target_geometry_manager.dim != self.dim):
            message = (f"Source ({source_mesh_manager.dim}D) and target "
                       f"({target_geometry_manager.dim}D) must match the map "
                       f"dimension {self.dim} on every rank.")
        raise_if_any_rank(message, comm=self.comm)

    def _setup(self, source_mesh_manager, source_measure,
               target_geometry_manager):
        self._ready = False
        self._check_dimensions(source_mesh_manager, target_geometry_manager)

        geometry_traits = target_geometry_manager.geometry_traits
        self._geometry_manager = target_geometry_manager
        self._nblocks = source_mesh_manager.nblocks

        # pairs whose element lives on this rank, per block
        self._source_pairs = [[] for _ in range(self._nblocks)]
        self._measure_sums = {}

        local_box = source_mesh_manager.local_bounding_box()
        geometry_box = target_geometry_manager.local_bounding_box()
        if local_box is None:
            local_box = geometry_box
        elif geometry_box is not None:
            local_box = local_box.union(geometry_box)

        global_box = compute_global_box(self.comm, local_box, self.dim)
        if global_box is None:
            logger.info("rank %d: nothing to assemble", self.rank)
            self.rendezvous = None
            self._ready = True
            return

        rendezvous = Rendezvous(self.comm, self.dim, global_box,
                                self.tolerance, logmgr=self.logmgr)
        rendezvous.build(source_mesh_manager)
        self.rendezvous = rendezvous
        logmgr_set_rendezvous(self.logmgr, rendezvous)
        partition = rendezvous.partition

        # send geometries to the rendezvous ranks of their cells
        send_lists = [[] for _ in range(self.nranks)]
        for gid, geometry in zip(target_geometry_manager.gids.tolist(),
                                 target_geometry_manager.geometries):
            box = geometry_traits.bounding_box(geometry).expanded(self.tolerance)
            for dest in partition.ranks_for_box(box):
                send_lists[dest].append((gid, self.rank, geometry))
        received = exchange(self.comm, send_lists)

        # resolve pairs; a pair is kept only on the rank owning the low
        # corner of the overlap of the two expanded boxes
        nqueries = 0
        send_lists = [[] for _ in range(self.nranks)]
        for payload in received:
            for gid, owner, geometry in payload:
                nqueries += 1
                geometry_box = geometry_traits.bounding_box(
                    geometry).expanded(self.tolerance)
                for element in rendezvous.elements_in_geometry(
                        geometry, geometry_traits,
                        self.all_vertices_for_inclusion):
                    overlap = geometry_box.intersection(
                        rendezvous.element_bounding_box(
                            element.block, element.index
                        ).expanded(self.tolerance))
                    if overlap is None:
                        continue
                    if partition.owner_rank(overlap.lo) != self.rank:
                        continue
                    send_lists[element.source_rank].append(
                        (gid, owner, element.block, element.handle))

        logger.info("rank %d: resolved %d geometries against %d rendezvous "
                    "elements", self.rank, nqueries, rendezvous.nelements)

        received = exchange(self.comm, send_lists)

        seen = set()
        for payload in received:
            for gid, owner, iblock, handle in payload:
                if (gid, iblock, handle) in seen:
                    continue
                seen.add((gid, iblock, handle))
                self._source_pairs[iblock].append((gid, owner, handle))

        # element measures, once per block, summed onto the geometry owners
        block_measures = []
        message = None
        for pairs in self._source_pairs:
            handles = _unique_handles(pairs)
            measures = np.asarray(source_measure.measure(handles),
                                  dtype=np.float64).reshape(-1)
            if len(measures) != len(handles) and message is None:
                message = (f"Element measure returned {len(measures)} values "
                           f"for {len(handles)} elements.")
            block_measures.append((handles, measures))
        raise_if_any_rank(message, comm=self.comm)

        send_lists = [[] for _ in range(self.nranks)]
        for pairs, (handles, measures) in zip(self._source_pairs,
                                              block_measures):
            measure_of = dict(zip(handles.tolist(), measures.tolist()))
            for gid, owner, handle in pairs:
                send_lists[owner].append((gid, measure_of[handle]))
        received = exchange(self.comm, send_lists)

        measure_sums = defaultdict(float)
        for payload in received:
            for gid, measure in payload:
                measure_sums[gid] += measure
        self._measure_sums = dict(measure_sums)

        self._ready = True
        logger.info("rank %d: %d source pairs, %d of %d local geometries "
                    "covered", self.rank,
                    sum(len(pairs) for pairs in self._source_pairs),
                    len(self._measure_sums), len(target_geometry_manager))

    # }}}

    # {{{ apply

    def apply(self, source_integrator, target_field_manager):
        """Assemble the source integrals into *target_field_manager*.

        The target field holds one entity per local target geometry, in the
        order of the geometry manager passed to :meth:`setup`. Its values are
        overwritten, so repeated calls give identical results.

        .. note::
            This is a collective routine and must be called by all MPI ranks.
        """
        if not self._ready:
            raise PreconditionError("apply() called before setup().")

        t_apply = logmgr_add_timer(self.logmgr, "t_assembly_apply",
                                   "Time spent in integral assembly apply [s]")
        if t_apply is not None:
            with t_apply.get_sub_timer():
                self._apply(source_integrator, target_field_manager)
        else:
            self._apply(source_integrator, target_field_manager)

    def _apply(self, source_integrator, target_field_manager):
        ngeometries = len(self._geometry_manager)
        field_traits = target_field_manager.field_traits
        field_dim = target_field_manager.dim

        message = None
        if target_field_manager.size != ngeometries:
            message = (f"Target field has {target_field_manager.size} entities "
                       f"for {ngeometries} target geometries.")
        elif ngeometries and target_field_manager.empty():
            message = "Target field is empty."
        else:
            try:
                target_field_manager.values()
            except PreconditionError as exc:
                message = str(exc)
        raise_if_any_rank(message, comm=self.comm)

        if self.rendezvous is None:
            target_field_manager.values()[:] = 0.
            return

        block_values = []
        for pairs in self._source_pairs:
            handles = _unique_handles(pairs)
            integrals = source_integrator.integrate(handles)
            try:
                values = component_major(field_traits.values(integrals),
                                         field_traits.dim(integrals))
            except PreconditionError as exc:
                values = np.empty((field_dim, 0))
                message = message or str(exc)
            if (len(handles) and values.shape != (field_dim, len(handles))
                    and message is None):
                message = ("Integrator returned values of shape "
                           f"{values.shape}, expected "
                           f"{(field_dim, len(handles))}.")
            block_values.append((handles, values))
        raise_if_any_rank(message, comm=self.comm)

        send_lists = [[] for _ in range(self.nranks)]
        for iblock, (pairs, (handles, values)) in enumerate(
                zip(self._source_pairs, block_values)):
            column_of = {h: k for k, h in enumerate(handles.tolist())}
            for gid, owner, handle in pairs:
                send_lists[owner].append(
                    (gid, iblock, handle, values[:, column_of[handle]].copy()))
        received = exchange(self.comm, send_lists)

        contributions = {}
        for payload in received:
            for gid, iblock, handle, values in payload:
                contributions.setdefault((gid, iblock, handle), values)

        sums = defaultdict(lambda: np.zeros(field_dim))
        for (gid, _, _), values in contributions.items():
            sums[gid] += values

        geometry_traits = self._geometry_manager.geometry_traits
        out = component_major(target_field_manager.values(), field_dim)
        for j, (gid, geometry) in enumerate(
                zip(self._geometry_manager.gids.tolist(),
                    self._geometry_manager.geometries)):
            if gid not in sums:
                out[:, j] = 0.
                continue

            if self.normalization == "element_measure":
                denominator = self._measure_sums.get(gid, 0.)
            elif self.normalization == "geometry_measure":
                denominator = geometry_traits.measure(geometry)
            else:
                denominator = 1.

            if denominator == 0:
                logger.warning("geometry %d has zero measure, writing the "
                               "unnormalized sum", gid)
                denominator = 1.
            out[:, j] = sums[gid] / denominator

    # }}}


def _unique_handles(pairs):
    """Return the element handles of *pairs* in first-seen order."""
    return np.array(list(dict.fromkeys(handle for _, _, handle in pairs)),
                    dtype=np.int64)

# vim: foldmethod=marker
