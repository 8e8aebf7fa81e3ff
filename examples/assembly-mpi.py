"""Assemble and interpolate a layered source field across MPI ranks."""

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
import sys

import numpy as np

from meshxfer.geometry import Box, Cylinder
from meshxfer.integral_assembly import IntegralAssemblyMap
from meshxfer.logging_quantities import initialize_logmgr
from meshxfer.managers import FieldManager, GeometryManager, MeshManager
from meshxfer.mesh import GenericMeshView, QuadratureElementMeasure
from meshxfer.mpi import mpi_entry_point
from meshxfer.shared_domain import SharedDomainMap
from meshxfer.simutil import ApplicationOptionsError, configurate, global_reduce
from meshxfer.topology import ElementTopology
from meshxfer.traits import ArrayField


logger = logging.getLogger(__name__)

COEFFS = np.array([1., 2., 3.])


class MyRuntimeError(RuntimeError):
    """Simple exception to kill the simulation."""

    pass


def make_layer(rank, nx):
    """Unit hexahedra filling ``[0, nx-1]^2 x [rank, rank+1]``."""
    x, y = np.meshgrid(np.arange(nx, dtype=np.float64),
                       np.arange(nx, dtype=np.float64))
    coords = np.concatenate(
        [np.stack([x.ravel(), y.ravel(), np.full(x.size, z)])
         for z in (rank, rank + 1)], axis=1)
    nplane = nx*nx
    vertex_handles = 2*nplane*rank + np.arange(2*nplane)

    ncells = (nx - 1)**2
    connectivity = np.empty((8, ncells), dtype=np.int64)
    for j in range(nx - 1):
        for i in range(nx - 1):
            v0 = i + j*nx
            quad = [v0, v0 + 1, v0 + 1 + nx, v0 + nx]
            connectivity[:, i + j*(nx - 1)] = vertex_handles[
                quad + [v + nplane for v in quad]]

    return GenericMeshView(3, vertex_handles, coords,
                           ElementTopology.HEXAHEDRON,
                           ncells*rank + np.arange(ncells), connectivity)


class LinearSource:
    """The field ``f(x) = c . x`` on the local source elements."""

    def __init__(self, mesh_manager):
        self.measure = QuadratureElementMeasure(mesh_manager)
        self.centroids = {}
        for view in mesh_manager.blocks:
            for i, handle in enumerate(view.element_handles.tolist()):
                self.centroids[handle] = view.element_nodes(i).mean(axis=0)

    def integrate(self, element_handles):
        f_centroid = np.array([COEFFS @ self.centroids[h]
                               for h in np.asarray(element_handles).tolist()])
        return ArrayField.from_components(
            (self.measure.measure(element_handles) * f_centroid).reshape(1, -1))

    def evaluate(self, element_handles, coords):
        points = np.asarray(coords).reshape(3, -1)
        return ArrayField.from_components((COEFFS @ points).reshape(1, -1))


@mpi_entry_point
def main(user_options, use_logmgr=False, casename="assembly"):
    """Drive the example."""
    from mpi4py import MPI
    comm = MPI.COMM_WORLD
    rank = comm.Get_rank()
    nranks = comm.Get_size()

    nx = configurate("nx", user_options, 10)
    nsteps = configurate("nsteps", user_options, 5)
    tolerance = configurate("tolerance", user_options, 1e-6)
    npoints = configurate("npoints", user_options, 100)
    if nx < 2:
        raise ApplicationOptionsError(
            f"Need at least 2 vertices per edge, got {nx}.")

    logmgr = initialize_logmgr(use_logmgr,
        filename=f"{casename}-mpi.sqlite", mode="wo", mpi_comm=comm)
    if logmgr:
        logmgr.add_watches(["step.max", "t_step.max", "t_assembly_apply.max",
                            "t_shared_domain_apply.max"])

    mesh_manager = MeshManager([make_layer(rank, nx)], comm=comm)
    source = LinearSource(mesh_manager)

    # {{{ integral assembly onto geometries held by rank 0

    half = (nx - 1) / 2
    if rank == 0:
        geometries = [
            Box([0., 0., 0.], [nx - 1., nx - 1., nranks]),
            Cylinder(length=nranks, radius=half, center=[half, half, nranks/2]),
        ]
    else:
        geometries = []
    geometry_manager = GeometryManager(geometries, np.arange(len(geometries)),
                                       comm=comm, dim=3)

    assembly_map = IntegralAssemblyMap(comm, 3, tolerance=tolerance,
                                       all_vertices_for_inclusion=True,
                                       logmgr=logmgr)
    assembly_map.setup(mesh_manager, source.measure, geometry_manager)
    averages = ArrayField(len(geometries), 1)

    # }}}

    # {{{ interpolation onto random points

    rng = np.random.default_rng(rank)
    points = rng.uniform([0., 0., 0.], [nx - 1., nx - 1., nranks],
                         size=(npoints, 3))
    shared_domain_map = SharedDomainMap(comm, 3, tolerance=tolerance,
                                        store_missed_points=True, logmgr=logmgr)
    shared_domain_map.setup(mesh_manager, points.T.reshape(-1))
    interpolated = ArrayField(npoints, 1)

    # }}}

    for _ in range(nsteps):
        if logmgr:
            logmgr.tick_before()

        assembly_map.apply(source, FieldManager(averages, comm=comm))
        shared_domain_map.apply(source, FieldManager(interpolated, comm=comm))

        if logmgr:
            logmgr.tick_after()

    if rank == 0:
        expected = COEFFS @ [half, half, nranks/2]
        logger.info(f"{casename}: box average {averages.data[0]:.6f}, "
                    f"cylinder average {averages.data[1]:.6f}, "
                    f"expected {expected:.6f}")

    missed = shared_domain_map.missed_points()
    found = np.setdiff1d(np.arange(npoints), missed)
    local_error = np.max(np.abs(interpolated.data[found] - points[found] @ COEFFS),
                         initial=0.)
    error = global_reduce(local_error, "max", comm=comm)
    nmissed = global_reduce(len(missed), "sum", comm=comm)
    if rank == 0:
        logger.info(f"{casename}: interpolation error {error:.3e}, "
                    f"{nmissed} missed points")
    if error > 1e-10:
        raise MyRuntimeError("Interpolation error too large.")
    if rank == 0 and not np.isclose(averages.data[0], expected):
        raise MyRuntimeError("Box average does not match the exact value.")

    if logmgr:
        logmgr.close()

    assert "mpi4py" in sys.modules


if __name__ == "__main__":
    logging.basicConfig(format="%(message)s", level=logging.INFO)

    import argparse
    parser = argparse.ArgumentParser(description="Layered assembly")
    parser.add_argument("--log", action="store_true",
        help="enable logging")
    parser.add_argument("--casename", help="casename to use for i/o")
    parser.add_argument("--nx", type=int, default=argparse.SUPPRESS,
        help="vertices per edge of each layer")
    parser.add_argument("--nsteps", type=int, default=argparse.SUPPRESS,
        help="number of apply steps")
    parser.add_argument("--npoints", type=int, default=argparse.SUPPRESS,
        help="interpolation points per rank")
    parser.add_argument("--tolerance", type=float, default=argparse.SUPPRESS,
        help="geometric tolerance")
    args = parser.parse_args()
    casename = args.casename or "assembly"

    main(vars(args), use_logmgr=args.log, casename=casename)

# vim: foldmethod=marker
