"""Test the shared domain interpolation map."""

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
import pytest

from meshxfer.exceptions import PreconditionError
from meshxfer.managers import FieldManager, MeshManager
from meshxfer.shared_domain import SharedDomainMap
from meshxfer.traits import ArrayField

from utilities import LinearEvaluator, build_rank_blocks, run_ranks

COEFFS = [1., -2., 0.5]
OFFSET = 3.


def test_linear_field_interpolation():
    """Target points on every rank get the source field's exact values."""
    edge_size = 4

    def rank_main(comm):
        rank = comm.Get_rank()
        rng = np.random.default_rng(100 + rank)
        source_mesh_manager = MeshManager(build_rank_blocks(rank, edge_size),
                                          comm=comm, dim=3)

        npoints = 25 + 5*rank
        points = rng.uniform([0., 0., 0.],
                             [edge_size - 1., edge_size - 1., 4.],
                             size=(npoints, 3))
        target_coords = points.T.reshape(-1)

        shared_domain_map = SharedDomainMap(comm, 3)
        shared_domain_map.setup(source_mesh_manager, target_coords)

        evaluator = LinearEvaluator(COEFFS, OFFSET)
        target_field = ArrayField(npoints, 1)
        shared_domain_map.apply(evaluator, FieldManager(target_field, comm=comm))

        return target_field.data, points @ COEFFS + OFFSET, evaluator.calls

    for values, expected, calls in run_ranks(4, rank_main):
        assert np.allclose(values, expected)
        assert calls == 4


def test_missed_points():
    """Points outside the source mesh are kept untouched and reported."""
    edge_size = 3

    def rank_main(comm):
        rank = comm.Get_rank()
        source_mesh_manager = MeshManager(build_rank_blocks(rank, edge_size),
                                          comm=comm, dim=3)

        points = np.array([
            [0.5, 0.5, rank + 0.5],
            [10., 10., 10.],
            [1.5, 1.2, 0.1],
            [-3., 0.5, 0.5],
        ])
        shared_domain_map = SharedDomainMap(comm, 3, store_missed_points=True)
        shared_domain_map.setup(source_mesh_manager, points.T.reshape(-1))

        target_field = ArrayField(len(points), 1, np.full(len(points), -1.))
        shared_domain_map.apply(LinearEvaluator(COEFFS, OFFSET),
                                FieldManager(target_field, comm=comm))
        return (target_field.data, points @ COEFFS + OFFSET,
                shared_domain_map.missed_points())

    for values, expected, missed in run_ranks(2, rank_main):
        assert missed.tolist() == [1, 3]
        assert np.allclose(values[[0, 2]], expected[[0, 2]])
        assert values[1] == -1. and values[3] == -1.


def test_serial_preconditions():
    source_mesh_manager = MeshManager(build_rank_blocks(0, 3), dim=3)

    shared_domain_map = SharedDomainMap(None, 3)
    with pytest.raises(PreconditionError):
        shared_domain_map.apply(LinearEvaluator(COEFFS, OFFSET),
                                FieldManager(ArrayField(1, 1)))
    with pytest.raises(PreconditionError):
        shared_domain_map.setup(source_mesh_manager, np.zeros(4))

    shared_domain_map.setup(source_mesh_manager, np.array([0.5, 0.5, 0.5]))
    with pytest.raises(PreconditionError):
        shared_domain_map.missed_points()
    with pytest.raises(PreconditionError):
        shared_domain_map.apply(LinearEvaluator(COEFFS, OFFSET),
                                FieldManager(ArrayField(2, 1)))

    target_field = ArrayField(1, 1)
    shared_domain_map.apply(LinearEvaluator(COEFFS, OFFSET),
                            FieldManager(target_field))
    assert np.allclose(target_field.data, [0.5 - 1. + 0.25 + 3.])


def test_bad_field_on_one_rank():
    """A mis-sized target field on one rank aborts apply on all ranks."""
    def rank_main(comm):
        rank = comm.Get_rank()
        source_mesh_manager = MeshManager(build_rank_blocks(rank, 3),
                                          comm=comm, dim=3)
        shared_domain_map = SharedDomainMap(comm, 3)
        shared_domain_map.setup(source_mesh_manager,
                                np.array([0.5, 0.5, rank + 0.5]))

        target_field = ArrayField(1 if rank == 0 else 3, 1)
        with pytest.raises(PreconditionError) as excinfo:
            shared_domain_map.apply(LinearEvaluator(COEFFS, OFFSET),
                                    FieldManager(target_field, comm=comm))
        return str(excinfo.value)

    messages = run_ranks(2, rank_main, timeout=30)
    assert "another rank" in messages[0]
    assert "3 entities" in messages[1]
