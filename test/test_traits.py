"""Test the adapter protocols, stock traits and managers."""

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
from meshxfer.geometry import Box, Point
from meshxfer.managers import FieldManager, GeometryManager, MeshManager
from meshxfer.mesh import GenericMeshView
from meshxfer.topology import ElementTopology
from meshxfer.traits import (
    ArrayField,
    ArrayFieldTraits,
    ElementTraits,
    FieldEvaluator,
    FieldIntegrator,
    FieldTraits,
    GeometryTraits,
    MeshTraits,
    NodeTraits,
    ObjectGeometryTraits,
    check_traits,
    component_major,
)

from utilities import (
    LinearEvaluator,
    MyHexTraits,
    MyIntegrator,
    MyMeshTraits,
    MyNodeTraits,
    build_rank_blocks,
    build_two_hex_mesh,
)


def test_component_major_layout():
    """Component *d* of entity *i* lives at ``d*size + i``."""
    size = 7
    dim = 3
    data = np.arange(dim * size, dtype=np.float64)
    field = ArrayField(size, dim, data)

    for d in range(dim):
        assert np.array_equal(field.component(d), data[d*size:(d+1)*size])

    # views, not copies
    field.component(1)[2] = -1.
    assert field.data[size + 2] == -1.

    other = ArrayField.from_components(component_major(field.data, dim))
    assert other.size == size
    assert other.dim == dim
    assert np.array_equal(other.data, field.data)


def test_component_major_size_mismatch():
    with pytest.raises(PreconditionError):
        component_major(np.zeros(7), 3)
    with pytest.raises(PreconditionError):
        ArrayField(4, 2, np.zeros(7))

    assert component_major(np.zeros(0), 0).shape == (0, 0)
    assert ArrayField(0, 3).data.shape == (0,)


def test_protocol_checks():
    assert isinstance(MyNodeTraits(), NodeTraits)
    assert isinstance(MyHexTraits(), ElementTraits)
    assert isinstance(MyMeshTraits(), MeshTraits)
    assert isinstance(ArrayFieldTraits(), FieldTraits)
    assert isinstance(ObjectGeometryTraits(), GeometryTraits)
    assert isinstance(LinearEvaluator([1.], 0.), FieldEvaluator)

    view = build_rank_blocks(1, 3)[1]
    assert isinstance(MyIntegrator(view), FieldIntegrator)

    check_traits(MyMeshTraits(), MeshTraits)
    with pytest.raises(PreconditionError, match="MeshTraits"):
        check_traits(MyHexTraits(), MeshTraits, "mesh traits")
    with pytest.raises(PreconditionError):
        FieldManager(ArrayField(1, 1), field_traits=object())
    with pytest.raises(PreconditionError):
        GeometryManager([], [], dim=3, geometry_traits=MyNodeTraits())


def test_field_manager():
    field = ArrayField(4, 2)
    manager = FieldManager(field)
    assert manager.dim == 2
    assert manager.size == 4
    assert not manager.empty()

    manager.values()[:] = 1.
    assert np.all(field.data == 1.)

    assert FieldManager(ArrayField(0, 2)).empty()

    # storage out of sync with the declared shape
    field.data = np.zeros(3)
    with pytest.raises(PreconditionError):
        manager.values()


def test_geometry_manager():
    geometries = [Box([0., 0., 0.], [1., 1., 1.]),
                  Box([2., 0., 0.], [3., 1., 2.]),
                  Point([5., 5., -1.])]
    manager = GeometryManager(geometries, [10, 3, 7])
    assert len(manager) == 3
    assert manager.dim == 3

    box = manager.local_bounding_box()
    assert np.array_equal(box.lo, [0., 0., -1.])
    assert np.array_equal(box.hi, [5., 5., 2.])

    assert GeometryManager([], [], dim=3).local_bounding_box() is None

    with pytest.raises(PreconditionError, match="not unique"):
        GeometryManager(geometries, [1, 2, 1])
    with pytest.raises(PreconditionError):
        GeometryManager(geometries, [1, 2])
    with pytest.raises(PreconditionError):
        GeometryManager([Box([0., 0.], [1., 1.])] + geometries, [0, 1, 2, 3])
    with pytest.raises(PreconditionError):
        GeometryManager([], [])


def test_mesh_manager_from_adapters():
    meshes = [build_two_hex_mesh(), build_two_hex_mesh()]
    manager = MeshManager.from_adapters(meshes, MyMeshTraits())
    assert manager.nblocks == 2
    assert manager.dim == 3
    assert all(view.topology == ElementTopology.HEXAHEDRON
               for view in manager.blocks)

    box = manager.local_bounding_box()
    assert np.array_equal(box.lo, [0., 0., 0.])
    assert np.array_equal(box.hi, [1., 1., 2.])

    manager = MeshManager.from_adapters(meshes, [MyMeshTraits()] * 2)
    assert manager.nblocks == 2

    with pytest.raises(PreconditionError):
        MeshManager.from_adapters(meshes, [MyMeshTraits()])
    with pytest.raises(PreconditionError):
        MeshManager.from_adapters(meshes, MyHexTraits())


def test_mesh_manager_checks():
    null = GenericMeshView.null(3, ElementTopology.TETRAHEDRON)
    assert MeshManager([null], dim=3).local_bounding_box() is None

    with pytest.raises(PreconditionError):
        MeshManager([])
    with pytest.raises(PreconditionError):
        MeshManager([null], dim=2)
    with pytest.raises(PreconditionError, match="not a GenericMeshView"):
        MeshManager([build_two_hex_mesh()], dim=3)
