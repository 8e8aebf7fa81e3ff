"""Test point location with the KD-tree."""

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

from meshxfer.exceptions import PointNotFound, PreconditionError
from meshxfer.geometry import BoundingBox
from meshxfer.kdtree import KDTree
from meshxfer.mesh import GenericMeshView, build_view
from meshxfer.topology import ElementTopology, shape_functions

from utilities import BLOCK_TOPOLOGIES, MyMeshTraits, build_layer_block, \
    build_two_hex_mesh


def test_two_hex_mesh():
    """Points in two hexahedra sharing a face, and points off the mesh."""
    view = build_view(build_two_hex_mesh(), MyMeshTraits())
    tree = KDTree(view)
    tree.build()

    assert tree.find_point([0.5, 0.45, 0.98]) == 0
    assert tree.find_point([0.2, 0.9, 1.32]) == 1

    for point in ([2.9, -0.5, 9.5], [0.1, 1.5, -4.8]):
        with pytest.raises(PointNotFound) as exc_info:
            tree.find_point(point)
        assert np.array_equal(exc_info.value.point, point)
        assert tree.locate_point(point) is None


def test_shared_face_resolves_to_one_element():
    view = build_view(build_two_hex_mesh(), MyMeshTraits())
    tree = KDTree(view).build()
    assert tree.find_point([0.5, 0.5, 1.0]) in (0, 1)


@pytest.mark.parametrize("topology", BLOCK_TOPOLOGIES)
@pytest.mark.parametrize("leaf_capacity", [1, 12])
def test_containment_correctness(topology, leaf_capacity):
    """Every element is found from a point strictly inside it."""
    view = build_layer_block(topology, 0, 5, 1000, 0)
    tree = KDTree(view, leaf_capacity=leaf_capacity).build()

    centroids = {
        ElementTopology.TETRAHEDRON: [0.25, 0.25, 0.25],
        ElementTopology.HEXAHEDRON: [0., 0., 0.],
        ElementTopology.PYRAMID: [0., 0., 0.2],
        ElementTopology.WEDGE: [1/3, 1/3, 0.],
    }
    ref = np.array(centroids[topology])
    for i in range(view.nelements):
        point = shape_functions(topology, ref) @ view.element_nodes(i)
        assert tree.find_point(point) == view.element_handles[i]
        assert tree.locate_point(point) == i


@pytest.mark.parametrize("topology", BLOCK_TOPOLOGIES)
def test_miss_correctness(topology):
    """Points outside all element boxes are never found."""
    view = build_layer_block(topology, 0, 4, 0, 0)
    tree = KDTree(view).build()
    rng = np.random.default_rng(3)

    for _ in range(20):
        point = rng.uniform(-10, 10, size=3)
        point[2] = rng.choice([-1., 2.]) * rng.uniform(1.1, 5.)
        with pytest.raises(PointNotFound):
            tree.find_point(point)


def test_tree_shape():
    """Leaves hold at most leaf_capacity elements, and every element once."""
    view = build_layer_block(ElementTopology.TETRAHEDRON, 0, 6, 0, 0)
    tree = KDTree(view, leaf_capacity=4).build()

    leaves = tree.children[:, 0] < 0
    sizes = tree.leaf_range[leaves, 1] - tree.leaf_range[leaves, 0]
    assert sizes.max() <= 4
    assert sizes.sum() == view.nelements
    assert sorted(tree.element_indices.tolist()) == list(range(view.nelements))


@pytest.mark.parametrize("leaf_capacity", [1, 2, 5])
def test_deep_tree_over_many_elements(leaf_capacity):
    """Split values separate the subtrees at every level of a deep tree."""
    view = build_layer_block(ElementTopology.HEXAHEDRON, 0, 19, 0, 0)
    assert view.nelements == 324
    tree = KDTree(view, leaf_capacity=leaf_capacity).build()

    assert sorted(tree.element_indices.tolist()) == list(range(view.nelements))
    centers = 0.5 * (tree.el_lo + tree.el_hi)
    for inode in range(tree.nnodes):
        begin, end = tree.leaf_range[inode]
        idx = tree.element_indices[begin:end]
        assert np.all(tree.node_lo[inode] <= tree.el_lo[idx])
        assert np.all(tree.el_hi[idx] <= tree.node_hi[inode])

        left, right = tree.children[inode]
        if left < 0:
            assert end - begin <= leaf_capacity
            continue
        axis = tree.split_axis[inode]
        split = tree.split_value[inode]
        lbegin, lend = tree.leaf_range[left]
        rbegin, rend = tree.leaf_range[right]
        assert (lbegin, lend, rend) == (begin, rbegin, end)
        assert np.all(
            centers[tree.element_indices[lbegin:lend], axis] <= split)
        assert np.all(
            centers[tree.element_indices[rbegin:rend], axis] >= split)

    ref = shape_functions(ElementTopology.HEXAHEDRON, [0., 0., 0.])
    for i in range(view.nelements):
        assert tree.locate_point(ref @ view.element_nodes(i)) == i

def test_identical_boxes_stop_splitting():
    """Elements with coincident centers end up in a single leaf."""
    coords = np.array([[0., 1., 0., 1.], [0., 0., 1., 1.]])
    conn = np.array([[0, 1], [1, 3], [2, 2]])
    conn = np.tile(conn, (1, 10))
    view = GenericMeshView(2, [0, 1, 2, 3], coords, ElementTopology.TRIANGLE,
                           np.arange(20), conn)
    tree = KDTree(view, leaf_capacity=2).build()
    assert tree.nnodes == 1
    assert tree.find_point([0.2, 0.2]) == 0
    assert tree.find_point([0.8, 0.8]) == 1


def test_find_overlapping():
    view = build_layer_block(ElementTopology.HEXAHEDRON, 0, 5, 0, 0)
    tree = KDTree(view).build()

    found = tree.find_overlapping(BoundingBox([0.2, 0.2, 0.2], [0.8, 0.8, 0.8]))
    assert [view.element_handles[i] for i in found] == [0]

    found = tree.find_overlapping(BoundingBox([0.5, 0.5, 0.5], [1.5, 0.6, 0.6]))
    assert sorted(view.element_handles[i] for i in found) == [0, 1]

    assert tree.find_overlapping(BoundingBox([10., 10., 10.], [11., 11., 11.])) \
        == []


def test_empty_and_unbuilt_trees():
    view = GenericMeshView.null(3, ElementTopology.HEXAHEDRON)
    tree = KDTree(view)
    with pytest.raises(PreconditionError):
        tree.locate_point([0., 0., 0.])

    tree.build()
    assert tree.locate_point([0., 0., 0.]) is None


def test_surface_elements_cannot_locate_points():
    coords = np.array([[0., 1., 0.], [0., 0., 1.], [0., 0., 0.]])
    view = GenericMeshView(3, [0, 1, 2], coords, ElementTopology.TRIANGLE,
                           [0], [[0], [1], [2]])
    tree = KDTree(view).build()
    with pytest.raises(PreconditionError):
        tree.find_point([0.1, 0.1, 0.])
