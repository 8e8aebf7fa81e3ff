"""Bounding-volume KD-tree over the elements of one mesh view.

.. autodata:: LEAF_CAPACITY
.. autoclass:: KDTree
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

from meshxfer.exceptions import PointNotFound, PreconditionError
from meshxfer.topology import (
    ElementTopology,
    point_in_element,
    topological_dimension,
)

logger = logging.getLogger(__name__)

#: Largest number of elements stored in one leaf.
LEAF_CAPACITY = 12


class KDTree:
    """Point location in a :class:`~meshxfer.mesh.GenericMeshView`.

    The tree is stored as flat arrays (one row per node) and refers to
    elements by their index in the view. It owns no mesh data and has to be
    rebuilt if the view is replaced.

    Ties between elements sharing a face are broken by traversal order:
    depth first, left child before right child, and elements of a leaf in
    ascending index order.

    .. automethod:: build
    .. automethod:: find_point
    .. automethod:: locate_point
    .. automethod:: find_overlapping
    """

    def __init__(self, view, leaf_capacity=LEAF_CAPACITY):
        if leaf_capacity < 1:
            raise PreconditionError("Leaf capacity must be positive.")
        self.view = view
        self.leaf_capacity = leaf_capacity
        self._built = False

    @property
    def nnodes(self):
        return len(self.node_lo)

    def build(self):
        """Compute element boxes and partition them recursively."""
        view = self.view
        self.el_lo, self.el_hi = view.element_bounding_boxes()
        centers = 0.5 * (self.el_lo + self.el_hi)

        self.element_indices = np.arange(view.nelements, dtype=np.int64)

        node_lo = []
        node_hi = []
        split_axis = []
        split_value = []
        children = []
        leaf_range = []

        def new_node(begin, end):
            idx = self.element_indices[begin:end]
            node_lo.append(self.el_lo[idx].min(axis=0))
            node_hi.append(self.el_hi[idx].max(axis=0))
            split_axis.append(-1)
            split_value.append(0.)
            children.append([-1, -1])
            leaf_range.append([begin, end])
            return len(node_lo) - 1

        max_depth = 0
        if view.nelements:
            stack = [(new_node(0, view.nelements), 0)]
        else:
            stack = []

        while stack:
            inode, depth = stack.pop()
            max_depth = max(max_depth, depth)
            begin, end = leaf_range[inode]
            if end - begin <= self.leaf_capacity:
                continue

            idx = self.element_indices[begin:end]
            node_centers = centers[idx]
            spread = node_centers.max(axis=0) - node_centers.min(axis=0)
            axis = int(np.argmax(spread))
            if spread[axis] == 0:
                # all centers coincide, no axis separates the set
                continue

            order = np.argsort(node_centers[:, axis], kind="stable")
            self.element_indices[begin:end] = idx[order]
            mid = begin + (end - begin) // 2

            split_axis[inode] = axis
            split_value[inode] = float(node_centers[order[mid - begin], axis])
            left = new_node(begin, mid)
            right = new_node(mid, end)
            children[inode] = [left, right]

            # right pushed first so the left subtree is finished first
            stack.append((right, depth + 1))
            stack.append((left, depth + 1))

        dim = view.dim
        self.node_lo = np.array(node_lo).reshape(-1, dim)
        self.node_hi = np.array(node_hi).reshape(-1, dim)
        self.split_axis = np.array(split_axis, dtype=np.int64)
        self.split_value = np.array(split_value)
        self.children = np.array(children, dtype=np.int64).reshape(-1, 2)
        self.leaf_range = np.array(leaf_range, dtype=np.int64).reshape(-1, 2)
        self._built = True

        logger.debug("kd-tree over %d %s elements: %d nodes, depth %d",
                     view.nelements, view.topology.name, self.nnodes, max_depth)
        return self

    def _check_built(self):
        if not self._built:
            raise PreconditionError("KD-tree used before build().")

    def _leaves(self, lo, hi):
        """Yield leaf nodes whose boxes overlap ``[lo, hi]``, in traversal order."""
        if not self.nnodes:
            return
        stack = [0]
        while stack:
            inode = stack.pop()
            if (np.any(self.node_lo[inode] > hi)
                    or np.any(lo > self.node_hi[inode])):
                continue
            left, right = self.children[inode]
            if left < 0:
                yield inode
            else:
                stack.append(right)
                stack.append(left)

    def _candidates(self, lo, hi):
        for leaf in self._leaves(lo, hi):
            begin, end = self.leaf_range[leaf]
            for i in sorted(self.element_indices[begin:end].tolist()):
                if (np.all(self.el_lo[i] <= hi)
                        and np.all(lo <= self.el_hi[i])):
                    yield i

    def locate_point(self, point, tolerance=1e-6):
        """Return the index of the element containing *point*, or *None*.

        *tolerance* widens the bounding boxes visited during descent and is
        passed to the reference-coordinate containment test.
        """
        self._check_built()
        view = self.view
        point = np.asarray(point, dtype=np.float64).reshape(-1)
        if len(point) != view.dim:
            raise PreconditionError(
                f"Cannot locate a {len(point)}D point in a {view.dim}D mesh.")
        if (view.topology != ElementTopology.VERTEX
                and topological_dimension(view.topology) != view.dim):
            raise PreconditionError(
                f"Point location needs volume elements, got "
                f"{view.topology.name} in {view.dim}D.")

        for i in self._candidates(point - tolerance, point + tolerance):
            if point_in_element(view.topology, view.element_nodes(i), point,
                                tolerance):
                return i
        return None

    def find_point(self, point, tolerance=1e-6):
        """Return the handle of the element containing *point*.

        :raises PointNotFound: if no element contains *point* within
            *tolerance*.
        """
        i = self.locate_point(point, tolerance)
        if i is None:
            raise PointNotFound(point)
        return int(self.view.element_handles[i])

    def find_overlapping(self, box, tolerance=0.):
        """Return the indices of elements whose boxes overlap *box*.

        *box* is a :class:`~meshxfer.geometry.BoundingBox`. Indices come in
        traversal order.
        """
        self._check_built()
        lo = box.lo - tolerance
        hi = box.hi + tolerance
        return list(self._candidates(lo, hi))
