"""Element topologies and their reference elements.

.. autoclass:: ElementTopology

Reference element utilities
---------------------------

.. autofunction:: nodes_per_element
.. autofunction:: topological_dimension
.. autofunction:: reference_vertices
.. autofunction:: shape_functions
.. autofunction:: shape_derivatives
.. autofunction:: map_to_reference
.. autofunction:: point_in_reference_coords
.. autofunction:: point_in_element
.. autofunction:: element_measure
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

from enum import IntEnum

import numpy as np
import numpy.linalg as la


class ElementTopology(IntEnum):
    """Topology tag of the elements in a mesh block.

    Node orderings follow the Exodus convention: quadrilaterals and
    hexahedra run counter-clockwise around the bottom face and then the top
    face, wedges list the bottom triangle then the top triangle, pyramids
    list the base quadrilateral then the apex.
    """

    VERTEX = 0
    LINE_SEGMENT = 1
    TRIANGLE = 2
    QUADRILATERAL = 3
    TETRAHEDRON = 4
    HEXAHEDRON = 5
    PYRAMID = 6
    WEDGE = 7


_NODES_PER_ELEMENT = {
    ElementTopology.VERTEX: 1,
    ElementTopology.LINE_SEGMENT: 2,
    ElementTopology.TRIANGLE: 3,
    ElementTopology.QUADRILATERAL: 4,
    ElementTopology.TETRAHEDRON: 4,
    ElementTopology.HEXAHEDRON: 8,
    ElementTopology.PYRAMID: 5,
    ElementTopology.WEDGE: 6,
}

_TOPOLOGICAL_DIMENSION = {
    ElementTopology.VERTEX: 0,
    ElementTopology.LINE_SEGMENT: 1,
    ElementTopology.TRIANGLE: 2,
    ElementTopology.QUADRILATERAL: 2,
    ElementTopology.TETRAHEDRON: 3,
    ElementTopology.HEXAHEDRON: 3,
    ElementTopology.PYRAMID: 3,
    ElementTopology.WEDGE: 3,
}

_QUAD_SIGNS = np.array([
    (-1, -1),
    (1, -1),
    (1, 1),
    (-1, 1),
], dtype=np.float64)

_HEX_SIGNS = np.array([
    (-1, -1, -1),
    (1, -1, -1),
    (1, 1, -1),
    (-1, 1, -1),
    (-1, -1, 1),
    (1, -1, 1),
    (1, 1, 1),
    (-1, 1, 1)
], dtype=np.float64)

_REFERENCE_VERTICES = {
    ElementTopology.VERTEX: np.zeros((1, 0)),
    ElementTopology.LINE_SEGMENT: np.array([[-1.], [1.]]),
    ElementTopology.TRIANGLE: np.array([[0., 0.], [1., 0.], [0., 1.]]),
    ElementTopology.QUADRILATERAL: _QUAD_SIGNS,
    ElementTopology.TETRAHEDRON: np.array([
        [0., 0., 0.], [1., 0., 0.], [0., 1., 0.], [0., 0., 1.]]),
    ElementTopology.HEXAHEDRON: _HEX_SIGNS,
    ElementTopology.PYRAMID: np.array([
        [-1., -1., 0.], [1., -1., 0.], [1., 1., 0.], [-1., 1., 0.],
        [0., 0., 1.]]),
    ElementTopology.WEDGE: np.array([
        [0., 0., -1.], [1., 0., -1.], [0., 1., -1.],
        [0., 0., 1.], [1., 0., 1.], [0., 1., 1.]]),
}

# Smallest distance to the pyramid apex used in the rational shape functions.
_APEX_EPS = 1e-12


def nodes_per_element(topology):
    """Return the number of nodes of an element of *topology*."""
    return _NODES_PER_ELEMENT[ElementTopology(topology)]


def topological_dimension(topology):
    """Return the dimension of the reference element of *topology*."""
    return _TOPOLOGICAL_DIMENSION[ElementTopology(topology)]


def reference_vertices(topology):
    """Return the reference vertices of *topology* as ``(nnodes, tdim)``."""
    return _REFERENCE_VERTICES[ElementTopology(topology)].copy()


def reference_centroid(topology):
    """Return the centroid of the reference element of *topology*."""
    return np.mean(_REFERENCE_VERTICES[ElementTopology(topology)], axis=0)


# {{{ shape functions

def _simplex_shape_functions(ref):
    return np.concatenate([[1 - np.sum(ref)], ref])


def _simplex_shape_deriv(tdim):
    return np.concatenate([-np.ones((1, tdim)), np.eye(tdim)])


def _tensor_shape_functions(signs, ref):
    return np.prod(0.5 * (1 + signs * ref), axis=1)


def _tensor_shape_deriv(signs, ref):
    factors = 0.5 * (1 + signs * ref)
    nnodes, tdim = signs.shape
    dn_dref = np.empty((nnodes, tdim))
    for j in range(tdim):
        others = np.prod(np.delete(factors, j, axis=1), axis=1)
        dn_dref[:, j] = 0.5 * signs[:, j] * others
    return dn_dref


def _wedge_shape_functions(ref):
    xi, eta, zeta = ref
    tri = np.array([1 - xi - eta, xi, eta])
    return np.concatenate([tri * 0.5 * (1 - zeta), tri * 0.5 * (1 + zeta)])


def _wedge_shape_deriv(ref):
    xi, eta, zeta = ref
    tri = np.array([1 - xi - eta, xi, eta])
    dtri = np.array([[-1., -1.], [1., 0.], [0., 1.]])
    dn_dref = np.empty((6, 3))
    dn_dref[:3, :2] = dtri * 0.5 * (1 - zeta)
    dn_dref[3:, :2] = dtri * 0.5 * (1 + zeta)
    dn_dref[:3, 2] = -0.5 * tri
    dn_dref[3:, 2] = 0.5 * tri
    return dn_dref


def _pyramid_terms(ref):
    xi, eta, zeta = ref
    s = 1 - zeta
    if abs(s) < _APEX_EPS:
        s = _APEX_EPS
    a = 1 + _QUAD_SIGNS[:, 0] * xi - zeta
    b = 1 + _QUAD_SIGNS[:, 1] * eta - zeta
    return a, b, s


def _pyramid_shape_functions(ref):
    a, b, s = _pyramid_terms(ref)
    return np.concatenate([a * b / (4 * s), [ref[2]]])


def _pyramid_shape_deriv(ref):
    a, b, s = _pyramid_terms(ref)
    dn_dref = np.zeros((5, 3))
    dn_dref[:4, 0] = _QUAD_SIGNS[:, 0] * b / (4 * s)
    dn_dref[:4, 1] = _QUAD_SIGNS[:, 1] * a / (4 * s)
    dn_dref[:4, 2] = (a * b - (a + b) * s) / (4 * s * s)
    dn_dref[4, 2] = 1.
    return dn_dref


def shape_functions(topology, ref_coords):
    """Evaluate the linear shape functions of *topology* at *ref_coords*.

    Returns an array of shape ``(nnodes,)`` ordered like the canonical
    element nodes.
    """
    topology = ElementTopology(topology)
    ref = np.asarray(ref_coords, dtype=np.float64)

    if topology == ElementTopology.VERTEX:
        return np.ones(1)
    if topology in (ElementTopology.TRIANGLE, ElementTopology.TETRAHEDRON):
        return _simplex_shape_functions(ref)
    if topology in (ElementTopology.LINE_SEGMENT,
                    ElementTopology.QUADRILATERAL,
                    ElementTopology.HEXAHEDRON):
        return _tensor_shape_functions(_REFERENCE_VERTICES[topology], ref)
    if topology == ElementTopology.WEDGE:
        return _wedge_shape_functions(ref)
    if topology == ElementTopology.PYRAMID:
        return _pyramid_shape_functions(ref)

    raise ValueError(f"Unknown element topology '{topology}'")


def shape_derivatives(topology, ref_coords):
    """Evaluate the reference gradients of the shape functions of *topology*.

    Returns an array of shape ``(nnodes, tdim)``.
    """
    topology = ElementTopology(topology)
    ref = np.asarray(ref_coords, dtype=np.float64)

    if topology == ElementTopology.VERTEX:
        return np.zeros((1, 0))
    if topology in (ElementTopology.TRIANGLE, ElementTopology.TETRAHEDRON):
        return _simplex_shape_deriv(topological_dimension(topology))
    if topology in (ElementTopology.LINE_SEGMENT,
                    ElementTopology.QUADRILATERAL,
                    ElementTopology.HEXAHEDRON):
        return _tensor_shape_deriv(_REFERENCE_VERTICES[topology], ref)
    if topology == ElementTopology.WEDGE:
        return _wedge_shape_deriv(ref)
    if topology == ElementTopology.PYRAMID:
        return _pyramid_shape_deriv(ref)

    raise ValueError(f"Unknown element topology '{topology}'")

# }}}


# {{{ inverse map and containment

def map_to_reference(topology, el_nodes, target_point, tol=1e-12, max_iter=25):
    """
    Newton iteration to map a physical point to reference coordinates.

    The iteration starts from the reference centroid, so repeated calls with
    the same arguments give the same answer. Simplex maps are affine and
    converge in a single step.

    Parameters
    ----------
        topology: :class:`ElementTopology`
            Topology of the element.
        el_nodes: ndarray (nnodes, dim)
            Physical node coordinates in canonical order.
        target_point: ndarray (dim,)
            Physical coordinates of the point to map.

    Returns
    -------
        ndarray (tdim,) of reference coordinates if successful, otherwise None.
    """
    topology = ElementTopology(topology)
    el_nodes = np.asarray(el_nodes, dtype=np.float64)
    target_point = np.asarray(target_point, dtype=np.float64)

    tdim = topological_dimension(topology)
    if el_nodes.shape[1] != tdim:
        raise ValueError(f"Cannot invert the map of a {tdim}D element embedded "
                         f"in {el_nodes.shape[1]}D.")

    ref = reference_centroid(topology)
    for _ in range(max_iter):
        f_resid = shape_functions(topology, ref) @ el_nodes - target_point
        jac = el_nodes.T @ shape_derivatives(topology, ref)

        try:
            delta = la.solve(jac, -f_resid)
        except la.LinAlgError:
            # degenerate element
            return None

        ref = ref + delta

        if not np.all(np.isfinite(ref)) or np.max(np.abs(ref)) > 1e6:
            return None
        if la.norm(delta) < tol:
            return ref

    return None


def point_in_reference_coords(topology, ref_coords, tol=1e-8):
    """
    Check if the given reference coordinates are inside the reference element.

    Parameters
    ----------
        topology: :class:`ElementTopology`
        ref_coords: ndarray-like
            Reference coordinates (e.g., [xi, eta] or [xi, eta, zeta])
        tol: float
            Tolerance for bounds checking, in reference units.

    Returns
    -------
        bool
    """
    topology = ElementTopology(topology)
    ref = np.asarray(ref_coords, dtype=np.float64)

    if topology in (ElementTopology.LINE_SEGMENT,
                    ElementTopology.QUADRILATERAL,
                    ElementTopology.HEXAHEDRON):
        return bool(np.all((-1 - tol <= ref) & (ref <= 1 + tol)))

    if topology in (ElementTopology.TRIANGLE, ElementTopology.TETRAHEDRON):
        return bool(np.all(ref >= -tol) and np.sum(ref) <= 1 + tol)

    if topology == ElementTopology.WEDGE:
        xi, eta, zeta = ref
        return bool(
            xi >= -tol and eta >= -tol and xi + eta <= 1 + tol
            and -1 - tol <= zeta <= 1 + tol)

    if topology == ElementTopology.PYRAMID:
        xi, eta, zeta = ref
        half_width = 1 - zeta + tol
        return bool(
            -tol <= zeta <= 1 + tol
            and abs(xi) <= half_width and abs(eta) <= half_width)

    if topology == ElementTopology.VERTEX:
        return True

    raise ValueError(f"Unknown element topology '{topology}'")


def point_in_element(topology, el_nodes, point, tol=1e-8):
    """Return whether *point* lies in the element with nodes *el_nodes*.

    *el_nodes* must be in canonical order. For vertices *tol* is a physical
    distance; for all other topologies it is applied to the reference
    coordinates.
    """
    topology = ElementTopology(topology)
    point = np.asarray(point, dtype=np.float64)

    if topology == ElementTopology.VERTEX:
        return bool(la.norm(np.asarray(el_nodes)[0] - point) <= tol)

    ref = map_to_reference(topology, el_nodes, point)
    if ref is None:
        return False
    return point_in_reference_coords(topology, ref, tol)

# }}}


# {{{ measures

def _gauss_legendre(n):
    return np.polynomial.legendre.leggauss(n)


def _tensor_rule(npoints, tdim):
    pts_1d, wts_1d = _gauss_legendre(npoints)
    grids = np.meshgrid(*([pts_1d] * tdim), indexing="ij")
    weights = np.meshgrid(*([wts_1d] * tdim), indexing="ij")
    points = np.stack([g.ravel() for g in grids], axis=1)
    return points, np.prod(np.stack([w.ravel() for w in weights], axis=1), axis=1)


def _triangle_rule():
    points = np.array([[1/6, 1/6], [2/3, 1/6], [1/6, 2/3]])
    return points, np.full(3, 1/6)


def _tetrahedron_rule():
    a = 0.5854101966249685
    b = 0.1381966011250105
    points = np.array([[b, b, b], [a, b, b], [b, a, b], [b, b, a]])
    return points, np.full(4, 1/24)


def _wedge_rule():
    tri_pts, tri_wts = _triangle_rule()
    line_pts, line_wts = _gauss_legendre(2)
    points = np.array([[*p, z] for p in tri_pts for z in line_pts])
    weights = np.array([w * wz for w in tri_wts for wz in line_wts])
    return points, weights


def _pyramid_rule():
    # Collapsed hexahedron: (xi, eta) scale with the height (1 - zeta).
    pts_1d, wts_1d = _gauss_legendre(3)
    points = []
    weights = []
    for zeta_hat, w_z in zip(pts_1d, wts_1d):
        zeta = 0.5 * (1 + zeta_hat)
        scale = 1 - zeta
        for xi_hat, w_x in zip(pts_1d, wts_1d):
            for eta_hat, w_y in zip(pts_1d, wts_1d):
                points.append([xi_hat * scale, eta_hat * scale, zeta])
                weights.append(w_x * w_y * 0.5 * w_z * scale**2)
    return np.array(points), np.array(weights)


def quadrature_rule(topology):
    """Return ``(points, weights)`` integrating the measure of *topology*.

    The rules integrate the Jacobian determinant of the linear elements
    exactly, except for the rational pyramid map.
    """
    topology = ElementTopology(topology)
    if topology == ElementTopology.LINE_SEGMENT:
        return _tensor_rule(2, 1)
    if topology == ElementTopology.TRIANGLE:
        return _triangle_rule()
    if topology == ElementTopology.QUADRILATERAL:
        return _tensor_rule(2, 2)
    if topology == ElementTopology.TETRAHEDRON:
        return _tetrahedron_rule()
    if topology == ElementTopology.HEXAHEDRON:
        return _tensor_rule(2, 3)
    if topology == ElementTopology.WEDGE:
        return _wedge_rule()
    if topology == ElementTopology.PYRAMID:
        return _pyramid_rule()
    raise ValueError(f"No quadrature rule for topology '{topology}'")


def element_measure(topology, el_nodes):
    """Compute the length, area or volume of one element.

    Elements embedded in a higher dimensional space (e.g. triangles in 3D)
    use the Gram determinant of the mapping Jacobian. Vertices have zero
    measure.
    """
    topology = ElementTopology(topology)
    if topology == ElementTopology.VERTEX:
        return 0.

    el_nodes = np.asarray(el_nodes, dtype=np.float64)
    points, weights = quadrature_rule(topology)

    measure = 0.
    for ref, weight in zip(points, weights):
        jac = el_nodes.T @ shape_derivatives(topology, ref)
        if jac.shape[0] == jac.shape[1]:
            det = abs(la.det(jac))
        else:
            det = np.sqrt(abs(la.det(jac.T @ jac)))
        measure += weight * det

    return measure

# }}}

# vim: foldmethod=marker
