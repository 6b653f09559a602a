"""Vector helpers shared by the mesh builders."""

import numpy as np
from typing import Tuple

from .errors import DegenerateGeometry

GEOM_EPS = 1e-9


def normalize(vector: np.ndarray) -> np.ndarray:
    """Return the unit vector along ``vector`` (zero stays zero)."""
    length = np.linalg.norm(vector)
    if length < GEOM_EPS:
        return np.zeros_like(vector, dtype=float)
    return vector / length


def project_to_sphere(position: np.ndarray, radius: float) -> np.ndarray:
    """Push a position out (or in) onto the sphere of the given radius."""
    return normalize(np.asarray(position, dtype=float)) * radius


def plane_basis(normal: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build an orthonormal (u, v) basis for the plane with the given normal.

    ``u`` is picked from whichever normal component is non-zero so the basis
    never collapses, and ``v = normal x u`` keeps (u, v, normal) right-handed.
    A counter-clockwise turn in (u, v) therefore faces along ``normal``.
    """
    n = normalize(np.asarray(normal, dtype=float))
    if abs(n[0]) > GEOM_EPS:
        u = np.array([-n[1], n[0], 0.0])
    elif abs(n[1]) > GEOM_EPS:
        u = np.array([-n[2], 0.0, n[1]])
    else:
        u = np.array([1.0, 0.0, 0.0])
    u = normalize(u)
    v = np.cross(n, u)
    return u, normalize(v)


def orient2d(a, b, c) -> float:
    """Twice the signed area of triangle abc; positive when counter-clockwise."""
    return float((b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0]))


def in_circle(a, b, c, d) -> float:
    """
    Standard in-circle determinant.

    For a counter-clockwise triangle abc the result is positive when ``d``
    lies strictly inside its circumcircle.
    """
    adx, ady = a[0] - d[0], a[1] - d[1]
    bdx, bdy = b[0] - d[0], b[1] - d[1]
    cdx, cdy = c[0] - d[0], c[1] - d[1]
    ad = adx * adx + ady * ady
    bd = bdx * bdx + bdy * bdy
    cd = cdx * cdx + cdy * cdy
    return float(
        adx * (bdy * cd - bd * cdy)
        - ady * (bdx * cd - bd * cdx)
        + ad * (bdx * cdy - bdy * cdx)
    )


def triangle_area(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    """Area of a triangle in 3D."""
    return 0.5 * float(np.linalg.norm(np.cross(b - a, c - a)))


def circumcenter(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    """
    Circumcenter of a triangle in 3D.

    Raises:
        DegenerateGeometry: if the three points are collinear
    """
    ab = b - a
    ac = c - a
    ab_x_ac = np.cross(ab, ac)
    denom = 2.0 * float(np.dot(ab_x_ac, ab_x_ac))
    if denom < GEOM_EPS:
        raise DegenerateGeometry("Cannot compute circumcenter of a collinear triangle")
    offset = (
        np.cross(ab_x_ac, ab) * np.dot(ac, ac) + np.cross(ac, ab_x_ac) * np.dot(ab, ab)
    ) / denom
    return a + offset


def spherical_circumcenter(
    a: np.ndarray, b: np.ndarray, c: np.ndarray, radius: float
) -> np.ndarray:
    """Circumcenter of a surface triangle lifted onto the sphere.

    The planar circumcenter of three points on a sphere lies on the ray from
    the origin through the spherical circumcenter, so scaling it back to
    ``radius`` gives the Voronoi vertex.
    """
    center = circumcenter(a, b, c)
    if np.linalg.norm(center) < GEOM_EPS:
        # Great-circle triangle: fall back to the face normal direction.
        center = np.cross(b - a, c - a)
        if np.dot(center, a + b + c) < 0:
            center = -center
    return project_to_sphere(center, radius)
