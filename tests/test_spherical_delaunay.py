"""Tests for the cell triangulation routine and its predicates."""

import math

import pytest
import numpy as np

from py_planet.core.errors import DegenerateGeometry
from py_planet.core.geometry import (
    circumcenter,
    in_circle,
    orient2d,
    plane_basis,
    spherical_circumcenter,
)
from py_planet.core.spherical_delaunay import SphericalDelaunayTriangulation
from py_planet.core.structures import Point


def make_points(coords):
    return [Point(i, np.array([x, y, 0.0])) for i, (x, y) in enumerate(coords)]


def triangulate(coords, ordered=False):
    points = make_points(coords)
    triangles = SphericalDelaunayTriangulation().triangulate(np.array(coords, dtype=float), points, ordered=ordered)
    return points, triangles


def signed_area(triangle):
    a, b, c = (p.position[:2] for p in triangle)
    return orient2d(a, b, c) / 2.0


def regular_polygon(n, radius=1.0, phase=0.1):
    return [
        (radius * math.cos(phase + 2 * math.pi * i / n), radius * math.sin(phase + 2 * math.pi * i / n))
        for i in range(n)
    ]


class TestPredicates:
    """Test the geometric predicates."""

    def test_orient2d_sign(self):
        assert orient2d((0, 0), (1, 0), (0, 1)) > 0
        assert orient2d((0, 0), (0, 1), (1, 0)) < 0
        assert orient2d((0, 0), (1, 1), (2, 2)) == 0

    def test_in_circle(self):
        a, b, c = (1, 0), (0, 1), (-1, 0)
        assert in_circle(a, b, c, (0, 0)) > 0
        assert in_circle(a, b, c, (2, 2)) < 0
        assert in_circle(a, b, c, (0, -1)) == pytest.approx(0.0)

    def test_circumcenter(self):
        center = circumcenter(np.array([1.0, 0, 0]), np.array([0, 1.0, 0]), np.array([-1.0, 0, 0]))
        np.testing.assert_allclose(center, [0, 0, 0], atol=1e-12)

    def test_circumcenter_degenerate(self):
        with pytest.raises(DegenerateGeometry):
            circumcenter(np.zeros(3), np.array([1.0, 0, 0]), np.array([2.0, 0, 0]))

    def test_spherical_circumcenter_on_sphere(self):
        a = np.array([10.0, 0, 0])
        b = np.array([0, 10.0, 0])
        c = np.array([0, 0, 10.0])
        center = spherical_circumcenter(a, b, c, 10.0)
        np.testing.assert_allclose(center, np.full(3, 10.0 / math.sqrt(3)))
        assert np.linalg.norm(center - a) == pytest.approx(np.linalg.norm(center - b))

    @pytest.mark.parametrize("normal", [(0, 0, 1), (1, 0, 0), (0, 1, 0), (1, 2, 3), (-3, 0.5, 0)])
    def test_plane_basis_is_right_handed(self, normal):
        n = np.array(normal, dtype=float)
        n /= np.linalg.norm(n)
        u, v = plane_basis(n)
        assert np.dot(u, v) == pytest.approx(0.0, abs=1e-12)
        assert np.dot(u, n) == pytest.approx(0.0, abs=1e-12)
        np.testing.assert_allclose(np.cross(u, v), n, atol=1e-12)


class TestTriangulation:
    """Test cell triangulation."""

    def test_mismatched_input(self):
        with pytest.raises(ValueError):
            SphericalDelaunayTriangulation().triangulate([(0, 0), (1, 0)], make_points([(0, 0)]))

    def test_too_few_points(self):
        _, triangles = triangulate([(0, 0), (1, 0)])
        assert triangles == []

    def test_single_triangle_is_counter_clockwise(self):
        _, triangles = triangulate([(0, 0), (0, 1), (1, 0)])
        assert len(triangles) == 1
        assert signed_area(triangles[0]) > 0

    @pytest.mark.parametrize("n", [4, 5, 6])
    def test_fan(self, n):
        _, triangles = triangulate(regular_polygon(n))
        assert len(triangles) == n - 2
        assert all(signed_area(t) > 0 for t in triangles)

    @pytest.mark.parametrize("n", [7, 8, 10, 12])
    def test_incremental_convex_polygon(self, n):
        points, triangles = triangulate(regular_polygon(n))
        assert len(triangles) == n - 2
        assert all(signed_area(t) > 0 for t in triangles)
        expected = 0.5 * n * math.sin(2 * math.pi / n)
        assert sum(signed_area(t) for t in triangles) == pytest.approx(expected)

    def test_polygon_edges_are_kept(self):
        coords = regular_polygon(9)
        points, triangles = triangulate(coords)
        edges = set()
        for t in triangles:
            ids = [p.id for p in t]
            for i in range(3):
                edges.add(frozenset((ids[i], ids[(i + 1) % 3])))
        for i in range(9):
            assert frozenset((i, (i + 1) % 9)) in edges

    def test_interior_points(self):
        coords = regular_polygon(6, phase=0.0) + [(0.0, 0.0), (0.3, 0.1)]
        points, triangles = triangulate(coords)

        assert all(signed_area(t) > 0 for t in triangles)
        hexagon = 3 * math.sqrt(3) / 2
        assert sum(signed_area(t) for t in triangles) == pytest.approx(hexagon)
        used = {p.id for t in triangles for p in t}
        assert used == set(range(len(coords)))

    def test_result_is_delaunay(self):
        coords = [(0.0, 0.0), (4.0, 0.0), (5.0, 2.0), (4.0, 4.5), (1.0, 5.0), (-1.0, 3.0), (2.0, 2.2), (3.0, 1.0)]
        points, triangles = triangulate(coords)
        positions = {p.id: p.position[:2] for p in points}
        for t in triangles:
            a, b, c = (positions[p.id] for p in t)
            for p in points:
                if p in t:
                    continue
                assert in_circle(a, b, c, positions[p.id]) <= 1e-9

    def test_collinear_points(self):
        _, triangles = triangulate([(float(i), 0.0) for i in range(8)])
        assert triangles == []

    def test_collinear_fan(self):
        _, triangles = triangulate([(float(i), 2.0 * i) for i in range(4)])
        assert triangles == []

    def test_duplicate_point_is_skipped(self):
        coords = regular_polygon(8) + [regular_polygon(8)[3]]
        points, triangles = triangulate(coords)
        assert all(signed_area(t) > 0 for t in triangles)
        assert sum(signed_area(t) for t in triangles) == pytest.approx(0.5 * 8 * math.sin(2 * math.pi / 8))


def directed_edges(triangles):
    edges = set()
    for t in triangles:
        ids = [p.id for p in t]
        for i in range(3):
            edges.add((ids[i], ids[(i + 1) % 3]))
    return edges


def polygon_area(coords):
    n = len(coords)
    return 0.5 * sum(
        coords[i][0] * coords[(i + 1) % n][1] - coords[(i + 1) % n][0] * coords[i][1] for i in range(n)
    )


class TestRingTriangulation:
    """Test triangulation of vertices that arrive in boundary order."""

    @pytest.mark.parametrize("n", [5, 8])
    def test_convex_ring_keeps_ring_edges(self, n):
        _, triangles = triangulate(regular_polygon(n), ordered=True)
        assert len(triangles) == n - 2
        assert all(signed_area(t) > 0 for t in triangles)
        edges = directed_edges(triangles)
        for i in range(n):
            assert (i, (i + 1) % n) in edges

    def test_concave_ring_uses_a_visible_apex(self):
        coords = [(0.0, 0.0), (4.0, 0.0), (4.0, 4.0), (2.0, 1.0), (0.0, 4.0)]
        _, triangles = triangulate(coords, ordered=True)
        assert len(triangles) == 3
        assert all(signed_area(t) > 0 for t in triangles)
        assert sum(signed_area(t) for t in triangles) == pytest.approx(polygon_area(coords))
        edges = directed_edges(triangles)
        for i in range(5):
            assert (i, (i + 1) % 5) in edges

    def test_large_concave_ring_is_not_hull_triangulated(self):
        coords = regular_polygon(7)
        coords[3] = (0.2 * coords[3][0], 0.2 * coords[3][1])
        _, triangles = triangulate(coords, ordered=True)
        assert len(triangles) == 5
        assert sum(signed_area(t) for t in triangles) == pytest.approx(polygon_area(coords))
        edges = directed_edges(triangles)
        for i in range(7):
            assert (i, (i + 1) % 7) in edges

    def test_ring_winding_is_kept(self):
        clockwise = [(0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (1.0, 0.0)]
        _, triangles = triangulate(clockwise, ordered=True)
        assert len(triangles) == 2
        assert all(signed_area(t) < 0 for t in triangles)

    def test_unordered_input_is_sorted(self):
        coords = [(0.0, 0.0), (1.0, 1.0), (1.0, 0.0), (0.0, 1.0)]
        _, triangles = triangulate(coords)
        assert len(triangles) == 2
        assert sum(signed_area(t) for t in triangles) == pytest.approx(1.0)
