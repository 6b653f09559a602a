"""
Delaunay triangulation of a Voronoi cell's vertices.

The circumcenters around one site are projected onto the cell's tangent plane
and triangulated there. Cells are small convex-ish polygons, so the routine
only needs to handle that case:

- 3 points: one triangle
- up to 6 points: a fan over the polygon
- more: incremental insertion followed by Lawson flips

Unordered input is sorted by angle around its centroid and every returned
triangle is counter-clockwise in the projection plane. Input that is already
in boundary order (a cell ring) keeps its winding; only strictly convex
rings go through the incremental path, anything else becomes a fan so the
triangulation never uses an edge that is not a ring edge or an inner diagonal.
"""

import math
from typing import Dict, List, Sequence, Tuple

import numpy as np
import structlog

from .errors import DegenerateGeometry, ResourceExhausted
from .geometry import in_circle, orient2d
from .structures import Point

logger = structlog.get_logger()

FAN_LIMIT = 6
FLIP_CAP_FACTOR = 3
# Tolerances relative to the squared / fourth power of the point spread
AREA_TOLERANCE = 1e-10
IN_CIRCLE_TOLERANCE = 1e-12

IndexTriangle = Tuple[int, int, int]


class SphericalDelaunayTriangulation:
    """Triangulates projected cell vertices into a fan of counter-clockwise faces."""

    def __init__(self):
        self.points2d: np.ndarray = np.zeros((0, 2))
        self._area_eps = 0.0
        self._circle_eps = 0.0
        self.flip_count = 0

    def triangulate(
        self,
        projected: Sequence[Sequence[float]],
        points: Sequence[Point],
        ordered: bool = False,
    ) -> List[Tuple[Point, Point, Point]]:
        """
        Triangulate ``points`` using their 2D projections.

        Args:
            projected: 2D coordinates, one row per point
            points: The 3D points the coordinates belong to
            ordered: ``points`` already walk the polygon boundary

        Returns:
            Point triples, counter-clockwise in the projection plane (or in
            the boundary's own winding when ``ordered``)
        """
        if len(projected) != len(points):
            raise ValueError(
                f"Got {len(projected)} projections for {len(points)} points"
            )
        if len(points) < 3:
            return []

        self.points2d = np.asarray(projected, dtype=float)
        spread = float(np.ptp(self.points2d, axis=0).max()) or 1.0
        self._area_eps = AREA_TOLERANCE * spread * spread
        self._circle_eps = IN_CIRCLE_TOLERANCE * spread ** 4
        self.flip_count = 0

        try:
            if ordered:
                triangles = self._boundary(list(range(len(points))))
            elif len(points) == 3:
                triangles = [self._counter_clockwise(0, 1, 2)]
            elif len(points) <= FAN_LIMIT:
                triangles = self._fan(self.sort_by_angle())
            else:
                triangles = self._incremental(self.sort_by_angle())
        except DegenerateGeometry as e:
            logger.debug("Cell triangulation skipped", reason=str(e), points=len(points))
            return []

        kept = [t for t in triangles if not self.is_degenerate(t)]
        return [(points[a], points[b], points[c]) for a, b, c in kept]

    def _orient(self, a: int, b: int, c: int) -> float:
        p = self.points2d
        return orient2d(p[a], p[b], p[c])

    def _counter_clockwise(self, a: int, b: int, c: int) -> IndexTriangle:
        return (a, b, c) if self._orient(a, b, c) >= 0 else (a, c, b)

    def is_degenerate(self, triangle: IndexTriangle) -> bool:
        a, b, c = triangle
        if a == b or b == c or a == c:
            return True
        return abs(self._orient(a, b, c)) <= self._area_eps

    def sort_by_angle(self) -> List[int]:
        """Indices ordered by angle around the centroid."""
        centroid = self.points2d.mean(axis=0)
        offsets = self.points2d - centroid
        angles = [math.atan2(y, x) for x, y in offsets]
        return sorted(range(len(angles)), key=lambda i: angles[i])

    def is_convex(self, order: List[int]) -> bool:
        """True when ``order`` turns strictly left at every vertex."""
        n = len(order)
        return all(
            self._orient(order[i], order[(i + 1) % n], order[(i + 2) % n]) > self._area_eps
            for i in range(n)
        )

    def fan_apex(self, order: List[int]) -> int:
        """Position in ``order`` from which every fan triangle turns left, or 0."""
        n = len(order)
        for k in range(n):
            ring = order[k:] + order[:k]
            if all(
                self._orient(ring[0], ring[i], ring[i + 1]) > self._area_eps
                for i in range(1, n - 1)
            ):
                return k
        return 0

    def _boundary(self, order: List[int]) -> List[IndexTriangle]:
        if len(order) == 3:
            return [(order[0], order[1], order[2])]
        if len(order) > FAN_LIMIT and self.is_convex(order):
            return self._incremental(order)
        k = self.fan_apex(order)
        ring = order[k:] + order[:k]
        return [(ring[0], ring[i], ring[i + 1]) for i in range(1, len(ring) - 1)]

    def _fan(self, order: List[int]) -> List[IndexTriangle]:
        first = order[0]
        return [
            self._counter_clockwise(first, order[i], order[i + 1])
            for i in range(1, len(order) - 1)
        ]

    def _incremental(self, order: List[int]) -> List[IndexTriangle]:
        a, b = order[0], order[1]
        seed = None
        for c in order[2:]:
            if abs(self._orient(a, b, c)) > self._area_eps:
                seed = c
                break
        if seed is None:
            raise DegenerateGeometry("All cell vertices are collinear")

        triangles = [self._counter_clockwise(a, b, seed)]
        for index in order[2:]:
            if index != seed:
                self._insert(triangles, index)

        try:
            self._legalize(triangles)
        except ResourceExhausted:
            logger.debug("Lawson flip cap reached", flips=self.flip_count, triangles=len(triangles))
        return triangles

    def _insert(self, triangles: List[IndexTriangle], p: int) -> None:
        eps = self._area_eps
        for i, (a, b, c) in enumerate(triangles):
            sides = (self._orient(a, b, p), self._orient(b, c, p), self._orient(c, a, p))
            if min(sides) < -eps:
                continue
            on_edge = [k for k, s in enumerate(sides) if abs(s) <= eps]
            if len(on_edge) > 1:
                logger.debug("Dropping duplicate cell vertex", index=p)
                return
            if not on_edge:
                triangles[i] = (a, b, p)
                triangles.extend([(b, c, p), (c, a, p)])
                return
            self._split_edge(triangles, i, on_edge[0], p)
            return

        visible = [
            (x, y)
            for x, y in self._hull_edges(triangles)
            if self._orient(x, y, p) < -eps
        ]
        if not visible:
            logger.debug("Cell vertex could not be inserted", index=p)
            return
        triangles.extend((x, p, y) for x, y in visible)

    def _split_edge(self, triangles: List[IndexTriangle], i: int, side: int, p: int) -> None:
        tri = triangles[i]
        x, y, z = tri[side], tri[(side + 1) % 3], tri[(side + 2) % 3]
        triangles[i] = (x, p, z)
        triangles.append((p, y, z))
        for j, other in enumerate(triangles):
            if j == i:
                continue
            for k in range(3):
                if other[k] == y and other[(k + 1) % 3] == x:
                    w = other[(k + 2) % 3]
                    triangles[j] = (y, p, w)
                    triangles.append((p, x, w))
                    return

    @staticmethod
    def _hull_edges(triangles: List[IndexTriangle]) -> List[Tuple[int, int]]:
        directed = set()
        for a, b, c in triangles:
            directed.update(((a, b), (b, c), (c, a)))
        return [(x, y) for x, y in sorted(directed) if (y, x) not in directed]

    def _legalize(self, triangles: List[IndexTriangle]) -> None:
        cap = FLIP_CAP_FACTOR * len(triangles)
        while self._flip_one(triangles):
            self.flip_count += 1
            if self.flip_count >= cap:
                raise ResourceExhausted(f"Lawson flipping stopped after {cap} flips")

    def _flip_one(self, triangles: List[IndexTriangle]) -> bool:
        owner: Dict[Tuple[int, int], int] = {}
        for i, (a, b, c) in enumerate(triangles):
            owner[(a, b)] = owner[(b, c)] = owner[(c, a)] = i

        p = self.points2d
        for (x, y), i in owner.items():
            j = owner.get((y, x))
            if j is None or j < i:
                continue
            tri_i, tri_j = triangles[i], triangles[j]
            z = next(v for v in tri_i if v != x and v != y)
            w = next(v for v in tri_j if v != x and v != y)
            if in_circle(p[x], p[y], p[z], p[w]) <= self._circle_eps:
                continue
            first, second = (x, w, z), (w, y, z)
            if self.is_degenerate(first) or self.is_degenerate(second):
                continue
            if self._orient(*first) < 0 or self._orient(*second) < 0:
                continue
            triangles[i] = first
            triangles[j] = second
            return True
        return False
