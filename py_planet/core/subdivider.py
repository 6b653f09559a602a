"""
Configurable triangle subdivision.

A face is split according to the number of new vertices placed on each of its
edges (N):

- N <= 0: the face is returned unchanged
- N == 1: the classic 4-way midpoint split
- N == 2: a closed-form 9-face layout around the face centroid
- N >= 3: a barycentric lattice of resolution N + 1

Every split produces (N + 1) ** 2 faces, all wound like the input face.
"""

from typing import Dict, List, Sequence, Tuple

import numpy as np
import structlog

from .geometry import project_to_sphere
from .structures import Point
from .vertex_generators import LinearVertexGenerator, VertexGenerator

logger = structlog.get_logger()

Face = Tuple[Point, Point, Point]


class ConfigurableSubdivider:
    """Splits faces into smaller faces whose points live in a shared store."""

    def __init__(self, store, generator: VertexGenerator = None, radius: float = None):
        """
        Args:
            store: StructureDatabase used to create or reuse points
            generator: Edge vertex distribution (linear by default)
            radius: Sphere radius new points are projected onto (None keeps
                them on the flat face)
        """
        self.store = store
        self.generator = generator or LinearVertexGenerator()
        self.radius = radius

    def _place(self, position: np.ndarray) -> Point:
        if self.radius is not None:
            position = project_to_sphere(position, self.radius)
        return self.store.get_or_create_point(position)

    def _edge_points(self, count: int, start: Point, end: Point) -> List[Point]:
        return self.generator.generate_vertices(count, start, end, self.store, self.radius)

    def subdivide_triangle(self, points: Sequence[Point], vertices_per_edge: int) -> List[Face]:
        """
        Split one face.

        Args:
            points: The three corners, in winding order
            vertices_per_edge: Number of new vertices on each edge

        Returns:
            The resulting faces as point triples (not yet committed)
        """
        v0, v1, v2 = points
        n = vertices_per_edge
        if n <= 0:
            return [(v0, v1, v2)]

        e0 = self._edge_points(n, v0, v1)
        e1 = self._edge_points(n, v1, v2)
        e2 = self._edge_points(n, v2, v0)

        if n == 1:
            return [
                (v0, e0[0], e2[0]),
                (e0[0], v1, e1[0]),
                (e1[0], v2, e2[0]),
                (e2[0], e0[0], e1[0]),
            ]
        if n == 2:
            return self._split_around_centroid(v0, v1, v2, e0, e1, e2)
        return self._split_lattice(v0, v1, v2, e0, e1, e2, n + 1)

    def _split_around_centroid(self, v0, v1, v2, e0, e1, e2) -> List[Face]:
        centroid = self._place((v0.position + v1.position + v2.position) / 3.0)
        return [
            (v2, e2[0], e1[1]),
            (e1[1], centroid, e1[0]),
            (e1[0], e0[1], v1),
            (e2[0], e2[1], centroid),
            (centroid, e0[0], e0[1]),
            (e2[1], v0, e0[0]),
            (e1[1], e2[0], centroid),
            (e1[0], centroid, e0[1]),
            (centroid, e2[1], e0[0]),
        ]

    def _split_lattice(self, v0, v1, v2, e0, e1, e2, resolution: int) -> List[Face]:
        r = resolution
        grid: Dict[Tuple[int, int, int], Point] = {
            (r, 0, 0): v0,
            (0, r, 0): v1,
            (0, 0, r): v2,
        }
        for i in range(1, r):
            grid[(r - i, i, 0)] = e0[i - 1]
            grid[(0, r - i, i)] = e1[i - 1]
            grid[(i, 0, r - i)] = e2[i - 1]

        for i in range(1, r):
            for j in range(1, r - i):
                k = r - i - j
                position = (i * v0.position + j * v1.position + k * v2.position) / r
                grid[(i, j, k)] = self._place(position)

        faces: List[Face] = []
        for i in range(r + 1):
            for j in range(r + 1 - i):
                k = r - i - j
                if k >= 1:
                    faces.append((grid[(i, j, k)], grid[(i + 1, j, k - 1)], grid[(i, j + 1, k - 1)]))
                if j >= 1 and k >= 1:
                    faces.append((grid[(i, j, k)], grid[(i + 1, j - 1, k)], grid[(i + 1, j, k - 1)]))
        return faces

    def subdivide(self, faces: Sequence[Face], vertices_per_edge: int) -> List[Face]:
        """Split every face with the same vertices-per-edge value."""
        result: List[Face] = []
        for face in faces:
            result.extend(self.subdivide_triangle(face, vertices_per_edge))
        logger.debug(
            "Subdivided faces",
            input_faces=len(faces),
            output_faces=len(result),
            vertices_per_edge=vertices_per_edge,
        )
        return result
