"""
Base mesh generation.

Builds a regular icosahedron on a sphere of the configured radius, subdivides
every face once per configured level, and commits the resulting faces to the
topology store.
"""

import math
from dataclasses import dataclass, field
from typing import List

import numpy as np
import structlog

from .geometry import project_to_sphere
from .structures import Point, Triangle
from .subdivider import ConfigurableSubdivider, Face
from .vertex_generators import VertexDistribution, create_vertex_generator

logger = structlog.get_logger()

# Golden ratio
TAU = (1 + math.sqrt(5)) / 2

ICOSAHEDRON_VERTICES = [
    (0, 1, TAU),
    (0, -1, TAU),
    (0, -1, -TAU),
    (0, 1, -TAU),
    (1, TAU, 0),
    (-1, TAU, 0),
    (-1, -TAU, 0),
    (1, -TAU, 0),
    (TAU, 0, 1),
    (TAU, 0, -1),
    (-TAU, 0, -1),
    (-TAU, 0, 1),
]

ICOSAHEDRON_FACES = [
    (0, 5, 4), (0, 11, 5), (0, 4, 8), (0, 8, 1), (0, 1, 11),
    (3, 4, 5), (3, 5, 10), (3, 9, 4), (3, 10, 2), (3, 2, 9),
    (10, 5, 11), (10, 11, 6), (8, 4, 9), (8, 9, 7), (1, 7, 6),
    (1, 6, 11), (1, 8, 7), (2, 10, 6), (2, 7, 9), (2, 6, 7),
]


@dataclass
class BaseMeshConfig:
    """Configuration for the base mesh."""

    radius: float = 100.0
    subdivisions: int = 1
    vertices_per_edge: List[int] = field(default_factory=lambda: [1])
    distribution: VertexDistribution = VertexDistribution.LINEAR
    geometric_exponent: float = 2.0

    def vertices_for_level(self, level: int) -> int:
        """Vertices-per-edge for a level; short lists repeat their last value."""
        if not self.vertices_per_edge:
            return 0
        if level < len(self.vertices_per_edge):
            return self.vertices_per_edge[level]
        return self.vertices_per_edge[-1]


def optimal_area(radius: float, triangle_count: int) -> float:
    """Surface area per triangle for an evenly tiled sphere."""
    return (4.0 * math.pi * radius * radius) / triangle_count


def optimal_side_length(radius: float, triangle_count: int) -> float:
    """Target side length used by the deformation gate."""
    area = optimal_area(radius, triangle_count)
    return math.sqrt((area * 4.0) / math.sqrt(3.0)) / 3.0


class BaseMeshGenerator:
    """Icosphere builder writing into a StructureDatabase."""

    def __init__(self, store, config: BaseMeshConfig):
        self.store = store
        self.config = config
        self.vertices: List[Point] = []
        self.faces: List[Face] = []
        self.triangles: List[Triangle] = []
        generator = create_vertex_generator(config.distribution, config.geometric_exponent)
        self.subdivider = ConfigurableSubdivider(store, generator, radius=config.radius)

    def populate_arrays(self) -> List[Point]:
        """Create the 12 icosahedron vertices on the sphere."""
        self.vertices = [
            self.store.get_or_create_point(
                project_to_sphere(np.array(v, dtype=float), self.config.radius)
            )
            for v in ICOSAHEDRON_VERTICES
        ]
        # The index table is clockwise seen from outside; swap to wind outward.
        self.faces = [
            (self.vertices[a], self.vertices[c], self.vertices[b])
            for a, b, c in ICOSAHEDRON_FACES
        ]
        return self.vertices

    def generate_non_deformed_faces(self) -> List[Face]:
        """Apply every configured subdivision level."""
        if not self.faces:
            self.populate_arrays()
        for level in range(self.config.subdivisions):
            vertices_per_edge = self.config.vertices_for_level(level)
            self.faces = self.subdivider.subdivide(self.faces, vertices_per_edge)
            logger.info(
                "Subdivision level complete",
                level=level,
                vertices_per_edge=vertices_per_edge,
                faces=len(self.faces),
            )
        return self.faces

    def generate_triangle_list(self) -> List[Triangle]:
        """Commit the faces to the store."""
        self.triangles = self.store.add_triangles(self.faces)
        return self.triangles

    def build(self) -> List[Triangle]:
        """Run the whole base mesh construction."""
        logger.info(
            "Generating base mesh",
            radius=self.config.radius,
            subdivisions=self.config.subdivisions,
            vertices_per_edge=self.config.vertices_per_edge,
            distribution=VertexDistribution(self.config.distribution).value,
        )
        self.populate_arrays()
        self.generate_non_deformed_faces()
        triangles = self.generate_triangle_list()
        logger.info(
            "Base mesh generated",
            points=len(self.store.base_points()),
            triangles=len(triangles),
        )
        return triangles

    def optimal_side_length(self) -> float:
        return optimal_side_length(self.config.radius, len(self.store.triangles))
