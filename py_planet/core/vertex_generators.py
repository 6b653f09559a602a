"""Edge vertex distributions used by the subdivider."""

from enum import Enum
from typing import List, Optional

import numpy as np
import structlog

from .geometry import project_to_sphere
from .structures import Point

logger = structlog.get_logger()


class VertexDistribution(str, Enum):
    """How new vertices are spread along a subdivided edge."""

    LINEAR = "linear"
    GEOMETRIC = "geometric"


class VertexGenerator:
    """
    Base class for edge vertex generators.

    Vertices are always laid out from the endpoint with the lower id towards
    the higher one and then reversed if needed, so two faces sharing an edge
    get the very same points regardless of their winding.
    """

    def parameterization(self, index: int, count: int) -> float:
        raise NotImplementedError

    def generate_vertices(
        self,
        count: int,
        start: Point,
        end: Point,
        store,
        radius: Optional[float] = None,
    ) -> List[Point]:
        """
        Create ``count`` interior vertices between ``start`` and ``end``.

        Args:
            count: Number of vertices strictly between the endpoints
            start: First endpoint
            end: Second endpoint
            store: StructureDatabase that owns the points
            radius: If given, vertices are projected onto the sphere

        Returns:
            Points ordered from ``start`` to ``end``
        """
        if count <= 0:
            return []

        reverse = start.id > end.id
        a, b = (end, start) if reverse else (start, end)
        vertices = []
        for i in range(count):
            t = self.parameterization(i, count)
            position = a.position + (b.position - a.position) * t
            if radius is not None:
                position = project_to_sphere(position, radius)
            vertices.append(store.get_or_create_point(position))

        if reverse:
            vertices.reverse()
        return vertices


class LinearVertexGenerator(VertexGenerator):
    """Evenly spaced vertices: t = (i + 1) / (count + 1)."""

    def parameterization(self, index: int, count: int) -> float:
        return (index + 1) / (count + 1)


class GeometricVertexGenerator(VertexGenerator):
    """Vertices on a power curve: t = ((i + 1) / (count + 1)) ** (1 / exponent)."""

    def __init__(self, exponent: float = 2.0):
        if exponent <= 0:
            raise ValueError(f"Geometric exponent must be positive, got {exponent}")
        self.exponent = exponent

    def parameterization(self, index: int, count: int) -> float:
        return float(np.power((index + 1) / (count + 1), 1.0 / self.exponent))


def create_vertex_generator(
    distribution: VertexDistribution, exponent: float = 2.0
) -> VertexGenerator:
    """Build the generator for a distribution name."""
    distribution = VertexDistribution(distribution)
    if distribution == VertexDistribution.GEOMETRIC:
        return GeometricVertexGenerator(exponent)
    return LinearVertexGenerator()
