"""Core data structures for the planet mesh.

Points, half-edges, undirected edges and triangles form the base topology;
Voronoi cells and continents are layered on top once the dual mesh exists.
Topological references between half-edges are stored as integer ids so the
arena never holds reference cycles.
"""

import numpy as np
from typing import Dict, List, NamedTuple, Optional, Sequence, Set, Tuple
from dataclasses import dataclass, field
from enum import IntEnum

from .geometry import GEOM_EPS, triangle_area

# Positions are rounded to this many decimals before hashing into a point id
QUANTIZE_DECIMALS = 4


class MeshState(IntEnum):
    """Generation phase gate."""

    UNGENERATED = 0
    BASE_MESH = 1
    DUAL_MESH = 2


class EdgeType(IntEnum):
    """Plate boundary classification of an edge."""

    INACTIVE = 0
    TRANSFORM = 1
    DIVERGENT = 2
    CONVERGENT = 3


class CrustType(IntEnum):
    """Crust type of a continent."""

    OCEANIC = 0
    CONTINENTAL = 1


def quantize(position) -> Tuple[int, int, int]:
    """Round a position to the registry precision as an integer triple."""
    scale = 10 ** QUANTIZE_DECIMALS
    return tuple(int(round(float(c) * scale)) for c in position)


class EdgeKey(NamedTuple):
    """Direction-independent identity of an undirected edge."""

    low: int
    high: int

    @classmethod
    def of(cls, a: int, b: int) -> "EdgeKey":
        return cls(a, b) if a <= b else cls(b, a)


@dataclass(eq=False)
class Point:
    """A registered mesh point.

    Points are unique per quantized position inside a store, so identity
    comparison is point equality.
    """

    id: int
    position: np.ndarray
    height: float = 0.0
    biome: Optional[int] = None
    continent_ids: Set[int] = field(default_factory=set)
    used: bool = False
    on_continent_border: bool = False

    @property
    def direction(self) -> np.ndarray:
        """Unit vector from the sphere center through this point."""
        length = np.linalg.norm(self.position)
        if length < GEOM_EPS:
            return np.zeros(3)
        return self.position / length

    def __repr__(self) -> str:
        x, y, z = self.position
        return f"Point({self.id}, [{x:.3f}, {y:.3f}, {z:.3f}])"


@dataclass(eq=False)
class HalfEdge:
    """One direction of an undirected edge.

    ``twin`` and ``triangle`` are ids into the owning store's arenas.
    """

    id: int
    origin: int
    dest: int
    twin: int
    triangle: Optional[int] = None

    @property
    def key(self) -> EdgeKey:
        return EdgeKey.of(self.origin, self.dest)


@dataclass
class EdgeStress:
    """Boundary stress acting across an edge."""

    compression: float = 0.0
    shear: float = 0.0
    direction: np.ndarray = field(default_factory=lambda: np.zeros(3))
    classification: EdgeType = EdgeType.INACTIVE

    @property
    def total(self) -> float:
        return abs(self.compression) + abs(self.shear)


@dataclass(eq=False)
class Edge:
    """The undirected edge entity registered under an EdgeKey.

    ``p`` is always the endpoint with the lower id, and ``half_edge`` is the
    canonical half-edge running from ``p`` to ``q``.
    """

    index: int
    p: Point
    q: Point
    half_edge: int
    stress: EdgeStress = field(default_factory=EdgeStress)
    stress_magnitude: float = 0.0

    @property
    def key(self) -> EdgeKey:
        return EdgeKey(self.p.id, self.q.id)

    @property
    def boundary_type(self) -> EdgeType:
        return self.stress.classification

    @property
    def midpoint(self) -> np.ndarray:
        return (self.p.position + self.q.position) / 2.0

    @property
    def length(self) -> float:
        return float(np.linalg.norm(self.p.position - self.q.position))


@dataclass(eq=False)
class Triangle:
    """A face of exactly three distinct points."""

    id: int
    points: Tuple[Point, Point, Point]

    @property
    def point_ids(self) -> Tuple[int, int, int]:
        return tuple(p.id for p in self.points)

    @property
    def edge_keys(self) -> Tuple[EdgeKey, EdgeKey, EdgeKey]:
        a, b, c = self.point_ids
        return (EdgeKey.of(a, b), EdgeKey.of(b, c), EdgeKey.of(c, a))

    @property
    def centroid(self) -> np.ndarray:
        return sum(p.position for p in self.points) / 3.0

    @property
    def area(self) -> float:
        a, b, c = (p.position for p in self.points)
        return triangle_area(a, b, c)

    def opposite(self, key: EdgeKey) -> Point:
        """The point of this triangle that is not on ``key``."""
        for p in self.points:
            if p.id != key.low and p.id != key.high:
                return p
        raise ValueError(f"Triangle {self.id} has no point opposite {key}")

    def rotated_to(self, key: EdgeKey) -> Tuple[Point, Point, Point]:
        """Points in winding order, starting with the directed edge along ``key``."""
        pts = self.points
        for i in range(3):
            a, b = pts[i], pts[(i + 1) % 3]
            if EdgeKey.of(a.id, b.id) == key:
                return (a, b, pts[(i + 2) % 3])
        raise ValueError(f"Edge {key} does not bound triangle {self.id}")


@dataclass(eq=False)
class VoronoiCell:
    """Dual polygon around a base point, stored as a fan of triangles."""

    index: int
    site: Point
    points: List[Point]
    triangles: List[Triangle]
    edges: List[EdgeKey]
    continent_id: int = -1
    is_border_tile: bool = False
    edge_boundary_map: Dict[EdgeKey, int] = field(default_factory=dict)
    bounding_continents: List[int] = field(default_factory=list)
    outside_edges: List[EdgeKey] = field(default_factory=list)
    height: float = 0.0
    movement_direction: np.ndarray = field(default_factory=lambda: np.zeros(2))

    @property
    def center(self) -> np.ndarray:
        return np.mean([p.position for p in self.points], axis=0)

    @property
    def point_ids(self) -> Set[int]:
        return {p.id for p in self.points}


@dataclass(eq=False)
class Continent:
    """A tectonic plate made of Voronoi cells."""

    id: int
    start_cell: int
    crust_type: CrustType
    average_height: float
    average_moisture: float
    rotation: float
    velocity: float
    movement_direction: np.ndarray
    min_size: int
    cells: List[VoronoiCell] = field(default_factory=list)
    point_ids: Set[int] = field(default_factory=set)
    boundary_cells: List[VoronoiCell] = field(default_factory=list)
    neighbor_continents: Set[int] = field(default_factory=set)
    neighbor_stress: Dict[int, float] = field(default_factory=dict)
    stress_accumulation: float = 0.0
    averaged_center: np.ndarray = field(default_factory=lambda: np.zeros(3))
    u_axis: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0]))
    v_axis: np.ndarray = field(default_factory=lambda: np.array([0.0, 1.0, 0.0]))

    def add_cell(self, cell: VoronoiCell) -> None:
        cell.continent_id = self.id
        cell.height = self.average_height
        self.cells.append(cell)
        self.point_ids.update(p.id for p in cell.points)

    def to_world(self, vector2d: Sequence[float]) -> np.ndarray:
        """Lift a 2D vector in this continent's tangent basis into 3D."""
        return self.u_axis * vector2d[0] + self.v_axis * vector2d[1]
