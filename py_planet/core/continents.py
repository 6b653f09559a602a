"""
Continent partitioning of the Voronoi cells.

Continents are grown with a two-phase flood fill over the cell adjacency graph
(cells are neighbours when they share a point):

1. Seed phase: each seed claims one random unclaimed neighbour at a time
   until it reaches its randomized minimum size.
2. Saturation phase: random claimed cells with unclaimed neighbours are
   popped and claim all of those neighbours, until every cell is taken.

Afterwards each continent gets a centre, a tangent basis and per-cell movement
vectors, and the cells along continent borders are marked.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

import numpy as np
import structlog

from .geometry import GEOM_EPS, normalize, plane_basis
from .structures import Continent, CrustType, VoronoiCell
from ..utils.random import AleaPRNG

logger = structlog.get_logger()

# Extra attempts at drawing non-degenerate chords for a continent basis
BASIS_ATTEMPTS = 8


@dataclass
class ContinentOptions:
    """Parameters of the continent flood fill."""

    num_continents: int = 5
    # randint(0, 100) above this makes an oceanic plate (about 2:1 odds)
    oceanic_threshold: int = 33
    oceanic_height: Tuple[float, float] = (-5.0, 0.0)
    continental_height: Tuple[float, float] = (1.2, 7.0)
    rotation_degrees: Tuple[int, int] = (-360, 360)
    velocity: Tuple[float, float] = (0.3, 1.7)
    moisture: Tuple[float, float] = (1.0, 5.0)
    min_size: Tuple[int, int] = (5, 8)


class ContinentGenerator:
    """Flood-fills Voronoi cells into continents."""

    def __init__(self, store, options: Optional[ContinentOptions] = None, rng: Optional[AleaPRNG] = None):
        self.store = store
        self.options = options or ContinentOptions()
        self.rng = rng or AleaPRNG("continents")
        self.continents: Dict[int, Continent] = {}
        self._owner: Dict[int, int] = {}
        self.cells: List[VoronoiCell] = []

    def _new_continent(self, continent_id: int, cell: VoronoiCell) -> Continent:
        o = self.options
        rng = self.rng
        if rng.randint(0, 100) > o.oceanic_threshold:
            crust = CrustType.OCEANIC
            height = rng.uniform(*o.oceanic_height)
        else:
            crust = CrustType.CONTINENTAL
            height = rng.uniform(*o.continental_height)

        continent = Continent(
            id=continent_id,
            start_cell=cell.index,
            crust_type=crust,
            average_height=height,
            average_moisture=rng.uniform(*o.moisture),
            rotation=rng.radians(*o.rotation_degrees),
            velocity=rng.uniform(*o.velocity),
            movement_direction=np.array([rng.uniform(-1.0, 1.0), rng.uniform(-1.0, 1.0)]),
            min_size=rng.randint(*o.min_size),
        )
        self.continents[continent_id] = continent
        self._claim(continent, cell)
        return continent

    def _claim(self, continent: Continent, cell: VoronoiCell) -> None:
        continent.add_cell(cell)
        self._owner[cell.index] = continent.id

    def _unclaimed_neighbors(self, cell: VoronoiCell) -> List[VoronoiCell]:
        return [n for n in self.store.cell_neighbors(cell) if n.index not in self._owner]

    def flood_fill(self, cells: List[VoronoiCell]) -> Dict[int, Continent]:
        """
        Partition ``cells`` into continents.

        Every cell ends up in exactly one continent. Cells unreachable from
        any seed (disconnected pieces of the dual graph) seed extra
        continents of their own.
        """
        self.continents = {}
        self._owner = {}
        self.cells = list(cells)
        if not cells:
            return self.continents

        count = max(1, min(self.options.num_continents, len(cells)))
        logger.info("Flood filling continents", cells=len(cells), continents=count)
        for continent_id, seed in enumerate(self.rng.sample(cells, count)):
            self._new_continent(continent_id, seed)

        self._grow_seeds()
        self._saturate()

        while True:
            leftover = next((c for c in cells if c.index not in self._owner), None)
            if leftover is None:
                break
            logger.info("Seeding continent for disconnected cells", cell=leftover.index)
            self._new_continent(len(self.continents), leftover)
            self._saturate()

        logger.info(
            "Continents generated",
            continents=len(self.continents),
            sizes=[len(c.cells) for c in self.continents.values()],
        )
        return self.continents

    def _grow_seeds(self) -> None:
        growing = list(self.continents.values())
        while growing:
            still_growing = []
            for continent in growing:
                if len(continent.cells) >= continent.min_size:
                    continue
                frontier: Dict[int, VoronoiCell] = {}
                for cell in continent.cells:
                    for neighbor in self._unclaimed_neighbors(cell):
                        frontier[neighbor.index] = neighbor
                if not frontier:
                    continue
                choice = self.rng.choice([frontier[i] for i in sorted(frontier)])
                self._claim(continent, choice)
                still_growing.append(continent)
            growing = still_growing

    def _saturate(self) -> None:
        poppable = [
            cell
            for continent in self.continents.values()
            for cell in continent.cells
            if self._unclaimed_neighbors(cell)
        ]
        while poppable:
            idx = self.rng.randint(0, len(poppable) - 1)
            cell = poppable[idx]
            poppable[idx] = poppable[-1]
            poppable.pop()
            continent = self.continents[self._owner[cell.index]]
            for neighbor in self._unclaimed_neighbors(cell):
                self._claim(continent, neighbor)
                poppable.append(neighbor)

    def compute_frames(self) -> None:
        """Averaged centre, tangent basis and per-cell movement for every continent."""
        for continent in self.continents.values():
            positions = [
                self.store.get_point(pid).position for pid in sorted(continent.point_ids)
            ]
            continent.averaged_center = normalize(np.mean(positions, axis=0))
            continent.u_axis, continent.v_axis = self._tangent_basis(continent, positions)
            self._assign_cell_movement(continent)

    def _tangent_basis(self, continent: Continent, positions: List[np.ndarray]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Basis from two random chords between member points.

        Falls back to the plane basis of the averaged centre when the chords
        keep coming out degenerate (tiny continents).
        """
        center = continent.averaged_center
        for _ in range(BASIS_ATTEMPTS):
            a, b, c, d = (normalize(self.rng.choice(positions)) for _ in range(4))
            chord_u = a - b
            chord_v = c - d
            normal = np.cross(chord_u, chord_v)
            if np.linalg.norm(chord_u) < GEOM_EPS or np.linalg.norm(normal) < GEOM_EPS:
                continue
            if np.dot(normal, center) < 0:
                normal = -normal
            u = normalize(chord_u)
            return u, normalize(np.cross(normal, u))
        return plane_basis(center)

    def _assign_cell_movement(self, continent: Continent) -> None:
        for cell in continent.cells:
            offset = normalize(cell.center) - continent.averaged_center
            px = float(np.dot(offset, continent.u_axis))
            py = float(np.dot(offset, continent.v_axis))
            spin = np.array([-continent.rotation * py, continent.rotation * px])
            cell.movement_direction = continent.movement_direction * continent.velocity + spin

    def mark_boundaries(self) -> None:
        """Flag border cells, record neighbouring continents and shared edges."""
        for continent in self.continents.values():
            continent.boundary_cells = []
            continent.neighbor_continents = set()

        for cell in self.cells:
            cell.edge_boundary_map = {}
            cell.outside_edges = []
            bounding: Set[int] = set()
            own = self.continents[cell.continent_id]
            for neighbor in self.store.cell_neighbors(cell, include_same_continent=False):
                other = neighbor.continent_id
                if other not in self.continents:
                    continue
                cell.is_border_tile = True
                neighbor.is_border_tile = True
                bounding.add(other)
                own.neighbor_continents.add(other)
                self.continents[other].neighbor_continents.add(cell.continent_id)

                shared_points = cell.point_ids & neighbor.point_ids
                for point in cell.points:
                    if point.id in shared_points:
                        point.on_continent_border = True

                neighbor_edges = set(neighbor.edges)
                for key in cell.edges:
                    if key in neighbor_edges and key not in cell.edge_boundary_map:
                        cell.edge_boundary_map[key] = other
                        cell.outside_edges.append(key)
            if cell.is_border_tile:
                own.boundary_cells.append(cell)
            cell.bounding_continents = sorted(bounding)

        for point in self.store.cell_vertices():
            point.continent_ids = {c.continent_id for c in self.store.cells_for_point(point)}

        logger.info(
            "Continent boundaries marked",
            border_cells=sum(len(c.boundary_cells) for c in self.continents.values()),
        )

    def generate(self, cells: List[VoronoiCell]) -> Dict[int, Continent]:
        """Flood fill, frames and boundary marking in one call."""
        self.flood_fill(cells)
        self.compute_frames()
        self.mark_boundaries()
        return self.continents
