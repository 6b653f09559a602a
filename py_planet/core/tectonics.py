"""
Tectonic stress simulation on the dual mesh.

Boundary edges (edges shared by cells of two different continents) get a
compression/shear stress from the relative motion of the cells on either
side. Each boundary stress is classified, spread outward over nearby edges
with distance falloff, and finally turned into height changes at the cell
vertices.
"""

import heapq
import itertools
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from .errors import ResourceExhausted
from .geometry import GEOM_EPS, normalize
from .structures import Continent, Edge, EdgeStress, EdgeType, MeshState, VoronoiCell

logger = structlog.get_logger()

# Avoids a zero division when normalizing stress shares
STRESS_EPSILON = 1e-4


@dataclass
class TectonicOptions:
    """Scales and thresholds for the stress engine."""

    stress_scale: float = 1.0
    shear_scale: float = 1.0
    max_propagation_distance: float = 10.0
    propagation_falloff: float = 2.0
    inactive_stress_threshold: float = 0.1
    general_height_scale: float = 1.0
    general_shear_scale: float = 1.0
    general_compression_scale: float = 1.0
    compression_ratio: float = 0.56
    shear_ratio: float = 0.7
    max_propagation_steps: int = 5000

    def __post_init__(self):
        if self.propagation_falloff <= 0:
            raise ValueError("propagation_falloff must be positive")


def classify_boundary_type(
    stress: EdgeStress,
    inactive_threshold: float,
    compression_ratio: float = 0.56,
    shear_ratio: float = 0.7,
) -> EdgeType:
    """
    Classify a boundary stress.

    Compression and shear are compared by their share of the total stress:
    a dominant compression is convergent or divergent depending on its sign,
    a dominant shear is a transform boundary, and a total below the
    threshold is inactive. Mixed cases go to the larger magnitude.
    """
    compression = abs(stress.compression)
    shear = abs(stress.shear)
    total = compression + shear
    if total < inactive_threshold:
        return EdgeType.INACTIVE

    by_sign = EdgeType.CONVERGENT if stress.compression >= 0.0 else EdgeType.DIVERGENT
    if compression / (total + STRESS_EPSILON) > compression_ratio:
        return by_sign
    if shear / (total + STRESS_EPSILON) > shear_ratio:
        return EdgeType.TRANSFORM
    return by_sign if compression > shear else EdgeType.TRANSFORM


class TectonicStressEngine:
    """Computes, propagates and applies boundary stress."""

    def __init__(self, store, options: Optional[TectonicOptions] = None):
        self.store = store
        self.options = options or TectonicOptions()
        self.boundary_edges: List[Tuple[Edge, VoronoiCell, VoronoiCell]] = []

    def find_boundary_edges(self) -> List[Tuple[Edge, VoronoiCell, VoronoiCell]]:
        """Edges whose two cells belong to different continents."""
        found = []
        for key, cells in self.store.edge_cell_map().items():
            if len(cells) < 2:
                continue
            first, second = cells[0], cells[1]
            if first.continent_id == second.continent_id:
                continue
            edge = self.store.edge(key)
            if edge is not None:
                found.append((edge, first, second))
        return found

    def edge_stress(
        self,
        edge: Edge,
        cell: VoronoiCell,
        neighbor: VoronoiCell,
        continents: Dict[int, Continent],
    ) -> EdgeStress:
        """
        Stress across ``edge`` from the relative motion of its two cells.

        The edge normal is oriented from ``cell`` towards ``neighbor``, so a
        positive compression means the plates are closing in.
        """
        own = continents[cell.continent_id]
        other = continents[neighbor.continent_id]
        cell_motion = own.to_world(cell.movement_direction * own.velocity)
        neighbor_motion = other.to_world(neighbor.movement_direction * other.velocity)

        edge_vector = normalize(edge.p.position - edge.q.position)
        edge_normal = normalize(np.cross(edge_vector, normalize(edge.q.position)))
        if np.dot(edge_normal, neighbor.center - cell.center) < 0:
            edge_normal = -edge_normal

        compression = (np.dot(cell_motion, edge_normal) - np.dot(neighbor_motion, edge_normal))
        shear = (np.dot(cell_motion, edge_vector) - np.dot(neighbor_motion, edge_vector))
        stress = EdgeStress(
            compression=float(compression) * self.options.stress_scale,
            shear=float(shear) * self.options.shear_scale,
            direction=edge_normal,
        )
        stress.classification = classify_boundary_type(
            stress,
            self.options.inactive_stress_threshold,
            self.options.compression_ratio,
            self.options.shear_ratio,
        )
        return stress

    def stress_at_distance(self, stress: EdgeStress, distance: float, current: Edge, origin: Edge) -> float:
        """Attenuated magnitude of ``origin``'s stress felt at ``current``."""
        decay = math.exp(-distance / self.options.propagation_falloff)
        total = abs(stress.compression) + abs(stress.shear) * 0.5
        to_edge = current.midpoint - origin.midpoint
        if np.linalg.norm(to_edge) < GEOM_EPS:
            return 0.0
        alignment = abs(float(np.dot(normalize(to_edge), stress.direction)))
        return total * decay * alignment

    def propagate(self, origin: Edge) -> int:
        """
        Spread ``origin``'s stress over the surrounding edges.

        Edges are visited nearest-first by midpoint distance until the
        maximum propagation distance is exceeded.

        Returns:
            Number of edges that received stress

        Raises:
            ResourceExhausted: if the step cap is hit first
        """
        max_distance = self.options.max_propagation_distance
        sequence = itertools.count()
        visited = {origin.key}
        queue: List[Tuple[float, int, Edge]] = []

        def push_around(edge: Edge) -> None:
            for endpoint in (edge.p, edge.q):
                for candidate in self.store.incident_edges(endpoint):
                    if candidate.key in visited:
                        continue
                    d = float(np.linalg.norm(candidate.midpoint - origin.midpoint))
                    heapq.heappush(queue, (d, next(sequence), candidate))

        push_around(origin)
        steps = 0
        while queue:
            distance, _, current = heapq.heappop(queue)
            if current.key in visited:
                continue
            if distance > max_distance:
                break
            visited.add(current.key)
            current.stress_magnitude += self.stress_at_distance(origin.stress, distance, current, origin)
            steps += 1
            if steps >= self.options.max_propagation_steps:
                raise ResourceExhausted(f"Stress propagation stopped after {steps} edges")
            push_around(current)
        return steps

    def calculate_boundary_stress(self, continents: Dict[int, Continent]) -> int:
        """
        Stress, classify and propagate every boundary edge.

        Returns:
            Number of boundary edges processed
        """
        self.store.require_state(MeshState.DUAL_MESH)
        self.boundary_edges = self.find_boundary_edges()
        logger.info("Calculating boundary stress", boundary_edges=len(self.boundary_edges))

        capped = 0
        for edge, cell, neighbor in self.boundary_edges:
            edge.stress = self.edge_stress(edge, cell, neighbor, continents)
            try:
                self.propagate(edge)
            except ResourceExhausted:
                capped += 1

        counts = {t.name.lower(): 0 for t in EdgeType}
        for edge, _, _ in self.boundary_edges:
            counts[edge.boundary_type.name.lower()] += 1
        logger.info("Boundary stress calculated", capped_propagations=capped, **counts)
        return len(self.boundary_edges)

    def accumulate_continent_stress(self, continents: Dict[int, Continent]) -> None:
        """Sum boundary stress per neighbouring continent pair."""
        for continent in continents.values():
            continent.neighbor_stress = {n: 0.0 for n in sorted(continent.neighbor_continents)}
            continent.stress_accumulation = 0.0

        for edge, cell, neighbor in self.boundary_edges:
            total = edge.stress.total
            for own, other in ((cell.continent_id, neighbor.continent_id), (neighbor.continent_id, cell.continent_id)):
                continent = continents[own]
                continent.neighbor_stress[other] = continent.neighbor_stress.get(other, 0.0) + total
                continent.stress_accumulation += total

    def apply_stress_to_terrain(self) -> None:
        """Add each vertex's stress-driven height change."""
        o = self.options
        for point in self.store.cell_vertices():
            altered = 0.0
            for edge in self.store.incident_edges(point):
                kind = edge.boundary_type
                if kind == EdgeType.INACTIVE:
                    altered += edge.stress_magnitude * o.general_height_scale
                elif kind == EdgeType.TRANSFORM:
                    altered += edge.stress.shear * o.general_shear_scale
                elif kind == EdgeType.DIVERGENT:
                    altered -= edge.stress.compression * o.general_compression_scale
                else:
                    altered += edge.stress.compression * o.general_compression_scale
            point.height += altered

    def run(self, continents: Dict[int, Continent]) -> None:
        self.calculate_boundary_stress(continents)
        self.accumulate_continent_stress(continents)
        self.apply_stress_to_terrain()
