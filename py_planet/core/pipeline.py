"""
End-to-end planet generation.

The first pass builds and relaxes the base icosphere. The second pass builds
the Voronoi dual, partitions it into continents and runs the tectonic and
terrain stages on top. Every phase is timed and logged, and the store's
phase gate is advanced between the two passes.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from .base_mesh import BaseMeshGenerator
from .biomes import BIOME_NAMES, BiomeAssigner, BiomeType
from .continents import ContinentGenerator
from .deformation import DeformationEngine, DeformationStats
from .structure_database import StructureDatabase
from .structures import Continent, VoronoiCell
from .tectonics import TectonicStressEngine
from .terrain import finalize_vertex_heights, update_cell_heights, update_vertex_heights
from .voronoi_cells import VoronoiCellGenerator
from ..utils.random import AleaPRNG
from ..utils.task_pool import TaskPool, TaskPriority

logger = structlog.get_logger()


@dataclass
class GeneratedBody:
    """Result of a generation run."""

    seed: str
    store: StructureDatabase
    cells: List[VoronoiCell]
    continents: Dict[int, Continent]
    deformation: DeformationStats = field(default_factory=DeformationStats)
    timings: Dict[str, float] = field(default_factory=dict)
    biome_counts: Dict[str, int] = field(default_factory=dict)

    def summary(self) -> Dict[str, Any]:
        heights = [p.height for p in self.store.cell_vertices()]
        return {
            "seed": self.seed,
            "radius": self.store.radius,
            "mesh_state": self.store.mesh_state.name,
            "mesh": self.store.stats(),
            "cells": len(self.cells),
            "continents": len(self.continents),
            "deformation": {
                "attempts": self.deformation.attempts,
                "accepted": self.deformation.accepted,
                "rejected": self.deformation.rejected,
                "aborted": self.deformation.aborted,
            },
            "min_height": min(heights) if heights else 0.0,
            "max_height": max(heights) if heights else 0.0,
            "biomes": self.biome_counts,
            "timings": self.timings,
        }

    def export_cells(self) -> List[Dict[str, Any]]:
        """Per-cell payload for a renderer: triangles, vertex heights and biomes."""
        payload = []
        for cell in self.cells:
            payload.append(
                {
                    "index": cell.index,
                    "continent": cell.continent_id,
                    "site": [float(c) for c in cell.site.position],
                    "height": cell.height,
                    "border": cell.is_border_tile,
                    "triangles": [
                        [[float(c) for c in p.position] for p in triangle.points]
                        for triangle in cell.triangles
                    ],
                    "heights": [
                        [p.height for p in triangle.points] for triangle in cell.triangles
                    ],
                    "biomes": [
                        [
                            BIOME_NAMES[BiomeType(p.biome)] if p.biome is not None else None
                            for p in triangle.points
                        ]
                        for triangle in cell.triangles
                    ],
                }
            )
        return payload

    def export_continents(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": c.id,
                "crust_type": c.crust_type.name.lower(),
                "cells": len(c.cells),
                "average_height": c.average_height,
                "average_moisture": c.average_moisture,
                "velocity": c.velocity,
                "rotation": c.rotation,
                "neighbors": sorted(c.neighbor_continents),
                "neighbor_stress": {str(k): v for k, v in sorted(c.neighbor_stress.items())},
                "stress_accumulation": c.stress_accumulation,
            }
            for c in self.continents.values()
        ]


class PlanetGenerator:
    """Runs both generation passes for one body."""

    def __init__(self, settings):
        """
        Initialize the generator.

        Args:
            settings: GenerationSettings (or anything exposing the same fields
                and converters)
        """
        self.settings = settings
        self.rng = AleaPRNG(settings.seed)
        self.store = StructureDatabase(radius=settings.radius)
        self.timings: Dict[str, float] = {}
        self.deformation_stats = DeformationStats()
        self.voronoi: Optional[VoronoiCellGenerator] = None
        self.cells: List[VoronoiCell] = []
        self.continents: Dict[int, Continent] = {}
        self.biome_counts: Dict[str, int] = {}

    @contextmanager
    def _phase(self, name: str):
        start = time.perf_counter()
        logger.info("Phase started", phase=name)
        yield
        elapsed = time.perf_counter() - start
        self.timings[name] = round(elapsed, 4)
        logger.info("Phase complete", phase=name, seconds=round(elapsed, 4))

    def first_pass(self, pool: TaskPool) -> None:
        """Base mesh and deformation."""
        s = self.settings
        with self._phase("base_mesh"):
            base = BaseMeshGenerator(self.store, s.to_base_mesh_config())
            pool.run(base.build, task_id="base-mesh", priority=TaskPriority.HIGH, owner="pipeline")
        self.store.increment_mesh_state()

        with self._phase("deformation"):
            engine = DeformationEngine(self.store, base.optimal_side_length(), self.rng.fork("deformation"))
            self.deformation_stats = engine.run(s.deformation_cycles, s.deformation_attempts, pool=pool)

        problems = self.store.validate()
        if problems:
            logger.warning("Base mesh has topology problems", problems=problems[:10])

    def second_pass(self, pool: TaskPool) -> None:
        """Dual mesh, continents, stress, heights and biomes."""
        s = self.settings
        self.store.increment_mesh_state()

        with self._phase("voronoi"):
            self.voronoi = voronoi = VoronoiCellGenerator(self.store)
            self.cells = pool.run(voronoi.generate_voronoi_cells, task_id="voronoi", owner="pipeline")

        with self._phase("continents"):
            partitioner = ContinentGenerator(
                self.store, s.to_continent_options(), self.rng.fork("continents")
            )
            partitioner.flood_fill(self.cells)
            partitioner.compute_frames()
            partitioner.mark_boundaries()
            self.continents = partitioner.continents

        with self._phase("vertex_heights"):
            update_vertex_heights(self.store, self.continents)

        with self._phase("tectonics"):
            engine = TectonicStressEngine(self.store, s.to_tectonic_options())
            engine.calculate_boundary_stress(self.continents)
            engine.accumulate_continent_stress(self.continents)
            engine.apply_stress_to_terrain()

        with self._phase("finalize_heights"):
            finalize_vertex_heights(self.store, passes=s.smoothing_passes)
            update_cell_heights(self.cells)

        with self._phase("biomes"):
            assigner = BiomeAssigner(self.store, s.to_biome_options())
            self.biome_counts = assigner.assign_biomes(self.continents, self.rng.fork("biomes"), pool)

    def generate(self, pool: Optional[TaskPool] = None) -> GeneratedBody:
        """
        Run both passes.

        Args:
            pool: Task pool to use; a private one is created when omitted

        Returns:
            The generated body
        """
        logger.info("Generating body", seed=self.settings.seed, radius=self.settings.radius)
        start = time.perf_counter()
        if pool is None:
            with TaskPool(self.settings.workers, name="planet") as own_pool:
                self.first_pass(own_pool)
                self.second_pass(own_pool)
        else:
            self.first_pass(pool)
            self.second_pass(pool)
        self.timings["total"] = round(time.perf_counter() - start, 4)

        body = GeneratedBody(
            seed=str(self.settings.seed),
            store=self.store,
            cells=self.cells,
            continents=self.continents,
            deformation=self.deformation_stats,
            timings=self.timings,
            biome_counts=self.biome_counts,
        )
        logger.info(
            "Body generated",
            cells=len(body.cells),
            continents=len(body.continents),
            seconds=self.timings["total"],
        )
        return body
