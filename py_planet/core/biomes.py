"""
Biome assignment for cell vertices.

Biomes follow a simple Whittaker-style lookup on normalized height,
continent moisture and latitude. Moisture is computed once per continent.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional

import structlog

from .structures import Continent
from ..utils.random import AleaPRNG
from ..utils.task_pool import TaskPool, TaskPriority

logger = structlog.get_logger()

MAX_MOISTURE = 2.7


class BiomeType(IntEnum):
    """Biome types of the planet surface."""

    ICECAP = 0
    MOUNTAIN = 1
    TUNDRA = 2
    TAIGA = 3
    OCEAN = 4
    COASTAL = 5
    DESERT = 6
    GRASSLAND = 7
    FOREST = 8
    RAINFOREST = 9


# Biome names for display
BIOME_NAMES = {
    BiomeType.ICECAP: "Icecap",
    BiomeType.MOUNTAIN: "Mountain",
    BiomeType.TUNDRA: "Tundra",
    BiomeType.TAIGA: "Taiga",
    BiomeType.OCEAN: "Ocean",
    BiomeType.COASTAL: "Coastal",
    BiomeType.DESERT: "Desert",
    BiomeType.GRASSLAND: "Grassland",
    BiomeType.FOREST: "Forest",
    BiomeType.RAINFOREST: "Rainforest",
}


@dataclass
class BiomeOptions:
    """Biome classification thresholds (heights are normalized to 0-1)."""

    icecap_height: float = 0.9
    mountain_height: float = 0.68
    highland_height: float = 0.4
    tundra_latitude: float = 0.8
    taiga_latitude: float = 0.7
    ocean_height: float = 0.05
    coastal_height: float = 0.07
    lowland_height: float = 0.3
    desert_moisture: float = 0.2
    grassland_moisture: float = 0.5
    forest_moisture: float = 0.7
    base_moisture: float = 0.5
    use_latitude: bool = True


def assign_biome(
    height: float,
    moisture: float,
    max_height: float,
    latitude: float = 0.0,
    options: Optional[BiomeOptions] = None,
) -> BiomeType:
    """
    Classify a single location.

    Args:
        height: Raw vertex height
        moisture: Moisture of the owning continent
        max_height: Highest vertex height on the body, used to normalize
        latitude: Signed latitude in [-1, 1]
        options: Thresholds

    Returns:
        The biome for the location
    """
    o = options or BiomeOptions()
    normalized = height / max_height if max_height > 0 else 0.0
    normalized = min(max(normalized, 0.0), 1.0)
    polar = abs(latitude)

    if normalized > o.icecap_height:
        return BiomeType.ICECAP
    if normalized > o.mountain_height:
        return BiomeType.MOUNTAIN
    if normalized > o.highland_height and polar > o.tundra_latitude:
        return BiomeType.TUNDRA
    if normalized > o.highland_height and polar > o.taiga_latitude:
        return BiomeType.TAIGA
    if normalized < o.ocean_height:
        return BiomeType.OCEAN
    if normalized < o.coastal_height:
        return BiomeType.COASTAL
    if normalized < o.lowland_height and moisture < o.desert_moisture:
        return BiomeType.DESERT
    if normalized < o.lowland_height and moisture < o.grassland_moisture:
        return BiomeType.GRASSLAND
    if normalized > o.lowland_height and moisture < o.forest_moisture:
        return BiomeType.FOREST
    return BiomeType.RAINFOREST


def calculate_moisture(continent: Continent, rng: AleaPRNG, base: float = 0.5) -> float:
    """Continent moisture from its latitude, size and a random variation."""
    latitude_factor = min(max(float(continent.averaged_center[1]) / 9.0, 0.0), 1.0)
    size_factor = len(continent.cells) / 100.0
    variation = rng.uniform(-0.2, 0.2)
    return MAX_MOISTURE - (base + latitude_factor + size_factor + variation) / MAX_MOISTURE


class BiomeAssigner:
    """Assigns biomes to every cell vertex, one task per continent."""

    def __init__(self, store, options: Optional[BiomeOptions] = None):
        self.store = store
        self.options = options or BiomeOptions()

    def max_height(self) -> float:
        heights = [p.height for p in self.store.cell_vertices()]
        return max(heights) if heights else 0.0

    def assign_continent(self, continent: Continent, rng: AleaPRNG, max_height: float) -> int:
        """
        Compute the continent's moisture and tag its vertices.

        Vertices shared with another continent take whichever continent
        is processed last.

        Returns:
            Number of vertices tagged
        """
        continent.average_moisture = calculate_moisture(continent, rng, self.options.base_moisture)
        radius = self.store.radius or 1.0
        tagged = 0
        for cell in continent.cells:
            for point in cell.points:
                latitude = float(point.position[1]) / radius if self.options.use_latitude else 0.0
                point.biome = assign_biome(
                    point.height, continent.average_moisture, max_height, latitude, self.options
                )
                tagged += 1
        return tagged

    def assign_biomes(
        self,
        continents: Dict[int, Continent],
        rng: AleaPRNG,
        pool: Optional[TaskPool] = None,
    ) -> Dict[str, int]:
        """
        Assign biomes for all continents.

        Returns:
            Count of cell vertices per biome name
        """
        max_height = self.max_height()
        logger.info("Assigning biomes", continents=len(continents), max_height=round(max_height, 3))

        jobs = [(c, rng.fork("biome", c.id)) for c in continents.values()]
        if pool is None:
            for continent, stream in jobs:
                self.assign_continent(continent, stream, max_height)
        else:
            handles = [
                pool.submit(
                    lambda c=continent, r=stream: self.assign_continent(c, r, max_height),
                    task_id=f"biome-{continent.id}",
                    priority=TaskPriority.LOW,
                    owner="biomes",
                )
                for continent, stream in jobs
            ]
            pool.wait_all(handles)

        counts = {name: 0 for name in BIOME_NAMES.values()}
        for point in self.store.cell_vertices():
            if point.biome is not None:
                counts[BIOME_NAMES[BiomeType(point.biome)]] += 1
        logger.info("Biomes assigned", **{k.lower(): v for k, v in counts.items() if v})
        return counts
