"""Tests for vertex heights and biome assignment."""

import pytest
import numpy as np

from py_planet.core.base_mesh import BaseMeshConfig, BaseMeshGenerator
from py_planet.core.biomes import (
    BIOME_NAMES,
    BiomeAssigner,
    BiomeOptions,
    BiomeType,
    assign_biome,
    calculate_moisture,
)
from py_planet.core.continents import ContinentGenerator, ContinentOptions
from py_planet.core.structure_database import StructureDatabase
from py_planet.core.structures import Continent, CrustType, Point, VoronoiCell
from py_planet.core.terrain import (
    finalize_vertex_heights,
    update_cell_heights,
    update_vertex_heights,
)
from py_planet.core.voronoi_cells import VoronoiCellGenerator
from py_planet.utils.random import AleaPRNG
from py_planet.utils.task_pool import TaskPool


def make_continent(continent_id, height=0.0):
    return Continent(
        id=continent_id,
        start_cell=0,
        crust_type=CrustType.CONTINENTAL,
        average_height=height,
        average_moisture=1.0,
        rotation=0.0,
        velocity=1.0,
        movement_direction=np.zeros(2),
        min_size=1,
    )


@pytest.fixture
def triangle_store():
    store = StructureDatabase(radius=10.0)
    a = store.get_or_create_circumcenter([10.0, 0.0, 0.0])
    b = store.get_or_create_circumcenter([0.0, 10.0, 0.0])
    c = store.get_or_create_circumcenter([0.0, 0.0, 10.0])
    store.add_triangle((a, b, c))
    return store, (a, b, c)


@pytest.fixture
def planet():
    store = StructureDatabase(radius=10.0)
    BaseMeshGenerator(store, BaseMeshConfig(radius=10.0, subdivisions=1, vertices_per_edge=[1])).build()
    store.increment_mesh_state()
    store.increment_mesh_state()
    cells = VoronoiCellGenerator(store).generate_voronoi_cells()
    continents = ContinentGenerator(store, ContinentOptions(num_continents=3), AleaPRNG("biomes")).generate(cells)
    update_vertex_heights(store, continents)
    return store, cells, continents


class TestVertexHeights:
    """Test seeding and smoothing of vertex heights."""

    def test_mean_of_touching_continents(self, triangle_store):
        store, (a, b, c) = triangle_store
        continents = {0: make_continent(0, 2.0), 1: make_continent(1, 4.0)}
        a.continent_ids = {0, 1}
        b.continent_ids = {1}

        assert update_vertex_heights(store, continents) == 2

        assert a.height == pytest.approx(3.0)
        assert b.height == pytest.approx(4.0)
        assert c.height == 0.0

    def test_smoothing_pass(self, triangle_store):
        store, (a, b, c) = triangle_store
        a.height = 3.0

        finalize_vertex_heights(store, passes=1)

        for point in (a, b, c):
            assert point.height == pytest.approx(1.0)

    def test_smoothing_is_order_independent(self):
        store = StructureDatabase(radius=10.0)
        points = [store.get_or_create_circumcenter([float(i), 0.0, 10.0]) for i in range(4)]
        for left, right in zip(points, points[1:]):
            store.get_or_create_edge(left, right)
        points[0].height = 4.0

        finalize_vertex_heights(store, passes=1)

        assert [p.height for p in points] == pytest.approx([2.0, 4.0 / 3.0, 0.0, 0.0])

    def test_zero_passes(self, triangle_store):
        store, (a, b, c) = triangle_store
        a.height = 3.0
        finalize_vertex_heights(store, passes=0)
        assert a.height == 3.0

    def test_cell_height_is_vertex_mean(self):
        points = [Point(i, np.zeros(3), height=h) for i, h in enumerate([1.0, 2.0, 6.0])]
        cell = VoronoiCell(index=0, site=points[0], points=points, triangles=[], edges=[])
        update_cell_heights([cell])
        assert cell.height == pytest.approx(3.0)


class TestAssignBiome:
    """Test the biome lookup."""

    @pytest.mark.parametrize(
        "height, moisture, latitude, expected",
        [
            (9.5, 1.0, 0.0, BiomeType.ICECAP),
            (7.5, 1.0, 0.0, BiomeType.MOUNTAIN),
            (5.0, 1.0, 0.9, BiomeType.TUNDRA),
            (5.0, 1.0, -0.9, BiomeType.TUNDRA),
            (5.0, 1.0, 0.75, BiomeType.TAIGA),
            (0.2, 1.0, 0.0, BiomeType.OCEAN),
            (-3.0, 1.0, 0.0, BiomeType.OCEAN),
            (0.6, 1.0, 0.0, BiomeType.COASTAL),
            (2.0, 0.1, 0.0, BiomeType.DESERT),
            (2.0, 0.3, 0.0, BiomeType.GRASSLAND),
            (5.0, 0.6, 0.0, BiomeType.FOREST),
            (5.0, 1.0, 0.0, BiomeType.RAINFOREST),
        ],
    )
    def test_lookup(self, height, moisture, latitude, expected):
        assert assign_biome(height, moisture, 10.0, latitude) == expected

    def test_non_positive_max_height(self):
        assert assign_biome(5.0, 1.0, 0.0) == BiomeType.OCEAN
        assert assign_biome(5.0, 1.0, -2.0) == BiomeType.OCEAN

    def test_custom_thresholds(self):
        options = BiomeOptions(icecap_height=0.4)
        assert assign_biome(5.0, 1.0, 10.0, options=options) == BiomeType.ICECAP

    def test_names_cover_every_type(self):
        assert set(BIOME_NAMES) == set(BiomeType)


class TestMoisture:
    """Test continent moisture."""

    def test_bounds(self):
        continent = make_continent(0)
        continent.averaged_center = np.array([0.0, 0.0, 1.0])
        rng = AleaPRNG("moisture")
        for _ in range(50):
            value = calculate_moisture(continent, rng)
            assert 2.7 - 0.7 / 2.7 <= value <= 2.7 - 0.3 / 2.7

    def test_larger_continents_are_drier(self):
        small = make_continent(0)
        large = make_continent(1)
        large.cells = [None] * 100
        assert calculate_moisture(large, AleaPRNG("m")) < calculate_moisture(small, AleaPRNG("m"))


class TestBiomeAssigner:
    """Test biome assignment over a generated planet."""

    def test_every_vertex_tagged(self, planet):
        store, _, continents = planet
        counts = BiomeAssigner(store).assign_biomes(continents, AleaPRNG("assign"))

        assert sum(counts.values()) == len(store.cell_vertices())
        assert set(counts) == set(BIOME_NAMES.values())
        assert all(p.biome is not None for p in store.cell_vertices())

    def test_with_task_pool(self, planet):
        store, _, continents = planet
        with TaskPool(max_workers=2) as pool:
            counts = BiomeAssigner(store).assign_biomes(continents, AleaPRNG("assign"), pool=pool)
        assert sum(counts.values()) == len(store.cell_vertices())

    def test_moisture_is_set(self, planet):
        store, _, continents = planet
        BiomeAssigner(store).assign_biomes(continents, AleaPRNG("assign"))
        for continent in continents.values():
            assert 2.0 < continent.average_moisture < 2.7

    def test_max_height(self, planet):
        store, _, _ = planet
        expected = max(p.height for p in store.cell_vertices())
        assert BiomeAssigner(store).max_height() == expected
