"""Tests for continent flood fill, frames and boundary marking."""

import pytest
import numpy as np

from py_planet.core.base_mesh import BaseMeshConfig, BaseMeshGenerator
from py_planet.core.continents import ContinentGenerator, ContinentOptions
from py_planet.core.structure_database import StructureDatabase
from py_planet.core.structures import CrustType
from py_planet.core.voronoi_cells import VoronoiCellGenerator
from py_planet.utils.random import AleaPRNG


def build_cells(radius=10.0, vertices_per_edge=1):
    store = StructureDatabase(radius=radius)
    config = BaseMeshConfig(radius=radius, subdivisions=1, vertices_per_edge=[vertices_per_edge])
    BaseMeshGenerator(store, config).build()
    store.increment_mesh_state()
    store.increment_mesh_state()
    cells = VoronoiCellGenerator(store).generate_voronoi_cells()
    return store, cells


@pytest.fixture
def mesh():
    return build_cells()


@pytest.fixture
def continents(mesh):
    store, cells = mesh
    generator = ContinentGenerator(store, ContinentOptions(num_continents=3), AleaPRNG("continents"))
    return store, cells, generator, generator.generate(cells)


class TestFloodFill:
    """Test the partition of cells into continents."""

    def test_every_cell_claimed_once(self, continents):
        _, cells, _, result = continents
        claimed = [cell.index for continent in result.values() for cell in continent.cells]
        assert sorted(claimed) == sorted(cell.index for cell in cells)
        for continent in result.values():
            for cell in continent.cells:
                assert cell.continent_id == continent.id

    def test_continent_count(self, continents):
        _, _, _, result = continents
        assert sorted(result) == [0, 1, 2]
        assert all(len(c.cells) >= 1 for c in result.values())

    def test_continent_attributes(self, continents):
        _, _, _, result = continents
        for continent in result.values():
            if continent.crust_type == CrustType.OCEANIC:
                assert -5.0 <= continent.average_height <= 0.0
            else:
                assert 1.2 <= continent.average_height <= 7.0
            assert 0.3 <= continent.velocity <= 1.7
            assert 5 <= continent.min_size <= 8
            assert abs(continent.rotation) <= 2 * np.pi

    def test_point_ids_cover_cells(self, continents):
        _, _, _, result = continents
        for continent in result.values():
            expected = {p.id for cell in continent.cells for p in cell.points}
            assert continent.point_ids == expected

    def test_deterministic(self):
        first_store, first_cells = build_cells()
        second_store, second_cells = build_cells()
        first = ContinentGenerator(first_store, ContinentOptions(num_continents=4), AleaPRNG("same")).flood_fill(first_cells)
        second = ContinentGenerator(second_store, ContinentOptions(num_continents=4), AleaPRNG("same")).flood_fill(second_cells)

        assert {k: [c.index for c in v.cells] for k, v in first.items()} == {
            k: [c.index for c in v.cells] for k, v in second.items()
        }

    def test_more_continents_than_cells(self, mesh):
        store, cells = mesh
        result = ContinentGenerator(store, ContinentOptions(num_continents=500)).flood_fill(cells)
        assert len(result) == len(cells)
        assert all(len(c.cells) == 1 for c in result.values())

    def test_no_cells(self, mesh):
        store, _ = mesh
        assert ContinentGenerator(store).flood_fill([]) == {}


class TestFrames:
    """Test continent centres, bases and cell movement."""

    def test_basis_is_orthonormal(self, continents):
        _, _, _, result = continents
        for continent in result.values():
            assert np.linalg.norm(continent.averaged_center) == pytest.approx(1.0)
            assert np.linalg.norm(continent.u_axis) == pytest.approx(1.0)
            assert np.linalg.norm(continent.v_axis) == pytest.approx(1.0)
            assert np.dot(continent.u_axis, continent.v_axis) == pytest.approx(0.0, abs=1e-9)

    def test_movement_without_rotation(self, continents):
        _, _, generator, result = continents
        for continent in result.values():
            continent.rotation = 0.0
        generator.compute_frames()
        for continent in result.values():
            for cell in continent.cells:
                np.testing.assert_allclose(
                    cell.movement_direction, continent.movement_direction * continent.velocity
                )


class TestBoundaries:
    """Test border cell marking."""

    def test_border_cells_exist(self, continents):
        _, cells, _, result = continents
        border = [cell for cell in cells if cell.is_border_tile]
        assert border
        assert sum(len(c.boundary_cells) for c in result.values()) == len(border)

    def test_neighbor_continents_are_symmetric(self, continents):
        _, _, _, result = continents
        for continent in result.values():
            assert continent.id not in continent.neighbor_continents
            for other in continent.neighbor_continents:
                assert continent.id in result[other].neighbor_continents

    def test_edge_boundary_map(self, continents):
        store, cells, _, _ = continents
        edge_map = store.edge_cell_map()
        for cell in cells:
            assert set(cell.edge_boundary_map) == set(cell.outside_edges)
            for key, other in cell.edge_boundary_map.items():
                assert other != cell.continent_id
                assert other in cell.bounding_continents
                assert {c.continent_id for c in edge_map[key]} == {cell.continent_id, other}

    def test_interior_cells_have_no_boundary(self, continents):
        _, cells, _, _ = continents
        for cell in cells:
            if not cell.is_border_tile:
                assert cell.edge_boundary_map == {}
                assert cell.bounding_continents == []

    def test_vertex_continent_ids(self, continents):
        store, _, _, result = continents
        for point in store.cell_vertices():
            assert point.continent_ids
            assert point.continent_ids <= set(result)
            if len(point.continent_ids) > 1:
                assert point.on_continent_border
