"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from py_planet.config import GenerationSettings
from py_planet.core.vertex_generators import VertexDistribution


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run every test away from any local .env file."""
    monkeypatch.chdir(tmp_path)


class TestGenerationSettings:
    """Test settings defaults, overrides and converters."""

    def test_defaults(self):
        s = GenerationSettings()
        assert s.seed == "planet"
        assert s.radius == 100.0
        assert s.vertices_per_edge == [2]
        assert s.distribution == VertexDistribution.LINEAR
        assert s.smoothing_passes == 5

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PLANET_SEED", "from-env")
        monkeypatch.setenv("PLANET_RADIUS", "42.5")
        monkeypatch.setenv("PLANET_VERTICES_PER_EDGE", "[3, 1]")
        monkeypatch.setenv("PLANET_DISTRIBUTION", "geometric")

        s = GenerationSettings()

        assert s.seed == "from-env"
        assert s.radius == 42.5
        assert s.vertices_per_edge == [3, 1]
        assert s.distribution == VertexDistribution.GEOMETRIC

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("PLANET_NUM_CONTINENTS=9\n")
        assert GenerationSettings().num_continents == 9

    def test_keyword_arguments_win(self, monkeypatch):
        monkeypatch.setenv("PLANET_SEED", "from-env")
        assert GenerationSettings(seed="explicit").seed == "explicit"

    @pytest.mark.parametrize("field, value", [("radius", 0), ("workers", 0), ("propagation_falloff", -1.0)])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            GenerationSettings(**{field: value})

    def test_invalid_environment_value(self, monkeypatch):
        monkeypatch.setenv("PLANET_RADIUS", "-5")
        with pytest.raises(ValidationError):
            GenerationSettings()

    def test_converters(self):
        s = GenerationSettings(
            radius=7.0,
            subdivisions=2,
            vertices_per_edge=[2, 1],
            num_continents=4,
            stress_scale=2.5,
            use_latitude=False,
        )

        mesh = s.to_base_mesh_config()
        assert mesh.radius == 7.0
        assert mesh.subdivisions == 2
        assert mesh.vertices_per_edge == [2, 1]
        assert s.to_continent_options().num_continents == 4
        assert s.to_tectonic_options().stress_scale == 2.5
        assert s.to_biome_options().use_latitude is False
