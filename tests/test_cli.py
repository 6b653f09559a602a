"""Tests for the command line entry point."""

import json

import pytest

from py_planet.cli import build_parser, main, settings_from_args
from py_planet.core.vertex_generators import VertexDistribution

SMALL_ARGS = [
    "--seed", "cli",
    "--radius", "10",
    "--subdivisions", "1",
    "--vertices-per-edge", "1",
    "--continents", "3",
    "--cycles", "1",
    "--attempts", "5",
    "--workers", "2",
    "--log-format", "console",
]


class TestArguments:
    """Test argument parsing into settings."""

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("PLANET_SEED", "from-env")
        args = build_parser().parse_args(
            ["--radius", "5", "--vertices-per-edge", "3", "1", "--distribution", "geometric"]
        )
        s = settings_from_args(args)
        assert s.seed == "from-env"
        assert s.radius == 5.0
        assert s.vertices_per_edge == [3, 1]
        assert s.distribution == VertexDistribution.GEOMETRIC

    def test_bad_distribution(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--distribution", "cubic"])


class TestMain:
    """Test a full command line run."""

    def test_prints_summary(self, capsys):
        assert main(SMALL_ARGS) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["seed"] == "cli"
        assert summary["mesh_state"] == "DUAL_MESH"
        assert summary["cells"] > 0

    def test_writes_cells(self, tmp_path, capsys):
        output = tmp_path / "cells.json"
        assert main(SMALL_ARGS + ["--cells-output", str(output)]) == 0
        summary = json.loads(capsys.readouterr().out)
        cells = json.loads(output.read_text())
        assert len(cells) == summary["cells"]
        assert {"index", "continent", "triangles", "heights", "biomes"} <= set(cells[0])
