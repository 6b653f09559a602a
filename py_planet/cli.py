"""Command line entry point for planet generation."""

import argparse
import json
import sys
from typing import List, Optional

import structlog

from .config import GenerationSettings
from .core.errors import MeshError
from .core.pipeline import PlanetGenerator
from .utils.logging_setup import configure_logging

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a tectonic planet mesh")
    parser.add_argument("--seed", help="Generation seed (overrides PLANET_SEED)")
    parser.add_argument("--radius", type=float, help="Body radius")
    parser.add_argument("--subdivisions", type=int, help="Number of subdivision levels")
    parser.add_argument(
        "--vertices-per-edge",
        type=int,
        nargs="+",
        help="Vertices inserted per edge, one value per subdivision level",
    )
    parser.add_argument("--distribution", choices=["linear", "geometric"], help="Edge vertex distribution")
    parser.add_argument("--continents", type=int, help="Number of continents")
    parser.add_argument("--cycles", type=int, help="Deformation cycles")
    parser.add_argument("--attempts", type=int, help="Flip attempts per deformation cycle")
    parser.add_argument("--workers", type=int, help="Task pool worker threads")
    parser.add_argument("--cells-output", help="Write the per-cell export as JSON to this file")
    parser.add_argument("--log-level", help="Log level")
    parser.add_argument("--log-format", choices=["json", "console"], help="Log output format")
    return parser


def settings_from_args(args: argparse.Namespace) -> GenerationSettings:
    """Environment settings with command line overrides applied."""
    overrides = {
        "seed": args.seed,
        "radius": args.radius,
        "subdivisions": args.subdivisions,
        "vertices_per_edge": args.vertices_per_edge,
        "distribution": args.distribution,
        "num_continents": args.continents,
        "deformation_cycles": args.cycles,
        "deformation_attempts": args.attempts,
        "workers": args.workers,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    return GenerationSettings(**{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)
    configure_logging(settings.log_level, settings.log_format)

    try:
        body = PlanetGenerator(settings).generate()
    except MeshError as e:
        logger.error("Generation failed", error=str(e))
        return 1

    if args.cells_output:
        with open(args.cells_output, "w") as f:
            json.dump(body.export_cells(), f)
        logger.info("Cells written", path=args.cells_output, cells=len(body.cells))

    json.dump(body.summary(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
