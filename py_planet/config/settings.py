"""Configuration management."""

import os
from pathlib import Path
from typing import List

from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings

from ..core.base_mesh import BaseMeshConfig
from ..core.biomes import BiomeOptions
from ..core.continents import ContinentOptions
from ..core.tectonics import TectonicOptions
from ..core.vertex_generators import VertexDistribution

# Project-level .env fills in PLANET_* values missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    for key, value in file_env.items():
        if key not in os.environ and value is not None:
            os.environ[key] = value


class GenerationSettings(BaseSettings):
    """Generation settings pulled from PLANET_* environment variables."""

    # Body
    seed: str = Field(default="planet", description="Seed for every random stream")
    radius: float = Field(default=100.0, gt=0, description="Body radius")

    # Base mesh
    subdivisions: int = Field(default=1, ge=0, description="Number of subdivision levels")
    vertices_per_edge: List[int] = Field(
        default_factory=lambda: [2], description="Vertices inserted per edge, one entry per level"
    )
    distribution: VertexDistribution = Field(
        default=VertexDistribution.LINEAR, description="Edge vertex distribution"
    )
    geometric_exponent: float = Field(default=2.0, gt=0, description="Exponent of the geometric distribution")

    # Deformation
    deformation_cycles: int = Field(default=4, ge=0, description="Concurrent deformation cycles")
    deformation_attempts: int = Field(default=20, ge=0, description="Flip attempts per cycle")

    # Continents
    num_continents: int = Field(default=5, ge=1, description="Number of continent seeds")

    # Tectonics
    stress_scale: float = Field(default=4.0, description="Compression scale")
    shear_scale: float = Field(default=1.2, description="Shear scale")
    max_propagation_distance: float = Field(default=20.0, ge=0, description="Stress propagation radius")
    propagation_falloff: float = Field(default=5.0, gt=0, description="Stress decay length")
    inactive_stress_threshold: float = Field(default=0.1, ge=0, description="Stress below this is inactive")
    general_height_scale: float = Field(default=1.0, description="Height change per propagated stress")
    general_shear_scale: float = Field(default=1.2, description="Height change per unit shear")
    general_compression_scale: float = Field(default=1.75, description="Height change per unit compression")
    max_propagation_steps: int = Field(default=5000, ge=1, description="Edges visited per propagation")

    # Terrain
    smoothing_passes: int = Field(default=5, ge=0, description="Neighbour averaging passes")
    use_latitude: bool = Field(default=True, description="Feed vertex latitude into biomes")

    # Runtime
    workers: int = Field(default=4, ge=1, description="Task pool worker threads")

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Logging format (json or console)")

    def to_base_mesh_config(self) -> BaseMeshConfig:
        return BaseMeshConfig(
            radius=self.radius,
            subdivisions=self.subdivisions,
            vertices_per_edge=list(self.vertices_per_edge),
            distribution=self.distribution,
            geometric_exponent=self.geometric_exponent,
        )

    def to_continent_options(self) -> ContinentOptions:
        return ContinentOptions(num_continents=self.num_continents)

    def to_tectonic_options(self) -> TectonicOptions:
        return TectonicOptions(
            stress_scale=self.stress_scale,
            shear_scale=self.shear_scale,
            max_propagation_distance=self.max_propagation_distance,
            propagation_falloff=self.propagation_falloff,
            inactive_stress_threshold=self.inactive_stress_threshold,
            general_height_scale=self.general_height_scale,
            general_shear_scale=self.general_shear_scale,
            general_compression_scale=self.general_compression_scale,
            max_propagation_steps=self.max_propagation_steps,
        )

    def to_biome_options(self) -> BiomeOptions:
        return BiomeOptions(use_latitude=self.use_latitude)

    class Config:
        env_prefix = "PLANET_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = GenerationSettings()
