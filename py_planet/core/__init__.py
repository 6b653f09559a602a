"""
Core planet generation functionality.
"""

from .structure_database import StructureDatabase
from .base_mesh import BaseMeshConfig, BaseMeshGenerator
from .deformation import DeformationEngine, DeformationStats
from .voronoi_cells import VoronoiCellGenerator
from .continents import ContinentGenerator, ContinentOptions
from .tectonics import TectonicOptions, TectonicStressEngine, classify_boundary_type
from .biomes import BiomeAssigner, BiomeOptions, BiomeType
from .pipeline import GeneratedBody, PlanetGenerator

__all__ = ['StructureDatabase', 'BaseMeshConfig', 'BaseMeshGenerator',
           'DeformationEngine', 'DeformationStats', 'VoronoiCellGenerator',
           'ContinentGenerator', 'ContinentOptions', 'TectonicOptions',
           'TectonicStressEngine', 'classify_boundary_type', 'BiomeAssigner',
           'BiomeOptions', 'BiomeType', 'GeneratedBody', 'PlanetGenerator']
