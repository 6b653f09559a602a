"""
py-planet: icosphere planets with a Voronoi dual, continents and tectonic terrain.
"""

__version__ = "0.1.0"
