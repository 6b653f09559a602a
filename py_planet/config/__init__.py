"""
Configuration for planet generation.
"""

from .settings import GenerationSettings, settings

__all__ = ["GenerationSettings", "settings"]
