"""HTTP API for planet generation."""
