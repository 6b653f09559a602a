"""Shared utilities: PRNG, task pool, logging setup."""
