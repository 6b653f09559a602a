"""Vertex height seeding and smoothing on the dual mesh."""

from typing import Dict

import structlog

from .structures import Continent

logger = structlog.get_logger()

DEFAULT_SMOOTHING_PASSES = 5


def update_vertex_heights(store, continents: Dict[int, Continent]) -> int:
    """
    Seed every cell vertex with the mean height of the continents it touches.

    Returns:
        Number of vertices that received a height
    """
    updated = 0
    for point in store.cell_vertices():
        owners = [continents[cid] for cid in sorted(point.continent_ids) if cid in continents]
        if not owners:
            continue
        point.height = sum(c.average_height for c in owners) / len(owners)
        updated += 1
    logger.info("Vertex heights seeded", vertices=updated)
    return updated


def finalize_vertex_heights(store, passes: int = DEFAULT_SMOOTHING_PASSES) -> None:
    """
    Smooth cell vertex heights with neighbour averaging.

    Each pass reads a snapshot of the previous heights, so the result does
    not depend on the vertex iteration order.
    """
    vertices = store.cell_vertices()
    neighbors = {p.id: store.neighbors(p) for p in vertices}
    for _ in range(passes):
        snapshot = {p.id: p.height for p in vertices}
        for point in vertices:
            around = [snapshot.get(n.id, n.height) for n in neighbors[point.id]]
            point.height = (snapshot[point.id] + sum(around)) / (len(around) + 1)

    if vertices:
        heights = [p.height for p in vertices]
        logger.info(
            "Vertex heights finalized",
            passes=passes,
            min_height=round(min(heights), 3),
            max_height=round(max(heights), 3),
        )


def update_cell_heights(cells) -> None:
    """Cell height as the mean of its vertex heights."""
    for cell in cells:
        if cell.points:
            cell.height = sum(p.height for p in cell.points) / len(cell.points)
