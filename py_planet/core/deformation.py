"""
Randomized edge-flip relaxation of the base mesh.

Each cycle performs a fixed number of flip attempts on random points. A flip
is accepted when the new diagonal is about as long as the edge it replaces,
which evens out triangle sizes without a full Delaunay relaxation. Cycles can
run concurrently on the task pool; they coordinate only through the store
lock and the per-point ``used`` flag, so two cycles may still touch
neighbouring regions one after the other.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import structlog

from .errors import InvalidTopology, ResourceExhausted
from .structures import MeshState
from ..utils.random import AleaPRNG
from ..utils.task_pool import TaskPool, TaskPriority

logger = structlog.get_logger()

# Divisor applied to the optimal side length in the flip gate
LENGTH_TOLERANCE_DIVISOR = 0.5


@dataclass
class DeformationStats:
    """Outcome counters for one or more deformation cycles."""

    attempts: int = 0
    accepted: int = 0
    rejected: int = 0
    aborted: int = 0
    exhausted: bool = False

    def merge(self, other: "DeformationStats") -> "DeformationStats":
        return DeformationStats(
            attempts=self.attempts + other.attempts,
            accepted=self.accepted + other.accepted,
            rejected=self.rejected + other.rejected,
            aborted=self.aborted + other.aborted,
            exhausted=self.exhausted or other.exhausted,
        )


class DeformationEngine:
    """Runs flip-relaxation cycles against a StructureDatabase."""

    def __init__(self, store, optimal_side_length: float, rng: AleaPRNG):
        self.store = store
        self.optimal_side_length = optimal_side_length
        self.rng = rng

    @property
    def max_length_difference(self) -> float:
        return self.optimal_side_length / LENGTH_TOLERANCE_DIVISOR

    def attempt_flip(self, rng: AleaPRNG, stats: DeformationStats) -> None:
        """
        One flip attempt on a random unused point.

        Raises:
            ResourceExhausted: when no unused point is left to draw
        """
        with self.store.lock:
            point = self.store.select_random_point(rng)
            if point is None:
                raise ResourceExhausted("Every base point has been used")
            stats.attempts += 1

            half_edges = self.store.incident_half_edges(point)
            if not half_edges:
                stats.aborted += 1
                return
            key = rng.choice(half_edges).key

            pair = self.store.try_flip(key)
            if pair is None:
                stats.aborted += 1
                logger.debug("Flip aborted, edge is not shared by two triangles", edge=key)
                return
            first, second = pair
            s1, s2, u1 = first.rotated_to(key)
            u2 = second.opposite(key)

            shared_length = float(np.linalg.norm(s1.position - s2.position))
            new_length = float(np.linalg.norm(u1.position - u2.position))
            if abs(shared_length - new_length) > self.max_length_difference:
                stats.rejected += 1
                return

            try:
                self.store.flip_edge(key)
            except InvalidTopology as e:
                stats.aborted += 1
                logger.debug("Flip aborted", edge=key, reason=str(e))
                return

            self.store.mark_used((s1, s2, u1, u2))
            stats.accepted += 1

    def deform_cycle(self, cycle: int, attempts: int, rng: Optional[AleaPRNG] = None) -> DeformationStats:
        """Run one cycle of ``attempts`` flip attempts."""
        rng = rng or self.rng.fork("deform", cycle)
        stats = DeformationStats()
        for _ in range(attempts):
            try:
                self.attempt_flip(rng, stats)
            except ResourceExhausted:
                stats.exhausted = True
                logger.info("Deformation cycle ran out of points", cycle=cycle, attempts=stats.attempts)
                break
        logger.debug(
            "Deformation cycle complete",
            cycle=cycle,
            accepted=stats.accepted,
            rejected=stats.rejected,
            aborted=stats.aborted,
        )
        return stats

    def run(self, cycles: int, attempts: int, pool: Optional[TaskPool] = None) -> DeformationStats:
        """
        Run ``cycles`` independent cycles, concurrently when a pool is given.

        Returns:
            Combined statistics of all cycles
        """
        self.store.require_state(MeshState.BASE_MESH)
        logger.info(
            "Deforming mesh",
            cycles=cycles,
            attempts=attempts,
            optimal_side_length=round(self.optimal_side_length, 4),
        )

        if pool is None:
            results: List[DeformationStats] = [
                self.deform_cycle(cycle, attempts) for cycle in range(cycles)
            ]
        else:
            # One PRNG stream per cycle, forked before submission
            handles = [
                pool.submit(
                    lambda c=cycle, r=self.rng.fork("deform", cycle): self.deform_cycle(c, attempts, r),
                    task_id=f"deform-{cycle}",
                    priority=TaskPriority.HIGH,
                    owner="deformation",
                )
                for cycle in range(cycles)
            ]
            results = pool.wait_all(handles)

        total = DeformationStats()
        for stats in results:
            total = total.merge(stats)
        logger.info(
            "Deformation complete",
            attempts=total.attempts,
            accepted=total.accepted,
            rejected=total.rejected,
            aborted=total.aborted,
        )
        return total
