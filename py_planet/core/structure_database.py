"""
Half-edge topology store.

The StructureDatabase is the single owner of every point, half-edge, edge,
triangle and Voronoi cell registry. All reads and writes go through one
re-entrant lock, so multi-step edits (flips, batch inserts) can hold it for
their whole unit of work while concurrent callers never see partial state.
"""

import threading
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np
import structlog

from .errors import InvalidTopology, ManifoldViolation, MeshStateError
from .structures import (
    Edge,
    EdgeKey,
    HalfEdge,
    MeshState,
    Point,
    Triangle,
    VoronoiCell,
    quantize,
)

logger = structlog.get_logger()

# An undirected edge may border at most this many triangles
MAX_TRIANGLES_PER_EDGE = 2

EdgeLike = Union[Edge, EdgeKey, HalfEdge]


def _key_of(edge: EdgeLike) -> EdgeKey:
    if isinstance(edge, EdgeKey):
        return edge
    return edge.key


class StructureDatabase:
    """Owning store for the mesh topology and its dual."""

    def __init__(self, radius: float = 1.0):
        """
        Initialize an empty store.

        Args:
            radius: Radius of the body the mesh is built on
        """
        self.radius = radius
        self._lock = threading.RLock()
        self._reset_all()

    def _reset_all(self) -> None:
        self.mesh_state = MeshState.UNGENERATED

        self._points: Dict[int, Point] = {}
        self._ids_by_quantized: Dict[Tuple[int, int, int], int] = {}
        self._quantized_by_id: Dict[int, Tuple[int, int, int]] = {}
        self._base_point_ids: List[int] = []
        self._cell_vertex_ids: Dict[int, None] = {}
        self._selectable: Optional[List[int]] = None

        self._half_edges: Dict[int, HalfEdge] = {}
        self._outgoing: Dict[int, Set[int]] = {}
        self._next_half_edge_id = 0

        self._edges: Dict[EdgeKey, Edge] = {}
        self._next_edge_index = 0

        self._triangles: Dict[int, Triangle] = {}
        self._triangles_by_edge: Dict[EdgeKey, List[int]] = {}
        self._next_triangle_id = 0
        self._dual_triangle_ids: Set[int] = set()

        self._cells: List[VoronoiCell] = []
        self._cells_by_point: Dict[int, List[VoronoiCell]] = {}
        self._cells_by_edge: Dict[EdgeKey, List[VoronoiCell]] = {}

    @property
    def lock(self) -> threading.RLock:
        """The store mutex, for callers that need a multi-call critical section."""
        return self._lock

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    def get_or_create_point(self, position) -> Point:
        """
        Return the point at ``position``, creating it if needed.

        Positions are quantized before lookup, so repeated requests for the
        same (rounded) position always return the same instance. The id is
        the hash of the quantized position; on the rare hash collision the id
        is probed upwards until a free slot is found.
        """
        position = np.asarray(position, dtype=float)
        qkey = quantize(position)
        with self._lock:
            existing_id = self._ids_by_quantized.get(qkey)
            if existing_id is not None:
                return self._points[existing_id]

            point_id = hash(qkey)
            while point_id in self._points:
                point_id += 1
            point = Point(point_id, position.copy())
            self._register_point(point, qkey)
            return point

    def get_or_create_circumcenter(self, position) -> Point:
        """Register a Voronoi vertex and record it as a cell vertex."""
        with self._lock:
            point = self.get_or_create_point(position)
            self._cell_vertex_ids[point.id] = None
            return point

    def _register_point(self, point: Point, qkey=None) -> None:
        if qkey is None:
            qkey = quantize(point.position)
        self._points[point.id] = point
        self._ids_by_quantized[qkey] = point.id
        self._quantized_by_id[point.id] = qkey
        if self.mesh_state < MeshState.DUAL_MESH:
            self._base_point_ids.append(point.id)
            self._selectable = None

    def _ensure_registered(self, point: Point) -> None:
        if point.id not in self._points:
            self._register_point(point)

    def get_point(self, point_id: int) -> Point:
        with self._lock:
            return self._points[point_id]

    @property
    def points(self) -> List[Point]:
        with self._lock:
            return list(self._points.values())

    def base_points(self) -> List[Point]:
        """Points created before the dual mesh phase, in creation order."""
        with self._lock:
            return [self._points[pid] for pid in self._base_point_ids if pid in self._points]

    def cell_vertices(self) -> List[Point]:
        """Voronoi vertices registered through get_or_create_circumcenter."""
        with self._lock:
            return [self._points[pid] for pid in self._cell_vertex_ids if pid in self._points]

    def select_random_point(self, rng) -> Optional[Point]:
        """
        Draw a random base point that is not marked as used.

        Used points are dropped from the draw pool lazily, so the cost stays
        constant per draw on average.

        Args:
            rng: PRNG exposing ``randint(low, high)`` (inclusive)

        Returns:
            A point, or None when every base point has been used
        """
        with self._lock:
            if self._selectable is None:
                self._selectable = [
                    pid for pid in self._base_point_ids if not self._points[pid].used
                ]
            pool = self._selectable
            while pool:
                idx = rng.randint(0, len(pool) - 1)
                point = self._points[pool[idx]]
                if not point.used:
                    return point
                pool[idx] = pool[-1]
                pool.pop()
            return None

    def mark_used(self, points: Iterable[Point]) -> None:
        with self._lock:
            for point in points:
                point.used = True

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def try_get_edge(self, a: Point, b: Point) -> Optional[Edge]:
        """Look up the undirected edge between two points, in either direction."""
        with self._lock:
            return self._edges.get(EdgeKey.of(a.id, b.id))

    def edge(self, key: EdgeKey) -> Optional[Edge]:
        with self._lock:
            return self._edges.get(key)

    @property
    def edges(self) -> List[Edge]:
        with self._lock:
            return list(self._edges.values())

    def get_or_create_edge(self, a: Point, b: Point) -> Edge:
        """
        Return the edge between ``a`` and ``b``, creating a twin pair if needed.

        Both endpoints are registered in the point registry as a side effect.

        Raises:
            InvalidTopology: if both endpoints are the same point
        """
        if a.id == b.id:
            raise InvalidTopology(f"Cannot create an edge from point {a.id} to itself")
        with self._lock:
            return self._get_or_create_edge(a, b)

    def _get_or_create_edge(self, a: Point, b: Point) -> Edge:
        self._ensure_registered(a)
        self._ensure_registered(b)
        key = EdgeKey.of(a.id, b.id)
        existing = self._edges.get(key)
        if existing is not None:
            return existing

        p, q = (a, b) if a.id <= b.id else (b, a)
        forward_id = self._next_half_edge_id
        backward_id = forward_id + 1
        self._next_half_edge_id += 2

        self._half_edges[forward_id] = HalfEdge(forward_id, p.id, q.id, twin=backward_id)
        self._half_edges[backward_id] = HalfEdge(backward_id, q.id, p.id, twin=forward_id)
        self._outgoing.setdefault(p.id, set()).add(forward_id)
        self._outgoing.setdefault(q.id, set()).add(backward_id)

        edge = Edge(self._next_edge_index, p, q, half_edge=forward_id)
        self._next_edge_index += 1
        self._edges[key] = edge
        return edge

    def remove_edge(self, edge: EdgeLike) -> bool:
        """
        Delete an edge and both of its half-edges.

        The key's triangle list is dropped too. Triangles that still name the
        edge are not repaired; callers must re-wire them (update_triangle)
        before querying them again.

        Returns:
            True if an edge was removed
        """
        key = _key_of(edge)
        with self._lock:
            entity = self._edges.pop(key, None)
            if entity is None:
                return False
            forward = self._half_edges.pop(entity.half_edge)
            backward = self._half_edges.pop(forward.twin)
            self._outgoing.get(forward.origin, set()).discard(forward.id)
            self._outgoing.get(backward.origin, set()).discard(backward.id)
            self._triangles_by_edge.pop(key, None)
            return True

    def half_edge(self, half_edge_id: int) -> HalfEdge:
        with self._lock:
            return self._half_edges[half_edge_id]

    def _directed(self, a_id: int, b_id: int) -> Optional[HalfEdge]:
        edge = self._edges.get(EdgeKey.of(a_id, b_id))
        if edge is None:
            return None
        forward = self._half_edges[edge.half_edge]
        return forward if forward.origin == a_id else self._half_edges[forward.twin]

    def incident_half_edges(self, point: Point) -> List[HalfEdge]:
        """All half-edges whose origin is ``point``."""
        with self._lock:
            ids = sorted(self._outgoing.get(point.id, ()))
            return [self._half_edges[i] for i in ids]

    def incident_edges(self, point: Point) -> List[Edge]:
        """Undirected edges touching ``point``."""
        with self._lock:
            return [self._edges[he.key] for he in self.incident_half_edges(point)]

    def neighbors(self, point: Point) -> List[Point]:
        with self._lock:
            return [self._points[he.dest] for he in self.incident_half_edges(point)]

    # ------------------------------------------------------------------
    # Triangles
    # ------------------------------------------------------------------

    @property
    def triangles(self) -> List[Triangle]:
        with self._lock:
            return list(self._triangles.values())

    def triangle(self, triangle_id: int) -> Optional[Triangle]:
        with self._lock:
            return self._triangles.get(triangle_id)

    def triangles_by_edge(self, edge: EdgeLike) -> List[Triangle]:
        """The (at most two) triangles bordering an edge."""
        key = _key_of(edge)
        with self._lock:
            return [self._triangles[t] for t in self._triangles_by_edge.get(key, ())]

    def incident_triangles(self, point: Point) -> List[Triangle]:
        with self._lock:
            found: Dict[int, Triangle] = {}
            for he in self.incident_half_edges(point):
                for tri_id in self._triangles_by_edge.get(he.key, ()):
                    found.setdefault(tri_id, self._triangles[tri_id])
            return list(found.values())

    def _check_triangle_points(self, points: Sequence[Point]) -> Tuple[Point, Point, Point]:
        if len(points) != 3:
            raise InvalidTopology(f"A triangle needs exactly 3 points, got {len(points)}")
        if len({p.id for p in points}) != 3:
            raise InvalidTopology(
                f"Triangle points must be distinct: {[p.id for p in points]}"
            )
        return tuple(points)

    def _check_manifold(self, batch: Iterable[Sequence[Point]]) -> None:
        pending = Counter()
        for pts in batch:
            a, b, c = (p.id for p in pts)
            pending.update((EdgeKey.of(a, b), EdgeKey.of(b, c), EdgeKey.of(c, a)))
        for key, extra in pending.items():
            existing = self._triangles_by_edge.get(key, [])
            if len(existing) + extra > MAX_TRIANGLES_PER_EDGE:
                raise ManifoldViolation(key, existing)

    def _allocate_triangle_id(self) -> int:
        while self._next_triangle_id in self._triangles:
            self._next_triangle_id += 1
        tri_id = self._next_triangle_id
        self._next_triangle_id += 1
        return tri_id

    def _register_triangle(self, triangle: Triangle) -> None:
        pts = triangle.points
        for i in range(3):
            a, b = pts[i], pts[(i + 1) % 3]
            edge = self._get_or_create_edge(a, b)
            self._triangles_by_edge.setdefault(edge.key, []).append(triangle.id)
            self._directed(a.id, b.id).triangle = triangle.id
        self._triangles[triangle.id] = triangle
        if self.mesh_state == MeshState.DUAL_MESH:
            self._dual_triangle_ids.add(triangle.id)

    def _unregister_triangle(self, triangle: Triangle) -> None:
        pts = triangle.points
        for i in range(3):
            a, b = pts[i], pts[(i + 1) % 3]
            key = EdgeKey.of(a.id, b.id)
            listed = self._triangles_by_edge.get(key)
            if listed and triangle.id in listed:
                listed.remove(triangle.id)
                if not listed:
                    del self._triangles_by_edge[key]
            half = self._directed(a.id, b.id)
            if half is not None and half.triangle == triangle.id:
                half.triangle = None
        self._triangles.pop(triangle.id, None)
        self._dual_triangle_ids.discard(triangle.id)

    def add_triangle(self, points: Sequence[Point]) -> Triangle:
        """
        Register a triangle and its three bounding edges.

        Args:
            points: Exactly three distinct points, in winding order

        Returns:
            The new triangle with the next free id

        Raises:
            InvalidTopology: wrong point count or repeated points
            ManifoldViolation: an edge already borders two triangles
        """
        with self._lock:
            pts = self._check_triangle_points(points)
            self._check_manifold([pts])
            triangle = Triangle(self._allocate_triangle_id(), pts)
            self._register_triangle(triangle)
            return triangle

    def add_triangles(self, batch: Sequence[Sequence[Point]]) -> List[Triangle]:
        """
        Register several triangles as one unit.

        The whole batch is validated before anything is committed, so a
        manifold violation leaves the store untouched.
        """
        with self._lock:
            checked = [self._check_triangle_points(pts) for pts in batch]
            self._check_manifold(checked)
            created = []
            for pts in checked:
                triangle = Triangle(self._allocate_triangle_id(), pts)
                self._register_triangle(triangle)
                created.append(triangle)
            return created

    def update_triangle(self, old: Triangle, new: Triangle) -> Triangle:
        """
        Replace ``old`` with ``new`` in every index in one step.

        Raises:
            InvalidTopology: ``old`` is not registered, or ``new`` is malformed
            ManifoldViolation: ``new`` would overfill an edge (``old`` is restored)
        """
        with self._lock:
            if self._triangles.get(old.id) is not old:
                raise InvalidTopology(f"Triangle {old.id} is not registered")
            if new.id != old.id and new.id in self._triangles:
                raise InvalidTopology(f"Triangle id {new.id} is already in use")
            pts = self._check_triangle_points(new.points)
            self._unregister_triangle(old)
            try:
                self._check_manifold([pts])
            except ManifoldViolation:
                self._register_triangle(old)
                raise
            self._register_triangle(new)
            return new

    def try_flip(self, edge: EdgeLike) -> Optional[Tuple[Triangle, Triangle]]:
        """The two triangles sharing ``edge``, or None if the flip is not legal."""
        triangles = self.triangles_by_edge(edge)
        if len(triangles) != 2:
            return None
        return triangles[0], triangles[1]

    def flip_edge(self, edge: EdgeLike) -> Tuple[Triangle, Triangle]:
        """
        Flip the diagonal shared by two triangles.

        The shared edge is removed, the four outer edges are re-wired to the
        rebuilt triangles and the new diagonal is created, all under the store
        lock. Both triangles keep their ids and the winding of the first one.

        Raises:
            InvalidTopology: fewer than two triangles share the edge, or the
                new diagonal already exists
        """
        key = _key_of(edge)
        with self._lock:
            pair = self.try_flip(key)
            if pair is None:
                raise InvalidTopology(f"Edge {key} is not shared by two triangles")
            first, second = pair
            s1, s2, u1 = first.rotated_to(key)
            u2 = second.opposite(key)
            if u1 is u2:
                raise InvalidTopology(f"Triangles around {key} share all three points")
            if self.try_get_edge(u1, u2) is not None:
                raise InvalidTopology(
                    f"Flipping {key} would duplicate edge {EdgeKey.of(u1.id, u2.id)}"
                )

            self._unregister_triangle(first)
            self._unregister_triangle(second)
            self.remove_edge(key)

            rebuilt_first = Triangle(first.id, (s1, u2, u1))
            rebuilt_second = Triangle(second.id, (u2, s2, u1))
            self._register_triangle(rebuilt_first)
            self._register_triangle(rebuilt_second)
            return rebuilt_first, rebuilt_second

    # ------------------------------------------------------------------
    # Voronoi cells
    # ------------------------------------------------------------------

    @property
    def cells(self) -> List[VoronoiCell]:
        with self._lock:
            return list(self._cells)

    def add_cell(self, cell: VoronoiCell) -> None:
        """Register a cell against each of its points and edge keys."""
        with self._lock:
            self._cells.append(cell)
            for point in cell.points:
                self._cells_by_point.setdefault(point.id, []).append(cell)
            for key in cell.edges:
                self._cells_by_edge.setdefault(key, []).append(cell)

    def cells_for_point(self, point: Point) -> List[VoronoiCell]:
        with self._lock:
            return list(self._cells_by_point.get(point.id, ()))

    def cells_for_edge(self, edge: EdgeLike) -> List[VoronoiCell]:
        with self._lock:
            return list(self._cells_by_edge.get(_key_of(edge), ()))

    def edge_cell_map(self) -> Dict[EdgeKey, List[VoronoiCell]]:
        with self._lock:
            return {key: list(cells) for key, cells in self._cells_by_edge.items()}

    def cell_neighbors(
        self, cell: VoronoiCell, include_same_continent: bool = True
    ) -> List[VoronoiCell]:
        """Cells sharing at least one point with ``cell``, ordered by index."""
        with self._lock:
            found: Dict[int, VoronoiCell] = {}
            for point in cell.points:
                for other in self._cells_by_point.get(point.id, ()):
                    if other is cell:
                        continue
                    if not include_same_continent and other.continent_id == cell.continent_id:
                        continue
                    found[other.index] = other
            return [found[i] for i in sorted(found)]

    # ------------------------------------------------------------------
    # Phase gate
    # ------------------------------------------------------------------

    def increment_mesh_state(self) -> MeshState:
        with self._lock:
            if self.mesh_state == MeshState.DUAL_MESH:
                raise MeshStateError("Mesh is already in the final DUAL_MESH state")
            self.mesh_state = MeshState(self.mesh_state + 1)
            logger.info("Mesh state advanced", state=self.mesh_state.name)
            return self.mesh_state

    def require_state(self, state: MeshState) -> None:
        if self.mesh_state != state:
            raise MeshStateError(
                f"Operation requires {state.name}, store is in {self.mesh_state.name}"
            )

    def reset_phase(self, state: MeshState) -> None:
        """
        Roll the store back to the start of a phase.

        UNGENERATED clears everything. BASE_MESH discards the dual mesh: cell
        triangles, Voronoi vertices and their edges, and all cell registries.
        """
        with self._lock:
            if state == MeshState.UNGENERATED:
                self._reset_all()
            elif state == MeshState.BASE_MESH:
                self._discard_dual()
                self.mesh_state = MeshState.BASE_MESH
            else:
                raise MeshStateError(f"Cannot reset to {state.name}")
            logger.info("Mesh phase reset", state=state.name)

    def _discard_dual(self) -> None:
        for tri_id in list(self._dual_triangle_ids):
            self._unregister_triangle(self._triangles[tri_id])
        base_ids = set(self._base_point_ids)
        dual_ids = [pid for pid in self._cell_vertex_ids if pid not in base_ids]
        for pid in dual_ids:
            for he_id in list(self._outgoing.get(pid, ())):
                half = self._half_edges.get(he_id)
                if half is not None:
                    self.remove_edge(half.key)
            self._outgoing.pop(pid, None)
            qkey = self._quantized_by_id.pop(pid)
            del self._ids_by_quantized[qkey]
            del self._points[pid]
        self._cell_vertex_ids.clear()
        self._cells.clear()
        self._cells_by_point.clear()
        self._cells_by_edge.clear()

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def validate(self) -> List[str]:
        """
        Check the store invariants.

        Returns:
            A list of human-readable problems (empty when the store is sound)
        """
        problems: List[str] = []
        with self._lock:
            for key, tri_ids in self._triangles_by_edge.items():
                if len(tri_ids) > MAX_TRIANGLES_PER_EDGE:
                    problems.append(f"edge {key} borders {len(tri_ids)} triangles")
                if key not in self._edges:
                    problems.append(f"triangle list for missing edge {key}")

            for half in self._half_edges.values():
                twin = self._half_edges.get(half.twin)
                if twin is None:
                    problems.append(f"half-edge {half.id} has no twin")
                elif twin.twin != half.id or twin.origin != half.dest:
                    problems.append(f"half-edge {half.id} twin mismatch")

            for triangle in self._triangles.values():
                for key in triangle.edge_keys:
                    if triangle.id not in self._triangles_by_edge.get(key, ()):
                        problems.append(f"triangle {triangle.id} not indexed under {key}")

        if problems:
            logger.warning("Topology validation failed", problems=len(problems))
        return problems

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "points": len(self._points),
                "base_points": len(self._base_point_ids),
                "cell_vertices": len(self._cell_vertex_ids),
                "half_edges": len(self._half_edges),
                "edges": len(self._edges),
                "triangles": len(self._triangles),
                "dual_triangles": len(self._dual_triangle_ids),
                "cells": len(self._cells),
            }
