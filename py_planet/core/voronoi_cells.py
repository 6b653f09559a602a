"""
Voronoi (dual) cell generation.

For every base point the circumcenters of its incident triangles become the
vertices of its cell. The triangles are walked around the site's half-edge
ring, so the vertices arrive in boundary order and two neighbouring cells
always share the edge between the circumcenters of the two triangles on
their common base edge. The vertices are projected onto a plane tangent to
the cell, triangulated there, and the resulting triangles are committed to
the same topology store as the base mesh.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from .errors import DegenerateGeometry, ManifoldViolation
from .geometry import GEOM_EPS, normalize, plane_basis, spherical_circumcenter
from .spherical_delaunay import SphericalDelaunayTriangulation
from .structures import EdgeKey, MeshState, Point, Triangle, VoronoiCell

logger = structlog.get_logger()


class VoronoiCellGenerator:
    """Builds the dual mesh of a StructureDatabase."""

    def __init__(self, store):
        self.store = store
        self.skipped_sites: List[int] = []
        self.rejected_sites: List[int] = []
        self.rejected_triangles = 0

    def ring_triangles(self, site: Point) -> Optional[List[Triangle]]:
        """
        Incident triangles of ``site`` in winding order around it.

        Returns:
            The ordered triangles, or None when they do not form a single fan
        """
        following: Dict[int, Tuple[Point, Triangle]] = {}
        for triangle in self.store.incident_triangles(site):
            pts = triangle.points
            i = next(k for k in range(3) if pts[k].id == site.id)
            before = pts[(i + 1) % 3].id
            if before in following:
                return None
            following[before] = (pts[(i + 2) % 3], triangle)
        if not following:
            return []

        # An open fan starts at the one triangle nothing leads into
        targets = {after.id for after, _ in following.values()}
        starts = [key for key in following if key not in targets]
        key = min(starts) if starts else min(following)

        ring = []
        while key in following:
            after, triangle = following.pop(key)
            ring.append(triangle)
            key = after.id
        if following:
            return None
        return ring

    def circumcenters_for(self, site: Point, triangles: Optional[Sequence[Triangle]] = None) -> List[Point]:
        """Deduplicated Voronoi vertices around ``site``, in the order of ``triangles``."""
        radius = self.store.radius
        if triangles is None:
            triangles = self.store.incident_triangles(site)
        centers: Dict[int, Point] = {}
        for triangle in triangles:
            a, b, c = (p.position for p in triangle.points)
            try:
                position = spherical_circumcenter(a, b, c, radius)
            except DegenerateGeometry:
                logger.debug("Skipping degenerate triangle", triangle=triangle.id)
                continue
            center = self.store.get_or_create_circumcenter(position)
            centers.setdefault(center.id, center)
        return list(centers.values())

    @staticmethod
    def cell_normal(site: Point, centers: List[Point]) -> np.ndarray:
        """Plane normal through the first three centers, facing away from the body."""
        c0, c1, c2 = (p.position for p in centers[:3])
        normal = np.cross(c1 - c0, c2 - c0)
        if np.linalg.norm(normal) < GEOM_EPS:
            return site.direction
        if np.dot(normal, site.position) < 0:
            normal = -normal
        return normalize(normal)

    @staticmethod
    def project(centers: List[Point], normal: np.ndarray) -> np.ndarray:
        """Coordinates of ``centers`` in the plane basis, relative to the first one."""
        u, v = plane_basis(normal)
        origin = centers[0].position
        return np.array([[np.dot(c.position - origin, u), np.dot(c.position - origin, v)] for c in centers])

    def build_cell(self, site: Point) -> Optional[VoronoiCell]:
        """
        Generate, commit and register the cell around one site.

        Returns:
            The cell, or None when the site has fewer than three distinct
            circumcenters or none of its triangles fit the manifold
        """
        ring = self.ring_triangles(site)
        if ring is None:
            logger.debug("Site triangles do not form a single fan", site=site.id)
        centers = self.circumcenters_for(site, ring)
        if len(centers) < 3:
            self.skipped_sites.append(site.id)
            logger.debug("Site has too few circumcenters", site=site.id, centers=len(centers))
            return None

        normal = self.cell_normal(site, centers)
        projected = self.project(centers, normal)
        faces = SphericalDelaunayTriangulation().triangulate(projected, centers, ordered=ring is not None)
        if not faces:
            self.skipped_sites.append(site.id)
            return None

        try:
            triangles = self.store.add_triangles(faces)
        except ManifoldViolation as e:
            logger.warning("Cell overfills an edge, committing its triangles one by one", site=site.id, error=str(e))
            triangles = self._add_fitting(site, faces)
            if not triangles:
                self.rejected_sites.append(site.id)
                return None

        points: Dict[int, Point] = {}
        edges: Dict[EdgeKey, None] = {}
        for triangle in triangles:
            for p in triangle.points:
                points.setdefault(p.id, p)
            for key in triangle.edge_keys:
                edges.setdefault(key, None)

        cell = VoronoiCell(
            index=len(self.store.cells),
            site=site,
            points=list(points.values()),
            triangles=triangles,
            edges=list(edges),
        )
        self.store.add_cell(cell)
        return cell

    def _add_fitting(self, site: Point, faces) -> List[Triangle]:
        triangles = []
        for face in faces:
            try:
                triangles.append(self.store.add_triangle(face))
            except ManifoldViolation as e:
                self.rejected_triangles += 1
                logger.warning(
                    "Skipping cell triangle that would break the manifold",
                    site=site.id,
                    points=[p.id for p in face],
                    error=str(e),
                )
        return triangles

    def generate_voronoi_cells(self) -> List[VoronoiCell]:
        """Build a cell for every base point."""
        self.store.require_state(MeshState.DUAL_MESH)
        sites = self.store.base_points()
        logger.info("Generating Voronoi cells", sites=len(sites))

        cells = []
        for site in sites:
            cell = self.build_cell(site)
            if cell is not None:
                cells.append(cell)

        logger.info(
            "Voronoi cells generated",
            cells=len(cells),
            skipped=len(self.skipped_sites),
            rejected=len(self.rejected_sites),
            rejected_triangles=self.rejected_triangles,
            cell_vertices=len(self.store.cell_vertices()),
        )
        return cells
