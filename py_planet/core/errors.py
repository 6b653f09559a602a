"""Error taxonomy for the mesh topology kernel."""


class MeshError(Exception):
    """Base class for all mesh generation errors."""


class InvalidTopology(MeshError):
    """A topological operation was requested on an invalid configuration.

    Raised for triangles built from the wrong number of points (or repeated
    points) and for flips on edges that are not shared by two triangles.
    Callers skip the operation and continue.
    """


class DegenerateGeometry(MeshError):
    """Zero-area or collinear input that cannot produce a usable primitive."""


class ResourceExhausted(MeshError):
    """An iteration cap was reached.

    This is a normal termination condition for bounded refinement loops
    (Lawson flipping, stress propagation, deformation point draws).
    """


class ManifoldViolation(MeshError):
    """A third triangle was registered against an edge key."""

    def __init__(self, key, existing):
        super().__init__(
            f"Edge {key} already borders {len(existing)} triangles {sorted(existing)}"
        )
        self.key = key
        self.existing = list(existing)


class MeshStateError(MeshError):
    """A generation phase was run out of order."""
