"""Geometry analysis: classify a mesh and recommend a UV projection."""

from __future__ import annotations

import logging

import numpy as np

from export_optimizer.errors import MissingAttributeError
from export_optimizer.models import (
    GeometryAnalysis,
    GeometryType,
    Mesh,
    Orientation,
    UVMethod,
)

logger = logging.getLogger(__name__)

COMPLEXITY_VERTEX_CAP = 1000
HOLE_INDEX_THRESHOLD = 1000
THIN_AXIS_FACTOR = 0.1
ELONGATED_AXIS_FACTOR = 2.0
CUBIC_RATIO_RANGE = (0.8, 1.2)

_Y = 1


def _ratio(a: float, b: float) -> float:
    if b == 0:
        return float("inf") if a > 0 else 1.0
    return a / b


def triangle_areas(mesh: Mesh) -> np.ndarray:
    """Area of every triangle, indexed or implicit."""
    tris = mesh.triangles()
    if len(tris) == 0:
        return np.zeros(0)
    points = mesh.positions.astype(np.float64)
    a, b, c = points[tris[:, 0]], points[tris[:, 1]], points[tris[:, 2]]
    return 0.5 * np.linalg.norm(np.cross(b - a, c - a), axis=1)


def surface_area(mesh: Mesh) -> float:
    return float(triangle_areas(mesh).sum())


def classify(size: np.ndarray) -> tuple[GeometryType, Orientation]:
    """Classify a bounding-box size vector; first matching rule wins."""
    if float(size.max()) == 0.0:
        return GeometryType.GENERIC, Orientation.MIXED

    thin = int(np.argmin(size))
    others = [axis for axis in range(3) if axis != thin]
    if all(size[thin] < size[axis] * THIN_AXIS_FACTOR for axis in others):
        kind = GeometryType.FLOOR
        if _Y in others:
            (flat,) = [axis for axis in others if axis != _Y]
            if size[_Y] > size[flat]:
                kind = GeometryType.WALL
        return kind, Orientation.HORIZONTAL

    for axis in range(3):
        rest = [other for other in range(3) if other != axis]
        if all(size[axis] > size[other] * ELONGATED_AXIS_FACTOR for other in rest):
            return GeometryType.WALL, Orientation.VERTICAL

    low, high = CUBIC_RATIO_RANGE
    xy = _ratio(size[0], size[1])
    xz = _ratio(size[0], size[2])
    if low <= xy <= high and low <= xz <= high:
        kind = GeometryType.DOOR if size[1] > size[0] else GeometryType.WINDOW
        return kind, Orientation.VERTICAL

    return GeometryType.GENERIC, Orientation.MIXED


def recommend_method(kind: GeometryType, complexity: float, has_holes: bool) -> UVMethod:
    if kind in (GeometryType.FLOOR, GeometryType.CEILING):
        return UVMethod.PLANAR
    if kind == GeometryType.WALL:
        return UVMethod.BOX if complexity > 0.5 else UVMethod.PLANAR
    if has_holes or complexity > 0.7:
        return UVMethod.BOX
    return UVMethod.AUTO


def analyze_geometry(mesh: Mesh) -> GeometryAnalysis:
    """Analyze a mesh's bounding box and density.

    Args:
        mesh: Mesh with a non-empty position buffer. Its ``element_type``
            hint, when it names a known type, replaces the classified type.

    Returns:
        GeometryAnalysis snapshot

    Raises:
        MissingAttributeError: the mesh has no vertices
    """
    if mesh.vertex_count == 0:
        raise MissingAttributeError("positions", mesh.name or None)

    lo, hi = mesh.bounds()
    size = hi - lo
    kind, orientation = classify(size)

    if mesh.element_type:
        try:
            kind = GeometryType(mesh.element_type.lower())
        except ValueError:
            logger.debug("Ignoring unknown element type %r on %s", mesh.element_type, mesh.name)

    complexity = min(mesh.vertex_count / COMPLEXITY_VERTEX_CAP, 1.0)
    # Coarse proxy for openings; no edge-manifold analysis is done.
    has_holes = mesh.is_indexed and mesh.index_count > HOLE_INDEX_THRESHOLD

    analysis = GeometryAnalysis(
        type=kind,
        dimensions=(float(size[0]), float(size[1]), float(size[2])),
        orientation=orientation,
        complexity=complexity,
        has_holes_heuristic=has_holes,
        surface_area=surface_area(mesh),
        recommended_method=recommend_method(kind, complexity, has_holes),
    )
    logger.debug(
        "Analyzed %s: %s/%s, complexity %.2f -> %s",
        mesh.name, kind.value, orientation.value, complexity, analysis.recommended_method.value,
    )
    return analysis
