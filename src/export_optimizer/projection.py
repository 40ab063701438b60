"""UV projection.

Four projection families (planar, cylindrical, spherical, box) plus an
``auto`` mode that tries several and keeps the best by a quality score.
Projections only read positions and normals; they return a fresh
``(N, 2)`` float64 array and never touch the mesh.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Optional

import numpy as np

from export_optimizer.analysis import analyze_geometry
from export_optimizer.errors import MissingAttributeError, OptimizerError
from export_optimizer.models import (
    GeometryAnalysis,
    GeometryType,
    Mesh,
    Orientation,
    UVMappingOptions,
    UVMappingResult,
    UVMethod,
    UVQuality,
)
from export_optimizer.optimizer import compute_vertex_normals

logger = logging.getLogger(__name__)

AXES = {"x": 0, "y": 1, "z": 2}
AUTO_CANDIDATES = (UVMethod.PLANAR, UVMethod.BOX, UVMethod.CYLINDRICAL)


def _normalize(values: np.ndarray, lo: float, extent: float) -> np.ndarray:
    # Zero-extent axes collapse to 0 instead of dividing by zero.
    if extent == 0:
        return np.zeros_like(values)
    return (values - lo) / extent


def _points(mesh: Mesh) -> np.ndarray:
    if mesh.vertex_count == 0:
        raise MissingAttributeError("positions", mesh.name or None)
    return mesh.positions.astype(np.float64)


def planar_axes(analysis: GeometryAnalysis, options: UVMappingOptions) -> tuple[int, int]:
    if analysis.type in (GeometryType.FLOOR, GeometryType.CEILING):
        return AXES["x"], AXES["z"]
    if analysis.orientation == Orientation.VERTICAL:
        return AXES["x"], AXES["y"]
    u_axis, v_axis = options.projection_axes
    return AXES[u_axis], AXES[v_axis]


def project_planar(mesh: Mesh, options: UVMappingOptions, analysis: GeometryAnalysis) -> np.ndarray:
    points = _points(mesh)
    u_axis, v_axis = planar_axes(analysis, options)

    u_values, v_values = points[:, u_axis], points[:, v_axis]
    u_min, u_range = float(u_values.min()), float(np.ptp(u_values))
    v_min, v_range = float(v_values.min()), float(np.ptp(v_values))

    u = _normalize(u_values, u_min, u_range)
    v = _normalize(v_values, v_min, v_range)

    if options.preserve_aspect_ratio and u_range > 0 and v_range > 0:
        # Stretch the longer side so texels stay square.
        if u_range >= v_range:
            u = u * (u_range / v_range)
        else:
            v = v * (v_range / u_range)

    return np.column_stack((u, v))


def project_cylindrical(mesh: Mesh, options: UVMappingOptions, analysis: GeometryAnalysis) -> np.ndarray:
    points = _points(mesh)
    lo, hi = mesh.bounds()
    center = (lo + hi) / 2
    size = hi - lo

    axis = AXES["y"] if analysis.orientation == Orientation.HORIZONTAL else AXES["z"]

    dx = points[:, 0] - center[0]
    dz = points[:, 2] - center[2]
    u = np.arctan2(dz, dx) / (2 * math.pi) + 0.5
    v = _normalize(points[:, axis], float(lo[axis]), float(size[axis]))
    return np.column_stack((u, v))


def project_spherical(mesh: Mesh, options: UVMappingOptions, analysis: GeometryAnalysis) -> np.ndarray:
    points = _points(mesh)
    lo, hi = mesh.bounds()
    offsets = points - (lo + hi) / 2

    lengths = np.linalg.norm(offsets, axis=1)
    valid = lengths > 0
    directions = np.zeros_like(offsets)
    directions[valid] = offsets[valid] / lengths[valid, None]

    u = np.arctan2(directions[:, 0], directions[:, 2]) / (2 * math.pi) + 0.5
    v = np.arccos(np.clip(directions[:, 1], -1.0, 1.0)) / math.pi
    # A vertex sitting exactly on the center has no direction.
    u[~valid] = 0.5
    v[~valid] = 0.5
    return np.column_stack((u, v))


def project_box(mesh: Mesh, options: UVMappingOptions, analysis: GeometryAnalysis) -> np.ndarray:
    points = _points(mesh)
    normals = mesh.normals
    if normals is None:
        if mesh.triangle_count == 0:
            raise MissingAttributeError("normals", mesh.name or None)
        normals = compute_vertex_normals(mesh.positions, mesh.triangles())
    normals = normals.astype(np.float64)

    lo, hi = mesh.bounds()
    size = hi - lo
    nx = _normalize(points[:, 0], lo[0], size[0])
    ny = _normalize(points[:, 1], lo[1], size[1])
    nz = _normalize(points[:, 2], lo[2], size[2])

    magnitude = np.abs(normals)
    x_dominant = (magnitude[:, 0] >= magnitude[:, 1]) & (magnitude[:, 0] >= magnitude[:, 2])
    y_dominant = ~x_dominant & (magnitude[:, 1] >= magnitude[:, 2])
    z_dominant = ~x_dominant & ~y_dominant

    u = np.empty(len(points))
    v = np.empty(len(points))

    u[x_dominant] = nz[x_dominant]
    v[x_dominant] = ny[x_dominant]
    u[y_dominant] = nx[y_dominant]
    v[y_dominant] = nz[y_dominant]
    u[z_dominant] = nx[z_dominant]
    v[z_dominant] = ny[z_dominant]

    # Opposing faces flip so they do not mirror each other.
    flip_u = (x_dominant & (normals[:, 0] < 0)) | (z_dominant & (normals[:, 2] < 0))
    flip_v = y_dominant & (normals[:, 1] < 0)
    u[flip_u] = 1 - u[flip_u]
    v[flip_v] = 1 - v[flip_v]

    return np.column_stack((u, v))


PROJECTORS: dict[UVMethod, Callable[[Mesh, UVMappingOptions, GeometryAnalysis], np.ndarray]] = {
    UVMethod.PLANAR: project_planar,
    UVMethod.CYLINDRICAL: project_cylindrical,
    UVMethod.SPHERICAL: project_spherical,
    UVMethod.BOX: project_box,
}


def quality_score(uvs: np.ndarray) -> float:
    """Heuristic coverage score in [0.5, 1].

    0.5 base, up to +0.3 for the fraction of UV pairs inside the unit
    square, +0.2 when mean |u*v| lies in (0.1, 2). This is a rough proxy
    for sensible coverage, not a distortion metric.
    """
    if len(uvs) == 0:
        return 0.5
    u, v = uvs[:, 0], uvs[:, 1]
    with np.errstate(invalid="ignore"):
        inside = (u >= 0) & (u <= 1) & (v >= 0) & (v <= 1)
    score = 0.5 + 0.3 * float(inside.mean())
    mean_area = float(np.mean(np.abs(u * v)))
    if 0.1 < mean_area < 2:
        score += 0.2
    return min(score, 1.0)


def quality_grade(method: UVMethod, analysis: GeometryAnalysis) -> UVQuality:
    """Coarse per-method suitability grade for reporting."""
    width, height, depth = analysis.dimensions
    complexity = analysis.complexity

    if method == UVMethod.PLANAR:
        if analysis.type in (GeometryType.FLOOR, GeometryType.CEILING):
            return UVQuality.HIGH
        if analysis.orientation == Orientation.HORIZONTAL or complexity < 0.3:
            return UVQuality.HIGH
        return UVQuality.MEDIUM if complexity < 0.7 else UVQuality.LOW

    if method == UVMethod.CYLINDRICAL:
        roundish = abs(width - depth) < min(width, depth) * 0.2
        if roundish and complexity < 0.5:
            return UVQuality.HIGH
        return UVQuality.MEDIUM if roundish else UVQuality.LOW

    if method == UVMethod.SPHERICAL:
        mean = (width + height + depth) / 3
        spread = abs(width - mean) + abs(height - mean) + abs(depth - mean)
        if spread < mean * 0.2:
            return UVQuality.HIGH
        return UVQuality.MEDIUM if spread < mean * 0.5 else UVQuality.LOW

    if method == UVMethod.BOX:
        if analysis.has_holes_heuristic or complexity > 0.7:
            return UVQuality.HIGH
        return UVQuality.MEDIUM if complexity > 0.3 else UVQuality.LOW

    return UVQuality.MEDIUM


class UVProjector:
    """Computes UV buffers for meshes.

    Example:
        projector = UVProjector()
        result = projector.project(mesh, UVMappingOptions(method=UVMethod.BOX))
    """

    def project(
        self,
        mesh: Mesh,
        options: Optional[UVMappingOptions] = None,
        analysis: Optional[GeometryAnalysis] = None,
    ) -> UVMappingResult:
        """Project UVs for every vertex of a mesh.

        Args:
            mesh: Source mesh, left untouched
            options: Mapping options (defaults to ``auto``)
            analysis: Precomputed analysis; computed here if omitted

        Returns:
            UVMappingResult with one UV pair per vertex
        """
        options = options or UVMappingOptions()
        analysis = analysis or analyze_geometry(mesh)

        if options.method == UVMethod.AUTO:
            return self._project_auto(mesh, options, analysis)

        uvs = PROJECTORS[options.method](mesh, options, analysis)
        return UVMappingResult(
            uvs=uvs,
            method=options.method,
            score=quality_score(uvs),
            quality=quality_grade(options.method, analysis),
        )

    def _project_auto(
        self,
        mesh: Mesh,
        options: UVMappingOptions,
        analysis: GeometryAnalysis,
    ) -> UVMappingResult:
        warnings: list[str] = []
        best: Optional[UVMappingResult] = None

        for method in AUTO_CANDIDATES:
            try:
                uvs = PROJECTORS[method](mesh, options, analysis)
            except OptimizerError as e:
                warnings.append(f"Failed to generate {method.value} UV mapping: {e}")
                continue

            score = quality_score(uvs)
            logger.debug("auto UV candidate %s on %s scored %.3f", method.value, mesh.name, score)
            if best is None or score > best.score:
                best = UVMappingResult(
                    uvs=uvs,
                    method=method,
                    score=score,
                    quality=quality_grade(method, analysis),
                )

        if best is None:
            warnings.append("All UV mapping methods failed, falling back to planar")
            uvs = project_planar(mesh, options, analysis)
            return UVMappingResult(
                uvs=uvs,
                method=UVMethod.PLANAR,
                score=quality_score(uvs),
                quality=UVQuality.LOW,
                warnings=warnings,
            )

        best.warnings.extend(warnings)
        return best
