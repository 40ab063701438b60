"""Per-mesh optimization passes.

Every pass takes a mesh and returns a new one; inputs are never mutated.
The pipeline runs them in this order: unused-vertex removal, weld,
decimation, normal regeneration, tangent generation, UV clamp.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Optional

import numpy as np

from export_optimizer.models import Mesh

logger = logging.getLogger(__name__)

_UP = np.array([0.0, 1.0, 0.0])
_EPSILON = 1e-12


def _take(buffer: Optional[np.ndarray], rows: np.ndarray) -> Optional[np.ndarray]:
    return None if buffer is None else buffer[rows]


def _compact(mesh: Mesh, rows: np.ndarray, indices: Optional[np.ndarray]) -> Mesh:
    return replace(
        mesh,
        positions=mesh.positions[rows],
        normals=_take(mesh.normals, rows),
        uvs=_take(mesh.uvs, rows),
        tangents=_take(mesh.tangents, rows),
        indices=indices,
    )


def compute_vertex_normals(positions: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Per-vertex normals as the normalized mean of adjacent face normals.

    Vertices touching no (non-degenerate) triangle get +Y.
    """
    points = np.asarray(positions, dtype=np.float64)
    normals = np.zeros_like(points)

    if len(triangles):
        a, b, c = points[triangles[:, 0]], points[triangles[:, 1]], points[triangles[:, 2]]
        face = np.cross(b - a, c - a)
        lengths = np.linalg.norm(face, axis=1, keepdims=True)
        unit = np.divide(face, lengths, out=np.zeros_like(face), where=lengths > _EPSILON)
        for corner in range(3):
            np.add.at(normals, triangles[:, corner], unit)

    lengths = np.linalg.norm(normals, axis=1)
    valid = lengths > _EPSILON
    normals[valid] /= lengths[valid, None]
    normals[~valid] = _UP
    return normals.astype(np.float32)


def remove_unused_vertices(mesh: Mesh) -> Mesh:
    """Drop vertices no triangle references; no-op for non-indexed meshes.

    Surviving vertices keep their relative order.
    """
    if not mesh.is_indexed:
        return mesh

    used = np.unique(mesh.indices)
    if len(used) == mesh.vertex_count:
        return mesh

    remap = np.zeros(mesh.vertex_count, dtype=np.uint32)
    remap[used] = np.arange(len(used), dtype=np.uint32)
    return _compact(mesh, used, remap[mesh.indices])


def weld_vertices(mesh: Mesh) -> Mesh:
    """Merge vertices whose attributes are bit-identical.

    Only exact duplicates are merged; there is no distance tolerance. The
    result is always indexed, with vertices in order of first occurrence.
    """
    if mesh.vertex_count == 0:
        return mesh

    parts = [buffer for buffer in (mesh.positions, mesh.normals, mesh.uvs, mesh.tangents) if buffer is not None]
    key = np.ascontiguousarray(np.hstack(parts), dtype=np.float32)
    rows = key.view(np.dtype((np.void, key.dtype.itemsize * key.shape[1]))).reshape(-1)

    _, first, inverse = np.unique(rows, return_index=True, return_inverse=True)
    inverse = inverse.reshape(-1)

    order = np.argsort(first, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))
    remap = rank[inverse].astype(np.uint32)

    old_indices = mesh.indices if mesh.is_indexed else np.arange(mesh.vertex_count)
    return _compact(mesh, first[order], remap[old_indices])


def reduce_polygons(mesh: Mesh, ratio: float) -> Mesh:
    """Drop roughly ``ratio`` of the triangles by fixed-stride sampling.

    Keeps every ``step``-th triangle where ``step = T // target`` and
    ``target = floor(T * (1 - ratio))``. This is deterministic and makes no
    attempt to preserve shape (it is not an edge-collapse decimator), and
    because ``step`` is an integer small ratios may remove nothing.
    Vertices orphaned by the dropped triangles are left in place.
    """
    if not 0 <= ratio <= 1:
        raise ValueError(f"Reduction ratio must be between 0 and 1, got {ratio}")

    total = mesh.triangle_count
    if ratio == 0 or total == 0:
        return mesh

    target = max(1, math.floor(total * (1 - ratio)))
    if target >= total:
        return mesh

    step = total // target
    kept = np.arange(0, total, step)

    if mesh.is_indexed:
        indices = mesh.triangles()[kept].reshape(-1).astype(np.uint32)
        return replace(mesh, indices=indices)

    rows = (kept[:, None] * 3 + np.arange(3)).reshape(-1)
    return _compact(mesh, rows, None)


def regenerate_normals(mesh: Mesh) -> Mesh:
    """Discard existing normals and recompute them from the faces."""
    if mesh.vertex_count == 0:
        return mesh
    return replace(mesh, normals=compute_vertex_normals(mesh.positions, mesh.triangles()))


def clamp_uvs(mesh: Mesh) -> Mesh:
    """Clip every UV component into [0, 1]. Lossy."""
    if mesh.uvs is None:
        return mesh
    return replace(mesh, uvs=np.clip(mesh.uvs, 0.0, 1.0))


def missing_tangent_inputs(mesh: Mesh) -> list[str]:
    missing = []
    if mesh.vertex_count == 0:
        missing.append("positions")
    if mesh.normals is None:
        missing.append("normals")
    if mesh.uvs is None:
        missing.append("uvs")
    return missing


def _perpendicular(normals: np.ndarray) -> np.ndarray:
    reference = np.tile([1.0, 0.0, 0.0], (len(normals), 1))
    reference[np.abs(normals[:, 0]) > 0.9] = [0.0, 1.0, 0.0]
    perpendicular = np.cross(normals, reference)
    lengths = np.linalg.norm(perpendicular, axis=1, keepdims=True)
    return np.divide(perpendicular, lengths, out=np.tile([1.0, 0.0, 0.0], (len(normals), 1)), where=lengths > _EPSILON)


def generate_tangents(mesh: Mesh) -> Mesh:
    """Per-vertex tangents (xyz + handedness) from UV-space derivatives.

    Requires positions, normals and UVs; returns the mesh unchanged with a
    logged warning when any is missing.
    """
    missing = missing_tangent_inputs(mesh)
    if missing:
        logger.warning("Skipping tangents for %s: missing %s", mesh.name, ", ".join(missing))
        return mesh

    tris = mesh.triangles()
    points = mesh.positions.astype(np.float64)
    uvs = mesh.uvs.astype(np.float64)
    normals = mesh.normals.astype(np.float64)
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    normals = np.divide(normals, lengths, out=np.tile(_UP, (len(normals), 1)), where=lengths > _EPSILON)

    tan_s = np.zeros_like(points)
    tan_t = np.zeros_like(points)

    if len(tris):
        e1 = points[tris[:, 1]] - points[tris[:, 0]]
        e2 = points[tris[:, 2]] - points[tris[:, 0]]
        d1 = uvs[tris[:, 1]] - uvs[tris[:, 0]]
        d2 = uvs[tris[:, 2]] - uvs[tris[:, 0]]

        det = d1[:, 0] * d2[:, 1] - d2[:, 0] * d1[:, 1]
        inverse = np.divide(1.0, det, out=np.zeros_like(det), where=np.abs(det) > _EPSILON)[:, None]
        s_dir = (e1 * d2[:, 1:2] - e2 * d1[:, 1:2]) * inverse
        t_dir = (e2 * d1[:, 0:1] - e1 * d2[:, 0:1]) * inverse

        for corner in range(3):
            np.add.at(tan_s, tris[:, corner], s_dir)
            np.add.at(tan_t, tris[:, corner], t_dir)

    # Gram-Schmidt against the normal.
    tangent = tan_s - normals * np.sum(normals * tan_s, axis=1, keepdims=True)
    lengths = np.linalg.norm(tangent, axis=1, keepdims=True)
    fallback = _perpendicular(normals)
    tangent = np.divide(tangent, lengths, out=fallback, where=lengths > _EPSILON)

    handedness = np.where(np.sum(np.cross(normals, tangent) * tan_t, axis=1) < 0, -1.0, 1.0)
    return replace(mesh, tangents=np.column_stack((tangent, handedness)))
