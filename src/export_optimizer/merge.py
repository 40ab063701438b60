"""Merging meshes that share a material into one draw call."""

from __future__ import annotations

import logging
from typing import Hashable, Optional

import numpy as np

from export_optimizer.materials import MaterialResolver
from export_optimizer.models import Mesh
from export_optimizer.optimizer import compute_vertex_normals

logger = logging.getLogger(__name__)


def group_by_material(meshes: list[Mesh], materials: MaterialResolver) -> list[list[Mesh]]:
    """Group meshes by material identity, keeping first-seen order.

    Meshes without a material each form their own group.
    """
    groups: dict[Hashable, list[Mesh]] = {}
    ordered: list[list[Mesh]] = []
    for mesh in meshes:
        key: Optional[Hashable] = materials.identity(mesh.material)
        if key is None:
            ordered.append([mesh])
            continue
        if key not in groups:
            groups[key] = []
            ordered.append(groups[key])
        groups[key].append(mesh)
    return ordered


def bake_transform(mesh: Mesh) -> tuple[np.ndarray, Optional[np.ndarray], Optional[np.ndarray]]:
    """World-space positions, normals and tangents for a mesh."""
    matrix = mesh.transform
    linear = matrix[:3, :3]
    points = mesh.positions.astype(np.float64)
    positions = points @ linear.T + matrix[:3, 3]

    normals = None
    if mesh.normals is not None:
        try:
            normal_matrix = np.linalg.inv(linear).T
        except np.linalg.LinAlgError:
            # Singular transform: derive normals from the flattened geometry.
            normals = compute_vertex_normals(positions, mesh.triangles()).astype(np.float64)
        else:
            normals = mesh.normals.astype(np.float64) @ normal_matrix.T
            lengths = np.linalg.norm(normals, axis=1, keepdims=True)
            normals = np.divide(normals, lengths, out=np.zeros_like(normals), where=lengths > 0)

    tangents = None
    if mesh.tangents is not None:
        tangents = mesh.tangents.astype(np.float64).copy()
        directions = tangents[:, :3] @ linear.T
        lengths = np.linalg.norm(directions, axis=1, keepdims=True)
        tangents[:, :3] = np.divide(directions, lengths, out=np.zeros_like(directions), where=lengths > 0)
        # A mirroring transform flips the bitangent.
        if np.linalg.det(linear) < 0:
            tangents[:, 3] = -tangents[:, 3]

    return positions, normals, tangents


def merge_group(meshes: list[Mesh], name: Optional[str] = None) -> Mesh:
    """Concatenate a group of meshes into one indexed mesh.

    Each member's world transform is baked in, so the merged mesh carries
    the identity transform and the first member's material. Normals are
    computed for members that lack them when any member has them; missing
    UVs are zero-filled; tangents survive only if every member has them.
    """
    if len(meshes) == 1:
        return meshes[0]

    want_normals = any(m.normals is not None for m in meshes)
    want_uvs = any(m.uvs is not None for m in meshes)
    want_tangents = all(m.tangents is not None for m in meshes)

    positions, normals, uvs, tangents, indices = [], [], [], [], []
    offset = 0
    for mesh in meshes:
        world_positions, world_normals, world_tangents = bake_transform(mesh)
        positions.append(world_positions)

        if want_normals:
            if world_normals is None:
                world_normals = compute_vertex_normals(world_positions, mesh.triangles())
            normals.append(world_normals)
        if want_uvs:
            uvs.append(mesh.uvs if mesh.uvs is not None else np.zeros((mesh.vertex_count, 2)))
        if want_tangents:
            tangents.append(world_tangents)

        local = mesh.indices if mesh.is_indexed else np.arange(mesh.vertex_count)
        indices.append(local.astype(np.int64) + offset)
        offset += mesh.vertex_count

    merged = Mesh(
        positions=np.vstack(positions),
        normals=np.vstack(normals) if want_normals else None,
        uvs=np.vstack(uvs) if want_uvs else None,
        tangents=np.vstack(tangents) if want_tangents else None,
        indices=np.concatenate(indices),
        material=meshes[0].material,
        name=name or "merged_" + "_".join(m.name for m in meshes),
    )
    logger.debug("Merged %d meshes into %s (%d vertices)", len(meshes), merged.name, merged.vertex_count)
    return merged


def merge_meshes(meshes: list[Mesh], materials: MaterialResolver) -> list[Mesh]:
    """Replace every multi-mesh material group with one merged mesh."""
    result = []
    for group in group_by_material(meshes, materials):
        if len(group) == 1:
            result.append(group[0])
            continue
        identity = materials.identity(group[0].material)
        result.append(merge_group(group, name=f"merged_{identity}"))
    return result
