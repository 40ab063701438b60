"""Mesh-set statistics."""

from __future__ import annotations

from typing import Iterable

from export_optimizer.materials import MaterialResolver
from export_optimizer.models import Mesh, MeshStats


def collect_stats(meshes: Iterable[Mesh], materials: MaterialResolver) -> MeshStats:
    """Counts, distinct materials/textures, draw calls and buffer memory."""
    meshes = list(meshes)
    material_ids = set()
    texture_ids = set()
    for mesh in meshes:
        identity = materials.identity(mesh.material)
        if identity is not None:
            material_ids.add(identity)
        texture_ids.update(materials.textures(mesh.material))

    return MeshStats(
        vertices=sum(m.vertex_count for m in meshes),
        triangles=sum(m.triangle_count for m in meshes),
        materials=len(material_ids),
        textures=len(texture_ids),
        draw_calls=len(meshes),
        memory_bytes=sum(m.nbytes for m in meshes),
    )
