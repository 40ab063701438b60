"""Texture atlas packing and UV remapping."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Hashable, Mapping, Optional

import numpy as np

from export_optimizer.materials import MaterialResolver
from export_optimizer.models import Mesh, TextureAtlas, TextureImage, TextureRegion

logger = logging.getLogger(__name__)

PACKING_SLACK = 1.2
DEFAULT_MAX_ATLAS_SIZE = 4096


def next_power_of_two(value: float) -> int:
    if value <= 1:
        return 1
    return 2 ** math.ceil(math.log2(value))


def atlas_size(textures: Mapping[Hashable, TextureImage], max_size: int = DEFAULT_MAX_ATLAS_SIZE) -> int:
    """Side length: next power of two covering the area plus 20% slack.

    Never smaller than the largest single texture side, never above
    ``max_size``.
    """
    total_area = sum(t.area for t in textures.values())
    side = next_power_of_two(math.ceil(math.sqrt(total_area * PACKING_SLACK)))
    largest = max((max(t.width, t.height) for t in textures.values()), default=1)
    side = max(side, next_power_of_two(largest))
    return min(side, max_size)


def pack_textures(
    textures: Mapping[Hashable, TextureImage],
    max_size: int = DEFAULT_MAX_ATLAS_SIZE,
) -> TextureAtlas:
    """Pack textures in input order with a row-based greedy cursor.

    When a texture no longer fits, packing stops; it and every texture
    after it are listed in ``dropped`` and stay unatlased.
    """
    size = atlas_size(textures, max_size)
    image = TextureImage(width=size, height=size)
    atlas = TextureAtlas(size=size, image=image)

    cursor_x = cursor_y = row_height = 0
    refs = list(textures)
    for position, ref in enumerate(refs):
        texture = textures[ref]
        width, height = texture.width, texture.height

        if cursor_x + width > size:
            cursor_x = 0
            cursor_y += row_height
            row_height = 0

        if cursor_y + height > size or width > size:
            atlas.dropped = refs[position:]
            logger.warning(
                "Texture atlas full at %dx%d, %d texture(s) left unatlased", size, size, len(atlas.dropped)
            )
            break

        image.pixels[cursor_y:cursor_y + height, cursor_x:cursor_x + width] = texture.pixels
        atlas.regions[ref] = TextureRegion(x=cursor_x, y=cursor_y, width=width, height=height)

        cursor_x += width
        row_height = max(row_height, height)

    logger.info("Packed %d texture(s) into %dx%d atlas", len(atlas.regions), size, size)
    return atlas


def remap_uvs(uvs: np.ndarray, region: TextureRegion, size: int) -> np.ndarray:
    """Move unit-square UVs into a region's slice of the atlas."""
    scale = np.array([region.width / size, region.height / size])
    offset = np.array([region.x / size, region.y / size])
    return (uvs.astype(np.float64) * scale + offset).astype(np.float32)


def apply_atlas(
    meshes: list[Mesh],
    atlas: TextureAtlas,
    materials: MaterialResolver,
    atlas_texture: Hashable,
) -> tuple[list[Mesh], list[tuple[str, str]]]:
    """Remap UVs of meshes whose color texture was packed.

    Returns the new mesh list and ``(mesh, message)`` warnings for meshes
    that reference a packed texture but have no UVs to remap.
    """
    result = []
    warnings = []
    for mesh in meshes:
        ref: Optional[Hashable] = materials.base_texture(mesh.material)
        region = atlas.regions.get(ref) if ref is not None else None
        if region is None:
            result.append(mesh)
            continue
        if mesh.uvs is None:
            warnings.append((mesh.name, f"No UVs to remap into atlas region of '{ref}'"))
            result.append(mesh)
            continue
        result.append(
            replace(
                mesh,
                uvs=remap_uvs(mesh.uvs, region, atlas.size),
                material=materials.retexture(mesh.material, atlas_texture),
            )
        )
    return result, warnings
