"""Material identity resolution.

The pipeline never inspects materials itself; it asks a resolver. Any
object with the same four methods as ``MaterialResolver`` can be passed to
``ExportPipeline``.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Hashable, Optional, Protocol


class MaterialResolver(Protocol):
    def identity(self, material: Any) -> Optional[Hashable]:
        """Equality-comparable id, or None for "no material"."""

    def textures(self, material: Any) -> list[Hashable]:
        """Every texture the material references."""

    def base_texture(self, material: Any) -> Optional[Hashable]:
        """The color texture that may be atlased."""

    def retexture(self, material: Any, texture: Hashable) -> Any:
        """Copy of the material with its color texture replaced."""


class MaterialLibrary:
    """Default resolver for ``models.Material`` and plain identifiers.

    Anything that is not a ``Material`` is treated as an opaque, hashable
    id without textures.
    """

    def identity(self, material: Any) -> Optional[Hashable]:
        if material is None:
            return None
        return getattr(material, "name", material)

    def textures(self, material: Any) -> list[Hashable]:
        if material is None:
            return []
        refs = []
        base = getattr(material, "base_color_texture", None)
        if base is not None:
            refs.append(base)
        refs.extend(getattr(material, "textures", ()))
        return refs

    def base_texture(self, material: Any) -> Optional[Hashable]:
        return getattr(material, "base_color_texture", None)

    def retexture(self, material: Any, texture: Hashable) -> Any:
        if hasattr(material, "base_color_texture"):
            return replace(material, base_color_texture=texture)
        return material
