"""JSON scene documents.

A scene is a list of meshes, the materials they reference by name, and
optional inline textures (raw RGBA bytes, base64 encoded). The CLI reads
and writes these files; the HTTP service accepts and returns them.
"""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Annotated, Any, Hashable, Mapping, Optional, Union

import numpy as np
from pydantic import BaseModel, Field

from export_optimizer.models import Material, Mesh, TextureImage


def _rows(array: Optional[np.ndarray]) -> Optional[list]:
    return None if array is None else array.tolist()


class TexturePayload(BaseModel):
    """Inline RGBA texture."""
    id: str
    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)
    data: str = Field(..., description="Base64 of width*height*4 RGBA bytes, row-major")

    def to_image(self) -> TextureImage:
        raw = base64.b64decode(self.data)
        expected = self.width * self.height * 4
        if len(raw) != expected:
            raise ValueError(f"Texture '{self.id}' has {len(raw)} bytes, expected {expected}")
        pixels = np.frombuffer(raw, dtype=np.uint8).reshape(self.height, self.width, 4).copy()
        return TextureImage(width=self.width, height=self.height, pixels=pixels)

    @classmethod
    def from_image(cls, texture_id: Hashable, image: TextureImage) -> "TexturePayload":
        return cls(
            id=str(texture_id),
            width=image.width,
            height=image.height,
            data=base64.b64encode(np.ascontiguousarray(image.pixels).tobytes()).decode("ascii"),
        )


class MaterialPayload(BaseModel):
    name: str
    base_color_texture: Optional[str] = None
    textures: list[str] = Field(default_factory=list)

    def to_material(self) -> Material:
        return Material(
            name=self.name,
            base_color_texture=self.base_color_texture,
            textures=tuple(self.textures),
        )


class MeshPayload(BaseModel):
    """One mesh; attribute arrays are lists of per-vertex tuples."""
    name: str = ""
    positions: list[tuple[float, float, float]] = Field(default_factory=list)
    normals: Optional[list[tuple[float, float, float]]] = None
    uvs: Optional[list[tuple[float, float]]] = None
    tangents: Optional[list[tuple[float, float, float, float]]] = None
    indices: Optional[list[Annotated[int, Field(ge=0)]]] = None
    material: Optional[str] = Field(None, description="Material name")
    transform: Optional[list[list[float]]] = Field(None, description="4x4 row-major world matrix")
    element_type: Optional[str] = None

    def to_mesh(self, materials: Optional[Mapping[str, Material]] = None) -> Mesh:
        material: Any = None
        if self.material is not None:
            material = (materials or {}).get(self.material, Material(name=self.material))
        kwargs = {}
        if self.transform is not None:
            kwargs["transform"] = np.asarray(self.transform, dtype=np.float64)
        return Mesh(
            positions=np.asarray(self.positions, dtype=np.float32).reshape(-1, 3),
            normals=self.normals,
            uvs=self.uvs,
            tangents=self.tangents,
            indices=self.indices,
            material=material,
            name=self.name,
            element_type=self.element_type,
            **kwargs,
        )

    @classmethod
    def from_mesh(cls, mesh: Mesh) -> "MeshPayload":
        material = mesh.material
        if material is not None:
            material = getattr(material, "name", material)
        identity = np.allclose(mesh.transform, np.eye(4))
        return cls(
            name=mesh.name,
            positions=mesh.positions.tolist(),
            normals=_rows(mesh.normals),
            uvs=_rows(mesh.uvs),
            tangents=_rows(mesh.tangents),
            indices=None if mesh.indices is None else mesh.indices.tolist(),
            material=None if material is None else str(material),
            transform=None if identity else mesh.transform.tolist(),
            element_type=mesh.element_type,
        )


class ScenePayload(BaseModel):
    """A complete scene document."""
    meshes: list[MeshPayload]
    materials: list[MaterialPayload] = Field(default_factory=list)
    textures: list[TexturePayload] = Field(default_factory=list)

    def material_map(self) -> dict[str, Material]:
        return {m.name: m.to_material() for m in self.materials}

    def to_meshes(self) -> list[Mesh]:
        materials = self.material_map()
        return [payload.to_mesh(materials) for payload in self.meshes]

    def to_textures(self) -> dict[str, TextureImage]:
        return {t.id: t.to_image() for t in self.textures}

    @classmethod
    def from_meshes(
        cls,
        meshes: list[Mesh],
        textures: Optional[Mapping[Hashable, TextureImage]] = None,
    ) -> "ScenePayload":
        materials: dict[str, MaterialPayload] = {}
        for mesh in meshes:
            material = mesh.material
            if isinstance(material, Material) and material.name not in materials:
                materials[material.name] = MaterialPayload(
                    name=material.name,
                    base_color_texture=material.base_color_texture,
                    textures=list(material.textures),
                )
        return cls(
            meshes=[MeshPayload.from_mesh(m) for m in meshes],
            materials=list(materials.values()),
            textures=[TexturePayload.from_image(ref, image) for ref, image in (textures or {}).items()],
        )


def load_scene(path: Union[str, Path]) -> ScenePayload:
    """Parse a scene file; raises ``pydantic.ValidationError`` on bad input."""
    return ScenePayload.model_validate_json(Path(path).read_text())


def save_scene(scene: ScenePayload, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(scene.model_dump_json(indent=2, exclude_none=True))
    return path
