"""Data models for export-optimizer."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

import numpy as np

from export_optimizer.errors import InvalidMeshError, MissingAttributeError


class GeometryType(str, Enum):
    WALL = "wall"
    FLOOR = "floor"
    CEILING = "ceiling"
    DOOR = "door"
    WINDOW = "window"
    GENERIC = "generic"


class Orientation(str, Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    MIXED = "mixed"


class UVMethod(str, Enum):
    PLANAR = "planar"
    CYLINDRICAL = "cylindrical"
    SPHERICAL = "spherical"
    BOX = "box"
    AUTO = "auto"


class UVQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IssueSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


def _as_buffer(data: Any, width: int, dtype: Any) -> Optional[np.ndarray]:
    if data is None:
        return None
    array = np.ascontiguousarray(data, dtype=dtype)
    if array.size == 0:
        return array.reshape(0, width)
    if array.ndim != 2 or array.shape[1] != width:
        try:
            array = array.reshape(-1, width)
        except ValueError as exc:
            raise InvalidMeshError(f"Buffer of shape {array.shape} is not a list of {width}-tuples") from exc
    return array


@dataclass
class Mesh:
    """A triangle mesh with optional index buffer and material reference.

    Buffers are numpy arrays in GPU-friendly dtypes: float32 attributes and
    uint32 indices. Without an index buffer the vertices form an implicit
    triangle list. Stage functions never mutate a mesh in place; they return
    a new one built with ``dataclasses.replace``.
    """

    positions: np.ndarray
    normals: Optional[np.ndarray] = None
    uvs: Optional[np.ndarray] = None
    indices: Optional[np.ndarray] = None
    material: Any = None
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    name: str = ""
    tangents: Optional[np.ndarray] = None
    element_type: Optional[str] = None

    def __post_init__(self) -> None:
        if self.positions is None:
            self.positions = np.zeros((0, 3), dtype=np.float32)
        self.positions = _as_buffer(self.positions, 3, np.float32)
        self.normals = _as_buffer(self.normals, 3, np.float32)
        self.uvs = _as_buffer(self.uvs, 2, np.float32)
        self.tangents = _as_buffer(self.tangents, 4, np.float32)
        if self.indices is not None:
            self.indices = np.ascontiguousarray(self.indices, dtype=np.uint32).reshape(-1)
        self.transform = np.asarray(self.transform, dtype=np.float64)
        if self.transform.shape != (4, 4):
            raise InvalidMeshError("Transform matrix must be 4x4", self.name or None)

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def index_count(self) -> int:
        return 0 if self.indices is None else int(self.indices.shape[0])

    @property
    def is_indexed(self) -> bool:
        return self.indices is not None

    @property
    def triangle_count(self) -> int:
        if self.indices is not None:
            return self.index_count // 3
        return self.vertex_count // 3

    @property
    def nbytes(self) -> int:
        """Approximate GPU memory: the sum of all buffer sizes."""
        total = self.positions.nbytes
        for buffer in (self.normals, self.uvs, self.tangents, self.indices):
            if buffer is not None:
                total += buffer.nbytes
        return total

    def triangles(self) -> np.ndarray:
        """(M, 3) vertex indices, synthesised for non-indexed meshes."""
        if self.indices is not None:
            return self.indices[: self.index_count - self.index_count % 3].astype(np.int64).reshape(-1, 3)
        count = self.vertex_count - self.vertex_count % 3
        return np.arange(count, dtype=np.int64).reshape(-1, 3)

    def bounds(self) -> tuple[np.ndarray, np.ndarray]:
        if self.vertex_count == 0:
            raise MissingAttributeError("positions", self.name or None)
        points = self.positions.astype(np.float64)
        return points.min(axis=0), points.max(axis=0)

    def validate(self) -> None:
        """Check buffer shapes and the index invariants."""
        count = self.vertex_count
        for label, buffer in (("normals", self.normals), ("uvs", self.uvs), ("tangents", self.tangents)):
            if buffer is not None and buffer.shape[0] != count:
                raise InvalidMeshError(
                    f"'{label}' has {buffer.shape[0]} entries for {count} vertices",
                    self.name or None,
                )
        if self.indices is not None:
            if self.index_count % 3:
                raise InvalidMeshError(
                    f"Index count {self.index_count} is not a multiple of 3", self.name or None
                )
            if self.index_count and int(self.indices.max()) >= count:
                raise InvalidMeshError(
                    f"Index {int(self.indices.max())} out of range for {count} vertices",
                    self.name or None,
                )
        elif count % 3:
            raise InvalidMeshError(
                f"Non-indexed mesh has {count} vertices, not a multiple of 3", self.name or None
            )

    def copy(self) -> "Mesh":
        """Deep-copy the buffers; the material reference is shared."""

        def dup(buffer: Optional[np.ndarray]) -> Optional[np.ndarray]:
            return None if buffer is None else buffer.copy()

        return replace(
            self,
            positions=self.positions.copy(),
            normals=dup(self.normals),
            uvs=dup(self.uvs),
            indices=dup(self.indices),
            tangents=dup(self.tangents),
            transform=self.transform.copy(),
        )


@dataclass(frozen=True)
class Material:
    """Minimal material description used by the default resolver."""
    name: str
    base_color_texture: Optional[str] = None
    textures: tuple[str, ...] = ()


@dataclass
class TextureImage:
    """Decoded RGBA raster."""
    width: int
    height: int
    pixels: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        if self.pixels is None:
            self.pixels = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        else:
            self.pixels = np.asarray(self.pixels, dtype=np.uint8)
            if self.pixels.ndim == 2:
                self.pixels = np.repeat(self.pixels[:, :, None], 4, axis=2)
                self.pixels[:, :, 3] = 255
            if self.pixels.shape[:2] != (self.height, self.width):
                raise ValueError(
                    f"Pixel buffer {self.pixels.shape[:2]} does not match {self.height}x{self.width}"
                )

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class GeometryAnalysis:
    """Snapshot of a mesh's shape, computed once per pipeline run."""

    type: GeometryType
    dimensions: tuple[float, float, float]  # width (x), height (y), depth (z)
    orientation: Orientation
    complexity: float  # 0-1, vertex count against a 1000-vertex cap
    has_holes_heuristic: bool  # index_count > 1000, not real topology
    surface_area: float
    recommended_method: UVMethod

    @property
    def width(self) -> float:
        return self.dimensions[0]

    @property
    def height(self) -> float:
        return self.dimensions[1]

    @property
    def depth(self) -> float:
        return self.dimensions[2]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "dimensions": {"width": self.width, "height": self.height, "depth": self.depth},
            "orientation": self.orientation.value,
            "complexity": self.complexity,
            "has_holes_heuristic": self.has_holes_heuristic,
            "surface_area": self.surface_area,
            "recommended_method": self.recommended_method.value,
        }


@dataclass(frozen=True)
class UVMappingOptions:
    """How to project and post-process UV coordinates."""

    method: UVMethod = UVMethod.AUTO
    scale: tuple[float, float] = (1.0, 1.0)
    offset: tuple[float, float] = (0.0, 0.0)
    rotation: float = 0.0  # radians, about (0.5, 0.5)
    flip_u: bool = False
    flip_v: bool = False
    seamless: bool = True
    preserve_aspect_ratio: bool = True
    projection_axes: tuple[str, str] = ("x", "y")

    def validate(self) -> None:
        for axis in self.projection_axes:
            if axis not in ("x", "y", "z"):
                raise ValueError(f"Unknown projection axis: {axis}")
        if self.projection_axes[0] == self.projection_axes[1]:
            raise ValueError("Projection axes must differ")


@dataclass
class UVMappingResult:
    """UVs produced by one projection run."""
    uvs: np.ndarray
    method: UVMethod
    score: float
    quality: UVQuality
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TextureRegion:
    """Pixel rectangle of a packed texture inside an atlas."""
    x: int
    y: int
    width: int
    height: int

    def overlaps(self, other: "TextureRegion") -> bool:
        return (
            self.x < other.x + other.width
            and other.x < self.x + self.width
            and self.y < other.y + other.height
            and other.y < self.y + self.height
        )


@dataclass
class TextureAtlas:
    """Square power-of-two raster plus where each source texture landed."""
    size: int
    image: TextureImage
    regions: dict[Any, TextureRegion] = field(default_factory=dict)
    dropped: list[Any] = field(default_factory=list)

    @property
    def overflowed(self) -> bool:
        return bool(self.dropped)


@dataclass(frozen=True)
class MeshStats:
    """Aggregate counts over a mesh set."""
    vertices: int = 0
    triangles: int = 0
    materials: int = 0
    textures: int = 0
    draw_calls: int = 0
    memory_bytes: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "vertices": self.vertices,
            "triangles": self.triangles,
            "materials": self.materials,
            "textures": self.textures,
            "draw_calls": self.draw_calls,
            "memory_bytes": self.memory_bytes,
        }


@dataclass(frozen=True)
class StageReport:
    """Before/after count for one pipeline stage."""
    stage: str
    description: str
    before: float
    after: float

    @property
    def improvement(self) -> float:
        """Percentage reduction, 0 when there was nothing to begin with."""
        if self.before == 0:
            return 0.0
        return (self.before - self.after) / self.before * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "description": self.description,
            "before": self.before,
            "after": self.after,
            "improvement": self.improvement,
        }


@dataclass(frozen=True)
class MeshIssue:
    """A warning or per-mesh failure collected during a run."""
    severity: IssueSeverity
    kind: str
    stage: str
    message: str
    mesh: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "kind": self.kind,
            "stage": self.stage,
            "mesh": self.mesh,
            "message": self.message,
        }


@dataclass
class OptimizationReport:
    """Result summary of a pipeline run."""

    stages: list[StageReport] = field(default_factory=list)
    original_stats: MeshStats = field(default_factory=MeshStats)
    optimized_stats: MeshStats = field(default_factory=MeshStats)
    issues: list[MeshIssue] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)  # mesh name -> reason
    optimized_count: int = 0
    cancelled: bool = False

    @property
    def warnings(self) -> list[MeshIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.WARNING]

    @property
    def errors(self) -> list[MeshIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.ERROR]

    def stage(self, name: str) -> Optional[StageReport]:
        for entry in self.stages:
            if entry.stage == name:
                return entry
        return None

    def summary(self) -> str:
        text = f"{self.optimized_count} meshes optimized, {len(self.skipped)} skipped"
        if self.cancelled:
            text += ", cancelled before completion"
        if self.skipped:
            reasons = "; ".join(f"{name}: {reason}" for name, reason in self.skipped.items())
            text += f" ({reasons})"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary(),
            "optimized_count": self.optimized_count,
            "cancelled": self.cancelled,
            "skipped": dict(self.skipped),
            "original_stats": self.original_stats.to_dict(),
            "optimized_stats": self.optimized_stats.to_dict(),
            "stages": [s.to_dict() for s in self.stages],
            "issues": [i.to_dict() for i in self.issues],
        }
