"""Pipeline configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from typing import Mapping, Optional

from export_optimizer.models import UVMappingOptions

QUALITY_POLY_REDUCTION = {
    "high": 0.0,
    "medium": 0.3,
    "low": 0.5,
}

ENV_PREFIX = "EXPORT_OPTIMIZER_"


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


@dataclass(frozen=True)
class OptimizationSettings:
    """Every pipeline option with an explicit default.

    Resolved once when an ``ExportPipeline`` is built; stages read from it
    and never merge partial options of their own.
    """

    quality: str = "medium"

    # UV generation
    generate_uvs: bool = True
    uv_options: UVMappingOptions = field(default_factory=UVMappingOptions)
    use_recommended_uv_method: bool = True
    uv_regenerate_below: float = 0.6

    # Mesh passes
    remove_unused_vertices: bool = True
    weld_vertices: bool = True
    poly_reduction: float = 0.3  # fraction of triangles to drop, 0 disables
    regenerate_normals: bool = True
    generate_tangents: bool = False
    clamp_uvs: bool = True

    # Scene passes
    texture_atlasing: bool = True
    max_atlas_size: int = 4096
    atlas_texture_id: str = "atlas"
    mesh_merging: bool = True

    # LOD
    generate_lods: bool = False
    lod_ratios: tuple[float, ...] = (1.0, 0.5, 0.25, 0.1)

    def validate(self) -> None:
        """Validate settings."""
        if self.quality not in QUALITY_POLY_REDUCTION:
            raise ValueError(f"Unknown quality '{self.quality}', expected one of {sorted(QUALITY_POLY_REDUCTION)}")
        if not 0 <= self.poly_reduction < 1:
            raise ValueError("poly_reduction must be in [0, 1)")
        if self.max_atlas_size < 1 or self.max_atlas_size & (self.max_atlas_size - 1):
            raise ValueError("max_atlas_size must be a power of two")
        if not 0 <= self.uv_regenerate_below <= 1:
            raise ValueError("uv_regenerate_below must be between 0 and 1")
        for ratio in self.lod_ratios:
            if not 0 < ratio <= 1:
                raise ValueError("LOD ratios must be in (0, 1]")
        self.uv_options.validate()

    @classmethod
    def for_quality(cls, quality: str, **overrides) -> "OptimizationSettings":
        """Preset keyed on export quality (high keeps every triangle)."""
        if quality not in QUALITY_POLY_REDUCTION:
            raise ValueError(f"Unknown quality '{quality}'")
        settings = cls(quality=quality, poly_reduction=QUALITY_POLY_REDUCTION[quality])
        return replace(settings, **overrides)

    @classmethod
    def for_engine(cls, engine: str, **overrides) -> "OptimizationSettings":
        """Defaults matching what each engine expects from imported assets."""
        engine = engine.lower()
        if engine == "unity":
            settings = cls.for_quality("medium", texture_atlasing=True, generate_lods=True, max_atlas_size=1024)
        elif engine == "unreal":
            # Unreal manages its own texture streaming.
            settings = cls.for_quality("high", texture_atlasing=False, generate_lods=True, max_atlas_size=2048)
        elif engine == "godot":
            settings = cls.for_quality("medium", texture_atlasing=True, generate_lods=False, max_atlas_size=1024)
        else:
            raise ValueError(f"Unknown engine '{engine}', expected unity, unreal or godot")
        return replace(settings, **overrides)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, base: Optional["OptimizationSettings"] = None) -> "OptimizationSettings":
        """Overlay ``EXPORT_OPTIMIZER_<FIELD>`` variables on ``base``.

        Only scalar fields (bool, int, float, str) can be set this way.
        """
        env = os.environ if env is None else env
        settings = base or cls()
        overrides = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            current = getattr(settings, f.name)
            if isinstance(current, bool):
                overrides[f.name] = _parse_bool(raw)
            elif isinstance(current, (int, float, str)):
                overrides[f.name] = type(current)(raw)
        return replace(settings, **overrides)
