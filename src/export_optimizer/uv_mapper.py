"""UV generation for building elements: project, transform, validate, wrap."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

import numpy as np

from export_optimizer.models import (
    GeometryAnalysis,
    GeometryType,
    Mesh,
    UVMappingOptions,
    UVMappingResult,
    UVMethod,
)
from export_optimizer.projection import UVProjector, quality_score
from export_optimizer.uv_transform import apply_uv_transform, validate_uvs, wrap_seamless

logger = logging.getLogger(__name__)


def options_for_element(kind: GeometryType, base: Optional[UVMappingOptions] = None) -> UVMappingOptions:
    """Preset mapping options for a building element type."""
    base = base or UVMappingOptions()
    if kind == GeometryType.WALL:
        return replace(base, method=UVMethod.PLANAR, preserve_aspect_ratio=True, seamless=True)
    if kind in (GeometryType.FLOOR, GeometryType.CEILING):
        return replace(base, method=UVMethod.PLANAR, scale=(1.0, 1.0), seamless=True)
    if kind in (GeometryType.DOOR, GeometryType.WINDOW):
        return replace(base, method=UVMethod.BOX, preserve_aspect_ratio=True)
    return base


def uv_problem(mesh: Mesh, regenerate_below: float) -> Optional[str]:
    """Why a mesh's UVs need regenerating, or None if they are usable."""
    if mesh.uvs is None:
        return "missing"
    if mesh.vertex_count == 0:
        return None
    if not np.isfinite(mesh.uvs).all():
        return "non-finite"
    score = quality_score(mesh.uvs.astype(np.float64))
    if score < regenerate_below:
        return f"low quality score {score:.2f}"
    return None


class UVMapper:
    """Generates and post-processes UV coordinates for a mesh.

    Example:
        mapper = UVMapper()
        mesh, result = mapper.map_mesh(mesh, UVMappingOptions(method=UVMethod.PLANAR))
    """

    def __init__(self, projector: Optional[UVProjector] = None) -> None:
        self.projector = projector or UVProjector()

    def map_mesh(
        self,
        mesh: Mesh,
        options: Optional[UVMappingOptions] = None,
        analysis: Optional[GeometryAnalysis] = None,
    ) -> tuple[Mesh, UVMappingResult]:
        """Project, transform, validate and optionally wrap UVs.

        Args:
            mesh: Source mesh; a new mesh carrying the UVs is returned
            options: Mapping options
            analysis: Precomputed geometry analysis

        Returns:
            (mesh with new UVs, mapping result)

        Raises:
            InvalidUVError: the transformed UVs contain non-finite values
            MissingAttributeError: the mesh has no positions
        """
        options = options or UVMappingOptions()
        result = self.projector.project(mesh, options, analysis)

        uvs = apply_uv_transform(result.uvs, options)
        result.warnings.extend(validate_uvs(uvs, mesh.name or None))

        uvs = uvs.astype(np.float32)
        if options.seamless:
            uvs = wrap_seamless(uvs)

        result.uvs = uvs
        for warning in result.warnings:
            logger.warning("%s: %s", mesh.name, warning)
        logger.debug(
            "Mapped %s with %s (score %.2f, %s)",
            mesh.name, result.method.value, result.score, result.quality.value,
        )
        return replace(mesh, uvs=uvs), result

    def map_element(
        self,
        mesh: Mesh,
        kind: GeometryType,
        options: Optional[UVMappingOptions] = None,
    ) -> tuple[Mesh, UVMappingResult]:
        """Map a mesh with the preset for its building element type."""
        return self.map_mesh(mesh, options_for_element(kind, options))
