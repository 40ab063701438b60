"""LOD chain generation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Optional

from export_optimizer.models import Mesh
from export_optimizer.optimizer import reduce_polygons, remove_unused_vertices


DEFAULT_LOD_RATIOS = (1.0, 0.5, 0.25, 0.1)


@dataclass
class LODResult:
    """Result for a single LOD level."""
    level: int
    ratio: float  # requested fraction of triangles kept
    triangle_count: int
    mesh: Mesh
    base_triangle_count: int = 0

    @property
    def reduction_ratio(self) -> float:
        """Actual fraction of LOD0's triangles kept."""
        if self.base_triangle_count == 0:
            return 0.0
        return self.triangle_count / self.base_triangle_count


class LODChain:
    """Generate a chain of LOD levels from a mesh.

    Example:
        lods = LODChain(mesh, ratios=[1.0, 0.5, 0.1]).generate()
    """

    def __init__(self, mesh: Mesh, ratios: Optional[list[float]] = None) -> None:
        """Initialize LOD chain generator.

        Args:
            mesh: Source mesh (LOD0)
            ratios: Fraction of triangles kept per level, highest first
        """
        self.mesh = mesh
        self.ratios = list(ratios) if ratios else list(DEFAULT_LOD_RATIOS)
        for ratio in self.ratios:
            if not 0 < ratio <= 1:
                raise ValueError(f"LOD ratio must be in (0, 1], got {ratio}")

    def generate(
        self,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> list[LODResult]:
        """Generate all LOD levels.

        Args:
            on_progress: Optional callback (current_lod, total_lods)

        Returns:
            List of LODResult for each level
        """
        results = []
        base = self.mesh.triangle_count

        for level, ratio in enumerate(self.ratios):
            if on_progress:
                on_progress(level, len(self.ratios))

            if ratio >= 1.0:
                lod_mesh = self.mesh
            else:
                lod_mesh = remove_unused_vertices(reduce_polygons(self.mesh, 1.0 - ratio))
                lod_mesh = replace(lod_mesh, name=f"{self.mesh.name}_lod{level}")

            results.append(LODResult(
                level=level,
                ratio=ratio,
                triangle_count=lod_mesh.triangle_count,
                mesh=lod_mesh,
                base_triangle_count=base,
            ))

        if on_progress:
            on_progress(len(self.ratios), len(self.ratios))

        return results
