"""Export optimization pipeline.

Runs the stages in a fixed order over a working copy of the input meshes:

    analysis -> UV generation -> unused-vertex removal -> weld -> decimate
    -> normals -> tangents -> UV clamp -> texture atlas -> merge -> LODs

Each stage can be switched off in ``OptimizationSettings`` and adds one
``StageReport``. Per-mesh failures are recorded in the report; only an
empty input set raises.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Hashable, Iterable, Mapping, Optional

import numpy as np

from export_optimizer.analysis import analyze_geometry
from export_optimizer.atlas import apply_atlas, pack_textures
from export_optimizer.errors import EmptyMeshSetError, OptimizerError
from export_optimizer.lod import LODChain, LODResult
from export_optimizer.materials import MaterialLibrary, MaterialResolver
from export_optimizer.merge import merge_meshes
from export_optimizer.models import (
    GeometryAnalysis,
    IssueSeverity,
    Mesh,
    MeshIssue,
    OptimizationReport,
    StageReport,
    TextureImage,
)
from export_optimizer.optimizer import (
    clamp_uvs,
    generate_tangents,
    missing_tangent_inputs,
    reduce_polygons,
    regenerate_normals,
    remove_unused_vertices,
    weld_vertices,
)
from export_optimizer.settings import OptimizationSettings
from export_optimizer.stats import collect_stats
from export_optimizer.textures import TextureLoader
from export_optimizer.uv_mapper import UVMapper, uv_problem

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Output of one pipeline run."""
    meshes: list[Mesh]
    report: OptimizationReport
    analyses: dict[str, GeometryAnalysis] = field(default_factory=dict)
    atlas: Optional[TextureImage] = None
    atlas_texture_id: Optional[str] = None
    lods: dict[str, list[LODResult]] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.cancelled and not self.report.errors


class _Run:
    """Mutable state of a single run; discarded afterwards."""

    def __init__(self, meshes: list[Mesh]) -> None:
        self.meshes = meshes
        self.report = OptimizationReport()
        self.analyses: dict[str, GeometryAnalysis] = {}
        self.passthrough: list[Mesh] = []
        self.atlas: Optional[TextureImage] = None
        self.lods: dict[str, list[LODResult]] = {}

    def issue(self, severity: IssueSeverity, kind: str, stage: str, message: str, mesh: Optional[str] = None) -> None:
        entry = MeshIssue(severity=severity, kind=kind, stage=stage, message=message, mesh=mesh)
        self.report.issues.append(entry)
        log = logger.error if severity == IssueSeverity.ERROR else logger.warning
        log("[%s] %s%s", stage, f"{mesh}: " if mesh else "", message)

    def skip(self, mesh: Mesh, reason: str) -> None:
        self.report.skipped[mesh.name] = reason
        self.passthrough.append(mesh)


class ExportPipeline:
    """Prepares a static mesh set for game-engine export.

    Example:
        pipeline = ExportPipeline(OptimizationSettings.for_quality("low"))
        result = pipeline.optimize(scene_meshes)
        print(result.report.summary())
    """

    def __init__(
        self,
        settings: Optional[OptimizationSettings] = None,
        materials: Optional[MaterialResolver] = None,
        texture_loader: Optional[TextureLoader] = None,
        uv_mapper: Optional[UVMapper] = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            settings: Fully resolved options; validated here
            materials: Material identity resolver
            texture_loader: Async texture source, needed for atlasing
            uv_mapper: UV generator
        """
        self.settings = settings or OptimizationSettings()
        self.settings.validate()
        self.materials = materials or MaterialLibrary()
        self.texture_loader = texture_loader
        self.uv_mapper = uv_mapper or UVMapper()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def optimize(self, meshes: Iterable[Mesh], **kwargs) -> PipelineResult:
        """Synchronous wrapper around ``optimize_async``."""
        return asyncio.run(self.optimize_async(meshes, **kwargs))

    async def optimize_async(
        self,
        meshes: Iterable[Mesh],
        on_progress: Optional[Callable[[int, int], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> PipelineResult:
        """Load the textures the atlas needs, then run every stage."""
        meshes = list(meshes)
        textures: dict[Hashable, TextureImage] = {}
        failures: dict[Hashable, str] = {}
        if self.settings.texture_atlasing and self.texture_loader is not None:
            textures, failures = await self.load_textures(self.atlas_candidates(meshes))
        return self.run(
            meshes,
            textures,
            on_progress=on_progress,
            should_stop=should_stop,
            texture_failures=failures,
        )

    async def load_textures(self, refs: Iterable[Hashable]) -> tuple[dict[Hashable, TextureImage], dict[Hashable, str]]:
        """Await every texture concurrently.

        Returns:
            (loaded textures in request order, ref -> error message)
        """
        if self.texture_loader is None:
            raise RuntimeError("No texture loader configured")
        refs = list(dict.fromkeys(refs))
        results = await asyncio.gather(
            *(self.texture_loader.load(ref) for ref in refs),
            return_exceptions=True,
        )
        loaded, failures = {}, {}
        for ref, outcome in zip(refs, results):
            if isinstance(outcome, BaseException):
                failures[ref] = str(outcome)
            else:
                loaded[ref] = outcome
        return loaded, failures

    def atlas_candidates(self, meshes: Iterable[Mesh]) -> list[Hashable]:
        """Distinct color textures in order of first reference."""
        refs = []
        for mesh in meshes:
            ref = self.materials.base_texture(mesh.material)
            if ref is not None and ref not in refs:
                refs.append(ref)
        return refs

    def run(
        self,
        meshes: Iterable[Mesh],
        textures: Optional[Mapping[Hashable, TextureImage]] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None,
        texture_failures: Optional[Mapping[Hashable, str]] = None,
    ) -> PipelineResult:
        """Run every enabled stage synchronously.

        Args:
            meshes: Scene meshes; they are cloned and never modified
            textures: Decoded color textures for atlasing
            on_progress: Optional callback (current_stage, total_stages)
            should_stop: Checked between stages; True ends the run early
            texture_failures: Textures that failed to load, ref -> reason

        Raises:
            EmptyMeshSetError: no meshes were given
        """
        source = list(meshes)
        if not source:
            raise EmptyMeshSetError()

        working = []
        seen: set[str] = set()
        for position, mesh in enumerate(source):
            clone = mesh.copy()
            # Per-run state is keyed by name, so repeats get a numeric suffix.
            base = clone.name or f"mesh_{position}"
            name, suffix = base, 1
            while name in seen:
                name = f"{base}_{suffix}"
                suffix += 1
            seen.add(name)
            if name != clone.name:
                clone = replace(clone, name=name)
            working.append(clone)

        state = _Run(working)
        state.report.original_stats = collect_stats(working, self.materials)
        for ref, reason in (texture_failures or {}).items():
            state.issue(IssueSeverity.WARNING, "texture_load", "texture_atlas", f"Could not load '{ref}': {reason}")

        stages = self._stages(textures or {})
        cancelled = False
        completed = 0
        for position, (name, stage) in enumerate(stages):
            if on_progress:
                on_progress(position, len(stages))
            if should_stop and should_stop():
                logger.info("Stopping before stage %s", name)
                cancelled = True
                break
            stage(state)
            completed += 1

        if on_progress and not cancelled:
            on_progress(len(stages), len(stages))

        final = state.meshes + state.passthrough
        report = state.report
        report.cancelled = cancelled
        # Nothing was touched if the run stopped before its first stage.
        report.optimized_count = len(working) - len(state.passthrough) if completed else 0
        report.optimized_stats = collect_stats(final, self.materials)
        logger.info(report.summary())

        return PipelineResult(
            meshes=final,
            report=report,
            analyses=state.analyses,
            atlas=state.atlas,
            atlas_texture_id=self.settings.atlas_texture_id if state.atlas is not None else None,
            lods=state.lods,
            cancelled=cancelled,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _stages(self, textures: Mapping[Hashable, TextureImage]) -> list[tuple[str, Callable[[_Run], None]]]:
        s = self.settings
        stages: list[tuple[str, Callable[[_Run], None]]] = [("analyze", self._analyze)]
        if s.generate_uvs:
            stages.append(("generate_uvs", self._generate_uvs))
        if s.remove_unused_vertices:
            stages.append(("remove_unused_vertices", self._remove_unused))
        if s.weld_vertices:
            stages.append(("weld_vertices", self._weld))
        if s.poly_reduction > 0:
            stages.append(("reduce_polygons", self._reduce))
        if s.regenerate_normals:
            stages.append(("regenerate_normals", self._normals))
        if s.generate_tangents:
            stages.append(("generate_tangents", self._tangents))
        if s.clamp_uvs:
            stages.append(("clamp_uvs", self._clamp))
        if s.texture_atlasing:
            stages.append(("texture_atlas", lambda state: self._atlas(state, textures)))
        if s.mesh_merging:
            stages.append(("merge_meshes", self._merge))
        if s.generate_lods:
            stages.append(("generate_lods", self._lods))
        return stages

    def _analyze(self, state: _Run) -> None:
        kept = []
        for mesh in state.meshes:
            try:
                mesh.validate()
                state.analyses[mesh.name] = analyze_geometry(mesh)
            except OptimizerError as e:
                kind = type(e).__name__
                state.issue(IssueSeverity.ERROR, kind, "analyze", str(e), mesh.name)
                state.skip(mesh, str(e))
                continue
            kept.append(mesh)
        state.meshes = kept

    def _generate_uvs(self, state: _Run) -> None:
        s = self.settings
        needing = 0
        still_needing = 0
        result = []
        for mesh in state.meshes:
            problem = uv_problem(mesh, s.uv_regenerate_below)
            if problem is None:
                result.append(mesh)
                continue

            needing += 1
            analysis = state.analyses.get(mesh.name)
            options = s.uv_options
            if s.use_recommended_uv_method and analysis is not None:
                options = replace(options, method=analysis.recommended_method)

            logger.debug("Generating UVs for %s (%s)", mesh.name, problem)
            try:
                mesh, mapping = self.uv_mapper.map_mesh(mesh, options, analysis)
            except OptimizerError as e:
                state.issue(IssueSeverity.ERROR, type(e).__name__, "generate_uvs", str(e), mesh.name)
                still_needing += 1
            else:
                for warning in mapping.warnings:
                    state.report.issues.append(MeshIssue(
                        severity=IssueSeverity.WARNING,
                        kind="uv_mapping",
                        stage="generate_uvs",
                        message=warning,
                        mesh=mesh.name,
                    ))
            result.append(mesh)

        state.meshes = result
        state.report.stages.append(StageReport(
            stage="generate_uvs",
            description="Generate UV coordinates for meshes with missing or poor UVs",
            before=needing,
            after=still_needing,
        ))

    def _map_meshes(self, state: _Run, stage: str, description: str, fn: Callable[[Mesh], Mesh], count: Callable[[Mesh], int]) -> None:
        before = after = 0
        result = []
        for mesh in state.meshes:
            before += count(mesh)
            try:
                mesh = fn(mesh)
            except OptimizerError as e:
                state.issue(IssueSeverity.ERROR, type(e).__name__, stage, str(e), mesh.name)
            after += count(mesh)
            result.append(mesh)
        state.meshes = result
        state.report.stages.append(StageReport(stage=stage, description=description, before=before, after=after))

    def _remove_unused(self, state: _Run) -> None:
        self._map_meshes(
            state, "remove_unused_vertices", "Remove unreferenced vertices",
            remove_unused_vertices, lambda m: m.vertex_count,
        )

    def _weld(self, state: _Run) -> None:
        self._map_meshes(
            state, "weld_vertices", "Merge bit-identical vertices",
            weld_vertices, lambda m: m.vertex_count,
        )

    def _reduce(self, state: _Run) -> None:
        ratio = self.settings.poly_reduction
        self._map_meshes(
            state, "reduce_polygons", f"Stride decimation dropping {ratio:.0%} of triangles",
            lambda m: reduce_polygons(m, ratio), lambda m: m.triangle_count,
        )

    def _normals(self, state: _Run) -> None:
        self._map_meshes(
            state, "regenerate_normals", "Recompute vertex normals (meshes with missing normals)",
            regenerate_normals, lambda m: int(m.normals is None and m.vertex_count > 0),
        )

    def _tangents(self, state: _Run) -> None:
        for mesh in state.meshes:
            missing = missing_tangent_inputs(mesh)
            if missing:
                state.issue(
                    IssueSeverity.WARNING, "missing_prerequisite", "generate_tangents",
                    f"Tangents not generated, missing {', '.join(missing)}", mesh.name,
                )
        self._map_meshes(
            state, "generate_tangents", "Generate tangents for normal mapping (meshes without tangents)",
            generate_tangents, lambda m: int(m.tangents is None),
        )

    def _clamp(self, state: _Run) -> None:
        def out_of_range(mesh: Mesh) -> int:
            if mesh.uvs is None:
                return 0
            return int(np.count_nonzero((mesh.uvs < 0) | (mesh.uvs > 1)))

        self._map_meshes(
            state, "clamp_uvs", "Clamp UV components into [0, 1] (out-of-range components)",
            clamp_uvs, out_of_range,
        )

    def _atlas(self, state: _Run, textures: Mapping[Hashable, TextureImage]) -> None:
        before = collect_stats(state.meshes, self.materials).textures
        refs = [ref for ref in self.atlas_candidates(state.meshes) if ref in textures]

        if len(refs) > 1:
            atlas = pack_textures({ref: textures[ref] for ref in refs}, self.settings.max_atlas_size)
            if atlas.dropped:
                state.issue(
                    IssueSeverity.WARNING, "atlas_overflow", "texture_atlas",
                    f"Atlas full at {atlas.size}px; left unatlased: {', '.join(map(str, atlas.dropped))}",
                )
            if atlas.regions:
                state.meshes, warnings = apply_atlas(
                    state.meshes, atlas, self.materials, self.settings.atlas_texture_id
                )
                for mesh_name, message in warnings:
                    state.issue(IssueSeverity.WARNING, "missing_uvs", "texture_atlas", message, mesh_name)
                state.atlas = atlas.image
        else:
            logger.info("Texture atlas skipped: %d atlasable texture(s)", len(refs))

        after = collect_stats(state.meshes, self.materials).textures
        state.report.stages.append(StageReport(
            stage="texture_atlas",
            description="Pack color textures into a shared atlas",
            before=before,
            after=after,
        ))

    def _merge(self, state: _Run) -> None:
        before = len(state.meshes)
        state.meshes = merge_meshes(state.meshes, self.materials)
        state.report.stages.append(StageReport(
            stage="merge_meshes",
            description="Merge meshes sharing a material (draw calls)",
            before=before,
            after=len(state.meshes),
        ))

    def _lods(self, state: _Run) -> None:
        before = after = 0
        for mesh in state.meshes:
            chain = LODChain(mesh, list(self.settings.lod_ratios)).generate()
            state.lods[mesh.name] = chain
            before += mesh.triangle_count
            after += chain[-1].triangle_count
        state.report.stages.append(StageReport(
            stage="generate_lods",
            description="Generate LOD chains (triangles at the lowest level)",
            before=before,
            after=after,
        ))


def optimize(meshes: Iterable[Mesh], settings: Optional[OptimizationSettings] = None, **kwargs: Any) -> PipelineResult:
    """Optimize a mesh set.

    Convenience function that creates an ExportPipeline instance.
    """
    pipeline = ExportPipeline(settings, **kwargs)
    return pipeline.optimize(meshes)
