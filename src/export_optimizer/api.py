"""REST API for the export-optimizer service."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel, Field

from export_optimizer.analysis import analyze_geometry
from export_optimizer.errors import OptimizerError
from export_optimizer.pipeline import ExportPipeline
from export_optimizer.schema import ScenePayload
from export_optimizer.settings import OptimizationSettings
from export_optimizer.textures import InMemoryTextureLoader

logger = logging.getLogger(__name__)

# =========================================================================
# Models
# =========================================================================


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class OptimizeRequest(BaseModel):
    """Scene plus per-request overrides of the service settings."""
    scene: ScenePayload
    quality: Optional[str] = Field(None, description="high, medium or low")
    engine: Optional[str] = Field(None, description="unity, unreal or godot")
    poly_reduction: Optional[float] = Field(None, ge=0.0, lt=1.0, description="Fraction of triangles to drop")
    texture_atlasing: Optional[bool] = None
    mesh_merging: Optional[bool] = None
    generate_tangents: Optional[bool] = None
    generate_lods: Optional[bool] = None


class JobResponse(BaseModel):
    """Response for job creation."""
    job_id: str
    status: JobStatus
    message: str
    created_at: datetime


class JobStatusResponse(BaseModel):
    """Response for job status query."""
    job_id: str
    status: JobStatus
    progress: float = 0.0
    summary: Optional[str] = None
    result_url: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class MeshAnalysisResponse(BaseModel):
    name: str
    analysis: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class AnalysisResponse(BaseModel):
    """Response for scene analysis."""
    meshes: list[MeshAnalysisResponse]


class OptimizeResultResponse(BaseModel):
    scene: ScenePayload
    report: dict[str, Any]
    atlas_texture_id: Optional[str] = None


# =========================================================================
# In-memory job store
# =========================================================================


class JobStore:
    """Simple in-memory job store."""

    def __init__(self):
        self.jobs: dict[str, dict] = {}

    def create(self, job_type: str, params: dict) -> str:
        job_id = str(uuid.uuid4())[:8]
        self.jobs[job_id] = {
            "id": job_id,
            "type": job_type,
            "status": JobStatus.PENDING,
            "params": params,
            "progress": 0.0,
            "result": None,
            "error": None,
            "created_at": datetime.now(),
            "completed_at": None,
        }
        return job_id

    def get(self, job_id: str) -> Optional[dict]:
        return self.jobs.get(job_id)

    def update(self, job_id: str, **kwargs):
        if job_id in self.jobs:
            self.jobs[job_id].update(kwargs)

    def set_completed(self, job_id: str, result: dict):
        self.update(
            job_id,
            status=JobStatus.COMPLETED,
            result=result,
            completed_at=datetime.now(),
            progress=1.0,
        )

    def set_failed(self, job_id: str, error: str):
        self.update(
            job_id,
            status=JobStatus.FAILED,
            error=error,
            completed_at=datetime.now(),
        )


# =========================================================================
# App
# =========================================================================

app = FastAPI(
    title="Export Optimizer API",
    description="Mesh export optimization service",
    version="0.1.0",
)

job_store = JobStore()


def resolve_settings(request: OptimizeRequest) -> OptimizationSettings:
    """Environment defaults, then the request's preset, then its overrides."""
    base = OptimizationSettings.from_env()
    if request.engine:
        base = OptimizationSettings.for_engine(request.engine)
    elif request.quality:
        base = OptimizationSettings.for_quality(request.quality)
    overrides = request.model_dump(
        include={"poly_reduction", "texture_atlasing", "mesh_merging", "generate_tangents", "generate_lods"},
        exclude_none=True,
    )
    settings = replace(base, **overrides)
    settings.validate()
    return settings


# =========================================================================
# Endpoints
# =========================================================================


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "jobs": len(job_store.jobs)}


@app.post("/analyze", response_model=AnalysisResponse)
async def analyze_scene(scene: ScenePayload):
    """Classify every mesh of a scene without optimizing it."""
    entries = []
    for position, mesh in enumerate(scene.to_meshes()):
        name = mesh.name or f"mesh_{position}"
        try:
            mesh.validate()
            analysis = analyze_geometry(mesh)
        except OptimizerError as e:
            entries.append(MeshAnalysisResponse(name=name, error=str(e)))
            continue
        entries.append(MeshAnalysisResponse(name=name, analysis=analysis.to_dict()))
    return AnalysisResponse(meshes=entries)


@app.post("/optimize", response_model=JobResponse)
async def optimize_scene(request: OptimizeRequest, background_tasks: BackgroundTasks):
    """Submit a scene for optimization. Returns job ID for status polling."""
    if not request.scene.meshes:
        raise HTTPException(400, "Scene has no meshes")
    try:
        settings = resolve_settings(request)
    except ValueError as e:
        raise HTTPException(400, str(e))

    job_id = job_store.create("optimize", {"scene": request.scene, "settings": settings})
    background_tasks.add_task(process_optimize_job, job_id)

    return JobResponse(
        job_id=job_id,
        status=JobStatus.PENDING,
        message="Job submitted successfully",
        created_at=job_store.get(job_id)["created_at"],
    )


@app.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(job_id: str):
    """Get status of an optimization job."""
    job = job_store.get(job_id)
    if not job:
        raise HTTPException(404, "Job not found")

    result = job.get("result") or {}
    return JobStatusResponse(
        job_id=job_id,
        status=job["status"],
        progress=job["progress"],
        summary=result.get("report", {}).get("summary"),
        result_url=f"/jobs/{job_id}/result" if job["status"] == JobStatus.COMPLETED else None,
        error_message=job.get("error"),
        created_at=job["created_at"],
        completed_at=job.get("completed_at"),
    )


@app.get("/jobs/{job_id}/result", response_model=OptimizeResultResponse)
async def get_job_result(job_id: str):
    """Optimized scene and report of a finished job."""
    job = job_store.get(job_id)
    if not job:
        raise HTTPException(404, "Job not found")
    if job["status"] != JobStatus.COMPLETED:
        raise HTTPException(400, "Job not completed")
    return job["result"]


# =========================================================================
# Background tasks
# =========================================================================


async def process_optimize_job(job_id: str):
    """Run the pipeline for a job in the background."""
    job = job_store.get(job_id)
    if not job:
        return

    job_store.update(job_id, status=JobStatus.PROCESSING, progress=0.0)
    params = job["params"]
    scene: ScenePayload = params["scene"]

    def on_progress(current, total):
        job_store.update(job_id, progress=current / total if total else 0.0)

    try:
        pipeline = ExportPipeline(
            params["settings"],
            texture_loader=InMemoryTextureLoader(scene.to_textures()),
        )
        meshes = scene.to_meshes()
        # Texture loading is awaited here; the compute runs in the thread pool.
        textures, failures = await pipeline.load_textures(pipeline.atlas_candidates(meshes))
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None,
            lambda: pipeline.run(meshes, textures, on_progress=on_progress, texture_failures=failures),
        )
    except (OptimizerError, ValueError) as e:
        logger.warning("Job %s failed: %s", job_id, e)
        job_store.set_failed(job_id, str(e))
        return
    except Exception as e:
        logger.exception("Job %s crashed", job_id)
        job_store.set_failed(job_id, str(e) or type(e).__name__)
        return

    textures = {}
    if result.atlas is not None:
        textures[result.atlas_texture_id] = result.atlas
    job_store.set_completed(job_id, {
        "scene": ScenePayload.from_meshes(result.meshes, textures),
        "report": result.report.to_dict(),
        "atlas_texture_id": result.atlas_texture_id,
    })


# =========================================================================
# Run
# =========================================================================


def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the API server."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)
