"""Export Optimizer - Mesh preparation for game-engine export."""

__version__ = "0.1.0"

from export_optimizer.pipeline import ExportPipeline, PipelineResult, optimize
from export_optimizer.analysis import analyze_geometry
from export_optimizer.models import (
    GeometryAnalysis,
    GeometryType,
    Material,
    Mesh,
    OptimizationReport,
    TextureImage,
    UVMappingOptions,
    UVMethod,
)
from export_optimizer.settings import OptimizationSettings
from export_optimizer.lod import LODChain
from export_optimizer.errors import OptimizerError

__all__ = [
    "ExportPipeline",
    "PipelineResult",
    "optimize",
    "analyze_geometry",
    "GeometryAnalysis",
    "GeometryType",
    "Material",
    "Mesh",
    "OptimizationReport",
    "TextureImage",
    "UVMappingOptions",
    "UVMethod",
    "OptimizationSettings",
    "LODChain",
    "OptimizerError",
]
