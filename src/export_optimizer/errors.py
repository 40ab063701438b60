"""Exceptions raised by the export optimizer.

Per-mesh failures are caught by the pipeline and recorded in the report;
only ``EmptyMeshSetError`` is meant to reach the caller.
"""

from __future__ import annotations

from typing import Optional


class OptimizerError(Exception):
    """Base exception for all optimizer errors."""

    def __init__(self, message: str, mesh: Optional[str] = None) -> None:
        super().__init__(message)
        self.mesh = mesh


class MissingAttributeError(OptimizerError):
    """A required buffer (positions, normals, UVs) is absent."""

    def __init__(self, attribute: str, mesh: Optional[str] = None) -> None:
        label = f" on mesh '{mesh}'" if mesh else ""
        super().__init__(f"Missing required attribute '{attribute}'{label}", mesh)
        self.attribute = attribute


class InvalidUVError(OptimizerError):
    """A generated UV coordinate is NaN or infinite."""

    def __init__(self, mesh: Optional[str], index: int) -> None:
        super().__init__(
            f"Non-finite UV coordinate at vertex {index} of mesh '{mesh}'",
            mesh,
        )
        self.index = index


class InvalidMeshError(OptimizerError):
    """Mesh buffers violate the index/vertex-count invariants."""


class EmptyMeshSetError(OptimizerError):
    """The pipeline was given nothing to optimize."""

    def __init__(self) -> None:
        super().__init__("No meshes to optimize")
