"""Post-projection UV transforms, validation and seamless wrapping."""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from export_optimizer.errors import InvalidUVError
from export_optimizer.models import UVMappingOptions

MAX_UV_RANGE = 10.0
UV_SANE_BOUNDS = (-1.0, 2.0)


def apply_uv_transform(uvs: np.ndarray, options: UVMappingOptions) -> np.ndarray:
    """Flip, rotate about (0.5, 0.5), then scale and offset.

    Returns a new float64 array; the input is not modified.
    """
    result = np.array(uvs, dtype=np.float64, copy=True)
    u, v = result[:, 0], result[:, 1]

    if options.flip_u:
        u = 1 - u
    if options.flip_v:
        v = 1 - v

    if options.rotation != 0:
        cos, sin = math.cos(options.rotation), math.sin(options.rotation)
        rel_u, rel_v = u - 0.5, v - 0.5
        u = rel_u * cos - rel_v * sin + 0.5
        v = rel_u * sin + rel_v * cos + 0.5

    u = u * options.scale[0] + options.offset[0]
    v = v * options.scale[1] + options.offset[1]
    return np.column_stack((u, v))


def validate_uvs(uvs: np.ndarray, mesh: Optional[str] = None) -> list[str]:
    """Check generated UVs.

    Raises:
        InvalidUVError: a coordinate is NaN or infinite

    Returns:
        Warnings for suspicious ranges; these do not stop the pipeline.
    """
    if len(uvs) == 0:
        return []

    finite = np.isfinite(uvs).all(axis=1)
    if not finite.all():
        raise InvalidUVError(mesh, int(np.argmin(finite)))

    warnings = []
    lo = uvs.min(axis=0)
    hi = uvs.max(axis=0)
    if float((hi - lo).max()) > MAX_UV_RANGE:
        warnings.append("UV coordinates have very large range - may cause texture stretching")
    low, high = UV_SANE_BOUNDS
    if float(lo.min()) < low or float(hi.max()) > high:
        warnings.append("UV coordinates extend far outside 0-1 range")
    return warnings


def wrap_seamless(uvs: np.ndarray) -> np.ndarray:
    """Wrap every component into [0, 1) for tiling."""
    wrapped = uvs - np.floor(uvs)
    # Tiny negatives round up to exactly 1.0 in float32.
    wrapped[wrapped >= 1.0] = 0.0
    return wrapped
