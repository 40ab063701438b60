"""
Shared pytest fixtures for export-optimizer tests.

Meshes are built programmatically so every test starts from known
geometry: a floor quad, a unit cube with per-face normals, and a
1000-triangle grid.
"""

from __future__ import annotations

from typing import Optional

import numpy as np
import pytest

from export_optimizer.models import Material, Mesh, TextureImage


# ============================================================================
# GEOMETRY BUILDERS
# ============================================================================

def make_quad(
    size: float = 1.0,
    orphans: int = 0,
    material=None,
    name: str = "quad",
    uvs: Optional[np.ndarray] = None,
) -> Mesh:
    """Unit quad in the XZ plane facing +Y, plus optional unreferenced vertices."""
    positions = [
        (0.0, 0.0, 0.0),
        (size, 0.0, 0.0),
        (size, 0.0, size),
        (0.0, 0.0, size),
    ]
    # Orphans sit inside the quad so they do not change the bounds.
    positions += [(size * 0.5, 0.0, size * 0.5)] * orphans
    return Mesh(
        positions=np.array(positions),
        indices=np.array([0, 2, 1, 0, 3, 2]),
        uvs=uvs,
        material=material,
        name=name,
    )


def make_cube(name: str = "cube", material=None) -> Mesh:
    """Unit cube centered on the origin, 24 vertices with per-face normals."""
    positions, normals, indices = [], [], []
    for axis in range(3):
        u_axis, v_axis = [a for a in range(3) if a != axis]
        for sign in (1.0, -1.0):
            base = len(positions)
            for du, dv in ((-0.5, -0.5), (0.5, -0.5), (0.5, 0.5), (-0.5, 0.5)):
                point = [0.0, 0.0, 0.0]
                point[axis] = 0.5 * sign
                point[u_axis] = du
                point[v_axis] = dv
                positions.append(point)
                normal = [0.0, 0.0, 0.0]
                normal[axis] = sign
                normals.append(normal)
            indices += [base, base + 1, base + 2, base, base + 2, base + 3]
    return Mesh(
        positions=np.array(positions),
        normals=np.array(normals),
        indices=np.array(indices),
        material=material,
        name=name,
    )


def make_grid(columns: int = 25, rows: int = 20, material=None, name: str = "grid") -> Mesh:
    """Flat XZ grid with 2 * columns * rows triangles and shared vertices."""
    xs, zs = np.meshgrid(np.arange(columns + 1, dtype=float), np.arange(rows + 1, dtype=float))
    positions = np.column_stack((xs.ravel(), np.zeros(xs.size), zs.ravel()))
    indices = []
    stride = columns + 1
    for r in range(rows):
        for c in range(columns):
            i = r * stride + c
            indices += [i, i + stride, i + 1, i + 1, i + stride, i + stride + 1]
    return Mesh(positions=positions, indices=np.array(indices), material=material, name=name)


def make_texture(width: int, height: int, value: int) -> TextureImage:
    return TextureImage(width=width, height=height, pixels=np.full((height, width, 4), value, dtype=np.uint8))


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def quad() -> Mesh:
    return make_quad()


@pytest.fixture
def quad_with_orphans() -> Mesh:
    """4 referenced vertices plus 4 orphans, 2 triangles."""
    return make_quad(orphans=4)


@pytest.fixture
def cube() -> Mesh:
    return make_cube()


@pytest.fixture
def grid() -> Mesh:
    """1000 triangles, 546 vertices."""
    return make_grid()


@pytest.fixture
def brick() -> Material:
    return Material(name="brick", base_color_texture="brick.png")


@pytest.fixture
def wood() -> Material:
    return Material(name="wood", base_color_texture="wood.png")


@pytest.fixture
def textures() -> dict:
    return {
        "brick.png": make_texture(64, 64, 10),
        "wood.png": make_texture(32, 64, 20),
    }
