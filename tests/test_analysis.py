"""Tests for geometry analysis."""

import numpy as np
import pytest

from export_optimizer.analysis import analyze_geometry, classify, recommend_method, surface_area
from export_optimizer.errors import MissingAttributeError
from export_optimizer.models import GeometryType, Mesh, Orientation, UVMethod


class TestClassify:
    """Test bounding-box classification rules."""

    def test_flat_box_is_floor(self):
        assert classify(np.array([4.0, 0.0, 4.0])) == (GeometryType.FLOOR, Orientation.HORIZONTAL)

    def test_thin_and_tall_is_wall(self):
        kind, orientation = classify(np.array([1.0, 3.0, 0.05]))
        assert kind == GeometryType.WALL
        assert orientation == Orientation.HORIZONTAL

    def test_thin_and_wide_is_floor(self):
        kind, _ = classify(np.array([3.0, 1.0, 0.05]))
        assert kind == GeometryType.FLOOR

    def test_elongated_is_vertical_wall(self):
        assert classify(np.array([10.0, 1.0, 1.0])) == (GeometryType.WALL, Orientation.VERTICAL)

    def test_cubic_taller_is_door(self):
        assert classify(np.array([1.0, 1.1, 1.0])) == (GeometryType.DOOR, Orientation.VERTICAL)

    def test_cubic_wider_is_window(self):
        assert classify(np.array([1.0, 1.0, 1.0])) == (GeometryType.WINDOW, Orientation.VERTICAL)

    def test_ratio_bounds_are_inclusive(self):
        kind, _ = classify(np.array([0.8, 1.0, 1.0]))
        assert kind == GeometryType.DOOR

    def test_other_shapes_are_generic(self):
        assert classify(np.array([1.0, 2.0, 3.0])) == (GeometryType.GENERIC, Orientation.MIXED)

    def test_zero_size_is_generic(self):
        assert classify(np.zeros(3)) == (GeometryType.GENERIC, Orientation.MIXED)


class TestRecommendMethod:
    """Test UV method recommendation."""

    def test_floor_and_ceiling_are_planar(self):
        assert recommend_method(GeometryType.FLOOR, 0.9, True) == UVMethod.PLANAR
        assert recommend_method(GeometryType.CEILING, 0.0, False) == UVMethod.PLANAR

    def test_wall_depends_on_complexity(self):
        assert recommend_method(GeometryType.WALL, 0.2, False) == UVMethod.PLANAR
        assert recommend_method(GeometryType.WALL, 0.6, False) == UVMethod.BOX

    def test_holes_or_complexity_give_box(self):
        assert recommend_method(GeometryType.GENERIC, 0.1, True) == UVMethod.BOX
        assert recommend_method(GeometryType.DOOR, 0.8, False) == UVMethod.BOX

    def test_otherwise_auto(self):
        assert recommend_method(GeometryType.WINDOW, 0.1, False) == UVMethod.AUTO


class TestAnalyzeGeometry:
    """Test analyze_geometry."""

    def test_quad(self, quad):
        analysis = analyze_geometry(quad)
        assert analysis.type == GeometryType.FLOOR
        assert analysis.dimensions == pytest.approx((1.0, 0.0, 1.0))
        assert analysis.complexity == pytest.approx(0.004)
        assert analysis.has_holes_heuristic is False
        assert analysis.surface_area == pytest.approx(1.0)
        assert analysis.recommended_method == UVMethod.PLANAR

    def test_cube(self, cube):
        analysis = analyze_geometry(cube)
        assert analysis.type == GeometryType.WINDOW
        assert analysis.surface_area == pytest.approx(6.0)
        assert analysis.recommended_method == UVMethod.AUTO

    def test_grid_trips_hole_heuristic(self, grid):
        analysis = analyze_geometry(grid)
        assert grid.index_count == 3000
        assert analysis.has_holes_heuristic is True
        assert analysis.complexity == pytest.approx(0.546)

    def test_complexity_is_capped(self):
        mesh = Mesh(positions=np.random.default_rng(0).random((3000, 3)))
        assert analyze_geometry(mesh).complexity == 1.0

    def test_non_indexed_never_has_holes(self):
        mesh = Mesh(positions=np.random.default_rng(1).random((3003, 3)))
        assert analyze_geometry(mesh).has_holes_heuristic is False

    def test_element_type_overrides_type(self, quad):
        quad.element_type = "ceiling"
        analysis = analyze_geometry(quad)
        assert analysis.type == GeometryType.CEILING
        assert analysis.orientation == Orientation.HORIZONTAL
        assert analysis.recommended_method == UVMethod.PLANAR

    def test_unknown_element_type_is_ignored(self, quad):
        quad.element_type = "staircase"
        assert analyze_geometry(quad).type == GeometryType.FLOOR

    def test_empty_mesh_raises(self):
        with pytest.raises(MissingAttributeError) as exc:
            analyze_geometry(Mesh(positions=None, name="empty"))
        assert exc.value.attribute == "positions"
        assert exc.value.mesh == "empty"

    def test_surface_area_non_indexed(self):
        mesh = Mesh(positions=[(0, 0, 0), (2, 0, 0), (0, 2, 0)])
        assert surface_area(mesh) == pytest.approx(2.0)
