"""Tests for LOD chain generation."""

import pytest

from export_optimizer.lod import LODChain


class TestLODChain:
    """Test LODChain."""

    def test_default_levels(self, grid):
        results = LODChain(grid).generate()
        assert [r.level for r in results] == [0, 1, 2, 3]
        assert [r.triangle_count for r in results] == [1000, 500, 250, 100]
        assert results[0].mesh is grid

    def test_levels_are_named_and_compacted(self, grid):
        results = LODChain(grid, [1.0, 0.5]).generate()
        lod1 = results[1].mesh
        assert lod1.name == "grid_lod1"
        assert lod1.vertex_count < grid.vertex_count
        lod1.validate()

    def test_reduction_ratio(self, grid):
        results = LODChain(grid, [1.0, 0.25]).generate()
        assert results[0].reduction_ratio == pytest.approx(1.0)
        assert results[1].reduction_ratio == pytest.approx(0.25)

    def test_progress_callback(self, grid):
        calls = []
        LODChain(grid, [1.0, 0.5]).generate(on_progress=lambda current, total: calls.append((current, total)))
        assert calls == [(0, 2), (1, 2), (2, 2)]

    @pytest.mark.parametrize("ratios", [[1.0, 0.0], [1.5]])
    def test_invalid_ratios(self, grid, ratios):
        with pytest.raises(ValueError):
            LODChain(grid, ratios)
