"""Tests for OptimizationSettings."""

import pytest

from export_optimizer.models import UVMappingOptions
from export_optimizer.settings import OptimizationSettings


class TestPresets:
    """Test quality and engine presets."""

    @pytest.mark.parametrize("quality,reduction", [("high", 0.0), ("medium", 0.3), ("low", 0.5)])
    def test_for_quality(self, quality, reduction):
        settings = OptimizationSettings.for_quality(quality)
        assert settings.quality == quality
        assert settings.poly_reduction == reduction
        settings.validate()

    def test_for_quality_overrides(self):
        settings = OptimizationSettings.for_quality("low", mesh_merging=False)
        assert settings.poly_reduction == 0.5
        assert settings.mesh_merging is False

    def test_unknown_quality(self):
        with pytest.raises(ValueError):
            OptimizationSettings.for_quality("ultra")

    def test_unity(self):
        settings = OptimizationSettings.for_engine("Unity")
        assert settings.texture_atlasing and settings.generate_lods
        assert settings.poly_reduction == 0.3

    def test_unreal(self):
        settings = OptimizationSettings.for_engine("unreal")
        assert settings.texture_atlasing is False
        assert settings.generate_lods is True
        assert settings.poly_reduction == 0.0

    def test_godot(self):
        settings = OptimizationSettings.for_engine("godot")
        assert settings.texture_atlasing is True
        assert settings.generate_lods is False

    def test_unknown_engine(self):
        with pytest.raises(ValueError):
            OptimizationSettings.for_engine("cryengine")


class TestValidate:
    """Test settings validation."""

    def test_defaults_are_valid(self):
        OptimizationSettings().validate()

    @pytest.mark.parametrize("overrides", [
        {"poly_reduction": 1.0},
        {"poly_reduction": -0.1},
        {"max_atlas_size": 1000},
        {"uv_regenerate_below": 1.5},
        {"lod_ratios": (1.0, 0.0)},
        {"quality": "ultra"},
        {"uv_options": UVMappingOptions(projection_axes=("x", "x"))},
        {"uv_options": UVMappingOptions(projection_axes=("x", "w"))},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            OptimizationSettings(**overrides).validate()


class TestFromEnv:
    """Test environment overrides."""

    def test_scalar_fields(self):
        env = {
            "EXPORT_OPTIMIZER_POLY_REDUCTION": "0.5",
            "EXPORT_OPTIMIZER_MESH_MERGING": "false",
            "EXPORT_OPTIMIZER_MAX_ATLAS_SIZE": "2048",
            "EXPORT_OPTIMIZER_ATLAS_TEXTURE_ID": "shared",
            "UNRELATED": "1",
        }
        settings = OptimizationSettings.from_env(env)
        assert settings.poly_reduction == 0.5
        assert settings.mesh_merging is False
        assert settings.max_atlas_size == 2048
        assert settings.atlas_texture_id == "shared"

    def test_base_is_kept(self):
        base = OptimizationSettings.for_engine("unreal")
        settings = OptimizationSettings.from_env({"EXPORT_OPTIMIZER_GENERATE_TANGENTS": "yes"}, base=base)
        assert settings.generate_tangents is True
        assert settings.texture_atlasing is False

    def test_bad_boolean(self):
        with pytest.raises(ValueError):
            OptimizationSettings.from_env({"EXPORT_OPTIMIZER_CLAMP_UVS": "maybe"})

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("EXPORT_OPTIMIZER_WELD_VERTICES", "0")
        assert OptimizationSettings.from_env().weld_vertices is False
