"""Tests for texture atlas packing."""

import itertools

import numpy as np
import pytest

from export_optimizer.atlas import apply_atlas, atlas_size, next_power_of_two, pack_textures, remap_uvs
from export_optimizer.materials import MaterialLibrary
from export_optimizer.models import Material, TextureRegion

from conftest import make_quad, make_texture


class TestAtlasSize:
    """Test atlas sizing."""

    def test_next_power_of_two(self):
        assert next_power_of_two(1) == 1
        assert next_power_of_two(5) == 8
        assert next_power_of_two(64) == 64
        assert next_power_of_two(65) == 128

    def test_area_with_slack(self):
        # 2 * 64 * 64 * 1.2 -> sqrt ~ 99.1 -> 128
        textures = {"a": make_texture(64, 64, 1), "b": make_texture(64, 64, 2)}
        assert atlas_size(textures) == 128

    def test_at_least_largest_side(self):
        assert atlas_size({"a": make_texture(256, 8, 1)}) == 256

    def test_clamped_to_max(self):
        assert atlas_size({"a": make_texture(512, 512, 1)}, max_size=256) == 256


class TestPackTextures:
    """Test the row packer."""

    def test_regions_do_not_overlap_and_fit(self):
        textures = {f"t{i}": make_texture(16 + 8 * (i % 3), 16 + 4 * (i % 4), i) for i in range(10)}
        atlas = pack_textures(textures)
        assert not atlas.overflowed
        assert len(atlas.regions) == 10
        for region in atlas.regions.values():
            assert region.x >= 0 and region.y >= 0
            assert region.x + region.width <= atlas.size
            assert region.y + region.height <= atlas.size
        for a, b in itertools.combinations(atlas.regions.values(), 2):
            assert not a.overlaps(b)

    def test_pixels_are_copied(self, textures):
        atlas = pack_textures(textures)
        brick = atlas.regions["brick.png"]
        wood = atlas.regions["wood.png"]
        assert (brick.x, brick.y) == (0, 0)
        assert (wood.x, wood.y) == (64, 0)
        assert (atlas.image.pixels[0:64, 0:64] == 10).all()
        assert (atlas.image.pixels[0:64, 64:96] == 20).all()
        assert atlas.image.pixels.shape == (atlas.size, atlas.size, 4)

    def test_rows_wrap(self):
        textures = {name: make_texture(64, 64, 1) for name in "abc"}
        atlas = pack_textures(textures)
        assert atlas.size == 128
        assert atlas.regions["c"] == TextureRegion(x=0, y=64, width=64, height=64)

    def test_overflow_drops_remaining(self):
        textures = {name: make_texture(64, 64, 1) for name in "abcde"}
        atlas = pack_textures(textures, max_size=128)
        assert list(atlas.regions) == ["a", "b", "c", "d"]
        assert atlas.dropped == ["e"]
        assert atlas.overflowed


class TestApplyAtlas:
    """Test UV remapping into atlas regions."""

    def test_remap_uvs(self):
        region = TextureRegion(x=64, y=0, width=32, height=64)
        remapped = remap_uvs(np.array([[0.0, 0.0], [1.0, 1.0]]), region, 128)
        np.testing.assert_allclose(remapped, [[0.5, 0.0], [0.75, 0.5]])

    def test_meshes_are_retextured(self, brick, wood, textures):
        uvs = np.array([[0, 0], [1, 0], [1, 1], [0, 1]])
        meshes = [make_quad(material=brick, uvs=uvs, name="a"), make_quad(material=wood, uvs=uvs, name="b")]
        atlas = pack_textures(textures)
        result, warnings = apply_atlas(meshes, atlas, MaterialLibrary(), "atlas")
        assert warnings == []
        assert [m.material for m in result] == [
            Material(name="brick", base_color_texture="atlas"),
            Material(name="wood", base_color_texture="atlas"),
        ]
        assert result[1].uvs[:, 0].min() == pytest.approx(0.5)
        # Originals are untouched.
        assert meshes[0].material.base_color_texture == "brick.png"

    def test_mesh_without_uvs_is_reported(self, brick, textures):
        atlas = pack_textures(textures)
        result, warnings = apply_atlas([make_quad(material=brick, name="bare")], atlas, MaterialLibrary(), "atlas")
        assert warnings[0][0] == "bare"
        assert result[0].material.base_color_texture == "brick.png"
