"""Tests for scene documents and texture loaders."""

import asyncio

import numpy as np
import pytest
from PIL import Image
from pydantic import ValidationError

from export_optimizer.materials import MaterialLibrary
from export_optimizer.models import Material
from export_optimizer.schema import MeshPayload, ScenePayload, TexturePayload, load_scene, save_scene
from export_optimizer.textures import FileTextureLoader, InMemoryTextureLoader, read_image, write_image

from conftest import make_cube, make_quad, make_texture


class TestMeshPayload:
    """Test mesh conversion."""

    def test_to_mesh_resolves_materials(self):
        payload = MeshPayload(
            name="wall",
            positions=[(0, 0, 0), (1, 0, 0), (0, 1, 0)],
            material="brick",
            element_type="wall",
        )
        materials = {"brick": Material(name="brick", base_color_texture="brick.png")}
        mesh = payload.to_mesh(materials)
        assert mesh.material.base_color_texture == "brick.png"
        assert mesh.element_type == "wall"
        assert mesh.positions.dtype == np.float32
        assert not mesh.is_indexed

    def test_unknown_material_becomes_plain(self):
        mesh = MeshPayload(positions=[(0, 0, 0)] * 3, material="mystery").to_mesh()
        assert mesh.material == Material(name="mystery")

    def test_transform_survives(self):
        matrix = np.eye(4)
        matrix[0, 3] = 5.0
        quad = make_quad()
        quad.transform = matrix
        mesh = MeshPayload.from_mesh(quad).to_mesh()
        np.testing.assert_array_equal(mesh.transform, matrix)

    def test_identity_transform_is_omitted(self, cube):
        assert MeshPayload.from_mesh(cube).transform is None

    def test_wrong_tuple_width_is_rejected(self):
        with pytest.raises(ValidationError):
            MeshPayload(positions=[(0, 0)])

    def test_negative_indices_are_rejected(self):
        with pytest.raises(ValidationError):
            MeshPayload(positions=[(0, 0, 0)] * 3, indices=[0, 1, -1])


class TestScenePayload:
    """Test whole-scene conversion."""

    def test_from_meshes_collects_materials(self, brick):
        scene = ScenePayload.from_meshes([make_quad(material=brick), make_cube(material=brick)])
        assert [m.name for m in scene.materials] == ["brick"]
        meshes = scene.to_meshes()
        library = MaterialLibrary()
        assert library.identity(meshes[0].material) == library.identity(meshes[1].material)
        assert meshes[1].normals.shape == (24, 3)

    def test_save_and_load(self, tmp_path, brick):
        path = save_scene(
            ScenePayload.from_meshes([make_quad(material=brick)], {"brick.png": make_texture(4, 2, 7)}),
            tmp_path / "nested" / "scene.json",
        )
        scene = load_scene(path)
        [texture] = scene.to_textures().values()
        assert (texture.width, texture.height) == (4, 2)
        assert (texture.pixels == 7).all()
        assert scene.meshes[0].normals is None

    def test_texture_size_mismatch(self):
        payload = TexturePayload(id="t", width=2, height=2, data="AAAA")
        with pytest.raises(ValueError):
            payload.to_image()


class TestTextureLoaders:
    """Test texture loaders."""

    def test_in_memory(self, textures):
        loader = InMemoryTextureLoader(textures)
        assert asyncio.run(loader.load("brick.png")) is textures["brick.png"]
        with pytest.raises(FileNotFoundError):
            asyncio.run(loader.load("nope.png"))

    def test_file_loader_decodes_rgba(self, tmp_path):
        Image.new("RGB", (3, 2), (255, 0, 0)).save(tmp_path / "red.png")
        image = asyncio.run(FileTextureLoader(tmp_path).load("red.png"))
        assert (image.width, image.height) == (3, 2)
        assert image.pixels[0, 0].tolist() == [255, 0, 0, 255]

    def test_file_loader_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            asyncio.run(FileTextureLoader(tmp_path).load("missing.png"))

    def test_write_and_read(self, tmp_path):
        path = write_image(make_texture(8, 4, 99), tmp_path / "out" / "atlas.png")
        image = read_image(path)
        assert image.pixels.shape == (4, 8, 4)
        assert (image.pixels == 99).all()
