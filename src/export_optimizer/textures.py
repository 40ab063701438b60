"""Texture loaders.

Loading is the only I/O in the pipeline and is awaited; decoding runs on
a worker thread so independent textures load concurrently.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Hashable, Mapping, Optional, Protocol, Union

import numpy as np
from PIL import Image

from export_optimizer.models import TextureImage


class TextureLoader(Protocol):
    async def load(self, ref: Hashable) -> TextureImage:
        ...


class InMemoryTextureLoader:
    """Serves already-decoded textures from a mapping."""

    def __init__(self, textures: Optional[Mapping[Hashable, TextureImage]] = None) -> None:
        self.textures = dict(textures or {})

    async def load(self, ref: Hashable) -> TextureImage:
        try:
            return self.textures[ref]
        except KeyError:
            raise FileNotFoundError(f"Texture not found: {ref}") from None


def read_image(path: Union[str, Path]) -> TextureImage:
    """Decode an image file to RGBA."""
    with Image.open(path) as img:
        rgba = np.asarray(img.convert("RGBA"), dtype=np.uint8)
    height, width = rgba.shape[:2]
    return TextureImage(width=width, height=height, pixels=rgba)


def write_image(image: TextureImage, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(image.pixels).save(path)
    return path


class FileTextureLoader:
    """Loads textures from disk; relative refs resolve against ``base_dir``."""

    def __init__(self, base_dir: Optional[Union[str, Path]] = None) -> None:
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()

    def resolve(self, ref: Hashable) -> Path:
        path = Path(str(ref))
        return path if path.is_absolute() else self.base_dir / path

    async def load(self, ref: Hashable) -> TextureImage:
        path = self.resolve(ref)
        if not path.exists():
            raise FileNotFoundError(f"Texture file not found: {path}")
        return await asyncio.to_thread(read_image, path)
