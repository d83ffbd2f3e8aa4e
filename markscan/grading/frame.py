"""Captured frames: immutable RGBA pixel buffers."""

from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class Frame:
    """A single captured image.

    Frames are created per capture, read by every pipeline stage and then
    discarded. Nothing in the pipeline writes to the buffer.
    """

    width: int
    height: int
    data: bytes = field(repr=False)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Frame dimensions must be positive, got {self.width}x{self.height}")
        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise ValueError(f"RGBA buffer has {len(self.data)} bytes, expected {expected}")

    @classmethod
    def from_image(cls, image: Image.Image) -> "Frame":
        """Build a frame from any Pillow image."""
        rgba = image.convert("RGBA")
        return cls(width=rgba.width, height=rgba.height, data=rgba.tobytes())

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Frame":
        """Read an image file into a frame."""
        with Image.open(path) as image:
            return cls.from_image(image)

    def to_image(self) -> Image.Image:
        """Return a fresh Pillow image with a copy of the pixels."""
        return Image.frombytes("RGBA", (self.width, self.height), self.data)

    @cached_property
    def luminance(self) -> np.ndarray:
        """Per-pixel brightness ``(r + g + b) / 3`` as a read-only (height, width) array."""
        pixels = np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 4)
        plane = pixels[:, :, :3].astype(np.float32).sum(axis=2) / 3.0
        plane.flags.writeable = False
        return plane
