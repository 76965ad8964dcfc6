from __future__ import annotations
"""
Pixel buffers handed to the pipelines.

- ImageBuffer: width/height/channels + uint8 pixels, from raw bytes or an ndarray
- to_gray_u8: any supported buffer -> (H,W) uint8
- decode_gray: compressed bytes (PNG/JPEG/...) -> (H,W) uint8 via cv2.imdecode
"""

from dataclasses import dataclass
from typing import Union

import cv2
import numpy as np

from common.errors import DecodeError, InvalidInputError


_SUPPORTED_CHANNELS = (1, 3, 4)
_TO_GRAY = {
    (3, "RGB"): cv2.COLOR_RGB2GRAY,
    (3, "BGR"): cv2.COLOR_BGR2GRAY,
    (4, "RGB"): cv2.COLOR_RGBA2GRAY,
    (4, "BGR"): cv2.COLOR_BGRA2GRAY,
}


@dataclass(frozen=True)
class ImageBuffer:
    """
    Uncompressed pixels.

    Args:
        pixels: (H,W) or (H,W,C) uint8
        color_order: "RGB" (raw buffers from callers) or "BGR" (OpenCV arrays);
            ignored for single-channel images
    """
    pixels: np.ndarray
    color_order: str = "BGR"

    def __post_init__(self) -> None:
        p = self.pixels
        if not isinstance(p, np.ndarray):
            raise InvalidInputError("pixels must be a numpy ndarray")
        if p.ndim not in (2, 3) or p.size == 0:
            raise InvalidInputError(f"unsupported pixel array shape {p.shape}")
        if p.ndim == 3 and p.shape[2] not in _SUPPORTED_CHANNELS:
            raise InvalidInputError(f"unsupported channel count {p.shape[2]}")
        if self.color_order not in ("RGB", "BGR"):
            raise InvalidInputError(f"unknown color order {self.color_order!r}")
        if p.dtype != np.uint8:
            object.__setattr__(self, "pixels", np.clip(p, 0, 255).astype(np.uint8))

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @classmethod
    def from_bytes(
        cls, data: bytes, width: int, height: int, channels: int, color_order: str = "RGB"
    ) -> "ImageBuffer":
        """Interleaved row-major uint8 pixels, as delivered by a camera or UI layer."""
        if not data:
            raise InvalidInputError("empty pixel buffer")
        if width <= 0 or height <= 0:
            raise InvalidInputError(f"non-positive dimensions {width}x{height}")
        if channels not in _SUPPORTED_CHANNELS:
            raise InvalidInputError(f"unsupported channel count {channels}")
        need = width * height * channels
        if len(data) < need:
            raise InvalidInputError(f"buffer holds {len(data)} bytes, {need} required")
        a = np.frombuffer(data, dtype=np.uint8, count=need)
        a = a.reshape(height, width) if channels == 1 else a.reshape(height, width, channels)
        return cls(a, color_order=color_order)

    def to_gray(self) -> np.ndarray:
        p = self.pixels
        if p.ndim == 2:
            return p
        if p.shape[2] == 1:
            return p[:, :, 0]
        return cv2.cvtColor(p, _TO_GRAY[(p.shape[2], self.color_order)])


ImageLike = Union[ImageBuffer, np.ndarray]


def to_gray_u8(img: ImageLike) -> np.ndarray:
    """ndarrays are taken as OpenCV images (BGR/BGRA when colour)."""
    buf = img if isinstance(img, ImageBuffer) else ImageBuffer(img)
    return np.ascontiguousarray(buf.to_gray())


def decode_gray(data: bytes, *, which: str = "image") -> np.ndarray:
    if not data:
        raise InvalidInputError(f"{which}: empty buffer")
    arr = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_GRAYSCALE)
    if img is None or img.size == 0:
        raise DecodeError(f"{which}: bytes are not a decodable image", which=which)
    return img
