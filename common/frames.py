from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Tuple

import cv2
import numpy as np

from common.types import ImageFrame
from common.utils import iso_now_ms

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp")


@dataclass
class VideoFrameSource:
    """
    Replay frames from a video file.

    Args:
        path: path to video file
        resize: (width, height) to resize frames, or None to keep native
        grayscale: if True, convert to gray before emitting
        limit: stop after this many frames (None = until EOF)
    """
    path: str
    resize: Optional[Tuple[int, int]] = None
    grayscale: bool = False
    limit: Optional[int] = None

    def frames(self) -> Iterator[ImageFrame]:
        if not Path(self.path).exists():
            raise FileNotFoundError(f"Video not found: {self.path}")
        cap = cv2.VideoCapture(self.path)
        if not cap.isOpened():
            raise RuntimeError(f"Cannot open video: {self.path}")

        n = 0
        try:
            while self.limit is None or n < self.limit:
                ok, img = cap.read()
                if not ok:
                    break
                img = _prepare(img, self.resize, self.grayscale)
                H, W = img.shape[:2]
                yield ImageFrame(ts=iso_now_ms(), index=n, width=W, height=H, frame=img, source=self.path)
                n += 1
        finally:
            cap.release()


@dataclass
class ImageDirSource:
    """
    Emit the images of a directory in name order (one frame per file).
    Files OpenCV cannot read are skipped.
    """
    path: str
    resize: Optional[Tuple[int, int]] = None
    grayscale: bool = False
    limit: Optional[int] = None

    def files(self) -> list[Path]:
        root = Path(self.path)
        if not root.is_dir():
            raise FileNotFoundError(f"Image directory not found: {self.path}")
        return sorted(p for p in root.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)

    def frames(self) -> Iterator[ImageFrame]:
        n = 0
        for p in self.files():
            if self.limit is not None and n >= self.limit:
                break
            img = cv2.imread(str(p), cv2.IMREAD_COLOR)
            if img is None:
                continue
            img = _prepare(img, self.resize, self.grayscale)
            H, W = img.shape[:2]
            yield ImageFrame(ts=iso_now_ms(), index=n, width=W, height=H, frame=img, source=str(p))
            n += 1


def _prepare(img: np.ndarray, resize: Optional[Tuple[int, int]], grayscale: bool) -> np.ndarray:
    if resize:
        w, h = resize
        img = cv2.resize(img, (w, h), interpolation=cv2.INTER_AREA)
    if grayscale and img.ndim == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    return img
