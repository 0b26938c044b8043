"""Image decode/encode through OpenCV.

Loaded images are float32 in [0, 1] with RGB channel order. Values are stored
exactly as decoded; use :func:`cap_dehaze.image.srgb_to_linear` and
:func:`cap_dehaze.image.linear_to_srgb` when linear light is needed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import NamedTuple, Union

import cv2
import numpy as np

from cap_dehaze.image import ImageError, ensure_float_image

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class OutputPaths(NamedTuple):
    unfiltered_depth: Path
    depth: Path
    dehazed: Path


def output_paths(path: PathLike) -> OutputPaths:
    """Output files written next to ``path`` for one dehazing run."""
    path = Path(path)
    stem = path.with_suffix("")
    ext = path.suffix or ".jpg"
    return OutputPaths(
        unfiltered_depth=Path(f"{stem}_unfiltered_depth{ext}"),
        depth=Path(f"{stem}_depth{ext}"),
        dehazed=Path(f"{stem}_dehazed{ext}"),
    )


def _read(path: PathLike, flags: int) -> np.ndarray:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")

    logger.info("Loading image '%s'.", path)
    try:
        image = cv2.imread(str(path), flags)
    except cv2.error as exc:
        raise ImageError(f"Failed to load image '{path}': {exc}") from exc
    if image is None:
        raise ImageError(f"Failed to load image '{path}': unsupported or corrupt file.")

    logger.info("Image dimensions: %dx%d.", image.shape[1], image.shape[0])
    return image


def _write(path: PathLike, image: np.ndarray) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger.info("Saving image to '%s'.", path)
    try:
        ok = cv2.imwrite(str(path), image)
    except cv2.error as exc:
        raise ImageError(f"Failed to save image '{path}': {exc}") from exc
    if not ok:
        raise ImageError(f"Failed to save image '{path}': no encoder for '{path.suffix}'.")
    logger.info("Wrote '%s'.", path)


def _to_8bit(image: np.ndarray) -> np.ndarray:
    return np.clip(np.nan_to_num(image) * 255.0 + 0.5, 0, 255).astype(np.uint8)


def load_rgb_image(path: PathLike) -> np.ndarray:
    """Load a colour image as float32 RGB in [0, 1], shape (H, W, 3)."""
    image = _read(path, cv2.IMREAD_COLOR)
    return ensure_float_image(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def load_grey_image(path: PathLike) -> np.ndarray:
    """Load an image as float32 greyscale in [0, 1], shape (H, W)."""
    return ensure_float_image(_read(path, cv2.IMREAD_GRAYSCALE))


def save_rgb_image(image: np.ndarray, path: PathLike) -> None:
    """Save a float RGB image in [0, 1]; out-of-range values are clipped."""
    if image.ndim != 3 or image.shape[2] != 3:
        raise ImageError(f"Expected a 3-channel image, got shape {image.shape}.")
    _write(path, cv2.cvtColor(_to_8bit(image), cv2.COLOR_RGB2BGR))


def save_grey_image(image: np.ndarray, path: PathLike) -> None:
    """Save a float scalar image in [0, 1]; out-of-range values are clipped."""
    if image.ndim != 2:
        raise ImageError(f"Expected a single-channel image, got shape {image.shape}.")
    _write(path, _to_8bit(image))
