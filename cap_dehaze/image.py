"""Image containers and pixel helpers.

Images are plain numpy arrays: a scalar image is ``(H, W)`` and a colour image
is ``(H, W, 3)`` in RGB order, both float32 with values nominally in [0, 1].
This module holds the small amount of bookkeeping the filters need on top of
that: size checks, channel split/join, colour accessors and rectangular views.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, NamedTuple, Tuple

import numpy as np

from cap_dehaze.config import LUMINANCE_WEIGHTS

logger = logging.getLogger(__name__)


class ImageError(Exception):
    """Raised on mismatched image sizes and codec failures."""


def check_sizes(lhs: np.ndarray, rhs: np.ndarray) -> None:
    """Raise ImageError unless both images have the same width and height."""
    if lhs.shape[:2] != rhs.shape[:2]:
        raise ImageError(
            f"Images of different sizes: {lhs.shape[1]}x{lhs.shape[0]} "
            f"and {rhs.shape[1]}x{rhs.shape[0]}."
        )


def ensure_float_image(image: np.ndarray) -> np.ndarray:
    """Return float32 image in [0, 1]."""
    if image.dtype == np.uint8:
        return image.astype(np.float32) / 255.0
    if np.issubdtype(image.dtype, np.floating):
        return image.astype(np.float32)
    info = np.iinfo(image.dtype)
    return image.astype(np.float32) / float(info.max)


def split_channels(image: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split a colour image into three independent scalar images."""
    if image.ndim != 3 or image.shape[2] != 3:
        raise ImageError(f"Expected a 3-channel image, got shape {image.shape}.")
    return tuple(np.ascontiguousarray(image[:, :, c]) for c in range(3))


def join_channels(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Join three scalar images into one colour image."""
    check_sizes(r, g)
    check_sizes(g, b)
    return np.stack([r, g, b], axis=2)


def luminance(image: np.ndarray) -> np.ndarray:
    wr, wg, wb = LUMINANCE_WEIGHTS
    return wr * image[..., 0] + wg * image[..., 1] + wb * image[..., 2]


def saturation(image: np.ndarray) -> np.ndarray:
    """(max channel - min channel) / luminance, 0 where luminance is 0."""
    lum = luminance(image)
    spread = image.max(axis=-1) - image.min(axis=-1)
    return np.divide(spread, lum, out=np.zeros_like(lum), where=lum != 0)


def normalise(image: np.ndarray) -> np.ndarray:
    """Stretch a scalar image so its minimum becomes 0.0 and its maximum 1.0."""
    lo = image.min()
    hi = image.max()
    if hi == lo:
        logger.warning("Cannot normalise a constant image (value %g); returning zeros.", lo)
        return np.zeros_like(image)
    return (image - lo) / (hi - lo)


def srgb_to_linear(value: np.ndarray) -> np.ndarray:
    value = np.asarray(value)
    curve = np.power((np.maximum(value, 0.04045) + 0.055) / 1.055, 2.4)
    return np.where(value <= 0.04045, value / 12.92, curve)


def linear_to_srgb(value: np.ndarray) -> np.ndarray:
    value = np.asarray(value)
    curve = 1.055 * np.power(np.maximum(value, 0.0031308), 1.0 / 2.4) - 0.055
    return np.where(value <= 0.0031308, value * 12.92, curve)


# ---------------------------------------------------------------------------
# Pixels and coordinates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Pixel:
    """RGB colour sample."""

    r: float = 0.0
    g: float = 0.0
    b: float = 0.0

    @classmethod
    def from_array(cls, values) -> "Pixel":
        r, g, b = (float(v) for v in values)
        return cls(r, g, b)

    def to_array(self) -> np.ndarray:
        return np.array([self.r, self.g, self.b], dtype=np.float32)

    def __add__(self, other: "Pixel") -> "Pixel":
        return Pixel(self.r + other.r, self.g + other.g, self.b + other.b)

    def __sub__(self, other: "Pixel") -> "Pixel":
        return Pixel(self.r - other.r, self.g - other.g, self.b - other.b)

    def __mul__(self, factor: float) -> "Pixel":
        return Pixel(self.r * factor, self.g * factor, self.b * factor)

    __rmul__ = __mul__

    def __truediv__(self, denom: float) -> "Pixel":
        return Pixel(self.r / denom, self.g / denom, self.b / denom)

    @property
    def luminance(self) -> float:
        wr, wg, wb = LUMINANCE_WEIGHTS
        return wr * self.r + wg * self.g + wb * self.b

    @property
    def saturation(self) -> float:
        lum = self.luminance
        if lum == 0.0:
            return 0.0
        return (max(self.r, self.g, self.b) - min(self.r, self.g, self.b)) / lum

    def blend(self, other: "Pixel", amount: float) -> "Pixel":
        """Linear blend towards ``other``; amount 0 keeps self, 1 gives other."""
        return other * amount + self * (1.0 - amount)


class Coord(NamedTuple):
    x: int
    y: int

    def __add__(self, other: "Coord") -> "Coord":
        return Coord(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Coord") -> "Coord":
        return Coord(self.x - other.x, self.y - other.y)


def _clamp(value: int, lo: int, hi: int) -> int:
    return min(max(value, lo), hi)


def get_pixel(image: np.ndarray, coord: Coord):
    """Pixel at ``coord``, with the coordinate clamped to the image borders."""
    h, w = image.shape[:2]
    return image[_clamp(coord.y, 0, h - 1), _clamp(coord.x, 0, w - 1)]


def get_pixel_unsafe(image: np.ndarray, coord: Coord):
    """Pixel at ``coord``. The caller guarantees the coordinate is in bounds."""
    return image[coord.y, coord.x]


@dataclass(frozen=True)
class ImageView:
    """Rectangular window over an image.

    Sub-views are intersected with their parent, so a view never reaches
    outside the image it was created from.
    """

    offset: Coord
    width: int
    height: int

    @classmethod
    def of(cls, image: np.ndarray) -> "ImageView":
        h, w = image.shape[:2]
        return cls(Coord(0, 0), w, h)

    def sub_view(self, offset: Coord, width: int, height: int) -> "ImageView":
        """View of ``width`` x ``height`` at ``offset`` relative to this view."""
        x0 = max(self.offset.x + offset.x, self.offset.x)
        y0 = max(self.offset.y + offset.y, self.offset.y)
        x1 = min(self.offset.x + offset.x + width, self.offset.x + self.width)
        y1 = min(self.offset.y + offset.y + height, self.offset.y + self.height)
        return ImageView(Coord(x0, y0), max(0, x1 - x0), max(0, y1 - y0))

    def centred_sub_view(self, centre: Coord, width: int, height: int) -> "ImageView":
        return self.sub_view(centre - Coord(width // 2, height // 2), width, height)

    def crop(self, image: np.ndarray) -> np.ndarray:
        """numpy view of the pixels covered by this window."""
        x, y = self.offset
        return image[y:y + self.height, x:x + self.width]

    def __len__(self) -> int:
        return self.width * self.height

    def __iter__(self) -> Iterator[Coord]:
        for y in range(self.height):
            for x in range(self.width):
                yield self.offset + Coord(x, y)
