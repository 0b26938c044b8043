"""Colour Attenuation Prior single-image dehazing (RGB pipeline).

This module implements the pipeline described in
"A Fast Single Image Haze Removal Algorithm Using Color Attenuation Prior"
by Qingsong Zhu, Jiaming Mai and Ling Shao (IEEE TIP 2015).

The steps follow the mathematics of the paper:
1. Atmospheric scattering model: I(x) = J(x) t(x) + A (1 - t(x))
2. Colour attenuation prior: scene depth grows with the difference between
   brightness and saturation, d(x) = θ0 + θ1 l(x) + θ2 s(x)
3. Square min filter over the raw depth to suppress bright objects
4. Edge-aware refinement of the depth with a colour guided filter
5. Atmospheric light from the farthest pixels
6. Scene radiance recovery with t(x) = exp(-β d(x)) bounded to [0.1, 0.9]
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple, Optional, Sequence, Tuple

import cv2
import numpy as np

from cap_dehaze import config
from cap_dehaze.filters import guided_filter
from cap_dehaze.image import (
    Coord,
    Pixel,
    check_sizes,
    ensure_float_image,
    linear_to_srgb,
    luminance,
    normalise,
    saturation,
    srgb_to_linear,
)
from cap_dehaze.io import OutputPaths, load_rgb_image, output_paths, save_grey_image, save_rgb_image

logger = logging.getLogger(__name__)


def get_depth_from_hazy_image(image: np.ndarray, kernel_size: int) -> np.ndarray:
    """Relative depth in [0, 1] from the colour attenuation prior.

    The linear model is evaluated per pixel and clamped to [0, 1], then a
    ``kernel_size`` x ``kernel_size`` min filter is applied and the result is
    stretched to the full [0, 1] range.
    """
    if kernel_size < 1:
        raise ValueError(f"Min filter size must be >= 1, got {kernel_size}.")
    image = ensure_float_image(image)

    theta0, theta1, theta2 = config.THETA
    depth = theta0 + theta1 * luminance(image) + theta2 * saturation(image)
    depth = np.clip(depth, 0.0, 1.0).astype(np.float32)

    # erosion pads with +inf, so border windows only see in-image pixels
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (kernel_size, kernel_size))
    depth = cv2.erode(depth, kernel)

    return normalise(depth)


def estimate_atmospheric_light(
    image: np.ndarray,
    depth: np.ndarray,
    top_fraction: float = config.TOP_FRACTION,
) -> Tuple[Pixel, Coord]:
    """Select the brightest input pixel among the farthest depth candidates."""
    check_sizes(image, depth)
    flat_depth = depth.ravel()
    num_pixels = flat_depth.size

    num_top = int(num_pixels * top_fraction)
    if num_top < 1:
        # small images: fall back to the single farthest pixel
        logger.debug("Only %d pixels, using the farthest one as candidate.", num_pixels)
        num_top = 1

    top_indices = np.argpartition(flat_depth, -num_top)[-num_top:]
    flat_image = image.reshape(-1, 3)
    brightness = luminance(flat_image[top_indices])
    best_idx = int(top_indices[np.argmax(brightness)])

    y, x = divmod(best_idx, depth.shape[1])
    return Pixel.from_array(flat_image[best_idx]), Coord(x, y)


def estimate_transmission(depth: np.ndarray, beta: float = config.BETA) -> np.ndarray:
    """t(x) = exp(-β d(x)), kept inside [0.1, 0.9]."""
    transmission = np.exp(-beta * depth)
    return np.clip(transmission, config.TRANSMISSION_MIN, config.TRANSMISSION_MAX)


def recover_radiance(
    image: np.ndarray, transmission: np.ndarray, atmospheric_light: Pixel
) -> np.ndarray:
    """Recover J(x) = A + (I(x) - A) / t(x). The result is not clipped."""
    check_sizes(image, transmission)
    A = atmospheric_light.to_array()
    return A + (image - A) / transmission[..., None]


def remove_haze(
    image: np.ndarray,
    depth: np.ndarray,
    beta: float = config.BETA,
    top_fraction: float = config.TOP_FRACTION,
) -> np.ndarray:
    """Invert the haze formation model given a per-pixel depth map."""
    image = ensure_float_image(image)
    check_sizes(image, depth)

    atmospheric_light, coord = estimate_atmospheric_light(image, depth, top_fraction)
    logger.info("Atmospheric light %s at (%d, %d).", atmospheric_light, coord.x, coord.y)

    transmission = estimate_transmission(depth, beta)
    return recover_radiance(image, transmission, atmospheric_light)


class DehazeResult(NamedTuple):
    recovered: np.ndarray
    depth: np.ndarray
    raw_depth: np.ndarray


@dataclass
class ColorAttenuationDehazer:
    radius: int = config.RADIUS
    beta: float = config.BETA
    guided_eps: float = config.GUIDED_EPS
    top_fraction: float = config.TOP_FRACTION
    # treat input as sRGB and work in linear light
    linearize: bool = False

    def _estimate_depth(self, image: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Raw prior depth and its guided-filter refinement."""
        raw_depth = get_depth_from_hazy_image(image, self.radius)
        depth = guided_filter(raw_depth, image, self.radius, self.guided_eps)
        return raw_depth, depth

    def dehaze(self, image: np.ndarray) -> DehazeResult:
        """Full pipeline returning (recovered_image, depth, raw_depth)."""
        image = ensure_float_image(image)
        if self.linearize:
            image = srgb_to_linear(image)

        raw_depth, depth = self._estimate_depth(image)
        recovered = remove_haze(image, depth, self.beta, self.top_fraction)

        if self.linearize:
            recovered = linear_to_srgb(recovered)
        return DehazeResult(recovered, depth, raw_depth)


def dehaze_file(
    path: Path,
    dehazer: ColorAttenuationDehazer,
    save_intermediates: bool = True,
) -> OutputPaths:
    """Dehaze one image file and write the results next to it."""
    logger.info("Dehazing %s; radius: %d, beta: %g", path, dehazer.radius, dehazer.beta)
    paths = output_paths(path)

    image = load_rgb_image(path)
    recovered, depth, raw_depth = dehazer.dehaze(image)

    if save_intermediates:
        save_grey_image(raw_depth, paths.unfiltered_depth)
        save_grey_image(depth, paths.depth)
    save_rgb_image(recovered, paths.dehazed)
    return paths


def positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {text!r}")
    return value


def positive_float(text: str) -> float:
    value = float(text)
    if not value > 0:
        raise argparse.ArgumentTypeError(f"expected a positive number, got {text!r}")
    return value


def fraction(text: str) -> float:
    value = float(text)
    if not 0 < value <= 1:
        raise argparse.ArgumentTypeError(f"expected a number in (0, 1], got {text!r}")
    return value


def add_dehazer_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by ``dehaze`` and ``dehaze-batch``."""
    group = parser.add_argument_group("dehazer")
    group.add_argument(
        "-r", "--radius", type=positive_int, default=config.RADIUS,
        help="Min filter size and guided filter radius; the guided filter "
        "averages over (2r+1) x (2r+1) windows, e.g. 19 pixels at r=9.",
    )
    group.add_argument(
        "-b", "--beta", type=float, default=config.BETA,
        help="Scattering coefficient β.",
    )
    group.add_argument(
        "--eps", type=positive_float, default=config.GUIDED_EPS,
        help="Guided filter epsilon.",
    )
    group.add_argument(
        "--top-fraction", type=fraction, default=config.TOP_FRACTION,
        help="Fraction of farthest pixels searched for the atmospheric light.",
    )
    group.add_argument(
        "--linearize", action="store_true",
        help="Convert the input from sRGB to linear light before dehazing.",
    )


def dehazer_from_args(args: argparse.Namespace) -> ColorAttenuationDehazer:
    return ColorAttenuationDehazer(
        radius=args.radius,
        beta=args.beta,
        guided_eps=args.eps,
        top_fraction=args.top_fraction,
        linearize=args.linearize,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dehaze",
        description="Single-image haze removal using the Colour Attenuation Prior.",
    )
    parser.add_argument("input", type=Path, help="Path to hazy input image.")
    parser.add_argument(
        "--no-intermediates", dest="intermediates", action="store_false",
        help="Only write the dehazed image, not the depth maps.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    add_dehazer_arguments(parser)
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    dehaze_file(args.input, dehazer_from_args(args), save_intermediates=args.intermediates)


if __name__ == "__main__":
    main()
