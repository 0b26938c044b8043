"""Box filter and colour-guided image filter.

Reference:
    K. He, J. Sun and X. Tang, "Guided Image Filtering", ECCV 2010.

The guided filter works on whole scalar images at a time: each entry of the
3x3 guide covariance matrix, and of its inverse, is a full image, and the
closed-form cofactor inverse is evaluated elementwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Tuple

import numpy as np

from cap_dehaze.image import check_sizes, ensure_float_image, join_channels, split_channels

logger = logging.getLogger(__name__)


def _box_filter_axis(image: np.ndarray, radius: int, axis: int) -> np.ndarray:
    """Sliding-window mean along one axis, window shrinking at the borders."""
    src = np.moveaxis(image, axis, 0)
    n = src.shape[0]
    out = np.empty_like(src)

    total = np.zeros(src.shape[1:], dtype=src.dtype)
    weight = 0
    for head in range(n + radius):
        # leading edge enters while it is still inside the image
        if head < n:
            total += src[head]
            weight += 1
        # trailing edge leaves once the window is full
        tail = head - 2 * radius - 1
        if tail >= 0:
            total -= src[tail]
            weight -= 1
        if head >= radius:
            out[head - radius] = total / weight

    return np.ascontiguousarray(np.moveaxis(out, 0, axis))


def box_filter(image: np.ndarray, radius: int) -> np.ndarray:
    """Mean over a (2r+1) x (2r+1) window, clamped at the image borders.

    Runs in O(H * W) regardless of radius. Multi-channel images are filtered
    per channel.
    """
    if radius < 0:
        raise ValueError(f"Box filter radius must be >= 0, got {radius}.")
    image = np.asarray(image)
    if not np.issubdtype(image.dtype, np.floating):
        image = image.astype(np.float32)
    if radius == 0:
        return image.copy()

    horizontal = _box_filter_axis(image, int(radius), axis=1)
    return _box_filter_axis(horizontal, int(radius), axis=0)


@dataclass(frozen=True)
class GuidedFilterValues:
    """Guide statistics shared by every channel filtered against one guide.

    Built once per (guide, radius, eps) by :meth:`from_guide`. The covariance
    diagonal already includes ``eps``; the ``inv_*`` fields hold the inverse of
    the symmetric covariance matrix.
    """

    radius: int
    guide: Tuple[np.ndarray, np.ndarray, np.ndarray]

    mean_r: np.ndarray
    mean_g: np.ndarray
    mean_b: np.ndarray

    var_rr: np.ndarray
    var_rg: np.ndarray
    var_rb: np.ndarray
    var_gg: np.ndarray
    var_gb: np.ndarray
    var_bb: np.ndarray

    inv_rr: np.ndarray
    inv_rg: np.ndarray
    inv_rb: np.ndarray
    inv_gg: np.ndarray
    inv_gb: np.ndarray
    inv_bb: np.ndarray

    @classmethod
    def from_guide(cls, guide: np.ndarray, radius: int, eps: float) -> "GuidedFilterValues":
        I_r, I_g, I_b = split_channels(ensure_float_image(guide))

        mean_r = box_filter(I_r, radius)
        mean_g = box_filter(I_g, radius)
        mean_b = box_filter(I_b, radius)

        var_rr = box_filter(I_r * I_r, radius) - mean_r * mean_r + eps
        var_rg = box_filter(I_r * I_g, radius) - mean_r * mean_g
        var_rb = box_filter(I_r * I_b, radius) - mean_r * mean_b
        var_gg = box_filter(I_g * I_g, radius) - mean_g * mean_g + eps
        var_gb = box_filter(I_g * I_b, radius) - mean_g * mean_b
        var_bb = box_filter(I_b * I_b, radius) - mean_b * mean_b + eps

        # cofactors of the symmetric covariance matrix
        inv_rr = var_gg * var_bb - var_gb * var_gb
        inv_rg = var_gb * var_rb - var_rg * var_bb
        inv_rb = var_rg * var_gb - var_gg * var_rb
        inv_gg = var_rr * var_bb - var_rb * var_rb
        inv_gb = var_rb * var_rg - var_rr * var_gb
        inv_bb = var_rr * var_gg - var_rg * var_rg

        # no guard against a vanishing determinant, eps is the only regulariser
        det = inv_rr * var_rr + inv_rg * var_rg + inv_rb * var_rb

        values = cls(
            radius=radius,
            guide=(I_r, I_g, I_b),
            mean_r=mean_r,
            mean_g=mean_g,
            mean_b=mean_b,
            var_rr=var_rr,
            var_rg=var_rg,
            var_rb=var_rb,
            var_gg=var_gg,
            var_gb=var_gb,
            var_bb=var_bb,
            inv_rr=inv_rr / det,
            inv_rg=inv_rg / det,
            inv_rb=inv_rb / det,
            inv_gg=inv_gg / det,
            inv_gb=inv_gb / det,
            inv_bb=inv_bb / det,
        )
        values._freeze()
        return values

    def _freeze(self) -> None:
        for field in fields(self):
            value = getattr(self, field.name)
            arrays = value if isinstance(value, tuple) else (value,)
            for array in arrays:
                if isinstance(array, np.ndarray):
                    array.flags.writeable = False


def guided_filter_channel(image: np.ndarray, values: GuidedFilterValues) -> np.ndarray:
    """Filter one scalar image against precomputed guide statistics."""
    r = values.radius
    I_r, I_g, I_b = values.guide

    mean_p = box_filter(image, r)

    cov_Ip_r = box_filter(I_r * image, r) - values.mean_r * mean_p
    cov_Ip_g = box_filter(I_g * image, r) - values.mean_g * mean_p
    cov_Ip_b = box_filter(I_b * image, r) - values.mean_b * mean_p

    a_r = values.inv_rr * cov_Ip_r + values.inv_rg * cov_Ip_g + values.inv_rb * cov_Ip_b
    a_g = values.inv_rg * cov_Ip_r + values.inv_gg * cov_Ip_g + values.inv_gb * cov_Ip_b
    a_b = values.inv_rb * cov_Ip_r + values.inv_gb * cov_Ip_g + values.inv_bb * cov_Ip_b

    b = mean_p - a_r * values.mean_r - a_g * values.mean_g - a_b * values.mean_b

    return (
        box_filter(a_r, r) * I_r
        + box_filter(a_g, r) * I_g
        + box_filter(a_b, r) * I_b
        + box_filter(b, r)
    )


def guided_filter(
    image: np.ndarray,
    guide: np.ndarray,
    radius: int,
    eps: float,
) -> np.ndarray:
    """Edge-aware smoothing of ``image`` steered by the colour ``guide``.

    ``image`` may be a scalar image or a 3-channel image; the guide statistics
    are computed once and shared by all channels.
    """
    check_sizes(image, guide)
    if eps <= 0:
        raise ValueError(f"Guided filter eps must be > 0, got {eps}.")

    logger.debug("Guided filter: radius %d, eps %g, input shape %s", radius, eps, image.shape)
    values = GuidedFilterValues.from_guide(guide, radius, eps)
    image = ensure_float_image(image)

    if image.ndim == 2:
        return guided_filter_channel(image, values)

    channels = [guided_filter_channel(channel, values) for channel in split_channels(image)]
    return join_channels(*channels)
