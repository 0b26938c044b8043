"""Single-image haze removal with the colour attenuation prior."""

from cap_dehaze.color_attenuation_prior import (
    ColorAttenuationDehazer,
    DehazeResult,
    get_depth_from_hazy_image,
    remove_haze,
)
from cap_dehaze.filters import GuidedFilterValues, box_filter, guided_filter
from cap_dehaze.image import ImageError

__all__ = [
    "ColorAttenuationDehazer",
    "DehazeResult",
    "GuidedFilterValues",
    "ImageError",
    "box_filter",
    "get_depth_from_hazy_image",
    "guided_filter",
    "remove_haze",
]
