"""
White-halo cleanup for results cut from light backgrounds.

Runs only after a successful primary attempt on an image whose background
was classified as white. Two passes over the alpha channel:
- near-white pixels that are partially transparent become fully transparent
- fully opaque near-white pixels touching (3x3) a mostly transparent pixel
  become fully transparent
"""

import numpy as np
from PIL import Image

HALO_BRIGHTNESS_THRESHOLD = 240
TRANSPARENT_ALPHA_THRESHOLD = 128


def _touches(mask: np.ndarray) -> np.ndarray:
    """True where any pixel of the 3x3 neighborhood is set in mask."""
    height, width = mask.shape
    padded = np.pad(mask, 1, mode="constant", constant_values=False)
    result = np.zeros_like(mask)
    for dy in range(3):
        for dx in range(3):
            result |= padded[dy:dy + height, dx:dx + width]
    return result


def remove_white_halo(image: Image.Image) -> Image.Image:
    rgba = np.array(image.convert("RGBA"))
    brightness = rgba[..., :3].astype(np.float32).mean(axis=2)
    alpha = rgba[..., 3]

    near_white = brightness > HALO_BRIGHTNESS_THRESHOLD
    partially_transparent = (alpha > 0) & (alpha < 255)
    edge_of_cutout = (alpha == 255) & _touches(alpha < TRANSPARENT_ALPHA_THRESHOLD)

    cleared = near_white & (partially_transparent | edge_of_cutout)
    rgba[..., 3] = np.where(cleared, 0, alpha)

    return Image.fromarray(rgba)
