"""
Brightness heuristic used to pick the primary removal configuration.

The image is downsampled to a small square; the four corner pixels decide
whether the background is likely white, and the mean over the whole
sample gives the overall brightness.
"""

import numpy as np
from PIL import Image

from banner_studio.engines.background_removal.schemas import ImageBrightnessSample

SAMPLE_SIZE = 100
NEAR_WHITE_THRESHOLD = 240
WHITE_BACKGROUND_BRIGHTNESS = 200
MIN_WHITE_CORNERS = 2


def analyze_brightness(image: Image.Image) -> ImageBrightnessSample:
    sample = image.convert("RGB").resize((SAMPLE_SIZE, SAMPLE_SIZE), Image.Resampling.BILINEAR)
    brightness = np.asarray(sample, dtype=np.float32).mean(axis=2)

    last = SAMPLE_SIZE - 1
    corners = [brightness[0, 0], brightness[0, last], brightness[last, 0], brightness[last, last]]
    corner_white_count = sum(1 for value in corners if value > NEAR_WHITE_THRESHOLD)
    average_brightness = float(brightness.mean())

    return ImageBrightnessSample(
        average_brightness=round(average_brightness, 2),
        corner_white_count=corner_white_count,
        is_likely_white_background=(
            corner_white_count >= MIN_WHITE_CORNERS
            and average_brightness > WHITE_BACKGROUND_BRIGHTNESS
        ),
    )
