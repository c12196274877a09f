"""Image enhancement steps applied before recognition.

Provides downscaling, unsharp-mask sharpening, and min/max contrast
stretching for photographed plates, VIN stickers, and receipts.
"""

import cv2
import numpy as np

from src.utils.logger import get_logger

logger = get_logger(__name__)


def resize_to_fit(image: np.ndarray, max_dimension: int = 2000) -> np.ndarray:
    """Downscale an image so neither side exceeds ``max_dimension``.

    The aspect ratio is preserved and images that already fit are
    returned unchanged; this never upscales.

    Args:
        image: Input image (BGR or grayscale).
        max_dimension: Largest allowed width or height in pixels.

    Returns:
        Resized image, or the input image if no resize was needed.
    """
    height, width = image.shape[:2]
    longest = max(height, width)
    if longest <= max_dimension:
        return image

    scale = max_dimension / longest
    new_size = (
        max(1, min(max_dimension, round(width * scale))),
        max(1, min(max_dimension, round(height * scale))),
    )
    result = cv2.resize(image, new_size, interpolation=cv2.INTER_AREA)
    logger.debug("Resized image from %dx%d to %dx%d", width, height, *new_size)
    return result


def sharpen(image: np.ndarray, sigma: float = 1.0, amount: float = 0.5) -> np.ndarray:
    """Sharpen an image with an unsharp mask.

    Args:
        image: Input image (BGR or grayscale).
        sigma: Gaussian blur sigma used to build the mask.
        amount: Strength of the sharpening.

    Returns:
        Sharpened image with the same shape and dtype.
    """
    blurred = cv2.GaussianBlur(image, (0, 0), sigma)
    result = cv2.addWeighted(image, 1.0 + amount, blurred, -amount, 0)
    logger.debug("Applied unsharp mask (sigma=%.1f, amount=%.1f)", sigma, amount)
    return result


def normalize_contrast(image: np.ndarray) -> np.ndarray:
    """Stretch intensities so the darkest pixel is 0 and the brightest 255.

    Color images are stretched on the luminance channel only so hues
    are kept intact.

    Args:
        image: Input image (BGR or grayscale).

    Returns:
        Contrast-normalized image with the same shape.
    """
    if int(image.min()) == int(image.max()):
        return image

    if len(image.shape) == 2:
        result = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX)
        logger.debug("Applied min/max normalization")
        return result

    ycrcb = cv2.cvtColor(image, cv2.COLOR_BGR2YCrCb)
    luma, cr, cb = cv2.split(ycrcb)
    luma = cv2.normalize(luma, None, 0, 255, cv2.NORM_MINMAX)
    result = cv2.cvtColor(cv2.merge((luma, cr, cb)), cv2.COLOR_YCrCb2BGR)
    logger.debug("Applied luminance min/max normalization")
    return result
