"""Best-effort image preprocessing ahead of remote recognition.

Writes an enhanced JPEG copy next to the uploaded image, never replacing
a file that is already there. When anything goes wrong the original
image is used instead, so a failed enhancement never fails a recognition
request.
"""

from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from src.utils.config import PreprocessingConfig
from src.utils.logger import get_logger

from .enhance import normalize_contrast, resize_to_fit, sharpen

logger = get_logger(__name__)


class PreprocessError(Exception):
    """Raised internally when an image cannot be enhanced."""


@dataclass(frozen=True)
class Enhanced:
    """An enhanced copy written by the preprocessor; owned by the pipeline run."""

    path: Path

    @property
    def is_derived(self) -> bool:
        return True


@dataclass(frozen=True)
class Original:
    """The untouched source image, used when enhancement was not possible."""

    path: Path
    reason: str = ""

    @property
    def is_derived(self) -> bool:
        return False


PreparedImage = Enhanced | Original


def calculate_sharpness(image: np.ndarray) -> float:
    """Calculate image sharpness using Laplacian variance.

    Args:
        image: Input image (BGR or grayscale).

    Returns:
        Sharpness score (higher means sharper).
    """
    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if len(image.shape) == 3 else image
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def derived_path(source: Path, suffix: str = "_processed") -> Path:
    """Return the sibling path the enhanced JPEG is written to."""
    return source.with_name(f"{source.stem}{suffix}.jpg")


class ImagePreprocessor:
    """Resizes, sharpens, and normalizes images before recognition.

    Args:
        config: Preprocessing configuration controlling which steps to apply.
    """

    def __init__(self, config: PreprocessingConfig) -> None:
        self.config = config

    def prepare(self, path: Path | str) -> PreparedImage:
        """Produce the image that should be sent to the recognition engine.

        Args:
            path: Path to the uploaded JPEG or PNG image.

        Returns:
            ``Enhanced`` with the derived file path, or ``Original`` with
            the source path if enhancement failed.
        """
        source = Path(path)
        try:
            target = self._enhance(source)
        except (PreprocessError, cv2.error, OSError, ValueError) as exc:
            logger.warning(
                "Preprocessing failed for %s, using original image: %s", source, exc
            )
            return Original(path=source, reason=str(exc))
        return Enhanced(path=target)

    def _enhance(self, source: Path) -> Path:
        """Run the enhancement steps and write the derived JPEG.

        Raises:
            PreprocessError: If the image cannot be decoded or encoded, or
                the derived path is already taken.
        """
        image = cv2.imread(str(source), cv2.IMREAD_COLOR)
        if image is None:
            raise PreprocessError(f"Unsupported or unreadable image: {source}")

        sharpness_before = calculate_sharpness(image)
        result = resize_to_fit(image, self.config.max_dimension)

        if self.config.sharpen_enabled:
            result = sharpen(result)

        if self.config.normalize_enabled:
            result = normalize_contrast(result)

        ok, encoded = cv2.imencode(
            ".jpg", result, [cv2.IMWRITE_JPEG_QUALITY, self.config.jpeg_quality]
        )
        if not ok:
            raise PreprocessError(f"JPEG encoding failed for {source}")

        target = derived_path(source, self.config.output_suffix)
        if target == source:
            raise PreprocessError(f"Derived path collides with source: {source}")
        try:
            with open(target, "xb") as f:
                f.write(encoded.tobytes())
        except FileExistsError as exc:
            raise PreprocessError(f"Derived path already exists: {target}") from exc
        except OSError:
            target.unlink(missing_ok=True)
            raise

        logger.info(
            "Preprocessed %s -> %s (%dx%d, sharpness %.1f->%.1f)",
            source.name,
            target.name,
            result.shape[1],
            result.shape[0],
            sharpness_before,
            calculate_sharpness(result),
        )
        return target
