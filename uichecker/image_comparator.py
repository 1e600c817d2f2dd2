"""
Screenshot comparison and diff rendering.

The per-pixel metric follows pixelmatch: colours are blended onto white,
converted to YIQ, and a pixel differs when its weighted YIQ distance exceeds
``35215 * threshold**2``. Differing pixels that sit on an anti-aliased edge
in either image can optionally be tolerated. The work is vectorised with
numpy so that tall full-page screenshots compare in well under a second.
"""

import logging
import shutil
from pathlib import Path

import numpy as np
from PIL import Image

from .config import (
    ANTI_ALIAS_COLOR,
    DIFF_ALPHA,
    DIFF_COLOR,
    DIFF_THRESHOLD,
    INCLUDE_ANTI_ALIASING,
)
from .models import ComparisonResult

logger = logging.getLogger(__name__)

# Maximum possible YIQ delta between two colours
MAX_YIQ_DELTA = 35215.0

_Y_WEIGHTS = np.array([0.29889531, 0.58662247, 0.11448223], dtype=np.float32)
_I_WEIGHTS = np.array([0.59597799, -0.27417610, -0.32180189], dtype=np.float32)
_Q_WEIGHTS = np.array([0.21147017, -0.52261711, 0.31114694], dtype=np.float32)

# (dy, dx) of the 8 neighbours
_NEIGHBOURS = [(-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1)]


def normalize_image(image: Image.Image, width: int, height: int) -> Image.Image:
    """
    Place an image at the top-left of a transparent canvas.

    Pixels inside the original bounds are copied unchanged (alpha included);
    the extra area stays fully transparent.

    Args:
        image: Source image; must not exceed the canvas size.
        width: Canvas width.
        height: Canvas height.

    Returns:
        RGBA image of size (width, height).
    """
    image = image.convert("RGBA")
    if image.size == (width, height):
        return image
    canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    canvas.paste(image, (0, 0))
    return canvas


def similarity_score(diff_count: int, total_pixels: int) -> float:
    """Percentage of matching pixels, clamped to [0, 100] and rounded to 0.1."""
    if total_pixels <= 0:
        return 0.0
    value = (1 - diff_count / total_pixels) * 100
    return round(min(100.0, max(0.0, value)), 1)


def _blend_on_white(pixels: np.ndarray) -> np.ndarray:
    rgb = pixels[..., :3].astype(np.float32)
    alpha = pixels[..., 3:4].astype(np.float32) / 255.0
    return 255.0 + (rgb - 255.0) * alpha


def _yiq_delta(rgb_a: np.ndarray, rgb_b: np.ndarray) -> np.ndarray:
    delta = rgb_a - rgb_b
    y = delta @ _Y_WEIGHTS
    i = delta @ _I_WEIGHTS
    q = delta @ _Q_WEIGHTS
    return 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q


def _edge_mask(height: int, width: int) -> np.ndarray:
    edge = np.zeros((height, width), dtype=bool)
    edge[0, :] = edge[-1, :] = True
    edge[:, 0] = edge[:, -1] = True
    return edge


def _sibling_counts(pixels: np.ndarray) -> np.ndarray:
    """Identical 8-neighbours per pixel; border pixels get one extra."""
    height, width = pixels.shape[:2]
    packed = np.ascontiguousarray(pixels).view(np.uint32)[..., 0].astype(np.int64)
    padded = np.pad(packed, 1, constant_values=-1)
    counts = _edge_mask(height, width).astype(np.uint8)
    for dy, dx in _NEIGHBOURS:
        counts += padded[1 + dy:1 + dy + height, 1 + dx:1 + dx + width] == packed
    return counts


def _anti_aliased(
    brightness: np.ndarray,
    siblings: np.ndarray,
    other_siblings: np.ndarray,
    ys: np.ndarray,
    xs: np.ndarray,
) -> np.ndarray:
    """
    Flag candidate pixels that look like anti-aliased edges in one image.

    A pixel qualifies when at most two neighbours share its brightness, it
    has both a darker and a brighter neighbour, and the darkest or brightest
    neighbour sits in a flat area (3+ identical neighbours) in both images.
    """
    height, width = brightness.shape
    zeroes = ((ys == 0) | (ys == height - 1) | (xs == 0) | (xs == width - 1)).astype(np.int16)
    center = brightness[ys, xs]

    min_delta = np.zeros(len(ys), dtype=np.float32)
    max_delta = np.zeros(len(ys), dtype=np.float32)
    min_y, min_x = ys.copy(), xs.copy()
    max_y, max_x = ys.copy(), xs.copy()

    for dy, dx in _NEIGHBOURS:
        ny, nx = ys + dy, xs + dx
        valid = (ny >= 0) & (ny < height) & (nx >= 0) & (nx < width)
        ny, nx = np.clip(ny, 0, height - 1), np.clip(nx, 0, width - 1)
        delta = center - brightness[ny, nx]

        zeroes += valid & (delta == 0)
        lower = valid & (delta < min_delta)
        higher = valid & (delta > max_delta)
        min_delta = np.where(lower, delta, min_delta)
        min_y, min_x = np.where(lower, ny, min_y), np.where(lower, nx, min_x)
        max_delta = np.where(higher, delta, max_delta)
        max_y, max_x = np.where(higher, ny, max_y), np.where(higher, nx, max_x)

    candidate = (zeroes <= 2) & (min_delta != 0) & (max_delta != 0)
    flat_min = (siblings[min_y, min_x] > 2) & (other_siblings[min_y, min_x] > 2)
    flat_max = (siblings[max_y, max_x] > 2) & (other_siblings[max_y, max_x] > 2)
    return candidate & (flat_min | flat_max)


class ImageComparator:
    """
    Compares a submission screenshot against the reference screenshot.

    Failures never propagate: missing or unreadable images score 0.0 and a
    best-effort artifact is left at the diff path.
    """

    def __init__(
        self,
        threshold: float = DIFF_THRESHOLD,
        include_anti_aliasing: bool = INCLUDE_ANTI_ALIASING,
        diff_alpha: float = DIFF_ALPHA,
    ) -> None:
        """
        Initialize the comparator.

        Args:
            threshold: Colour distance tolerance in [0, 1]; smaller is stricter.
            include_anti_aliasing: Count anti-aliased edge pixels as differences.
                When False they are tolerated and drawn in yellow.
            diff_alpha: Opacity of the reference image in the diff background.
        """
        self.threshold = threshold
        self.include_anti_aliasing = include_anti_aliasing
        self.diff_alpha = diff_alpha

    def diff(self, reference: Image.Image, submission: Image.Image) -> tuple[int, Image.Image]:
        """
        Count differing pixels between two equally sized images.

        Args:
            reference: Reference image.
            submission: Submission image of the same size.

        Returns:
            Tuple of (differing pixel count, rendered diff image).

        Raises:
            ValueError: If the sizes differ.
        """
        if reference.size != submission.size:
            raise ValueError(f"Image sizes do not match: {reference.size} vs {submission.size}")

        pixels_a = np.asarray(reference.convert("RGBA"), dtype=np.uint8)
        pixels_b = np.asarray(submission.convert("RGBA"), dtype=np.uint8)
        height, width = pixels_a.shape[:2]

        blended_a = _blend_on_white(pixels_a)
        blended_b = _blend_on_white(pixels_b)
        max_delta = MAX_YIQ_DELTA * self.threshold * self.threshold
        differs = _yiq_delta(blended_a, blended_b) > max_delta

        anti_aliased = np.zeros_like(differs)
        if not self.include_anti_aliasing and differs.any():
            ys, xs = np.nonzero(differs)
            siblings_a = _sibling_counts(pixels_a)
            siblings_b = _sibling_counts(pixels_b)
            flags = _anti_aliased(blended_a @ _Y_WEIGHTS, siblings_a, siblings_b, ys, xs)
            flags |= _anti_aliased(blended_b @ _Y_WEIGHTS, siblings_b, siblings_a, ys, xs)
            anti_aliased[ys[flags], xs[flags]] = True
            differs &= ~anti_aliased

        raw_brightness = pixels_a[..., :3].astype(np.float32) @ _Y_WEIGHTS
        opacity = self.diff_alpha * pixels_a[..., 3].astype(np.float32) / 255.0
        gray = np.clip(255.0 + (raw_brightness - 255.0) * opacity, 0, 255).astype(np.uint8)

        output = np.empty((height, width, 4), dtype=np.uint8)
        output[..., 0] = output[..., 1] = output[..., 2] = gray
        output[..., 3] = 255
        output[anti_aliased] = (*ANTI_ALIAS_COLOR, 255)
        output[differs] = (*DIFF_COLOR, 255)

        return int(differs.sum()), Image.fromarray(output)

    def compare(
        self,
        reference_path: Path,
        submission_path: Path,
        diff_path: Path,
    ) -> ComparisonResult:
        """
        Score a submission screenshot against the reference and write a diff.

        Args:
            reference_path: Solution screenshot.
            submission_path: Submission screenshot.
            diff_path: Where to write the diff PNG.

        Returns:
            ComparisonResult with the similarity score and artifact paths.
        """
        score = self._score(reference_path, submission_path, diff_path)
        return ComparisonResult(
            similarity_score=score,
            reference_image_path=reference_path,
            submission_image_path=submission_path,
            diff_image_path=diff_path,
        )

    def _score(self, reference_path: Path, submission_path: Path, diff_path: Path) -> float:
        if not reference_path.is_file() or not submission_path.is_file():
            logger.warning("Image missing: %s or %s", reference_path, submission_path)
            self._copy_fallback(reference_path, submission_path, diff_path)
            return 0.0

        try:
            with Image.open(reference_path) as ref_file, Image.open(submission_path) as sub_file:
                reference = ref_file.convert("RGBA")
                submission = sub_file.convert("RGBA")

            width = max(reference.width, submission.width)
            height = max(reference.height, submission.height)
            diff_count, diff_image = self.diff(
                normalize_image(reference, width, height),
                normalize_image(submission, width, height),
            )
            diff_path.parent.mkdir(parents=True, exist_ok=True)
            diff_image.save(diff_path, format="PNG")
        except Exception as e:
            logger.error("compareImages error for %s: %s", submission_path, e)
            self._copy_fallback(reference_path, submission_path, diff_path)
            return 0.0

        score = similarity_score(diff_count, width * height)
        logger.info("Similarity calculated: %.1f%% (Dimensions: %sx%s)", score, width, height)
        return score

    @staticmethod
    def _copy_fallback(reference_path: Path, submission_path: Path, diff_path: Path) -> None:
        """Copy whichever source exists to the diff path, submission first."""
        for source in (submission_path, reference_path):
            if source.is_file():
                try:
                    diff_path.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copyfile(source, diff_path)
                except OSError as e:
                    logger.warning("Could not copy fallback diff artifact: %s", e)
                return
