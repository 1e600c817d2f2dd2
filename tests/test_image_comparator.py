"""
Tests for screenshot comparison.
"""

from PIL import Image, ImageDraw

from uichecker.config import ANTI_ALIAS_COLOR, DIFF_COLOR
from uichecker.image_comparator import ImageComparator, normalize_image, similarity_score

from conftest import write_png

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)


class TestNormalizeImage:
    """Tests for canvas normalization."""

    def test_pads_with_transparency(self):
        """The original sits at the top-left, the rest is transparent."""
        image = Image.new("RGBA", (2, 3), (10, 20, 30, 255))

        canvas = normalize_image(image, 4, 5)

        assert canvas.size == (4, 5)
        assert canvas.getpixel((1, 2)) == (10, 20, 30, 255)
        assert canvas.getpixel((3, 4)) == (0, 0, 0, 0)
        assert canvas.getpixel((2, 0)) == (0, 0, 0, 0)

    def test_same_size_is_unchanged(self):
        """An image already at canvas size keeps its pixels."""
        image = Image.new("RGBA", (3, 3), (1, 2, 3, 128))

        canvas = normalize_image(image, 3, 3)

        assert canvas.tobytes() == image.tobytes()


class TestSimilarityScore:
    """Tests for similarity_score."""

    def test_rounding_and_bounds(self):
        """Scores are rounded to one decimal and stay within [0, 100]."""
        assert similarity_score(0, 1000) == 100.0
        assert similarity_score(1000, 1000) == 0.0
        assert similarity_score(1, 3) == 66.7
        assert similarity_score(0, 0) == 0.0


class TestImageComparator:
    """Tests for ImageComparator.compare and diff."""

    def setup_method(self):
        self.comparator = ImageComparator()

    def test_identical_images_score_100(self, tmp_path):
        """Identical screenshots are a perfect match."""
        ref = write_png(tmp_path / "ref.png", (40, 30), (30, 120, 200, 255))
        sub = write_png(tmp_path / "sub.png", (40, 30), (30, 120, 200, 255))

        result = self.comparator.compare(ref, sub, tmp_path / "diffs" / "index.png")

        assert result.similarity_score == 100.0
        assert result.diff_image_path.exists()
        with Image.open(result.diff_image_path) as diff:
            assert diff.size == (40, 30)

    def test_opposite_images_score_0(self, tmp_path):
        """Black against white differs everywhere."""
        ref = write_png(tmp_path / "ref.png", (20, 20), WHITE)
        sub = write_png(tmp_path / "sub.png", (20, 20), BLACK)

        result = self.comparator.compare(ref, sub, tmp_path / "diff.png")

        assert result.similarity_score == 0.0
        with Image.open(result.diff_image_path) as diff:
            assert diff.convert("RGBA").getpixel((5, 5)) == (255, 0, 0, 255)

    def test_size_mismatch_counts_padding(self, tmp_path):
        """A shorter submission loses the rows it does not cover."""
        ref = write_png(tmp_path / "ref.png", (10, 20), BLACK)
        sub = write_png(tmp_path / "sub.png", (10, 10), BLACK)

        result = self.comparator.compare(ref, sub, tmp_path / "diff.png")

        assert result.similarity_score == 50.0
        with Image.open(result.diff_image_path) as diff:
            assert diff.size == (10, 20)

    def test_small_colour_change_within_threshold(self, tmp_path):
        """Near-identical colours stay below the threshold."""
        ref = write_png(tmp_path / "ref.png", (10, 10), (100, 100, 100, 255))
        sub = write_png(tmp_path / "sub.png", (10, 10), (102, 101, 100, 255))

        assert self.comparator.compare(ref, sub, tmp_path / "diff.png").similarity_score == 100.0

    def test_missing_submission_scores_0(self, tmp_path):
        """A missing screenshot scores 0 and leaves the reference as artifact."""
        ref = write_png(tmp_path / "ref.png", (10, 10), WHITE)
        diff_path = tmp_path / "diffs" / "index.png"

        result = self.comparator.compare(ref, tmp_path / "missing.png", diff_path)

        assert result.similarity_score == 0.0
        assert diff_path.read_bytes() == ref.read_bytes()

    def test_corrupt_image_scores_0(self, tmp_path):
        """An unreadable file scores 0 and the submission is copied as artifact."""
        ref = write_png(tmp_path / "ref.png", (10, 10), WHITE)
        sub = tmp_path / "sub.png"
        sub.write_bytes(b"not a png")
        diff_path = tmp_path / "diff.png"

        result = self.comparator.compare(ref, sub, diff_path)

        assert result.similarity_score == 0.0
        assert diff_path.read_bytes() == b"not a png"

    def test_anti_aliasing_toggle(self):
        """A soft edge beside a shape is tolerated and drawn in yellow when anti-aliasing is excluded."""
        reference = Image.new("RGBA", (30, 30), WHITE)
        ImageDraw.Draw(reference).rectangle([5, 5, 20, 20], fill=BLACK)
        submission = Image.new("RGBA", (30, 30), WHITE)
        draw = ImageDraw.Draw(submission)
        draw.rectangle([5, 5, 20, 20], fill=BLACK)
        # Soft edge next to the square
        draw.line([(21, 5), (21, 20)], fill=(128, 128, 128, 255))

        strict, _ = ImageComparator(include_anti_aliasing=True).diff(reference, submission)
        lenient, diff = ImageComparator(include_anti_aliasing=False).diff(reference, submission)

        assert strict == 16
        assert lenient == 0
        assert diff.size == (30, 30)
        for y in range(5, 21):
            assert diff.getpixel((21, y))[:3] == ANTI_ALIAS_COLOR

    def test_flat_area_changes_survive_anti_aliasing_exclusion(self):
        """A solid block that differs is no edge artifact and stays counted."""
        reference = Image.new("RGBA", (30, 30), WHITE)
        submission = Image.new("RGBA", (30, 30), WHITE)
        ImageDraw.Draw(submission).rectangle([10, 10, 19, 19], fill=BLACK)

        strict, _ = ImageComparator(include_anti_aliasing=True).diff(reference, submission)
        lenient, diff = ImageComparator(include_anti_aliasing=False).diff(reference, submission)

        assert strict == 100
        assert lenient == 100
        assert diff.getpixel((10, 10))[:3] == DIFF_COLOR
        assert diff.getpixel((15, 15))[:3] == DIFF_COLOR
        assert ANTI_ALIAS_COLOR not in {pixel[:3] for pixel in diff.getdata()}
