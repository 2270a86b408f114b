import pytest
from pydantic import ValidationError

from comiclens.schemas.translation import Annotation, BoundingBox, GradientBackground


class TestBoundingBox:
    def test_clamped_into_image(self) -> None:
        bbox = BoundingBox(top=-10, left=90, width=30, height=50)

        assert (bbox.top, bbox.left, bbox.width, bbox.height) == (0, 90, 10, 40)

    def test_negative_size_flipped(self) -> None:
        bbox = BoundingBox(top=50, left=50, width=-20, height=-10)

        assert (bbox.top, bbox.left, bbox.width, bbox.height) == (40, 30, 20, 10)

    def test_nan_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BoundingBox(top=float("nan"), left=0, width=10, height=10)

    def test_zero_area_invalid(self) -> None:
        assert not BoundingBox(top=100, left=0, width=10, height=10).is_valid()
        assert BoundingBox(top=0, left=0, width=10, height=10).is_valid()


class TestGradientBackground:
    def test_css_uses_reversed_stops(self) -> None:
        gradient = GradientBackground(top="#d4edda", bottom="#ffffff")

        assert gradient.stops == ("#ffffff", "#d4edda")
        assert gradient.css == "linear-gradient(to bottom, #ffffff, #d4edda)"


class TestAnnotation:
    def test_empty_translation_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Annotation(bbox=BoundingBox(top=0, left=0, width=1, height=1), translated="")

    def test_frozen(self) -> None:
        annotation = Annotation(bbox=BoundingBox(top=0, left=0, width=1, height=1), translated="A")

        with pytest.raises(ValidationError):
            annotation.translated = "B"  # type: ignore[misc]
