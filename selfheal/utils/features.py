from __future__ import annotations

import re

from selfheal.core.metadata import ElementDescriptor, FeatureVector

CLICKABLE_TAGS = frozenset({"button", "a", "input", "select", "textarea"})
COMMON_COLORS = frozenset(
    {
        "#000000",
        "#ffffff",
        "#808080",
        "#c0c0c0",
        "rgb(0, 0, 0)",
        "rgb(255, 255, 255)",
        "rgb(128, 128, 128)",
        "rgb(192, 192, 192)",
    }
)
# Typical button/input boxes as (width, height); a box within SIZE_TOLERANCE of one is not unique.
COMMON_SIZES: tuple[tuple[float, float], ...] = ((200.0, 30.0), (150.0, 30.0), (300.0, 150.0))
SIZE_TOLERANCE = 10.0

NUMERIC_ID_PATTERN = re.compile(r"\d{6,}")
CSS_MODULE_CLASS_PATTERN = re.compile(r"^css-\w+")
TIMESTAMP_PATTERN = re.compile(r"timestamp|time|date", re.IGNORECASE)
UUID_PATTERN = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)
RANDOM_ID_PATTERN = re.compile(r"(random|rand|uuid|guid)", re.IGNORECASE)
SPECIAL_CHARS_PATTERN = re.compile(r'[!@#$%^&*(),.?":{}|<>]')

# Divisors applied to the count features before they enter the model.
TEXT_LENGTH_SCALE = 100.0
WORD_COUNT_SCALE = 20.0
STRUCTURE_SCALE = 10.0


class FeatureExtractor:
    """Turns an element snapshot into the fixed feature set used by scoring and learning."""

    def extract(self, element: ElementDescriptor) -> FeatureVector:
        element_id = element.id or ""
        class_name = element.class_name
        text = element.text or ""
        box = element.bounding_box

        return FeatureVector(
            element_type=(element.tag or "").lower(),
            has_id=bool(element_id),
            has_test_id=bool(element.attr("data-testid")),
            has_aria_label=bool(element.attr("aria-label")),
            has_role=bool(element.attr("role")),
            has_name=bool(element.attr("name")),
            has_placeholder=bool(element.attr("placeholder")),
            has_text=bool(text.strip()),
            has_class=bool(class_name),
            text_length=len(text),
            text_word_count=len(text.split()),
            has_numeric_text=any(char.isdigit() for char in text),
            has_special_chars=bool(SPECIAL_CHARS_PATTERN.search(text)),
            depth=len(element.ancestors),
            sibling_count=element.sibling_count or 0,
            index_among_siblings=element.index_among_siblings or 0,
            is_visible=_is_visible(element),
            is_clickable=(element.tag or "").lower() in CLICKABLE_TAGS,
            has_unique_color=_is_unique_color(element.style.color),
            has_unique_size=box is not None and _is_unique_size(box.width, box.height),
            has_numeric_id=bool(NUMERIC_ID_PATTERN.search(element_id)),
            has_css_module_class=bool(CSS_MODULE_CLASS_PATTERN.search(class_name)),
            has_timestamp=bool(TIMESTAMP_PATTERN.search(element_id + class_name)),
            has_uuid=bool(UUID_PATTERN.search(element_id)),
            has_random_id=bool(RANDOM_ID_PATTERN.search(element_id + class_name)),
        )


def encode_features(features: FeatureVector) -> list[float]:
    """Fixed-order numeric encoding consumed by the learned model."""

    return [
        float(features.has_id),
        float(features.has_test_id),
        float(features.has_aria_label),
        float(features.has_role),
        float(features.has_name),
        float(features.has_placeholder),
        float(features.has_text),
        float(features.has_class),
        features.text_length / TEXT_LENGTH_SCALE,
        features.text_word_count / WORD_COUNT_SCALE,
        float(features.has_numeric_text),
        float(features.has_special_chars),
        features.depth / STRUCTURE_SCALE,
        features.sibling_count / STRUCTURE_SCALE,
        features.index_among_siblings / STRUCTURE_SCALE,
        float(features.is_visible),
        float(features.is_clickable),
        float(features.has_unique_color),
        float(features.has_unique_size),
        float(features.has_numeric_id),
        float(features.has_css_module_class),
        float(features.has_timestamp),
        float(features.has_uuid),
        float(features.has_random_id),
    ]


FEATURE_COUNT = len(encode_features(FeatureVector()))


def _is_visible(element: ElementDescriptor) -> bool:
    style = element.style
    return style.display.strip().lower() != "none" and style.visibility.strip().lower() != "hidden"


def _is_unique_color(color: str) -> bool:
    return color.strip().lower() not in COMMON_COLORS


def _is_unique_size(width: float, height: float) -> bool:
    return not any(
        abs(width - common_width) < SIZE_TOLERANCE and abs(height - common_height) < SIZE_TOLERANCE
        for common_width, common_height in COMMON_SIZES
    )
