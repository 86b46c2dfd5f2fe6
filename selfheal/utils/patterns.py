from __future__ import annotations

import re

from selfheal.core.metadata import ElementDescriptor, UnstableReport
from selfheal.utils.features import FeatureExtractor

LONG_NUMBER_PATTERN = re.compile(r"\d{6,}")
DYNAMIC_KEYWORD_PATTERN = re.compile(r"timestamp|uid|uuid|random", re.IGNORECASE)
CSS_MODULE_TOKEN_PATTERN = re.compile(r"css-\w+")
CSS_MODULE_CLASS_PATTERN = re.compile(r"^css-\w+")

MODEL_DETECTED_REASON = "AI-detected dynamic pattern"

UNSTABLE_LOCATOR_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (LONG_NUMBER_PATTERN, "Contains long numeric ID (likely dynamic)"),
    (re.compile(r"^\.(css|sc|jss)-\w+"), "CSS-in-JS class (changes on build)"),
    (DYNAMIC_KEYWORD_PATTERN, "Contains dynamic identifier"),
    (re.compile(r"\[\d+\]"), "Uses array index (fragile)"),
)


def has_long_number(value: str) -> bool:
    return bool(LONG_NUMBER_PATTERN.search(value))


def is_dynamic_id(value: str) -> bool:
    return bool(
        LONG_NUMBER_PATTERN.search(value)
        or DYNAMIC_KEYWORD_PATTERN.search(value)
        or CSS_MODULE_TOKEN_PATTERN.search(value)
    )


def is_dynamic_class(value: str) -> bool:
    return bool(CSS_MODULE_CLASS_PATTERN.search(value) or LONG_NUMBER_PATTERN.search(value))


class UnstablePatternDetector:
    """Classifies locator strings as fragile using known dynamic-markup patterns."""

    def __init__(self, extractor: FeatureExtractor | None = None, use_features: bool = True) -> None:
        self.extractor = extractor or FeatureExtractor()
        self.use_features = use_features

    def detect(self, locator: str, element: ElementDescriptor | None = None) -> UnstableReport:
        for pattern, reason in UNSTABLE_LOCATOR_PATTERNS:
            if pattern.search(locator):
                return UnstableReport(is_unstable=True, reason=reason)

        if element is not None and self.use_features:
            features = self.extractor.extract(element)
            if features.has_dynamic_pattern:
                return UnstableReport(is_unstable=True, reason=MODEL_DETECTED_REASON, model_detected=True)

        return UnstableReport(is_unstable=False)
