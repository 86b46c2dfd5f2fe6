from __future__ import annotations

import math
from typing import Protocol

from rapidfuzz.distance import Levenshtein

from selfheal.core.metadata import ElementDescriptor, VisualFingerprint

HASH_WEIGHT = 0.4
SIZE_WEIGHT = 0.2
STYLE_WEIGHT = 0.2
POSITION_WEIGHT = 0.1
TEXT_WEIGHT = 0.1

SCREEN_WIDTH = 1920
SCREEN_HEIGHT = 1080
RENDER_MAX_SIZE = 100
RENDER_TEXT_LENGTH = 20
FINGERPRINT_TEXT_LENGTH = 100


class RenderSnapshotProvider(Protocol):
    def render_hash(self, element: ElementDescriptor) -> str:
        ...


class DescriptorSnapshotProvider:
    """Uses the pixel hash captured with the element, else hashes a coarse rendering of its box."""

    def render_hash(self, element: ElementDescriptor) -> str:
        if element.render_hash:
            return element.render_hash
        return hash_string(_coarse_rendering(element))


class VisualSimilarityComparator:
    """Scores how likely two element snapshots show the same rendered control."""

    def __init__(self, snapshot_provider: RenderSnapshotProvider | None = None) -> None:
        self.snapshot_provider = snapshot_provider or DescriptorSnapshotProvider()

    def fingerprint(self, element: ElementDescriptor) -> VisualFingerprint:
        box = element.bounding_box
        style = element.style
        text = element.text or ""
        return VisualFingerprint(
            width=box.width if box else 0.0,
            height=box.height if box else 0.0,
            background_color=style.background_color,
            color=style.color,
            font_size=style.font_size,
            font_family=style.font_family,
            font_weight=style.font_weight,
            border=style.border,
            border_radius=style.border_radius,
            x=box.x if box else 0.0,
            y=box.y if box else 0.0,
            z_index=_parse_z_index(style.z_index),
            text=text[:FINGERPRINT_TEXT_LENGTH],
            text_hash=hash_string(text),
            visual_hash=self.snapshot_provider.render_hash(element),
        )

    def compare(self, first: ElementDescriptor, second: ElementDescriptor) -> float:
        return self.compare_fingerprints(self.fingerprint(first), self.fingerprint(second))

    def compare_fingerprints(self, first: VisualFingerprint, second: VisualFingerprint) -> float:
        weighted = (
            (hash_similarity(first.visual_hash, second.visual_hash), HASH_WEIGHT),
            (size_similarity(first, second), SIZE_WEIGHT),
            (style_similarity(first, second), STYLE_WEIGHT),
            (position_similarity(first, second), POSITION_WEIGHT),
            (text_similarity(first.text, second.text), TEXT_WEIGHT),
        )
        total_weight = sum(weight for _, weight in weighted)
        if total_weight <= 0:
            return 0.0
        similarity = sum(score * weight for score, weight in weighted) / total_weight
        return min(1.0, max(0.0, similarity))


def hash_string(value: str) -> str:
    """32-bit rolling string hash rendered as unsigned hex."""

    result = 0
    for char in value:
        result = ((result << 5) - result + ord(char)) & 0xFFFFFFFF
    if result >= 0x80000000:
        result -= 0x100000000
    return format(abs(result), "x")


def hash_similarity(first: str, second: str) -> float:
    length = max(len(first), len(second))
    if length == 0:
        return 1.0
    matches = sum(1 for left, right in zip(first, second) if left == right)
    return matches / length


def size_similarity(first: VisualFingerprint, second: VisualFingerprint) -> float:
    width_diff = _relative_difference(first.width, second.width)
    height_diff = _relative_difference(first.height, second.height)
    return 1.0 - (width_diff + height_diff) / 2.0


def style_similarity(first: VisualFingerprint, second: VisualFingerprint) -> float:
    pairs = (
        (first.color, second.color),
        (first.background_color, second.background_color),
        (first.font_family, second.font_family),
    )
    return sum(1.0 for left, right in pairs if left == right) / len(pairs)


def position_similarity(first: VisualFingerprint, second: VisualFingerprint) -> float:
    distance = math.hypot(first.x - second.x, first.y - second.y)
    max_distance = math.hypot(SCREEN_WIDTH, SCREEN_HEIGHT)
    return max(0.0, 1.0 - distance / max_distance)


def text_similarity(first: str, second: str) -> float:
    return float(Levenshtein.normalized_similarity(first, second))


def _relative_difference(first: float, second: float) -> float:
    largest = max(abs(first), abs(second))
    if largest == 0:
        return 0.0
    return min(1.0, abs(first - second) / largest)


def _coarse_rendering(element: ElementDescriptor) -> str:
    box = element.bounding_box
    width = min(box.width, RENDER_MAX_SIZE) if box else 0
    height = min(box.height, RENDER_MAX_SIZE) if box else 0
    style = element.style
    return "|".join(
        (
            f"{width:g}x{height:g}",
            style.background_color or "#ffffff",
            style.color or "#000000",
            f"{style.font_size} {style.font_family}".strip(),
            (element.text or "")[:RENDER_TEXT_LENGTH],
        )
    )


def _parse_z_index(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
