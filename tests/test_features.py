from __future__ import annotations

from selfheal.core.metadata import AncestorInfo, BoundingBox, ComputedStyle, ElementDescriptor
from selfheal.utils.features import FEATURE_COUNT, FeatureExtractor, encode_features
from tests.helpers import login_button, make_element


def test_extracts_presence_and_content_flags():
    features = FeatureExtractor().extract(login_button())

    assert features.element_type == "button"
    assert features.has_id
    assert features.has_test_id
    assert features.has_aria_label
    assert not features.has_role
    assert features.has_text
    assert features.has_class
    assert features.text_length == len("Log in")
    assert features.text_word_count == 2
    assert not features.has_numeric_text
    assert features.is_clickable
    assert features.is_visible
    assert not features.has_unique_color
    assert features.has_unique_size
    assert not features.has_dynamic_pattern


def test_missing_data_defaults_to_false_and_zero():
    features = FeatureExtractor().extract(ElementDescriptor(tag="div"))

    assert not features.has_id
    assert not features.has_class
    assert features.text_length == 0
    assert features.depth == 0
    assert features.sibling_count == 0
    assert features.has_unique_color
    assert not features.has_unique_size
    assert not features.is_clickable


def test_dynamic_pattern_flags():
    extractor = FeatureExtractor()

    numeric = extractor.extract(make_element(element_id="submit-12345678"))
    assert numeric.has_numeric_id

    css_module = extractor.extract(make_element(tag="div", classes=("css-1x2y3z", "card")))
    assert css_module.has_css_module_class

    uuid = extractor.extract(make_element(element_id="row-3f2b8c1e-9d4a-4b6e-8f00-1a2b3c4d5e6f"))
    assert uuid.has_uuid

    timestamp = extractor.extract(make_element(tag="span", classes=("updated-date",)))
    assert timestamp.has_timestamp

    random_id = extractor.extract(make_element(element_id="randomToken"))
    assert random_id.has_random_id
    assert random_id.has_dynamic_pattern


def test_structural_features_come_from_parent_chain():
    element = make_element(
        ancestors=(AncestorInfo("form", "login-form", 1), AncestorInfo("body"), AncestorInfo("html")),
        sibling_count=4,
        index_among_siblings=3,
    )
    features = FeatureExtractor().extract(element)

    assert features.depth == 3
    assert features.sibling_count == 4
    assert features.index_among_siblings == 3


def test_common_colors_and_sizes_are_not_unique():
    element = make_element(
        bounding_box=BoundingBox(width=205, height=28),
        style=ComputedStyle(color="rgb(0, 0, 0)", display="none"),
    )
    features = FeatureExtractor().extract(element)

    assert not features.has_unique_color
    assert not features.has_unique_size
    assert not features.is_visible


def test_encoding_has_fixed_length_and_scaled_counts():
    element = make_element(text="one two three four", sibling_count=5)
    vector = encode_features(FeatureExtractor().extract(element))

    assert len(vector) == FEATURE_COUNT == 24
    assert vector[8] == len("one two three four") / 100
    assert vector[9] == 4 / 20
    assert vector[13] == 0.5
    assert all(0.0 <= value <= 1.0 for value in vector)


def test_color_uniqueness_uses_common_set_membership():
    extractor = FeatureExtractor()

    def unique(color):
        return extractor.extract(make_element(style=ComputedStyle(color=color))).has_unique_color

    assert not unique("rgb(255, 255, 255)")
    assert not unique("  #FFFFFF ")
    assert unique("rgb(13, 110, 253)")
    assert unique("")
