from __future__ import annotations

import pytest

from selfheal.utils.patterns import MODEL_DETECTED_REASON, UnstablePatternDetector, is_dynamic_class, is_dynamic_id
from tests.helpers import login_button, make_element


def test_css_in_js_class_is_unstable():
    report = UnstablePatternDetector().detect(".css-a1b2c3")

    assert report.is_unstable
    assert report.reason == "CSS-in-JS class (changes on build)"
    assert not report.model_detected


@pytest.mark.parametrize(
    "locator",
    ["#submit-12345678", ".css-1234567", '[data-testid="row-000000"]', "//div[@id='x123456']"],
)
def test_long_numbers_win_regardless_of_element(locator):
    for element in (None, login_button()):
        report = UnstablePatternDetector().detect(locator, element)
        assert report.is_unstable
        assert report.reason == "Contains long numeric ID (likely dynamic)"


@pytest.mark.parametrize(
    ("locator", "reason"),
    [
        (".sc-bdVaJa", "CSS-in-JS class (changes on build)"),
        ("#session-UUID", "Contains dynamic identifier"),
        ('[data-timestamp="now"]', "Contains dynamic identifier"),
        ("//ul/li[3]", "Uses array index (fragile)"),
    ],
)
def test_pattern_reasons(locator, reason):
    assert UnstablePatternDetector().detect(locator).reason == reason


def test_feature_fallback_flags_dynamic_elements():
    element = make_element(tag="div", element_id="a7c0e1f2-1b2c-4d5e-8f90-a1b2c3d4e5f6")

    report = UnstablePatternDetector().detect(".panel", element)

    assert report.is_unstable
    assert report.reason == MODEL_DETECTED_REASON
    assert report.model_detected


def test_feature_fallback_respects_toggle_and_stable_elements():
    element = make_element(tag="div", element_id="a7c0e1f2-1b2c-4d5e-8f90-a1b2c3d4e5f6")

    assert not UnstablePatternDetector(use_features=False).detect(".panel", element).is_unstable
    assert not UnstablePatternDetector().detect('[data-testid="login"]', login_button()).is_unstable
    assert not UnstablePatternDetector().detect("#login-button").is_unstable


def test_dynamic_predicates():
    assert is_dynamic_id("user-1234567")
    assert is_dynamic_id("randomNode")
    assert is_dynamic_id("emotion-css-xyz")
    assert not is_dynamic_id("login-form")
    assert is_dynamic_class("css-1q2w3e")
    assert not is_dynamic_class("btn-primary")
