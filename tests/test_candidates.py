from __future__ import annotations

from selfheal.config.schema import StrategyPrior, default_strategy_priors
from selfheal.core.metadata import AncestorInfo
from selfheal.utils.candidates import CandidateGenerator, build_smart_xpath
from tests.helpers import login_button, make_element


def test_dynamic_id_is_never_an_id_candidate():
    element = make_element(element_id="submit-12345678", attributes={"data-testid": "submit-btn"})
    candidates = CandidateGenerator().generate(element)

    assert candidates[0].locator == '[data-testid="submit-btn"]'
    assert candidates[0].strategy == "testid"
    assert all(candidate.strategy != "id" for candidate in candidates)
    assert "#submit-12345678" not in [candidate.locator for candidate in candidates]


def test_testid_is_first_whenever_present():
    elements = [
        login_button(),
        make_element(tag="a", attributes={"data-testid": "nav-home", "role": "link"}, text="Home"),
        make_element(tag="input", attributes={"data-testid": "email", "name": "email", "placeholder": "Email"}),
    ]
    for element in elements:
        assert CandidateGenerator().generate(element)[0].strategy == "testid"


def test_data_test_attribute_is_used_when_testid_missing():
    candidates = CandidateGenerator().generate(make_element(attributes={"data-test": "checkout"}))

    assert candidates[0].locator == '[data-test="checkout"]'
    assert candidates[0].strategy == "testid"


def test_data_test_locator_keeps_the_attribute_name_it_matches():
    # Older generators rewrote data-test into a data-testid selector, which never matches.
    element = make_element(attributes={"data-test": "checkout"})

    locators = [candidate.locator for candidate in CandidateGenerator().generate(element)]

    assert '[data-test="checkout"]' in locators
    assert '[data-testid="checkout"]' not in locators


def test_generates_every_applicable_strategy_in_priority_order():
    element = make_element(
        tag="input",
        element_id="email",
        classes=("form-control",),
        attributes={
            "aria-label": "Email address",
            "role": "textbox",
            "name": "email",
            "placeholder": "you@example.com",
        },
    )
    candidates = CandidateGenerator().generate(element)

    assert [(candidate.strategy, candidate.locator) for candidate in candidates] == [
        ("id", "#email"),
        ("aria", '[aria-label="Email address"]'),
        ("role", '[role="textbox"]'),
        ("name", '[name="email"]'),
        ("placeholder", '[placeholder="you@example.com"]'),
        ("css", ".form-control"),
        ("xpath", '//*[@id="email"]'),
    ]
    assert all(candidate.confidence is None for candidate in candidates)


def test_text_candidate_requires_short_text():
    short = CandidateGenerator().generate(make_element(text="Log in"))
    long = CandidateGenerator().generate(make_element(text="x" * 60))

    assert ('button:has-text("Log in")', "text") in [(item.locator, item.strategy) for item in short]
    assert all(item.strategy != "text" for item in long)


def test_css_candidate_skips_numeric_class():
    candidates = CandidateGenerator().generate(make_element(tag="div", classes=("item-1234567", "card")))

    assert all(candidate.strategy != "css" for candidate in candidates)
    assert candidates[-1].strategy == "xpath"


def test_xpath_anchors_on_nearest_stable_ancestor_id():
    element = make_element(
        element_id="btn-99999999",
        same_tag_index=2,
        ancestors=(
            AncestorInfo("div", None, 1),
            AncestorInfo("form", "login-form", 1),
            AncestorInfo("body", None, 1),
        ),
    )

    assert build_smart_xpath(element) == '//*[@id="login-form"]/div[1]/button[2]'


def test_xpath_falls_back_to_absolute_path():
    element = make_element(
        tag="span",
        same_tag_index=3,
        ancestors=(AncestorInfo("li", "item-1234567", 2), AncestorInfo("ul", None, 1), AncestorInfo("body", None, 1)),
    )

    assert build_smart_xpath(element) == "/body[1]/ul[1]/li[2]/span[3]"
    assert build_smart_xpath(make_element(tag="span")) == "//span"


def test_generation_is_idempotent():
    generator = CandidateGenerator()
    element = login_button()

    assert generator.generate(element) == generator.generate(element)


def test_identical_locators_are_not_duplicated():
    element = make_element(tag="div", classes=("card",), text="Card", attributes={"role": "region"})
    candidates = CandidateGenerator().generate(element)

    locators = [candidate.locator for candidate in candidates]
    assert len(locators) == len(set(locators))


def test_disabled_and_suppressed_locators_are_skipped():
    priors = [prior.model_copy(update={"enabled": prior.kind != "testid"}) for prior in default_strategy_priors()]
    candidates = CandidateGenerator(priors).generate(login_button(), suppressed={"#login-button"})

    strategies = [candidate.strategy for candidate in candidates]
    assert "testid" not in strategies
    assert "id" not in strategies
    assert strategies[0] == "aria"


def test_prior_order_drives_candidate_order():
    priors = [
        StrategyPrior(kind="xpath", priority=1, stability=0.4),
        StrategyPrior(kind="testid", priority=2, stability=0.95),
    ]
    candidates = CandidateGenerator(priors).generate(login_button())

    assert [candidate.strategy for candidate in candidates] == ["xpath", "testid"]
