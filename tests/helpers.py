from __future__ import annotations

from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any, Iterator

import pytest
from selenium.common.exceptions import WebDriverException

from selfheal.core.metadata import (
    AncestorInfo,
    BoundingBox,
    ComputedStyle,
    ElementDescriptor,
    HealingRecord,
    OutcomeEvent,
)

START_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class MutableClock:
    """Deterministic clock the engine reads instead of the wall clock."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


def make_element(
    tag: str = "button",
    element_id: str | None = None,
    classes: tuple[str, ...] = (),
    attributes: dict[str, str] | None = None,
    text: str = "",
    ancestors: tuple[AncestorInfo, ...] = (),
    **overrides: Any,
) -> ElementDescriptor:
    attrs = dict(attributes or {})
    if element_id:
        attrs.setdefault("id", element_id)
    return ElementDescriptor(
        tag=tag,
        id=element_id,
        classes=classes,
        attributes=attrs,
        text=text,
        ancestors=ancestors,
        **overrides,
    )


def login_button(**overrides: Any) -> ElementDescriptor:
    values: dict[str, Any] = {
        "tag": "button",
        "element_id": "login-button",
        "classes": ("btn", "btn-primary"),
        "attributes": {"data-testid": "login", "aria-label": "Log in", "type": "submit"},
        "text": "Log in",
        "bounding_box": BoundingBox(x=320, y=410, width=120, height=40),
        "style": ComputedStyle(
            color="rgb(255, 255, 255)",
            background_color="rgb(13, 110, 253)",
            font_family="Inter, sans-serif",
            font_size="16px",
            font_weight="600",
            border="0px none",
            border_radius="6px",
            z_index="1",
            display="inline-block",
            visibility="visible",
        ),
    }
    values.update(overrides)
    return make_element(**values)


def make_record(
    record_id: str,
    status: str = "pending",
    created_at: datetime = START_TIME,
    healed_locator: str = "#login-button",
    context_key: str = "#old-login-https://app.test/login",
    confidence: float = 0.9,
    outcomes: tuple[bool, ...] = (),
    **overrides: Any,
) -> HealingRecord:
    record = HealingRecord(
        id=record_id,
        context_key=context_key,
        url="https://app.test/login",
        original_locator="#old-login",
        healed_locator=healed_locator,
        strategy="id",
        confidence=confidence,
        status=status,  # type: ignore[arg-type]
        created_at=created_at,
        **overrides,
    )
    for success in outcomes:
        record.register_outcome(OutcomeEvent(timestamp=created_at, success=success))
    return record


class FakeElement:
    def __init__(self, png: bytes | None = b"\x89PNG-login-button", fail_screenshot: bool = False) -> None:
        self._png = png
        self._fail_screenshot = fail_screenshot

    @property
    def screenshot_as_png(self) -> bytes | None:
        if self._fail_screenshot:
            raise WebDriverException("element screenshot not supported")
        return self._png


class FakeDriver:
    """Records script calls and answers them with a canned element payload."""

    def __init__(self, payload: dict[str, Any] | None = None, matches: dict[str, list[Any]] | None = None) -> None:
        self.payload = payload
        self.matches = matches or {}
        self.scripts: list[tuple[str, tuple[Any, ...]]] = []
        self.lookups: list[tuple[str, str]] = []

    def execute_script(self, script: str, *args: Any) -> Any:
        self.scripts.append((script, args))
        return dict(self.payload) if self.payload else None

    def find_elements(self, by: str, value: str) -> list[Any]:
        self.lookups.append((by, value))
        return self.matches.get(value, [])


def captured_payload() -> dict[str, Any]:
    return {
        "tag": "BUTTON",
        "id": "login-button",
        "classes": ["btn", "btn-primary"],
        "attributes": {"id": "login-button", "class": "btn btn-primary", "data-testid": "login"},
        "text": "Log in",
        "rect": {"x": 320, "y": 410, "width": 120, "height": 40},
        "styles": {
            "color": "rgb(255, 255, 255)",
            "backgroundColor": "rgb(13, 110, 253)",
            "fontFamily": "Inter, sans-serif",
            "fontSize": "16px",
            "fontWeight": "600",
            "zIndex": "auto",
            "display": "inline-block",
            "visibility": "visible",
        },
        "ancestors": [
            {"tag": "form", "id": "login-form", "same_tag_index": 1},
            {"tag": "body", "id": None, "same_tag_index": 1},
            {"tag": "html", "id": None, "same_tag_index": 1},
        ],
        "sibling_count": 2,
        "index_among_siblings": 2,
        "same_tag_index": 1,
    }


@contextmanager
def managed_driver(headless: bool = True) -> Iterator[Any]:
    from selenium import webdriver
    from selenium.webdriver import ChromeOptions

    options = ChromeOptions()
    if headless:
        options.add_argument("--headless=new")
    options.add_argument("--window-size=1440,1200")
    try:
        driver = webdriver.Chrome(options=options)
    except WebDriverException as exc:
        pytest.skip(f"WebDriver could not start for chrome: {exc}")
    driver.implicitly_wait(0)
    try:
        yield driver
    finally:
        driver.quit()
