from __future__ import annotations

import re

_HAS_TEXT_PATTERN = re.compile(r':has-text\("((?:[^"\\]|\\.)*)"\)')

# Checked in order; the first matching prefix wins.
_STRATEGY_PREFIXES: tuple[tuple[str, str], ...] = (
    ("[data-testid=", "testid"),
    ("[data-test=", "testid"),
    ("#", "id"),
    ("[aria-label=", "aria"),
    ("[role=", "role"),
    ("[name=", "name"),
    ("[placeholder=", "placeholder"),
)


def infer_selector_type(locator: str) -> str:
    stripped = locator.strip()
    if stripped.startswith("/") or stripped.startswith("("):
        return "xpath"
    return "css"


def infer_strategy_kind(locator: str) -> str:
    """Recovers the strategy kind encoded in a locator string."""

    stripped = locator.strip()
    for prefix, kind in _STRATEGY_PREFIXES:
        if stripped.startswith(prefix):
            return kind
    if ":has-text(" in stripped:
        return "text"
    if infer_selector_type(stripped) == "xpath":
        return "xpath"
    return "css"


def extract_has_text(locator: str) -> str | None:
    match = _HAS_TEXT_PATTERN.search(locator)
    if not match:
        return None
    return match.group(1).replace('\\"', '"').replace("\\\\", "\\")


def escape_css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def escape_css_identifier(value: str) -> str:
    escaped: list[str] = []
    for index, char in enumerate(value):
        if char.isalnum() or char in {"-", "_"} or ord(char) >= 0x80:
            if index == 0 and char.isdigit():
                escaped.append(f"\\3{char} ")
            else:
                escaped.append(char)
        else:
            escaped.append(f"\\{char}")
    return "".join(escaped)


def xpath_literal(value: str) -> str:
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    parts = value.split('"')
    return "concat(" + ', \'"\', '.join(f'"{part}"' for part in parts) + ")"
