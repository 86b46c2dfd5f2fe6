from __future__ import annotations

import hashlib
import logging
import re
from typing import Any

from selenium.common.exceptions import InvalidSelectorException, WebDriverException
from selenium.webdriver.common.by import By

from selfheal.core.metadata import ElementDescriptor
from selfheal.utils.parser import extract_has_text, infer_selector_type, xpath_literal

logger = logging.getLogger(__name__)

_TEXT_LOCATOR_TAG = re.compile(r"^([A-Za-z][\w-]*|\*):has-text\(")

CAPTURE_ELEMENT_SCRIPT = r"""
const node = arguments[0];
if (!(node instanceof Element)) return null;

const sameTagIndex = (item) => {
  if (!item.parentElement) return 1;
  const peers = Array.from(item.parentElement.children).filter((peer) => peer.tagName === item.tagName);
  return peers.indexOf(item) + 1;
};

const ancestors = [];
let parent = node.parentElement;
while (parent) {
  ancestors.push({
    tag: parent.tagName.toLowerCase(),
    id: parent.id || null,
    same_tag_index: sameTagIndex(parent),
  });
  parent = parent.parentElement;
}

const siblings = node.parentElement ? Array.from(node.parentElement.children) : [node];
const rect = node.getBoundingClientRect();
const style = window.getComputedStyle(node);

return {
  tag: node.tagName.toLowerCase(),
  id: node.id || null,
  classes: Array.from(node.classList),
  attributes: Array.from(node.attributes).reduce((acc, attr) => {
    acc[attr.name] = attr.value;
    return acc;
  }, {}),
  text: (node.innerText || node.textContent || "").trim().slice(0, 200),
  rect: {x: rect.x, y: rect.y, width: rect.width, height: rect.height},
  styles: {
    color: style.color,
    backgroundColor: style.backgroundColor,
    fontFamily: style.fontFamily,
    fontSize: style.fontSize,
    fontWeight: style.fontWeight,
    border: style.border,
    borderRadius: style.borderRadius,
    zIndex: style.zIndex,
    display: style.display,
    visibility: style.visibility,
  },
  ancestors: ancestors,
  sibling_count: siblings.length - 1,
  index_among_siblings: siblings.indexOf(node),
  same_tag_index: sameTagIndex(node),
};
"""


def extract_element_descriptor(driver, element, include_render_hash: bool = True) -> ElementDescriptor | None:
    """Captures a live element into an ElementDescriptor with a single script call."""

    payload: dict[str, Any] | None = driver.execute_script(CAPTURE_ELEMENT_SCRIPT, element)
    if not payload:
        return None
    if include_render_hash:
        payload["render_hash"] = element_render_hash(element)
    return ElementDescriptor.from_dict(payload)


def element_render_hash(element) -> str | None:
    try:
        png = element.screenshot_as_png
    except WebDriverException as exc:
        logger.debug("Element screenshot unavailable: %s", exc.msg)
        return None
    if not png:
        return None
    return hashlib.sha1(png).hexdigest()


def locate_element(driver, locator: str):
    """Resolves a CSS, XPath or text locator to the first matching element, or ``None``."""

    by, value = _selenium_locator(locator)
    try:
        matches = driver.find_elements(by, value)
    except InvalidSelectorException:
        logger.debug("Locator is not a valid %s selector: %s", by, locator)
        return None
    return matches[0] if matches else None


def _selenium_locator(locator: str) -> tuple[str, str]:
    # Text candidates are not CSS; Selenium needs them as an exact-text XPath.
    tag_match = _TEXT_LOCATOR_TAG.match(locator.strip())
    text = extract_has_text(locator) if tag_match else None
    if text is not None:
        return By.XPATH, f"//{tag_match.group(1)}[normalize-space(.)={xpath_literal(text)}]"
    if infer_selector_type(locator) == "xpath":
        return By.XPATH, locator
    return By.CSS_SELECTOR, locator
