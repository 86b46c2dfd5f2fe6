from __future__ import annotations

from typing import Callable, Collection, Iterable

from selfheal.config.schema import StrategyPrior, default_strategy_priors
from selfheal.core.metadata import ElementDescriptor, LocatorCandidate
from selfheal.utils.parser import escape_css_identifier, escape_css_string, xpath_literal
from selfheal.utils.patterns import has_long_number, is_dynamic_id

MAX_TEXT_LOCATOR_LENGTH = 50


class CandidateGenerator:
    """Enumerates alternative locators for an element in strategy-priority order."""

    def __init__(self, priors: Iterable[StrategyPrior] | None = None) -> None:
        self.priors = list(priors) if priors is not None else default_strategy_priors()
        self._builders: dict[str, Callable[[ElementDescriptor], str | None]] = {
            "testid": self._testid_locator,
            "id": self._id_locator,
            "aria": self._aria_locator,
            "role": self._role_locator,
            "name": self._name_locator,
            "placeholder": self._placeholder_locator,
            "text": self._text_locator,
            "css": self._css_locator,
            "xpath": self._xpath_locator,
        }

    def generate(
        self,
        element: ElementDescriptor,
        suppressed: Collection[str] = (),
    ) -> list[LocatorCandidate]:
        candidates: list[LocatorCandidate] = []
        seen: set[str] = set()
        for prior in sorted(self.priors, key=lambda item: item.priority):
            if not prior.enabled:
                continue
            builder = self._builders.get(prior.kind)
            if builder is None:
                continue
            locator = builder(element)
            if not locator or locator in seen or locator in suppressed:
                continue
            seen.add(locator)
            candidates.append(LocatorCandidate(locator=locator, strategy=prior.kind))  # type: ignore[arg-type]
        return candidates

    @staticmethod
    def _testid_locator(element: ElementDescriptor) -> str | None:
        for attribute in ("data-testid", "data-test"):
            value = element.attr(attribute)
            if value:
                return f'[{attribute}="{escape_css_string(value)}"]'
        return None

    @staticmethod
    def _id_locator(element: ElementDescriptor) -> str | None:
        element_id = (element.id or "").strip()
        if not element_id or has_long_number(element_id):
            return None
        return f"#{escape_css_identifier(element_id)}"

    @staticmethod
    def _aria_locator(element: ElementDescriptor) -> str | None:
        return _attribute_locator(element, "aria-label")

    @staticmethod
    def _role_locator(element: ElementDescriptor) -> str | None:
        return _attribute_locator(element, "role")

    @staticmethod
    def _name_locator(element: ElementDescriptor) -> str | None:
        return _attribute_locator(element, "name")

    @staticmethod
    def _placeholder_locator(element: ElementDescriptor) -> str | None:
        return _attribute_locator(element, "placeholder")

    @staticmethod
    def _text_locator(element: ElementDescriptor) -> str | None:
        text = (element.text or "").strip()
        if not text or len(text) >= MAX_TEXT_LOCATOR_LENGTH:
            return None
        return f'{element.tag or "*"}:has-text("{escape_css_string(text)}")'

    @staticmethod
    def _css_locator(element: ElementDescriptor) -> str | None:
        if not element.classes:
            return None
        first_class = element.classes[0]
        if has_long_number(first_class):
            return None
        return f".{escape_css_identifier(first_class)}"

    @staticmethod
    def _xpath_locator(element: ElementDescriptor) -> str:
        return build_smart_xpath(element)


def build_smart_xpath(element: ElementDescriptor) -> str:
    """Anchors on the nearest stable id in the parent chain, else walks to the root."""

    tag = element.tag or "*"
    if not element.ancestors:
        if element.id and not is_dynamic_id(element.id):
            return f"//*[@id={xpath_literal(element.id)}]"
        return f"//{tag}"

    chain = [(tag, element.id, element.same_tag_index)]
    chain.extend((ancestor.tag or "*", ancestor.id, ancestor.same_tag_index) for ancestor in element.ancestors)

    segments: list[str] = []
    for node_tag, node_id, index in chain:
        if node_id and not is_dynamic_id(node_id):
            segments.append(f"//*[@id={xpath_literal(node_id)}]")
            break
        segments.append(f"/{node_tag}[{index}]" if index else f"/{node_tag}")
    return "".join(reversed(segments))


def _attribute_locator(element: ElementDescriptor, attribute: str) -> str | None:
    value = element.attr(attribute)
    if not value:
        return None
    return f'[{attribute}="{escape_css_string(value)}"]'
