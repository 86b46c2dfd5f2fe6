from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Mapping

StrategyKind = Literal["testid", "id", "aria", "role", "name", "placeholder", "text", "css", "xpath"]
HealingStatus = Literal["pending", "approved", "rejected", "auto-applied", "rolled-back"]
OutcomeState = Literal["unknown", "success", "failure"]

STRATEGY_KINDS: tuple[str, ...] = ("testid", "id", "aria", "role", "name", "placeholder", "text", "css", "xpath")
HEALING_STATUSES: tuple[str, ...] = ("pending", "approved", "rejected", "auto-applied", "rolled-back")

MAX_TEXT_LENGTH = 200


@dataclass(slots=True, frozen=True)
class BoundingBox:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> BoundingBox | None:
        if not payload:
            return None
        return cls(
            x=float(payload.get("x", 0.0) or 0.0),
            y=float(payload.get("y", 0.0) or 0.0),
            width=float(payload.get("width", 0.0) or 0.0),
            height=float(payload.get("height", 0.0) or 0.0),
        )


@dataclass(slots=True, frozen=True)
class ComputedStyle:
    color: str = ""
    background_color: str = ""
    font_family: str = ""
    font_size: str = ""
    font_weight: str = ""
    border: str = ""
    border_radius: str = ""
    z_index: str = ""
    display: str = ""
    visibility: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> ComputedStyle:
        payload = payload or {}

        def pick(snake: str, camel: str) -> str:
            value = payload.get(snake, payload.get(camel, ""))
            return "" if value is None else str(value)

        return cls(
            color=pick("color", "color"),
            background_color=pick("background_color", "backgroundColor"),
            font_family=pick("font_family", "fontFamily"),
            font_size=pick("font_size", "fontSize"),
            font_weight=pick("font_weight", "fontWeight"),
            border=pick("border", "border"),
            border_radius=pick("border_radius", "borderRadius"),
            z_index=pick("z_index", "zIndex"),
            display=pick("display", "display"),
            visibility=pick("visibility", "visibility"),
        )


@dataclass(slots=True, frozen=True)
class AncestorInfo:
    tag: str
    id: str | None = None
    same_tag_index: int | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> AncestorInfo:
        index = payload.get("same_tag_index", payload.get("index"))
        return cls(
            tag=str(payload.get("tag", "")).lower(),
            id=payload.get("id") or None,
            same_tag_index=int(index) if index is not None else None,
        )


@dataclass(slots=True, frozen=True)
class ElementDescriptor:
    """Snapshot of a DOM element taken when its locator failed.

    ``ancestors`` lists the parent chain nearest-first up to the document root; the
    structural features fall back to zero when the capturing side could not supply it.
    """

    tag: str
    id: str | None = None
    classes: tuple[str, ...] = ()
    attributes: Mapping[str, str] = field(default_factory=dict)
    text: str = ""
    bounding_box: BoundingBox | None = None
    style: ComputedStyle = field(default_factory=ComputedStyle)
    ancestors: tuple[AncestorInfo, ...] = ()
    sibling_count: int | None = None
    index_among_siblings: int | None = None
    same_tag_index: int | None = None
    render_hash: str | None = None

    @property
    def class_name(self) -> str:
        return " ".join(self.classes)

    def attr(self, key: str) -> str | None:
        raw = self.attributes.get(key)
        if raw is None:
            return None
        value = str(raw).strip()
        return value or None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["classes"] = list(self.classes)
        payload["attributes"] = dict(self.attributes)
        payload["ancestors"] = [asdict(item) for item in self.ancestors]
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ElementDescriptor:
        attributes = {str(key): str(value) for key, value in (payload.get("attributes") or {}).items()}
        raw_classes = payload.get("classes")
        if raw_classes is None:
            raw_classes = str(payload.get("class_name") or attributes.get("class", "")).split()
        text = str(payload.get("text") or "")[:MAX_TEXT_LENGTH]
        return cls(
            tag=str(payload.get("tag") or "").lower(),
            id=payload.get("id") or attributes.get("id") or None,
            classes=tuple(item for item in raw_classes if item),
            attributes=attributes,
            text=text,
            bounding_box=BoundingBox.from_dict(payload.get("bounding_box") or payload.get("rect")),
            style=ComputedStyle.from_dict(payload.get("style") or payload.get("styles")),
            ancestors=tuple(AncestorInfo.from_dict(item) for item in payload.get("ancestors") or []),
            sibling_count=_optional_int(payload.get("sibling_count")),
            index_among_siblings=_optional_int(payload.get("index_among_siblings")),
            same_tag_index=_optional_int(payload.get("same_tag_index")),
            render_hash=payload.get("render_hash") or None,
        )


@dataclass(slots=True)
class FeatureVector:
    element_type: str = ""
    has_id: bool = False
    has_test_id: bool = False
    has_aria_label: bool = False
    has_role: bool = False
    has_name: bool = False
    has_placeholder: bool = False
    has_text: bool = False
    has_class: bool = False
    text_length: int = 0
    text_word_count: int = 0
    has_numeric_text: bool = False
    has_special_chars: bool = False
    depth: int = 0
    sibling_count: int = 0
    index_among_siblings: int = 0
    is_visible: bool = False
    is_clickable: bool = False
    has_unique_color: bool = False
    has_unique_size: bool = False
    has_numeric_id: bool = False
    has_css_module_class: bool = False
    has_timestamp: bool = False
    has_uuid: bool = False
    has_random_id: bool = False

    @property
    def has_dynamic_pattern(self) -> bool:
        return (
            self.has_numeric_id
            or self.has_css_module_class
            or self.has_timestamp
            or self.has_uuid
            or self.has_random_id
        )


@dataclass(slots=True)
class LocatorCandidate:
    locator: str
    strategy: StrategyKind
    confidence: float | None = None
    model_assisted: bool = False


@dataclass(slots=True, frozen=True)
class HealingContext:
    url: str
    failure_reason: str = ""

    def key(self, original_locator: str) -> str:
        return f"{original_locator}-{self.url}"


@dataclass(slots=True)
class PriorHistory:
    success_count: int = 0
    failure_count: int = 0
    recent_success_count: int = 0


@dataclass(slots=True)
class OutcomeEvent:
    timestamp: datetime
    success: bool
    error: str | None = None


@dataclass(slots=True)
class RollbackInfo:
    timestamp: datetime
    reason: str


@dataclass(slots=True)
class HealingRecord:
    id: str
    context_key: str
    url: str
    original_locator: str
    healed_locator: str
    strategy: StrategyKind
    confidence: float
    status: HealingStatus
    created_at: datetime
    auto_applied: bool = False
    model_assisted: bool = False
    failure_reason: str = ""
    last_outcome: OutcomeState = "unknown"
    success_count: int = 0
    failure_count: int = 0
    outcomes: list[OutcomeEvent] = field(default_factory=list)
    rollback: RollbackInfo | None = None
    element: ElementDescriptor | None = None

    def register_outcome(self, event: OutcomeEvent) -> None:
        self.outcomes.append(event)
        if event.success:
            self.success_count += 1
            self.last_outcome = "success"
        else:
            self.failure_count += 1
            self.last_outcome = "failure"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "context_key": self.context_key,
            "url": self.url,
            "original_locator": self.original_locator,
            "healed_locator": self.healed_locator,
            "strategy": self.strategy,
            "confidence": self.confidence,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "auto_applied": self.auto_applied,
            "model_assisted": self.model_assisted,
            "failure_reason": self.failure_reason,
            "last_outcome": self.last_outcome,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "outcomes": [
                {"timestamp": item.timestamp.isoformat(), "success": item.success, "error": item.error}
                for item in self.outcomes
            ],
            "rollback": (
                {"timestamp": self.rollback.timestamp.isoformat(), "reason": self.rollback.reason}
                if self.rollback
                else None
            ),
            "element": self.element.to_dict() if self.element else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> HealingRecord:
        rollback = payload.get("rollback")
        element = payload.get("element")
        return cls(
            id=str(payload["id"]),
            context_key=str(payload["context_key"]),
            url=str(payload.get("url", "")),
            original_locator=str(payload["original_locator"]),
            healed_locator=str(payload["healed_locator"]),
            strategy=payload["strategy"],
            confidence=float(payload["confidence"]),
            status=payload["status"],
            created_at=datetime.fromisoformat(payload["created_at"]),
            auto_applied=bool(payload.get("auto_applied", False)),
            model_assisted=bool(payload.get("model_assisted", False)),
            failure_reason=str(payload.get("failure_reason", "")),
            last_outcome=payload.get("last_outcome", "unknown"),
            success_count=int(payload.get("success_count", 0)),
            failure_count=int(payload.get("failure_count", 0)),
            outcomes=[
                OutcomeEvent(
                    timestamp=datetime.fromisoformat(item["timestamp"]),
                    success=bool(item["success"]),
                    error=item.get("error"),
                )
                for item in payload.get("outcomes", [])
            ],
            rollback=(
                RollbackInfo(timestamp=datetime.fromisoformat(rollback["timestamp"]), reason=rollback["reason"])
                if rollback
                else None
            ),
            element=ElementDescriptor.from_dict(element) if element else None,
        )


@dataclass(slots=True)
class HealingDecision:
    record_id: str
    healed_locator: str
    strategy: StrategyKind
    confidence: float
    auto_applied: bool
    requires_approval: bool


@dataclass(slots=True)
class TrainingSample:
    features: FeatureVector
    label: int

    def to_dict(self) -> dict[str, Any]:
        return {"features": asdict(self.features), "label": self.label}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> TrainingSample:
        return cls(features=FeatureVector(**payload["features"]), label=int(payload["label"]))


@dataclass(slots=True)
class UnstableReport:
    is_unstable: bool
    reason: str | None = None
    model_detected: bool = False
    suggestions: list[LocatorCandidate] = field(default_factory=list)


@dataclass(slots=True)
class VisualFingerprint:
    width: float
    height: float
    background_color: str
    color: str
    font_size: str
    font_family: str
    font_weight: str
    border: str
    border_radius: str
    x: float
    y: float
    z_index: int
    text: str
    text_hash: str
    visual_hash: str


@dataclass(slots=True)
class StrategyStats:
    strategy: str
    count: int
    success_rate: float


@dataclass(slots=True)
class HealingStatistics:
    total: int
    pending: int
    approved: int
    rejected: int
    auto_applied: int
    rolled_back: int
    success_rate: float
    outcome_success_rate: float
    auto_heal_rate: float
    rollback_rate: float
    average_confidence: float
    model_assisted_count: int
    top_strategies: list[StrategyStats] = field(default_factory=list)


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)
