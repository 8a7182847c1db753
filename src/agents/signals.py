"""
Agent signal model, category classification and signal intake.

An ``AgentSignal`` is one agent's opinion about a binary market: a fair YES
probability, a stated confidence, a direction, and the drivers behind it.
Signals arrive from the agent-invocation layer either as parsed dicts or as
raw model text; both paths go through ``validate_signal`` so that nothing
outside the schema ever reaches weighting or fusion.

Agent categories are a closed enumeration looked up by agent name, with
``AgentCategory.BASELINE`` as the explicit default for unknown names.
"""

import json
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from numbers import Real
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from json_repair import repair_json

from src.agents.errors import SignalValidationError
from src.utils.logging_setup import get_trading_logger

logger = get_trading_logger("signals")

MAX_KEY_DRIVERS = 5


class SignalDirection(str, Enum):
    YES = "YES"
    NO = "NO"
    NEUTRAL = "NEUTRAL"


class AgentCategory(str, Enum):
    """Agent families used for base weighting and data-source mapping."""

    BASELINE = "baseline"
    EVENT_INTELLIGENCE = "event_intelligence"
    POLLING_STATISTICAL = "polling_statistical"
    SENTIMENT_NARRATIVE = "sentiment_narrative"
    PRICE_ACTION = "price_action"
    EVENT_SCENARIO = "event_scenario"


AGENT_CATEGORIES: Dict[str, AgentCategory] = {
    "market_microstructure": AgentCategory.BASELINE,
    "probability_baseline": AgentCategory.BASELINE,
    "risk_assessment": AgentCategory.BASELINE,
    "breaking_news": AgentCategory.EVENT_INTELLIGENCE,
    "event_impact": AgentCategory.EVENT_INTELLIGENCE,
    "polling_intelligence": AgentCategory.POLLING_STATISTICAL,
    "historical_pattern": AgentCategory.POLLING_STATISTICAL,
    "media_sentiment": AgentCategory.SENTIMENT_NARRATIVE,
    "social_sentiment": AgentCategory.SENTIMENT_NARRATIVE,
    "narrative_velocity": AgentCategory.SENTIMENT_NARRATIVE,
    "momentum": AgentCategory.PRICE_ACTION,
    "mean_reversion": AgentCategory.PRICE_ACTION,
    "catalyst": AgentCategory.EVENT_SCENARIO,
    "tail_risk": AgentCategory.EVENT_SCENARIO,
}


def classify_agent(agent_name: str) -> AgentCategory:
    """Return the category for *agent_name*; unknown names are BASELINE."""
    category = AGENT_CATEGORIES.get(agent_name)
    if category is None:
        return AgentCategory.BASELINE
    return category


def is_known_agent(agent_name: str) -> bool:
    return agent_name in AGENT_CATEGORIES


# ============================================================
# Typed metadata, one variant per category
# ============================================================

@dataclass(frozen=True)
class SignalMetadata:
    """Base metadata; keys without a typed field are kept in ``extra``."""
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BaselineMetadata(SignalMetadata):
    pass


@dataclass(frozen=True)
class EventIntelligenceMetadata(SignalMetadata):
    regime_change: bool = False
    news_velocity: float = 0.0


@dataclass(frozen=True)
class PollingMetadata(SignalMetadata):
    aggregated_probability: Optional[float] = None
    momentum: str = "stable"       # rising | falling | stable
    poll_count: int = 0


@dataclass(frozen=True)
class SentimentMetadata(SignalMetadata):
    crowd_psychology: str = "neutral"     # fear | greed | uncertainty | neutral
    retail_positioning: str = "neutral"   # bullish | bearish | neutral


@dataclass(frozen=True)
class PriceActionMetadata(SignalMetadata):
    momentum_score: float = 0.0           # -1..1
    order_flow_imbalance: float = 0.0     # -1..1
    price_target: Optional[float] = None


@dataclass(frozen=True)
class EventScenarioMetadata(SignalMetadata):
    upcoming_catalysts: Tuple[str, ...] = ()
    tail_scenarios: Tuple[str, ...] = ()


_POLLING_MOMENTUM = ("rising", "falling", "stable")
_CROWD_PSYCHOLOGY = ("fear", "greed", "uncertainty", "neutral")
_RETAIL_POSITIONING = ("bullish", "bearish", "neutral")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _pop(raw: Dict[str, Any], name: str, default: Any = None) -> Any:
    """Pop *name* from *raw*, accepting either snake_case or camelCase."""
    if name in raw:
        return raw.pop(name)
    camel = _camel(name)
    if camel in raw:
        return raw.pop(camel)
    return default


def _as_number(agent_name: str, label: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (Real, str)):
        raise SignalValidationError(agent_name, f"{label} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise SignalValidationError(agent_name, f"{label} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise SignalValidationError(agent_name, f"{label} must be finite")
    return number


def _bounded(agent_name: str, label: str, value: Any, lo: float, hi: float) -> float:
    number = _as_number(agent_name, label, value)
    if not lo <= number <= hi:
        raise SignalValidationError(agent_name, f"{label} must be within [{lo}, {hi}], got {number}")
    return number


def _choice(agent_name: str, label: str, value: Any, choices: Tuple[str, ...]) -> str:
    text = str(value).lower()
    if text not in choices:
        raise SignalValidationError(agent_name, f"{label} must be one of {choices}, got {value!r}")
    return text


def _labels(items: Any) -> Tuple[str, ...]:
    """Normalise a list of strings or labelled dicts into a tuple of strings."""
    if items is None:
        return ()
    if isinstance(items, (str, dict)):
        items = [items]
    labels = []
    for item in items:
        if isinstance(item, dict):
            label = item.get("event") or item.get("scenario") or item.get("setup")
            labels.append(str(label) if label is not None else json.dumps(item, sort_keys=True))
        else:
            labels.append(str(item))
    return tuple(labels)


def parse_signal_metadata(
    category: AgentCategory,
    raw: Optional[Mapping[str, Any]],
    agent_name: str = "",
) -> SignalMetadata:
    """
    Build the metadata variant for *category* from a raw mapping.

    Raises:
        SignalValidationError: when a typed field has the wrong shape.
    """
    if raw is None:
        raw = {}
    if isinstance(raw, SignalMetadata):
        return raw
    if not isinstance(raw, Mapping):
        raise SignalValidationError(agent_name, "metadata must be a mapping")

    data = dict(raw)

    if category is AgentCategory.EVENT_INTELLIGENCE:
        velocity = _as_number(agent_name, "news_velocity", _pop(data, "news_velocity", 0.0))
        if velocity < 0:
            raise SignalValidationError(agent_name, "news_velocity must be non-negative")
        return EventIntelligenceMetadata(
            regime_change=bool(_pop(data, "regime_change", False)),
            news_velocity=velocity,
            extra=data,
        )

    if category is AgentCategory.POLLING_STATISTICAL:
        aggregated = _pop(data, "aggregated_probability")
        poll_count = _as_number(agent_name, "poll_count", _pop(data, "poll_count", 0))
        if poll_count < 0:
            raise SignalValidationError(agent_name, "poll_count must be non-negative")
        return PollingMetadata(
            aggregated_probability=(
                None if aggregated is None
                else _bounded(agent_name, "aggregated_probability", aggregated, 0.0, 1.0)
            ),
            momentum=_choice(agent_name, "momentum", _pop(data, "momentum", "stable"), _POLLING_MOMENTUM),
            poll_count=int(poll_count),
            extra=data,
        )

    if category is AgentCategory.SENTIMENT_NARRATIVE:
        return SentimentMetadata(
            crowd_psychology=_choice(
                agent_name, "crowd_psychology",
                _pop(data, "crowd_psychology", "neutral"), _CROWD_PSYCHOLOGY,
            ),
            retail_positioning=_choice(
                agent_name, "retail_positioning",
                _pop(data, "retail_positioning", "neutral"), _RETAIL_POSITIONING,
            ),
            extra=data,
        )

    if category is AgentCategory.PRICE_ACTION:
        target = _pop(data, "price_target")
        return PriceActionMetadata(
            momentum_score=_bounded(
                agent_name, "momentum_score", _pop(data, "momentum_score", 0.0), -1.0, 1.0
            ),
            order_flow_imbalance=_bounded(
                agent_name, "order_flow_imbalance", _pop(data, "order_flow_imbalance", 0.0), -1.0, 1.0
            ),
            price_target=None if target is None else _as_number(agent_name, "price_target", target),
            extra=data,
        )

    if category is AgentCategory.EVENT_SCENARIO:
        return EventScenarioMetadata(
            upcoming_catalysts=_labels(_pop(data, "upcoming_catalysts")),
            tail_scenarios=_labels(_pop(data, "tail_scenarios")),
            extra=data,
        )

    return BaselineMetadata(extra=data)


# ============================================================
# Agent signal
# ============================================================

@dataclass(frozen=True)
class AgentSignal:
    """One agent's opinion about a market, produced once per analysis cycle."""
    agent_name: str
    confidence: float
    direction: SignalDirection
    fair_probability: float
    key_drivers: Tuple[str, ...]
    risk_factors: Tuple[str, ...] = ()
    metadata: SignalMetadata = field(default_factory=BaselineMetadata)
    timestamp: float = 0.0

    def __post_init__(self):
        # Accept lists / plain strings from callers; store immutable forms.
        object.__setattr__(self, "key_drivers", tuple(self.key_drivers))
        object.__setattr__(self, "risk_factors", tuple(self.risk_factors))
        if not isinstance(self.direction, SignalDirection):
            try:
                object.__setattr__(self, "direction", SignalDirection(str(self.direction).upper()))
            except ValueError:
                pass  # left as-is; validate_signal reports it

    @property
    def category(self) -> AgentCategory:
        return classify_agent(self.agent_name)


def validate_signal(signal: AgentSignal) -> AgentSignal:
    """
    Check *signal* against the signal schema and return it unchanged.

    Raises:
        SignalValidationError: on any schema violation.
    """
    name = signal.agent_name
    if not isinstance(name, str) or not name.strip():
        raise SignalValidationError("", "agent_name must be a non-empty string")

    if not isinstance(signal.direction, SignalDirection):
        raise SignalValidationError(name, f"direction must be YES, NO or NEUTRAL, got {signal.direction!r}")

    for label, value in (("confidence", signal.confidence), ("fair_probability", signal.fair_probability)):
        if isinstance(value, bool) or not isinstance(value, Real):
            raise SignalValidationError(name, f"{label} must be a number, got {value!r}")
        _bounded(name, label, value, 0.0, 1.0)

    if not 1 <= len(signal.key_drivers) <= MAX_KEY_DRIVERS:
        raise SignalValidationError(
            name, f"key_drivers must contain 1-{MAX_KEY_DRIVERS} entries, got {len(signal.key_drivers)}"
        )
    if not all(isinstance(d, str) and d.strip() for d in signal.key_drivers):
        raise SignalValidationError(name, "key_drivers must be non-empty strings")
    if not all(isinstance(r, str) for r in signal.risk_factors):
        raise SignalValidationError(name, "risk_factors must be strings")

    if not isinstance(signal.metadata, SignalMetadata):
        raise SignalValidationError(name, "metadata must be a SignalMetadata variant")

    return signal


def signal_from_dict(
    agent_name: str,
    payload: Mapping[str, Any],
    timestamp: float = 0.0,
) -> AgentSignal:
    """
    Normalise a parsed agent payload into a validated ``AgentSignal``.

    Accepts snake_case or camelCase keys; ``probability`` is accepted as an
    alias for ``fair_probability``.
    """
    data = dict(payload)
    category = classify_agent(agent_name)

    probability = _pop(data, "fair_probability")
    if probability is None:
        probability = data.get("probability")
    if probability is None:
        raise SignalValidationError(agent_name, "missing fair_probability")

    confidence = _pop(data, "confidence")
    if confidence is None:
        raise SignalValidationError(agent_name, "missing confidence")

    key_drivers = _pop(data, "key_drivers", [])
    if isinstance(key_drivers, str):
        key_drivers = [key_drivers]
    risk_factors = _pop(data, "risk_factors", [])
    if isinstance(risk_factors, str):
        risk_factors = [risk_factors]

    signal = AgentSignal(
        agent_name=agent_name,
        confidence=_as_number(agent_name, "confidence", confidence),
        direction=str(_pop(data, "direction", "NEUTRAL")).upper(),
        fair_probability=_as_number(agent_name, "fair_probability", probability),
        key_drivers=tuple(str(d) for d in key_drivers),
        risk_factors=tuple(str(r) for r in risk_factors),
        metadata=parse_signal_metadata(category, _pop(data, "metadata"), agent_name),
        timestamp=timestamp,
    )
    return validate_signal(signal)


# ============================================================
# Raw model output -> signal
# ============================================================

def _try_parse_json(candidate: str) -> Optional[dict]:
    """Attempt to parse *candidate* as JSON, falling back to repair."""
    try:
        parsed = json.loads(candidate)
        if isinstance(parsed, dict):
            return parsed
    except (json.JSONDecodeError, TypeError):
        pass

    try:
        repaired = repair_json(candidate, return_objects=False)
        parsed = json.loads(repaired)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    if isinstance(parsed, dict):
        logger.debug("JSON repair succeeded")
        return parsed
    return None


def extract_json(text: str) -> Optional[dict]:
    """
    Extract a JSON object from model output.

    Tries, in order: a ```json fenced block, any fenced block, the outermost
    ``{ ... }`` span, and finally repair of the whole text.
    """
    for pattern in (r"```json\s*(.*?)\s*```", r"```\s*(.*?)\s*```", r"\{.*\}"):
        match = re.search(pattern, text, re.DOTALL)
        if match:
            candidate = match.group(1) if match.groups() else match.group(0)
            result = _try_parse_json(candidate.strip())
            if result is not None:
                return result

    return _try_parse_json(text)


def signal_from_response(agent_name: str, text: str, timestamp: float = 0.0) -> AgentSignal:
    """Parse raw model output for *agent_name* into a validated signal."""
    if not text:
        raise SignalValidationError(agent_name, "empty model response")
    parsed = extract_json(text)
    if parsed is None:
        raise SignalValidationError(agent_name, f"no JSON object in response: {text[:200]}")
    return signal_from_dict(agent_name, parsed, timestamp=timestamp)


def accept_signals(candidates: Iterable[AgentSignal]) -> Tuple[List[AgentSignal], List[str]]:
    """
    Split *candidates* into accepted signals and rejection reasons.

    Invalid signals and repeated agent names (the first signal wins) are
    rejected; the order of accepted signals is preserved.
    """
    accepted: List[AgentSignal] = []
    rejected: List[str] = []
    seen = set()

    for signal in candidates:
        try:
            validate_signal(signal)
        except SignalValidationError as exc:
            logger.warning("Rejected agent signal", agent=exc.agent_name, reason=exc.message)
            rejected.append(str(exc))
            continue

        if signal.agent_name in seen:
            logger.warning("Rejected duplicate agent signal", agent=signal.agent_name)
            rejected.append(f"{signal.agent_name}: duplicate signal in cycle")
            continue

        seen.add(signal.agent_name)
        accepted.append(signal)

    return accepted, rejected
