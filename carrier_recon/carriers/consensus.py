"""Weighted fusion of carrier detection signals."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from .profiles import UNKNOWN_CARRIER_ID, UNKNOWN_CARRIER_NAME

STRONG_SCORE = 1.0
MODERATE_SCORE = 0.6
NEUTRAL_CONFIDENCE = 0.5


class SignalSource(str, Enum):
    """Independent evidence sources for carrier identity."""

    TEXT = "text"
    LOGO = "logo"
    FORMAT = "format"

    @property
    def weight(self) -> float:
        match self:
            case SignalSource.TEXT:
                return 0.7
            case SignalSource.LOGO:
                return 0.8
            case SignalSource.FORMAT:
                return 0.5


@dataclass(frozen=True)
class DetectionSignal:
    """One source's opinion about which carrier issued a document."""

    source: SignalSource
    carrier_id: str | None
    carrier_name: str
    confidence: float
    method: str = "template"

    @property
    def is_known(self) -> bool:
        return self.carrier_id not in (None, UNKNOWN_CARRIER_ID)

    @classmethod
    def unknown(
        cls, source: SignalSource, confidence: float = 0.1, method: str = "none"
    ) -> "DetectionSignal":
        return cls(
            source=source,
            carrier_id=UNKNOWN_CARRIER_ID,
            carrier_name=UNKNOWN_CARRIER_NAME,
            confidence=confidence,
            method=method,
        )


class CarrierConsensus(BaseModel):
    """Fused carrier identification for a document."""

    carrier_id: str = UNKNOWN_CARRIER_ID
    name: str = UNKNOWN_CARRIER_NAME
    confidence: float = Field(default=NEUTRAL_CONFIDENCE, ge=0.0, le=1.0)
    supporting_signals: int = 0
    strength: str = "none"
    source: str = "consensus"

    @property
    def is_known(self) -> bool:
        return self.carrier_id != UNKNOWN_CARRIER_ID


def _strength(score: float) -> str:
    if score > STRONG_SCORE:
        return "strong"
    if score > MODERATE_SCORE:
        return "moderate"
    return "weak"


def build_consensus(signals: list[DetectionSignal]) -> CarrierConsensus:
    """Fuse detection signals into a single carrier decision.

    Each known-carrier signal contributes ``confidence * source weight`` to its
    carrier's score. The highest score wins (the first carrier seen wins ties)
    and is normalized by the number of weighted sources.

    Args:
        signals: Signals from the text, logo and format analyses.

    Returns:
        The consensus; ``unknown`` at neutral confidence when no signal names
        a known carrier.
    """
    scores: dict[str, float] = {}
    names: dict[str, str] = {}
    support: dict[str, int] = {}

    for signal in signals:
        if not signal.is_known:
            continue
        carrier_id = signal.carrier_id
        scores[carrier_id] = scores.get(carrier_id, 0.0) + (
            signal.confidence * signal.source.weight
        )
        names.setdefault(carrier_id, signal.carrier_name)
        support[carrier_id] = support.get(carrier_id, 0) + 1

    if not scores:
        return CarrierConsensus()

    best_id = None
    best_score = 0.0
    for carrier_id, score in scores.items():
        if best_id is None or score > best_score:
            best_id, best_score = carrier_id, score

    return CarrierConsensus(
        carrier_id=best_id,
        name=names[best_id],
        confidence=min(best_score / len(SignalSource), 1.0),
        supporting_signals=support[best_id],
        strength=_strength(best_score),
    )


def override_consensus(carrier_id: str, name: str) -> CarrierConsensus:
    """Consensus for a carrier chosen by the caller."""
    return CarrierConsensus(
        carrier_id=carrier_id,
        name=name,
        confidence=1.0,
        supporting_signals=0,
        strength="strong",
        source="override",
    )
