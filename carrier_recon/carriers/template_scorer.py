"""Template scoring of document text against carrier profiles.

Produces the ``text`` detection signal: every profile is scored by the
literal identifiers, display name and field patterns found in the document
text (and its filename), and the best capped score wins.
"""

from carrier_recon.utils.logger import get_logger

from .consensus import DetectionSignal, SignalSource
from .profiles import CarrierProfile, CarrierRegistry, normalize_carrier_name

logger = get_logger(__name__)

IDENTIFIER_SCORE = 0.4
NAME_SCORE = 0.3
FILENAME_SCORE = 0.1
CARRIER_PATTERN_SCORE = 0.3
INVOICE_PATTERN_SCORE = 0.2
ACCOUNT_PATTERN_SCORE = 0.1
TRACKING_PATTERN_SCORE = 0.1
UNKNOWN_CONFIDENCE = 0.1

_TRACKING_FIELDS = ("tracking_number", "airwaybill_number")


class TemplateScorer:
    """Scores text against every profile in a carrier registry.

    Args:
        registry: Carrier profiles, in tie-break order.
    """

    def __init__(self, registry: CarrierRegistry) -> None:
        self.registry = registry

    def score(self, text: str, filename: str | None = None) -> DetectionSignal:
        """Return the text signal for a document.

        Args:
            text: Local text layer of the document.
            filename: Original filename, if any.

        Returns:
            Signal naming the best-scoring carrier, or ``unknown`` at 0.1 when
            no profile scores above zero.
        """
        best: CarrierProfile | None = None
        best_score = 0.0

        for profile in self.registry:
            score = self.profile_score(profile, text, filename)
            if score > best_score:
                best, best_score = profile, score

        if best is None:
            logger.debug("No carrier template matched")
            return DetectionSignal.unknown(
                SignalSource.TEXT, UNKNOWN_CONFIDENCE, method="template"
            )

        logger.info("Template scoring picked %s (score=%.2f)", best.id, best_score)
        return DetectionSignal(
            source=SignalSource.TEXT,
            carrier_id=best.id,
            carrier_name=best.name,
            confidence=best_score,
            method="template",
        )

    def profile_score(
        self, profile: CarrierProfile, text: str, filename: str | None = None
    ) -> float:
        """Score one profile, capped at its confidence ceiling."""
        lowered = text.lower()
        score = 0.0

        for identifier in profile.identifiers:
            if identifier.lower() in lowered:
                score += IDENTIFIER_SCORE

        if profile.name.lower() in lowered:
            score += NAME_SCORE

        if filename:
            fname = normalize_carrier_name(filename)
            if profile.id in fname or normalize_carrier_name(profile.name) in fname:
                score += FILENAME_SCORE

        if self._search(profile, "carrier_identifier", text):
            score += CARRIER_PATTERN_SCORE
        if self._search(profile, "invoice_number", text):
            score += INVOICE_PATTERN_SCORE
        if self._search(profile, "account_number", text):
            score += ACCOUNT_PATTERN_SCORE
        if any(self._search(profile, name, text) for name in _TRACKING_FIELDS):
            score += TRACKING_PATTERN_SCORE

        return min(score, profile.confidence_ceiling)

    @staticmethod
    def _search(profile: CarrierProfile, field_name: str, text: str) -> bool:
        pattern = profile.pattern(field_name)
        return pattern is not None and pattern.search(text) is not None
