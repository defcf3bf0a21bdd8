"""Multi-strategy matching of extracted records against the record store.

For each extracted record all strategies run concurrently. Their candidates
are filtered by the caller's access scope and the identified carrier,
deduplicated by store record (the highest-weight strategy keeps the record),
scored and ranked.
"""

import asyncio
from datetime import date

from carrier_recon.carriers.consensus import CarrierConsensus
from carrier_recon.carriers.profiles import UNKNOWN_CARRIER_ID, CarrierRegistry
from carrier_recon.extraction.models import ExtractedShipmentRecord
from carrier_recon.identifiers.resolver import StructuredIdPattern
from carrier_recon.utils.config import MatchingConfig
from carrier_recon.utils.logger import get_logger

from .access import AccessScope
from .models import (
    CONFIDENCE_CAP,
    MatchCandidate,
    MatchResult,
    MatchStatus,
    ScoredMatch,
    Strategy,
)
from .store import RecordStore
from .strategies import LookupContext, run_strategy

logger = get_logger(__name__)

OCR_FLOOR = 0.95
SHIPMENT_ID_FLOOR = 0.95


class CandidateSet:
    """Concurrency-safe candidate collection keyed by store record id.

    A record proposed twice keeps the candidate from the higher-weight
    strategy; on equal weight a direct hit beats an OCR-corrected one.
    """

    def __init__(self) -> None:
        self._by_record: dict[str, MatchCandidate] = {}
        self._lock = asyncio.Lock()

    async def offer(self, candidate: MatchCandidate) -> bool:
        """Add ``candidate``; return whether it is now the record's owner."""
        async with self._lock:
            current = self._by_record.get(candidate.record_id)
            if current is None or self._beats(candidate, current):
                self._by_record[candidate.record_id] = candidate
                return True
            return False

    @staticmethod
    def _beats(new: MatchCandidate, current: MatchCandidate) -> bool:
        if new.strategy.weight != current.strategy.weight:
            return new.strategy.weight > current.strategy.weight
        return current.ocr_corrected and not new.ocr_corrected

    def __len__(self) -> int:
        return len(self._by_record)

    def candidates(self) -> list[MatchCandidate]:
        return list(self._by_record.values())


def _days_apart(a: date | None, b: date | None) -> int | None:
    if a is None or b is None:
        return None
    return abs((a - b).days)


def score_candidate(
    candidate: MatchCandidate, record: ExtractedShipmentRecord
) -> ScoredMatch:
    """Compute the final confidence of a deduplicated candidate.

    Args:
        candidate: The candidate.
        record: The extracted record it was proposed for.

    Returns:
        Scored match with confidence in ``[0, 0.99]`` and the applied
        adjustments in ``details``.
    """
    strategy = candidate.strategy
    confidence = strategy.base_confidence
    details: dict[str, object] = {
        "strategy": strategy.value,
        "field": candidate.field,
        "value": candidate.value,
        "base": confidence,
    }

    if candidate.ocr_corrected:
        confidence = max(confidence, OCR_FLOOR)
        details["ocr_corrected"] = True
    if strategy is Strategy.EXACT_SHIPMENT_ID:
        confidence = max(confidence, SHIPMENT_ID_FLOOR)

    days = _days_apart(record.record_date(), candidate.record.booked_at)
    if days is not None:
        details["days_apart"] = days
        if days <= 1:
            confidence += 0.05
        elif days <= 3:
            confidence += 0.02

    invoice_amount = record.total_amount
    stored_amount = candidate.record.total_amount
    if invoice_amount and invoice_amount > 0 and stored_amount is not None:
        difference = abs(stored_amount - invoice_amount) / invoice_amount
        details["amount_difference"] = round(difference, 4)
        if difference <= 0.05:
            confidence += 0.05
        elif difference <= 0.10:
            confidence += 0.02

    confidence = round(min(max(confidence, 0.0), CONFIDENCE_CAP), 4)
    return ScoredMatch(candidate=candidate, confidence=confidence, details=details)


class MatchingEngine:
    """Matches extracted records against the record store.

    Args:
        store: Record store port.
        registry: Carrier profiles, for carrier alias filtering.
        config: Matching settings.
    """

    def __init__(
        self,
        store: RecordStore,
        registry: CarrierRegistry,
        config: MatchingConfig | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.config = config or MatchingConfig()
        self.pattern = StructuredIdPattern(
            prefix=self.config.structured_id_prefix,
            suffix_length=self.config.structured_id_suffix_length,
        )

    async def match_records(
        self,
        records: list[ExtractedShipmentRecord],
        consensus: CarrierConsensus,
        scope: AccessScope,
        strict: bool = True,
    ) -> list[MatchResult]:
        """Match every record concurrently; results keep the input order."""
        semaphore = asyncio.Semaphore(self.config.store_concurrency)
        results = await asyncio.gather(
            *(
                self.match_record(r, consensus, scope, strict, semaphore)
                for r in records
            )
        )
        return list(results)

    async def match_record(
        self,
        record: ExtractedShipmentRecord,
        consensus: CarrierConsensus,
        scope: AccessScope,
        strict: bool = True,
        semaphore: asyncio.Semaphore | None = None,
    ) -> MatchResult:
        """Match one extracted record.

        Args:
            record: The extracted record.
            consensus: Identified carrier; ``unknown`` disables carrier
                filtering.
            scope: Caller's access scope.
            strict: Strict access filtering (an empty scope denies all).
            semaphore: Bounds concurrent store lookups.

        Returns:
            Ranked matches with status and review flag.
        """
        ctx = LookupContext(
            store=self.store,
            semaphore=semaphore or asyncio.Semaphore(self.config.store_concurrency),
            config=self.config,
            registry=self.registry,
            carrier_id=consensus.carrier_id,
            pattern=self.pattern,
        )
        candidates = CandidateSet()

        async def collect(strategy: Strategy) -> None:
            for candidate in await run_strategy(strategy, record, ctx):
                if self._admit(candidate, consensus.carrier_id, scope, strict):
                    await candidates.offer(candidate)

        await asyncio.gather(*(collect(s) for s in Strategy))

        matches = sorted(
            (score_candidate(c, record) for c in candidates.candidates()),
            key=lambda m: (-m.confidence, -m.strategy.weight, m.record_id),
        )
        best = matches[0].confidence if matches else None
        status = MatchStatus.from_confidence(best)
        review_required = record.fallback or not status.auto_applicable

        logger.info(
            "Record %s: %d candidate(s), status %s",
            record.tracking_number or record.shipment_id or "<no id>",
            len(matches),
            status.value,
        )
        return MatchResult(
            record=record,
            matches=matches,
            status=status,
            review_required=review_required,
        )

    def _admit(
        self,
        candidate: MatchCandidate,
        carrier_id: str,
        scope: AccessScope,
        strict: bool,
    ) -> bool:
        stored = candidate.record
        if not scope.allows(stored.company_id, strict):
            logger.debug("Dropped %s: outside access scope", stored.record_id)
            return False
        if carrier_id == UNKNOWN_CARRIER_ID or not stored.carrier:
            return True
        if not self.registry.alias_match(stored.carrier, carrier_id):
            logger.debug(
                "Dropped %s: carrier %s is not %s", stored.record_id, stored.carrier, carrier_id
            )
            return False
        return True
