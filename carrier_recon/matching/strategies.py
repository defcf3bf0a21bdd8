"""Candidate generation strategies.

Every strategy runs through :func:`run_strategy`. Strategies only propose
candidates; filtering, deduplication and scoring happen in the engine.
"""

import asyncio
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from rapidfuzz import fuzz

from carrier_recon.carriers.profiles import UNKNOWN_CARRIER_ID, CarrierRegistry
from carrier_recon.errors import RecordStoreError
from carrier_recon.extraction.models import ExtractedShipmentRecord
from carrier_recon.identifiers.resolver import (
    StructuredIdPattern,
    find_structured_ids,
    variants,
)
from carrier_recon.utils.config import MatchingConfig
from carrier_recon.utils.logger import get_logger

from .models import MatchCandidate, Strategy
from .store import RecordStore, StoreRecord

logger = get_logger(__name__)

SHIPMENT_ID_FIELDS = ("shipment_id",)
TRACKING_FIELDS = ("tracking_number", "pro_number", "confirmation_number", "barcode")
BOOKING_FIELDS = ("booking_reference",)
REFERENCE_FIELDS = ("shipper_reference", "customer_reference")

DATE_WINDOW_DAYS = 3
AMOUNT_TOLERANCE = 0.15
RANGE_LIMIT = 200


def normalize_reference(value: str) -> str:
    """Strip separators, upper-case and drop leading zeros (``po-00123`` -> ``PO00123``)."""
    cleaned = re.sub(r"[^A-Za-z0-9]", "", value).upper()
    return cleaned.lstrip("0") or cleaned


def _unique(values: Iterable[str | None]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


@dataclass
class LookupContext:
    """Shared state for the strategies matching one record."""

    store: RecordStore
    semaphore: asyncio.Semaphore
    config: MatchingConfig
    registry: CarrierRegistry
    carrier_id: str = UNKNOWN_CARRIER_ID
    pattern: StructuredIdPattern = StructuredIdPattern()

    async def by_field(self, field_name: str, value: str) -> list[StoreRecord]:
        async with self.semaphore:
            try:
                return await self.store.find_by_field(
                    field_name, value, limit=self.config.lookup_limit
                )
            except RecordStoreError as exc:
                logger.warning("Lookup %s=%s failed: %s", field_name, value, exc)
                return []

    async def booked_around(self, day: date, days: int) -> list[StoreRecord]:
        async with self.semaphore:
            try:
                return await self.store.find_booked_between(
                    day - timedelta(days=days), day + timedelta(days=days), limit=RANGE_LIMIT
                )
            except RecordStoreError as exc:
                logger.warning("Date range lookup around %s failed: %s", day, exc)
                return []


async def _lookup_values(
    ctx: LookupContext,
    strategy: Strategy,
    values: list[str],
    fields: tuple[str, ...],
    with_variants: bool = False,
) -> list[MatchCandidate]:
    """Look every value up in every field; try OCR variants for values that found nothing."""

    async def lookup(value: str, ocr_corrected: bool) -> list[MatchCandidate]:
        results = await asyncio.gather(*(ctx.by_field(f, value) for f in fields))
        return [
            MatchCandidate(record, strategy, f, value, ocr_corrected)
            for f, records in zip(fields, results)
            for record in records
        ]

    async def lookup_with_variants(value: str) -> list[MatchCandidate]:
        found = await lookup(value, False)
        if found or not with_variants:
            return found
        alternatives = sorted(variants(value, (ctx.pattern,)))
        nested = await asyncio.gather(*(lookup(alt, True) for alt in alternatives))
        return [c for group in nested for c in group]

    nested = await asyncio.gather(*(lookup_with_variants(v) for v in values))
    return [c for group in nested for c in group]


async def run_strategy(
    strategy: Strategy, record: ExtractedShipmentRecord, ctx: LookupContext
) -> list[MatchCandidate]:
    """Generate candidates for ``record`` with one strategy.

    Args:
        strategy: Strategy to run.
        record: The extracted record.
        ctx: Store access and matching settings.

    Returns:
        Candidates before access/carrier filtering and deduplication.
    """
    match strategy:
        case Strategy.EXACT_SHIPMENT_ID:
            ids = _unique(
                [
                    record.shipment_id,
                    *find_structured_ids(record.text_fields(), ctx.pattern),
                    *record.reference_values(),
                ]
            )
            return await _lookup_values(
                ctx, strategy, ids, SHIPMENT_ID_FIELDS, with_variants=True
            )

        case Strategy.EXACT_TRACKING_NUMBER:
            numbers = _unique([record.tracking_number, record.pro_number])
            return await _lookup_values(
                ctx, strategy, numbers, TRACKING_FIELDS, with_variants=True
            )

        case Strategy.EXACT_BOOKING_REFERENCE:
            return await _lookup_values(
                ctx, strategy, record.reference_values(), BOOKING_FIELDS
            )

        case Strategy.REFERENCE_NUMBER_MATCH:
            refs = _unique([*record.reference_values(), record.pro_number, record.bol_number])
            return await _lookup_values(ctx, strategy, refs, REFERENCE_FIELDS)

        case Strategy.DATE_AMOUNT_MATCH:
            return await _date_amount(record, ctx)

        case Strategy.FUZZY_REFERENCE_MATCH:
            return await _fuzzy_reference(record, ctx)

        case Strategy.CARRIER_DATE_MATCH:
            return await _carrier_date(record, ctx)


async def _date_amount(
    record: ExtractedShipmentRecord, ctx: LookupContext
) -> list[MatchCandidate]:
    day = record.record_date()
    amount = record.total_amount
    if day is None or not amount or amount <= 0:
        return []
    candidates = []
    for stored in await ctx.booked_around(day, DATE_WINDOW_DAYS):
        if stored.total_amount is None:
            continue
        if abs(stored.total_amount - amount) <= amount * AMOUNT_TOLERANCE:
            candidates.append(
                MatchCandidate(
                    stored,
                    Strategy.DATE_AMOUNT_MATCH,
                    "total_amount",
                    f"{stored.total_amount:.2f}",
                )
            )
    return candidates


async def _fuzzy_reference(
    record: ExtractedShipmentRecord, ctx: LookupContext
) -> list[MatchCandidate]:
    refs = _unique(normalize_reference(r) for r in record.reference_values())
    if not refs:
        return []
    fields = REFERENCE_FIELDS + BOOKING_FIELDS
    candidates = await _lookup_values(ctx, Strategy.FUZZY_REFERENCE_MATCH, refs, fields)

    day = record.record_date()
    if day is None:
        return candidates
    for stored in await ctx.booked_around(day, ctx.config.fuzzy_window_days):
        for field_name in fields:
            stored_value = stored.get(field_name)
            if not stored_value:
                continue
            normalized = normalize_reference(stored_value)
            best = max(fuzz.ratio(ref, normalized) for ref in refs)
            if best >= ctx.config.fuzzy_threshold:
                candidates.append(
                    MatchCandidate(
                        stored, Strategy.FUZZY_REFERENCE_MATCH, field_name, stored_value
                    )
                )
                break
    return candidates


async def _carrier_date(
    record: ExtractedShipmentRecord, ctx: LookupContext
) -> list[MatchCandidate]:
    day = record.record_date()
    if day is None or ctx.carrier_id == UNKNOWN_CARRIER_ID:
        return []
    return [
        MatchCandidate(stored, Strategy.CARRIER_DATE_MATCH, "carrier", stored.carrier)
        for stored in await ctx.booked_around(day, DATE_WINDOW_DAYS)
        if stored.carrier and ctx.registry.alias_match(stored.carrier, ctx.carrier_id)
    ]
