"""Port for the pre-existing shipment record store, plus an in-memory adapter.

The engine only reads from the store.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from types import MappingProxyType
from typing import Any

from carrier_recon.extraction.models import parse_amount, parse_date
from carrier_recon.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoreRecord:
    """A shipment record as held by the store.

    Attributes:
        record_id: Store-side identity; the dedup key for candidates.
        company_id: Owning company, checked against the caller's scope.
        carrier: Carrier name as the store spells it.
        booked_at: Booking date.
        total_amount: Quoted or invoiced amount.
        fields: Identifier field name to value (tracking_number,
            booking_reference, shipper_reference, ...).
    """

    record_id: str
    company_id: str | None = None
    carrier: str | None = None
    booked_at: date | None = None
    total_amount: float | None = None
    fields: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __hash__(self) -> int:
        return hash(self.record_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StoreRecord):
            return NotImplemented
        return self.record_id == other.record_id

    def get(self, field_name: str) -> str | None:
        return self.fields.get(field_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "company_id": self.company_id,
            "carrier": self.carrier,
            "booked_at": self.booked_at.isoformat() if self.booked_at else None,
            "total_amount": self.total_amount,
            "fields": dict(self.fields),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StoreRecord":
        return cls(
            record_id=str(data["record_id"]),
            company_id=data.get("company_id"),
            carrier=data.get("carrier"),
            booked_at=parse_date(data.get("booked_at")),
            total_amount=parse_amount(data.get("total_amount")),
            fields=MappingProxyType(
                {k: str(v) for k, v in (data.get("fields") or {}).items() if v is not None}
            ),
        )


class RecordStore(ABC):
    """Read-only lookups against the shipment record store.

    Implementations may raise ``RecordStoreError``; the matching engine logs
    it and carries on with the remaining lookups.
    """

    @abstractmethod
    async def find_by_field(
        self, field_name: str, value: str, limit: int = 10
    ) -> list[StoreRecord]:
        """Records whose ``field_name`` equals ``value`` (case-insensitive)."""

    @abstractmethod
    async def find_booked_between(
        self, start: date, end: date, limit: int = 100
    ) -> list[StoreRecord]:
        """Records booked within ``[start, end]`` inclusive."""


class InMemoryRecordStore(RecordStore):
    """Record store backed by a list, indexed by field value.

    Args:
        records: Records to serve.
    """

    def __init__(self, records: Iterable[StoreRecord] = ()) -> None:
        self.records = list(records)
        self._index: dict[tuple[str, str], list[StoreRecord]] = {}
        for record in self.records:
            for name, value in record.fields.items():
                self._index.setdefault((name, value.casefold()), []).append(record)

    @classmethod
    def from_json(cls, path: Path) -> "InMemoryRecordStore":
        """Load records from a JSON list of objects.

        Args:
            path: JSON file path.

        Returns:
            The populated store; empty when the file does not exist.
        """
        if not path.exists():
            logger.warning("No record store snapshot at %s, store is empty", path)
            return cls()
        with open(path) as f:
            data = json.load(f)
        store = cls(StoreRecord.from_dict(item) for item in data)
        logger.info("Loaded %d store records from %s", len(store.records), path)
        return store

    async def find_by_field(
        self, field_name: str, value: str, limit: int = 10
    ) -> list[StoreRecord]:
        await asyncio.sleep(0)
        return self._index.get((field_name, value.casefold()), [])[:limit]

    async def find_booked_between(
        self, start: date, end: date, limit: int = 100
    ) -> list[StoreRecord]:
        await asyncio.sleep(0)
        found = [
            r for r in self.records if r.booked_at is not None and start <= r.booked_at <= end
        ]
        return found[:limit]
