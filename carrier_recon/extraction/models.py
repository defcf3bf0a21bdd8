"""Shipment record models shared by the oracle boundary and the journal.

Oracle output is loosely formatted, so the validators here are lenient:
unparseable dates and amounts become ``None`` rather than failing the whole
response.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DATE_FORMATS: list[str] = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%m-%d-%Y",
    "%d-%m-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
]


def parse_date(value: Any) -> date | None:
    """Parse a date in any supported format, ``None`` if it cannot be read."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_amount(value: Any) -> float | None:
    """Parse a monetary amount such as ``"$1,234.50"``."""
    if value is None or value == "":
        return None
    if isinstance(value, int | float):
        return float(value)
    cleaned = str(value).replace(",", "").replace("$", "").strip()
    try:
        return float(Decimal(cleaned))
    except InvalidOperation:
        return None


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Address(_Lenient):
    street: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    country: str | None = None


class Charge(_Lenient):
    code: str | None = None
    description: str | None = None
    amount: float | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> float | None:
        return parse_amount(v)


class References(_Lenient):
    customer_ref: str | None = None
    invoice_ref: str | None = None
    manifest_ref: str | None = None
    other: list[str] = Field(default_factory=list)

    @field_validator("customer_ref", "invoice_ref", "manifest_ref", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str | None:
        return _clean_str(v)

    @field_validator("other", mode="before")
    @classmethod
    def _other(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [s for s in (_clean_str(item) for item in v) if s]

    def all_values(self) -> list[str]:
        """Non-empty reference values, deduplicated in field order."""
        seen: dict[str, None] = {}
        for value in (self.customer_ref, self.invoice_ref, self.manifest_ref, *self.other):
            if value:
                seen.setdefault(value, None)
        return list(seen)


class ExtractedShipmentRecord(_Lenient):
    """One shipment line extracted from a carrier document."""

    shipment_id: str | None = None
    tracking_number: str | None = None
    pro_number: str | None = None
    bol_number: str | None = None
    references: References = Field(default_factory=References)
    ship_from: Address | None = None
    ship_to: Address | None = None
    charges: list[Charge] = Field(default_factory=list)
    total_amount: float | None = None
    currency: str | None = None
    shipment_date: date | None = None
    invoice_date: date | None = None
    service_type: str | None = None
    carrier: str | None = None
    description: str | None = None
    fallback: bool = False

    @field_validator("shipment_id", "tracking_number", "pro_number", "bol_number", mode="before")
    @classmethod
    def _identifier(cls, v: Any) -> str | None:
        return _clean_str(v)

    @field_validator("references", mode="before")
    @classmethod
    def _references(cls, v: Any) -> Any:
        return References() if v is None else v

    @field_validator("charges", mode="before")
    @classmethod
    def _charges(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("total_amount", mode="before")
    @classmethod
    def _total(cls, v: Any) -> float | None:
        return parse_amount(v)

    @field_validator("shipment_date", "invoice_date", mode="before")
    @classmethod
    def _date(cls, v: Any) -> date | None:
        return parse_date(v)

    def identifiers(self) -> list[str]:
        """Primary identifiers present on the record."""
        return [
            v
            for v in (self.shipment_id, self.tracking_number, self.pro_number, self.bol_number)
            if v
        ]

    def reference_values(self) -> list[str]:
        return self.references.all_values()

    def record_date(self) -> date | None:
        return self.shipment_date or self.invoice_date

    def text_fields(self) -> list[str | None]:
        """Free-text fields scanned for embedded structured ids."""
        return [
            self.shipment_id,
            self.description,
            self.service_type,
            *self.reference_values(),
        ]

    def has_complete_addresses(self) -> bool:
        return bool(
            self.ship_from and self.ship_from.city and self.ship_to and self.ship_to.city
        )


class ExtractionResponse(_Lenient):
    """Shape of an oracle answer to any extraction task."""

    shipments: list[ExtractedShipmentRecord] = Field(default_factory=list)
    carrier: str | None = None
    layout: dict[str, Any] = Field(default_factory=dict)

    @field_validator("shipments", mode="before")
    @classmethod
    def _shipments(cls, v: Any) -> Any:
        return [] if v is None else v


class ExtractionOutput(BaseModel):
    """Records produced by a tier pipeline (or the local fallback)."""

    records: list[ExtractedShipmentRecord] = Field(default_factory=list)
    carrier_hint: str | None = None
    pages_processed: int = 0
    requests: int = 0
    warnings: list[str] = Field(default_factory=list)
    fallback: bool = False
