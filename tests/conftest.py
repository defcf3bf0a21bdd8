"""Shared test fixtures for the reconciliation test suite."""

from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any

import pytest

from carrier_recon.carriers.profiles import CarrierRegistry, load_registry
from carrier_recon.errors import OracleMalformedResponse
from carrier_recon.matching.access import StaticIdentityService
from carrier_recon.matching.engine import MatchingEngine
from carrier_recon.matching.store import InMemoryRecordStore, StoreRecord
from carrier_recon.ocr.document_loader import Document, document_id_for
from carrier_recon.oracle.gateway import OracleGateway
from carrier_recon.oracle.ports import DocumentOracle, OracleRequest, OracleTask
from carrier_recon.pipeline.journal import StepJournal
from carrier_recon.pipeline.processor import DocumentReconciler
from carrier_recon.utils.config import AccessConfig, PrincipalConfig
from carrier_recon.utils.retry import RetryPolicy
from carrier_recon.validation.enrichment import ShipmentValidator

FAST_RETRY = RetryPolicy(max_attempts=2, backoff=(0.0,))

DHL_INVOICE_TEXT = (
    "DHL Express\n"
    "OUTBOUND INVOICE\n"
    "Invoice YHMR123456\n"
    "Air Waybill 1234567890\n"
    "Ship Date 03/10/2024\n"
    "Total Amount (CAD) 250.00\n"
)


class FakeOracle(DocumentOracle):
    """Oracle answering from a task -> answer table.

    An answer may be a dict, an exception instance (raised), or a callable
    taking the request and returning either. Tasks without an answer get a
    malformed-response error.
    """

    def __init__(self, answers: dict[OracleTask, Any] | None = None) -> None:
        self.answers = answers or {}
        self.requests: list[OracleRequest] = []

    async def analyze(self, document: Document, request: OracleRequest) -> dict[str, Any]:
        self.requests.append(request)
        answer = self.answers.get(request.task)
        if callable(answer):
            answer = answer(request)
        if answer is None:
            raise OracleMalformedResponse(f"no answer for {request.task.value}")
        if isinstance(answer, BaseException):
            raise answer
        return answer

    def tasks(self) -> list[OracleTask]:
        return [r.task for r in self.requests]


def make_document(
    text: str | None = None,
    filename: str = "invoice.pdf",
    page_count: int | None = 1,
    payload: bytes | None = None,
) -> Document:
    """Build a loaded document without touching disk or OCR."""
    payload = payload or (text or filename).encode()
    return Document(
        document_id=document_id_for(payload),
        filename=filename,
        payload=payload,
        content_type="pdf",
        text=text,
        page_count=page_count,
    )


def shipment(**overrides: Any) -> dict[str, Any]:
    """A complete oracle shipment dict."""
    data: dict[str, Any] = {
        "tracking_number": "1234567890",
        "shipment_date": "2024-03-10",
        "total_amount": 250.0,
        "ship_from": {"city": "Toronto", "postal_code": "M5V 2T6"},
        "ship_to": {"city": "Montreal", "postal_code": "H3B 1A7"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def registry() -> CarrierRegistry:
    return load_registry()


@pytest.fixture
def store_records() -> list[StoreRecord]:
    return [
        StoreRecord.from_dict(
            {
                "record_id": "R1",
                "company_id": "acme",
                "carrier": "DHL Express",
                "booked_at": "2024-03-10",
                "total_amount": 250.0,
                "fields": {
                    "shipment_id": "ICAL-8K2Q0B",
                    "tracking_number": "1234567890",
                    "booking_reference": "BK-100",
                },
            }
        ),
        StoreRecord.from_dict(
            {
                "record_id": "R2",
                "company_id": "acme",
                "carrier": "Purolator",
                "booked_at": "2024-03-11",
                "total_amount": 99.0,
                "fields": {
                    "tracking_number": "329012345678",
                    "shipper_reference": "PO-12345",
                },
            }
        ),
        StoreRecord(
            record_id="R3",
            company_id="globex",
            carrier="DHL",
            booked_at=date(2024, 3, 10),
            total_amount=250.0,
        ),
    ]


@pytest.fixture
def store(store_records: list[StoreRecord]) -> InMemoryRecordStore:
    return InMemoryRecordStore(store_records)


@pytest.fixture
def access_config() -> AccessConfig:
    return AccessConfig(
        principals={
            "alice": PrincipalConfig(role="user", company_id="acme"),
            "boss": PrincipalConfig(
                role="admin", company_id="hq", connected_companies=["acme", "globex"]
            ),
            "root": PrincipalConfig(role="super_admin"),
        }
    )


@pytest.fixture
def identity(access_config: AccessConfig) -> StaticIdentityService:
    return StaticIdentityService(access_config)


@pytest.fixture
def validator(tmp_path: Path) -> ShipmentValidator:
    return ShipmentValidator(tmp_path / "no_rules.yaml")


@pytest.fixture
def make_reconciler(
    registry: CarrierRegistry,
    store: InMemoryRecordStore,
    identity: StaticIdentityService,
    validator: ShipmentValidator,
) -> Callable[..., DocumentReconciler]:
    """Factory wiring a reconciler around a fake oracle."""

    def _make(
        oracle: DocumentOracle, journal: StepJournal | None = None
    ) -> DocumentReconciler:
        return DocumentReconciler(
            registry=registry,
            gateway=OracleGateway(oracle, FAST_RETRY),
            matcher=MatchingEngine(store, registry),
            identity=identity,
            validator=validator,
            journal=journal,
        )

    return _make


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent
