"""Tests for shipment record models and rule-based fallback extraction."""

from datetime import date

import pytest

from carrier_recon.carriers.profiles import load_registry
from carrier_recon.extraction.models import (
    ExtractedShipmentRecord,
    ExtractionResponse,
    References,
    parse_amount,
    parse_date,
)
from carrier_recon.extraction.rule_extractor import ExtractedField, RuleExtractor

from conftest import DHL_INVOICE_TEXT


class TestParsers:
    """Tests for the lenient date and amount parsers."""

    @pytest.mark.parametrize(
        "value",
        [
            "2024-01-15",
            "2024/01/15",
            "01/15/2024",
            "January 15, 2024",
            "Jan 15, 2024",
            "15 Jan 2024",
        ],
    )
    def test_parse_date_formats(self, value: str) -> None:
        assert parse_date(value) == date(2024, 1, 15)

    def test_parse_date_invalid(self) -> None:
        assert parse_date("not-a-date") is None
        assert parse_date("") is None
        assert parse_date(None) is None

    def test_parse_date_passthrough(self) -> None:
        assert parse_date(date(2024, 3, 1)) == date(2024, 3, 1)

    def test_parse_amount(self) -> None:
        assert parse_amount("$1,234.50") == 1234.5
        assert parse_amount(12) == 12.0
        assert parse_amount("12,50 EUR") is None
        assert parse_amount(None) is None


class TestShipmentRecord:
    """Tests for the ExtractedShipmentRecord model."""

    def test_lenient_parsing(self) -> None:
        record = ExtractedShipmentRecord.model_validate(
            {
                "tracking_number": "  1Z999  ",
                "shipment_date": "garbage",
                "invoice_date": "03/10/2024",
                "total_amount": "$12.50",
                "references": None,
                "charges": None,
                "unexpected": 1,
            }
        )
        assert record.tracking_number == "1Z999"
        assert record.shipment_date is None
        assert record.invoice_date == date(2024, 3, 10)
        assert record.total_amount == 12.5
        assert record.references == References()
        assert record.charges == []

    def test_blank_identifiers_become_none(self) -> None:
        record = ExtractedShipmentRecord(shipment_id="   ", pro_number="")
        assert record.shipment_id is None
        assert record.identifiers() == []

    def test_identifiers_and_references(self) -> None:
        record = ExtractedShipmentRecord.model_validate(
            {
                "shipment_id": "S1",
                "bol_number": "B1",
                "references": {
                    "customer_ref": "PO-1",
                    "invoice_ref": "PO-1",
                    "other": "MAN-7",
                },
            }
        )
        assert record.identifiers() == ["S1", "B1"]
        assert record.reference_values() == ["PO-1", "MAN-7"]

    def test_record_date_prefers_shipment_date(self) -> None:
        record = ExtractedShipmentRecord(
            shipment_date="2024-03-01", invoice_date="2024-03-05"
        )
        assert record.record_date() == date(2024, 3, 1)
        assert ExtractedShipmentRecord(invoice_date="2024-03-05").record_date() == date(
            2024, 3, 5
        )

    def test_text_fields_include_references(self) -> None:
        record = ExtractedShipmentRecord.model_validate(
            {"description": "pallet", "references": {"other": ["ICAL-8K2Q0B"]}}
        )
        assert "ICAL-8K2Q0B" in record.text_fields()
        assert "pallet" in record.text_fields()

    def test_complete_addresses(self) -> None:
        record = ExtractedShipmentRecord.model_validate(
            {"ship_from": {"city": "Toronto"}, "ship_to": {"city": "Ottawa"}}
        )
        assert record.has_complete_addresses()
        partial = ExtractedShipmentRecord.model_validate({"ship_from": {"city": "Toronto"}})
        assert not partial.has_complete_addresses()

    def test_charge_amounts_parsed(self) -> None:
        record = ExtractedShipmentRecord.model_validate(
            {"charges": [{"code": "FSC", "amount": "$4.20"}]}
        )
        assert record.charges[0].amount == 4.2

    def test_extraction_response_null_shipments(self) -> None:
        response = ExtractionResponse.model_validate({"shipments": None, "carrier": "DHL"})
        assert response.shipments == []
        assert response.layout == {}


class TestRuleExtractor:
    """Tests for the RuleExtractor class."""

    def setup_method(self) -> None:
        self.extractor = RuleExtractor()
        self.registry = load_registry()

    def test_find(self) -> None:
        results = self.extractor.find(r"(\d{3})", "a 123 b 456", "num")
        assert results == [ExtractedField("num", "123", 2), ExtractedField("num", "456", 8)]

    def test_extract_total_amount(self) -> None:
        assert self.extractor.extract_total_amount("Grand Total: 1,234.56") == 1234.56
        assert self.extractor.extract_total_amount("Total: $99.50") == 99.5
        assert self.extractor.extract_total_amount("nothing here") is None

    def test_extract_date(self) -> None:
        assert self.extractor.extract_date("Shipped Jan 5, 2024") == date(2024, 1, 5)
        assert self.extractor.extract_date("on 2024-02-29") == date(2024, 2, 29)
        assert self.extractor.extract_date("no date") is None

    def test_single_tracking_record(self) -> None:
        records = self.extractor.extract_records(
            DHL_INVOICE_TEXT, self.registry.get("dhl")
        )

        assert len(records) == 1
        record = records[0]
        assert record.tracking_number == "1234567890"
        assert record.total_amount == 250.0
        assert record.shipment_date == date(2024, 3, 10)
        assert record.references.invoice_ref == "YHMR123456"
        assert record.carrier == "DHL"
        assert record.fallback

    def test_one_record_per_tracking_number(self) -> None:
        text = DHL_INVOICE_TEXT + "Air Waybill 9876543210\nAir Waybill 1234567890\n"

        records = self.extractor.extract_records(text, self.registry.get("dhl"))

        assert [r.tracking_number for r in records] == ["1234567890", "9876543210"]
        assert all(r.total_amount is None for r in records)
        assert all(r.fallback for r in records)

    def test_structured_id_without_profile(self) -> None:
        text = "Reference 1CAL-8k2q0b\nInvoice # 100234\nTotal: $99.50"

        records = self.extractor.extract_records(text)

        assert len(records) == 1
        record = records[0]
        assert record.shipment_id == "ICAL-8K2Q0B"
        assert record.references.invoice_ref == "100234"
        assert record.references.other == ["ICAL-8K2Q0B"]
        assert record.total_amount == 99.5
        assert record.carrier is None
        assert record.fallback

    def test_invoice_label_without_number_is_ignored(self) -> None:
        records = self.extractor.extract_records("Invoice Date: none\nTotal: $5.00")
        assert records[0].references.invoice_ref is None

    def test_blank_text(self) -> None:
        assert self.extractor.extract_records("   ") == []
