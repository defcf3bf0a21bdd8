"""Instruction text for each oracle task."""

from typing import Any

from .ports import OracleRequest, OracleTask

_SHIPMENT_SCHEMA = (
    "Return JSON {\"shipments\": [...], \"carrier\": str|null}. Each shipment has "
    "shipment_id, tracking_number, pro_number, bol_number, references "
    "(customer_ref, invoice_ref, manifest_ref, other[]), ship_from, ship_to "
    "(street, city, province, postal_code, country), charges[] (code, "
    "description, amount), total_amount, currency, shipment_date, invoice_date, "
    "service_type, carrier, description."
)

PROMPTS: dict[OracleTask, str] = {
    OracleTask.SURVEY: (
        "Survey this carrier document. Return JSON {\"estimated_pages\": int, "
        "\"estimated_shipments\": int, \"document_type\": str, \"confidence\": float, "
        "\"priority_pages\": [int], \"batch_size\": int}. priority_pages lists the "
        "pages holding the header and shipment table layout; batch_size is how many "
        "pages fit in one extraction request."
    ),
    OracleTask.IDENTIFY_CARRIER: (
        "Which freight carrier issued this document? Return JSON "
        "{\"carrier\": str|null, \"confidence\": float}."
    ),
    OracleTask.DETECT_LOGO: (
        "Identify the carrier from logos or branding only. Return JSON "
        "{\"carrier\": str|null, \"confidence\": float}."
    ),
    OracleTask.CLASSIFY_FORMAT: (
        "Identify the carrier from the document layout and format. Return JSON "
        "{\"carrier\": str|null, \"confidence\": float}."
    ),
    OracleTask.EXTRACT_FULL: "Extract every shipment in the document. " + _SHIPMENT_SCHEMA,
    OracleTask.EXTRACT_HEADER: (
        "Read the header pages: the carrier, the column layout of the shipment "
        "table, and any shipments on these pages. Put the layout under "
        "\"layout\". " + _SHIPMENT_SCHEMA
    ),
    OracleTask.EXTRACT_BULK: (
        "Extract the shipments on these pages using the given layout. " + _SHIPMENT_SCHEMA
    ),
    OracleTask.LEARN_PATTERNS: (
        "Study these sample pages and describe the recurring shipment row "
        "pattern under \"layout\". " + _SHIPMENT_SCHEMA
    ),
    OracleTask.EXTRACT_BATCH: (
        "Extract the shipments on these pages following the learned layout. "
        + _SHIPMENT_SCHEMA
    ),
    OracleTask.EXTRACT_CHUNK: (
        "Extract the shipments in this chunk of a very large document. "
        + _SHIPMENT_SCHEMA
    ),
}


def build_request(
    task: OracleTask, pages: list[int] | None = None, **context: Any
) -> OracleRequest:
    """Create a request for ``task`` with its standard prompt."""
    return OracleRequest(task=task, prompt=PROMPTS[task], pages=pages, context=context)
