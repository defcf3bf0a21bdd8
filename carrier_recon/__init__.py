"""Carrier Invoice Reconciliation Engine.

Identifies the carrier behind scanned or digital invoices and manifests,
extracts shipment records through a document-understanding oracle with a
local Tesseract text layer, and matches each record against booked shipments
despite OCR noise.
"""

__version__ = "0.1.0"
