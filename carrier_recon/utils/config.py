"""Configuration management for the reconciliation engine.

Loads and validates YAML configuration with sensible defaults for the local
text layer, the oracle client, carrier profiles, matching and journaling.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_PACKAGE_DIR = Path(__file__).resolve().parent.parent


class OCRConfig(BaseModel):
    """Configuration for the local Tesseract text layer."""

    enabled: bool = True
    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 3
    pdf_dpi: int = 200
    text_pages: int = 3


class OracleConfig(BaseModel):
    """Configuration for the document-understanding oracle client."""

    endpoint: str = "http://localhost:8080/analyze"
    timeout_s: float = 60.0
    max_attempts: int = 3
    backoff_s: list[float] = Field(default_factory=lambda: [1.0, 2.0, 4.0])


class CarrierConfig(BaseModel):
    """Location of the carrier profile registry."""

    profiles_path: Path = _PACKAGE_DIR / "carriers" / "profiles.yaml"


class ValidationConfig(BaseModel):
    """Configuration for the validation rules."""

    rules_path: Path = Path("configs/validation_rules.yaml")


class MatchingConfig(BaseModel):
    """Tuning for candidate lookups against the record store."""

    store_concurrency: int = 10
    lookup_limit: int = 10
    structured_id_prefix: str = "ICAL-"
    structured_id_suffix_length: int = 6
    fuzzy_threshold: float = 85.0
    fuzzy_window_days: int = 7


class ReconciliationSettings(BaseModel):
    """Caller-facing options for a reconciliation run.

    Accepts both the camelCase names used by upstream callers and the
    snake_case attribute names. Unrecognized keys are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enable_multi_source_analysis: bool = Field(
        default=True, alias="enableMultiSourceAnalysis"
    )
    batch_size: int = Field(default=3, ge=1, alias="batchSize")
    carrier_override: str | None = Field(default=None, alias="carrierOverride")
    strict_access_filtering: bool = Field(default=True, alias="strictAccessFiltering")


class StoreConfig(BaseModel):
    """Location of the JSON snapshot backing the in-memory record store."""

    records_path: Path = Path("configs/shipments.json")


class PrincipalConfig(BaseModel):
    """Static access scope entry for a caller principal."""

    role: str = "user"
    company_id: str | None = None
    connected_companies: list[str] = Field(default_factory=list)


class AccessConfig(BaseModel):
    """Principals known to the static identity service."""

    principals: dict[str, PrincipalConfig] = Field(default_factory=dict)


class JournalConfig(BaseModel):
    """Where per-document step journals are written."""

    state_dir: Path | None = None


class AppConfig(BaseModel):
    """Top-level application configuration."""

    ocr: OCRConfig = Field(default_factory=OCRConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    carriers: CarrierConfig = Field(default_factory=CarrierConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    reconciliation: ReconciliationSettings = Field(
        default_factory=ReconciliationSettings
    )
    store: StoreConfig = Field(default_factory=StoreConfig)
    access: AccessConfig = Field(default_factory=AccessConfig)
    journal: JournalConfig = Field(default_factory=JournalConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
