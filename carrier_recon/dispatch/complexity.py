"""Document complexity survey and processing tier selection."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from carrier_recon.errors import OracleError
from carrier_recon.ocr.document_loader import Document
from carrier_recon.oracle.gateway import OracleGateway
from carrier_recon.oracle.ports import OracleTask
from carrier_recon.oracle.prompts import build_request
from carrier_recon.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SHIPMENTS = 50
DEFAULT_CONFIDENCE = 0.5
DEFAULT_BATCH_SIZE = 10
DEFAULT_PRIORITY_PAGES = (1, 2, 3)
SURVEY_PAGES = [1, 2, 3]


@dataclass(frozen=True)
class TierCaps:
    """Upper bounds for a tier; ``None`` means unbounded."""

    max_pages: int | None
    max_shipments: int | None

    def holds(self, pages: int, shipments: int) -> bool:
        if self.max_pages is not None and pages > self.max_pages:
            return False
        if self.max_shipments is not None and shipments > self.max_shipments:
            return False
        return True


class ProcessingTier(str, Enum):
    """Extraction strategy tiers, smallest first."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    MASSIVE = "massive"

    @property
    def caps(self) -> TierCaps:
        match self:
            case ProcessingTier.SMALL:
                return TierCaps(5, 10)
            case ProcessingTier.MEDIUM:
                return TierCaps(20, 50)
            case ProcessingTier.LARGE:
                return TierCaps(100, 500)
            case ProcessingTier.MASSIVE:
                return TierCaps(None, None)


def select_tier(pages: int, shipments: int) -> ProcessingTier:
    """Smallest tier whose caps hold both estimates.

    >>> select_tier(8, 30)
    <ProcessingTier.MEDIUM: 'medium'>
    """
    for tier in ProcessingTier:
        if tier.caps.holds(pages, shipments):
            return tier
    return ProcessingTier.MASSIVE


class SurveyResponse(BaseModel):
    """Oracle answer to the complexity survey."""

    model_config = ConfigDict(extra="ignore")

    estimated_pages: int | None = Field(default=None, ge=0)
    estimated_shipments: int = Field(ge=0)
    document_type: str = "invoice"
    confidence: float = Field(default=DEFAULT_CONFIDENCE, ge=0.0, le=1.0)
    priority_pages: list[int] | None = None
    batch_size: int | None = Field(default=None, ge=1)


class ComplexityAssessment(BaseModel):
    """How big a document is and which tier will process it."""

    estimated_pages: int
    estimated_shipments: int
    tier: ProcessingTier
    priority_pages: list[int] = Field(default_factory=lambda: list(DEFAULT_PRIORITY_PAGES))
    batch_size: int = DEFAULT_BATCH_SIZE
    confidence: float = DEFAULT_CONFIDENCE
    document_type: str = "invoice"
    is_default: bool = False


def _clip_pages(pages: list[int] | tuple[int, ...], total: int) -> list[int]:
    clipped = sorted({p for p in pages if 1 <= p <= total})
    return clipped or [1]


class ComplexityClassifier:
    """Surveys a document through the oracle and picks a processing tier.

    Args:
        gateway: Oracle gateway.
    """

    def __init__(self, gateway: OracleGateway) -> None:
        self.gateway = gateway

    async def classify(self, document: Document) -> ComplexityAssessment:
        """Assess a document; never raises on oracle failure.

        Args:
            document: The loaded document.

        Returns:
            The assessment, or the neutral medium-tier default when the
            survey fails or comes back malformed.
        """
        try:
            survey = await self.gateway.request(
                document,
                build_request(OracleTask.SURVEY, pages=SURVEY_PAGES),
                SurveyResponse,
            )
        except OracleError as exc:
            logger.warning(
                "Complexity survey failed for %s, using defaults: %s",
                document.filename,
                exc,
            )
            return self.default_assessment(document)

        pages = document.page_count or survey.estimated_pages or 1
        tier = select_tier(pages, survey.estimated_shipments)
        assessment = ComplexityAssessment(
            estimated_pages=pages,
            estimated_shipments=survey.estimated_shipments,
            tier=tier,
            priority_pages=_clip_pages(
                survey.priority_pages or DEFAULT_PRIORITY_PAGES, pages
            ),
            batch_size=survey.batch_size or DEFAULT_BATCH_SIZE,
            confidence=survey.confidence,
            document_type=survey.document_type,
        )
        logger.info(
            "%s: %d pages, ~%d shipments -> %s tier",
            document.filename,
            pages,
            survey.estimated_shipments,
            tier.value,
        )
        return assessment

    @staticmethod
    def default_assessment(document: Document) -> ComplexityAssessment:
        pages = document.page_count or len(DEFAULT_PRIORITY_PAGES)
        return ComplexityAssessment(
            estimated_pages=pages,
            estimated_shipments=DEFAULT_SHIPMENTS,
            tier=ProcessingTier.MEDIUM,
            priority_pages=list(DEFAULT_PRIORITY_PAGES),
            batch_size=DEFAULT_BATCH_SIZE,
            confidence=DEFAULT_CONFIDENCE,
            is_default=True,
        )
