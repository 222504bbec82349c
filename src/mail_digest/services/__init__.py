"""Business logic services for the mail digest."""

from .distribution_service import DigestNotFoundError, DistributionService
from .ingestion_service import IngestionService
from .summary_service import DigestGenerationError, DigestPage, SummaryService

__all__ = [
    "DigestGenerationError",
    "DigestNotFoundError",
    "DigestPage",
    "DistributionService",
    "IngestionService",
    "SummaryService",
]
