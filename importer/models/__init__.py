"""Record Importer database models."""

from .base import Base
from .session import UploadSession, UploadRow
from .record import CrmRecord
from .rule import AccountRule
from .enrichment import AIModel, EnrichmentConfig
from .event import PipelineEvent

__all__ = [
    "Base",
    "UploadSession",
    "UploadRow",
    "CrmRecord",
    "AccountRule",
    "AIModel",
    "EnrichmentConfig",
    "PipelineEvent",
]
