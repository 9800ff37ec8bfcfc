"""核心业务逻辑."""

from feedlingo.core.checkpoint import CheckpointStore
from feedlingo.core.ingestion import IngestionEngine, IngestionReport, IngestionRunner
from feedlingo.core.repository import ItemRepository, SourceRepository
from feedlingo.core.scheduler import IngestionScheduler, JobConflictError

__all__ = [
    "CheckpointStore",
    "IngestionEngine",
    "IngestionReport",
    "IngestionRunner",
    "IngestionScheduler",
    "ItemRepository",
    "JobConflictError",
    "SourceRepository",
]
