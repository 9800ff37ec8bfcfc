"""数据模型."""

from feedlingo.models.checkpoint import Checkpoint, FailedItem, ProcessedMarker
from feedlingo.models.database import get_session, init_db
from feedlingo.models.item import Item, TranslationEntry, TranslationUsage
from feedlingo.models.source import Source

__all__ = [
    "Checkpoint",
    "FailedItem",
    "Item",
    "ProcessedMarker",
    "Source",
    "TranslationEntry",
    "TranslationUsage",
    "get_session",
    "init_db",
]
