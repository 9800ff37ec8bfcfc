"""时间工具."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """当前 UTC 时间（naive，与 SQLite 存储保持一致）."""
    return datetime.now(UTC).replace(tzinfo=None)
