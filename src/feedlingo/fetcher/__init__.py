"""Feed 读取与全文抓取模块."""

from feedlingo.fetcher.extractor import ExtractionError, FullTextExtractor, FullTextResult
from feedlingo.fetcher.feed_reader import (
    FeedEntry,
    FeedError,
    FeedFetchError,
    FeedParseError,
    FeedReader,
    parse_feed,
)

__all__ = [
    "ExtractionError",
    "FeedEntry",
    "FeedError",
    "FeedFetchError",
    "FeedParseError",
    "FeedReader",
    "FullTextExtractor",
    "FullTextResult",
    "parse_feed",
]
