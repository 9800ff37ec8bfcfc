"""FeedLingo - 多语言内容聚合服务."""

__version__ = "0.1.0"
