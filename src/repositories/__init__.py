"""Repository package exports."""

from .feed_repository import FeedRepository
from .settlement_event_repository import SettlementEventRepository

__all__ = ["FeedRepository", "SettlementEventRepository"]
