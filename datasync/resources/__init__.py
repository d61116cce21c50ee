"""Resource loaders, realtime subscriptions and multi-source aggregation."""

from .aggregator import MultiSourceAggregator
from .loader import AsyncResourceState
from .state import LoadOptions, ResourceState, default_check_empty
from .subscriptions import SubscriptionRegistry

__all__ = [
    "AsyncResourceState",
    "LoadOptions",
    "MultiSourceAggregator",
    "ResourceState",
    "SubscriptionRegistry",
    "default_check_empty",
]
