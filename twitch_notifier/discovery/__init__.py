"""Discovery and cleanup cycles.

Components:
- DiscoveryService / CycleReport: Poll-dedup-match-dispatch orchestrator
- SubscriptionPruner / CleanupReport: Removes chronically failing subscriptions
- MarkerStore / DiscoveredMarker: Redis dedup markers with TTL
- DeliveryCounterStore: Daily success/failure counters
- StatusService / StatusReport: Last poll time and delivery totals
- evaluate / matches / MatchResult: Stateless match rules
- DiscoveryConfig / CleanupConfig: Pydantic settings
"""

from twitch_notifier.discovery.config import CleanupConfig, DedupScope, DiscoveryConfig
from twitch_notifier.discovery.counters import DeliveryCounterStore
from twitch_notifier.discovery.markers import DiscoveredMarker, MarkerStore
from twitch_notifier.discovery.matching import MatchResult, evaluate, matches
from twitch_notifier.discovery.pruner import CleanupReport, SubscriptionPruner
from twitch_notifier.discovery.service import CycleReport, DiscoveryService
from twitch_notifier.discovery.status import StatusReport, StatusService

__all__ = [
    "CleanupConfig",
    "CleanupReport",
    "CycleReport",
    "DedupScope",
    "DeliveryCounterStore",
    "DiscoveredMarker",
    "DiscoveryConfig",
    "DiscoveryService",
    "MarkerStore",
    "MatchResult",
    "StatusReport",
    "StatusService",
    "SubscriptionPruner",
    "evaluate",
    "matches",
]
