import logging
from datetime import datetime
from typing import Optional

from deadlines import reference_now
from models import UsageCounter, UsageStats

logger = logging.getLogger(__name__)

PRUNE_THRESHOLD = 10000


def period_key(now: Optional[datetime] = None) -> str:
    """Counters reset whenever this key changes, i.e. once per calendar day."""
    return reference_now(now).date().isoformat()


class UsageTracker:
    """Counts remote calls per identity per day against a quota."""

    def __init__(self, stats: Optional[UsageStats] = None, prune_threshold: int = PRUNE_THRESHOLD):
        self.stats = stats or UsageStats()
        self.prune_threshold = prune_threshold

    def count(self, identity: str, now: Optional[datetime] = None) -> int:
        counter = self.stats.counters.get(identity)
        if not counter or counter.period_key != period_key(now):
            return 0
        return counter.count

    def can_make_api_call(self, identity: str, limit: int, now: Optional[datetime] = None) -> bool:
        return self.count(identity, now) < limit

    def remaining(self, identity: str, limit: int, now: Optional[datetime] = None) -> int:
        return max(0, limit - self.count(identity, now))

    def record_api_call(self, identity: str, now: Optional[datetime] = None) -> int:
        """Increment today's counter for identity and return the new count."""
        key = period_key(now)
        counter = self.stats.counters.get(identity)
        if not counter or counter.period_key != key:
            counter = UsageCounter(period_key=key, count=0)
            self.stats.counters[identity] = counter
        counter.count += 1

        if len(self.stats.counters) > self.prune_threshold:
            self._prune(key)
        return counter.count

    def record_parse(self, parsed_by: str) -> None:
        self.stats.total_inputs += 1
        if parsed_by == "cloud":
            self.stats.cloud_parses += 1
        else:
            self.stats.local_parses += 1

    def _prune(self, current_key: str) -> None:
        stale = [identity for identity, c in self.stats.counters.items() if c.period_key != current_key]
        for identity in stale:
            del self.stats.counters[identity]
        logger.info(f"Pruned {len(stale)} stale usage counters")
