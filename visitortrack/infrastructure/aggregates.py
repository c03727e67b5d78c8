# ==============================================================================
# Daily Rollup Store (Valkey/Redis)
# ==============================================================================
"""
Valkey/Redis implementation of the RollupStore interface.

Each day has a counter hash plus one bounded sorted set per top-N
dimension. Writers queue their increments onto the session store's
transaction pipeline (`queue_*` methods), so a day's counters move in the
same MULTI/EXEC as the session write that caused them.
"""

import logging
from datetime import date

import redis

from visitortrack.base.rollups import RollupStore
from visitortrack.core.aggregation import DEFAULT_TOP_N
from visitortrack.core.models import DailyAggregate
from visitortrack.infrastructure.valkey import Keys, store_errors

logger = logging.getLogger(__name__)

COUNTER_FIELDS = (
    "unique_visitors",
    "new_visitors",
    "returning_visitors",
    "page_views",
    "form_submissions",
    "leads_generated",
    "total_time_on_site_seconds",
)

TOP_DIMENSIONS = ("pages", "countries", "devices")

UNKNOWN_KEY = "Unknown"


class ValkeyRollupStore(RollupStore):
    """
    Daily aggregates in Valkey.

    Top-N maps are sorted sets trimmed back to N members after every
    increment (ZREMRANGEBYRANK drops the lowest scores), which bounds memory
    per day regardless of how many distinct pages are visited.
    """

    def __init__(self, client: redis.Redis, keys: Keys | None = None, top_n: int = DEFAULT_TOP_N):
        self._client = client
        self._keys = keys or Keys()
        self._top_n = top_n

    # ==========================================================================
    # Write side (queued on a MULTI pipeline)
    # ==========================================================================

    def _queue_top(self, pipe, day: date, dimension: str, member: str | None) -> None:
        key = self._keys.daily_top(day, dimension)
        pipe.zincrby(key, 1, member or UNKNOWN_KEY)
        pipe.zremrangebyrank(key, 0, -(self._top_n + 1))

    def _queue_counter(self, pipe, day: date, field: str, amount: int = 1) -> None:
        pipe.hincrby(self._keys.daily(day), field, amount)
        pipe.sadd(self._keys.days, day.isoformat())

    def queue_visit(
        self,
        pipe,
        day: date,
        classification: str,
        country: str | None,
        device: str | None,
    ) -> None:
        """Count a visitor's first appearance of the day."""
        self._queue_counter(pipe, day, "unique_visitors")
        field = "new_visitors" if classification == "new" else "returning_visitors"
        self._queue_counter(pipe, day, field)
        self._queue_top(pipe, day, "countries", country)
        self._queue_top(pipe, day, "devices", device)

    def queue_page_view(self, pipe, day: date, path: str) -> None:
        self._queue_counter(pipe, day, "page_views")
        self._queue_top(pipe, day, "pages", path)

    def queue_form_submission(self, pipe, day: date, is_lead: bool) -> None:
        self._queue_counter(pipe, day, "form_submissions")
        if is_lead:
            self._queue_counter(pipe, day, "leads_generated")

    def queue_time_on_site(self, pipe, day: date, seconds: int) -> None:
        if seconds > 0:
            self._queue_counter(pipe, day, "total_time_on_site_seconds", seconds)

    # ==========================================================================
    # Read side
    # ==========================================================================

    def get_day(self, day: date) -> DailyAggregate:
        with store_errors("rollup read"):
            pipe = self._client.pipeline(transaction=False)
            pipe.hgetall(self._keys.daily(day))
            for dimension in TOP_DIMENSIONS:
                pipe.zrevrange(self._keys.daily_top(day, dimension), 0, -1, withscores=True)
            counters, pages, countries, devices = pipe.execute()

        values = {field: int(counters.get(field, 0)) for field in COUNTER_FIELDS}
        return DailyAggregate(
            day=day,
            top_pages={member: int(score) for member, score in pages},
            top_countries={member: int(score) for member, score in countries},
            top_devices={member: int(score) for member, score in devices},
            **values,
        )

    def list_days(self) -> list[date]:
        with store_errors("rollup day listing"):
            raw = self._client.smembers(self._keys.days)
        return sorted(date.fromisoformat(value) for value in raw)
