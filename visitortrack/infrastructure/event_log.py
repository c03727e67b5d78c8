# ==============================================================================
# Event Log Implementation (Valkey/Redis)
# ==============================================================================
"""
Valkey/Redis implementation of the EventLog interface.

Events are members of a single sorted set with equal scores, ordered
lexicographically. Each member is

    {timestamp:013d}:{entry_id}:{json}

so a lexicographic range over the zero-padded timestamp prefix is a time
range, and the last member of a page is an exact, unique cursor for the
next one (ZRANGEBYLEX with an exclusive lower bound). Pagination therefore
never re-reads or skips entries that share a millisecond.
"""

import json
import logging
import uuid
from collections.abc import Iterator

import redis

from visitortrack.base.event_log import Event, EventLog
from visitortrack.core.models import event_from_stream_fields
from visitortrack.infrastructure.valkey import Keys, store_errors

logger = logging.getLogger(__name__)

TIMESTAMP_WIDTH = 13


def encode_entry(event: Event, entry_id: str | None = None) -> str:
    """Build the sorted set member for an event."""
    entry_id = entry_id or uuid.uuid4().hex[:16]
    payload = json.dumps(event.to_stream_fields(), separators=(",", ":"), sort_keys=True)
    return f"{event.timestamp:0{TIMESTAMP_WIDTH}d}:{entry_id}:{payload}"


def decode_entry(member: str) -> Event:
    """Parse a sorted set member back into an event."""
    _, _, payload = member.split(":", 2)
    return event_from_stream_fields(json.loads(payload))


class ValkeyEventLog(EventLog):
    """
    Valkey/Redis implementation of EventLog.

    Appends are queued onto the caller's transaction pipeline with
    `queue_append` so the event lands atomically with the session write.
    """

    def __init__(self, client: redis.Redis, keys: Keys | None = None):
        self._client = client
        self._keys = keys or Keys()

    def queue_append(self, pipe, event: Event) -> None:
        """Queue an append on a pipeline already in MULTI mode."""
        pipe.zadd(self._keys.events, {encode_entry(event): 0})

    def iter_pages(
        self,
        start_ms: int,
        end_ms: int,
        page_size: int = 500,
    ) -> Iterator[list[Event]]:
        lower = f"[{start_ms:0{TIMESTAMP_WIDTH}d}"
        upper = f"({end_ms + 1:0{TIMESTAMP_WIDTH}d}"

        while True:
            with store_errors("event log read"):
                members = self._client.zrangebylex(
                    self._keys.events, lower, upper, start=0, num=page_size
                )
            if not members:
                return

            page = []
            for member in members:
                try:
                    page.append(decode_entry(member))
                except (ValueError, KeyError) as e:
                    logger.warning("Skipping unreadable event log entry %r: %s", member[:64], e)
            if page:
                yield page

            if len(members) < page_size:
                return
            lower = f"({members[-1]}"

    def trim_before(self, cutoff_ms: int) -> int:
        with store_errors("event log trim"):
            removed = self._client.zremrangebylex(
                self._keys.events, "-", f"({cutoff_ms:0{TIMESTAMP_WIDTH}d}"
            )
        if removed:
            logger.info("Trimmed %d event log entries older than %d", removed, cutoff_ms)
        return removed

    def count(self) -> int:
        with store_errors("event log count"):
            return self._client.zcard(self._keys.events)
