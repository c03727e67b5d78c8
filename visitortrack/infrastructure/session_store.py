# ==============================================================================
# Session Store Implementation (Valkey/Redis)
# ==============================================================================
"""
Valkey/Redis implementation of the SessionStore interface.

Sessions are stored as Redis hashes (one key per session). Every mutation
is an optimistic transaction scoped to the keys it touches:

    WATCH session key (+ the visitor's own keys when resolving by visitor)
    re-read the record, decide with SessionProcessor
    MULTI: session write + event log append + rollup counters
    EXEC (aborted with WatchError if any watched key changed)

No key shared between visitors is ever watched, so concurrent sessions never
contend with each other. The sweeper uses the same path, which is what keeps
a heartbeat and a sweep decision on the same record from both winning.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date

import redis
from redis.exceptions import WatchError

from visitortrack.base.session_store import Outcome, SessionStore
from visitortrack.core.aggregation import classify_visitor, matches_visitor
from visitortrack.core.errors import ConcurrentUpdateError
from visitortrack.core.models import FormSubmissionEvent, PageViewEvent
from visitortrack.core.session_processor import SessionProcessor
from visitortrack.infrastructure.aggregates import ValkeyRollupStore
from visitortrack.infrastructure.event_log import ValkeyEventLog
from visitortrack.infrastructure.valkey import Keys, store_errors
from visitortrack.utils.clock import day_for

logger = logging.getLogger(__name__)

INT_FIELDS = (
    "session_num",
    "page_views",
    "session_start",
    "last_activity_at",
    "ended_at",
    "time_on_site",
    "last_page_view_at",
)

DEFAULT_PATH = "/"

PROFILE_FIELDS = ("email", "name", "country", "city", "device", "browser")


@dataclass
class _Plan:
    """Writes decided inside a transaction, queued after MULTI."""

    session: dict | None = None
    created: bool = False
    day: date | None = None
    ended: list[dict] = field(default_factory=list)
    visit: tuple[str, str | None, str | None] | None = None
    page_view: PageViewEvent | None = None
    form: FormSubmissionEvent | None = None
    deindex: list[str] = field(default_factory=list)


class ValkeySessionStore(SessionStore):
    """
    Valkey/Redis implementation of SessionStore.

    Key layout is described in `visitortrack.infrastructure.valkey.Keys`.
    """

    def __init__(
        self,
        client: redis.Redis,
        processor: SessionProcessor | None = None,
        rollups: ValkeyRollupStore | None = None,
        event_log: ValkeyEventLog | None = None,
        keys: Keys | None = None,
        tz: str | None = None,
        max_attempts: int = 5,
        session_ttl_seconds: int = 30 * 86400,
        archive_enabled: bool = False,
    ):
        """
        Initialize the session store.

        Args:
            client: Redis client instance
            processor: Lifecycle rules (idle timeout, debounce)
            rollups: Daily rollup writer sharing this store's transactions
            event_log: Event log writer sharing this store's transactions
            keys: Key layout
            tz: Timezone for daily rollups (server local if None)
            max_attempts: Optimistic transaction attempts for ingest writes
            session_ttl_seconds: Retention of ended sessions
            archive_enabled: Queue ended sessions for the PostgreSQL archive
        """
        self._client = client
        self._keys = keys or Keys()
        self._processor = processor or SessionProcessor()
        self._rollups = rollups or ValkeyRollupStore(client, self._keys)
        self._event_log = event_log or ValkeyEventLog(client, self._keys)
        self._tz = tz
        self._max_attempts = max_attempts
        self._session_ttl = session_ttl_seconds
        self._archive_enabled = archive_enabled

    @property
    def client(self) -> redis.Redis:
        """Get the underlying Redis client."""
        return self._client

    @property
    def processor(self) -> SessionProcessor:
        return self._processor

    # ==========================================================================
    # Serialization
    # ==========================================================================

    @staticmethod
    def _serialize(session: dict) -> dict:
        """Serialize a session dict for Redis hash storage (None fields omitted)."""
        data = {}
        for key, value in session.items():
            if value is None:
                continue
            if isinstance(value, bool):
                data[key] = "1" if value else "0"
            else:
                data[key] = str(value)
        return data

    @staticmethod
    def _parse(data: dict) -> dict:
        """Parse raw Redis hash data into a session dict."""
        session = dict(data)
        for key in INT_FIELDS:
            session[key] = int(data[key]) if data.get(key) not in (None, "") else None
        session["is_active"] = data.get("is_active") == "1"
        for key in ("ip_address", "country", "city", "email", "name", "page_title"):
            session.setdefault(key, None)
        return session

    def _read(self, conn, session_id: str) -> dict | None:
        data = conn.hgetall(self._keys.session(session_id))
        return self._parse(data) if data else None

    # ==========================================================================
    # Transaction Helpers
    # ==========================================================================

    def _transact(
        self,
        operation: str,
        watch_keys: list[str],
        decide: Callable,
        attempts: int | None = None,
    ):
        """
        Run decide() under WATCH and commit its plan atomically.

        decide(pipe) reads through the pipeline (immediate mode), may WATCH
        more keys, and returns (result, plan). A None plan means nothing to
        write.

        Raises:
            ConcurrentUpdateError: Every attempt lost a race
            StoreUnavailableError: Valkey could not be reached
        """
        attempts = attempts or self._max_attempts
        with store_errors(operation):
            for attempt in range(1, attempts + 1):
                with self._client.pipeline() as pipe:
                    try:
                        pipe.watch(*watch_keys)
                        result, plan = decide(pipe)
                        if plan is not None:
                            pipe.multi()
                            self._queue(pipe, plan)
                            pipe.execute()
                        return result
                    except WatchError:
                        logger.debug(
                            "%s conflict on %s (attempt %d/%d)",
                            operation,
                            watch_keys[0],
                            attempt,
                            attempts,
                        )
        raise ConcurrentUpdateError(watch_keys[0], attempts)

    def _visitor_keys(self, visitor_id: str) -> list[str]:
        return [
            self._keys.visitor_active(visitor_id),
            self._keys.visitor_session_count(visitor_id),
            self._keys.visitor_first_seen(visitor_id),
            self._keys.visitor_seen_day(visitor_id),
        ]

    def _resolve(self, pipe, visitor_id: str, session_id: str | None, now: int):
        """
        Find the live session an event should attach to.

        Tries the explicit session id first, then the visitor's current
        session pointer. Unknown ids, ids of another visitor, and ended
        sessions are passed over so the event falls through to creating a
        new session instead of being dropped.

        Returns:
            (usable session or None, stale sessions to finalize, last session seen)
        """
        candidates = []
        if session_id:
            candidates.append(session_id)
        pointer = pipe.get(self._keys.visitor_active(visitor_id))
        if pointer and pointer not in candidates:
            candidates.append(pointer)

        stale: list[dict] = []
        previous = None
        for candidate in candidates:
            pipe.watch(self._keys.session(candidate))
            session = self._read(pipe, candidate)
            if session is None or session["visitor_id"] != visitor_id:
                continue
            previous = previous or session
            if self._processor.is_usable(session, now):
                return session, stale, session
            if session["is_active"]:
                self._processor.finalize(session, now)
                stale.append(session)
        return None, stale, previous

    def _new_session(
        self,
        pipe,
        visitor_id: str,
        now: int,
        path: str,
        title: str | None,
        enrich: Callable[[], dict],
    ) -> dict:
        count = int(pipe.get(self._keys.visitor_session_count(visitor_id)) or 0)
        return self._processor.create_session(
            visitor_id, count + 1, now, path, title, enrichment=enrich()
        )

    def _plan_visit(self, pipe, session: dict, day: date):
        """Classify the visitor the first time they are active on a given day."""
        if pipe.get(self._keys.visitor_seen_day(session["visitor_id"])) == day.isoformat():
            return None
        first_seen = pipe.get(self._keys.visitor_first_seen(session["visitor_id"]))
        first_seen_ms = int(first_seen) if first_seen else session["session_start"]
        return (
            classify_visitor(first_seen_ms, day, self._tz),
            session.get("country"),
            session.get("device"),
        )

    def _queue(self, pipe, plan: _Plan) -> None:
        """Queue every write of a plan on a pipeline in MULTI mode."""
        for ended in plan.ended:
            key = self._keys.session(ended["session_id"])
            pipe.hset(key, mapping=self._serialize(ended))
            pipe.expire(key, self._session_ttl)
            pipe.zrem(self._keys.active_sessions, ended["session_id"])
            # session time is credited to the day the session ends
            end_day = day_for(ended["ended_at"], self._tz)
            self._rollups.queue_time_on_site(pipe, end_day, ended["time_on_site"] or 0)
            if self._archive_enabled:
                pipe.rpush(self._keys.archive_pending, json.dumps(ended))

        for session_id in plan.deindex:
            pipe.zrem(self._keys.active_sessions, session_id)

        session = plan.session
        if session is None:
            return

        visitor_id = session["visitor_id"]
        session_id = session["session_id"]
        now_day = plan.day or day_for(session["last_activity_at"], self._tz)

        pipe.hset(self._keys.session(session_id), mapping=self._serialize(session))
        pipe.zadd(self._keys.active_sessions, {session_id: session["last_activity_at"]})

        # None fields are dropped, so a known email survives later sessions
        profile = self._keys.visitor_profile(visitor_id)
        pipe.hset(
            profile,
            mapping=self._serialize(
                {"visitor_id": visitor_id, "last_visit": session["last_activity_at"]}
                | {f: session.get(f) for f in PROFILE_FIELDS}
            ),
        )
        pipe.expire(profile, self._session_ttl)
        pipe.zadd(self._keys.visitors, {visitor_id: session["last_activity_at"]})

        if plan.created:
            pipe.set(self._keys.visitor_active(visitor_id), session_id, ex=self._session_ttl)
            pipe.set(self._keys.visitor_session_count(visitor_id), session["session_num"])
            pipe.setnx(self._keys.visitor_first_seen(visitor_id), session["session_start"])
            history = self._keys.visitor_history(visitor_id)
            pipe.zadd(history, {session_id: session["session_start"]})
            pipe.expire(history, self._session_ttl)

        if plan.visit is not None:
            classification, country, device = plan.visit
            pipe.set(
                self._keys.visitor_seen_day(visitor_id), now_day.isoformat(), ex=2 * 86400
            )
            self._rollups.queue_visit(pipe, now_day, classification, country, device)

        if plan.page_view is not None:
            self._event_log.queue_append(pipe, plan.page_view)
            self._rollups.queue_page_view(pipe, now_day, plan.page_view.path)

        if plan.form is not None:
            self._event_log.queue_append(pipe, plan.form)
            self._rollups.queue_form_submission(pipe, now_day, plan.form.is_lead)

    def _page_view_event(self, session: dict, now: int) -> PageViewEvent:
        return PageViewEvent(
            session_id=session["session_id"],
            visitor_id=session["visitor_id"],
            path=session["current_page"],
            title=session.get("page_title"),
            timestamp=now,
        )

    # ==========================================================================
    # SessionStore Interface Implementation
    # ==========================================================================

    def record_page_view(
        self,
        visitor_id: str,
        path: str,
        title: str | None,
        now: int,
        enrich: Callable[[], dict],
        email: str | None = None,
        name: str | None = None,
    ) -> Outcome:
        def decide(pipe):
            session, stale, _ = self._resolve(pipe, visitor_id, None, now)
            plan = _Plan(ended=stale, day=day_for(now, self._tz))
            if session is None:
                session = self._new_session(pipe, visitor_id, now, path, title, enrich)
                plan.created = counted = True
            else:
                counted = self._processor.apply_page_view(session, path, title, now)
            if email or name:
                self._processor.merge_lead(session, email, name)

            plan.session = session
            plan.visit = self._plan_visit(pipe, session, plan.day)
            if counted:
                plan.page_view = self._page_view_event(session, now)
            return Outcome(session, created=plan.created, counted=counted, ended=stale), plan

        return self._transact("page view", self._visitor_keys(visitor_id), decide)

    def heartbeat(
        self,
        visitor_id: str,
        session_id: str | None,
        now: int,
        enrich: Callable[[], dict],
        path: str | None = None,
        title: str | None = None,
    ) -> Outcome:
        def decide(pipe):
            session, stale, previous = self._resolve(pipe, visitor_id, session_id, now)
            plan = _Plan(ended=stale, day=day_for(now, self._tz))
            if session is None:
                entry = path or (previous and previous.get("current_page")) or DEFAULT_PATH
                session = self._new_session(pipe, visitor_id, now, entry, title, enrich)
                plan.created = True
                plan.page_view = self._page_view_event(session, now)
            else:
                self._processor.apply_heartbeat(session, now)

            plan.session = session
            plan.visit = self._plan_visit(pipe, session, plan.day)
            return Outcome(session, created=plan.created, counted=plan.created, ended=stale), plan

        return self._transact("heartbeat", self._visitor_keys(visitor_id), decide)

    def record_form_submission(
        self,
        visitor_id: str,
        session_id: str | None,
        form_type: str,
        now: int,
        enrich: Callable[[], dict],
        form_name: str | None = None,
        path: str | None = None,
        email: str | None = None,
        name: str | None = None,
    ) -> Outcome:
        def decide(pipe):
            session, stale, previous = self._resolve(pipe, visitor_id, session_id, now)
            plan = _Plan(ended=stale, day=day_for(now, self._tz))
            if session is None:
                entry = path or (previous and previous.get("current_page")) or DEFAULT_PATH
                session = self._new_session(pipe, visitor_id, now, entry, None, enrich)
                plan.created = True
                plan.page_view = self._page_view_event(session, now)
            else:
                self._processor.apply_heartbeat(session, now)
            self._processor.merge_lead(session, email, name)

            plan.session = session
            plan.visit = self._plan_visit(pipe, session, plan.day)
            plan.form = FormSubmissionEvent(
                session_id=session["session_id"],
                visitor_id=visitor_id,
                form_type=form_type,
                form_name=form_name,
                path=path or session.get("current_page"),
                email=email,
                name=name,
                timestamp=now,
            )
            return Outcome(session, created=plan.created, ended=stale), plan

        return self._transact("form submission", self._visitor_keys(visitor_id), decide)

    def end_session(self, session_id: str, now: int) -> dict | None:
        def decide(pipe):
            session = self._read(pipe, session_id)
            if session is None or not session["is_active"]:
                return session, None
            self._processor.finalize(session, now)
            return session, _Plan(ended=[session])

        return self._transact("end session", [self._keys.session(session_id)], decide)

    def sweep_session(self, session_id: str, now: int) -> bool:
        def decide(pipe):
            session = self._read(pipe, session_id)
            if session is None or not session["is_active"]:
                # expired or already ended elsewhere: drop the stale index entry
                return False, _Plan(deindex=[session_id])
            if not self._processor.is_idle(session, now):
                # activity arrived after the candidate scan
                return False, None
            self._processor.finalize(session, now)
            return True, _Plan(ended=[session])

        try:
            return self._transact(
                "sweep", [self._keys.session(session_id)], decide, attempts=1
            )
        except ConcurrentUpdateError:
            logger.debug("Sweep of %s lost a race, retrying next tick", session_id)
            return False

    def idle_candidates(self, cutoff: int) -> list[str]:
        with store_errors("idle scan"):
            return self._client.zrangebyscore(self._keys.active_sessions, "-inf", f"({cutoff}")

    def get_session(self, session_id: str) -> dict | None:
        with store_errors("session read"):
            return self._read(self._client, session_id)

    def _read_many(self, session_ids: list[str]) -> list[dict]:
        if not session_ids:
            return []
        with store_errors("session read"):
            pipe = self._client.pipeline(transaction=False)
            for session_id in session_ids:
                pipe.hgetall(self._keys.session(session_id))
            results = pipe.execute()
        return [self._parse(data) for data in results if data]

    def get_sessions(self, session_ids: list[str]) -> dict[str, dict]:
        return {s["session_id"]: s for s in self._read_many(list(session_ids))}

    def get_active_sessions(self) -> list[dict]:
        with store_errors("live index read"):
            session_ids = self._client.zrevrange(self._keys.active_sessions, 0, -1)
        sessions = [s for s in self._read_many(session_ids) if s["is_active"]]
        sessions.sort(key=lambda s: s["last_activity_at"], reverse=True)
        return sessions

    def get_visitor_sessions(self, visitor_id: str, limit: int = 10) -> list[dict]:
        with store_errors("visitor history read"):
            session_ids = self._client.zrevrange(
                self._keys.visitor_history(visitor_id), 0, limit - 1
            )
        return self._read_many(session_ids)

    def get_visitor_info(self, visitor_id: str) -> dict | None:
        with store_errors("visitor read"):
            first_seen, count = self._client.mget(
                self._keys.visitor_first_seen(visitor_id),
                self._keys.visitor_session_count(visitor_id),
            )
        if first_seen is None and count is None:
            return None
        return {
            "visitor_id": visitor_id,
            "first_seen": int(first_seen) if first_seen else None,
            "total_sessions": int(count) if count else 0,
        }

    def _read_profiles(self, visitor_ids: list[str]) -> list[dict]:
        if not visitor_ids:
            return []
        with store_errors("visitor index read"):
            pipe = self._client.pipeline(transaction=False)
            for visitor_id in visitor_ids:
                pipe.hgetall(self._keys.visitor_profile(visitor_id))
                pipe.get(self._keys.visitor_first_seen(visitor_id))
                pipe.get(self._keys.visitor_session_count(visitor_id))
            results = pipe.execute()

        profiles = []
        for i in range(0, len(results), 3):
            data, first_seen, count = results[i : i + 3]
            if not data:
                continue
            profile = dict(data)
            profile["last_visit"] = int(data["last_visit"])
            profile["first_seen"] = int(first_seen) if first_seen else None
            profile["total_sessions"] = int(count) if count else 0
            for key in PROFILE_FIELDS:
                profile.setdefault(key, None)
            profiles.append(profile)
        return profiles

    def list_visitors(
        self,
        offset: int,
        limit: int,
        email: str | None = None,
        country: str | None = None,
    ) -> tuple[list[dict], int]:
        if not email and not country:
            with store_errors("visitor index read"):
                total = self._client.zcard(self._keys.visitors)
                visitor_ids = self._client.zrevrange(
                    self._keys.visitors, offset, offset + limit - 1
                )
            return self._read_profiles(visitor_ids), total

        # filtered listings scan the whole index
        with store_errors("visitor index read"):
            visitor_ids = self._client.zrevrange(self._keys.visitors, 0, -1)
        matches = [
            p for p in self._read_profiles(visitor_ids) if matches_visitor(p, email, country)
        ]
        return matches[offset : offset + limit], len(matches)

    # ==========================================================================
    # Retention (beyond ABC)
    # ==========================================================================

    def trim_visitor_index(self, now: int) -> int:
        """
        Drop visitors idle longer than the session retention window.

        Their profile hashes expire on the same schedule.

        Returns:
            Count of index entries removed
        """
        cutoff = now - self._session_ttl * 1000
        with store_errors("visitor index trim"):
            return self._client.zremrangebyscore(self._keys.visitors, "-inf", f"({cutoff}")

    # ==========================================================================
    # Archive Queue (beyond ABC)
    # ==========================================================================

    def peek_archive(self, limit: int) -> list[dict]:
        """Oldest ended sessions waiting to be archived."""
        with store_errors("archive queue read"):
            raw = self._client.lrange(self._keys.archive_pending, 0, limit - 1)
        return [json.loads(item) for item in raw]

    def ack_archive(self, count: int) -> None:
        """Drop the first `count` entries after they were archived."""
        with store_errors("archive queue trim"):
            self._client.ltrim(self._keys.archive_pending, count, -1)

    def clear_all(self) -> int:
        """
        Delete every key under the store's prefix.

        Returns:
            Count of keys deleted
        """
        with store_errors("data reset"):
            keys = list(self._client.scan_iter(self._keys.pattern))
            if keys:
                return self._client.delete(*keys)
        return 0
