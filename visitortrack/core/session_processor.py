# ==============================================================================
# Session Processor - Pure Domain Logic
# ==============================================================================
"""
Pure session lifecycle logic with no external dependencies.

This module contains the domain logic for visitor sessions:
- Idle timeout detection
- Session creation and in-place updates
- Duplicate page-view collapsing (debounce)
- Set-once identity enrichment
- Finalization of ended sessions

All methods work with plain dicts - no database, cache, or framework dependencies.
The session store calls these inside its per-session transaction, after it
has re-read the record, so every decision here is made on fresh state.

Lifecycle:
    Created -> Active -> Idle-grace -> Ended

Idle-grace is not stored. A session whose last activity is within the idle
timeout is live; past it, the next sweep (or the next event for the same
visitor) ends it.
"""


class SessionProcessor:
    """
    Pure session processing logic.

    Session dict structure:
        {
            "session_id": str,           # "{visitor_id}_{session_num}"
            "visitor_id": str,
            "session_num": int,
            "ip_address": str | None,
            "country": str | None,
            "city": str | None,
            "device": str,               # Desktop, Mobile, Tablet
            "browser": str,
            "os": str,
            "email": str | None,
            "name": str | None,
            "entry_page": str,
            "current_page": str,
            "page_title": str | None,
            "page_views": int,
            "session_start": int,        # Unix timestamp in milliseconds
            "last_activity_at": int,     # Unix timestamp in milliseconds
            "ended_at": int | None,      # Unix timestamp in milliseconds
            "time_on_site": int | None,  # Seconds, set on finalization
            "is_active": bool,
            "last_page_path": str,       # Debounce fingerprint
            "last_page_view_at": int,    # Unix timestamp in milliseconds
        }
    """

    def __init__(self, idle_timeout_seconds: int = 300, debounce_ms: int = 1000):
        """
        Initialize session processor.

        Args:
            idle_timeout_seconds: Inactivity after which a session is ended.
            debounce_ms: A page view for the same path within this window of
                         the previous one is treated as a duplicate.
        """
        self.idle_timeout_ms = idle_timeout_seconds * 1000
        self.debounce_ms = debounce_ms

    # ==========================================================================
    # Predicates
    # ==========================================================================

    def is_idle(self, session: dict, now: int) -> bool:
        """True once the session has been inactive for longer than the idle timeout."""
        return now - session["last_activity_at"] > self.idle_timeout_ms

    def is_usable(self, session: dict | None, now: int) -> bool:
        """
        Check whether an incoming event can attach to this session.

        Args:
            session: Current session dict, or None if no session exists
            now: Event time (ms since epoch)

        Returns:
            False if the session is missing, ended, or idle past the timeout
        """
        if session is None or not session.get("is_active"):
            return False
        return not self.is_idle(session, now)

    def is_duplicate_page_view(self, session: dict, path: str, now: int) -> bool:
        """A repeat of the last page view inside the debounce window."""
        last_at = session.get("last_page_view_at")
        if last_at is None or session.get("last_page_path") != path:
            return False
        return 0 <= now - last_at < self.debounce_ms

    # ==========================================================================
    # Transitions
    # ==========================================================================

    def create_session(
        self,
        visitor_id: str,
        session_num: int,
        now: int,
        path: str,
        title: str | None = None,
        enrichment: dict | None = None,
    ) -> dict:
        """
        Create a new session for the visitor's first page view.

        Args:
            visitor_id: Stable browser identity
            session_num: Visit number for this visitor (1-indexed)
            now: Timestamp of the first event (ms since epoch)
            path: Entry page path
            title: Entry page title
            enrichment: Network/device fields (ip_address, country, city,
                        device, browser, os)

        Returns:
            New active session dict with page_views = 1
        """
        enrichment = enrichment or {}
        return {
            "session_id": f"{visitor_id}_{session_num}",
            "visitor_id": visitor_id,
            "session_num": session_num,
            "ip_address": enrichment.get("ip_address"),
            "country": enrichment.get("country"),
            "city": enrichment.get("city"),
            "device": enrichment.get("device") or "Desktop",
            "browser": enrichment.get("browser") or "Unknown",
            "os": enrichment.get("os") or "Unknown",
            "email": None,
            "name": None,
            "entry_page": path,
            "current_page": path,
            "page_title": title,
            "page_views": 1,
            "session_start": now,
            "last_activity_at": now,
            "ended_at": None,
            "time_on_site": None,
            "is_active": True,
            "last_page_path": path,
            "last_page_view_at": now,
        }

    def apply_page_view(self, session: dict, path: str, title: str | None, now: int) -> bool:
        """
        Record a page view on an active session.

        Mutates the session dict in place.

        Returns:
            True if the view was counted, False if it was collapsed as a duplicate
        """
        self._ensure_active(session)
        self._touch(session, now)
        if self.is_duplicate_page_view(session, path, now):
            return False

        session["current_page"] = path
        if title is not None:
            session["page_title"] = title
        session["page_views"] += 1
        session["last_page_path"] = path
        session["last_page_view_at"] = now
        return True

    def apply_heartbeat(self, session: dict, now: int) -> None:
        """Keep the session live without a page change."""
        self._ensure_active(session)
        self._touch(session, now)

    def merge_lead(self, session: dict, email: str | None, name: str | None) -> bool:
        """
        Merge volunteered identity into the session.

        Fields are set once: a value already present is never overwritten
        or cleared.

        Returns:
            True if any field changed
        """
        self._ensure_active(session)
        changed = False
        if email and not session.get("email"):
            session["email"] = email
            changed = True
        if name and not session.get("name"):
            session["name"] = name
            changed = True
        return changed

    def finalize(self, session: dict, now: int) -> dict:
        """
        End the session.

        time_on_site covers first to last activity; the idle gap before the
        end signal or sweep is excluded.

        Returns:
            The updated session dict (same object)
        """
        self._ensure_active(session)
        session["is_active"] = False
        session["ended_at"] = max(now, session["last_activity_at"])
        session["time_on_site"] = self._seconds(
            session["last_activity_at"] - session["session_start"]
        )
        return session

    # ==========================================================================
    # Derived Values
    # ==========================================================================

    def time_on_site(self, session: dict, now: int) -> int:
        """
        Seconds on site as of `now`.

        Ended sessions report their finalized value. Live sessions count up
        to now; a session already past the idle timeout but not yet swept
        counts only to its last activity.
        """
        if not session.get("is_active"):
            if session.get("time_on_site") is not None:
                return session["time_on_site"]
            return self._seconds(session["last_activity_at"] - session["session_start"])
        if self.is_idle(session, now):
            return self._seconds(session["last_activity_at"] - session["session_start"])
        return self._seconds(max(now, session["last_activity_at"]) - session["session_start"])

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @staticmethod
    def _touch(session: dict, now: int) -> None:
        # Never move backwards: events from hosts with skewed clocks must not
        # break last_activity_at >= session_start.
        session["last_activity_at"] = max(session["last_activity_at"], now)

    @staticmethod
    def _seconds(delta_ms: int) -> int:
        return max(0, delta_ms // 1000)

    @staticmethod
    def _ensure_active(session: dict) -> None:
        if not session.get("is_active"):
            raise ValueError(f"Session {session.get('session_id')} has ended")
