# ==============================================================================
# Event Ingest Service
# ==============================================================================
"""
Validates browser events and applies them to the session store.

Payloads arrive as untrusted JSON from the tracking script. Validation
failures raise InvalidEventError; the HTTP layer logs them and still
answers 202 so a broken client never sees (or retries on) an error.
"""

import logging

from pydantic import BaseModel, ValidationError

from visitortrack.base.session_store import Outcome, SessionStore
from visitortrack.core.enrichment import Enricher
from visitortrack.core.errors import InvalidEventError
from visitortrack.core.models import (
    EndSessionPayload,
    FormSubmissionPayload,
    HeartbeatPayload,
    PageViewPayload,
)
from visitortrack.utils.clock import Clock, now_ms

logger = logging.getLogger(__name__)


def _validate(model: type[BaseModel], payload):
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "body" for err in e.errors())
        raise InvalidEventError(f"Invalid {model.__name__}: {fields}") from e


class TrackingService:
    """Event ingest: page views, heartbeats, form submissions, end signals."""

    def __init__(
        self,
        store: SessionStore,
        enricher: Enricher | None = None,
        clock: Clock = now_ms,
    ):
        self._store = store
        self._enricher = enricher or Enricher()
        self._clock = clock

    def _enrich(self, ip: str | None, user_agent: str | None):
        # deferred: geo lookups only run when a session is actually created
        return lambda: self._enricher.enrich(ip, user_agent)

    def track_page_view(
        self,
        payload: PageViewPayload | dict,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> Outcome:
        """
        Record a page view. `ip` and `user_agent` are request-level fallbacks
        for values the payload does not carry.
        """
        event = _validate(PageViewPayload, payload)
        lead = event.lead_info
        outcome = self._store.record_page_view(
            event.visitor_id,
            event.path,
            event.title,
            self._clock(),
            self._enrich(event.ip or ip, event.user_agent or user_agent),
            email=lead.email if lead else None,
            name=lead.name if lead else None,
        )
        if outcome.created:
            logger.debug(
                "Session %s started on %s", outcome.session["session_id"], event.path
            )
        return outcome

    def heartbeat(
        self,
        payload: HeartbeatPayload | dict,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> Outcome:
        event = _validate(HeartbeatPayload, payload)
        return self._store.heartbeat(
            event.visitor_id,
            event.session_id,
            self._clock(),
            self._enrich(event.ip or ip, event.user_agent or user_agent),
            path=event.path,
            title=event.title,
        )

    def track_form_submission(
        self,
        payload: FormSubmissionPayload | dict,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> Outcome:
        event = _validate(FormSubmissionPayload, payload)
        lead = event.lead_info
        outcome = self._store.record_form_submission(
            event.visitor_id,
            event.session_id,
            event.form_type,
            self._clock(),
            self._enrich(ip, user_agent),
            form_name=event.form_name,
            path=event.path,
            email=lead.email if lead else None,
            name=lead.name if lead else None,
        )
        logger.info(
            "Form '%s' submitted in session %s%s",
            event.form_type,
            outcome.session["session_id"],
            " (lead)" if lead and lead.email else "",
        )
        return outcome

    def end_session(self, payload: EndSessionPayload | dict) -> dict | None:
        event = _validate(EndSessionPayload, payload)
        if event.visitor_id:
            current = self._store.get_session(event.session_id)
            if current is not None and current["visitor_id"] != event.visitor_id:
                logger.warning(
                    "Ignoring end signal for %s from visitor %s",
                    event.session_id,
                    event.visitor_id,
                )
                return None

        session = self._store.end_session(event.session_id, self._clock())
        if session is None:
            logger.debug("End signal for unknown session %s", event.session_id)
        return session
