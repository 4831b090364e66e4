"""
Debounced person search for the edit session.

Every keystroke resets a quiet-period timer (200 ms by default).  Only when
the timer fires is one search request issued, tagged with the edit text it
was scheduled for.  A new keystroke cancels the pending *timer*; requests
already in flight are never cancelled and their results are handed to the
callback together with their tag so the receiver can drop stale ones.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from sr_common.config import get_settings
from sr_common.metrics import identity_search_requests_total
from sr_common.models import PersonCandidate

from .identity_client import IdentityServiceClient

logger = structlog.get_logger()

ResultsCallback = Callable[[str, list[PersonCandidate]], None]


class DebouncedCandidateSearch:
    """Debounce keystrokes into person-search requests.

    Must be used from within a running event loop.

    Args:
        client: Identity service used for ``search_persons``.
        on_results: Called with ``(query_tag, candidates)`` for every
            completed request and for every cleared input.
        delay_s: Quiet period before a request is issued.
        limit: Maximum candidates per request.
    """

    def __init__(
        self,
        client: IdentityServiceClient,
        on_results: ResultsCallback,
        *,
        delay_s: float | None = None,
        limit: int | None = None,
    ) -> None:
        settings = get_settings()
        self._client = client
        self._on_results = on_results
        self.delay_s = delay_s if delay_s is not None else settings.search_debounce_ms / 1000
        self.limit = limit if limit is not None else settings.search_limit
        self._timer: asyncio.TimerHandle | None = None
        self._in_flight: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        """``True`` while a debounce timer is armed."""
        return self._timer is not None

    def schedule(self, text: str) -> None:
        """Restart the quiet period for *text*.

        Blank input cancels the timer and reports an empty result at once.
        """
        self.cancel()
        if not text.strip():
            self._on_results(text, [])
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay_s, self._fire, text)

    def cancel(self) -> None:
        """Drop the pending timer, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, text: str) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self._run(text))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run(self, text: str) -> None:
        query = text.strip()
        logger.debug("person_search_issued", query=query, limit=self.limit)
        candidates = await self._client.search_persons(query, self.limit)
        identity_search_requests_total.labels(status="ok" if candidates else "empty").inc()
        self._on_results(text, list(candidates))

    async def aclose(self) -> None:
        """Cancel the timer and wait for requests already in flight."""
        self.cancel()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
