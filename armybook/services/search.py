from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from ..config import SEARCH_DEBOUNCE_SECONDS, SELECTOR_PAGE_LIMIT
from .backend import BackendClient, Page

logger = logging.getLogger(__name__)

E = TypeVar("E")

Fetch = Callable[[str], Awaitable[Page]]


class DebouncedSearch:
    """Runs ``fetch`` after a quiet period; only the newest query may land.

    Each call to :meth:`search` cancels the pending one.  A response that
    still resolves after a newer query was issued is discarded.
    """

    def __init__(
        self,
        fetch: Fetch,
        *,
        delay: float = SEARCH_DEBOUNCE_SECONDS,
        on_results: Callable[[Page], None] | None = None,
    ) -> None:
        self._fetch = fetch
        self._delay = delay
        self._on_results = on_results
        self._generation = 0
        self._pending: asyncio.Task | None = None
        self.query = ""
        self.results = Page()

    @property
    def pending(self) -> asyncio.Task | None:
        return self._pending

    def search(self, query: str, *, immediate: bool = False) -> asyncio.Task:
        self.cancel()
        self._generation += 1
        self.query = query
        delay = 0.0 if immediate or not query else self._delay
        self._pending = asyncio.create_task(self._run(query, self._generation, delay))
        return self._pending

    async def search_now(self, query: str | None = None) -> Page | None:
        task = self.search(self.query if query is None else query, immediate=True)
        return await self._await(task)

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def wait(self) -> Page | None:
        if self._pending is None:
            return None
        return await self._await(self._pending)

    @staticmethod
    async def _await(task: asyncio.Task) -> Page | None:
        try:
            return await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            return None

    async def _run(self, query: str, generation: int, delay: float) -> Page | None:
        if delay > 0:
            await asyncio.sleep(delay)
        page = await self._fetch(query)
        if generation != self._generation:
            logger.debug("Discarding stale results for %r", query)
            return None
        self.results = page
        if self._on_results is not None:
            self._on_results(page)
        return page


@dataclass
class Selection(Generic[E]):
    candidate: E
    tier: int = 1
    quantity: int = 0
    slot: str | None = None


class CandidateSelector(Generic[E]):
    """State of a selector dialog listing entities that can be attached."""

    def __init__(
        self,
        backend: BackendClient,
        endpoint: str,
        factory: Callable[[dict[str, Any]], E],
        *,
        exclude: Callable[[], Iterable[str]] = lambda: (),
        limit: int = SELECTOR_PAGE_LIMIT,
        delay: float = SEARCH_DEBOUNCE_SECONDS,
    ) -> None:
        self._backend = backend
        self._endpoint = endpoint
        self._factory = factory
        self._exclude = exclude
        self._limit = limit
        self.candidates: list[E] = []
        self.selection: Selection[E] | None = None
        self.search = DebouncedSearch(self._fetch, delay=delay, on_results=self._store)

    async def _fetch(self, query: str) -> Page:
        return await self._backend.fetch_page(self._endpoint, name=query, limit=self._limit)

    def _store(self, page: Page) -> None:
        excluded = set(self._exclude())
        candidates: list[E] = []
        for item in page.items:
            candidate = self._factory(item)
            if getattr(candidate, "id", None) in excluded:
                continue
            candidates.append(candidate)
        self.candidates = candidates
        if self.selection is not None and self.selection.candidate not in candidates:
            self.selection = None

    def select(
        self, candidate: E, *, tier: int = 1, quantity: int = 0, slot: str | None = None
    ) -> Selection[E]:
        self.selection = Selection(candidate=candidate, tier=tier, quantity=quantity, slot=slot)
        return self.selection

    def confirm(self, action: Callable[[Selection[E]], bool]) -> bool:
        if self.selection is None:
            return False
        accepted = action(self.selection)
        if accepted:
            self.selection = None
        return accepted
