"""Budgeted URL selection for smart tracking.

Selection runs an explicit, ordered list of tiers over the target's URL
universe. Each tier sees the URLs already chosen and the remaining
headroom, and returns the URLs it adds. Only the first tier (declared
priority paths) may exceed the budget.
"""

from datetime import datetime
from typing import Callable, Optional

from ..utils.logging import get_structured_logger
from .types import MonitoringMode, SelectionResult, SitemapEntry, TierResult, TrackedTarget

logger = get_structured_logger(__name__)

EPOCH = datetime(1970, 1, 1)

BUSINESS_PATHS = ("/pricing", "/features", "/about", "/products", "/services", "/contact")
FALLBACK_BUSINESS_PATHS = ("/pricing", "/features", "/about")

MAX_BUSINESS_URLS = 3
SPARSE_SELECTION_SIZE = 3
MAX_HIGH_SCORE_URLS = 2
HIGH_SCORE_THRESHOLD = 0.8

# Tiers whose contributions are named in the rationale, with singular/plural nouns
RATIONALE_LABELS = {
    "priority": ("priority path", "priority paths"),
    "recent": ("recent change", "recent changes"),
    "new": ("new URL", "new URLs"),
}


class SelectionState:
    """Running selection shared by the tiers."""

    def __init__(self, target: TrackedTarget, universe: list[SitemapEntry], budget: int):
        self.target = target
        self.universe = universe
        self.budget = budget
        self.urls: list[str] = []
        self._seen: set[str] = set()

    @property
    def headroom(self) -> int:
        return max(0, self.budget - len(self.urls))

    def contains(self, url: str) -> bool:
        return url in self._seen

    def take(self, candidates, limit: Optional[int] = None) -> list[str]:
        """Append unseen candidate URLs, up to ``limit`` of them."""
        added = []
        for url in candidates:
            if limit is not None and len(added) >= limit:
                break
            if url in self._seen:
                continue
            self._seen.add(url)
            self.urls.append(url)
            added.append(url)
        return added


Tier = Callable[[SelectionState], list[str]]


def order_universe(universe: list[SitemapEntry]) -> list[SitemapEntry]:
    """Priority flag, then score, then lastmod, all descending; stable otherwise."""

    def sort_key(entry: SitemapEntry):
        lastmod_seconds = (entry.lastmod - EPOCH).total_seconds() if entry.lastmod else 0.0
        return (
            0 if entry.is_priority else 1,
            -(entry.priority or 0.0),
            entry.lastmod is None,
            -lastmod_seconds,
        )

    return sorted(universe, key=sort_key)


def _matches_any(url: str, paths) -> bool:
    lowered = url.lower()
    return any(path in lowered for path in paths)


def priority_tier(state: SelectionState) -> list[str]:
    return state.take(e.url for e in state.universe if e.is_active and e.is_priority)


def recent_tier(state: SelectionState) -> list[str]:
    last_check = state.target.last_sitemap_check or EPOCH
    return state.take(
        (
            e.url
            for e in state.universe
            if e.is_active and not e.is_priority and e.lastmod and e.lastmod > last_check
        ),
        limit=state.headroom,
    )


def never_crawled_tier(state: SelectionState) -> list[str]:
    return state.take(
        (
            e.url
            for e in state.universe
            if e.is_active and not e.is_priority and e.last_crawled is None
        ),
        limit=state.headroom,
    )


def business_tier(state: SelectionState) -> list[str]:
    if state.headroom == 0:
        return []
    return state.take(
        (e.url for e in state.universe if e.is_active and _matches_any(e.url, BUSINESS_PATHS)),
        limit=min(MAX_BUSINESS_URLS, state.headroom),
    )


def high_score_tier(state: SelectionState) -> list[str]:
    if len(state.urls) >= SPARSE_SELECTION_SIZE:
        return []
    return state.take(
        (
            e.url
            for e in state.universe
            if e.is_active and (e.priority or 0.0) > HIGH_SCORE_THRESHOLD
        ),
        limit=min(MAX_HIGH_SCORE_URLS, state.headroom),
    )


def fallback_tier(state: SelectionState) -> list[str]:
    if state.urls:
        return []
    added = state.take([state.target.url])
    for entry in state.universe:
        if entry.is_active and _matches_any(entry.url, FALLBACK_BUSINESS_PATHS):
            added.extend(state.take([entry.url]))
            if len(added) > 1:
                break
    return added


DEFAULT_TIERS: list[tuple[str, Tier]] = [
    ("priority", priority_tier),
    ("recent", recent_tier),
    ("new", never_crawled_tier),
    ("business", business_tier),
    ("high_score", high_score_tier),
    ("fallback", fallback_tier),
]


def build_rationale(trace: list[TierResult], total: int) -> str:
    """Human-readable summary of which tiers contributed."""
    parts = []
    for result in trace:
        nouns = RATIONALE_LABELS.get(result.label)
        if nouns is None or result.count == 0:
            continue
        singular, plural = nouns
        parts.append(f"{result.count} {singular if result.count == 1 else plural}")

    if parts:
        return ", ".join(parts)
    return f"{total} URLs selected by priority/frequency"


class UrlSelector:
    """Picks the URLs to crawl this cycle under a signal budget."""

    def __init__(self, tiers: Optional[list[tuple[str, Tier]]] = None):
        self.tiers = tiers if tiers is not None else DEFAULT_TIERS

    def select_urls(
        self,
        target: TrackedTarget,
        universe: list[SitemapEntry],
        budget: int,
    ) -> SelectionResult:
        """Select at most ``budget`` URLs, plus any declared priority paths."""
        budget = max(1, int(budget))
        state = SelectionState(target, order_universe(universe or []), budget)

        trace = []
        for index, (label, tier) in enumerate(self.tiers, start=1):
            trace.append(TierResult(tier=index, label=label, urls=tier(state)))

        priority_count = sum(t.count for t in trace if t.label == "priority")
        cap = max(budget, priority_count)
        urls = state.urls[:cap]

        if len(urls) < len(state.urls):
            kept = set(urls)
            for result in trace:
                result.urls = [url for url in result.urls if url in kept]

        result = SelectionResult(
            urls=urls,
            estimated_cost=len(urls),
            rationale=build_rationale(trace, len(urls)),
            trace=trace,
        )

        logger.debug(
            "URLs selected",
            target=target.url,
            universe=len(universe or []),
            budget=budget,
            selected=len(urls),
            rationale=result.rationale,
        )
        return result


def select_urls(
    target: TrackedTarget, universe: list[SitemapEntry], budget: int
) -> SelectionResult:
    return UrlSelector().select_urls(target, universe, budget)


def plan_crawl(
    target,
    universe: list[SitemapEntry],
    section_fallback_cost: int = 10,
    selector: Optional[UrlSelector] = None,
    section_max_fetch: int = 25,
) -> SelectionResult:
    """Choose URLs and signal cost according to the target's monitoring mode.

    ``SINGLE_PAGE`` costs one signal for the target URL. ``SECTION`` costs
    one signal per discovered URL, or ``section_fallback_cost`` when
    discovery found nothing, and fetches at most ``section_max_fetch`` of
    them in universe order. ``SMART`` defers to the selector with the
    target's ``max_signals`` budget.
    """
    mode = MonitoringMode(getattr(target, "mode", MonitoringMode.SINGLE_PAGE))

    if mode == MonitoringMode.SMART:
        selector = selector or UrlSelector()
        return selector.select_urls(target, universe, target.max_signals)

    if mode == MonitoringMode.SECTION:
        active = [entry.url for entry in order_universe(universe) if entry.is_active]
        if active:
            fetched = active[: max(1, section_max_fetch)]
            return SelectionResult(
                urls=fetched,
                estimated_cost=len(active),
                rationale=f"{len(active)} URLs in section, {len(fetched)} fetched",
                trace=[TierResult(tier=1, label="section", urls=fetched)],
            )
        return SelectionResult(
            urls=[target.url],
            estimated_cost=section_fallback_cost,
            rationale="Section discovery unavailable, flat section cost applied",
            trace=[TierResult(tier=1, label="section", urls=[target.url])],
        )

    return SelectionResult(
        urls=[target.url],
        estimated_cost=1,
        rationale="Single page",
        trace=[TierResult(tier=1, label="single_page", urls=[target.url])],
    )
