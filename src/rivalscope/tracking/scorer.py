"""Pluggable page scoring for monitoring recommendations."""

from typing import Optional, Protocol

from .types import PageRecommendation, SitemapEntry

RECOMMENDED_PATHS = (
    "/pricing",
    "/features",
    "/about",
    "/products",
    "/services",
    "/blog",
    "/news",
    "/changelog",
    "/roadmap",
    "/careers",
)

BUSINESS_SCORE = 7.0
INTENT_SCORE = 6.0


class PageScorer(Protocol):
    """Scores how worthwhile a page is to monitor; 0 means not recommended."""

    def score(self, url: str, entry: Optional[SitemapEntry] = None) -> float:
        ...

    def reason(self, url: str) -> str:
        ...


class KeywordPageScorer:
    """Scores pages by business-critical URL patterns and user keywords.

    With an ``intent`` (free text such as "pricing and integrations"), any
    URL containing one of its words scores ``INTENT_SCORE``. Without one,
    URLs matching a business-critical path score ``BUSINESS_SCORE``.
    """

    def __init__(self, intent: Optional[str] = None, paths: tuple[str, ...] = RECOMMENDED_PATHS):
        self.keywords = [word for word in (intent or "").lower().split() if word]
        self.paths = paths

    def score(self, url: str, entry: Optional[SitemapEntry] = None) -> float:
        lowered = url.lower()
        if self.keywords:
            return INTENT_SCORE if any(k in lowered for k in self.keywords) else 0.0
        return BUSINESS_SCORE if any(p in lowered for p in self.paths) else 0.0

    def reason(self, url: str) -> str:
        if self.keywords:
            return "Keyword match in URL"
        return "Business-critical page identified by URL pattern"


def recommend_pages(
    entries: list[SitemapEntry], scorer: PageScorer, max_signals: int
) -> list[PageRecommendation]:
    """Rank active entries by score, highest first, capped at ``max_signals``."""
    scored = []
    seen = set()
    for entry in entries:
        if not entry.is_active or entry.url in seen:
            continue
        seen.add(entry.url)
        score = scorer.score(entry.url, entry)
        if score > 0:
            scored.append(PageRecommendation(url=entry.url, score=score, reason=scorer.reason(entry.url)))

    scored.sort(key=lambda r: r.score, reverse=True)
    return scored[: max(0, max_signals)]
