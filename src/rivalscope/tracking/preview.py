"""Smart tracking preview for a target's URL universe."""

from collections import Counter
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlparse

from .selector import UrlSelector
from .types import SitemapEntry, TrackingPreview

RECENT_WINDOW = timedelta(days=7)
TOP_PATHS_LIMIT = 10


def top_level_path(url: str) -> Optional[str]:
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    return "/" + (path.split("/")[1] if path.count("/") >= 1 else "")


def build_preview(
    target,
    entries: list[SitemapEntry],
    now: Optional[datetime] = None,
    selector: Optional[UrlSelector] = None,
) -> TrackingPreview:
    """Summarize what smart tracking would see and spend for a target."""
    now = now or datetime.utcnow()
    selector = selector or UrlSelector()
    active = [entry for entry in entries if entry.is_active]
    recent_cutoff = now - RECENT_WINDOW

    path_counts: Counter = Counter()
    for entry in entries:
        path = top_level_path(entry.url)
        if path is not None:
            path_counts[path] += 1

    selection = selector.select_urls(target, entries, target.max_signals)

    return TrackingPreview(
        total_urls=len(active),
        priority_urls=sum(1 for entry in active if entry.is_priority),
        recent_changes=sum(
            1 for entry in active if entry.lastmod and entry.lastmod > recent_cutoff
        ),
        estimated_signals=selection.estimated_cost,
        top_paths=path_counts.most_common(TOP_PATHS_LIMIT),
        rationale=selection.rationale,
    )
