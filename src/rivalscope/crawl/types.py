"""Type definitions for crawl orchestration."""

from dataclasses import dataclass, field
from typing import Optional

from ..detection.types import ChangeRecord
from ..storage.types import CrawlStatus


class CrawlError(Exception):
    """Base exception for crawl-related errors."""

    pass


class InsufficientSignalsError(CrawlError):
    """The owning account cannot pay for the planned crawl."""

    def __init__(self, needed: int, available: int):
        super().__init__(
            f"Insufficient signals. Need {needed} signals but only have {available}."
        )
        self.needed = needed
        self.available = available


@dataclass
class CrawlOutcome:
    """What one crawl did and what it cost."""

    target_id: str
    status: CrawlStatus
    urls: list[str]
    rationale: str
    signals_used: int = 0
    pages_fetched: int = 0
    changes: list[ChangeRecord] = field(default_factory=list)
    failed_urls: dict[str, str] = field(default_factory=dict)
    crawl_log_id: Optional[str] = None
    signals_remaining: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == CrawlStatus.SUCCESS

    def to_dict(self) -> dict:
        return {
            "target_id": self.target_id,
            "status": self.status.value,
            "urls_checked": len(self.urls),
            "pages_fetched": self.pages_fetched,
            "changes_detected": len(self.changes),
            "signals_used": self.signals_used,
            "signals_remaining": self.signals_remaining,
            "rationale": self.rationale,
            "failed_urls": dict(self.failed_urls),
        }
