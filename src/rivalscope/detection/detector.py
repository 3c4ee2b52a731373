"""Heuristic change detection between successive page snapshots."""

import re
from typing import Optional, Protocol

from ..utils.logging import get_structured_logger
from .types import ChangeKind, ChangeRecord, Finding, Severity, Snapshot

logger = get_structured_logger(__name__)

PRICE_PATTERN = re.compile(r"[$£€¥₹]\d(?:[\d,]*\d)?(?:\.\d+)?")

EDITORIAL_KEYWORDS = ("blog", "news", "article", "post", "update", "announcement")
FEATURE_KEYWORDS = ("feature", "new", "launch", "release", "update", "improvement")


class SnapshotLookup(Protocol):
    """Read side of a snapshot store used by the detector."""

    async def get_latest_snapshot(
        self, target_id: str, url: str, exclude_id: Optional[str] = None
    ) -> Optional[Snapshot]:
        ...


class SubDetector(Protocol):
    """One independent heuristic comparing two snapshots."""

    name: str

    def detect(self, previous: Snapshot, current: Snapshot) -> list[Finding]:
        ...


def extract_prices(text: str) -> list[str]:
    """Distinct currency amounts in order of first appearance."""
    seen: dict[str, None] = {}
    for match in PRICE_PATTERN.findall(text or ""):
        seen.setdefault(match, None)
    return list(seen)


def count_words(text: str) -> int:
    return len((text or "").split())


def count_keyword_lines(text: str, keywords: tuple[str, ...]) -> int:
    """Count keyword hits, at most one per keyword per line."""
    if not text:
        return 0
    total = 0
    for keyword in keywords:
        pattern = re.compile(rf"\b{re.escape(keyword)}\b.*?(?=\n|$)", re.IGNORECASE)
        total += len(pattern.findall(text))
    return total


class PriceChangeDetector:
    """Reports added or removed currency amounts."""

    name = "price"

    def detect(self, previous: Snapshot, current: Snapshot) -> list[Finding]:
        old_prices = extract_prices(previous.content)
        new_prices = extract_prices(current.content)

        old_set = set(old_prices)
        new_set = set(new_prices)
        added = [price for price in new_prices if price not in old_set]
        removed = [price for price in old_prices if price not in new_set]

        if not added and not removed:
            return []

        return [
            Finding(
                kind=ChangeKind.PRICE_CHANGE,
                title="Pricing Updated",
                description=(
                    f"Price changes detected. {len(added)} new prices, "
                    f"{len(removed)} removed prices."
                ),
                severity=Severity.HIGH,
                old_value=", ".join(removed),
                new_value=", ".join(added),
            )
        ]


class TitleChangeDetector:
    """Reports a changed page title when both titles are present."""

    name = "title"

    def detect(self, previous: Snapshot, current: Snapshot) -> list[Finding]:
        old_title = (previous.metadata.title or "") if previous.metadata else ""
        new_title = (current.metadata.title or "") if current.metadata else ""

        # A title missing from one capture is a fetch artifact, not a change
        if not old_title or not new_title or old_title == new_title:
            return []

        return [
            Finding(
                kind=ChangeKind.CONTENT_UPDATE,
                title="Page Title Changed",
                description="The page title has been updated.",
                severity=Severity.MEDIUM,
                old_value=old_title,
                new_value=new_title,
            )
        ]


class WordCountDetector:
    """Reports large swings in the number of words on the page."""

    name = "word_count"

    def __init__(self, threshold: int = 50, major_threshold: int = 200):
        self.threshold = threshold
        self.major_threshold = major_threshold

    def detect(self, previous: Snapshot, current: Snapshot) -> list[Finding]:
        old_words = count_words(previous.content)
        new_words = count_words(current.content)
        diff = abs(new_words - old_words)

        if diff <= self.threshold:
            return []

        direction = "added" if new_words > old_words else "removed"
        return [
            Finding(
                kind=ChangeKind.CONTENT_UPDATE,
                title="Significant Content Change",
                description=f"Approximately {diff} words {direction}.",
                severity=Severity.HIGH if diff > self.major_threshold else Severity.MEDIUM,
            )
        ]


class KeywordGrowthDetector:
    """Reports growth in keyword-bearing lines, e.g. new posts or features."""

    def __init__(
        self,
        name: str,
        keywords: tuple[str, ...],
        kind: ChangeKind,
        severity: Severity,
        title: str,
        noun: str,
    ):
        self.name = name
        self.keywords = keywords
        self.kind = kind
        self.severity = severity
        self.title = title
        self.noun = noun

    def detect(self, previous: Snapshot, current: Snapshot) -> list[Finding]:
        old_count = count_keyword_lines(previous.content, self.keywords)
        new_count = count_keyword_lines(current.content, self.keywords)

        if new_count <= old_count:
            return []

        return [
            Finding(
                kind=self.kind,
                title=self.title,
                description=f"{new_count - old_count} new {self.noun} detected.",
                severity=self.severity,
            )
        ]


def editorial_growth_detector() -> KeywordGrowthDetector:
    return KeywordGrowthDetector(
        name="editorial",
        keywords=EDITORIAL_KEYWORDS,
        kind=ChangeKind.NEW_BLOG_POST,
        severity=Severity.MEDIUM,
        title="New Content Published",
        noun="blog posts or articles",
    )


def feature_growth_detector() -> KeywordGrowthDetector:
    return KeywordGrowthDetector(
        name="feature",
        keywords=FEATURE_KEYWORDS,
        kind=ChangeKind.FEATURE_ANNOUNCEMENT,
        severity=Severity.HIGH,
        title="New Feature Detected",
        noun="features or announcements",
    )


def default_detectors(
    word_threshold: int = 50, major_word_threshold: int = 200
) -> list[SubDetector]:
    return [
        PriceChangeDetector(),
        TitleChangeDetector(),
        WordCountDetector(word_threshold, major_word_threshold),
        editorial_growth_detector(),
        feature_growth_detector(),
    ]


class ChangeDetector:
    """Compares a new snapshot with the one preceding it for the same URL.

    Every sub-detector runs independently, so one crawl can produce several
    records at once (a price change alongside a new blog post, say). A
    sub-detector that fails is logged and contributes nothing; the others
    still run.
    """

    def __init__(
        self,
        store: Optional[SnapshotLookup] = None,
        detectors: Optional[list[SubDetector]] = None,
    ):
        self.store = store
        self.detectors = detectors if detectors is not None else default_detectors()

    @classmethod
    def from_settings(cls, settings, store: Optional[SnapshotLookup] = None):
        return cls(
            store=store,
            detectors=default_detectors(
                settings.detection.word_change_threshold,
                settings.detection.major_word_change_threshold,
            ),
        )

    async def detect(self, target_id: str, snapshot: Snapshot) -> list[ChangeRecord]:
        """Detect changes against the most recent prior snapshot of the URL."""
        if self.store is None:
            raise RuntimeError("ChangeDetector.detect requires a snapshot store")

        previous = await self.store.get_latest_snapshot(
            target_id, snapshot.url, exclude_id=snapshot.id
        )
        if previous is None:
            logger.debug("First observation, nothing to compare", url=snapshot.url)
            return []

        return self.compare(previous, snapshot, target_id=target_id)

    def compare(
        self,
        previous: Optional[Snapshot],
        current: Snapshot,
        target_id: Optional[str] = None,
    ) -> list[ChangeRecord]:
        """Run all sub-detectors over two snapshots of the same URL."""
        if previous is None:
            return []
        if previous.fingerprint == current.fingerprint:
            return []

        target_id = target_id or current.target_id
        records: list[ChangeRecord] = []

        for detector in self.detectors:
            try:
                findings = detector.detect(previous, current)
            except Exception as e:
                logger.warning(
                    "Sub-detector failed, skipping",
                    detector=getattr(detector, "name", type(detector).__name__),
                    url=current.url,
                    error=str(e),
                )
                continue

            for finding in findings:
                records.append(
                    ChangeRecord(
                        target_id=target_id,
                        kind=finding.kind,
                        title=finding.title,
                        description=finding.description,
                        severity=finding.severity,
                        old_value=finding.old_value,
                        new_value=finding.new_value,
                        snapshot_id=current.id,
                        url=current.url,
                    )
                )

        if records:
            logger.info(
                "Changes detected",
                url=current.url,
                count=len(records),
                kinds=sorted({record.kind.value for record in records}),
            )

        return records
