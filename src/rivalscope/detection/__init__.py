"""Change detection between successive snapshots of a page."""

from .detector import (
    ChangeDetector,
    KeywordGrowthDetector,
    PriceChangeDetector,
    TitleChangeDetector,
    WordCountDetector,
    count_keyword_lines,
    count_words,
    default_detectors,
    extract_prices,
)
from .hashing import ContentHasher
from .types import (
    ChangeKind,
    ChangeRecord,
    DetectionError,
    Finding,
    PageMetadata,
    Severity,
    Snapshot,
)

__all__ = [
    "ChangeDetector",
    "PriceChangeDetector",
    "TitleChangeDetector",
    "WordCountDetector",
    "KeywordGrowthDetector",
    "default_detectors",
    "extract_prices",
    "count_words",
    "count_keyword_lines",
    "ContentHasher",
    "ChangeKind",
    "ChangeRecord",
    "DetectionError",
    "Finding",
    "PageMetadata",
    "Severity",
    "Snapshot",
]
