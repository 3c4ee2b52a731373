"""Type definitions for the change detection module."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class DetectionError(Exception):
    """Base exception for detection-related errors."""

    pass


_SEVERITY_RANK = {"LOW": 1, "MEDIUM": 2, "HIGH": 3, "CRITICAL": 4}


class Severity(str, Enum):
    """Ordered importance of a detected change."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    def __hash__(self):
        return hash(self.value)


class ChangeKind(str, Enum):
    """Kinds of change a detector can report."""

    PRICE_CHANGE = "PRICE_CHANGE"
    CONTENT_UPDATE = "CONTENT_UPDATE"
    NEW_BLOG_POST = "NEW_BLOG_POST"
    FEATURE_ANNOUNCEMENT = "FEATURE_ANNOUNCEMENT"
    PRODUCT_UPDATE = "PRODUCT_UPDATE"
    GENERAL_CHANGE = "GENERAL_CHANGE"


@dataclass
class PageMetadata:
    """Metadata captured alongside a page's text."""

    title: Optional[str] = None
    description: Optional[str] = None
    status_code: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "PageMetadata":
        """Build metadata from a loosely shaped mapping, ignoring bad values."""
        if isinstance(data, PageMetadata):
            return data
        if not isinstance(data, dict):
            return cls()

        known = {"title", "description", "status_code", "statusCode"}
        title = data.get("title")
        description = data.get("description")
        status_code = data.get("status_code", data.get("statusCode"))
        try:
            status_code = int(status_code) if status_code is not None else None
        except (TypeError, ValueError):
            status_code = None

        return cls(
            title=title if isinstance(title, str) else None,
            description=description if isinstance(description, str) else None,
            status_code=status_code,
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "title": self.title,
                "description": self.description,
                "status_code": self.status_code,
            }
        )
        return data


@dataclass
class Snapshot:
    """One normalized capture of a URL belonging to a target."""

    target_id: str
    url: str
    content: str
    fingerprint: str
    metadata: PageMetadata = field(default_factory=PageMetadata)
    captured_at: datetime = field(default_factory=datetime.utcnow)
    id: Optional[str] = None


@dataclass
class ChangeRecord:
    """A typed, severity-scored change between two snapshots."""

    target_id: str
    kind: ChangeKind
    title: str
    description: str
    severity: Severity
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    snapshot_id: Optional[str] = None
    url: Optional[str] = None
    detected_at: datetime = field(default_factory=datetime.utcnow)
    is_read: bool = False
    id: Optional[str] = None

    @property
    def is_notifiable(self) -> bool:
        return self.severity >= Severity.HIGH


@dataclass
class Finding:
    """A sub-detector result before it is bound to a target and snapshot."""

    kind: ChangeKind
    title: str
    description: str
    severity: Severity
    old_value: Optional[str] = None
    new_value: Optional[str] = None
