"""SQLAlchemy ORM models for competitor monitoring data."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

from ...detection.types import ChangeKind, ChangeRecord, PageMetadata, Severity, Snapshot
from ...tracking.types import SitemapEntry

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Account(Base):
    """Owner of targets and holder of a signal balance."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    signal_balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now()
    )

    targets: Mapped[list[Target]] = relationship("Target", back_populates="account")
    transactions: Mapped[list[SignalTransaction]] = relationship(
        "SignalTransaction", back_populates="account", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email={self.email}, balance={self.signal_balance})>"


class Target(Base):
    """A competitor website under monitoring."""

    __tablename__ = "targets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    account_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="SET NULL")
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Monitoring configuration
    mode: Mapped[str] = mapped_column(String(20), default="SINGLE_PAGE")
    cadence: Mapped[str] = mapped_column(String(20), default="DAILY")
    priority_paths: Mapped[list] = mapped_column(JSON, default=list)
    max_signals: Mapped[int] = mapped_column(Integer, default=8)

    # Crawl bookkeeping
    crawl_attempts: Mapped[int] = mapped_column(Integer, default=0)
    successful_crawls: Mapped[int] = mapped_column(Integer, default=0)
    last_crawled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_successful_crawl_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_sitemap_check: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now()
    )

    account: Mapped[Optional[Account]] = relationship("Account", back_populates="targets")
    snapshots: Mapped[list[PageSnapshot]] = relationship(
        "PageSnapshot", back_populates="target", cascade="all, delete-orphan", passive_deletes=True
    )
    changes: Mapped[list[DetectedChange]] = relationship(
        "DetectedChange", back_populates="target", cascade="all, delete-orphan", passive_deletes=True
    )
    sitemap_urls: Mapped[list[SitemapUrl]] = relationship(
        "SitemapUrl", back_populates="target", cascade="all, delete-orphan", passive_deletes=True
    )
    crawl_logs: Mapped[list[CrawlLog]] = relationship(
        "CrawlLog", back_populates="target", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_targets_url", "url"),
        Index("ix_targets_is_active", "is_active"),
        Index("ix_targets_account_id", "account_id"),
    )

    @property
    def display_name(self) -> str:
        return self.name or self.url

    def __repr__(self) -> str:
        return f"<Target(id={self.id}, url={self.url}, mode={self.mode})>"

    def __rich_repr__(self):
        yield "id", self.id
        yield "url", self.url
        yield "name", self.name
        yield "mode", self.mode
        yield "cadence", self.cadence
        yield "is_active", self.is_active
        yield "last_crawled_at", self.last_crawled_at


class PageSnapshot(Base):
    """Append-only capture of one URL of a target."""

    __tablename__ = "snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    target_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("targets.id", ondelete="CASCADE"), nullable=False
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    page_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    captured_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    target: Mapped[Target] = relationship("Target", back_populates="snapshots")

    __table_args__ = (
        Index("ix_snapshots_target_url_captured", "target_id", "url", "captured_at"),
        Index("ix_snapshots_fingerprint", "fingerprint"),
    )

    def to_domain(self) -> Snapshot:
        return Snapshot(
            id=self.id,
            target_id=self.target_id,
            url=self.url,
            content=self.content,
            fingerprint=self.fingerprint,
            metadata=PageMetadata.from_dict(self.page_metadata or {}),
            captured_at=self.captured_at,
        )

    def __repr__(self) -> str:
        return f"<PageSnapshot(id={self.id}, url={self.url}, captured_at={self.captured_at})>"


class DetectedChange(Base):
    """A change record produced by the detector."""

    __tablename__ = "changes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    target_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("targets.id", ondelete="CASCADE"), nullable=False
    )
    snapshot_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("snapshots.id", ondelete="CASCADE")
    )
    url: Mapped[Optional[str]] = mapped_column(String(2048))

    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text)
    new_value: Mapped[Optional[str]] = mapped_column(Text)

    detected_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)

    target: Mapped[Target] = relationship("Target", back_populates="changes")
    notifications: Mapped[list[ActivityNotification]] = relationship(
        "ActivityNotification", back_populates="change", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_changes_target_detected", "target_id", "detected_at"),
        Index("ix_changes_severity", "severity"),
        Index("ix_changes_is_read", "is_read"),
    )

    @classmethod
    def from_domain(cls, record: ChangeRecord) -> DetectedChange:
        return cls(
            target_id=record.target_id,
            snapshot_id=record.snapshot_id,
            url=record.url,
            kind=ChangeKind(record.kind).value,
            title=record.title,
            description=record.description,
            severity=Severity(record.severity).value,
            old_value=record.old_value,
            new_value=record.new_value,
            detected_at=record.detected_at,
            is_read=record.is_read,
        )

    def to_domain(self) -> ChangeRecord:
        return ChangeRecord(
            id=self.id,
            target_id=self.target_id,
            snapshot_id=self.snapshot_id,
            url=self.url,
            kind=ChangeKind(self.kind),
            title=self.title,
            description=self.description,
            severity=Severity(self.severity),
            old_value=self.old_value,
            new_value=self.new_value,
            detected_at=self.detected_at,
            is_read=self.is_read,
        )

    def __repr__(self) -> str:
        return f"<DetectedChange(id={self.id}, kind={self.kind}, severity={self.severity})>"


class SitemapUrl(Base):
    """A URL in a target's discovered universe."""

    __tablename__ = "sitemap_urls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    target_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("targets.id", ondelete="CASCADE"), nullable=False
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    lastmod: Mapped[Optional[datetime]] = mapped_column(DateTime)
    priority: Mapped[Optional[float]] = mapped_column(Float)
    changefreq: Mapped[Optional[str]] = mapped_column(String(20))
    is_priority: Mapped[bool] = mapped_column(Boolean, default=False)
    last_crawled: Mapped[Optional[datetime]] = mapped_column(DateTime)
    content_hash: Mapped[Optional[str]] = mapped_column(String(64))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now()
    )

    target: Mapped[Target] = relationship("Target", back_populates="sitemap_urls")

    __table_args__ = (
        UniqueConstraint("target_id", "url", name="uq_sitemap_urls_target_url"),
        Index("ix_sitemap_urls_target_priority", "target_id", "is_priority"),
    )

    def to_entry(self) -> SitemapEntry:
        return SitemapEntry(
            url=self.url,
            lastmod=self.lastmod,
            priority=self.priority,
            changefreq=self.changefreq,
            is_priority=bool(self.is_priority),
            last_crawled=self.last_crawled,
            last_fingerprint=self.content_hash,
            is_active=bool(self.is_active),
        )

    def __repr__(self) -> str:
        return f"<SitemapUrl(url={self.url}, is_priority={self.is_priority})>"


class CrawlLog(Base):
    """One crawl execution for a target."""

    __tablename__ = "crawl_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    target_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("targets.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default="IN_PROGRESS")
    signals_used: Mapped[int] = mapped_column(Integer, default=0)
    pages_found: Mapped[int] = mapped_column(Integer, default=0)
    changes_found: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    target: Mapped[Target] = relationship("Target", back_populates="crawl_logs")

    __table_args__ = (
        Index("ix_crawl_logs_target_started", "target_id", "started_at"),
        Index("ix_crawl_logs_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<CrawlLog(id={self.id}, target_id={self.target_id}, status={self.status})>"


class SignalTransaction(Base):
    """A debit or credit against an account's signal balance."""

    __tablename__ = "signal_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    target_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("targets.id", ondelete="SET NULL")
    )
    mode: Mapped[Optional[str]] = mapped_column(String(20))
    signals_used: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    account: Mapped[Account] = relationship("Account", back_populates="transactions")

    __table_args__ = (Index("ix_signal_transactions_account", "account_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<SignalTransaction(account_id={self.account_id}, signals_used={self.signals_used})>"


class ActivityNotification(Base):
    """In-app activity feed entry for a notified change."""

    __tablename__ = "activity_notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    account_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE")
    )
    change_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("changes.id", ondelete="CASCADE"), nullable=False
    )
    channel: Mapped[str] = mapped_column(String(20), default="IN_APP")
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    change: Mapped[DetectedChange] = relationship("DetectedChange", back_populates="notifications")

    __table_args__ = (Index("ix_activity_account_sent", "account_id", "sent_at"),)

    def __repr__(self) -> str:
        return f"<ActivityNotification(change_id={self.change_id}, channel={self.channel})>"
