"""SQLAlchemy ORM models for location monitoring data."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..types import (
    ChangeType,
    EndpointStatus,
    FetchJobStatus,
    PageType,
    SiteStatus,
)


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


class MonitoredSite(Base):
    """A business website registered for monitoring."""

    __tablename__ = "monitored_sites"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    url: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SiteStatus.ACTIVE.value
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (Index("ix_monitored_sites_status", "status"),)

    def __repr__(self) -> str:
        return f"<MonitoredSite(id={self.id}, url={self.url}, status={self.status})>"

    def __rich_repr__(self):
        yield "id", self.id
        yield "url", self.url
        yield "domain", self.domain
        yield "status", self.status
        yield "last_checked_at", self.last_checked_at


class Endpoint(Base):
    """A concrete page on a site that is fetched on each content sweep."""

    __tablename__ = "endpoints"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    site_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("monitored_sites.id"), nullable=False
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    page_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PageType.OTHER.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EndpointStatus.ACTIVE.value
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    last_scraped_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_endpoints_site_id", "site_id"),
        Index("ix_endpoints_status", "status"),
        Index("ix_endpoints_site_url", "site_id", "url"),
    )

    def __repr__(self) -> str:
        return (
            f"<Endpoint(id={self.id}, url={self.url}, page_type={self.page_type}, "
            f"status={self.status})>"
        )

    def __rich_repr__(self):
        yield "id", self.id
        yield "site_id", self.site_id
        yield "url", self.url
        yield "page_type", self.page_type
        yield "status", self.status
        yield "last_scraped_at", self.last_scraped_at


class ContentSnapshot(Base):
    """Immutable capture of an endpoint's text at one point in time."""

    __tablename__ = "content_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    endpoint_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("endpoints.id"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    fetch_metadata: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    captured_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_content_snapshots_endpoint_captured", "endpoint_id", "captured_at"),
        Index("ix_content_snapshots_hash", "content_hash"),
    )

    def __repr__(self) -> str:
        return (
            f"<ContentSnapshot(id={self.id}, endpoint_id={self.endpoint_id}, "
            f"hash={self.content_hash[:8]})>"
        )


class ContentChange(Base):
    """A detected difference between two consecutive snapshots."""

    __tablename__ = "content_changes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    endpoint_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("endpoints.id"), nullable=False
    )
    previous_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    new_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    change_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChangeType.MODIFIED_CONTENT.value
    )
    detected_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    processed: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("ix_content_changes_endpoint", "endpoint_id"),
        Index("ix_content_changes_processed", "processed"),
        Index("ix_content_changes_detected", "detected_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ContentChange(id={self.id}, endpoint_id={self.endpoint_id}, "
            f"type={self.change_type}, processed={self.processed})>"
        )


class FetchJob(Base):
    """Bookkeeping record for one fetch attempt sequence on an endpoint."""

    __tablename__ = "fetch_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    endpoint_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("endpoints.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FetchJobStatus.PENDING.value
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_fetch_jobs_endpoint", "endpoint_id"),
        Index("ix_fetch_jobs_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<FetchJob(id={self.id}, endpoint_id={self.endpoint_id}, status={self.status})>"
