"""Content hashing and snapshot-based change detection."""

import difflib
import hashlib
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

import blake3

from ..storage.interface import StorageManager
from ..storage.types import ChangeType
from ..utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

NEW_LOCATION_INDICATORS = [
    "new location",
    "new store",
    "new gym",
    "new branch",
    "opening soon",
    "now open",
    "grand opening",
    "new address",
    "relocated",
    "moved to",
]


@dataclass
class ContentHash:
    """Content hash with metadata."""

    hash_value: str
    hash_type: str
    content_length: int
    created_at: datetime


@dataclass
class ChangeDetectionResult:
    """Outcome of comparing freshly fetched text against the latest snapshot."""

    endpoint_id: str
    has_changes: bool
    content_hash: str
    new_content: str
    previous_content: Optional[str] = None
    previous_hash: Optional[str] = None
    change_type: Optional[ChangeType] = None
    change_id: Optional[str] = None
    snapshot_id: Optional[str] = None
    is_baseline: bool = False


@dataclass
class ChangeStatistics:
    """Aggregate view over the changes detected in a time window."""

    window_days: int
    total_changes: int
    changes_by_type: dict[str, int]
    most_active_endpoints: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "window_days": self.window_days,
            "total_changes": self.total_changes,
            "changes_by_type": self.changes_by_type,
            "most_active_endpoints": self.most_active_endpoints,
        }


@dataclass
class ContentChangeAnalysis:
    """Keyword scan of an endpoint's recent changes for new-location signals."""

    endpoint_id: str
    days: int
    change_count: int
    indicators: list[str] = field(default_factory=list)
    summary: str = ""


class ContentHasher:
    """Hashes raw text. No normalisation: distinct strings hash differently."""

    SUPPORTED = ("blake3", "sha256")

    def __init__(self, hash_type: str = "blake3"):
        if hash_type not in self.SUPPORTED:
            raise ValueError(f"Unsupported hash type: {hash_type}")
        self.hash_type = hash_type

    def hash_content(self, content: str) -> ContentHash:
        data = content.encode("utf-8")

        if self.hash_type == "blake3":
            hash_value = blake3.blake3(data).hexdigest()
        else:
            hash_value = hashlib.sha256(data).hexdigest()

        return ContentHash(
            hash_value=hash_value,
            hash_type=self.hash_type,
            content_length=len(data),
            created_at=datetime.utcnow(),
        )


def classify_change(previous_content: Optional[str], new_content: str) -> ChangeType:
    """new_content when nothing was there before, removed_content when the page
    went blank, modified_content otherwise."""
    if not previous_content:
        return ChangeType.NEW_CONTENT
    if not new_content:
        return ChangeType.REMOVED_CONTENT
    return ChangeType.MODIFIED_CONTENT


class ChangeDetector:
    """Records snapshots and the changes between consecutive snapshots."""

    def __init__(self, storage: StorageManager, hasher: Optional[ContentHasher] = None):
        self.storage = storage
        self.hasher = hasher or ContentHasher()

    async def detect_and_record(
        self,
        endpoint_id: str,
        new_content: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ChangeDetectionResult:
        """Compare ``new_content`` with the latest snapshot and persist the outcome.

        First observation stores a baseline snapshot and reports no change.
        Identical content writes nothing. Otherwise the change record is
        written before the new snapshot.
        """
        content_hash = self.hasher.hash_content(new_content).hash_value
        previous = await self.storage.get_latest_snapshot(endpoint_id)

        if previous is None:
            snapshot = await self.storage.create_snapshot(
                endpoint_id, new_content, content_hash, metadata
            )
            logger.info("Baseline snapshot stored", endpoint_id=endpoint_id)
            return ChangeDetectionResult(
                endpoint_id=endpoint_id,
                has_changes=False,
                content_hash=content_hash,
                new_content=new_content,
                snapshot_id=snapshot.id,
                is_baseline=True,
            )

        if previous.content_hash == content_hash:
            logger.debug("Content unchanged", endpoint_id=endpoint_id)
            return ChangeDetectionResult(
                endpoint_id=endpoint_id,
                has_changes=False,
                content_hash=content_hash,
                new_content=new_content,
                previous_content=previous.content,
                previous_hash=previous.content_hash,
                snapshot_id=previous.id,
            )

        change_type = classify_change(previous.content, new_content)
        change = await self.storage.create_change(
            endpoint_id, previous.content_hash, content_hash, change_type
        )
        snapshot = await self.storage.create_snapshot(
            endpoint_id, new_content, content_hash, metadata
        )

        logger.info(
            "Content change detected",
            endpoint_id=endpoint_id,
            change_type=change_type.value,
            change_id=change.id,
        )
        return ChangeDetectionResult(
            endpoint_id=endpoint_id,
            has_changes=True,
            content_hash=content_hash,
            new_content=new_content,
            previous_content=previous.content,
            previous_hash=previous.content_hash,
            change_type=change_type,
            change_id=change.id,
            snapshot_id=snapshot.id,
        )

    async def get_change_statistics(self, window_days: int = 30) -> ChangeStatistics:
        cutoff = datetime.utcnow() - timedelta(days=window_days)
        changes = await self.storage.get_changes_since(cutoff)

        by_type = Counter(change.change_type for change in changes)
        by_endpoint = Counter(change.endpoint_id for change in changes)

        most_active = []
        for endpoint_id, count in by_endpoint.most_common(10):
            endpoint = await self.storage.get_endpoint(endpoint_id)
            most_active.append(
                {
                    "endpoint_id": endpoint_id,
                    "url": endpoint.url if endpoint else None,
                    "change_count": count,
                }
            )

        return ChangeStatistics(
            window_days=window_days,
            total_changes=len(changes),
            changes_by_type=dict(by_type),
            most_active_endpoints=most_active,
        )

    async def analyze_content_changes(
        self, endpoint_id: str, days: int = 7
    ) -> ContentChangeAnalysis:
        since = datetime.utcnow() - timedelta(days=days)
        changes = await self.storage.get_changes_for_endpoint(endpoint_id, since=since)

        if not changes:
            return ContentChangeAnalysis(
                endpoint_id=endpoint_id,
                days=days,
                change_count=0,
                summary="No recent changes detected",
            )

        snapshots = await self.storage.get_snapshots_for_endpoint(endpoint_id)
        content_by_hash = {s.content_hash: s.content for s in snapshots}

        indicators: list[str] = []
        for change in changes:
            text = content_by_hash.get(change.new_hash, "").lower()
            for indicator in NEW_LOCATION_INDICATORS:
                if indicator in text and indicator not in indicators:
                    indicators.append(indicator)

        lines = [f"{len(changes)} change(s) in the last {days} days"]
        if indicators:
            lines.append("Possible new locations: " + ", ".join(indicators))
        else:
            lines.append("No new-location indicators found")

        return ContentChangeAnalysis(
            endpoint_id=endpoint_id,
            days=days,
            change_count=len(changes),
            indicators=indicators,
            summary="\n".join(lines),
        )

    async def mark_changes_processed(self, endpoint_id: str) -> int:
        """Mark every pending change of one endpoint as processed."""
        pending = await self.storage.get_unprocessed_changes(endpoint_id=endpoint_id)
        for change in pending:
            await self.storage.mark_change_processed(change.id)
        logger.info(
            "Changes marked processed", endpoint_id=endpoint_id, count=len(pending)
        )
        return len(pending)

    async def get_content_diff(self, endpoint_id: str) -> Optional[str]:
        """Unified diff between the two most recent snapshots, if there are two."""
        snapshots = await self.storage.get_snapshots_for_endpoint(endpoint_id, limit=2)
        if len(snapshots) < 2:
            return None

        newer, older = snapshots[0], snapshots[1]
        diff = difflib.unified_diff(
            older.content.splitlines(),
            newer.content.splitlines(),
            fromfile=f"snapshot {older.id}",
            tofile=f"snapshot {newer.id}",
            lineterm="",
        )
        return "\n".join(diff)
