"""Data models for matching runs and their reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from app.domain.models import MatchRecord, MatchRunSummary


class RunMode(str, Enum):
    ALL = "all"
    BUYER = "buyer"
    PROPERTY = "property"


class RunErrorKind(str, Enum):
    """Why a run failed as a whole (per-pair errors are only counted)."""

    COLLECTION_FETCH = "collection_fetch"
    NOT_FOUND = "not_found"


class UpsertAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass
class UpsertOperation:
    """One queued write against the match table."""

    action: UpsertAction
    match: MatchRecord


@dataclass
class WaveStats:
    """Counts produced by one wave of concurrent batches."""

    created: int = 0
    updated: int = 0
    priority: int = 0
    errors: int = 0
    failed_batches: int = 0

    def __add__(self, other: "WaveStats") -> "WaveStats":
        return WaveStats(
            created=self.created + other.created,
            updated=self.updated + other.updated,
            priority=self.priority + other.priority,
            errors=self.errors + other.errors,
            failed_batches=self.failed_batches + other.failed_batches,
        )


@dataclass
class MatchRunResult:
    """
    Outcome of a full, single-buyer or single-property run.

    Attributes:
        mode: Which operation produced this result
        run_id: Identifier shared by every log line of the run
        run_started_at: UTC timestamp when the run began
        run_finished_at: UTC timestamp when the run completed
        target_id: Buyer or property id for single-target runs
        target_label: Human label for the target, used in ``message``
        buyers_processed: Buyers considered
        properties_processed: Properties considered
        pairs_scored: Pairs that went through the scorer
        matches_created: New match records written
        matches_updated: Existing match records refreshed
        duplicates_skipped: Pairs skipped because a match already exists
        below_threshold: Scored pairs under the minimum score
        priority_matches: Written matches flagged as priority
        error_count: Per-pair and per-batch failures
        geocoded_count: Buyers that received coordinates during the run
        properties_geocoded: Properties located for this run only
        duration_seconds: Wall-clock time for the run
        failed: The run could not complete (see ``error_kind``)
        error_kind: Failure category when ``failed`` is set
        error_message: Failure detail when ``failed`` is set
        skipped: Another run held the lock; nothing was done
    """

    mode: RunMode
    run_id: str
    run_started_at: datetime
    run_finished_at: datetime
    target_id: Optional[str] = None
    target_label: Optional[str] = None
    buyers_processed: int = 0
    properties_processed: int = 0
    pairs_scored: int = 0
    matches_created: int = 0
    matches_updated: int = 0
    duplicates_skipped: int = 0
    below_threshold: int = 0
    priority_matches: int = 0
    error_count: int = 0
    geocoded_count: int = 0
    properties_geocoded: int = 0
    duration_seconds: float = 0.0
    failed: bool = False
    error_kind: Optional[RunErrorKind] = None
    error_message: Optional[str] = None
    skipped: bool = False

    def __post_init__(self):
        if self.duration_seconds == 0.0:
            delta = self.run_finished_at - self.run_started_at
            self.duration_seconds = delta.total_seconds()

    @property
    def had_errors(self) -> bool:
        return self.failed or self.error_count > 0

    @property
    def matches_written(self) -> int:
        return self.matches_created + self.matches_updated

    @property
    def message(self) -> str:
        if self.skipped:
            return "Matching skipped: another run is in progress."
        if self.failed:
            return f"Matching failed: {self.error_message or self.error_kind}"
        if self.mode == RunMode.BUYER:
            return f"Found {self.matches_written} matches for {self.target_label or self.target_id}"
        if self.mode == RunMode.PROPERTY:
            return (
                f"Found {self.matches_written} buyer matches for property "
                f"{self.target_label or self.target_id}"
            )
        return (
            f"Matching complete! Created {self.matches_created} new matches, "
            f"updated {self.matches_updated}, skipped {self.duplicates_skipped} duplicates."
        )

    def to_summary(self) -> MatchRunSummary:
        return MatchRunSummary(
            run_id=self.run_id,
            mode=self.mode.value,
            target_id=self.target_id,
            started_at=self.run_started_at,
            finished_at=self.run_finished_at,
            buyers_processed=self.buyers_processed,
            properties_processed=self.properties_processed,
            pairs_scored=self.pairs_scored,
            matches_created=self.matches_created,
            matches_updated=self.matches_updated,
            duplicates_skipped=self.duplicates_skipped,
            below_threshold=self.below_threshold,
            error_count=self.error_count,
            failed=self.failed,
            skipped=self.skipped,
            error_kind=self.error_kind.value if self.error_kind else None,
            error_message=self.error_message,
            duration_seconds=self.duration_seconds,
        )


@dataclass
class ClearResult:
    """Outcome of deleting every match record."""

    run_id: str
    run_started_at: datetime
    run_finished_at: datetime
    found: int = 0
    deleted: int = 0
    error_count: int = 0
    failed: bool = False
    error_message: Optional[str] = None
    skipped: bool = False
    duration_seconds: float = 0.0
    failed_ids: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.duration_seconds == 0.0:
            delta = self.run_finished_at - self.run_started_at
            self.duration_seconds = delta.total_seconds()

    @property
    def had_errors(self) -> bool:
        return self.failed or self.error_count > 0

    @property
    def message(self) -> str:
        if self.skipped:
            return "Clear skipped: another run is in progress."
        if self.failed:
            return f"Clear failed: {self.error_message}"
        if self.found == 0:
            return "No matches to delete"
        return f"Deleted {self.deleted} matches"
