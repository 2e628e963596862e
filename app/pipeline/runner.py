"""Batch matching orchestration: score buyer/property pairs and upsert matches."""

import contextvars
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple, Union
from uuid import uuid4

from app.adapters.base import chunked
from app.adapters.record_store import RecordStore
from app.cache.ttl import TTLCache, get_or_fetch
from app.config.models import MatchingConfig
from app.domain.models import BuyerPreferences, MatchRecord, MatchStage, PropertyAttributes
from app.geo import filter_by_preferred_zip, is_within_radius
from app.geocoding.service import GeocodingService
from app.logging import get_logger
from app.logging.context import log_context
from app.matching.models import BuyerRanking, LinkedMatch, MatchOverview, ScoredProperty
from app.matching.scorer import MatchScorer
from app.matching.utils import build_match_notes
from app.persistence import MatchRunRepository, PersistenceError, get_session, is_initialized
from app.utils.timestamps import elapsed_seconds, utc_now

from .exceptions import InvalidStageError, MatchNotFoundError
from .models import (
    ClearResult,
    MatchRunResult,
    RunErrorKind,
    RunMode,
    UpsertAction,
    UpsertOperation,
    WaveStats,
)

logger = get_logger(__name__, component="pipeline")

BUYERS_KEY = "buyers"
PROPERTIES_KEY = "properties"
MATCHES_KEY = "matches"

PairKey = Tuple[str, str]


class MatchingPipeline:
    """
    Scores buyers against properties and keeps the match table in sync.

    One instance owns one collection cache and one run lock; a run started
    while another is in progress returns a skipped result immediately.
    """

    def __init__(
        self,
        store: RecordStore,
        scorer: Optional[MatchScorer] = None,
        matching: Optional[MatchingConfig] = None,
        cache: Optional[TTLCache] = None,
        geocoding: Optional[GeocodingService] = None,
        record_runs: bool = True,
    ):
        """
        Args:
            store: Backing store for buyers, properties and matches
            scorer: Pair scorer, ``MatchScorer()`` by default
            matching: Thresholds, batch size, concurrency and cache TTL
            cache: Collection cache; built from ``matching.cache_ttl`` if omitted
            geocoding: Fills in missing buyer and property coordinates before scoring
            record_runs: Write each run to the local run history when the
                database is initialized
        """
        self.store = store
        self.scorer = scorer or MatchScorer()
        self.matching = matching or MatchingConfig()
        self.cache = cache if cache is not None else TTLCache(self.matching.cache_ttl_seconds)
        self.geocoding = geocoding
        self.record_runs = record_runs
        self._lock = threading.Lock()

    # Runs

    def run_all(self, min_score: Optional[int] = None, refresh_all: Optional[bool] = None) -> MatchRunResult:
        """Score every buyer against every property."""
        return self._run(RunMode.ALL, None, min_score, refresh_all)

    def run_for_buyer(
        self, buyer_id: str, min_score: Optional[int] = None, refresh_all: Optional[bool] = None
    ) -> MatchRunResult:
        """Score one buyer (record id or Contact ID) against every property."""
        return self._run(RunMode.BUYER, buyer_id, min_score, refresh_all)

    def run_for_property(
        self, property_id: str, min_score: Optional[int] = None, refresh_all: Optional[bool] = None
    ) -> MatchRunResult:
        """Score every buyer against one property (record id or Property Code)."""
        return self._run(RunMode.PROPERTY, property_id, min_score, refresh_all)

    def _run(
        self,
        mode: RunMode,
        target_id: Optional[str],
        min_score: Optional[int],
        refresh_all: Optional[bool],
    ) -> MatchRunResult:
        run_started_at = utc_now()
        run_id = uuid4().hex
        threshold = self.matching.min_score if min_score is None else min_score
        refresh = self.matching.refresh_all if refresh_all is None else refresh_all

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id, run_mode=mode.value):
                logger.warning(
                    "Matching run skipped: previous run still in progress",
                    extra={"event": "matching.run.skipped", "reason": "lock_held"},
                )
            return MatchRunResult(
                mode=mode,
                run_id=run_id,
                run_started_at=run_started_at,
                run_finished_at=utc_now(),
                target_id=target_id,
                skipped=True,
            )

        try:
            with log_context(run_id=run_id, run_mode=mode.value, target_id=target_id):
                logger.info(
                    "Matching run started",
                    extra={
                        "event": "matching.run.started",
                        "min_score": threshold,
                        "refresh_all": refresh,
                    },
                )
                result = MatchRunResult(
                    mode=mode,
                    run_id=run_id,
                    run_started_at=run_started_at,
                    run_finished_at=run_started_at,
                    target_id=target_id,
                )
                self._execute(result, threshold, refresh)

                result.run_finished_at = utc_now()
                result.duration_seconds = elapsed_seconds(run_started_at, result.run_finished_at)

                if result.failed:
                    logger.error(
                        f"Matching run failed: {result.error_message}",
                        extra={
                            "event": "matching.run.failed",
                            "error_kind": result.error_kind,
                            "duration_ms": int(result.duration_seconds * 1000),
                        },
                    )
                else:
                    logger.info(
                        result.message,
                        extra={
                            "event": "matching.run.completed",
                            "duration_ms": int(result.duration_seconds * 1000),
                            "buyers_processed": result.buyers_processed,
                            "properties_processed": result.properties_processed,
                            "pairs_scored": result.pairs_scored,
                            "matches_created": result.matches_created,
                            "matches_updated": result.matches_updated,
                            "duplicates_skipped": result.duplicates_skipped,
                            "below_threshold": result.below_threshold,
                            "priority_matches": result.priority_matches,
                            "error_count": result.error_count,
                        },
                    )
                self._record_run(result)
                return result
        finally:
            self._lock.release()

    def _execute(self, result: MatchRunResult, threshold: int, refresh: bool) -> None:
        """Fill ``result`` in place; sets ``failed`` instead of raising."""
        try:
            buyers = self._load_buyers()
        except Exception as e:
            self._fail(result, RunErrorKind.COLLECTION_FETCH, f"Failed to fetch buyers: {e}")
            return
        try:
            properties = self._load_properties()
        except Exception as e:
            result.buyers_processed = len(buyers)
            self._fail(result, RunErrorKind.COLLECTION_FETCH, f"Failed to fetch properties: {e}")
            return

        if result.mode == RunMode.BUYER:
            buyer = find_buyer(buyers, result.target_id)
            if buyer is None:
                self._fail(result, RunErrorKind.NOT_FOUND, f"Buyer not found: {result.target_id}")
                return
            buyers = [buyer]
            result.target_label = buyer.display_name
        elif result.mode == RunMode.PROPERTY:
            prop = find_property(properties, result.target_id)
            if prop is None:
                self._fail(result, RunErrorKind.NOT_FOUND, f"Property not found: {result.target_id}")
                return
            properties = [prop]
            result.target_label = prop.property_code or prop.record_id

        result.buyers_processed = len(buyers)
        result.properties_processed = len(properties)
        logger.info(
            f"Found {len(buyers)} buyers and {len(properties)} properties",
            extra={
                "event": "matching.collections.loaded",
                "buyer_count": len(buyers),
                "property_count": len(properties),
            },
        )

        buyers, result.geocoded_count = self._geocode_buyers(buyers)
        properties, result.properties_geocoded = self._geocode_properties(properties)

        try:
            existing = self._load_matches()
        except Exception as e:
            self._fail(result, RunErrorKind.COLLECTION_FETCH, f"Failed to fetch existing matches: {e}")
            return
        index = build_pair_index(existing)
        logger.debug(
            f"Built skip set with {len(index)} existing matches",
            extra={"event": "matching.skip_set.built", "existing_matches": len(index)},
        )

        operations = self._score_pairs(result, buyers, properties, index, threshold, refresh)

        if operations:
            totals = self._execute_operations(operations)
            result.matches_created = totals.created
            result.matches_updated = totals.updated
            result.priority_matches = totals.priority
            result.error_count += totals.errors
            self.cache.invalidate(MATCHES_KEY)

    def _score_pairs(
        self,
        result: MatchRunResult,
        buyers: List[BuyerPreferences],
        properties: List[PropertyAttributes],
        index: Dict[PairKey, MatchRecord],
        threshold: int,
        refresh: bool,
    ) -> List[UpsertOperation]:
        operations: List[UpsertOperation] = []

        for buyer in buyers:
            for prop in properties:
                key = (buyer.record_id, prop.record_id)
                existing = index.get(key)
                # A multi-linked record is only re-scored for its own pair
                if existing is not None and (not refresh or existing.pair_key != key):
                    result.duplicates_skipped += 1
                    continue

                try:
                    score = self.scorer.score(buyer, prop)
                except Exception as e:
                    result.error_count += 1
                    logger.error(
                        f"Error scoring buyer {buyer.record_id} against property {prop.record_id}: {e}",
                        extra={
                            "event": "matching.pair.failed",
                            "buyer_id": buyer.record_id,
                            "property_id": prop.record_id,
                            "error_type": type(e).__name__,
                        },
                        exc_info=True,
                    )
                    continue

                result.pairs_scored += 1
                if score.score < threshold:
                    result.below_threshold += 1
                    continue

                match = MatchRecord(
                    record_id=existing.record_id if existing else None,
                    buyer_id=buyer.record_id,
                    property_id=prop.record_id,
                    score=score.score,
                    is_priority=score.is_priority,
                    stage=existing.stage if existing else None,
                    notes=build_match_notes(score),
                    distance_miles=score.distance_miles,
                    status=existing.status if existing else "Active",
                )
                action = UpsertAction.UPDATE if existing else UpsertAction.CREATE
                operations.append(UpsertOperation(action=action, match=match))

        return operations

    def _execute_operations(self, operations: List[UpsertOperation]) -> WaveStats:
        """Write operations in batches, ``concurrency`` batches per wave.

        Each wave completes before the next starts; counts are summed per
        wave and then reduced.
        """
        size = min(self.matching.batch_size, self.store.max_batch_size)
        creates = [op.match for op in operations if op.action == UpsertAction.CREATE]
        updates = [op.match for op in operations if op.action == UpsertAction.UPDATE]
        batches = [(UpsertAction.CREATE, batch) for batch in chunked(creates, size)]
        batches += [(UpsertAction.UPDATE, batch) for batch in chunked(updates, size)]

        total = WaveStats()
        waves = chunked(batches, self.matching.concurrency)
        with ThreadPoolExecutor(
            max_workers=self.matching.concurrency, thread_name_prefix="match-batch"
        ) as executor:
            for wave_number, wave in enumerate(waves, start=1):
                futures = [
                    executor.submit(contextvars.copy_context().run, self._write_batch, action, batch)
                    for action, batch in wave
                ]
                wave_total = sum((future.result() for future in futures), WaveStats())
                total = total + wave_total
                logger.debug(
                    f"Wave {wave_number}/{len(waves)} completed",
                    extra={
                        "event": "matching.wave.completed",
                        "wave": wave_number,
                        "batches": len(wave),
                        "created": wave_total.created,
                        "updated": wave_total.updated,
                        "errors": wave_total.errors,
                    },
                )
        return total

    def _write_batch(self, action: UpsertAction, batch: List[MatchRecord]) -> WaveStats:
        """Write one batch; failures are logged and counted, never raised."""
        priority = sum(1 for match in batch if match.is_priority)
        try:
            if action == UpsertAction.CREATE:
                created = self.store.create_matches(batch)
                return WaveStats(created=len(created), priority=priority)
            updated = self.store.update_matches(batch)
            return WaveStats(updated=updated, priority=priority)
        except Exception as e:
            logger.error(
                f"Failed to {action.value} batch of {len(batch)} matches: {e}",
                extra={
                    "event": "matching.batch.failed",
                    "action": action.value,
                    "batch_size": len(batch),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return WaveStats(errors=len(batch), failed_batches=1)

    def _fail(self, result: MatchRunResult, kind: RunErrorKind, message: str) -> None:
        result.failed = True
        result.error_kind = kind
        result.error_message = message

    # Clear

    def clear_all(self) -> ClearResult:
        """Delete every match record. Irreversible.

        Ids are fetched page by page, then deleted ``batch_size`` at a time.
        A failed batch is counted and the remaining batches still run.
        """
        run_started_at = utc_now()
        run_id = uuid4().hex

        if not self._lock.acquire(blocking=False):
            logger.warning(
                "Clear skipped: a run is in progress",
                extra={"event": "matching.clear.skipped", "reason": "lock_held"},
            )
            return ClearResult(
                run_id=run_id, run_started_at=run_started_at, run_finished_at=utc_now(), skipped=True
            )

        try:
            with log_context(run_id=run_id, run_mode="clear"):
                try:
                    ids = self.store.list_match_ids()
                except Exception as e:
                    logger.error(
                        f"Failed to list match records: {e}",
                        extra={"event": "matching.clear.failed"},
                    )
                    return ClearResult(
                        run_id=run_id,
                        run_started_at=run_started_at,
                        run_finished_at=utc_now(),
                        failed=True,
                        error_message=f"Failed to list match records: {e}",
                    )

                result = ClearResult(
                    run_id=run_id,
                    run_started_at=run_started_at,
                    run_finished_at=run_started_at,
                    found=len(ids),
                )
                logger.info(
                    f"Found {len(ids)} matches to delete",
                    extra={"event": "matching.clear.started", "found": len(ids)},
                )

                size = min(self.matching.batch_size, self.store.max_batch_size)
                for batch in chunked(ids, size):
                    try:
                        result.deleted += self.store.delete_matches(batch)
                    except Exception as e:
                        result.error_count += len(batch)
                        result.failed_ids.extend(batch)
                        logger.error(
                            f"Failed to delete batch of {len(batch)} matches: {e}",
                            extra={
                                "event": "matching.clear.batch_failed",
                                "batch_size": len(batch),
                                "error_type": type(e).__name__,
                            },
                        )

                self.cache.invalidate(MATCHES_KEY)
                result.run_finished_at = utc_now()
                result.duration_seconds = elapsed_seconds(run_started_at, result.run_finished_at)
                logger.info(
                    result.message,
                    extra={
                        "event": "matching.clear.completed",
                        "found": result.found,
                        "deleted": result.deleted,
                        "error_count": result.error_count,
                    },
                )
                return result
        finally:
            self._lock.release()

    # Single-record operations

    def rank_properties_for_buyer(
        self, buyer_id: str, zip_only: bool = False, within_miles: Optional[float] = None
    ) -> Optional[BuyerRanking]:
        """Every property scored for one buyer, best first, nothing persisted.

        Args:
            buyer_id: Buyer record id or Contact ID
            zip_only: Keep only properties in a preferred ZIP; a buyer without
                preferred ZIPs keeps every property
            within_miles: Keep only properties this close to the buyer; a
                property is dropped when either side lacks coordinates

        Returns:
            The ranking, or None when the buyer does not exist. Store errors propagate.
        """
        buyer = find_buyer(self._load_buyers(), buyer_id)
        if buyer is None:
            return None
        properties = self._load_properties()

        (buyer,), _ = self._geocode_buyers([buyer])
        properties, _ = self._geocode_properties(properties)
        if zip_only:
            properties = filter_by_preferred_zip(properties, buyer.preferred_zip_codes)
        if within_miles is not None:
            properties = [prop for prop in properties if is_near(buyer, prop, within_miles)]
        scored = [ScoredProperty(property=prop, score=self.scorer.score(buyer, prop)) for prop in properties]
        ranking = BuyerRanking.from_scored(buyer, scored)

        logger.info(
            f"Ranked {ranking.total_count} properties for {buyer.display_name}",
            extra={
                "event": "matching.buyer.ranked",
                "buyer_id": buyer.record_id,
                "priority_count": len(ranking.priority),
                "explore_count": len(ranking.explore),
            },
        )
        return ranking

    def matches_for(self, record_id: str) -> Optional[MatchOverview]:
        """Stored matches of a buyer or a property, joined with both records.

        ``record_id`` is tried as a buyer (record id or Contact ID) first, then
        as a property (record id or Property Code). A record linking several
        buyers or properties contributes one entry per covered pair.

        Returns:
            The overview sorted by score, or None when neither lookup finds
            a record. Store errors propagate.

        Example:
            >>> overview = pipeline.matches_for("C-100")
            >>> [item.property_id for item in overview.matches]
            ['recPROP001', 'recPROP002']
        """
        buyers = self._load_buyers()
        properties = self._load_properties()
        buyer = find_buyer(buyers, record_id)
        prop = find_property(properties, record_id) if buyer is None else None
        if buyer is None and prop is None:
            return None

        buyers_by_id = {item.record_id: item for item in buyers}
        properties_by_id = {item.record_id: item for item in properties}
        overview = MatchOverview(buyer=buyer, property=prop)
        for match in self._load_matches():
            for buyer_id, property_id in match.pair_keys:
                if buyer is not None and buyer_id != buyer.record_id:
                    continue
                if prop is not None and property_id != prop.record_id:
                    continue
                overview.matches.append(
                    LinkedMatch(
                        match=match,
                        buyer_id=buyer_id,
                        property_id=property_id,
                        buyer=buyers_by_id.get(buyer_id),
                        property=properties_by_id.get(property_id),
                    )
                )
        overview.matches.sort(key=lambda item: item.match.score, reverse=True)
        return overview

    def set_stage(self, match_id: str, stage: Union[MatchStage, str]) -> MatchRecord:
        """Move a match to ``stage``.

        Raises:
            InvalidStageError: Unknown stage name, or a backwards move
            MatchNotFoundError: No match with ``match_id``
        """
        target = MatchStage.parse(stage)
        if target is None:
            valid = ", ".join(s.value for s in MatchStage)
            raise InvalidStageError(f"Unknown stage {stage!r}. Valid stages: {valid}")

        current = next((m for m in self._load_matches() if m.record_id == match_id), None)
        if current is None:
            raise MatchNotFoundError(match_id)
        if current.stage is not None and not current.stage.can_transition_to(target):
            raise InvalidStageError(
                f"Cannot move match {match_id} from {current.stage.value!r} to {target.value!r}"
            )

        updated = self.store.update_match_stage(match_id, target)
        self.cache.invalidate(MATCHES_KEY)
        logger.info(
            f"Match {match_id} moved to {target.value}",
            extra={
                "event": "matching.stage.updated",
                "match_id": match_id,
                "from_stage": current.stage,
                "to_stage": target,
            },
        )
        return updated

    def invalidate_cache(self) -> None:
        self.cache.clear()

    # Helpers

    def _load_buyers(self) -> List[BuyerPreferences]:
        return get_or_fetch(self.cache, BUYERS_KEY, self.store.list_buyers, logger)

    def _load_properties(self) -> List[PropertyAttributes]:
        return get_or_fetch(self.cache, PROPERTIES_KEY, self.store.list_properties, logger)

    def _load_matches(self) -> List[MatchRecord]:
        return get_or_fetch(self.cache, MATCHES_KEY, self.store.list_matches, logger)

    def _geocode_buyers(self, buyers: List[BuyerPreferences]) -> Tuple[List[BuyerPreferences], int]:
        if self.geocoding is None:
            return buyers, 0
        outcome = self.geocoding.ensure_buyer_coordinates(buyers, self.store)
        if outcome.geocoded and self.geocoding.write_back:
            self.cache.invalidate(BUYERS_KEY)
        return outcome.items, outcome.geocoded

    def _geocode_properties(
        self, properties: List[PropertyAttributes]
    ) -> Tuple[List[PropertyAttributes], int]:
        if self.geocoding is None:
            return properties, 0
        outcome = self.geocoding.ensure_property_coordinates(properties)
        return outcome.items, outcome.geocoded

    def _record_run(self, result: MatchRunResult) -> None:
        if not self.record_runs or not is_initialized():
            return
        try:
            with get_session() as session:
                MatchRunRepository(session).record(result.to_summary())
        except PersistenceError as e:
            logger.warning(
                f"Failed to record run history: {e}",
                extra={"event": "matching.run.history_failed"},
            )


def build_pair_index(matches: List[MatchRecord]) -> Dict[PairKey, MatchRecord]:
    """Map ``(buyer_id, property_id)`` to the stored match covering that pair.

    A record linking several buyers or properties is indexed under every
    combination. Matches without a record id are ignored; if a pair appears
    twice the first record wins.
    """
    index: Dict[PairKey, MatchRecord] = {}
    for match in matches:
        if not match.record_id:
            continue
        for key in match.pair_keys:
            index.setdefault(key, match)
    return index


def is_near(buyer: BuyerPreferences, prop: PropertyAttributes, miles: float) -> bool:
    """Both sides have coordinates and lie within ``miles`` of each other."""
    if buyer.coordinates is None or prop.coordinates is None:
        return False
    return is_within_radius(*buyer.coordinates, *prop.coordinates, miles)


def find_buyer(buyers: List[BuyerPreferences], buyer_id: Optional[str]) -> Optional[BuyerPreferences]:
    """Look up a buyer by record id, then by Contact ID."""
    key = (buyer_id or "").strip()
    if not key:
        return None
    for buyer in buyers:
        if buyer.record_id == key:
            return buyer
    for buyer in buyers:
        if buyer.contact_id == key:
            return buyer
    return None


def find_property(
    properties: List[PropertyAttributes], property_id: Optional[str]
) -> Optional[PropertyAttributes]:
    """Look up a property by record id, then by Property Code."""
    key = (property_id or "").strip()
    if not key:
        return None
    for prop in properties:
        if prop.record_id == key:
            return prop
    for prop in properties:
        if prop.property_code == key:
            return prop
    return None
