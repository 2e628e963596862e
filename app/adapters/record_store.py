"""Backing-store abstraction for buyers, properties and matches.

The pipeline depends on ``RecordStore`` only. ``AirtableRecordStore`` is the
production implementation; tests use an in-memory one.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from app.config.models import AirtableConfig, FieldMappingConfig
from app.domain.models import BuyerPreferences, MatchRecord, MatchStage, PropertyAttributes
from app.logging import get_logger
from app.normalization.service import RecordNormalizer

from .airtable import MAX_RECORDS_PER_REQUEST, AirtableClient
from .exceptions import AdapterResponseError

logger = get_logger(__name__, component="record_store")


class RecordStore(ABC):
    """Operations the matching pipeline needs from the backing store.

    Batch methods accept at most ``max_batch_size`` records per call. Each
    call is atomic from the caller's point of view; there is no transaction
    across calls.
    """

    max_batch_size: int = MAX_RECORDS_PER_REQUEST

    @abstractmethod
    def list_buyers(self) -> List[BuyerPreferences]:
        """Every buyer, normalized."""

    @abstractmethod
    def list_properties(self) -> List[PropertyAttributes]:
        """Every property, normalized."""

    @abstractmethod
    def list_matches(self) -> List[MatchRecord]:
        """Every match record that links a buyer and a property."""

    @abstractmethod
    def list_match_ids(self) -> List[str]:
        """Ids of every row in the match table, linked or not."""

    @abstractmethod
    def create_matches(self, matches: Sequence[MatchRecord]) -> List[MatchRecord]:
        """Create matches; returns them with their assigned ``record_id``."""

    @abstractmethod
    def update_matches(self, matches: Sequence[MatchRecord]) -> int:
        """Refresh score, priority, notes and distance of existing matches.

        Stage, links and status are not touched. Returns the number updated.
        """

    @abstractmethod
    def delete_matches(self, record_ids: Sequence[str]) -> int:
        """Delete match rows by id; returns the number deleted."""

    @abstractmethod
    def update_buyer_coordinates(self, buyer_id: str, latitude: float, longitude: float) -> None:
        """Store geocoded coordinates on a buyer record."""

    @abstractmethod
    def update_match_stage(self, match_id: str, stage: MatchStage) -> MatchRecord:
        """Move a match to ``stage`` and return the updated record."""


class AirtableRecordStore(RecordStore):
    """RecordStore backed by three Airtable tables."""

    def __init__(
        self,
        client: AirtableClient,
        tables: Optional[AirtableConfig] = None,
        field_mapping: Optional[FieldMappingConfig] = None,
        normalizer: Optional[RecordNormalizer] = None,
    ) -> None:
        self.client = client
        self.tables = tables or AirtableConfig()
        self.field_mapping = field_mapping or FieldMappingConfig()
        self.normalizer = normalizer or RecordNormalizer(self.field_mapping)

    def list_buyers(self) -> List[BuyerPreferences]:
        records = self.client.list_records(self.tables.buyers_table)
        return self.normalizer.buyers(records).items

    def list_properties(self) -> List[PropertyAttributes]:
        records = self.client.list_records(self.tables.properties_table)
        return self.normalizer.properties(records).items

    def list_matches(self) -> List[MatchRecord]:
        names = self.field_mapping.matches
        records = self.client.list_records(
            self.tables.matches_table,
            fields=[
                names.buyer_link,
                names.property_link,
                names.score,
                names.stage,
                names.status,
                names.is_priority,
                names.distance,
            ],
        )
        return self.normalizer.matches(records).items

    def list_match_ids(self) -> List[str]:
        records = self.client.list_records(
            self.tables.matches_table, fields=[self.field_mapping.matches.score]
        )
        return [record.id for record in records]

    def create_matches(self, matches: Sequence[MatchRecord]) -> List[MatchRecord]:
        created = self.client.create_records(
            self.tables.matches_table,
            [self.match_fields(match, include_links=True) for match in matches],
        )
        if len(created) != len(matches):
            raise AdapterResponseError(
                f"Airtable created {len(created)} of {len(matches)} match records"
            )
        return [
            match.model_copy(update={"record_id": record.id, "created_at": record.created_time})
            for match, record in zip(matches, created)
        ]

    def update_matches(self, matches: Sequence[MatchRecord]) -> int:
        missing = [match.pair_key for match in matches if not match.record_id]
        if missing:
            raise ValueError(f"Cannot update matches without a record id: {missing}")
        updated = self.client.update_records(
            self.tables.matches_table,
            [(match.record_id, self.match_fields(match, include_links=False)) for match in matches],
        )
        return len(updated)

    def delete_matches(self, record_ids: Sequence[str]) -> int:
        return len(self.client.delete_records(self.tables.matches_table, list(record_ids)))

    def update_buyer_coordinates(self, buyer_id: str, latitude: float, longitude: float) -> None:
        names = self.field_mapping.buyers
        self.client.update_record(
            self.tables.buyers_table,
            buyer_id,
            {names.latitude[0]: latitude, names.longitude[0]: longitude},
        )
        logger.debug(
            f"Stored coordinates on buyer {buyer_id}",
            extra={"event": "record_store.buyer.coordinates_updated", "buyer_id": buyer_id},
        )

    def update_match_stage(self, match_id: str, stage: MatchStage) -> MatchRecord:
        record = self.client.update_record(
            self.tables.matches_table,
            match_id,
            {self.field_mapping.matches.stage: stage.value},
        )
        return self.normalizer.to_match(record)

    def match_fields(self, match: MatchRecord, include_links: bool) -> Dict[str, Any]:
        """Airtable field map for a match.

        Links and status are written only on create. Stage is never written
        here so an update cannot move a match backwards in the pipeline.
        """
        names = self.field_mapping.matches
        fields: Dict[str, Any] = {
            names.score: match.score,
            names.is_priority: match.is_priority,
            names.notes: match.notes or "",
        }
        if match.distance_miles is not None:
            fields[names.distance] = round(match.distance_miles, 1)
        if include_links:
            fields[names.buyer_link] = [match.buyer_id]
            fields[names.property_link] = [match.property_id]
            fields[names.status] = match.status
        return fields
