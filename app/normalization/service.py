"""Adapter layer between Airtable field maps and typed domain models.

The external schema is loosely typed and has drifted over time (``Lat`` vs
``Location Lat``, ``Price`` vs ``Property Total Price``). ``RecordNormalizer``
resolves those spellings from ``FieldMappingConfig`` so the scorer only ever
sees ``BuyerPreferences`` and ``PropertyAttributes``.
"""

import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from pydantic import ValidationError

from app.config.models import FieldMappingConfig
from app.domain.models import BuyerPreferences, MatchRecord, PropertyAttributes, RawRecord
from app.logging import get_logger

from .models import NormalizationBatch, NormalizationFailure

logger = get_logger(__name__, component="normalization")

T = TypeVar("T")


class NormalizationError(Exception):
    """A raw record cannot be represented as a typed model."""

    def __init__(self, record_id: str, message: str):
        self.record_id = record_id
        super().__init__(f"{record_id}: {message}")


def first_present(fields: Dict[str, Any], names: Sequence[str]) -> Any:
    """Value of the first field name that holds something other than None, "" or []."""
    for name in names:
        value = fields.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if isinstance(value, (list, tuple)) and not value:
            continue
        return value
    return None


def linked_ids(value: Any) -> Tuple[str, ...]:
    """Record ids held by a linked-record field, in order, blanks and repeats dropped.

    Airtable returns link fields as a list of ids; a bare string is treated
    as a single link.
    """
    values = value if isinstance(value, (list, tuple)) else [value]
    ids = (str(item).strip() for item in values if item is not None)
    return tuple(dict.fromkeys(text for text in ids if text))


class RecordNormalizer:
    """Maps RawRecords onto typed buyer, property and match models.

    Wrong-typed values are passed through to the models, whose validators
    turn them into "absent". Only a record that fails model validation
    outright (e.g. an unlinked match) raises NormalizationError.
    """

    def __init__(
        self,
        field_mapping: Optional[FieldMappingConfig] = None,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self.fields = field_mapping or FieldMappingConfig()
        self.logger = logger_instance or logger

    def to_buyer(self, record: RawRecord) -> BuyerPreferences:
        names = self.fields.buyers
        values = record.fields
        try:
            return BuyerPreferences(
                record_id=record.id,
                contact_id=first_present(values, names.contact_id),
                first_name=first_present(values, names.first_name),
                last_name=first_present(values, names.last_name),
                email=first_present(values, names.email),
                preferred_zip_codes=first_present(values, names.preferred_zip_codes),
                desired_beds=first_present(values, names.desired_beds),
                desired_baths=first_present(values, names.desired_baths),
                down_payment=first_present(values, names.down_payment),
                location=first_present(values, names.location),
                city=first_present(values, names.city),
                preferred_location=first_present(values, names.preferred_location),
                latitude=first_present(values, names.latitude),
                longitude=first_present(values, names.longitude),
            )
        except ValidationError as e:
            raise NormalizationError(record.id, f"invalid buyer record: {e}") from e

    def to_property(self, record: RawRecord) -> PropertyAttributes:
        names = self.fields.properties
        values = record.fields
        try:
            return PropertyAttributes(
                record_id=record.id,
                property_code=first_present(values, names.property_code),
                address=first_present(values, names.address),
                city=first_present(values, names.city),
                zip_code=first_present(values, names.zip_code),
                price=first_present(values, names.price),
                beds=first_present(values, names.beds),
                baths=first_present(values, names.baths),
                latitude=first_present(values, names.latitude),
                longitude=first_present(values, names.longitude),
            )
        except ValidationError as e:
            raise NormalizationError(record.id, f"invalid property record: {e}") from e

    def to_match(self, record: RawRecord) -> MatchRecord:
        names = self.fields.matches
        values = record.fields

        buyer_ids = linked_ids(values.get(names.buyer_link))
        property_ids = linked_ids(values.get(names.property_link))
        if not buyer_ids or not property_ids:
            raise NormalizationError(record.id, "match is not linked to both a buyer and a property")

        score = values.get(names.score)
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
            score = 0
        try:
            return MatchRecord(
                record_id=record.id,
                buyer_id=buyer_ids[0],
                property_id=property_ids[0],
                linked_buyer_ids=buyer_ids,
                linked_property_ids=property_ids,
                score=max(0, min(100, int(round(score)))),
                is_priority=bool(values.get(names.is_priority)),
                stage=values.get(names.stage),
                notes=values.get(names.notes) if isinstance(values.get(names.notes), str) else None,
                distance_miles=values.get(names.distance),
                status=values.get(names.status) or "Active",
                created_at=record.created_time,
            )
        except ValidationError as e:
            raise NormalizationError(record.id, f"invalid match record: {e}") from e

    def buyers(self, records: Iterable[RawRecord]) -> NormalizationBatch[BuyerPreferences]:
        return self._normalize_all(records, self.to_buyer, "buyer")

    def properties(self, records: Iterable[RawRecord]) -> NormalizationBatch[PropertyAttributes]:
        return self._normalize_all(records, self.to_property, "property")

    def matches(self, records: Iterable[RawRecord]) -> NormalizationBatch[MatchRecord]:
        return self._normalize_all(records, self.to_match, "match")

    def _normalize_all(
        self, records: Iterable[RawRecord], convert: Callable[[RawRecord], T], kind: str
    ) -> NormalizationBatch[T]:
        """Convert every record, collecting failures instead of stopping."""
        items: List[T] = []
        failures: List[NormalizationFailure] = []

        for record in records:
            try:
                items.append(convert(record))
            except NormalizationError as e:
                failures.append(NormalizationFailure(record_id=record.id, reason=str(e)))
                self.logger.warning(
                    f"Skipping {kind} record {record.id}: {e}",
                    extra={
                        "event": f"normalization.{kind}.skipped",
                        "record_id": record.id,
                    },
                )

        self.logger.debug(
            f"Normalized {len(items)} {kind} records",
            extra={
                "event": f"normalization.{kind}.completed",
                "count": len(items),
                "skipped": len(failures),
            },
        )
        return NormalizationBatch(items=items, failures=failures)
