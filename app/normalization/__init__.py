"""Normalization of backing-store records into typed domain models.

This module provides:
- RecordNormalizer: field-map driven conversion of RawRecords
- NormalizationBatch / NormalizationFailure: per-collection results
- NormalizationError: raised for records that cannot be represented
"""

from .models import NormalizationBatch, NormalizationFailure
from .service import NormalizationError, RecordNormalizer, first_present, linked_ids

__all__ = [
    "RecordNormalizer",
    "NormalizationBatch",
    "NormalizationFailure",
    "NormalizationError",
    "first_present",
    "linked_ids",
]
