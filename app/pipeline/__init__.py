"""Pipeline orchestration: scoring runs, match upserts, clear and stage moves."""

from .exceptions import InvalidStageError, MatchNotFoundError, PipelineError
from .models import ClearResult, MatchRunResult, RunErrorKind, RunMode, UpsertAction, UpsertOperation
from .runner import MatchingPipeline, build_pair_index, find_buyer, find_property

__all__ = [
    "MatchingPipeline",
    "MatchRunResult",
    "ClearResult",
    "RunMode",
    "RunErrorKind",
    "UpsertAction",
    "UpsertOperation",
    "build_pair_index",
    "find_buyer",
    "find_property",
    "PipelineError",
    "MatchNotFoundError",
    "InvalidStageError",
]
