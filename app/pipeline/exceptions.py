"""Errors raised by the single-record pipeline operations.

Batch runs report failures through their result objects instead.
"""


class PipelineError(Exception):
    """Base exception for pipeline operations."""

    pass


class MatchNotFoundError(PipelineError):
    """No match record with the requested id exists."""

    def __init__(self, match_id: str):
        self.match_id = match_id
        super().__init__(f"Match not found: {match_id}")


class InvalidStageError(PipelineError):
    """The requested stage name, or the move to it, is not allowed."""

    pass
