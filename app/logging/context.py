"""Scoped logging context for matching runs.

Fields pushed here (run_id, mode, buyer_id, property_id, ...) are merged into
every log record emitted inside the scope by ``ContextualFilter``. Storage is
a ``ContextVar`` so worker threads started with ``contextvars.copy_context``
see the fields of the run that spawned them.
"""

from contextvars import ContextVar, Token
from typing import Any, Dict, Optional


# Fields of the innermost active scope
_run_context: ContextVar[Dict[str, Any]] = ContextVar("matcher_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Get the fields active in the current scope.

    Returns:
        A copy of the current context fields
    """
    return dict(_run_context.get())


def push_log_context(**fields: Any) -> Token:
    """Layer ``fields`` on top of the active context.

    Fields whose value is None are ignored so callers can pass optional
    identifiers without branching.

    Args:
        **fields: Key-value pairs to add to the logging context

    Returns:
        Token to hand back to ``pop_log_context``

    Example:
        >>> token = push_log_context(run_id="4f1c", mode="buyer")
        >>> # ... every log record here carries run_id and mode ...
        >>> pop_log_context(token)
    """
    merged = dict(_run_context.get())
    merged.update({key: value for key, value in fields.items() if value is not None})
    return _run_context.set(merged)


def pop_log_context(token: Token) -> None:
    """Restore the context that was active before ``push_log_context``.

    Args:
        token: Token returned from ``push_log_context``

    Example:
        >>> token = push_log_context(property_id="recPROP001")
        >>> pop_log_context(token)
        >>> get_log_context()
        {}
    """
    _run_context.reset(token)


def clear_log_context() -> None:
    """Drop every context field. Used by tests."""
    _run_context.set({})


class log_context:
    """Context manager pushing fields for the duration of a block.

    The previous context comes back on exit, also when the block raises.

    Example:
        >>> with log_context(run_id="4f1c", buyer_id="rec123"):
        ...     logger.info("Scoring buyer")  # includes run_id and buyer_id
    """

    def __init__(self, **fields: Any):
        """
        Args:
            **fields: Key-value pairs to add to the logging context
        """
        self.fields = fields
        self.token: Optional[Token] = None

    def __enter__(self) -> "log_context":
        self.token = push_log_context(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self.token is not None:
            pop_log_context(self.token)
            self.token = None
        return False
