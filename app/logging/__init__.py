"""Structured logging for the matcher.

Modules obtain loggers through ``get_logger`` and tag records with an
``event`` extra, e.g. ``extra={"event": "matching.run.completed"}``.
"""

import logging
from typing import Optional, Union


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """Adapter injecting a ``component`` field, letting per-call extras win."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Return a logger, wrapped in a component adapter when ``component`` is given.

    Args:
        name: Logger name (usually ``__name__``)
        component: Component label added to every record (``scorer``,
            ``pipeline``, ``airtable`` ...)

    Example:
        >>> logger = get_logger(__name__, component="pipeline")
        >>> logger.info("Run started", extra={"event": "matching.run.started"})
    """
    logger = logging.getLogger(name)
    if component:
        return ComponentLoggerAdapter(logger, {"component": component})
    return logger
