import logging
import sys

import structlog


def configure_logging(verbose: bool = False, json_logs: bool = False) -> None:
    """Configure structlog for the command line tools.

    Events go to stderr so that stdout only carries results.
    """
    level = logging.DEBUG if verbose else logging.INFO
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _discard(*args, **kwargs) -> None:
    return None


class _LibraryLogger:
    """Drops events while structlog is unconfigured, so library use stays silent."""

    def __init__(self, name: str):
        self._logger = structlog.get_logger(name)

    def __getattr__(self, method):
        if not structlog.is_configured():
            return _discard
        return getattr(self._logger, method)


def get_logger(name: str) -> _LibraryLogger:
    """Module logger for library code.

    Events are emitted once structlog is configured, by configure_logging or by
    the embedding application.
    """
    return _LibraryLogger(name)
