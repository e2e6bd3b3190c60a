"""Context propagation for structured logging.

Fields pushed here (``run_id``, ``opportunity_id``, ``survivor_id``...) are
merged into every log record emitted inside the scope by
``ContextualFilter``. Backed by ``contextvars`` so scopes are isolated per
thread and per task.
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, Dict, Iterator

_log_context: ContextVar[Dict[str, Any]] = ContextVar("fundmatch_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the active logging context."""
    return dict(_log_context.get())


def push_log_context(**fields: Any) -> Token:
    """Merge fields into the active context.

    Returns:
        Token for ``pop_log_context`` to restore the previous state
    """
    return _log_context.set({**_log_context.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the context captured by ``push_log_context``."""
    _log_context.reset(token)


def clear_log_context() -> None:
    """Drop all context fields (used by tests)."""
    _log_context.set({})


@contextmanager
def log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """Scope logging context fields to a ``with`` block.

    Example:
        >>> with log_context(run_id="abc123", opportunity_id=7):
        ...     logger.info("Scoring applicants")
    """
    token = push_log_context(**fields)
    try:
        yield get_log_context()
    finally:
        pop_log_context(token)
