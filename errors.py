"""Error types and the best-effort call wrapper shared by every service.

Soft failures (an upstream that is down, a malformed payload) degrade to a
default value through ``best_effort``. Only missing configuration and total
web search exhaustion are allowed to reach the request boundary.
"""

import copy
import logging
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NotConfiguredError(RuntimeError):
    """A required API key or provider setting is missing."""


class SearchExhaustedError(RuntimeError):
    """Both the primary search engine and the heuristic fallback failed."""

    def __init__(self, primary_error: Exception, fallback_error: Exception):
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(
            f"All search methods failed. Primary: {primary_error}, Fallback: {fallback_error}"
        )


def best_effort(
    operation: Callable[..., T],
    *args: Any,
    default: Any = None,
    label: Optional[str] = None,
    reraise: tuple[type[BaseException], ...] = (),
    log: Optional[logging.Logger] = None,
    **kwargs: Any,
) -> T:
    """Run ``operation`` and return its result, or log and return ``default``.

    Mutable defaults (lists, dicts) are copied so callers never share state.
    Exception types listed in ``reraise`` propagate unchanged.
    """
    try:
        return operation(*args, **kwargs)
    except reraise:
        raise
    except Exception as e:
        name = label or getattr(operation, "__qualname__", repr(operation))
        (log or logger).warning("%s failed: %s", name, e)
        return copy.copy(default)
