"""Clock abstraction for deterministic expiry decisions.

This module defines a `Clock` protocol representing callables that return the
current UNIX timestamp as ``float``.  Every time-based decision inside the
core package (expiry computation, the ``active`` flag, ``created_at`` /
``updated_at`` stamps) MUST depend on an injected ``Clock`` instance rather
than calling ``time.time()`` or ``datetime.now()`` directly.

Example
-------
>>> from page_token_sync.core.clock import default_clock, now_seconds
>>> isinstance(default_clock(), float)
True
>>> isinstance(now_seconds(), int)
True
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable protocol returning *seconds* since the UNIX epoch."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    """Default implementation that delegates to ``time.time()``."""
    return time.time()


def now_seconds(clock: Clock = default_clock) -> int:
    """Return the clock reading truncated to whole seconds."""
    return int(clock())
