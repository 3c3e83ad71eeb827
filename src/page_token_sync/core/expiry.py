"""Expiry evaluation shared by sync, renewal, sweep and view rendering.

There is exactly one rule: a credential is expired once the current time is
strictly past its expiry timestamp.  The boundary instant itself is still
live.
"""

from __future__ import annotations


def is_expired(expiry_timestamp: int, now: int) -> bool:
    """Return *True* when *now* is strictly later than *expiry_timestamp*."""
    return now > expiry_timestamp


def expiry_from_lifetime(lifetime_seconds: int, now: int) -> int:
    """Absolute expiry for a credential reported to live *lifetime_seconds* from *now*."""
    return now + lifetime_seconds


# Graph's longest-lived user tokens last 60 days; anything beyond ten years is
# garbage and would not render as a calendar date.
MAX_LIFETIME_SECONDS = 10 * 365 * 24 * 60 * 60


def lifetime_in_range(lifetime_seconds: int) -> bool:
    """Return *True* for lifetimes the store can hold and views can render."""
    return -MAX_LIFETIME_SECONDS <= lifetime_seconds <= MAX_LIFETIME_SECONDS
