"""Local-only correction of the stored ``active`` flag.

The sweep never contacts the authority.  It recomputes ``active`` from each
stored expiry and rewrites only the records whose flag actually changed, so
untouched records keep their ``updated_at``.
"""

from __future__ import annotations

import logging

from page_token_sync.core.clock import Clock, default_clock, now_seconds
from page_token_sync.core.expiry import is_expired
from page_token_sync.core.locks import KeyedLocks, resource_key
from page_token_sync.core.store import RecordStore

_LOG = logging.getLogger("page-token-sync.core.sweeper")


class Sweeper:
    def __init__(
        self,
        store: RecordStore,
        *,
        locks: KeyedLocks | None = None,
        clock: Clock = default_clock,
    ) -> None:
        self.store = store
        self.locks = locks or KeyedLocks()
        self.clock = clock

    def sweep(self) -> int:
        """Return the number of records whose ``active`` flag was corrected."""
        now = now_seconds(self.clock)
        updated = 0
        for record in self.store.list_resources():
            if record.active == (not is_expired(record.credential_expiry, now)):
                continue
            with self.locks.hold(resource_key(record.resource_id)):
                # a concurrent renew or delete may have won the key first
                current = self.store.find_resource(record.resource_id)
                if current is None:
                    continue
                active = not is_expired(current.credential_expiry, now)
                if current.active == active:
                    continue
                self.store.upsert_resource(current.resource_id, {"active": active})
                updated += 1
        _LOG.info("Sweep corrected %d resource record(s)", updated)
        return updated
