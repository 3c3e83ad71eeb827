"""Full reconciliation of a principal's resources against the authority.

``Synchronizer.sync_resources`` pulls the current resource listing, asks the
authority how long each resource credential still lives, and upserts one
record per resource.  A failed listing aborts before anything is written; a
failed lifetime query, or a store lock that cannot be taken, only drops that
one resource from the batch.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from functools import partial

from page_token_sync.core.authority import AuthorityClient, RemoteResource
from page_token_sync.core.clock import Clock, default_clock, now_seconds
from page_token_sync.core.errors import PageTokenError, PrincipalNotFoundError
from page_token_sync.core.expiry import expiry_from_lifetime, is_expired
from page_token_sync.core.locks import KeyedLocks, resource_key
from page_token_sync.core.models import Principal, Resource, ResourceView
from page_token_sync.core.store import RecordStore
from page_token_sync.utils.logging import context_logger

_LOGGER_NAME = "page-token-sync.core.sync"


def upsert_remote_resource(
    store: RecordStore,
    *,
    principal_id: str,
    remote: RemoteResource,
    lifetime_seconds: int,
    clock: Clock = default_clock,
) -> Resource:
    """Write a freshly observed resource credential.

    Must be called while holding the resource's key in :class:`KeyedLocks`.
    """
    now = now_seconds(clock)
    expiry = expiry_from_lifetime(lifetime_seconds, now)
    return store.upsert_resource(
        remote.resource_id,
        {
            "principal_id": principal_id,
            "display_name": remote.display_name,
            "credential": remote.credential,
            "credential_expiry": expiry,
            "active": not is_expired(expiry, now),
        },
    )


def _unique(items: tuple[RemoteResource, ...]) -> list[RemoteResource]:
    seen: set[str] = set()
    unique: list[RemoteResource] = []
    for item in items:
        if item.resource_id in seen:
            continue
        seen.add(item.resource_id)
        unique.append(item)
    return unique


class Synchronizer:
    """Reconcile stored resource records with the authority's listing."""

    def __init__(
        self,
        store: RecordStore,
        authority: AuthorityClient,
        *,
        locks: KeyedLocks | None = None,
        clock: Clock = default_clock,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.authority = authority
        self.locks = locks or KeyedLocks()
        self.clock = clock
        self.max_workers = max(1, max_workers)

    def sync_resources(self, principal_id: str) -> list[ResourceView]:
        """Synchronize every resource the principal administers.

        Returns views in listing order.  Resources whose lifetime query failed
        are absent from the result and keep whatever record they had before.

        Raises
        ------
        PrincipalNotFoundError
            If no principal is stored under *principal_id*.
        AuthorityUnavailableError
            If the resource listing itself failed; nothing is written then.
        """
        log = context_logger(_LOGGER_NAME, operation="sync", principal_id=principal_id)
        principal = self.store.find_principal(principal_id)
        if principal is None:
            raise PrincipalNotFoundError(principal_id)

        listed = self.authority.list_owned_resources(principal.credential).unwrap()
        remote = _unique(listed)
        reconcile = partial(self._reconcile, principal)
        if self.max_workers == 1 or len(remote) <= 1:
            records = [reconcile(item) for item in remote]
        else:
            workers = min(self.max_workers, len(remote))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="page-sync"
            ) as pool:
                records = list(pool.map(reconcile, remote))

        now = now_seconds(self.clock)
        views = [record.to_view(now) for record in records if record is not None]
        log.info("Synchronized %d of %d resources", len(views), len(remote))
        return views

    def _reconcile(self, principal: Principal, remote: RemoteResource) -> Resource | None:
        log = context_logger(
            _LOGGER_NAME,
            operation="sync",
            principal_id=principal.id,
            resource_id=remote.resource_id,
        )
        with self.locks.hold(resource_key(remote.resource_id)):
            try:
                lifetime = self.authority.inspect_lifetime(remote.credential).unwrap()
            except PageTokenError as exc:
                log.warning("Skipping resource, lifetime query failed: %s", exc)
                return None
            try:
                return upsert_remote_resource(
                    self.store,
                    principal_id=principal.id,
                    remote=remote,
                    lifetime_seconds=lifetime,
                    clock=self.clock,
                )
            except TimeoutError as exc:
                log.warning("Skipping resource, store is busy: %s", exc)
                return None
