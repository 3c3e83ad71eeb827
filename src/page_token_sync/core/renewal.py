"""Single-resource credential renewal.

A renewal re-lists the principal's resources to obtain a fresh credential,
asks the authority for its lifetime and upserts the record.  The whole
sequence holds the resource's key, so renewals of one resource apply in the
order they acquire it and an earlier call can never overwrite a later one.
"""

from __future__ import annotations

from page_token_sync.core.authority import AuthorityClient
from page_token_sync.core.clock import Clock, default_clock, now_seconds
from page_token_sync.core.errors import (
    PrincipalNotFoundError,
    ResourceNotFoundRemotelyError,
)
from page_token_sync.core.locks import KeyedLocks, resource_key
from page_token_sync.core.models import ResourceView
from page_token_sync.core.store import RecordStore
from page_token_sync.core.sync import upsert_remote_resource
from page_token_sync.utils.logging import context_logger


class RenewalCoordinator:
    """Serialize renewals per resource identifier."""

    def __init__(
        self,
        store: RecordStore,
        authority: AuthorityClient,
        *,
        locks: KeyedLocks | None = None,
        clock: Clock = default_clock,
    ) -> None:
        self.store = store
        self.authority = authority
        self.locks = locks or KeyedLocks()
        self.clock = clock

    def renew(self, resource_id: str, principal_id: str) -> ResourceView:
        """Re-issue the credential of *resource_id* under *principal_id*.

        Raises
        ------
        PrincipalNotFoundError
            If no principal is stored under *principal_id*.
        ResourceNotFoundRemotelyError
            If the authority no longer lists *resource_id* for the principal.
        AuthorityUnavailableError
            If the listing or the lifetime query failed.
        """
        log = context_logger(
            "page-token-sync.core.renewal",
            operation="renew",
            principal_id=principal_id,
            resource_id=resource_id,
        )
        principal = self.store.find_principal(principal_id)
        if principal is None:
            raise PrincipalNotFoundError(principal_id)

        with self.locks.hold(resource_key(resource_id)):
            listed = self.authority.list_owned_resources(principal.credential).unwrap()
            remote = next((r for r in listed if r.resource_id == resource_id), None)
            if remote is None:
                log.info("Resource is no longer listed by the authority")
                raise ResourceNotFoundRemotelyError(resource_id)

            lifetime = self.authority.inspect_lifetime(remote.credential).unwrap()
            record = upsert_remote_resource(
                self.store,
                principal_id=principal.id,
                remote=remote,
                lifetime_seconds=lifetime,
                clock=self.clock,
            )

        log.info("Renewed resource credential (expires in %ss)", lifetime)
        return record.to_view(now_seconds(self.clock))
