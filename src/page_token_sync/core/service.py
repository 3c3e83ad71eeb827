"""CredentialSyncService – façade over the synchronization core.

Handlers in ``page_token_sync.servers.routes`` and the CLI call the thin
methods below.  The service owns the one :class:`KeyedLocks` registry that
the synchronizer, the renewal coordinator, deletion and the sweeper share, so
every write to a given resource (or principal) is serialized no matter which
entry point issued it.

All methods are blocking; HTTP handlers run them in a worker thread.
"""

from __future__ import annotations

import logging

from page_token_sync.core.authority import AuthorityClient, GraphAuthorityClient
from page_token_sync.core.clock import Clock, default_clock, now_seconds
from page_token_sync.core.errors import InvalidProofError, PrincipalNotFoundError
from page_token_sync.core.expiry import expiry_from_lifetime
from page_token_sync.core.locks import KeyedLocks, principal_key, resource_key
from page_token_sync.core.models import AuthSession, PrincipalView, ResourceView
from page_token_sync.core.renewal import RenewalCoordinator
from page_token_sync.core.store import DiskRecordStore, RecordStore, default_store
from page_token_sync.core.sweeper import Sweeper
from page_token_sync.core.sync import Synchronizer
from page_token_sync.utils.environment import Settings
from page_token_sync.utils.logging import mask_sensitive

_LOG = logging.getLogger("page-token-sync.core.service")


class CredentialSyncService:
    """Application service orchestrating login, sync, renewal and sweeps."""

    def __init__(
        self,
        store: RecordStore | None = None,
        authority: AuthorityClient | None = None,
        *,
        clock: Clock = default_clock,
        sync_workers: int = 4,
    ) -> None:
        self.store = store or default_store()
        self.authority = authority or GraphAuthorityClient()
        self.clock = clock
        self.locks = KeyedLocks()
        self.synchronizer = Synchronizer(
            self.store,
            self.authority,
            locks=self.locks,
            clock=clock,
            max_workers=sync_workers,
        )
        self.renewals = RenewalCoordinator(
            self.store, self.authority, locks=self.locks, clock=clock
        )
        self.sweeper = Sweeper(self.store, locks=self.locks, clock=clock)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialSyncService":
        """Build the service wired to the on-disk store and the Graph API."""
        authority = GraphAuthorityClient(
            settings.graph_url,
            app_secret=settings.app_secret,
            timeout=(settings.connect_timeout, settings.read_timeout),
        )
        return cls(
            DiskRecordStore(settings.storage_dir),
            authority,
            sync_workers=settings.sync_workers,
        )

    # ------------------------------------------------------------------ #
    # Principals                                                         #
    # ------------------------------------------------------------------ #
    def login(self, session: AuthSession) -> PrincipalView:
        """Exchange the session's proof and store the principal.

        Raises
        ------
        InvalidProofError
            If the authority rejects the proof, or it belongs to someone other
            than ``session.claimed_external_id``.
        AuthorityUnavailableError
            If the authority could not be reached.
        """
        if not session.proof:
            raise InvalidProofError("Missing proof.")
        identity = self.authority.exchange_proof(session.proof).unwrap()
        if (
            session.claimed_external_id is not None
            and session.claimed_external_id != identity.external_id
        ):
            _LOG.warning("Proof does not belong to the claimed external id")
            raise InvalidProofError("Proof does not belong to the claimed user.")

        with self.locks.hold(principal_key(identity.external_id)):
            now = now_seconds(self.clock)
            principal = self.store.upsert_principal(
                identity.external_id,
                {
                    "display_name": identity.display_name,
                    "contact": identity.contact,
                    "credential": identity.credential,
                    "credential_expiry": expiry_from_lifetime(
                        identity.lifetime_seconds, now
                    ),
                },
            )
        _LOG.info(
            "Stored principal id=%s credential=%s (expires in %ss)",
            principal.id,
            mask_sensitive(identity.credential, 4),
            identity.lifetime_seconds,
        )
        return principal.to_view(now_seconds(self.clock))

    def get_principal(self, principal_id: str) -> PrincipalView:
        principal = self.store.find_principal(principal_id)
        if principal is None:
            raise PrincipalNotFoundError(principal_id)
        return principal.to_view(now_seconds(self.clock))

    # ------------------------------------------------------------------ #
    # Resources                                                          #
    # ------------------------------------------------------------------ #
    def sync_resources(self, principal_id: str) -> list[ResourceView]:
        return self.synchronizer.sync_resources(principal_id)

    def renew(self, resource_id: str, principal_id: str) -> ResourceView:
        return self.renewals.renew(resource_id, principal_id)

    def delete_resource(self, resource_id: str) -> bool:
        """Remove the stored record; absent records are not an error."""
        with self.locks.hold(resource_key(resource_id)):
            removed = self.store.delete_resource(resource_id)
        _LOG.debug("Delete resource=%s**** removed=%s", resource_id[:6], removed)
        return removed

    def sweep(self) -> int:
        return self.sweeper.sweep()
