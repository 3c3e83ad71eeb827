"""Credential lifecycle synchronization core.

This namespace hosts the **HTTP-agnostic** logic that keeps stored page
credentials in step with the external authority.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
expiry
    The single expiry rule shared by every component.
models
    Immutable records and credential-free views.
errors
    Exception taxonomy mapped to HTTP statuses by outer layers.
locks
    Per-key critical sections.
store
    Record store protocol and JSON-file implementation.
authority
    External authority client returning tagged results.
sync / renewal / sweeper
    Full reconciliation, single-resource renewal, local ``active`` correction.
service
    Façade wiring the above together.

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock  # noqa: F401
from .expiry import is_expired  # noqa: F401
from .models import AuthSession, Principal, PrincipalView, Resource, ResourceView  # noqa: F401
from .errors import (  # noqa: F401
    AuthorityUnavailableError,
    InvalidProofError,
    PageTokenError,
    PrincipalNotFoundError,
    ResourceNotFoundRemotelyError,
)
from .store import DiskRecordStore, RecordStore  # noqa: F401
from .authority import (  # noqa: F401
    AuthorityClient,
    AuthorityFailure,
    ExchangeResult,
    GraphAuthorityClient,
    LifetimeResult,
    ListResult,
)
from .service import CredentialSyncService  # noqa: F401

__all__ = [
    # clock / expiry
    "Clock",
    "default_clock",
    "is_expired",
    # models
    "AuthSession",
    "Principal",
    "PrincipalView",
    "Resource",
    "ResourceView",
    # errors
    "AuthorityUnavailableError",
    "InvalidProofError",
    "PageTokenError",
    "PrincipalNotFoundError",
    "ResourceNotFoundRemotelyError",
    # store
    "DiskRecordStore",
    "RecordStore",
    # authority
    "AuthorityClient",
    "AuthorityFailure",
    "ExchangeResult",
    "GraphAuthorityClient",
    "LifetimeResult",
    "ListResult",
    # service
    "CredentialSyncService",
]
