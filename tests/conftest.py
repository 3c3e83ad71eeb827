"""Shared fixtures: deterministic clock, stub authority, temp-dir store."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from page_token_sync.core.authority import (
    AuthorityFailure,
    ExchangeResult,
    LifetimeResult,
    ListResult,
    PrincipalIdentity,
    RemoteResource,
)
from page_token_sync.core.models import AuthSession, PrincipalView
from page_token_sync.core.service import CredentialSyncService
from page_token_sync.core.store import DiskRecordStore

START = 1_700_000_000
USER_PROOF = "user-proof"
USER_TOKEN = USER_PROOF


# --------------------------------------------------------------------------- #
# Integration gating                                                          #
# --------------------------------------------------------------------------- #
def pytest_addoption(parser):
    """Add integration option to pytest."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly requested.

    Tests marked with 'ci_safe' are always run because they stub all
    external calls and are safe for CI.
    """
    if not config.getoption("--integration", default=False):
        skip_integration = pytest.mark.skip(reason="Need --integration option to run")
        for item in items:
            if "integration" in item.keywords and "ci_safe" not in item.keywords:
                item.add_marker(skip_integration)


# --------------------------------------------------------------------------- #
# Test doubles                                                                #
# --------------------------------------------------------------------------- #
class FakeClock:
    """Clock whose reading only moves when a test says so."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAuthority:
    """In-memory stand-in for the Graph API.

    ``accounts`` maps a principal credential to the resources it administers,
    ``lifetimes`` maps any credential to its remaining lifetime.
    """

    def __init__(self) -> None:
        self.identities: dict[str, PrincipalIdentity] = {}
        self.accounts: dict[str, list[RemoteResource]] = {}
        self.lifetimes: dict[str, int] = {}
        self.list_failure: AuthorityFailure | None = None
        self.failing_credentials: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self._calls_lock = threading.Lock()

    def _record(self, name: str, arg: str) -> None:
        with self._calls_lock:
            self.calls.append((name, arg))

    def exchange_proof(self, proof: str) -> ExchangeResult:
        self._record("exchange", proof)
        identity = self.identities.get(proof)
        if identity is None:
            return ExchangeResult(
                failure=AuthorityFailure.INVALID_PROOF, detail="proof rejected"
            )
        return ExchangeResult(identity=identity)

    def list_owned_resources(self, principal_credential: str) -> ListResult:
        self._record("list", principal_credential)
        if self.list_failure is not None:
            return ListResult(failure=self.list_failure, detail="listing failed")
        return ListResult(items=tuple(self.accounts.get(principal_credential, [])))

    def inspect_lifetime(self, credential: str) -> LifetimeResult:
        self._record("inspect", credential)
        if credential in self.failing_credentials:
            return LifetimeResult(
                failure=AuthorityFailure.UNAVAILABLE, detail="request failed: Timeout"
            )
        return LifetimeResult(lifetime_seconds=self.lifetimes.get(credential, 3_600))

    def calls_named(self, name: str) -> list[str]:
        return [arg for call, arg in self.calls if call == name]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(tmp_path: Path, clock: FakeClock) -> DiskRecordStore:
    """Return a temporary DiskRecordStore rooted at *tmp_path*."""
    return DiskRecordStore(base_dir=tmp_path, clock=clock)


@pytest.fixture()
def authority() -> FakeAuthority:
    fake = FakeAuthority()
    fake.identities[USER_PROOF] = PrincipalIdentity(
        external_id="fb-user-1",
        display_name="Ada Lovelace",
        contact="ada@example.com",
        credential=USER_TOKEN,
        lifetime_seconds=5_184_000,
    )
    return fake


@pytest.fixture()
def service(
    store: DiskRecordStore, authority: FakeAuthority, clock: FakeClock
) -> CredentialSyncService:
    return CredentialSyncService(store, authority, clock=clock, sync_workers=4)


@pytest.fixture()
def principal(service: CredentialSyncService) -> PrincipalView:
    """A principal that logged in with ``USER_PROOF``."""
    return service.login(AuthSession(proof=USER_PROOF))


def page(
    resource_id: str, name: str | None = None, token: str | None = None
) -> RemoteResource:
    return RemoteResource(
        resource_id=resource_id,
        display_name=name or f"Page {resource_id}",
        credential=token or f"token-{resource_id}",
    )


@pytest.fixture()
def make_page():
    """Factory for ``RemoteResource`` entries as the authority lists them."""
    return page


@pytest.fixture()
def user_token() -> str:
    """Credential the ``principal`` fixture lists its resources with."""
    return USER_TOKEN
