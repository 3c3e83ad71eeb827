"""Client for the external authority that issues page credentials.

Every call returns a *tagged* result object instead of raising, so callers
decide per call site whether a failure aborts the operation (a top-level
resource listing) or only skips one item (a per-resource lifetime query
inside a batch sync).  ``unwrap()`` converts a failed result into the
matching :mod:`page_token_sync.core.errors` exception.

The default implementation talks to the Facebook Graph API:

* ``GET /me?fields=id,name,email``         – who a proof belongs to
* ``GET /oauth/access_token_info``         – remaining lifetime (``expires_in``)
* ``GET /me/accounts``                     – pages administered by a user

SECURITY NOTE
-------------
Tokens travel only as query parameters to the authority.  They are never
included in result ``detail`` strings or log lines.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from hashlib import sha256
from typing import Any, Protocol, runtime_checkable

import requests

from page_token_sync.core.errors import AuthorityUnavailableError, InvalidProofError
from page_token_sync.core.expiry import lifetime_in_range
from page_token_sync.utils.environment import DEFAULT_GRAPH_URL

_LOG = logging.getLogger("page-token-sync.core.authority")
_MAX_PAGES = 50
# Graph error codes for app, user and page level rate limiting
_THROTTLING_CODES = frozenset({4, 17, 32, 613})


class AuthorityFailure(str, Enum):
    """Named failure variants shared by every result type."""

    INVALID_PROOF = "invalid_proof"
    UNAVAILABLE = "unavailable"
    REJECTED = "rejected"
    MALFORMED = "malformed"


# --------------------------------------------------------------------------- #
# Result types                                                                #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class PrincipalIdentity:
    external_id: str
    display_name: str
    contact: str | None
    credential: str
    lifetime_seconds: int


@dataclass(frozen=True, slots=True)
class RemoteResource:
    resource_id: str
    display_name: str
    credential: str


@dataclass(frozen=True, slots=True)
class _Result:
    failure: AuthorityFailure | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    def _raise(self) -> None:
        if self.failure is AuthorityFailure.INVALID_PROOF:
            raise InvalidProofError(self.detail or None)
        raise AuthorityUnavailableError(
            self.detail or None, failure=self.failure.value if self.failure else None
        )


def _checked_lifetime(lifetime_seconds: int) -> int:
    if not lifetime_in_range(lifetime_seconds):
        raise AuthorityUnavailableError(
            "Authority reported an implausible credential lifetime.",
            failure=AuthorityFailure.MALFORMED.value,
        )
    return lifetime_seconds


@dataclass(frozen=True, slots=True)
class ExchangeResult(_Result):
    identity: PrincipalIdentity | None = None

    def unwrap(self) -> PrincipalIdentity:
        if self.identity is None:
            self._raise()
        _checked_lifetime(self.identity.lifetime_seconds)  # type: ignore[union-attr]
        return self.identity  # type: ignore[return-value]


@dataclass(frozen=True, slots=True)
class ListResult(_Result):
    items: tuple[RemoteResource, ...] = ()

    def unwrap(self) -> tuple[RemoteResource, ...]:
        if not self.ok:
            self._raise()
        return self.items


@dataclass(frozen=True, slots=True)
class LifetimeResult(_Result):
    lifetime_seconds: int | None = None

    def unwrap(self) -> int:
        if self.lifetime_seconds is None:
            self._raise()
        return _checked_lifetime(self.lifetime_seconds)  # type: ignore[arg-type]


@runtime_checkable
class AuthorityClient(Protocol):
    """Contract the synchronization core relies on."""

    def exchange_proof(self, proof: str) -> ExchangeResult: ...
    def list_owned_resources(self, principal_credential: str) -> ListResult: ...
    def inspect_lifetime(self, credential: str) -> LifetimeResult: ...


# --------------------------------------------------------------------------- #
# Graph API implementation                                                    #
# --------------------------------------------------------------------------- #
class _CallFailed(Exception):
    def __init__(self, failure: AuthorityFailure, detail: str) -> None:
        super().__init__(detail)
        self.failure = failure
        self.detail = detail


def appsecret_proof(token: str, app_secret: str) -> str:
    """HMAC-SHA256 of *token* keyed with the app secret, as Graph expects."""
    return hmac.new(app_secret.encode(), msg=token.encode(), digestmod=sha256).hexdigest()


def _lifetime_from(payload: dict[str, Any]) -> int:
    raw = payload.get("expires_in")
    if isinstance(raw, bool) or raw is None:
        raise _CallFailed(AuthorityFailure.MALFORMED, "token info missing expires_in")
    try:
        lifetime = int(raw)
    except (TypeError, ValueError):
        raise _CallFailed(
            AuthorityFailure.MALFORMED, "token info has non-integer expires_in"
        ) from None
    if not lifetime_in_range(lifetime):
        raise _CallFailed(
            AuthorityFailure.MALFORMED,
            f"token info has out-of-range expires_in {lifetime}",
        )
    return lifetime


def _is_throttled(resp: Any) -> bool:
    if resp.status_code == 429:
        return True
    try:
        body = resp.json()
    except ValueError:
        return False
    error = body.get("error") if isinstance(body, dict) else None
    return isinstance(error, dict) and error.get("code") in _THROTTLING_CODES


class GraphAuthorityClient(AuthorityClient):
    """``requests``-based client for the Facebook Graph API."""

    def __init__(
        self,
        base_url: str = DEFAULT_GRAPH_URL,
        *,
        app_secret: str | None = None,
        timeout: tuple[float, float] = (5, 20),
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.app_secret = app_secret
        self.timeout = timeout
        self.session = session or requests.Session()

    # ---------------- transport ------------------------------------------ #
    def _get_json(
        self,
        url: str,
        *,
        token: str | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        query: dict[str, str] | None = None
        if token is not None:
            query = dict(params or {})
            query["access_token"] = token
            if self.app_secret:
                query["appsecret_proof"] = appsecret_proof(token, self.app_secret)
        try:
            resp = self.session.get(url, params=query, timeout=self.timeout)
        except requests.RequestException as exc:
            raise _CallFailed(
                AuthorityFailure.UNAVAILABLE, f"request failed: {type(exc).__name__}"
            ) from exc

        if resp.status_code >= 500:
            raise _CallFailed(
                AuthorityFailure.UNAVAILABLE, f"authority returned {resp.status_code}"
            )
        if not resp.ok and _is_throttled(resp):
            raise _CallFailed(
                AuthorityFailure.UNAVAILABLE,
                f"authority rate limited the request ({resp.status_code})",
            )
        if not resp.ok:
            raise _CallFailed(
                AuthorityFailure.REJECTED,
                f"authority returned {resp.status_code}: {resp.text[:200]}",
            )
        try:
            data = resp.json()
        except ValueError:
            raise _CallFailed(AuthorityFailure.MALFORMED, "response is not JSON") from None
        if not isinstance(data, dict):
            raise _CallFailed(AuthorityFailure.MALFORMED, "response is not an object")
        return data

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _token_lifetime(self, token: str) -> int:
        info = self._get_json(self._url("oauth/access_token_info"), token=token)
        return _lifetime_from(info)

    # ---------------- public API ----------------------------------------- #
    def exchange_proof(self, proof: str) -> ExchangeResult:
        try:
            me = self._get_json(
                self._url("me"), token=proof, params={"fields": "id,name,email"}
            )
            external_id = me.get("id")
            if not external_id:
                raise _CallFailed(AuthorityFailure.MALFORMED, "profile missing id")
            lifetime = self._token_lifetime(proof)
        except _CallFailed as exc:
            failure = exc.failure
            if failure is AuthorityFailure.REJECTED:
                failure = AuthorityFailure.INVALID_PROOF
            _LOG.info("Proof exchange failed: %s (%s)", failure.value, exc.detail)
            return ExchangeResult(failure=failure, detail=exc.detail)

        identity = PrincipalIdentity(
            external_id=str(external_id),
            display_name=str(me.get("name") or external_id),
            contact=me.get("email"),
            credential=proof,
            lifetime_seconds=lifetime,
        )
        return ExchangeResult(identity=identity)

    def list_owned_resources(self, principal_credential: str) -> ListResult:
        items: list[RemoteResource] = []
        try:
            page = self._get_json(self._url("me/accounts"), token=principal_credential)
            for _ in range(_MAX_PAGES):
                for entry in page.get("data") or []:
                    try:
                        items.append(
                            RemoteResource(
                                resource_id=str(entry["id"]),
                                display_name=str(entry.get("name") or entry["id"]),
                                credential=str(entry["access_token"]),
                            )
                        )
                    except (KeyError, TypeError):
                        raise _CallFailed(
                            AuthorityFailure.MALFORMED, "account entry missing id or token"
                        ) from None
                next_url = (page.get("paging") or {}).get("next")
                if not next_url:
                    break
                # cursor URLs already carry the credential
                page = self._get_json(next_url)
            else:
                _LOG.warning("Stopped following account pages after %d pages", _MAX_PAGES)
        except _CallFailed as exc:
            _LOG.info("Listing resources failed: %s (%s)", exc.failure.value, exc.detail)
            return ListResult(failure=exc.failure, detail=exc.detail)
        return ListResult(items=tuple(items))

    def inspect_lifetime(self, credential: str) -> LifetimeResult:
        try:
            return LifetimeResult(lifetime_seconds=self._token_lifetime(credential))
        except _CallFailed as exc:
            return LifetimeResult(failure=exc.failure, detail=exc.detail)
