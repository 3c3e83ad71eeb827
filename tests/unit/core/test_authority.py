"""Unit tests for GraphAuthorityClient.

All HTTP traffic is served by a stub session; no network access happens.
"""

from __future__ import annotations

import hmac
from hashlib import sha256
from types import SimpleNamespace
from typing import Any

import pytest
import requests

from page_token_sync.core.authority import (
    AuthorityFailure,
    GraphAuthorityClient,
    LifetimeResult,
    appsecret_proof,
)
from page_token_sync.core.errors import AuthorityUnavailableError, InvalidProofError

BASE = "https://graph.example.com/v19.0"


def _resp(status: int = 200, payload: Any = None, text: str | None = None) -> SimpleNamespace:
    resp = SimpleNamespace()
    resp.status_code = status
    resp.ok = status < 400
    resp.text = text if text is not None else str(payload)

    def _json() -> Any:
        if text is not None and payload is None:
            raise ValueError("not json")
        return payload

    resp.json = _json
    return resp


class _StubSession:
    """Maps full URLs to canned responses (or exceptions) and records calls."""

    def __init__(self, routes: dict[str, Any]) -> None:
        self.routes = routes
        self.calls: list[tuple[str, dict | None, Any]] = []

    def get(self, url: str, *, params: dict | None = None, timeout: Any = None):
        self.calls.append((url, params, timeout))
        result = self.routes[url]
        if isinstance(result, Exception):
            raise result
        return result


def _client(routes: dict[str, Any], **kwargs: Any) -> tuple[GraphAuthorityClient, _StubSession]:
    session = _StubSession(routes)
    return GraphAuthorityClient(BASE, session=session, **kwargs), session


# --------------------------------------------------------------------------- #
# exchange_proof                                                              #
# --------------------------------------------------------------------------- #
def test_exchange_proof_success() -> None:
    client, session = _client(
        {
            f"{BASE}/me": _resp(payload={"id": "42", "name": "Ada", "email": "ada@x.io"}),
            f"{BASE}/oauth/access_token_info": _resp(payload={"expires_in": 5_183_999}),
        }
    )
    identity = client.exchange_proof("short-lived").unwrap()

    assert identity.external_id == "42"
    assert identity.display_name == "Ada"
    assert identity.contact == "ada@x.io"
    assert identity.credential == "short-lived"
    assert identity.lifetime_seconds == 5_183_999
    me_params = session.calls[0][1]
    assert me_params == {"fields": "id,name,email", "access_token": "short-lived"}
    assert session.calls[0][2] == (5, 20)


def test_exchange_proof_rejected_is_invalid_proof() -> None:
    client, _ = _client(
        {f"{BASE}/me": _resp(400, {"error": {"code": 190}}, text='{"error":{}}')}
    )
    result = client.exchange_proof("bad")
    assert result.failure is AuthorityFailure.INVALID_PROOF
    with pytest.raises(InvalidProofError):
        result.unwrap()


def test_exchange_proof_network_error_is_unavailable() -> None:
    client, _ = _client({f"{BASE}/me": requests.ConnectionError("refused")})
    result = client.exchange_proof("tk")
    assert result.failure is AuthorityFailure.UNAVAILABLE
    with pytest.raises(AuthorityUnavailableError):
        result.unwrap()


# --------------------------------------------------------------------------- #
# list_owned_resources                                                        #
# --------------------------------------------------------------------------- #
def test_list_follows_paging_cursor() -> None:
    next_url = f"{BASE}/me/accounts?after=abc&access_token=user"
    client, session = _client(
        {
            f"{BASE}/me/accounts": _resp(
                payload={
                    "data": [{"id": "1", "name": "One", "access_token": "p1"}],
                    "paging": {"next": next_url},
                }
            ),
            next_url: _resp(
                payload={"data": [{"id": "2", "name": "Two", "access_token": "p2"}]}
            ),
        }
    )
    items = client.list_owned_resources("user").unwrap()

    assert [(i.resource_id, i.display_name, i.credential) for i in items] == [
        ("1", "One", "p1"),
        ("2", "Two", "p2"),
    ]
    # cursor URLs are fetched as-is
    assert session.calls[1] == (next_url, None, (5, 20))


def test_list_server_error_is_unavailable() -> None:
    client, _ = _client({f"{BASE}/me/accounts": _resp(503, None, text="oops")})
    result = client.list_owned_resources("user")
    assert result.failure is AuthorityFailure.UNAVAILABLE
    assert result.items == ()
    with pytest.raises(AuthorityUnavailableError):
        result.unwrap()


def test_list_entry_without_token_is_malformed() -> None:
    client, _ = _client(
        {f"{BASE}/me/accounts": _resp(payload={"data": [{"id": "1", "name": "One"}]})}
    )
    result = client.list_owned_resources("user")
    assert result.failure is AuthorityFailure.MALFORMED


def test_list_rejected_credential_surfaces_as_unavailable() -> None:
    client, _ = _client(
        {f"{BASE}/me/accounts": _resp(401, {"error": {}}, text="expired")}
    )
    result = client.list_owned_resources("user")
    assert result.failure is AuthorityFailure.REJECTED
    with pytest.raises(AuthorityUnavailableError) as info:
        result.unwrap()
    assert info.value.to_payload()["failure"] == "rejected"


# --------------------------------------------------------------------------- #
# inspect_lifetime                                                            #
# --------------------------------------------------------------------------- #
def test_inspect_lifetime_success() -> None:
    client, _ = _client(
        {f"{BASE}/oauth/access_token_info": _resp(payload={"expires_in": "3600"})}
    )
    assert client.inspect_lifetime("p1").unwrap() == 3_600


@pytest.mark.parametrize("payload", [{}, {"expires_in": "soon"}, {"expires_in": True}])
def test_inspect_lifetime_malformed(payload: dict) -> None:
    client, _ = _client({f"{BASE}/oauth/access_token_info": _resp(payload=payload)})
    result = client.inspect_lifetime("p1")
    assert result.failure is AuthorityFailure.MALFORMED
    with pytest.raises(AuthorityUnavailableError):
        result.unwrap()


def test_inspect_lifetime_timeout() -> None:
    client, _ = _client({f"{BASE}/oauth/access_token_info": requests.Timeout()})
    result = client.inspect_lifetime("p1")
    assert result.failure is AuthorityFailure.UNAVAILABLE
    assert "Timeout" in result.detail
    assert "p1" not in result.detail


def test_non_json_body_is_malformed() -> None:
    client, _ = _client(
        {f"{BASE}/oauth/access_token_info": _resp(200, None, text="<html>")}
    )
    assert client.inspect_lifetime("p1").failure is AuthorityFailure.MALFORMED


# --------------------------------------------------------------------------- #
# appsecret_proof                                                             #
# --------------------------------------------------------------------------- #
def test_appsecret_proof_attached_when_configured() -> None:
    client, session = _client(
        {f"{BASE}/oauth/access_token_info": _resp(payload={"expires_in": 60})},
        app_secret="s3cret",
    )
    client.inspect_lifetime("page-token")

    expected = hmac.new(b"s3cret", msg=b"page-token", digestmod=sha256).hexdigest()
    assert session.calls[0][1]["appsecret_proof"] == expected
    assert appsecret_proof("page-token", "s3cret") == expected


# --------------------------------------------------------------------------- #
# rate limiting and implausible lifetimes                                     #
# --------------------------------------------------------------------------- #
def test_exchange_proof_rate_limited_is_unavailable() -> None:
    client, _ = _client({f"{BASE}/me": _resp(429, None, text="slow down")})
    result = client.exchange_proof("p")

    assert result.failure is AuthorityFailure.UNAVAILABLE
    with pytest.raises(AuthorityUnavailableError) as info:
        result.unwrap()
    assert info.value.retryable is True


@pytest.mark.parametrize("code", [4, 17, 32, 613])
def test_exchange_proof_throttling_error_code_is_unavailable(code: int) -> None:
    client, _ = _client(
        {
            f"{BASE}/me": _resp(
                400,
                {"error": {"code": code, "message": "too many calls"}},
                text='{"error":{}}',
            )
        }
    )
    assert client.exchange_proof("p").failure is AuthorityFailure.UNAVAILABLE


def test_list_rate_limited_is_unavailable() -> None:
    client, _ = _client(
        {f"{BASE}/me/accounts": _resp(400, {"error": {"code": 32}}, text="{}")}
    )
    assert client.list_owned_resources("user").failure is AuthorityFailure.UNAVAILABLE


def test_inspect_lifetime_out_of_range_is_malformed() -> None:
    client, _ = _client(
        {f"{BASE}/oauth/access_token_info": _resp(payload={"expires_in": 10**12})}
    )
    result = client.inspect_lifetime("p1")

    assert result.failure is AuthorityFailure.MALFORMED
    with pytest.raises(AuthorityUnavailableError):
        result.unwrap()


def test_unwrap_rejects_out_of_range_lifetime_from_any_client() -> None:
    result = LifetimeResult(lifetime_seconds=10**12)
    with pytest.raises(AuthorityUnavailableError) as info:
        result.unwrap()
    assert info.value.to_payload()["failure"] == "malformed"
