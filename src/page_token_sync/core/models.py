"""Typed, immutable records used by the credential synchronization core."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from page_token_sync.core.expiry import is_expired


def _iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(frozen=True, slots=True)
class Principal:
    """An authenticated user of the external platform."""

    id: str
    external_id: str
    display_name: str
    credential: str
    credential_expiry: int
    created_at: int
    updated_at: int
    contact: str | None = None

    def to_view(self, now: int) -> "PrincipalView":
        return PrincipalView(
            id=self.id,
            external_id=self.external_id,
            display_name=self.display_name,
            contact=self.contact,
            credential_expiry=self.credential_expiry,
            is_expired=is_expired(self.credential_expiry, now),
        )


@dataclass(frozen=True, slots=True)
class Resource:
    """A page administered under a principal, with its own credential."""

    id: str
    resource_id: str
    principal_id: str
    display_name: str
    credential: str
    credential_expiry: int
    active: bool
    created_at: int
    updated_at: int

    def to_view(self, now: int) -> "ResourceView":
        """Render for callers; ``is_expired`` is judged at *now*, not read back."""
        return ResourceView(
            id=self.id,
            resource_id=self.resource_id,
            display_name=self.display_name,
            credential_expiry=self.credential_expiry,
            active=self.active,
            is_expired=is_expired(self.credential_expiry, now),
        )


@dataclass(frozen=True, slots=True)
class ResourceView:
    """Credential-free projection of a :class:`Resource`."""

    id: str
    resource_id: str
    display_name: str
    credential_expiry: int
    active: bool
    is_expired: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "resource_id": self.resource_id,
            "display_name": self.display_name,
            "credential_expiry": _iso(self.credential_expiry),
            "active": self.active,
            "is_expired": self.is_expired,
        }


@dataclass(frozen=True, slots=True)
class PrincipalView:
    """Credential-free projection of a :class:`Principal`."""

    id: str
    external_id: str
    display_name: str
    contact: str | None
    credential_expiry: int
    is_expired: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "display_name": self.display_name,
            "contact": self.contact,
            "credential_expiry": _iso(self.credential_expiry),
            "is_expired": self.is_expired,
        }


@dataclass(frozen=True, slots=True)
class AuthSession:
    """Login attempt handed over by the browser-side SDK.

    ``proof`` is the short-lived user credential the SDK obtained.
    ``claimed_external_id`` is the user id the SDK reported alongside it; when
    present it must match what the authority says the proof belongs to.
    """

    proof: str
    claimed_external_id: str | None = None
