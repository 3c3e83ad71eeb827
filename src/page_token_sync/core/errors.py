"""Exception types raised by the credential synchronization core.

Only lightweight, **data-carrying** exceptions live here so that web/CLI layers
can transform them into HTTP responses or user-friendly messages.  Each type
has a stable machine-readable ``kind`` and the HTTP status the service surface
maps it to.
"""

from __future__ import annotations

from typing import Any


class PageTokenError(RuntimeError):
    """Base class for every failure the service surface reports by kind."""

    kind: str = "page_token_error"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str | None = None, **context: Any) -> None:
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.context: dict[str, Any] = {
            k: v for k, v in context.items() if v is not None
        }

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {
            "success": False,
            "error": self.kind,
            "message": str(self),
            **self.context,
        }


class InvalidProofError(PageTokenError):
    """The login proof was rejected by the external authority."""

    kind = "invalid_proof"
    status_code = 401


class PrincipalNotFoundError(PageTokenError):
    """No principal is stored under the given local identity."""

    kind = "principal_not_found"
    status_code = 404

    def __init__(self, principal_id: str, message: str | None = None) -> None:
        super().__init__(
            message or "Principal not found.", principal_id=principal_id
        )
        self.principal_id = principal_id


class ResourceNotFoundRemotelyError(PageTokenError):
    """The resource is no longer listed for the principal; a re-sync is advised."""

    kind = "resource_not_found_remotely"
    status_code = 404

    def __init__(self, resource_id: str, message: str | None = None) -> None:
        super().__init__(
            message or "Resource not found in the principal's account.",
            resource_id=resource_id,
        )
        self.resource_id = resource_id


class AuthorityUnavailableError(PageTokenError):
    """The external authority could not be reached or answered unusably."""

    kind = "authority_unavailable"
    status_code = 502
    retryable = True
