"""Exception types shared by the gateway core and its HTTP layer."""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for all gateway errors."""


class ValidationError(GatewayError):
    """Raised when caller input is malformed or missing."""


class AuthenticationError(GatewayError):
    """Raised when a presented API key is unknown, revoked, expired or not the caller's."""


class NotFoundError(GatewayError):
    """Raised when a resource is absent or not owned by the caller."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found")
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(GatewayError):
    """Raised when a write would overwrite a terminal state."""


class UpstreamError(GatewayError):
    """Raised when a call to the routing proxy fails.

    ``model`` is None for proxy admin calls that are not tied to a model.
    """

    def __init__(self, model: str | None, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.model = model
        self.detail = detail
        self.status_code = status_code


class InternalError(GatewayError):
    """Raised when storage fails after the upstream work is already done."""
