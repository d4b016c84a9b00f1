"""
Custom exceptions for the Conduit connector framework.

Every error carries a stable ``kind`` string so callers (the HTTP API, the CLI,
an orchestration layer) can discriminate failures without parsing messages.
Messages never include credential values.
"""

from typing import Any, Dict, Optional


class ConduitException(Exception):
    """Base exception for all application-specific errors."""

    kind = "ConduitError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Render the error as a JSON-friendly dictionary."""
        return {"kind": self.kind, "message": self.message}


class ConfigurationError(ConduitException):
    """Invalid service descriptor or settings."""

    kind = "ConfigurationError"


class ServiceNotFound(ConduitException):
    """No service is registered under the requested id."""

    kind = "ServiceNotFound"

    def __init__(self, service_id: str):
        super().__init__(f"Service '{service_id}' not found")
        self.service_id = service_id


class DuplicateService(ConduitException):
    """A service with the same id is already registered."""

    kind = "DuplicateService"

    def __init__(self, service_id: str):
        super().__init__(f"Service '{service_id}' is already registered")
        self.service_id = service_id


class ConnectionNotFound(ConduitException):
    """The connection id is unknown or was disconnected."""

    kind = "ConnectionNotFound"

    def __init__(self, connection_id: str):
        super().__init__(f"Connection '{connection_id}' not found")
        self.connection_id = connection_id


class EndpointNotFound(ConduitException):
    """The endpoint id is not declared on the connection's service."""

    kind = "EndpointNotFound"

    def __init__(self, service_id: str, endpoint_id: str):
        super().__init__(f"Endpoint '{endpoint_id}' not found in service '{service_id}'")
        self.service_id = service_id
        self.endpoint_id = endpoint_id


class AuthFailure(ConduitException):
    """Credentials were rejected, or a token exchange/refresh failed.

    ``reason`` is provider specific and must never contain the credential itself.
    """

    kind = "AuthFailure"

    def __init__(self, provider: str, reason: str):
        super().__init__(f"Authentication with provider '{provider}' failed: {reason}")
        self.provider = provider
        self.reason = reason


class MissingPathParameter(ConduitException):
    """A ``{name}`` placeholder in the endpoint path was not supplied."""

    kind = "MissingPathParameter"

    def __init__(self, name: str):
        super().__init__(f"Missing path parameter '{name}'")
        self.name = name


class UpstreamTimeout(ConduitException):
    """The upstream service could not be reached after all retry attempts."""

    kind = "UpstreamTimeout"

    def __init__(self, attempts: int, last_error: Optional[str] = None):
        message = f"Upstream call failed after {attempts} attempt(s)"
        if last_error:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class UpstreamError(ConduitException):
    """The upstream service answered with a non-2xx status.

    ``body`` holds at most ``max_error_body`` characters of the decoded response;
    ``truncated`` tells whether anything was cut off.
    """

    kind = "UpstreamError"

    def __init__(self, status_code: int, body: str, truncated: bool = False):
        super().__init__(f"Upstream returned HTTP {status_code}")
        self.status_code = status_code
        self.body = body
        self.truncated = truncated

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"statusCode": self.status_code, "body": self.body, "truncated": self.truncated})
        return data


class TransformError(ConduitException):
    """A successful upstream response could not be normalized."""

    kind = "TransformError"

    def __init__(self, endpoint_id: str, byte_length: int, reason: str):
        super().__init__(
            f"Failed to transform response of endpoint '{endpoint_id}' "
            f"({byte_length} bytes): {reason}"
        )
        self.endpoint_id = endpoint_id
        self.byte_length = byte_length
        self.reason = reason


class InvocationCancelled(ConduitException):
    """The caller abandoned the invocation before it completed."""

    kind = "InvocationCancelled"

    def __init__(self, endpoint_id: str):
        super().__init__(f"Invocation of endpoint '{endpoint_id}' was cancelled")
        self.endpoint_id = endpoint_id


class PersistenceError(ConduitException):
    """A service descriptor could not be written to the repository."""

    kind = "PersistenceError"
