"""
Gateway error taxonomy.

Every error that can end a request carries its HTTP status and a short error
code so the base service can render it through the standard ErrorResponse.
DetailFetchError is the exception: it is recovered per record and never
reaches a client.
"""

from typing import Any, Dict, Optional

from fastapi import status


class GatewayError(Exception):
    """Base class for errors rendered by the gateway"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "gateway_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthError(GatewayError):
    """Missing or malformed bearer token"""

    status_code = status.HTTP_401_UNAUTHORIZED
    error = "auth_error"


class ValidationError(GatewayError):
    """Malformed request filter"""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "validation_error"


class ConfigError(GatewayError):
    """Required server configuration is missing"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "config_error"


class UpstreamFetchError(GatewayError):
    """The upstream list call failed"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "upstream_error"

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        upstream_body: Any = None,
    ):
        details: Dict[str, Any] = {}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        if upstream_body is not None:
            details["upstream"] = upstream_body
        super().__init__(message, details or None)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body


class DetailFetchError(GatewayError):
    """A single record's detail call failed after all retries"""

    error = "detail_fetch_error"

    def __init__(self, record_id: Any, attempts: int, cause: Optional[BaseException] = None):
        super().__init__(
            f"Detail fetch for record {record_id} failed after {attempts} attempts",
            {"record_id": record_id, "attempts": attempts},
        )
        self.record_id = record_id
        self.attempts = attempts
        self.cause = cause
