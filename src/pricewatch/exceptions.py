"""Exception classes for the delivery engine."""

from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError


class PriceWatchError(Exception):
    """Base exception for PriceWatch."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(PriceWatchError):
    """Malformed alert or condition input."""

    def __init__(
        self,
        message: str = "Validation failed",
        field_errors: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message=message, details={"field_errors": field_errors or {}})
        self.field_errors = field_errors or {}

    @classmethod
    def from_pydantic(
        cls, exc: PydanticValidationError, message: str = "Validation failed"
    ) -> "ValidationError":
        """Build from a pydantic error, keyed by dotted field path."""
        field_errors = {}
        for error in exc.errors():
            field_path = ".".join(str(loc) for loc in error["loc"]) or "__root__"
            field_errors[field_path] = error["msg"]
        return cls(message=message, field_errors=field_errors)


class ChannelDeliveryError(PriceWatchError):
    """Transport failure or timeout while sending on one channel."""

    def __init__(self, channel: str, message: str):
        super().__init__(
            message=f"{channel} delivery failed: {message}",
            details={"channel": channel},
        )
        self.channel = channel
        self.reason = message


class AlertNotFoundError(PriceWatchError):
    """Requested alert or condition does not exist."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} with identifier '{identifier}' not found",
            details={"resource": resource, "identifier": identifier},
        )
        self.resource = resource
        self.identifier = identifier
