"""Error taxonomy shared by the store, directory, relay and sessions."""

from typing import Any, Dict, Optional


class ChatRelayError(Exception):
    """Base exception for chatrelay."""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ChatRelayError):
    """Raised when input is rejected before any state change."""

    status_code = 422

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        details = {"fields": fields} if fields else {}
        super().__init__(message, "VALIDATION_ERROR", details)

    @property
    def fields(self) -> Dict[str, str]:
        return self.details.get("fields", {})


class NotFoundError(ChatRelayError):
    """Raised when a referenced conversation or message is absent."""

    status_code = 404

    def __init__(self, resource: str, identifier: str):
        message = f"{resource} with identifier '{identifier}' not found"
        super().__init__(message, "NOT_FOUND", {"resource": resource, "identifier": identifier})


class UpstreamError(ChatRelayError):
    """Raised when the AI completion provider fails or times out."""

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: str = "UPSTREAM_ERROR"):
        super().__init__(f"AI provider error: {message}", error_code, details)


class ProtocolError(UpstreamError):
    """Raised when the provider answers with an unexpected payload shape."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, error_code="PROTOCOL_ERROR")


class StorageError(ChatRelayError):
    """Raised when the persistence layer fails; the operation left no partial state."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORAGE_ERROR", details)


class SessionStateError(ChatRelayError):
    """Raised when a session operation is invalid in the current state."""

    status_code = 409

    def __init__(self, message: str, state: str):
        super().__init__(message, "SESSION_STATE_ERROR", {"state": state})
