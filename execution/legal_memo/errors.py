"""
Tagged errors shared by every service client.

Clients raise ServiceError at the point of failure with an ErrorKind so the
orchestrator can switch on a closed set of causes instead of inspecting
message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


# User-facing messages per kind
USER_MESSAGES = {
    ErrorKind.PERMISSION: (
        "Upload failed: Permission denied. Please check your storage bucket "
        "policy and credentials to ensure you have write access."
    ),
    ErrorKind.NOT_FOUND: "Upload failed: The file could not be found after upload.",
    ErrorKind.NETWORK: (
        "A network error occurred. Please check your internet connection and try again."
    ),
    ErrorKind.VALIDATION: "The request could not be processed because its data was invalid.",
    ErrorKind.CONFIGURATION: (
        "The service is not configured correctly. Check the server environment "
        "variables and restart the server."
    ),
    ErrorKind.UNKNOWN: "An unexpected error occurred during the analysis.",
}


class ServiceError(Exception):
    """Raised by service clients with a classified cause."""

    def __init__(
        self,
        kind: ErrorKind,
        detail: str,
        user_message: Optional[str] = None,
    ):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail
        self._user_message = user_message

    @property
    def user_message(self) -> str:
        return self._user_message or USER_MESSAGES[self.kind]

    def __repr__(self) -> str:
        return f"ServiceError(kind={self.kind.value!r}, detail={self.detail!r})"


def classify_error(exc: BaseException) -> ServiceError:
    """Turn any exception into a ServiceError.

    Tagged errors pass through unchanged. Anything else is matched on its
    message text, which is the best that can be done for exceptions raised
    outside the service clients.
    """
    if isinstance(exc, ServiceError):
        return exc

    message = str(exc)
    lowered = message.lower()
    if "storage/unauthorized" in lowered or "permission denied" in lowered:
        kind = ErrorKind.PERMISSION
    elif "storage/object-not-found" in lowered:
        kind = ErrorKind.NOT_FOUND
    elif "network" in lowered:
        kind = ErrorKind.NETWORK
    else:
        kind = ErrorKind.UNKNOWN
    return ServiceError(kind, message or type(exc).__name__)
