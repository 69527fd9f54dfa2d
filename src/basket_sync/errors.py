"""Exception hierarchy and user-facing error messages."""


class BasketSyncError(Exception):
    """Base class for all Basket Sync errors."""


class ApiError(BasketSyncError):
    """A request failed, either in transit or because the server rejected it.

    Attributes:
        status: HTTP status code, or None if no response was received
        code: Machine-readable error code from the server envelope
        is_network_error: True if the request never reached the server
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        code: str = "UNKNOWN_ERROR",
        is_network_error: bool = False,
    ):
        self.status = status
        self.code = code
        self.is_network_error = is_network_error
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)

    @property
    def is_session_expired(self) -> bool:
        """Whether the caller must re-authenticate."""
        return self.code == "SESSION_EXPIRED"

    @property
    def is_permanent(self) -> bool:
        """Whether retrying cannot fix this failure (4xx except 408/429)."""
        return is_permanent_failure(self)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({str(self)!r}, status={self.status}, "
            f"code={self.code!r}, is_network_error={self.is_network_error})"
        )


class EntityNotFoundError(ApiError):
    """Raised when a mutation targets an entity that does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} with id '{entity_id}' not found", status=404, code="NOT_FOUND"
        )


def is_permanent_failure(error: BaseException) -> bool:
    """Check if an error represents a rejection that must not be retried."""
    status = getattr(error, "status", None)
    if isinstance(status, int) and 400 <= status < 500:
        return status not in (408, 429)
    return False


def should_queue_error(error: BaseException) -> bool:
    """Check if a failed mutation should be queued for later replay."""
    return isinstance(error, ApiError) and error.is_network_error


def format_error_message(error: BaseException | None, operation: str | None = None) -> str:
    """Format an error for user-friendly display.

    Distinguishes between network errors, session expiry, rate limiting,
    server errors and validation errors.
    """
    if isinstance(error, ApiError):
        if error.is_network_error:
            if error.code == "TIMEOUT":
                return "Request timed out. Please check your connection and try again."
            return "Network error. Please check your connection."

        if error.is_session_expired or error.status == 401:
            return "Session expired. Please log in again."

        if error.status == 429:
            return "Too many requests. Please wait a moment and try again."

        if error.status is not None and error.status >= 500:
            return f"Server error. Please try again later. ({error.code or error.status})"

        return error.message

    if error is not None and str(error):
        return str(error)

    return f"Failed to {operation}" if operation else "An unexpected error occurred"
