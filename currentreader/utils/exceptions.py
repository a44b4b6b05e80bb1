"""
CurrentReader Custom Exceptions
===============================

Exception hierarchy for feed ingestion and catalog reconciliation with error
codes, context information, and user-friendly error messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Catalog store errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_TRANSACTION = "D004"
    DATABASE_ERROR = "D006"

    # Feed ingestion errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_ACCESS_DENIED = "F005"
    FEED_NOT_FOUND = "F006"
    FEED_UPSTREAM_ERROR = "F007"

    # Content processing errors (P001-P099)
    CONTENT_INVALID = "P001"
    CONTENT_EXTRACTION_FAILED = "P003"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_OUT_OF_RANGE = "V003"

    # Resource management errors (R001-R099)
    RESOURCE_NOT_FOUND = "R002"
    RESOURCE_BUSY = "R004"


class CurrentReaderError(Exception):
    """Base exception for all CurrentReader errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize CurrentReader error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether retrying the operation may succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _forward(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(CurrentReaderError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_forward(kwargs, "context", "error_code", "user_message"),
        )


class ValidationError(CurrentReaderError):
    """Input validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for CurrentReaderError
        """
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedError(CurrentReaderError):
    """Feed ingestion errors, scoped to a single feed URL."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for CurrentReaderError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url
        self.feed_url = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Feed processing failed: {message}"
            ),
            recoverable=kwargs.get("recoverable", True),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedTimeoutError(FeedError):
    """The fetch exceeded its time bound. Retryable by the caller."""

    def __init__(self, message: str, feed_url: Optional[str] = None,
                 timeout: Optional[float] = None, **kwargs):
        context = kwargs.pop("context", {})
        if timeout is not None:
            context["timeout_seconds"] = timeout
        self.timeout = timeout
        kwargs.setdefault("error_code", ErrorCode.FEED_FETCH_TIMEOUT)
        kwargs.setdefault("user_message", "The feed took too long to respond")
        kwargs.setdefault("recoverable", True)
        super().__init__(message, feed_url=feed_url, context=context, **kwargs)


class FeedNetworkError(FeedError):
    """Connection-level failure before any HTTP status was received."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_NETWORK_ERROR)
        kwargs.setdefault("user_message", "Could not connect to the feed")
        kwargs.setdefault("recoverable", True)
        super().__init__(message, feed_url=feed_url, **kwargs)


class UpstreamError(FeedError):
    """Upstream answered with a status other than 2xx or 304.

    Server errors (5xx) and rate limiting (429) are retryable with backoff;
    every other 4xx is not.
    """

    def __init__(self, message: str, status_code: int,
                 feed_url: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        context["status_code"] = status_code
        self.status_code = status_code

        if status_code in (401, 403):
            default_code = ErrorCode.FEED_ACCESS_DENIED
        elif status_code in (404, 410):
            default_code = ErrorCode.FEED_NOT_FOUND
        else:
            default_code = ErrorCode.FEED_UPSTREAM_ERROR

        kwargs.setdefault("error_code", default_code)
        kwargs.setdefault("user_message", f"The feed server responded with HTTP {status_code}")
        kwargs.setdefault("recoverable", status_code >= 500 or status_code == 429)
        super().__init__(message, feed_url=feed_url, context=context, **kwargs)


class MalformedDocumentError(FeedError):
    """The fetched document could not be normalized. Not retryable."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_PARSE_ERROR)
        kwargs.setdefault("user_message", "The feed could not be read; it may be malformed")
        kwargs.setdefault("recoverable", False)
        super().__init__(message, feed_url=feed_url, **kwargs)


class StoreIOError(CurrentReaderError):
    """Catalog store failure. Always propagated, never swallowed."""

    def __init__(self, message: str, table: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if table:
            context["table"] = table

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_ERROR),
            context=context,
            user_message=kwargs.get("user_message", "Catalog storage operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_forward(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class NotFoundError(CurrentReaderError):
    """A feed or article id is not present in the catalog."""

    def __init__(self, message: str, resource: Optional[str] = None,
                 resource_id: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if resource:
            context["resource"] = resource
        if resource_id:
            context["resource_id"] = resource_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.RESOURCE_NOT_FOUND),
            context=context,
            user_message=kwargs.get("user_message", f"{resource or 'Item'} not found"),
            recoverable=False,
        )


class ReaderExtractionError(CurrentReaderError):
    """Readable-content extraction failed for an article URL."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if url:
            context["url"] = url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONTENT_EXTRACTION_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Reader view is unavailable"),
            recoverable=kwargs.get("recoverable", True),
        )


class RefreshInProgressError(CurrentReaderError):
    """Another refresh of the same feed is already in flight."""

    def __init__(self, feed_id: str, **kwargs):
        self.feed_id = feed_id
        super().__init__(
            message=f"Feed {feed_id} is already being refreshed",
            error_code=ErrorCode.RESOURCE_BUSY,
            context={"feed_id": feed_id},
            user_message=kwargs.get("user_message", "This feed is already refreshing"),
            recoverable=True,
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> CurrentReaderError:
    """Convert generic exceptions to CurrentReader exceptions with logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        CurrentReader exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, CurrentReaderError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, TimeoutError):
        error = FeedTimeoutError(
            f"Timeout during {operation}: {exception}",
            context=context,
        )

    elif isinstance(exception, ConnectionError):
        error = FeedNetworkError(
            f"Network error during {operation}: {exception}",
            context=context,
        )

    elif isinstance(exception, FileNotFoundError):
        error = ConfigurationError(
            message=f"Required file not found during {operation}: {exception}",
            error_code=ErrorCode.CONFIG_MISSING,
            context=context,
            user_message="Configuration file missing",
        )

    else:
        error = CurrentReaderError(
            message=f"Unexpected error during {operation}: {exception}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def is_retryable_error(exception: CurrentReaderError) -> bool:
    """Check if an error is worth retrying.

    Args:
        exception: CurrentReader exception to check

    Returns:
        True if the error is potentially retryable
    """
    if not exception.recoverable:
        return False

    retryable_codes = {
        ErrorCode.FEED_NETWORK_ERROR,
        ErrorCode.FEED_FETCH_TIMEOUT,
        ErrorCode.FEED_UPSTREAM_ERROR,
        ErrorCode.DATABASE_CONNECTION,
        ErrorCode.DATABASE_ERROR,
        ErrorCode.CONTENT_EXTRACTION_FAILED,
        ErrorCode.RESOURCE_BUSY,
    }

    return exception.error_code in retryable_codes


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, CurrentReaderError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
