"""Error handling framework for the identifier.

Provides custom exception types and decorators for standardized error handling
across the pipeline.
"""

import logging
from functools import wraps

logger = logging.getLogger(__name__)


# Custom Exception Hierarchy
class VideoIdentifierError(Exception):
    """Base exception for all identifier-specific errors."""

    #: Structural errors abort the whole run; retrying cannot fix them.
    structural = False


class SubtitleError(VideoIdentifierError):
    """Subtitle discovery or parsing failed.

    Raised when no usable subtitle track exists or a file cannot be decoded.
    """


class ReasoningServiceError(VideoIdentifierError):
    """Reasoning service call failed after all retries.

    Transient by nature: callers degrade to a low-confidence result.
    """


class StorageError(VideoIdentifierError):
    """Writing to the disc directory failed.

    Raised when the identification record, a marker file or a dialogue file
    cannot be written.
    """

    structural = True


class ConfigurationError(VideoIdentifierError):
    """Configuration validation failed.

    Raised when required settings are missing or malformed.
    """

    structural = True


class DatabaseError(VideoIdentifierError):
    """Title store query failed.

    Raised when the relational database is unreachable or a query errors.
    """

    structural = True


# Error Handling Decorator
def handle_errors(
    *,
    error_types: tuple[type[Exception], ...],
    default_message: str,
    log_level: str = "error",
    reraise: bool = True,
    wrap_as: type[VideoIdentifierError] | None = None,
):
    """Decorator for standardized error handling.

    Args:
        error_types: Tuple of exception types to catch
        default_message: Message to log when error occurs
        log_level: Logging level (error, warning, info, debug)
        reraise: Whether to re-raise the exception after logging
        wrap_as: Optionally wrap the caught exception in a VideoIdentifierError subclass

    Example:
        @handle_errors(
            error_types=(SQLAlchemyError,),
            default_message="Title search failed",
            wrap_as=DatabaseError
        )
        def search_titles():
            # ... query ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except error_types as e:
                log_func = getattr(logger, log_level)
                log_func(
                    f"{default_message}: {e}",
                    exc_info=(log_level == "error"),
                )
                if wrap_as:
                    raise wrap_as(f"{default_message}: {e}") from e
                if reraise:
                    raise

        return wrapper

    return decorator


# Context Manager for Error Handling
class error_context:
    """Context manager for error handling in specific code blocks.

    Example:
        with error_context(
            error_types=(OperationalError,),
            default_message="Cannot reach title store",
            wrap_as=DatabaseError
        ):
            # ... code that might raise errors ...
    """

    def __init__(
        self,
        *,
        error_types: tuple[type[Exception], ...],
        default_message: str,
        log_level: str = "error",
        wrap_as: type[VideoIdentifierError] | None = None,
    ):
        self.error_types = error_types
        self.default_message = default_message
        self.log_level = log_level
        self.wrap_as = wrap_as

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and issubclass(exc_type, self.error_types):
            log_func = getattr(logger, self.log_level)
            log_func(
                f"{self.default_message}: {exc_val}",
                exc_info=(self.log_level == "error"),
            )
            if self.wrap_as:
                raise self.wrap_as(f"{self.default_message}: {exc_val}") from exc_val
            return False  # Re-raise the original exception
        return False  # Don't suppress other exceptions
