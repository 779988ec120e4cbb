# errors.py - Service error taxonomy and result pairs
import functools
import logging
from typing import Any, NamedTuple, Optional

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for failures reported by the access layer"""

    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class AuthenticationRequired(ServiceError):
    status_code = 401

    def __init__(self, message: str = "User not authenticated", cause=None):
        super().__init__(message, cause)


class PermissionDenied(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class ValidationFailed(ServiceError):
    status_code = 422


class InvalidTransition(ValidationFailed):
    def __init__(self, current: str, new: str):
        super().__init__(f"Cannot move issue from '{current}' to '{new}'")
        self.current = current
        self.new = new


class Conflict(ServiceError):
    """The row changed between the read and the guarded write"""

    status_code = 409


class BackendFailure(ServiceError):
    """Opaque passthrough of a Supabase error"""

    status_code = 502


class ServiceResult(NamedTuple):
    data: Any = None
    error: Optional[ServiceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def success(data: Any = None) -> ServiceResult:
    return ServiceResult(data=data, error=None)


def failure(error: ServiceError) -> ServiceResult:
    return ServiceResult(data=None, error=error)


def unwrap(result: ServiceResult) -> Any:
    """Data of a result, raising its error instead"""
    if result.error is not None:
        raise result.error
    return result.data


def service_operation(action: str):
    """
    Turn a function that returns data or raises into one returning ServiceResult.

    ServiceErrors pass through as the error half; anything else raised by the
    Supabase client is logged and wrapped in BackendFailure.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> ServiceResult:
            try:
                return success(func(*args, **kwargs))
            except ServiceError as e:
                logger.warning(f"{action} failed: {e.message}")
                return failure(e)
            except Exception as e:
                logger.error(f"Error {action}: {e}")
                return failure(BackendFailure(str(e), cause=e))
        return wrapper
    return decorator
