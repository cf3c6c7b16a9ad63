"""
Secure exception handling to prevent information leakage.

SECURITY PRINCIPLE: Don't expose internal details to users.
Use generic error messages externally, detailed logging internally.

Two families live here:
- CasebookError and its subclasses: domain errors raised by services. Each
  carries a stable `code`, the HTTP status it maps to and a caller-safe
  message. The original cause (driver error, SQL) is chained, never shown.
- BusinessError: factories for the HTTPExceptions raised directly by the
  API layer (authentication).

casebook.main registers the handler that renders CasebookError as
{"detail": ..., "code": ...}.
"""
from typing import Optional

from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


class CasebookError(Exception):
    """Base class for domain errors surfaced to API callers."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An internal error occurred. Please try again later."

    def __init__(self, message: Optional[str] = None, *, cause: Optional[BaseException] = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def public_message(self) -> str:
        """Message safe to return to the caller. 5xx details stay in the logs."""
        if self.status_code >= 500:
            return self.default_message
        return self.message


# ---------------------------------------------------------------------------
# Report builder
# ---------------------------------------------------------------------------

class UnknownDataSourceError(CasebookError):
    code = "UNKNOWN_DATA_SOURCE"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Unknown data source"


class InvalidQueryError(CasebookError):
    code = "INVALID_QUERY"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid report query definition"


class InvalidFilterError(InvalidQueryError):
    code = "INVALID_FILTER"
    default_message = "Invalid report filter"


class UnknownFieldError(InvalidQueryError):
    code = "UNKNOWN_FIELD"
    default_message = "Unknown report field"


class QueryExecutionError(CasebookError):
    code = "QUERY_EXECUTION_ERROR"
    default_message = "Failed to execute custom report"


class QueryTimeoutError(CasebookError):
    code = "QUERY_TIMEOUT"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "Report query timed out"

    @property
    def public_message(self) -> str:
        return self.message


class UnsupportedFormatError(CasebookError):
    code = "UNSUPPORTED_FORMAT"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Unsupported export format"


# ---------------------------------------------------------------------------
# Ownership / lookups
# ---------------------------------------------------------------------------

class AccessDeniedError(CasebookError):
    code = "ACCESS_DENIED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class ResourceNotFoundError(CasebookError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class TemplateNotFoundError(ResourceNotFoundError):
    code = "REPORT_TEMPLATE_NOT_FOUND"
    default_message = "Report template not found"


class ClientNotFoundError(ResourceNotFoundError):
    code = "CLIENT_NOT_FOUND"
    default_message = "Client not found"


class InvoiceNotFoundError(ResourceNotFoundError):
    code = "INVOICE_NOT_FOUND"
    default_message = "Invoice not found"


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------

class InvalidTaxInputError(CasebookError):
    code = "INVALID_TAX_INPUT"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid tax calculation input"


class BusinessError:
    """HTTP exceptions with safe (non-leaky) messages."""

    @staticmethod
    def unauthorized(reason: str = "") -> HTTPException:
        """
        Generic 401 for all authentication failures.

        SECURITY: Same response for missing token, bad signature, unknown user.
        """
        logger.warning(f"Unauthorized access attempt: {reason}")
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )
