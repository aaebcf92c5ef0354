"""
Structured error types for minorm.

Every failure surfaced by the mapping layer is an :class:`OrmError`. Errors
carry a category, free-form context metadata, and the chained driver
exception (``cause``) so that logs keep the root cause.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                          OrmError                            │
        │              (category, context, cause)                      │
        ├──────────────────────────────────────────────────────────────┤
        │  ConfigurationError        NoActiveTransactionError          │
        │  (CONFIG)                  (TRANSACTION)                     │
        │                                                              │
        │  DatabaseError             UnsupportedOperationError         │
        │  (DATABASE)                (UNSUPPORTED)                     │
        │                                                              │
        │  UncheckedDatabaseError                                      │
        │  (INTERNAL, wraps a DatabaseError across the repository      │
        │   dispatch boundary, unwrapped by the transaction scope)     │
        └──────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Let a raw driver exception (``sqlite3.Error``) escape
    ✅ DO: Wrap it in DatabaseError with ``cause=``

    ❌ DON'T: Catch UncheckedDatabaseError in application code
    ✅ DO: Catch DatabaseError around ``transaction(...)``

Tags:
    error-handling, exception-hierarchy, orm, minorm
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"
    DATABASE = "DATABASE"
    TRANSACTION = "TRANSACTION"
    UNSUPPORTED = "UNSUPPORTED"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


class OrmError(Exception):
    """
    Base exception for all minorm errors.

    Subclasses set ``default_category``. Context is a flat dict of extra
    fields (table, sql, method, ...) that ends up in structured logs via
    :meth:`to_dict`.

    Examples:
        >>> error = OrmError("boom").with_context(table="PERSON")
        >>> error.context["table"]
        'PERSON'
        >>> error.to_dict()["category"]
        'INTERNAL'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> OrmError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class ConfigurationError(OrmError):
    """Programming-time mistake: bad contract, bad entity shape, bad method.

    Never retried; fix the declaration.
    """

    default_category = ErrorCategory.CONFIG


class NoActiveTransactionError(OrmError):
    """A data-access operation ran with no connection bound to the caller."""

    default_category = ErrorCategory.TRANSACTION


class DatabaseError(OrmError):
    """Failure reported by the underlying database driver."""

    default_category = ErrorCategory.DATABASE


class UnsupportedOperationError(OrmError):
    """Identity, hash or string conversion invoked on a synthesized repository."""

    default_category = ErrorCategory.UNSUPPORTED


class UncheckedDatabaseError(OrmError):
    """A :class:`DatabaseError` in transit across the repository dispatch boundary.

    The transaction scope unwraps it back to :attr:`cause`; it must never
    reach the caller of ``transaction``.
    """

    default_category = ErrorCategory.INTERNAL

    def __init__(self, cause: DatabaseError):
        super().__init__(cause.message, context=cause.context, cause=cause)

    @property
    def database_error(self) -> DatabaseError:
        return self.cause  # type: ignore[return-value]


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, OrmError):
        return error.category
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "OrmError",
    "ConfigurationError",
    "NoActiveTransactionError",
    "DatabaseError",
    "UnsupportedOperationError",
    "UncheckedDatabaseError",
    "categorize_error",
]
