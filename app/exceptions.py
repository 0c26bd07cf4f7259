"""Error taxonomy shared by the services and the HTTP layer.

Every service-level failure is a ``LibraryError`` subclass carrying the HTTP
status it maps to and a machine-readable ``code``. The exception handler in
``app.main`` turns them into JSON error bodies.
"""
from fastapi import status


class LibraryError(Exception):
    """Base class for expected, user-facing failures."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "LIBRARY_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LibraryError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(LibraryError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class ForbiddenError(LibraryError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class BadRequestError(LibraryError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"


class UnauthorizedError(LibraryError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


# Not found
class BookNotFoundError(NotFoundError):
    code = "BOOK_NOT_FOUND"


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"


class NoActiveLoanError(NotFoundError):
    code = "NO_ACTIVE_LOAN"


# Conflict
class BookUnavailableError(ConflictError):
    code = "BOOK_UNAVAILABLE"


class AlreadyBorrowedError(ConflictError):
    code = "ALREADY_BORROWED"


class DuplicateIsbnError(ConflictError):
    code = "DUPLICATE_ISBN"


class DuplicateEmailError(ConflictError):
    code = "DUPLICATE_EMAIL"


class ResourceInUseError(ConflictError):
    code = "RESOURCE_IN_USE"


class WriteConflictError(ConflictError):
    """A concurrent transaction changed the same rows; safe to retry."""
    code = "WRITE_CONFLICT"


# Forbidden
class NotBorrowerError(ForbiddenError):
    code = "NOT_BORROWER"


# Bad request
class AccountDisabledError(BadRequestError):
    code = "ACCOUNT_DISABLED"


class LoanLimitExceededError(BadRequestError):
    code = "LOAN_LIMIT_EXCEEDED"


class HasOverdueBooksError(BadRequestError):
    code = "HAS_OVERDUE_BOOKS"


class CirculationIntegrityError(RuntimeError):
    """Raised when a loan would break its own date ordering.

    Signals a programming fault rather than a user error; surfaces as 500.
    """
