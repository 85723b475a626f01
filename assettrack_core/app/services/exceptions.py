"""
Error kinds raised by the service layer.

Four families, each mapped to one HTTP status by the routers:

- ValidationError       malformed or missing input, carries (field, message) pairs
- NotFoundError         referenced asset/employee/assignment/user does not exist
- ConflictError         duplicate identifier or a state-incompatible operation
- DomainInvariantError  the change would break a state invariant

Every concrete kind has a stable ``code`` so callers can tell them apart
without string matching on messages.
"""

from typing import List, Optional, Tuple


class AssetTrackError(Exception):
    """Base exception for asset tracking operations"""
    code = "AssetTrackError"
    default_message = "Operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationError(AssetTrackError):
    code = "ValidationError"
    default_message = "Validation error"

    def __init__(self, errors: List[Tuple[str, str]], message: Optional[str] = None):
        self.errors = list(errors)
        if message is None:
            message = "; ".join(f"{field}: {msg}" for field, msg in self.errors) or self.default_message
        super().__init__(message)

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([(field, message)], message=message)


class NotFoundError(AssetTrackError):
    code = "NotFound"
    default_message = "Not found"


class ConflictError(AssetTrackError):
    code = "Conflict"
    default_message = "Conflict"


class DomainInvariantError(AssetTrackError):
    code = "DomainInvariant"
    default_message = "Invariant violated"


# -- not found ---------------------------------------------------------------

class AssetNotFound(NotFoundError):
    code = "AssetNotFound"
    default_message = "Asset not found"


class EmployeeNotFound(NotFoundError):
    code = "EmployeeNotFound"
    default_message = "Employee not found"


class AssignmentNotFound(NotFoundError):
    code = "AssignmentNotFound"
    default_message = "Assignment not found"


class UserNotFound(NotFoundError):
    code = "UserNotFound"
    default_message = "User not found"


# -- conflicts ---------------------------------------------------------------

class DuplicateId(ConflictError):
    code = "DuplicateId"
    default_message = "Identifier already exists"


class DuplicateSerial(ConflictError):
    code = "DuplicateSerial"
    default_message = "Serial number already exists"


class DuplicateEmail(ConflictError):
    code = "DuplicateEmail"
    default_message = "Email is already in use"


class AssetNotAvailable(ConflictError):
    code = "AssetNotAvailable"
    default_message = "Asset is not available for assignment"


class AlreadyAssigned(AssetNotAvailable):
    """The asset already has an Active assignment (it is therefore not available either)."""
    code = "AlreadyAssigned"
    default_message = "Asset is already assigned"


class AssetStatusLocked(ConflictError):
    code = "AssetStatusLocked"
    default_message = "Asset status is controlled by its assignment"


class EmployeeNotAssignable(ConflictError):
    code = "EmployeeNotAssignable"
    default_message = "Relieved employees cannot receive assets"


class AlreadyReturned(ConflictError):
    code = "AlreadyReturned"
    default_message = "Assignment is already returned"


class NotActive(ConflictError):
    code = "NotActive"
    default_message = "Assignment is not active"


class CannotUpdateActive(ConflictError):
    code = "CannotUpdateActive"
    default_message = "Can only update returned accessories for returned assignments"


class HasActiveAssets(ConflictError):
    code = "HasActiveAssets"
    default_message = "Employee still holds assets"


# -- invariants --------------------------------------------------------------

class ExitDateRequired(DomainInvariantError):
    code = "ExitDateRequired"
    default_message = "Exit date is required when status is Relieved"


class InvalidCompany(DomainInvariantError):
    code = "InvalidCompany"
    default_message = "Company is not recognized for employee ID generation"


# -- authentication ----------------------------------------------------------

class AuthenticationError(AssetTrackError):
    code = "AuthenticationError"
    default_message = "Invalid credentials"


def duplicate_from_integrity_error(exc: Exception) -> AssetTrackError:
    """
    Translate a unique-constraint failure from the database into a domain
    error. The pre-checks in the services cover the common case; this is the
    path taken when two writers race past them.
    """
    detail = str(getattr(exc, "orig", exc)).lower()
    if "uq_assignment_active_asset" in detail or "assignments.asset_id" in detail:
        return AlreadyAssigned()
    if "serial_number" in detail:
        return DuplicateSerial()
    if "email" in detail:
        return DuplicateEmail()
    if "asset_id" in detail or "employee_id" in detail:
        return DuplicateId()
    return ConflictError("Record conflicts with an existing one")
