"""Common module — shared utilities for paysuite."""

from paysuite.common.audit import AuditTrail, create_audit_entry
from paysuite.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PERIOD_FORMAT,
    AuditAction,
    ComponentNature,
    PayrollStatus,
    SourcePeriodStatus,
    TransactionType,
    UserRole,
)
from paysuite.common.exceptions import (
    AlreadyLockedError,
    AlreadyPaidError,
    AppException,
    ConcurrentModificationError,
    ConflictError,
    ForbiddenException,
    InvalidPeriodFormatError,
    NoActiveEmployeesError,
    NotFoundException,
    NotLockedError,
    ValidationException,
    register_exception_handlers,
)
from paysuite.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "AuditAction",
    "ComponentNature",
    "PayrollStatus",
    "SourcePeriodStatus",
    "TransactionType",
    "UserRole",
    "PERIOD_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AlreadyLockedError",
    "AlreadyPaidError",
    "AppException",
    "ConcurrentModificationError",
    "ConflictError",
    "ForbiddenException",
    "InvalidPeriodFormatError",
    "NoActiveEmployeesError",
    "NotFoundException",
    "NotLockedError",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
