"""
Services package initialization.
Business logic layer for the asset ledger.
"""

from .exceptions import (
    AssetTrackError,
    ValidationError,
    NotFoundError,
    ConflictError,
    DomainInvariantError,
    AuthenticationError,
)
from .sequences import (
    next_value,
    peek_value,
    seed_counter,
    next_asset_id,
    next_employee_id,
    next_company_employee_id,
)
from .asset_service import AssetService
from .employee_service import EmployeeService, normalize_status
from .assignment_service import AssignmentService
from .notification_service import NotificationService
from .dashboard_service import DashboardService

__all__ = [
    'AssetTrackError',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'DomainInvariantError',
    'AuthenticationError',
    'next_value',
    'peek_value',
    'seed_counter',
    'next_asset_id',
    'next_employee_id',
    'next_company_employee_id',
    'AssetService',
    'EmployeeService',
    'normalize_status',
    'AssignmentService',
    'NotificationService',
    'DashboardService',
]
