"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class InvalidBudgetException(ValidationException):
    """Raised when SLA time budget values violate an invariant."""

    def __init__(self, rule: str, message: str, details: Optional[dict] = None):
        self.rule = rule
        super().__init__(message, {"rule": rule, **(details or {})})


class PolicyConflictException(DomainException):
    """Raised when a policy would duplicate a name or an active type/priority pair."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationException(ExternalServiceException):
    """Exception for notification delivery failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notification Service", message, details)


class SweepInProgressException(ApplicationException):
    """Raised when a sweep is requested while another one is running."""

    def __init__(self, details: Optional[dict] = None):
        super().__init__("An SLA sweep is already running", details)
