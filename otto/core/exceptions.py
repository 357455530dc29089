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


class InvalidTransitionException(DomainException):
    """Raised when an escalation is moved to a status it cannot reach."""

    def __init__(self, escalation_id: str, current: str, target: str):
        self.escalation_id = escalation_id
        self.current = current
        self.target = target
        super().__init__(
            f"Escalation {escalation_id} cannot move from {current} to {target}",
            {"escalation_id": escalation_id, "from": current, "to": target}
        )


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        entity: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.operation = operation
        self.entity = entity
        self.entity_id = entity_id
        context = {"operation": operation, "entity": entity, "entity_id": entity_id}
        context.update(details or {})
        super().__init__(message, context)


class ConstraintViolationException(RepositoryException):
    """Raised when a write violates a primary key or unique index."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


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


class GitHubException(ExternalServiceException):
    """Exception for GitHub API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("GitHub", message, details)


class WebhookException(ApplicationException):
    """Base exception for rejected webhook deliveries."""


class SignatureVerificationException(WebhookException):
    """The delivery signature is missing or does not match the body."""


class EventParseException(WebhookException):
    """The delivery body could not be decoded into an event."""
