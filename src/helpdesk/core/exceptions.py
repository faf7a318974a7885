"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional, Any


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


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Any] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id is not None:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


# ========== SLA ==========

class PolicyNotFoundException(ResourceNotFoundException):
    """No SLA policy matches the ticket's organization and priority."""

    def __init__(
        self,
        organization_id: Any,
        priority_id: Any,
        details: Optional[dict] = None
    ):
        self.organization_id = organization_id
        self.priority_id = priority_id
        super().__init__(
            "SLA policy",
            details=details or {
                "organization_id": organization_id,
                "priority_id": priority_id,
            }
        )


class TicketNotFoundException(ResourceNotFoundException):
    """Ticket does not exist."""

    def __init__(self, ticket_id: Any):
        super().__init__("Ticket", ticket_id)


class SLAPolicyTicketNotFoundException(ResourceNotFoundException):
    """Ticket has no SLA policy bound to it."""

    def __init__(self, ticket_id: Any):
        self.ticket_id = ticket_id
        super().__init__("SLA policy ticket", ticket_id, {"ticket_id": ticket_id})


class AlreadyPausedException(DomainException):
    """Pause requested while a pause period is still open."""

    def __init__(self, ticket_id: Any = None):
        self.ticket_id = ticket_id
        super().__init__("SLA is already paused", {"ticket_id": ticket_id})


class NotPausedException(DomainException):
    """Resume requested without an open pause period."""

    def __init__(self, ticket_id: Any = None):
        self.ticket_id = ticket_id
        super().__init__("SLA is not paused", {"ticket_id": ticket_id})


class MalformedMetadataException(DomainException):
    """Stored pause metadata could not be parsed."""

    def __init__(self, reason: str, raw: Optional[str] = None):
        self.raw = raw
        super().__init__(f"Malformed SLA metadata: {reason}", {"raw": raw})


class ConcurrentModificationException(RepositoryException):
    """A row changed underneath an optimistic update."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} was modified concurrently",
            {"entity": entity, "entity_id": entity_id}
        )
