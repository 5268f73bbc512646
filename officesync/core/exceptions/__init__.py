"""
Project exception system.

Usage:
    from officesync.core.exceptions import TransientInfraError, ValidationError, is_retryable

    raise ValidationError("Appointment.Id is required", details={"field": "Appointment.Id"})

    try:
        await store.upsert_appointment(record)
    except TransientInfraError as exc:
        ...  # retried by the webhook queue

    # Add new type on demand
    ImportError_ = exception_factory("ImportFailure", code="IMPORT_FAILURE", http_status=422)
"""
from officesync.core.exceptions.base import ProjectError, exception_factory, is_retryable
from officesync.core.exceptions.errors import (
    ConfigurationError,
    ExternalServiceError,
    NotFoundError,
    RateLimitError,
    ReconciliationFailure,
    TransientInfraError,
    UnresolvedAssignment,
    ValidationError,
)

__all__ = [
    "ProjectError",
    "exception_factory",
    "is_retryable",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "TransientInfraError",
    "RateLimitError",
    "ExternalServiceError",
    "ReconciliationFailure",
    "UnresolvedAssignment",
]
