"""
Built-in exception types for the sync pipeline.

Retry policy keys off these classes: TransientInfraError (and its
subclasses) is retried, everything else is terminal.
"""
from __future__ import annotations

from officesync.core.exceptions.base import ProjectError


class ConfigurationError(ProjectError):
    """Invalid or missing configuration (rules, offices, env)."""

    default_code = "CONFIGURATION_ERROR"
    default_http_status = 500


class ValidationError(ProjectError):
    """Inbound event or request failed validation. Never retried."""

    default_code = "VALIDATION_ERROR"
    default_http_status = 400


class NotFoundError(ProjectError):
    """Requested resource not found."""

    default_code = "NOT_FOUND"
    default_http_status = 404


class TransientInfraError(ProjectError):
    """Record store, provider or network failure that may succeed on retry."""

    default_code = "TRANSIENT_INFRA_ERROR"
    retryable = True
    default_http_status = 503


class RateLimitError(TransientInfraError):
    """Upstream rate limit exceeded (HTTP 429)."""

    default_code = "RATE_LIMIT"
    default_http_status = 429


class ExternalServiceError(ProjectError):
    """External service returned a non-retryable error."""

    default_code = "EXTERNAL_SERVICE_ERROR"
    default_http_status = 502


class ReconciliationFailure(ProjectError):
    """A deletion could not be confirmed after every remediation strategy."""

    default_code = "RECONCILIATION_FAILURE"
    default_http_status = 500


class UnresolvedAssignment(ProjectError):
    """No office could be assigned; appointment needs manual review."""

    default_code = "UNRESOLVED_ASSIGNMENT"
    default_http_status = 409
