"""
Base exception types for the project.

Every error raised by the sync pipeline derives from ProjectError so the
webhook queue and the recovery ledger can classify failures by type alone.
Subclasses set ``retryable`` to opt into the retry path.
"""
from __future__ import annotations

import traceback
from typing import Any, Optional, Type


class ProjectError(Exception):
    """
    Base exception for all project errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable slug (defaults to class __name__).
        http_status: Suggested HTTP status for API responses (default 500).
        details: Optional dict for extra context (appointment id, field...).
        cause: Optional chained exception.
    """

    default_code: str = "ERROR"
    default_http_status: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else getattr(
            self.__class__, "default_code", self.__class__.__name__
        )
        self.http_status = (
            http_status
            if http_status is not None
            else getattr(self.__class__, "default_http_status", 500)
        )
        self.details: dict[str, Any] = details or {}
        self.cause = cause

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, code={self.code!r})"

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize for audit entries, the recovery ledger or API responses."""
        out: dict[str, Any] = {
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.details:
            out["details"] = self.details
        if self.cause is not None:
            out["cause"] = str(self.cause)
            out["cause_traceback"] = traceback.format_exception(
                type(self.cause), self.cause, self.cause.__traceback__
            )
        return out


def exception_factory(
    name: str,
    *,
    code: Optional[str] = None,
    http_status: int = 500,
    base: Type[ProjectError] = ProjectError,
) -> Type[ProjectError]:
    """
    Create a new exception class on demand.

    The retryable flag is inherited from ``base``:
        SheetQuotaError = exception_factory("SheetQuotaError", base=TransientInfraError)
    """
    code = code or name.upper().replace(" ", "_")
    return type(
        name,
        (base,),
        {
            "default_code": code,
            "default_http_status": http_status,
        },
    )


def is_retryable(exc: BaseException) -> bool:
    """True for project errors flagged retryable and for asyncio/socket timeouts."""
    if isinstance(exc, ProjectError):
        return exc.retryable
    return isinstance(exc, (TimeoutError, ConnectionError))
