"""
Structured error types for infraspine.

Every error raised by the engine carries enough metadata for the executor to
decide whether it is retryable, and enough context for the run report and the
logs to name the task, resource kind and target involved.

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different failure domains
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry task/kind/target metadata for logging
    - **Error Chaining:** Preserve original provider exceptions as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        InfraError                            │
        │   (category, retryable, context, cause)                      │
        ├──────────────────────────────────────────────────────────────┤
        │                                                              │
        │  TransientError       ProviderError        ConfigError       │
        │  (retryable=True)     (PROVIDER)           (CONFIG)          │
        │       │                   │                                  │
        │  NotReadyError       ProviderAPIError                        │
        │                                                              │
        │  OrchestrationError   RenderingError                         │
        │  (ORCHESTRATION)      (RENDER)                               │
        │       │                                                      │
        │  see infraspine.orchestration.exceptions                     │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NotReadyError("subnet not visible yet")
    >>> error.retryable
    True

    >>> error = ProviderAPIError("InvalidVpcID.NotFound", code="InvalidVpcID.NotFound")
    >>> error.with_context(task="subnet-a", kind="Subnet").context.task
    'subnet-a'

Guardrails:
    ❌ DON'T: Raise bare ``Exception`` from a task or target
    ✅ DO: Raise the matching InfraError subclass so the executor can classify it

    ❌ DON'T: Mark lifecycle or render failures retryable
    ✅ DO: Reserve retryable errors for provider convergence delays

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    PROVIDER = "PROVIDER"
    TRANSIENT = "TRANSIENT"
    CONFIG = "CONFIG"
    ORCHESTRATION = "ORCHESTRATION"
    LIFECYCLE = "LIFECYCLE"
    RENDER = "RENDER"
    TIMEOUT = "TIMEOUT"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        task: Name of the task the error belongs to
        kind: Resource kind of the task (e.g. "VPC")
        target: Target the run was bound to (direct, dryrun, terraform, ...)
        run_id: Run identifier
        metadata: Additional key-value pairs
    """

    task: str | None = None
    kind: str | None = None
    target: str | None = None
    run_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["task", "kind", "target", "run_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class InfraError(Exception):
    """
    Base exception for all infraspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely have to pass them explicitly.
    """

    default_category: ErrorCategory = ErrorCategory.UNKNOWN
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> InfraError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotReadyError("not visible").with_context(task="subnet-a")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS
# =============================================================================


class TransientError(InfraError):
    """Temporary error that may succeed when the attempt is repeated later."""

    default_category = ErrorCategory.TRANSIENT
    default_retryable = True


class NotReadyError(TransientError):
    """
    The provider has not converged yet.

    Raised by a provider or target when a just-created resource that the
    current task needs is not visible yet (eventual consistency). The executor
    requeues the task with backoff instead of failing it.
    """

    pass


# =============================================================================
# PROVIDER ERRORS
# =============================================================================


class ProviderError(InfraError):
    """Error reported by the cloud provider integration."""

    default_category = ErrorCategory.PROVIDER
    default_retryable = False


class ProviderAPIError(ProviderError):
    """
    Error returned by the provider API.

    ``code`` is the provider's error code (e.g. ``RequestLimitExceeded``);
    the executor treats the error as NotReady when ``retryable`` is set or the
    code is listed in ``Settings.transient_error_codes``.
    """

    def __init__(self, message: str, *, code: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.code is not None:
            result["code"] = self.code
        return result


# =============================================================================
# CONFIGURATION / ORCHESTRATION / RENDERING
# =============================================================================


class ConfigError(InfraError):
    """Invalid run configuration."""

    default_category = ErrorCategory.CONFIG


class OrchestrationError(InfraError):
    """Task graph or executor error."""

    default_category = ErrorCategory.ORCHESTRATION


class RenderingError(InfraError):
    """Static document rendering error."""

    default_category = ErrorCategory.RENDER


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception, transient_codes: frozenset[str] | set[str] = frozenset()) -> bool:
    """Check if an error should be retried as a not-ready condition."""
    if isinstance(error, ProviderAPIError) and error.code in transient_codes:
        return True
    if isinstance(error, InfraError):
        return error.retryable
    return False


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, InfraError):
        return error.category
    if isinstance(error, (KeyError, AttributeError, TypeError, ValueError)):
        return ErrorCategory.INTERNAL
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "InfraError",
    "TransientError",
    "NotReadyError",
    "ProviderError",
    "ProviderAPIError",
    "ConfigError",
    "OrchestrationError",
    "RenderingError",
    "is_retryable",
    "categorize_error",
]
