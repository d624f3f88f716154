"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Propagation policy:
  - Stores (step/module/document services) classify persistence failures
    and re-raise. They never swallow.
  - DocumentGenerator and DocumentWorkflow are the only boundaries that
    turn exceptions into structured result objects.

Usage:
    from ventureplan.core.exceptions import NotFoundError, ConfigurationError

    raise NotFoundError(resource="Module", resource_id=module_id)
    raise ConfigurationError(f"No step configuration for module type {t!r}")
"""


class NotFoundError(Exception):
    """Raised when a referenced module/step/document/template does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Module", "Document").
        resource_id: The key that was looked up.
        reason: Optional extra explanation appended to the message.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TemplateNotFoundError(NotFoundError):
    """No DocumentTemplate exists for the requested module type."""

    def __init__(self, module_type: str) -> None:
        self.module_type = module_type
        super().__init__("DocumentTemplate", reason=f"no template for module type {module_type!r}")


class ValidationError(Exception):
    """Raised when input fails a business rule (bad status, illegal transition).

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(Exception):
    """A module type has no static step configuration. Fatal, not retryable."""


# ── Classified persistence failures ─────────────────────────────────────────


class ServiceError(Exception):
    """Typed persistence failure carrying the original driver exception.

    Args:
        kind: Classification label ("DuplicateError", "ReferenceError",
              "DatabaseError").
        message: Human-readable message.
        original_error: The exception that was classified.
        operation: Name of the store operation that failed.
    """

    kind = "DatabaseError"

    def __init__(
        self,
        message: str,
        original_error: BaseException | None = None,
        operation: str | None = None,
    ) -> None:
        self.original_error = original_error
        self.operation = operation
        super().__init__(message)


class DuplicateError(ServiceError):
    """Unique constraint violation (e.g. two writers claiming the same version)."""

    kind = "DuplicateError"


class ReferenceViolationError(ServiceError):
    """Foreign key violation — the referenced row does not exist."""

    kind = "ReferenceError"


class DatabaseError(ServiceError):
    """Any other backend fault."""

    kind = "DatabaseError"


# ── Pipeline failures ───────────────────────────────────────────────────────


class GenerationError(Exception):
    """Template rendering or format conversion failed."""

    error_kind = "generation"


class GenerationTimeoutError(GenerationError):
    """A Template Engine call exceeded its time budget."""

    error_kind = "timeout"


class EnrichmentError(Exception):
    """AI enrichment of a generation context failed."""
