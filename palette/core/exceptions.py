"""
Palette Custom Exceptions

Custom exception classes for error handling throughout the breakdown engine.
"""


class PaletteError(Exception):
    """Base exception for all Palette errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(PaletteError):
    """Raised when there's an issue with configuration."""
    pass


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration is missing."""
    pass


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is invalid."""
    pass


# =============================================================================
# LLM ERRORS
# =============================================================================

class LLMError(PaletteError):
    """Base exception for LLM-related errors."""
    pass


class LLMProviderError(LLMError):
    """Raised when an LLM provider call fails in transport."""

    def __init__(self, provider: str, reason: str):
        message = f"LLM provider '{provider}' error: {reason}"
        super().__init__(message, {"provider": provider, "reason": reason})
        self.provider = provider
        self.reason = reason


class LLMTimeoutError(LLMProviderError):
    """Raised when a provider call exceeds its deadline."""

    def __init__(self, provider: str, timeout: float):
        super().__init__(provider, f"timed out after {timeout:.1f}s")
        self.timeout = timeout


class LLMResponseError(LLMError):
    """Raised when an LLM response cannot be parsed at all."""

    def __init__(self, reason: str, response_preview: str = None):
        details = {"reason": reason}
        if response_preview:
            details["response_preview"] = response_preview[:200]
        super().__init__(f"Invalid LLM response: {reason}", details)


class SchemaValidationError(LLMError):
    """Raised when a response fails its schema and no defaults exist."""

    def __init__(self, schema_name: str, errors: list = None):
        message = f"Response did not match schema '{schema_name}'"
        super().__init__(message, {"schema": schema_name, "errors": errors or []})
        self.schema_name = schema_name
        self.errors = errors or []


# =============================================================================
# REFERENCE ERRORS
# =============================================================================

class ReferenceSetError(PaletteError):
    """Base exception for reference set errors."""
    pass


class InvalidHandleError(ReferenceSetError):
    """Raised when a handle doesn't match the canonical format."""

    def __init__(self, handle: str, expected_pattern: str = None):
        details = {"handle": handle}
        if expected_pattern:
            details["expected_pattern"] = expected_pattern
        super().__init__(f"Invalid handle format: '{handle}'", details)


class DuplicateHandleError(ReferenceSetError):
    """Raised when a handle is already present in the set."""

    def __init__(self, handle: str, existing_kind: str = None):
        details = {"handle": handle}
        if existing_kind:
            details["existing_kind"] = existing_kind
        super().__init__(f"Handle already registered: '{handle}'", details)


# =============================================================================
# PIPELINE ERRORS
# =============================================================================

class PipelineError(PaletteError):
    """Base exception for pipeline errors."""
    pass


class PipelineStageError(PipelineError):
    """Raised when a pipeline stage fails."""

    def __init__(self, stage: str, reason: str):
        super().__init__(f"Stage '{stage}' failed: {reason}", {"stage": stage, "reason": reason})
        self.stage = stage
        self.reason = reason


class RunNotFoundError(PipelineError):
    """Raised when a run id is unknown."""

    def __init__(self, run_id: str):
        super().__init__(f"Run not found: '{run_id}'", {"run_id": run_id})
        self.run_id = run_id


class UnitNotFoundError(PipelineError):
    """Raised when a unit id is not part of a run."""

    def __init__(self, unit_id: str, run_id: str = None):
        details = {"unit_id": unit_id}
        if run_id:
            details["run_id"] = run_id
        super().__init__(f"Unit not found: '{unit_id}'", details)
        self.unit_id = unit_id


class ContentError(PipelineError):
    """Raised when a well-formed result is semantically unusable."""

    def __init__(self, unit_id: str, reason: str):
        super().__init__(f"Unit '{unit_id}' produced unusable content: {reason}",
                         {"unit_id": unit_id, "reason": reason})
        self.unit_id = unit_id
        self.reason = reason


# =============================================================================
# MEDIA ERRORS
# =============================================================================

class MediaError(PaletteError):
    """Base exception for media generation errors."""
    pass


class MediaJobFailedError(MediaError):
    """Raised when a media job ends in a failed or canceled state."""

    def __init__(self, job_id: str, status: str, reason: str = None):
        details = {"job_id": job_id, "status": status}
        if reason:
            details["reason"] = reason
        super().__init__(f"Media job {job_id} ended with status '{status}'", details)
        self.job_id = job_id
        self.status = status


class MediaJobTimeoutError(MediaError):
    """Raised when polling gives up on a media job."""

    def __init__(self, job_id: str, attempts: int):
        super().__init__(f"Media job {job_id} did not finish after {attempts} polls",
                         {"job_id": job_id, "attempts": attempts})
        self.job_id = job_id
        self.attempts = attempts


# =============================================================================
# CREDIT ERRORS
# =============================================================================

class CreditError(PaletteError):
    """Base exception for credit accounting errors."""
    pass


class InsufficientCreditsError(CreditError):
    """Raised when the credit ledger refuses a reservation."""

    def __init__(self, required: int):
        super().__init__(f"Insufficient credits: {required} required", {"required": required})
        self.required = required
