"""
Custom exceptions for the Assessment Validator.

Errors fall into two scopes. Requirement-level errors (provider failures,
schema violations, missing prompts) are recorded on the requirement's result
row and never abort sibling requirements. Job-level errors (indexing failures,
unmet prerequisites) move the whole job to ``failed``.

Every exception carries a short ``kind`` string that is persisted verbatim as
``error_kind`` on result rows, plus the number of attempts made when the
error was raised from a retried call.

Example:
    try:
        await indexer.index(document_id)
    except IndexingFailure as e:
        logger.error(f"Indexing failed: {e}")
"""

from typing import Optional


class ValidatorBaseException(Exception):
    """
    Base exception class for all Assessment Validator errors.

    Attributes:
        message: Human-readable description of the error.
        details: Optional additional context for debugging.
        attempts: Number of attempts made before the error surfaced.
    """

    kind: str = "internal_error"
    retryable: bool = False

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        self.message = message
        self.details = details
        self.attempts = 0
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation with optional details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# PROVIDER ERRORS (requirement-level)
# =============================================================================


class TransientProviderError(ValidatorBaseException):
    """
    Raised for provider failures that are worth retrying.

    Covers network errors, 5xx responses and calls that exceeded their
    hard deadline.

    Attributes:
        provider: Name of the provider that failed.
    """

    kind = "transient_provider_error"
    retryable = True

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        self.provider = provider
        enhanced_message = f"[Provider] {message}"
        if provider:
            enhanced_message = f"{enhanced_message} (provider: {provider})"
        super().__init__(enhanced_message, details)


class RateLimitError(ValidatorBaseException):
    """
    Raised when a call could not be admitted within the wait ceiling.

    Also raised when the provider itself answers with HTTP 429.

    Attributes:
        provider: Name of the rate-limited provider.
        retry_after: Seconds until a slot frees up, when known.
    """

    kind = "rate_limit_error"
    retryable = True

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        retry_after: Optional[float] = None,
        details: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.retry_after = retry_after
        enhanced_message = f"[RateLimit] {message}"
        if provider:
            enhanced_message = f"{enhanced_message} (provider: {provider})"
        if retry_after is not None:
            enhanced_message = f"{enhanced_message} (retry after: {retry_after:.1f}s)"
        super().__init__(enhanced_message, details)


class ProviderInvocationError(ValidatorBaseException):
    """
    Raised for provider failures that retrying cannot fix (4xx other than 429).

    Attributes:
        provider: Name of the provider that failed.
        status_code: HTTP status returned by the provider, if any.
    """

    kind = "provider_invocation_error"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        enhanced_message = f"[Provider] {message}"
        if provider:
            enhanced_message = f"{enhanced_message} (provider: {provider})"
        if status_code is not None:
            enhanced_message = f"{enhanced_message} (status: {status_code})"
        super().__init__(enhanced_message, details)


class SchemaValidationError(ValidatorBaseException):
    """
    Raised when model output does not conform to the prompt's output schema.

    Attributes:
        errors: Individual validation messages.
        raw_output: The offending model output, truncated.
    """

    kind = "schema_validation_error"

    def __init__(
        self,
        message: str,
        errors: Optional[list[str]] = None,
        raw_output: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        self.errors = errors or []
        self.raw_output = raw_output[:2000] if raw_output else None
        enhanced_message = f"[Schema] {message}"
        if self.errors:
            enhanced_message = f"{enhanced_message}: {'; '.join(self.errors[:5])}"
        super().__init__(enhanced_message, details)


class MissingPromptError(ValidatorBaseException):
    """
    Raised when no active default prompt exists for a key, even after fallbacks.

    Attributes:
        task_type: Requested task type.
        requirement_type: Requested requirement type.
        document_type: Requested document type.
    """

    kind = "missing_prompt_error"

    def __init__(
        self,
        task_type: str,
        requirement_type: str,
        document_type: str,
        details: Optional[str] = None,
    ) -> None:
        self.task_type = task_type
        self.requirement_type = requirement_type
        self.document_type = document_type
        message = (
            f"[Prompts] No active default prompt for "
            f"({task_type}, {requirement_type}, {document_type})"
        )
        super().__init__(message, details)


# =============================================================================
# JOB-LEVEL ERRORS
# =============================================================================


class IndexingFailure(ValidatorBaseException):
    """
    Raised when a document cannot be chunked, embedded or stored.

    Fatal to the job that owns the document, never to other jobs.

    Attributes:
        document_id: Identifier of the document that failed.
        stage: The indexing stage where the error occurred
               (e.g., 'chunking', 'embedding', 'upserting').
    """

    kind = "indexing_failure"

    def __init__(
        self,
        message: str,
        document_id: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        self.document_id = document_id
        self.stage = stage
        enhanced_message = message
        if document_id:
            enhanced_message = f"[{document_id}] {enhanced_message}"
        if stage:
            enhanced_message = f"{enhanced_message} (stage: {stage})"
        super().__init__(enhanced_message, details)


class JobPrerequisiteError(ValidatorBaseException):
    """
    Raised when a job cannot start: a document failed indexing, or the job has
    no requirements to validate.

    Attributes:
        job_id: Identifier of the job.
    """

    kind = "job_prerequisite_error"

    def __init__(self, message: str, job_id: Optional[str] = None, details: Optional[str] = None) -> None:
        self.job_id = job_id
        enhanced_message = f"[Job {job_id}] {message}" if job_id else message
        super().__init__(enhanced_message, details)


class InvalidStateTransitionError(ValidatorBaseException):
    """Raised when a job is asked to move backwards through its lifecycle."""

    kind = "invalid_state_transition"

    def __init__(self, job_id: str, current: str, target: str) -> None:
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"[Job {job_id}] Cannot transition from '{current}' to '{target}'")


# =============================================================================
# LOOKUP ERRORS
# =============================================================================


class ResourceNotFoundError(ValidatorBaseException):
    """Raised when a repository lookup misses."""

    kind = "not_found"
    resource = "resource"

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"{self.resource.capitalize()} '{identifier}' not found")


class DocumentNotFoundError(ResourceNotFoundError):
    resource = "document"


class RequirementNotFoundError(ResourceNotFoundError):
    resource = "requirement"


class JobNotFoundError(ResourceNotFoundError):
    resource = "job"
