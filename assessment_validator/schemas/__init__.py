from assessment_validator.schemas.documents import (
    Chunk,
    Document,
    IndexingOutcome,
    IndexingParams,
    IndexingStatus,
    RetrievedChunk,
)
from assessment_validator.schemas.jobs import (
    TERMINAL_JOB_STATUSES,
    JobStatus,
    ProgressSnapshot,
    Strategy,
    TriggerResponse,
    ValidationJob,
)
from assessment_validator.schemas.prompts import (
    WILDCARD_REQUIREMENT_TYPE,
    DocumentType,
    FieldSpec,
    GenerationConfig,
    OutputSchema,
    PromptTemplate,
    TaskType,
)
from assessment_validator.schemas.requests import (
    CreateJobRequest,
    LoadRequirementsRequest,
    PublishPromptRequest,
    RegenerateSmartQuestionRequest,
    RegisterDocumentRequest,
    RequirementIn,
)
from assessment_validator.schemas.requirements import Requirement, RequirementType, normalize_requirement_type
from assessment_validator.schemas.responses import (
    DocumentResponse,
    HealthResponse,
    JobResultsResponse,
    JobStatusResponse,
)
from assessment_validator.schemas.results import (
    Citation,
    ResultStatus,
    ResultSummary,
    StructuredVerdict,
    ValidationResult,
    Verdict,
)

__all__ = [
    "Chunk",
    "Citation",
    "CreateJobRequest",
    "Document",
    "DocumentResponse",
    "DocumentType",
    "FieldSpec",
    "GenerationConfig",
    "HealthResponse",
    "IndexingOutcome",
    "IndexingParams",
    "IndexingStatus",
    "JobResultsResponse",
    "JobStatus",
    "JobStatusResponse",
    "LoadRequirementsRequest",
    "OutputSchema",
    "ProgressSnapshot",
    "PromptTemplate",
    "PublishPromptRequest",
    "RegenerateSmartQuestionRequest",
    "RegisterDocumentRequest",
    "Requirement",
    "RequirementIn",
    "RequirementType",
    "ResultStatus",
    "ResultSummary",
    "RetrievedChunk",
    "Strategy",
    "StructuredVerdict",
    "TaskType",
    "TERMINAL_JOB_STATUSES",
    "TriggerResponse",
    "ValidationJob",
    "ValidationResult",
    "Verdict",
    "WILDCARD_REQUIREMENT_TYPE",
    "normalize_requirement_type",
]
