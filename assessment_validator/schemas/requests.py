from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from assessment_validator.schemas.jobs import Strategy
from assessment_validator.schemas.prompts import DocumentType, FieldSpec, GenerationConfig, TaskType
from assessment_validator.schemas.requirements import RequirementType, normalize_requirement_type


class RegisterDocumentRequest(BaseModel):
    id: Optional[str] = Field(default=None, description="Generated when omitted")
    name: str = Field(..., min_length=1, max_length=500)
    text: str = Field(..., description="Extracted document text")
    job_id: Optional[str] = None


class RequirementIn(BaseModel):
    id: Optional[str] = None
    requirement_type: RequirementType
    number: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    unit_code: str = ""
    element_text: Optional[str] = None

    @field_validator("requirement_type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        return normalize_requirement_type(value)


class LoadRequirementsRequest(BaseModel):
    requirements: list[RequirementIn] = Field(..., min_length=1)


class CreateJobRequest(BaseModel):
    unit_code: str = ""
    unit_title: str = ""
    document_type: DocumentType = DocumentType.BOTH
    document_ids: list[str] = Field(..., min_length=1)
    requirement_ids: list[str] = Field(default_factory=list)
    provider: Optional[str] = Field(default=None, description="Defaults to the configured provider")
    strategy: Optional[Strategy] = None


class PublishPromptRequest(BaseModel):
    task_type: TaskType = TaskType.VALIDATION
    requirement_type: str = Field(..., min_length=1, description="A requirement type, a shorthand or 'all'")
    document_type: DocumentType = DocumentType.BOTH
    name: Optional[str] = None
    prompt_text: str = Field(..., min_length=1)
    system_instruction: str = ""
    output_fields: Optional[list[FieldSpec]] = None
    output_json_schema: Optional[dict[str, Any]] = None
    generation_config: GenerationConfig = Field(default_factory=GenerationConfig)
    make_default: bool = True
    description: Optional[str] = None
    created_by: str = "api"


class RegenerateSmartQuestionRequest(BaseModel):
    user_context: Optional[str] = Field(default=None, max_length=4000, description="Extra guidance for the new question")
