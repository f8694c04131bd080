from enum import Enum

from pydantic import BaseModel, Field, field_validator


class RequirementType(str, Enum):
    KNOWLEDGE_EVIDENCE = "knowledge_evidence"
    PERFORMANCE_EVIDENCE = "performance_evidence"
    FOUNDATION_SKILLS = "foundation_skills"
    ELEMENTS_PERFORMANCE_CRITERIA = "elements_performance_criteria"
    ASSESSMENT_CONDITIONS = "assessment_conditions"


# Abreviaturas usadas en las planillas de unidades
REQUIREMENT_TYPE_SHORTHANDS: dict[str, RequirementType] = {
    "ke": RequirementType.KNOWLEDGE_EVIDENCE,
    "pe": RequirementType.PERFORMANCE_EVIDENCE,
    "fs": RequirementType.FOUNDATION_SKILLS,
    "epc": RequirementType.ELEMENTS_PERFORMANCE_CRITERIA,
    "ac": RequirementType.ASSESSMENT_CONDITIONS,
}


def normalize_requirement_type(value: str | RequirementType) -> RequirementType:
    """Accept canonical names and the ke/pe/fs/epc/ac shorthands."""
    if isinstance(value, RequirementType):
        return value
    key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    if key in REQUIREMENT_TYPE_SHORTHANDS:
        return REQUIREMENT_TYPE_SHORTHANDS[key]
    return RequirementType(key)


class Requirement(BaseModel):
    """A single regulatory requirement a job validates against."""

    id: str = Field(..., min_length=1)
    requirement_type: RequirementType
    number: str = Field(..., min_length=1, description="Display number, e.g. '1.2' or 'KE3'")
    text: str = Field(..., min_length=1)
    unit_code: str = ""
    element_text: str | None = None

    @field_validator("requirement_type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        return normalize_requirement_type(value)
