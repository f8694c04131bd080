"""Prompt templates and the output schemas they declare."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from assessment_validator.core.exceptions import SchemaValidationError

WILDCARD_REQUIREMENT_TYPE = "all"
_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class TaskType(str, Enum):
    VALIDATION = "validation"
    SMART_QUESTION = "smart_question"


class DocumentType(str, Enum):
    UNIT = "unit"
    LEARNER_GUIDE = "learner_guide"
    BOTH = "both"


FieldType = Literal["string", "number", "integer", "boolean", "array", "object", "any"]

_PYTHON_TYPES: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
    "any": Any,
}


def _enum_key(value: str) -> str:
    return re.sub(r"[\s_\-]+", " ", value).strip().lower()


class FieldSpec(BaseModel):
    name: str = Field(..., min_length=1)
    type: FieldType = "string"
    enum: Optional[list[str]] = None
    required: bool = True
    description: Optional[str] = None


class OutputSchema(BaseModel):
    """
    Declarative description of the JSON object a prompt must produce.

    Validation is done by compiling the field list into a pydantic model.
    Unknown keys are kept so adapters can read optional extras.
    """

    fields: list[FieldSpec] = Field(default_factory=list)

    @classmethod
    def from_json_schema(cls, schema: Mapping[str, Any]) -> "OutputSchema":
        """Build from a JSON-Schema style ``{"properties": ..., "required": [...]}`` dict."""
        required = set(schema.get("required", []))
        fields = []
        for name, spec in schema.get("properties", {}).items():
            raw_type = spec.get("type", "any")
            if isinstance(raw_type, list):
                raw_type = next((t for t in raw_type if t != "null"), "any")
            fields.append(
                FieldSpec(
                    name=name,
                    type=raw_type if raw_type in _PYTHON_TYPES else "any",
                    enum=spec.get("enum"),
                    required=name in required,
                    description=spec.get("description"),
                )
            )
        return cls(fields=fields)

    def to_json_schema(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for field in self.fields:
            prop: dict[str, Any] = {} if field.type == "any" else {"type": field.type}
            if field.enum:
                prop["enum"] = list(field.enum)
            if field.description:
                prop["description"] = field.description
            properties[field.name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": [f.name for f in self.fields if f.required],
        }

    def _compile(self) -> type[BaseModel]:
        definitions: dict[str, Any] = {}
        for field in self.fields:
            annotation = Literal[tuple(field.enum)] if field.enum else _PYTHON_TYPES[field.type]
            if field.required:
                definitions[field.name] = (annotation, ...)
            else:
                definitions[field.name] = (Optional[annotation], None)
        return create_model(
            "StructuredOutput",
            __config__=ConfigDict(extra="allow"),
            **definitions,
        )

    def _canonicalize_enums(self, payload: dict[str, Any], aliases: Mapping[str, str]) -> dict[str, Any]:
        canonical = dict(payload)
        for field in self.fields:
            value = canonical.get(field.name)
            if not field.enum or not isinstance(value, str):
                continue
            lookup = {_enum_key(option): option for option in field.enum}
            key = _enum_key(value)
            if key in lookup:
                canonical[field.name] = lookup[key]
            elif key in aliases and _enum_key(aliases[key]) in lookup:
                canonical[field.name] = lookup[_enum_key(aliases[key])]
        return canonical

    def validate_payload(self, payload: Any, aliases: Mapping[str, str] | None = None) -> dict[str, Any]:
        """
        Validate a decoded model response.

        Enum values are matched case-insensitively and through ``aliases``
        (keys in lower case, words separated by single spaces).

        Raises:
            SchemaValidationError: If the payload is not an object or violates a field.
        """
        if not isinstance(payload, dict):
            raise SchemaValidationError(
                "Model output is not a JSON object",
                errors=[f"expected object, got {type(payload).__name__}"],
            )
        canonical = self._canonicalize_enums(payload, aliases or {})
        try:
            validated = self._compile().model_validate(canonical)
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            ]
            raise SchemaValidationError("Model output does not match the output schema", errors=errors) from exc
        return validated.model_dump()

    def describe(self) -> str:
        """Short listing of the expected keys, appended to prompts as a format instruction."""
        lines = []
        for field in self.fields:
            kind = " | ".join(f'"{option}"' for option in field.enum) if field.enum else field.type
            marker = "required" if field.required else "optional"
            suffix = f" - {field.description}" if field.description else ""
            lines.append(f'- "{field.name}": {kind} ({marker}){suffix}')
        return "\n".join(lines)


class GenerationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=4096, ge=1, le=65536)
    top_p: float = Field(default=0.95, gt=0.0, le=1.0)


class PromptTemplate(BaseModel):
    """
    One immutable version of a prompt.

    Rows are never edited in place: publishing a new version appends a row and
    clears ``is_default`` on the previous default for the same key.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    task_type: TaskType
    requirement_type: str = Field(..., description="A requirement type value or 'all'")
    document_type: DocumentType
    version: int = Field(..., ge=1)
    name: str
    prompt_text: str = Field(..., min_length=1)
    system_instruction: str = ""
    output_schema: OutputSchema = Field(default_factory=OutputSchema)
    generation_config: GenerationConfig = Field(default_factory=GenerationConfig)
    is_active: bool = True
    is_default: bool = True
    description: Optional[str] = None
    created_by: str = "system"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.task_type.value, self.requirement_type, self.document_type.value)

    def render(self, variables: Mapping[str, Any]) -> str:
        """Substitute ``{{name}}`` placeholders; unknown names are left untouched."""

        def _replace(match: re.Match) -> str:
            name = match.group(1)
            if name not in variables:
                return match.group(0)
            value = variables[name]
            return "" if value is None else str(value)

        return _PLACEHOLDER_PATTERN.sub(_replace, self.prompt_text)
