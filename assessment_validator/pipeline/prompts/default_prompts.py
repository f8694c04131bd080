"""
Prompts por defecto que se publican en el registro al iniciar la app.

Cada requirement type tiene su plantilla de validacion y existe un comodin
('all', 'both') para cualquier tipo sin plantilla propia.
"""

from assessment_validator.schemas import FieldSpec, GenerationConfig, OutputSchema

VALIDATOR_SYSTEM_INSTRUCTION = """You are an expert RTO assessment validator for Australian VET units of competency.
You judge whether the supplied assessment documents contain evidence that satisfies ONE requirement.
Base every judgement ONLY on the supplied evidence. Never invent page numbers or content.
Always answer with a single JSON object and nothing else."""

VALIDATION_OUTPUT_SCHEMA = OutputSchema(
    fields=[
        FieldSpec(name="status", enum=["Met", "Partially Met", "Not Met"], description="Overall judgement"),
        FieldSpec(name="reasoning", type="string", description="Explanation, max 300 words"),
        FieldSpec(name="mapped_content", type="string", required=False, description="Content that addresses the requirement, with locations"),
        FieldSpec(name="citations", type="array", required=False, description="Evidence labels like 'E2' or 'Document, Section, Page X'"),
        FieldSpec(name="confidence", type="any", required=False, description="0-1, 0-100, or high/medium/low"),
        FieldSpec(name="unmapped_content", type="string", required=False, description="What is missing; 'N/A' if fully met"),
        FieldSpec(name="smart_question", type="string", required=False, description="'N/A' if Met, otherwise one question or task that closes the gap"),
        FieldSpec(name="benchmark_answer", type="string", required=False, description="'N/A' if Met, otherwise the expected answer or behaviour"),
    ]
)

_OUTPUT_FORMAT = """
Return ONLY a JSON object with these keys:
{
  "status": "Met" | "Partially Met" | "Not Met",
  "reasoning": "...",
  "mapped_content": "...",
  "citations": ["E1", "..."],
  "confidence": 0.0-1.0,
  "unmapped_content": "...",
  "smart_question": "...",
  "benchmark_answer": "..."
}"""

KNOWLEDGE_EVIDENCE_PROMPT = """Validate knowledge evidence requirement {{requirement_number}} of unit {{unit_code}} {{unit_title}}.

Requirement: {{requirement_text}}

Check whether the {{document_type}} documents contain questions or content that assess this knowledge.
"Met" requires questions that directly test every part of the requirement.
If not Met, write ONE clear smart_question that tests the missing knowledge and its benchmark_answer.""" + _OUTPUT_FORMAT

PERFORMANCE_EVIDENCE_PROMPT = """Validate performance evidence requirement {{requirement_number}} of unit {{unit_code}} {{unit_title}}.

Requirement: {{requirement_text}}

Check whether the {{document_type}} documents contain practical tasks or observations where the learner demonstrates this.
If not Met, write ONE practical workplace task as smart_question and the observable behaviour as benchmark_answer.""" + _OUTPUT_FORMAT

ELEMENTS_CRITERIA_PROMPT = """Validate performance criterion {{requirement_number}} of unit {{unit_code}} {{unit_title}}.

Element: {{element_text}}
Criterion: {{requirement_text}}

Check whether the {{document_type}} documents contain tasks that require the learner to meet this criterion.
If not Met, write ONE task as smart_question and the expected behaviour as benchmark_answer.""" + _OUTPUT_FORMAT

FOUNDATION_SKILLS_PROMPT = """Validate foundation skill {{requirement_number}} of unit {{unit_code}} {{unit_title}}.

Skill: {{requirement_text}}

Check whether the {{document_type}} documents give the learner opportunities to apply this skill.""" + _OUTPUT_FORMAT

ASSESSMENT_CONDITIONS_PROMPT = """Validate assessment condition {{requirement_number}} of unit {{unit_code}} {{unit_title}}.

Condition: {{requirement_text}}

Check whether the {{document_type}} documents state or provide for this condition (resources, environment, assessor requirements).""" + _OUTPUT_FORMAT

GENERIC_VALIDATION_PROMPT = """Validate requirement {{requirement_number}} ({{requirement_type}}) of unit {{unit_code}} {{unit_title}}.

Requirement: {{requirement_text}}

Decide whether the {{document_type}} documents contain evidence that satisfies it.""" + _OUTPUT_FORMAT

CORRECTION_PROMPT = """Your previous answer could not be accepted:
{errors}

Answer again with ONLY a JSON object using exactly these keys:
{schema}"""

SMART_QUESTION_SYSTEM_INSTRUCTION = """You are an expert assessment question writer for vocational education and training.
You write practical, objectively assessable questions for ONE requirement at a time.
Always answer with a single JSON object and nothing else."""

SMART_QUESTION_OUTPUT_SCHEMA = OutputSchema(
    fields=[
        FieldSpec(name="question", type="string", description="The SMART question or task"),
        FieldSpec(name="benchmark_answer", type="string", required=False, description="A model answer or the observable behaviour"),
        FieldSpec(
            name="question_type",
            enum=["scenario", "case-study", "practical", "knowledge", "analysis"],
            required=False,
        ),
    ]
)

SMART_QUESTION_PROMPT = """Write ONE SMART question for requirement {{requirement_number}} ({{requirement_type}}) of unit {{unit_code}} {{unit_title}}.

Requirement: {{requirement_text}}

Validation status: {{verdict}}
Validation reasoning: {{reasoning}}

Current question: {{current_question}}
Current benchmark answer: {{current_answer}}

Additional context from the reviewer: {{user_context}}

The question must be specific to {{requirement_number}} only, realistic for the workplace and objectively assessable.
If a current question exists, improve it using the reviewer context.

Return ONLY a JSON object:
{
  "question": "...",
  "benchmark_answer": "...",
  "question_type": "scenario" | "case-study" | "practical" | "knowledge" | "analysis"
}"""

_GENERATION = GenerationConfig(temperature=0.2, max_output_tokens=4096, top_p=0.95)


def _validation(requirement_type: str, prompt_text: str, name: str) -> dict:
    return {
        "task_type": "validation",
        "requirement_type": requirement_type,
        "document_type": "both",
        "name": name,
        "prompt_text": prompt_text,
        "system_instruction": VALIDATOR_SYSTEM_INSTRUCTION,
        "output_schema": VALIDATION_OUTPUT_SCHEMA,
        "generation_config": _GENERATION,
        "created_by": "seed",
    }


DEFAULT_PROMPT_TEMPLATES: list[dict] = [
    _validation("knowledge_evidence", KNOWLEDGE_EVIDENCE_PROMPT, "KE validation"),
    _validation("performance_evidence", PERFORMANCE_EVIDENCE_PROMPT, "PE validation"),
    _validation("elements_performance_criteria", ELEMENTS_CRITERIA_PROMPT, "E_PC validation"),
    _validation("foundation_skills", FOUNDATION_SKILLS_PROMPT, "FS validation"),
    _validation("assessment_conditions", ASSESSMENT_CONDITIONS_PROMPT, "AC validation"),
    _validation("all", GENERIC_VALIDATION_PROMPT, "Generic validation"),
    {
        "task_type": "smart_question",
        "requirement_type": "all",
        "document_type": "both",
        "name": "SMART question",
        "prompt_text": SMART_QUESTION_PROMPT,
        "system_instruction": SMART_QUESTION_SYSTEM_INSTRUCTION,
        "output_schema": SMART_QUESTION_OUTPUT_SCHEMA,
        "generation_config": _GENERATION,
        "created_by": "seed",
    },
]
