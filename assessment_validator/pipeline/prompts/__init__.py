"""
Prompts module initialization.

Exports the seed templates published into the prompt registry at startup and
the correction prompt used for the single schema re-prompt.
"""

from assessment_validator.pipeline.prompts.default_prompts import (
    CORRECTION_PROMPT,
    DEFAULT_PROMPT_TEMPLATES,
    SMART_QUESTION_OUTPUT_SCHEMA,
    VALIDATION_OUTPUT_SCHEMA,
    VALIDATOR_SYSTEM_INSTRUCTION,
)

__all__ = [
    "CORRECTION_PROMPT",
    "DEFAULT_PROMPT_TEMPLATES",
    "SMART_QUESTION_OUTPUT_SCHEMA",
    "VALIDATION_OUTPUT_SCHEMA",
    "VALIDATOR_SYSTEM_INSTRUCTION",
]
