"""
Versioned prompt template registry.

Rows are append-only. Publishing a new default for a key inserts the new row
and clears ``is_default`` on the previous one under a single lock, so a
concurrent ``resolve`` sees either the old default or the new one and never
zero or two.

Resolution order for (task, requirement type, document type):

1. exact match
2. same requirement type with document type ``both``
3. requirement type ``all`` with the requested document type
4. requirement type ``all`` with document type ``both``

If none exists, ``MissingPromptError`` is raised.
"""

import threading
import uuid
from typing import Iterable, Optional

from assessment_validator.core.cache import TTLCache
from assessment_validator.core.exceptions import MissingPromptError
from assessment_validator.core.logging import get_logger
from assessment_validator.schemas import (
    WILDCARD_REQUIREMENT_TYPE,
    DocumentType,
    GenerationConfig,
    OutputSchema,
    PromptTemplate,
    TaskType,
    normalize_requirement_type,
)

logger = get_logger(__name__)


def _requirement_key(requirement_type: str) -> str:
    if str(requirement_type).strip().lower() == WILDCARD_REQUIREMENT_TYPE:
        return WILDCARD_REQUIREMENT_TYPE
    return normalize_requirement_type(requirement_type).value


class PromptRegistry:
    def __init__(self, cache_ttl_seconds: float = 300, cache_max_size: int = 256):
        self._lock = threading.Lock()
        self._rows: list[PromptTemplate] = []
        self._cache: TTLCache[PromptTemplate] = TTLCache(cache_ttl_seconds, cache_max_size)

    def publish(
        self,
        *,
        task_type: TaskType | str,
        requirement_type: str,
        document_type: DocumentType | str,
        prompt_text: str,
        name: Optional[str] = None,
        system_instruction: str = "",
        output_schema: Optional[OutputSchema] = None,
        generation_config: Optional[GenerationConfig] = None,
        make_default: bool = True,
        description: Optional[str] = None,
        created_by: str = "system",
    ) -> PromptTemplate:
        """
        Append a new version for the key and optionally make it the default.

        Returns:
            The inserted template row.
        """
        task = TaskType(task_type)
        requirement = _requirement_key(requirement_type)
        document = DocumentType(document_type)

        with self._lock:
            same_key = [
                (position, row)
                for position, row in enumerate(self._rows)
                if row.key == (task.value, requirement, document.value)
            ]
            version = max((row.version for _, row in same_key), default=0) + 1
            template = PromptTemplate(
                id=uuid.uuid4().hex,
                task_type=task,
                requirement_type=requirement,
                document_type=document,
                version=version,
                name=name or f"{task.value}:{requirement}:{document.value}",
                prompt_text=prompt_text,
                system_instruction=system_instruction,
                output_schema=output_schema or OutputSchema(),
                generation_config=generation_config or GenerationConfig(),
                is_active=True,
                is_default=make_default,
                description=description,
                created_by=created_by,
            )
            if make_default:
                for position, row in same_key:
                    if row.is_default:
                        self._rows[position] = row.model_copy(update={"is_default": False})
            self._rows.append(template)
            self._cache.clear()

        logger.info(f"Prompt publicado: {template.name} v{version} (default={make_default})")
        return template

    def deactivate(self, template_id: str) -> PromptTemplate:
        """Mark a row inactive. The key is left without a default until the next publish."""
        with self._lock:
            for position, row in enumerate(self._rows):
                if row.id == template_id:
                    updated = row.model_copy(update={"is_active": False, "is_default": False})
                    self._rows[position] = updated
                    self._cache.clear()
                    return updated
        raise KeyError(template_id)

    def _find_default(self, key: tuple[str, str, str]) -> Optional[PromptTemplate]:
        with self._lock:
            for row in self._rows:
                if row.key == key and row.is_active and row.is_default:
                    return row
        return None

    def resolve(
        self,
        task_type: TaskType | str,
        requirement_type: str,
        document_type: DocumentType | str,
    ) -> PromptTemplate:
        """
        Return the active default template for the key, applying the fallback chain.

        Raises:
            MissingPromptError: If no candidate key has an active default.
        """
        task = TaskType(task_type).value
        requirement = _requirement_key(requirement_type)
        document = DocumentType(document_type).value

        cache_key = (task, requirement, document)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        candidates = [
            (task, requirement, document),
            (task, requirement, DocumentType.BOTH.value),
            (task, WILDCARD_REQUIREMENT_TYPE, document),
            (task, WILDCARD_REQUIREMENT_TYPE, DocumentType.BOTH.value),
        ]
        for candidate in dict.fromkeys(candidates):
            template = self._find_default(candidate)
            if template is not None:
                if candidate != cache_key:
                    logger.debug(f"Prompt fallback {cache_key} → {candidate} ({template.name} v{template.version})")
                self._cache.set(cache_key, template)
                return template

        raise MissingPromptError(task, requirement, document)

    def history(
        self,
        task_type: TaskType | str,
        requirement_type: str,
        document_type: DocumentType | str,
    ) -> list[PromptTemplate]:
        """All versions for an exact key, oldest first."""
        key = (TaskType(task_type).value, _requirement_key(requirement_type), DocumentType(document_type).value)
        with self._lock:
            return sorted((row for row in self._rows if row.key == key), key=lambda row: row.version)

    def list_templates(self) -> list[PromptTemplate]:
        with self._lock:
            return list(self._rows)

    def seed(self, templates: Iterable[dict]) -> int:
        """Publish default templates for keys that have no default yet."""
        seeded = 0
        for spec in templates:
            key = (
                TaskType(spec["task_type"]).value,
                _requirement_key(spec["requirement_type"]),
                DocumentType(spec["document_type"]).value,
            )
            if self._find_default(key) is not None:
                continue
            self.publish(**spec)
            seeded += 1
        return seeded
