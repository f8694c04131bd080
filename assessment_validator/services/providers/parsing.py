"""
Parsing of raw model output into the normalised ``StructuredVerdict``.

Models wrap JSON in markdown fences, use synonyms for the verdict, express
confidence as percentages or words, and cite evidence as free text or as the
``E<n>`` labels the retrieval prompt hands them. Everything is mapped here so
results look the same whatever backend produced them.
"""

import json
import re
from typing import Any, Sequence

from assessment_validator.core.exceptions import SchemaValidationError
from assessment_validator.schemas import Citation, OutputSchema, RetrievedChunk, StructuredVerdict, Verdict

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")
_EVIDENCE_LABEL = re.compile(r"^\[?\s*E(\d+)\s*\]?$", re.IGNORECASE)
_PAGE_NUMBER = re.compile(r"\bpages?\s*(\d+)", re.IGNORECASE)

# Claves normalizadas: minusculas, separadores colapsados a un espacio
VERDICT_ALIASES: dict[str, str] = {
    "met": Verdict.MET.value,
    "pass": Verdict.MET.value,
    "passed": Verdict.MET.value,
    "compliant": Verdict.MET.value,
    "covered": Verdict.MET.value,
    "satisfied": Verdict.MET.value,
    "fully met": Verdict.MET.value,
    "partial": Verdict.PARTIALLY_MET.value,
    "partially met": Verdict.PARTIALLY_MET.value,
    "partially compliant": Verdict.PARTIALLY_MET.value,
    "partially covered": Verdict.PARTIALLY_MET.value,
    "not met": Verdict.NOT_MET.value,
    "notmet": Verdict.NOT_MET.value,
    "fail": Verdict.NOT_MET.value,
    "failed": Verdict.NOT_MET.value,
    "non compliant": Verdict.NOT_MET.value,
    "not compliant": Verdict.NOT_MET.value,
    "not covered": Verdict.NOT_MET.value,
    "not found": Verdict.NOT_MET.value,
    "missing": Verdict.NOT_MET.value,
}

_CONFIDENCE_WORDS = {"high": 0.9, "medium": 0.6, "moderate": 0.6, "low": 0.3}
_EMPTY_MARKERS = {"", "n/a", "na", "none", "null", "-"}


def _alias_key(value: str) -> str:
    return re.sub(r"[\s_\-]+", " ", value).strip().lower()


def extract_json(raw: str) -> Any:
    """
    Decode the JSON object in a model response.

    Tries the whole text, then a fenced code block, then the outermost braces.

    Raises:
        SchemaValidationError: If no JSON object can be decoded.
    """
    text = (raw or "").strip()
    candidates = [text]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    bare = _BARE_OBJECT.search(text)
    if bare:
        candidates.append(bare.group(0))

    for candidate in candidates:
        if not candidate:
            continue
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise SchemaValidationError(
        "Model output is not valid JSON",
        errors=["no decodable JSON object found"],
        raw_output=raw,
    )


def normalize_verdict(value: Any) -> Verdict:
    if isinstance(value, Verdict):
        return value
    if isinstance(value, str):
        key = _alias_key(value)
        if key in VERDICT_ALIASES:
            return Verdict(VERDICT_ALIASES[key])
        if "partial" in key:
            return Verdict.PARTIALLY_MET
    raise SchemaValidationError("Unrecognised verdict", errors=[f"status: {value!r} is not Met, Partially Met or Not Met"])


def normalize_confidence(value: Any) -> float | None:
    """Map 0-1 floats, 0-100 percentages and high/medium/low words onto [0, 1]."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        cleaned = value.strip().lower().rstrip("%")
        if cleaned in _CONFIDENCE_WORDS:
            return _CONFIDENCE_WORDS[cleaned]
        try:
            value = float(cleaned)
        except ValueError:
            return None
    if isinstance(value, (int, float)):
        number = float(value)
        if 0.0 <= number <= 1.0:
            return number
        if 1.0 < number <= 100.0:
            return number / 100.0
    return None


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        value = "\n".join(str(item) for item in value if item is not None)
    text = str(value).strip()
    return None if text.lower() in _EMPTY_MARKERS else text


def _first(payload: dict, *keys: str) -> Any:
    for key in keys:
        if payload.get(key) not in (None, ""):
            return payload[key]
    return None


def _page_of(value: Any) -> int | None:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value.strip().isdigit():
            return int(value.strip())
        match = _PAGE_NUMBER.search(value)
        if match:
            return int(match.group(1))
    return None


def _citation_from_label(label: str, passages: Sequence[RetrievedChunk]) -> Citation | None:
    match = _EVIDENCE_LABEL.match(label.strip())
    if not match:
        return None
    position = int(match.group(1)) - 1
    if not 0 <= position < len(passages):
        return None
    passage = passages[position]
    return Citation(
        document_id=passage.document_id,
        chunk_index=passage.chunk_index,
        excerpt=passage.text[:300],
    )


def normalize_citations(raw: Any, passages: Sequence[RetrievedChunk] = ()) -> list[Citation]:
    if raw is None:
        return []
    items = raw if isinstance(raw, list) else [raw]
    citations: list[Citation] = []
    for item in items:
        if isinstance(item, str):
            text = item.strip()
            if not text or text.lower() in _EMPTY_MARKERS:
                continue
            citations.append(_citation_from_label(text, passages) or Citation(location=text, page=_page_of(text)))
        elif isinstance(item, dict):
            label = _first(item, "evidence", "label", "evidence_id")
            resolved = _citation_from_label(str(label), passages) if label else None
            if resolved is not None:
                citations.append(resolved)
                continue
            location = _first(item, "location", "section", "documentName", "document_name", "document")
            citations.append(
                Citation(
                    document_id=_first(item, "document_id", "documentId"),
                    chunk_index=item.get("chunk_index"),
                    page=_page_of(_first(item, "pageNumbers", "page_numbers", "page", "page_number")),
                    location=str(location) if location is not None else None,
                    excerpt=_first(item, "excerpt", "quote", "text"),
                )
            )
    return citations


def build_verdict(payload: dict, passages: Sequence[RetrievedChunk] = ()) -> StructuredVerdict:
    """Map a schema-valid payload onto ``StructuredVerdict``."""
    raw_verdict = _first(payload, "status", "verdict", "result")
    if raw_verdict is None:
        raise SchemaValidationError("Missing verdict", errors=["status: field required"])
    return StructuredVerdict(
        verdict=normalize_verdict(raw_verdict),
        reasoning=_clean_text(_first(payload, "reasoning", "explanation", "rationale")) or "",
        citations=normalize_citations(payload.get("citations"), passages),
        confidence=normalize_confidence(payload.get("confidence")),
        mapped_content=_clean_text(payload.get("mapped_content")),
        gaps=_clean_text(_first(payload, "unmapped_content", "gaps", "gap_analysis")),
        smart_question=_clean_text(_first(payload, "smart_question", "smart_task")),
        benchmark_answer=_clean_text(payload.get("benchmark_answer")),
    )


def parse_structured_output(
    raw: str,
    schema: OutputSchema,
    passages: Sequence[RetrievedChunk] = (),
) -> StructuredVerdict:
    """
    Decode, schema-check and normalise one model response.

    Raises:
        SchemaValidationError: On undecodable JSON, schema violations or an
            unrecognised verdict.
    """
    payload = extract_json(raw)
    try:
        validated = schema.validate_payload(payload, aliases=VERDICT_ALIASES) if schema.fields else payload
        if not isinstance(validated, dict):
            raise SchemaValidationError("Model output is not a JSON object", errors=["expected object"])
        return build_verdict(validated, passages)
    except SchemaValidationError as exc:
        exc.raw_output = exc.raw_output or (raw[:2000] if raw else None)
        raise


def parse_payload(raw: str, schema: OutputSchema) -> dict[str, Any]:
    """
    Decode and schema-check a response that carries no verdict.

    Empty markers such as "N/A" in string fields become ``None``.

    Raises:
        SchemaValidationError: On undecodable JSON or schema violations.
    """
    payload = extract_json(raw)
    try:
        validated = schema.validate_payload(payload) if schema.fields else payload
        if not isinstance(validated, dict):
            raise SchemaValidationError("Model output is not a JSON object", errors=["expected object"])
    except SchemaValidationError as exc:
        exc.raw_output = exc.raw_output or (raw[:2000] if raw else None)
        raise
    return {key: _clean_text(value) if isinstance(value, str) else value for key, value in validated.items()}
