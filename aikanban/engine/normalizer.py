"""Response normalization for model output.

Model completions are supposed to be bare JSON but routinely arrive wrapped in
markdown code fences, with literal newlines inside strings or stray control
characters. Parsing is two-phase:

1. Strip leading/trailing code fences and try `json.loads` as-is. Well-formed
   payloads are returned untouched (embedded newlines in strings survive).
2. Only if that fails, repair the text (drop control characters, flatten
   literal newlines/tabs, collapse whitespace) and parse once more.

A payload that still does not parse raises MalformedResponse with the raw text
attached for logging. The parsed object is then coerced into the pydantic model
for the expected schema.
"""

import json
import logging
import re
from enum import Enum
from typing import Any, Dict, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from aikanban.errors import MalformedResponse, ValidationError
from aikanban.models.insights import (
    ArchiveCategorySet,
    EnhancementSuggestion,
    ParsedTask,
    PriorityRecommendationSet,
    ProductivityInsightSet,
    SubtaskPlan,
    TagList,
)

logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^\s*```[\w.+-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?[ \t]*```\s*$")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_LITERAL_BREAKS = re.compile(r"(?<!\\)[\n\r\t]")
_WHITESPACE_RUN = re.compile(r"\s+")


class ResponseSchema(str, Enum):
    """Expected shape of a model response."""
    TASK_ENHANCEMENT = "TaskEnhancement"
    PARSED_TASK = "ParsedTask"
    TAG_LIST = "TagList"
    SUBTASK_PLAN = "SubtaskPlan"
    PRODUCTIVITY_SUMMARY = "ProductivitySummary"
    PRIORITY_RECOMMENDATIONS = "PriorityRecommendations"
    ARCHIVE_CATEGORIES = "ArchiveCategories"


SCHEMA_MODELS: Dict[ResponseSchema, Type[BaseModel]] = {
    ResponseSchema.TASK_ENHANCEMENT: EnhancementSuggestion,
    ResponseSchema.PARSED_TASK: ParsedTask,
    ResponseSchema.TAG_LIST: TagList,
    ResponseSchema.SUBTASK_PLAN: SubtaskPlan,
    ResponseSchema.PRODUCTIVITY_SUMMARY: ProductivityInsightSet,
    ResponseSchema.PRIORITY_RECOMMENDATIONS: PriorityRecommendationSet,
    ResponseSchema.ARCHIVE_CATEGORIES: ArchiveCategorySet,
}


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang marker and a trailing ``` marker, then trim."""
    text = (text or "").strip()
    text = _LEADING_FENCE.sub("", text, count=1)
    text = _TRAILING_FENCE.sub("", text, count=1)
    return text.strip()


def repair_json_text(text: str) -> str:
    """Best-effort cleanup of almost-JSON text.

    Removes control characters (other than newline, carriage return and tab),
    turns unescaped literal newlines/carriage returns/tabs into spaces and
    collapses whitespace runs.
    """
    repaired = _CONTROL_CHARS.sub("", text)
    repaired = _LITERAL_BREAKS.sub(" ", repaired)
    repaired = _WHITESPACE_RUN.sub(" ", repaired)
    return repaired.strip()


def parse_json_payload(raw_text: str) -> Any:
    """Parse model output into Python data using the two-phase strategy.

    Raises:
        MalformedResponse: If the text does not parse even after repair
    """
    stripped = strip_code_fences(raw_text)

    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        logger.debug("Direct JSON parse failed, retrying with repaired text")

    repaired = repair_json_text(stripped)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse model response after repair: {e}. Response: {raw_text[:100]}")
        raise MalformedResponse(f"Model response is not valid JSON: {e.msg}", raw_text=raw_text) from e


def normalize_response(raw_text: str, schema: ResponseSchema) -> BaseModel:
    """Parse raw model output and coerce it into the record for `schema`.

    Args:
        raw_text: Completion text as returned by the model
        schema: Expected result shape

    Returns:
        Instance of the pydantic model registered for the schema

    Raises:
        MalformedResponse: If the text is not JSON, is not an object, or cannot be coerced
        ValidationError: If a parsed task has no usable title
    """
    schema = ResponseSchema(schema)
    payload = parse_json_payload(raw_text)

    if not isinstance(payload, dict):
        raise MalformedResponse(
            f"Expected a JSON object for {schema.value}, got {type(payload).__name__}",
            raw_text=raw_text,
        )

    model = SCHEMA_MODELS[schema]
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        if schema == ResponseSchema.PARSED_TASK and any(err["loc"][:1] == ("title",) for err in e.errors()):
            raise ValidationError("Parsed task has no title") from e
        logger.warning(f"Model response does not match {schema.value}: {e.error_count()} errors")
        raise MalformedResponse(f"Model response does not match {schema.value}", raw_text=raw_text) from e
