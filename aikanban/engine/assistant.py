"""AI-assisted task features.

Each feature builds a prompt, sends it through the Mistral client, runs the
completion through the response normalizer and applies local defaults:

1. Missing credentials surface as ConfigurationError before any network call
2. Transport failures surface as RequestFailed, unparseable output as MalformedResponse
3. Nothing is retried here; retry policy belongs to the caller
4. Results are never merged into board state here; the reconciler does that
"""

import asyncio
import json
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from aikanban.engine.normalizer import ResponseSchema, normalize_response
from aikanban.engine.requests import RequestScope
from aikanban.errors import ValidationError
from aikanban.integrations.mistral_client import MistralClient
from aikanban.models.constants import (
    ARCHIVE_SUMMARY_MAX_CHARS,
    INSIGHTS_PACING_SECONDS,
    TASK_SUMMARY_MAX_CHARS,
    UNKNOWN_AVERAGE_TIME,
)
from aikanban.models.insights import (
    ArchiveCategory,
    ArchiveCategorySet,
    EnhancementSuggestion,
    ParsedTask,
    PriorityRecommendationSet,
    ProductivityInsightSet,
    ProductivitySummary,
    SubtaskPlan,
)
from aikanban.models.task import Task, TaskStatus

logger = logging.getLogger(__name__)

JSON_ONLY = "Respond ONLY with valid JSON, no markdown formatting. Use this exact structure:"

ENHANCE_SYSTEM_PROMPT = f"""You are an AI assistant that helps improve task management. Analyze the given task and provide suggestions for improvement, better descriptions, appropriate tags, and priority recommendations. {JSON_ONLY}
{{
  "suggestions": ["suggestion1", "suggestion2"],
  "improvedDescription": "enhanced description",
  "recommendedTags": ["tag1", "tag2"],
  "recommendedPriority": "low|medium|high",
  "estimatedTime": "time estimate",
  "subtasks": ["subtask1", "subtask2"]
}}"""

ENHANCE_USER_TEMPLATE = """Analyze this task:
Title: {title}
Description: {description}
Current Priority: {priority}
Current Tags: {tags}"""

SUBTASKS_SYSTEM_PROMPT = f"""You are a project management AI. Break down the given task into smaller, actionable subtasks. {JSON_ONLY}
{{
  "subtasks": [
    {{
      "title": "subtask title",
      "description": "subtask description",
      "priority": "low|medium|high",
      "tags": ["tag1", "tag2"]
    }}
  ]
}}"""

SUBTASKS_USER_TEMPLATE = """Break down this task into smaller subtasks:
Title: {title}
Description: {description}"""

PARSE_SYSTEM_PROMPT = f"""You are a natural language parser for task creation. Parse the user's input and extract task information. {JSON_ONLY}
{{
  "title": "extracted title",
  "description": "extracted description",
  "priority": "low|medium|high",
  "tags": ["tag1", "tag2"],
  "status": "backlog|todo|inprogress|done"
}}"""

PARSE_USER_TEMPLATE = 'Parse this natural language input into a structured task: "{text}"'

TAGS_SYSTEM_PROMPT = f"""You are a task categorization AI. Suggest relevant tags for the given task. {JSON_ONLY}
{{
  "tags": ["tag1", "tag2", "tag3"]
}}"""

TAGS_USER_TEMPLATE = """Suggest tags for this task:
Title: {title}
Description: {description}"""

PRODUCTIVITY_SYSTEM_PROMPT = (
    "You are a productivity analyst. Respond with ONLY valid JSON. No markdown, no code blocks. "
    "Keep all text in single lines without line breaks. Use simple short descriptions under 100 characters. "
    'Required structure: {"insights":[{"type":"bottleneck","title":"Short title","description":"Brief description",'
    '"severity":"high"}],"summary":{"totalTasks":5,"completionRate":"60%","averageTimeInProgress":"2 days",'
    '"mostCommonTags":["tag1"]}}'
)

PRODUCTIVITY_USER_TEMPLATE = (
    "Analyze {count} tasks. Provide 2-3 insights max. Keep descriptions under 100 chars. Tasks: {tasks}"
)

PRIORITY_SYSTEM_PROMPT = (
    "You are a task prioritization AI. Respond with ONLY valid JSON. No markdown, no code blocks. "
    "Keep reasons under 80 characters. Required structure: "
    '{"recommendations":[{"taskId":"task_123","currentPriority":"low","recommendedPriority":"high",'
    '"reason":"Short reason"}]}'
)

PRIORITY_USER_TEMPLATE = (
    "Suggest priority changes for {count} tasks. Max 3 recommendations. Keep reasons under 80 chars. Tasks: {tasks}"
)

ARCHIVE_SYSTEM_PROMPT = (
    "You are an AI that organizes archived tasks intelligently. Group and sort tasks by themes, projects, "
    "or categories. Respond with ONLY valid JSON. Structure: "
    '{"categories":[{"name":"Category Name","description":"Brief description","taskIds":["id1","id2"]}]}'
)

ARCHIVE_USER_TEMPLATE = (
    "Organize these {count} archived tasks into logical categories. Max 5 categories. Tasks: {tasks}"
)

# Initialize Mistral client (singleton pattern)
_mistral_client: Optional[MistralClient] = None


def _get_mistral_client() -> MistralClient:
    """Get or create Mistral client instance."""
    global _mistral_client
    if _mistral_client is None:
        _mistral_client = MistralClient()
    return _mistral_client


def _messages(system: str, user: str) -> List[dict]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


def _truncated_json(items: list, max_chars: int) -> str:
    return json.dumps(items, default=str)[:max_chars]


async def _ask(client: Optional[MistralClient], system: str, user: str, schema: ResponseSchema):
    client = client or _get_mistral_client()
    raw = await client.complete(_messages(system, user))
    return normalize_response(raw, schema)


async def enhance_task(task: Task, client: Optional[MistralClient] = None) -> EnhancementSuggestion:
    """Ask the model for description, tag, priority and time-estimate suggestions."""
    prompt = ENHANCE_USER_TEMPLATE.format(
        title=task.title,
        description=task.description or "No description provided",
        priority=task.priority,
        tags=", ".join(task.tags) if task.tags else "No tags",
    )
    suggestion = await _ask(client, ENHANCE_SYSTEM_PROMPT, prompt, ResponseSchema.TASK_ENHANCEMENT)
    logger.debug(f"Task {task.id} enhancement: {len(suggestion.suggestions)} suggestions")
    return suggestion


async def generate_subtasks(
    title: str,
    description: Optional[str] = None,
    client: Optional[MistralClient] = None,
) -> SubtaskPlan:
    """Break a task down into subtask drafts."""
    prompt = SUBTASKS_USER_TEMPLATE.format(title=title, description=description or "")
    return await _ask(client, SUBTASKS_SYSTEM_PROMPT, prompt, ResponseSchema.SUBTASK_PLAN)


async def parse_natural_language(text: str, client: Optional[MistralClient] = None) -> ParsedTask:
    """Turn free text such as "call the dentist tomorrow, urgent" into a task record.

    Raises:
        ValidationError: If the input is blank or the model returns no title
    """
    if not text or not text.strip():
        raise ValidationError("Input text is required")
    prompt = PARSE_USER_TEMPLATE.format(text=text.strip())
    return await _ask(client, PARSE_SYSTEM_PROMPT, prompt, ResponseSchema.PARSED_TASK)


async def suggest_tags(
    title: str,
    description: Optional[str] = None,
    client: Optional[MistralClient] = None,
) -> List[str]:
    prompt = TAGS_USER_TEMPLATE.format(title=title, description=description or "")
    result = await _ask(client, TAGS_SYSTEM_PROMPT, prompt, ResponseSchema.TAG_LIST)
    return result.tags


def synthesize_summary(tasks: Sequence[Task]) -> ProductivitySummary:
    """Build the summary locally when the model leaves it out."""
    total = len(tasks)
    done = sum(1 for task in tasks if task.status == TaskStatus.DONE.value)
    rate = int(done * 100 / total + 0.5) if total else 0
    return ProductivitySummary(
        total_tasks=total,
        completion_rate=f"{rate}%",
        average_time_in_progress=UNKNOWN_AVERAGE_TIME,
        most_common_tags=most_common_tags(tasks),
    )


def most_common_tags(tasks: Iterable[Task], limit: int = 3) -> List[str]:
    counts = Counter(tag for task in tasks for tag in task.tags)
    return [tag for tag, _ in counts.most_common(limit)]


async def analyze_productivity(
    tasks: Sequence[Task],
    client: Optional[MistralClient] = None,
) -> ProductivityInsightSet:
    """Ask for productivity insights; the summary is always present in the result."""
    summary = [
        {
            "title": task.title,
            "status": task.status,
            "priority": task.priority,
            "createdAt": task.created_at.isoformat(),
            "tags": task.tags,
        }
        for task in tasks
    ]
    prompt = PRODUCTIVITY_USER_TEMPLATE.format(
        count=len(tasks),
        tasks=_truncated_json(summary, TASK_SUMMARY_MAX_CHARS),
    )
    result = await _ask(client, PRODUCTIVITY_SYSTEM_PROMPT, prompt, ResponseSchema.PRODUCTIVITY_SUMMARY)
    if result.summary is None:
        logger.debug("Model omitted productivity summary, synthesizing locally")
        result = result.model_copy(update={"summary": synthesize_summary(tasks)})
    return result


async def smart_prioritization(
    tasks: Sequence[Task],
    client: Optional[MistralClient] = None,
) -> PriorityRecommendationSet:
    """Ask for priority changes. Recommendations for unknown task ids are dropped."""
    payload = [
        {"id": task.id, "title": task.title, "priority": task.priority, "status": task.status}
        for task in tasks
    ]
    prompt = PRIORITY_USER_TEMPLATE.format(
        count=len(tasks),
        tasks=_truncated_json(payload, TASK_SUMMARY_MAX_CHARS),
    )
    result = await _ask(client, PRIORITY_SYSTEM_PROMPT, prompt, ResponseSchema.PRIORITY_RECOMMENDATIONS)
    return filter_recommendations(result, tasks)


def filter_recommendations(recommendations: PriorityRecommendationSet, tasks: Iterable[Task]) -> PriorityRecommendationSet:
    known = {task.id for task in tasks}
    kept = [rec for rec in recommendations.recommendations if rec.task_id in known]
    dropped = len(recommendations.recommendations) - len(kept)
    if dropped:
        logger.debug(f"Dropped {dropped} recommendations referencing unknown tasks")
    return PriorityRecommendationSet(recommendations=kept)


async def sort_archived_tasks(
    tasks: Sequence[Task],
    client: Optional[MistralClient] = None,
) -> ArchiveCategorySet:
    """Group archived tasks into categories. Ids outside `tasks` are dropped."""
    payload = [
        {
            "id": task.id,
            "title": task.title,
            "description": task.description,
            "priority": task.priority,
            "tags": task.tags,
            "archivedAt": task.archived_at.isoformat() if task.archived_at else None,
        }
        for task in tasks
    ]
    prompt = ARCHIVE_USER_TEMPLATE.format(
        count=len(tasks),
        tasks=_truncated_json(payload, ARCHIVE_SUMMARY_MAX_CHARS),
    )
    result = await _ask(client, ARCHIVE_SYSTEM_PROMPT, prompt, ResponseSchema.ARCHIVE_CATEGORIES)
    return filter_categories(result, tasks)


def filter_categories(categories: ArchiveCategorySet, tasks: Iterable[Task]) -> ArchiveCategorySet:
    known = {task.id for task in tasks}
    kept = [
        ArchiveCategory(
            name=category.name,
            description=category.description,
            task_ids=[task_id for task_id in category.task_ids if task_id in known],
        )
        for category in categories.categories
    ]
    return ArchiveCategorySet(categories=kept)


@dataclass
class InsightsBundle:
    """Everything the insights view shows."""

    productivity: ProductivityInsightSet
    priorities: PriorityRecommendationSet


async def load_insights(
    tasks: Sequence[Task],
    scope: Optional[RequestScope] = None,
    client: Optional[MistralClient] = None,
    pacing_seconds: float = INSIGHTS_PACING_SECONDS,
) -> Optional[InsightsBundle]:
    """Fetch productivity insights, then priority recommendations.

    The calls run one after the other with a pause in between to stay under the
    remote rate limit. Returns None if `scope` was closed before both finished.
    """
    scope = scope or RequestScope("insights")
    token = scope.issue()

    productivity = await analyze_productivity(tasks, client=client)
    if not token.valid:
        logger.debug("Insights view closed, skipping prioritization")
        return None

    await asyncio.sleep(pacing_seconds)
    priorities = await smart_prioritization(tasks, client=client)
    if not token.valid:
        logger.debug("Insights view closed, discarding results")
        return None

    return InsightsBundle(productivity=productivity, priorities=priorities)
