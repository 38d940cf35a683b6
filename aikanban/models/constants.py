"""Constants for aikanban.

This module centralizes all magic numbers and default values used throughout the application.
"""

import os
from dotenv import load_dotenv

from aikanban.models.task import TaskPriority, TaskStatus

load_dotenv()


# Task defaults
DEFAULT_STATUS = TaskStatus.BACKLOG
DEFAULT_PRIORITY = TaskPriority.MEDIUM
TASK_ID_PREFIX = "task_"
TASK_ID_SUFFIX_LENGTH = 9

# Remote model defaults
MISTRAL_API_BASE = os.getenv("MISTRAL_API_BASE", "https://api.mistral.ai/v1")
MISTRAL_MODEL = os.getenv("MISTRAL_MODEL", "mistral-large-latest")
DEFAULT_MAX_TOKENS = 1500
DEFAULT_TEMPERATURE = 0.7
MISTRAL_TIMEOUT_SEC = float(os.getenv("MISTRAL_TIMEOUT_SEC", "30"))

# Pause between the productivity and prioritization calls (remote rate limit)
INSIGHTS_PACING_SECONDS = float(os.getenv("INSIGHTS_PACING_SECONDS", "1.0"))

# Prompt payload truncation (characters of serialized task JSON)
TASK_SUMMARY_MAX_CHARS = 1000
ARCHIVE_SUMMARY_MAX_CHARS = 2000

# Synthesized summary values
UNKNOWN_AVERAGE_TIME = "N/A"
