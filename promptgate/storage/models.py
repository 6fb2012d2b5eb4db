"""
Data models for storage layer.

Defines persisted entities and the usage ledger record.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SourceType(str, Enum):
    """Where a run was triggered from."""
    API = "api"
    UI = "ui"
    TESTCASE = "testcase"


class LogType(str, Enum):
    PROMPT_RUN_SUCCESS = "PROMPT_RUN_SUCCESS"
    AI_ERROR = "AI_ERROR"


class LogLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class LanguageModel:
    """A model row as stored in the catalog, with its pricing.

    ``api_key_id`` binds the model to an organization key, which is how
    custom-endpoint models carry their own credential.
    """
    id: int
    name: str
    vendor: str
    prompt_price: float
    completion_price: float
    api_key_id: Optional[int] = None
    parameters_config: Optional[dict] = None


@dataclass(frozen=True)
class ApiKey:
    """An organization-owned vendor key."""
    id: int
    org_id: int
    vendor: str
    key: str
    base_url: Optional[str] = None


@dataclass(frozen=True)
class UsageRecord:
    """Immutable record of one prompt run attempt.

    Append-only: exactly one per attempt, success or failure. Once written,
    these records must never be modified.
    """
    timestamp: datetime
    source: str
    log_type: str
    log_level: str
    org_id: int
    project_id: Optional[int]
    prompt_id: int
    vendor: str
    model: str
    tokens_in: int
    tokens_out: int
    tokens_sum: int
    cost: float
    response_ms: int
    input: str
    output: str
    user_id: Optional[int] = None
    memory_key: Optional[str] = None
    description: Optional[str] = None
    testcase_id: Optional[int] = None
    api_key_id: Optional[int] = None
    attempt_id: Optional[str] = None
