from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class OutputStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (OutputStatus.COMPLETE, OutputStatus.ERROR)


class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    RETRY_WAIT = "retry_wait"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


def _clean_prompt(value: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValueError("Prompt must not be empty")
    return text


class DemoCreate(BaseModel):
    prompt: str

    @field_validator("prompt")
    @classmethod
    def strip_prompt(cls, value: str) -> str:
        return _clean_prompt(value)


class PromptUpdate(BaseModel):
    prompt: str

    @field_validator("prompt")
    @classmethod
    def strip_prompt(cls, value: str) -> str:
        return _clean_prompt(value)


class SelectedModelsUpdate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_ids: List[str] = Field(default_factory=list)


class RegenerateRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_ids: Optional[List[str]] = Field(default=None, description="Defaults to the demo's selected generatable models")


class NavigateRequest(BaseModel):
    direction: Literal["prev", "next"]


class Demo(BaseModel):
    demo_id: str
    owner_id: str
    prompt: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    archived: bool = False
    selected_models: List[str] = Field(default_factory=list)
    # model id -> pinned output id; absent means "latest"
    selected_outputs: Dict[str, str] = Field(default_factory=dict)
    revision: int = 0


class Output(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    output_id: str
    demo_id: str
    model_id: str
    created_at: datetime
    status: OutputStatus = OutputStatus.PENDING
    html: str = ""
    css: str = ""
    error: Optional[str] = None


class Job(BaseModel):
    """Durable retry obligation for one output."""

    model_config = ConfigDict(protected_namespaces=())

    job_id: str
    demo_id: str
    model_id: str
    prompt: str
    attempts: int = 0
    status: JobStatus = JobStatus.SCHEDULED
    next_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ResolvedOutput(BaseModel):
    output: Output
    version_index: int
    version_count: int


class DemoTile(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    model_name: str
    provider: str
    known: bool
    generatable: bool
    output: Optional[Output] = None
    version_index: Optional[int] = None
    version_count: Optional[int] = None


class DemoView(BaseModel):
    demo: Demo
    is_owner: bool = False
    selected_models: List[str] = Field(default_factory=list)
    outputs: List[ResolvedOutput] = Field(default_factory=list)
    tiles: List[DemoTile] = Field(default_factory=list)


class CatalogEntry(BaseModel):
    id: str
    name: str
    provider: str
    default_enabled: bool
    generatable: bool
    alias_of: Optional[str] = None
