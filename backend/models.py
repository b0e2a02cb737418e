from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Literal, Optional, Union


class Chunk(BaseModel):
    id: str
    name: str
    completed: bool = False
    order: int  # dense, 0..n-1

class Task(BaseModel):
    id: str
    name: str
    project: str = "Inbox"
    deadline: str  # ISO-8601 timestamp
    chunks: list[Chunk]
    completed: bool = False
    created_at: str  # ISO format datetime string

class Project(BaseModel):
    name: str  # display form, fixed at first learn
    normalized: str
    usage_count: int = 1
    created_at: str

class TaskNameTemplate(BaseModel):
    original: str
    result: Optional[str] = None

class ProjectPattern(BaseModel):
    keyword: str  # up to 10 chars preceding the project name in the input
    project: str

class Pattern(BaseModel):
    id: str
    normalized: str
    original_input: str
    task_name_template: Optional[TaskNameTemplate] = None
    project_pattern: Optional[ProjectPattern] = None
    default_project: Optional[str] = None
    chunks: list[str] = Field(default_factory=list)
    created_at: str
    use_count: int = 1
    success_rate: float = 1.0

class UsageCounter(BaseModel):
    period_key: str
    count: int = 0

class UsageStats(BaseModel):
    counters: dict[str, UsageCounter] = Field(default_factory=dict)
    total_inputs: int = 0
    local_parses: int = 0
    cloud_parses: int = 0


class Decision(BaseModel):
    strategy: Literal["local", "cloud"]
    confidence: float
    reason: str


class ParseOutcome(BaseModel):
    parsed_by: str = "local"  # local, local_fallback, cloud, cloud_fallback
    confidence: float = 0.0
    reason: str = ""
    rate_limited: bool = False

class SingleTask(ParseOutcome):
    kind: Literal["single"] = "single"
    task: Task

class TaskBatch(ParseOutcome):
    kind: Literal["batch"] = "batch"
    tasks: list[Task]

ParseResult = Annotated[Union[SingleTask, TaskBatch], Field(discriminator="kind")]


class EngineConfig(BaseModel):
    max_free_calls_per_day: int = 5
    max_paid_calls_per_day: int = 50
    voice_length_threshold_seconds: float = 15
    min_confidence_for_local: float = 0.75
    is_paid_user: bool = False
    remote_timeout_seconds: float = 20
    pattern_capacity: int = 100

    @property
    def daily_limit(self) -> int:
        return self.max_paid_calls_per_day if self.is_paid_user else self.max_free_calls_per_day


# HTTP request bodies

class RequestContext(BaseModel):
    timezone: str = "UTC"
    current_date: Optional[str] = Field(default=None, alias="currentDate")

    model_config = ConfigDict(populate_by_name=True)

class ProxyParseRequest(BaseModel):
    input: str
    mode: Literal["parse", "coach"] = "parse"
    user_projects: list[str] = Field(default_factory=list, alias="userProjects")
    context: Optional[RequestContext] = None

    model_config = ConfigDict(populate_by_name=True)

class TaskParseRequest(BaseModel):
    input: str
    voice_duration_seconds: float = Field(default=0, alias="voiceDurationSeconds")
    force_cloud: bool = Field(default=False, alias="forceCloud")
    coach_mode: bool = Field(default=False, alias="coachMode")

    model_config = ConfigDict(populate_by_name=True)

class PatternImport(BaseModel):
    patterns: list[Pattern] = Field(default_factory=list)
    projects: list[Project] = Field(default_factory=list)
