"""
Hybrid task parsing engine.

Per input, decide between the free local parser and a paid model call, run it,
and learn from every successful model parse so similar inputs stay local next time.

State (patterns, projects, usage) is loaded from the injected storage at the start
of each call and written back at the end. The engine holds no other mutable state;
hosts that run calls concurrently must serialise them per storage.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, ValidationError

from database import PATTERNS_KEY, PROJECTS_KEY, USAGE_STATS_KEY, Storage
from deadlines import reference_now
from errors import InvalidInput, QuotaExceeded
from models import (
    Decision,
    EngineConfig,
    ParseResult,
    Pattern,
    PatternImport,
    Project,
    SingleTask,
    Task,
    TaskBatch,
    UsageStats,
)
from patterns import apply_learned_patterns, learn_from_remote_response, merge_imported_patterns
from remote import Err, RemoteParser, parse_remotely
from rule_parser import DEFAULT_PROJECT, learn_project, rule_based_parse
from strategy import decide_parsing_strategy
from usage import UsageTracker

logger = logging.getLogger(__name__)


@dataclass
class EngineState:
    patterns: list[Pattern]
    projects: list[Project]
    usage: UsageStats


def _load_models(storage: Storage, key: str, model: type[BaseModel]) -> list:
    raw = storage.load(key)
    if not isinstance(raw, list):
        return []
    items = []
    for item in raw:
        try:
            items.append(model.model_validate(item))
        except ValidationError:
            logger.warning(f"Skipping unreadable entry in '{key}'")
    return items


def load_state(storage: Storage) -> EngineState:
    """Read all three blobs. Anything missing or unreadable starts empty."""
    raw_usage = storage.load(USAGE_STATS_KEY)
    try:
        usage = UsageStats.model_validate(raw_usage) if isinstance(raw_usage, dict) else UsageStats()
    except ValidationError:
        logger.warning("Unreadable usage stats, starting empty")
        usage = UsageStats()

    return EngineState(
        patterns=_load_models(storage, PATTERNS_KEY, Pattern),
        projects=_load_models(storage, PROJECTS_KEY, Project),
        usage=usage,
    )


def save_state(storage: Storage, state: EngineState) -> None:
    storage.save(PATTERNS_KEY, [p.model_dump() for p in state.patterns])
    storage.save(PROJECTS_KEY, [p.model_dump() for p in state.projects])
    storage.save(USAGE_STATS_KEY, state.usage.model_dump())


class TaskEngine:
    def __init__(
        self,
        storage: Storage,
        remote: Optional[RemoteParser] = None,
        config: Optional[EngineConfig] = None,
        identity: str = "local",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.remote = remote
        self.config = config or EngineConfig()
        self.identity = identity
        self.clock = clock

    def _now(self) -> datetime:
        return reference_now(self.clock() if self.clock else None)

    async def parse_task(
        self,
        input_text: str,
        voice_duration_seconds: float = 0,
        force_cloud: bool = False,
        coach_mode: bool = False,
    ) -> ParseResult:
        """Parse one input into a SingleTask, or a TaskBatch in coach mode."""
        if not input_text or not input_text.strip():
            raise InvalidInput("Input required")

        now = self._now()
        state = load_state(self.storage)
        usage = UsageTracker(state.usage)
        mode = "coach" if coach_mode else "parse"

        decision = decide_parsing_strategy(
            input_text,
            voice_duration_seconds,
            force_cloud,
            coach_mode,
            state.patterns,
            state.projects,
            self.config,
        )
        logger.info(
            f"Strategy: {decision.strategy}, Confidence: {decision.confidence}, Reason: {decision.reason}"
        )

        rate_limited = False
        if decision.strategy == "local":
            tasks = [self.parse_locally(input_text, state, now)]
            parsed_by = "local"
        elif not usage.can_make_api_call(self.identity, self.config.daily_limit, now):
            logger.info("Rate limit reached, falling back to local")
            tasks = [self.parse_locally(input_text, state, now)]
            parsed_by = "local_fallback"
            rate_limited = True
        else:
            tasks, parsed_by, rate_limited = await self._parse_with_remote(input_text, mode, state, usage, now)

        usage.record_parse(parsed_by)
        save_state(self.storage, state)
        return self._build_result(mode, tasks, decision, parsed_by, rate_limited)

    def parse_locally(self, input_text: str, state: EngineState, now: Optional[datetime] = None) -> Task:
        """Learned patterns first, rule-based parsing otherwise."""
        task = apply_learned_patterns(input_text, state.patterns, now)
        if task:
            if task.project != DEFAULT_PROJECT:
                learn_project(state.projects, task.project, now)
            return task
        return rule_based_parse(input_text, state.projects, state.patterns, now)

    async def _parse_with_remote(
        self,
        input_text: str,
        mode: str,
        state: EngineState,
        usage: UsageTracker,
        now: datetime,
    ) -> tuple[list[Task], str, bool]:
        context = {"timezone": now.tzname() or "UTC", "current_date": now.isoformat()}
        outcome = await parse_remotely(
            self.remote,
            input_text,
            mode,
            [p.name for p in state.projects],
            context,
            self.config.remote_timeout_seconds,
            now,
        )
        if self.remote is not None:
            usage.record_api_call(self.identity, now)

        if isinstance(outcome, Err):
            logger.warning(f"Remote parse failed, parsing locally: {outcome.error}")
            task = rule_based_parse(input_text, state.projects, state.patterns, now)
            return [task], "cloud_fallback", isinstance(outcome.error, QuotaExceeded)

        payload = outcome.value
        if not payload.tasks:
            logger.warning("Model returned no tasks, parsing locally")
            task = rule_based_parse(input_text, state.projects, state.patterns, now)
            return [task], "cloud_fallback", False

        if payload.malformed:
            return payload.tasks, "cloud_fallback", False

        for task in payload.tasks:
            if task.project != DEFAULT_PROJECT:
                learn_project(state.projects, task.project, now)

        # Brain dumps map one input to many tasks, nothing to learn from them
        if mode == "parse":
            state.patterns = learn_from_remote_response(
                input_text, payload.tasks[0], state.patterns, self.config.pattern_capacity, now
            )
        return payload.tasks, "cloud", False

    def _build_result(
        self,
        mode: str,
        tasks: list[Task],
        decision: Decision,
        parsed_by: str,
        rate_limited: bool,
    ) -> ParseResult:
        outcome = dict(
            parsed_by=parsed_by,
            confidence=decision.confidence,
            reason=decision.reason,
            rate_limited=rate_limited,
        )
        if mode == "coach":
            return TaskBatch(tasks=tasks, **outcome)
        return SingleTask(task=tasks[0], **outcome)

    def can_make_api_call(self) -> bool:
        state = load_state(self.storage)
        return UsageTracker(state.usage).can_make_api_call(self.identity, self.config.daily_limit, self._now())

    def remaining_api_calls(self) -> int:
        state = load_state(self.storage)
        return UsageTracker(state.usage).remaining(self.identity, self.config.daily_limit, self._now())

    def get_stats(self) -> dict:
        state = load_state(self.storage)
        now = self._now()
        usage = UsageTracker(state.usage)
        total = state.usage.local_parses + state.usage.cloud_parses
        local_percent = state.usage.local_parses / total * 100 if total else 0.0
        return {
            "total_inputs": state.usage.total_inputs,
            "local_parses": state.usage.local_parses,
            "cloud_parses": state.usage.cloud_parses,
            "local_percent": f"{local_percent:.1f}%",
            "learned_patterns": len(state.patterns),
            "known_projects": len(state.projects),
            "api_calls_today": usage.count(self.identity, now),
            "api_calls_remaining": usage.remaining(self.identity, self.config.daily_limit, now),
        }

    def export_patterns(self) -> dict:
        """Backup of learned patterns and projects."""
        state = load_state(self.storage)
        return {
            "patterns": [p.model_dump() for p in state.patterns],
            "projects": [p.model_dump() for p in state.projects],
            "exported_at": self._now().isoformat(),
        }

    def import_patterns(self, data: Union[PatternImport, dict[str, Any]]) -> dict:
        """Append patterns from a backup and re-learn its projects."""
        if not isinstance(data, PatternImport):
            data = PatternImport.model_validate(data)

        now = self._now()
        state = load_state(self.storage)
        state.patterns = merge_imported_patterns(state.patterns, data.patterns, self.config.pattern_capacity)
        for project in data.projects:
            learn_project(state.projects, project.name, now)
        save_state(self.storage, state)
        return {"patterns": len(state.patterns), "projects": len(state.projects)}
