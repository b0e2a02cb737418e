"""
Learned pattern store.

Patterns are captured from successful model parses and replayed on similar
future inputs so those can be answered locally. Lookup is fuzzy: the first
stored pattern whose normalized key is similar enough wins, in store order.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Union

from chunks import build_chunks, generate_chunks
from deadlines import extract_deadline, reference_now
from models import Chunk, Pattern, ProjectPattern, Task, TaskNameTemplate
from normalizer import normalize, patterns_match
from rule_parser import DEFAULT_PROJECT, capitalize_first, make_task

logger = logging.getLogger(__name__)

PATTERN_CAPACITY = 100
DEFAULT_MATCH_CONFIDENCE = 0.8
PROJECT_KEYWORD_LENGTH = 10


@dataclass
class PatternMatch:
    pattern: Pattern
    confidence: float


def find_matching_pattern(text: str, patterns: Iterable[Pattern]) -> Optional[PatternMatch]:
    key = normalize(text)
    for pattern in patterns:
        if patterns_match(key, pattern.normalized):
            return PatternMatch(pattern, pattern.success_rate or DEFAULT_MATCH_CONFIDENCE)
    return None


def create_task_name_template(text: str, result_name: Optional[str]) -> TaskNameTemplate:
    return TaskNameTemplate(original=text, result=result_name)


def create_project_pattern(text: str, project: Optional[str]) -> Optional[ProjectPattern]:
    """Remember the few characters that preceded the project name in the input."""
    if not project:
        return None
    lower_text = text.lower()
    index = lower_text.find(project.lower())
    if index < 0:
        return None
    keyword = lower_text[max(0, index - PROJECT_KEYWORD_LENGTH):index].strip()
    return ProjectPattern(keyword=keyword, project=project)


def apply_pattern_template(text: str, template: Optional[TaskNameTemplate]) -> str:
    # Templates are only a capitalisation pass for now
    return capitalize_first(text.strip())


def extract_with_pattern(text: str, project_pattern: Optional[ProjectPattern]) -> Optional[str]:
    """Word following the learned keyword anchor, capitalised. Best effort only."""
    if not project_pattern or not project_pattern.keyword:
        return None
    index = text.lower().find(project_pattern.keyword)
    if index < 0:
        return None
    words = text[index + len(project_pattern.keyword):].split()
    if not words:
        return None
    return capitalize_first(words[0])


def apply_learned_patterns(
    text: str,
    patterns: list[Pattern],
    now: Optional[datetime] = None,
) -> Optional[Task]:
    """Build a task from the first matching pattern, or None when nothing matches."""
    match = find_matching_pattern(text, patterns)
    if not match:
        return None

    pattern = match.pattern
    name = apply_pattern_template(text, pattern.task_name_template)
    project = (
        extract_with_pattern(text, pattern.project_pattern)
        or pattern.default_project
        or DEFAULT_PROJECT
    )
    deadline = extract_deadline(text.lower(), now)
    if pattern.chunks:
        chunks = build_chunks(pattern.chunks)
    else:
        chunks = generate_chunks(text, patterns)
    return make_task(name, project, deadline, chunks, now)


def _chunk_name(chunk: Union[str, Chunk, Mapping[str, Any]]) -> Optional[str]:
    if isinstance(chunk, str):
        return chunk
    if isinstance(chunk, Chunk):
        return chunk.name
    return chunk.get("name")


def _remote_fields(result: Union[Task, Mapping[str, Any]]) -> tuple[Optional[str], Optional[str], list[str]]:
    if isinstance(result, Task):
        name, project, chunks = result.name, result.project, result.chunks
    else:
        name, project, chunks = result.get("name"), result.get("project"), result.get("chunks") or []
    names = [n for n in (_chunk_name(c) for c in chunks) if n]
    return name, project, names


def enforce_capacity(patterns: list[Pattern], capacity: int = PATTERN_CAPACITY) -> list[Pattern]:
    """Keep the most used patterns once the store is over capacity."""
    if len(patterns) <= capacity:
        return patterns
    return sorted(patterns, key=lambda p: p.use_count, reverse=True)[:capacity]


def learn_from_remote_response(
    text: str,
    result: Union[Task, Mapping[str, Any]],
    patterns: list[Pattern],
    capacity: int = PATTERN_CAPACITY,
    now: Optional[datetime] = None,
) -> list[Pattern]:
    """
    Capture a model parse as a pattern.

    A similar existing pattern absorbs the new one: its use count goes up and its
    chunks are replaced with the latest. Returns the updated store, trimmed to capacity.
    """
    key = normalize(text)
    name, project, chunk_names = _remote_fields(result)

    for existing in patterns:
        if patterns_match(existing.normalized, key):
            existing.use_count += 1
            existing.chunks = chunk_names
            break
    else:
        patterns.append(Pattern(
            id=str(uuid.uuid4()),
            normalized=key,
            original_input=text,
            task_name_template=create_task_name_template(text, name),
            project_pattern=create_project_pattern(text, project),
            default_project=project,
            chunks=chunk_names,
            created_at=reference_now(now).isoformat(),
            use_count=1,
            success_rate=1.0,
        ))

    patterns = enforce_capacity(patterns, capacity)
    logger.info(f"Learned new pattern. Total patterns: {len(patterns)}")
    return patterns


def merge_imported_patterns(
    patterns: list[Pattern],
    imported: Iterable[Pattern],
    capacity: int = PATTERN_CAPACITY,
) -> list[Pattern]:
    return enforce_capacity(list(patterns) + list(imported), capacity)
