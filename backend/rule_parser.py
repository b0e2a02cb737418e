"""
Rule-based task parser: the zero-cost path that never needs a model call.

Each extractor is a small function so the heuristics can be tested on their own;
rule_based_parse() composes them into a full Task.
"""
import logging
import re
import uuid
from datetime import datetime
from typing import Iterable, Optional

from chunks import build_chunks, generate_chunks
from deadlines import extract_deadline, reference_now
from models import Chunk, Pattern, Project, Task

logger = logging.getLogger(__name__)

DEFAULT_PROJECT = "Inbox"

_DEADLINE_TAIL_RE = re.compile(
    r"\b(?:for|by|until|before|tomorrow|today|next week|"
    r"on (?:monday|tuesday|wednesday|thursday|friday|saturday|sunday))\b.*",
    re.IGNORECASE | re.DOTALL,
)
_WHITESPACE_RE = re.compile(r"\s+")

_PHRASE_END = r"(?:\s+by|\s+until|\s+before|\s+tomorrow|\s+today|\s+next|\s+on\s+|$)"
PROJECT_PATTERNS = [
    re.compile(r"\bfor\s+(?:the\s+)?([A-Z][a-zA-Z0-9\s]+?)" + _PHRASE_END, re.IGNORECASE),
    re.compile(r"\b(?:project|client|team)[\s:]+([A-Z][a-zA-Z0-9\s]+?)" + _PHRASE_END, re.IGNORECASE),
]


def capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:]


def make_task(
    name: str,
    project: Optional[str],
    deadline: str,
    chunks: list[Chunk],
    now: Optional[datetime] = None,
) -> Task:
    return Task(
        id=str(uuid.uuid4()),
        name=name or "Untitled Task",
        project=project or DEFAULT_PROJECT,
        deadline=deadline,
        chunks=chunks or build_chunks(["Start task", "Main work", "Finish up"]),
        completed=False,
        created_at=reference_now(now).isoformat(),
    )


def extract_task_name(text: str) -> str:
    """Everything before the first deadline/project keyword, capitalised."""
    name = _DEADLINE_TAIL_RE.sub("", text)
    name = _WHITESPACE_RE.sub(" ", name).strip()
    if not name:
        return capitalize_first(text.strip())
    return capitalize_first(name)


def find_known_project(text: str, projects: Iterable[Project]) -> Optional[str]:
    """Display name of the first known project whose key appears in the text."""
    lower_text = text.lower()
    for project in projects:
        if project.normalized and project.normalized in lower_text:
            return project.name
    return None


def extract_project(text: str, projects: Iterable[Project] = ()) -> str:
    for pattern in PROJECT_PATTERNS:
        match = pattern.search(text)
        if match:
            project = match.group(1).strip()
            return find_known_project(project, projects) or project
    return DEFAULT_PROJECT


def learn_project(projects: list[Project], name: str, now: Optional[datetime] = None) -> Project:
    """Insert a project, or bump its usage count if its key is already known."""
    normalized = name.lower().strip()
    for project in projects:
        if project.normalized == normalized:
            project.usage_count += 1
            return project

    project = Project(
        name=name,
        normalized=normalized,
        usage_count=1,
        created_at=reference_now(now).isoformat(),
    )
    projects.append(project)
    logger.info(f"Learned project '{name}'. Known projects: {len(projects)}")
    return project


def rule_based_parse(
    text: str,
    projects: list[Project],
    patterns: Iterable[Pattern] = (),
    now: Optional[datetime] = None,
) -> Task:
    text = text.strip()
    name = extract_task_name(text)
    project = extract_project(text, projects)
    deadline = extract_deadline(text.lower(), now)
    chunks = generate_chunks(name, patterns)

    if project != DEFAULT_PROJECT:
        learn_project(projects, project, now)

    return make_task(name, project, deadline, chunks, now)
