import re
import uuid
from typing import Iterable, Optional

from models import Chunk, Pattern
from normalizer import normalize, patterns_match

DEFAULT_CHUNKS = ["Start task", "Main work", "Finish up"]

# Ordered: the first task type whose keywords appear in the name wins
TASK_TYPES = [
    ("presentation", re.compile(r"presentation|deck|slides|pitch"),
     ["Research & gather info", "Create outline", "Design slides", "Add content", "Review & polish"]),
    ("report", re.compile(r"report|document|write|article|blog"),
     ["Outline structure", "Write first draft", "Review & edit", "Final polish"]),
    ("email", re.compile(r"email|message|reply|respond"),
     ["Draft message", "Review tone", "Send"]),
    ("meeting", re.compile(r"meeting|call|interview"),
     ["Prepare agenda", "Gather materials", "Attend", "Follow up notes"]),
    ("design", re.compile(r"design|create|make|build"),
     ["Research inspiration", "Sketch concepts", "Create draft", "Refine details"]),
    ("review", re.compile(r"review|analyze|audit"),
     ["Gather materials", "Initial review", "Deep analysis", "Write findings"]),
    ("plan", re.compile(r"plan|strategy|roadmap"),
     ["Research & context", "Brainstorm options", "Draft plan", "Review & finalize"]),
    ("fix", re.compile(r"fix|debug|solve|repair"),
     ["Identify issue", "Research solution", "Implement fix", "Test & verify"]),
    ("learn", re.compile(r"learn|study|course|read"),
     ["Set up environment", "First session", "Practice", "Review notes"]),
    ("purchase", re.compile(r"buy|purchase|order|shop"),
     ["Research options", "Compare prices", "Make purchase"]),
]


def classify_task_type(task_name: str) -> Optional[str]:
    name = task_name.lower()
    for task_type, keywords, _ in TASK_TYPES:
        if keywords.search(name):
            return task_type
    return None


def template_chunks(task_name: str) -> list[str]:
    task_type = classify_task_type(task_name)
    for name, _, steps in TASK_TYPES:
        if name == task_type:
            return list(steps)
    return list(DEFAULT_CHUNKS)


def learned_chunks_for_task(task_name: str, patterns: Iterable[Pattern]) -> Optional[list[str]]:
    """Chunk list of the first similar learned pattern that has one."""
    key = normalize(task_name)
    for pattern in patterns:
        if pattern.chunks and patterns_match(key, pattern.normalized):
            return list(pattern.chunks)
    return None


def build_chunks(names: Iterable[str]) -> list[Chunk]:
    return [
        Chunk(id=str(uuid.uuid4()), name=name, completed=False, order=i)
        for i, name in enumerate(names)
    ]


def generate_chunks(task_name: str, patterns: Iterable[Pattern] = ()) -> list[Chunk]:
    """Break a task into small steps, preferring chunks learned from the model."""
    names = learned_chunks_for_task(task_name, patterns) or template_chunks(task_name)
    return build_chunks(names)
