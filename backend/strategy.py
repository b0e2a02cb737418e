"""
Local-vs-cloud routing.

decide_parsing_strategy() walks an ordered rule list and returns the first rule
that applies, together with a confidence and a short machine-readable reason.
"""
import re
from typing import Iterable, Optional

from models import Decision, EngineConfig, Pattern, Project
from patterns import find_matching_pattern
from rule_parser import find_known_project

SHORT_INPUT_WORDS = 10
SHORT_INPUT_CONFIDENCE = 0.6

CLEAR_SIGNALS = [
    re.compile(r"^(?:finish|complete|do|make|create|write|send|call|email|buy|get|fix|update|review)"),
    re.compile(r"(?:by|until|before|tomorrow|today|monday|tuesday|wednesday|thursday|friday|next week)"),
    re.compile(r"(?:for|project|client|team|work|meeting)"),
]

MULTI_TASK_MARKERS = [
    re.compile(r"\b(?:first|then|after that|also|and then|next|finally)\b"),
    re.compile(r"\d+\)\s"),  # numbered list
    re.compile(r"(?:^|\s)[-•*]\s"),  # bullets
]
_AND_RE = re.compile(r"\band\b")
_ACTION_VERB_RE = re.compile(
    r"\b(?:finish|complete|do|make|create|write|send|call|email|buy|get|fix|update|review|prepare|schedule)\b"
)

VAGUE_PATTERNS = [
    re.compile(r"^(?:something|stuff|things?|that thing)\b"),
    re.compile(r"\b(?:maybe|probably|might|could|not sure|i think)\b"),
    re.compile(r"\?\s*$"),
]


def word_count(text: str) -> int:
    return len(text.split())


def estimate_local_confidence(text: str, projects: Iterable[Project] = ()) -> float:
    """How likely the rule-based parser is to get this input right, in [0, 1]."""
    text = text.lower().strip()
    confidence = 0.5

    for signal in CLEAR_SIGNALS:
        if signal.search(text):
            confidence += 0.1

    if find_known_project(text, projects):
        confidence += 0.15

    if " and " in text and " then " in text:
        confidence -= 0.2
    if word_count(text) > 20:
        confidence -= 0.15
    if text.count(",") > 3:
        confidence -= 0.1

    return max(0.0, min(1.0, confidence))


def detects_multiple_tasks(text: str) -> bool:
    text = text.lower()
    score = sum(len(marker.findall(text)) for marker in MULTI_TASK_MARKERS)

    if len(_AND_RE.findall(text)) >= 2 and len(_ACTION_VERB_RE.findall(text)) >= 2:
        score += 2

    return score >= 2


def is_ambiguous(text: str) -> bool:
    text = text.lower().strip()
    return any(pattern.search(text) for pattern in VAGUE_PATTERNS)


def decide_parsing_strategy(
    text: str,
    voice_duration_seconds: float = 0,
    force_cloud: bool = False,
    coach_mode: bool = False,
    patterns: Iterable[Pattern] = (),
    projects: Iterable[Project] = (),
    config: Optional[EngineConfig] = None,
) -> Decision:
    config = config or EngineConfig()
    if coach_mode:
        return Decision(strategy="cloud", confidence=0, reason="coach_mode")

    if force_cloud:
        return Decision(strategy="cloud", confidence=0, reason="forced")

    # Long recordings are usually brain dumps
    if voice_duration_seconds > config.voice_length_threshold_seconds:
        return Decision(strategy="cloud", confidence=0, reason="long_voice_input")

    match = find_matching_pattern(text, patterns)
    if match and match.confidence >= config.min_confidence_for_local:
        return Decision(strategy="local", confidence=match.confidence, reason="learned_pattern")

    local_confidence = estimate_local_confidence(text, projects)
    if local_confidence >= config.min_confidence_for_local:
        return Decision(strategy="local", confidence=local_confidence, reason="high_local_confidence")

    if detects_multiple_tasks(text):
        return Decision(strategy="cloud", confidence=local_confidence, reason="multiple_tasks")

    if is_ambiguous(text):
        return Decision(strategy="cloud", confidence=local_confidence, reason="ambiguous")

    if word_count(text) < SHORT_INPUT_WORDS:
        return Decision(strategy="local", confidence=SHORT_INPUT_CONFIDENCE, reason="short_simple_input")

    return Decision(strategy="cloud", confidence=local_confidence, reason="uncertain")
