"""
Adapter around the model provider.

parse_remotely() never raises for provider trouble: it returns Ok(payload) or
Err(error) and leaves the fallback to the caller. Payloads that are not JSON are
recovered here into a minimal fallback task.
"""
import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol, Union

import anthropic
from pydantic import ValidationError

from chunks import DEFAULT_CHUNKS, build_chunks
from config import MAX_TOKENS, MODEL
from deadlines import default_deadline
from errors import MalformedRemoteResponse, QuotaExceeded, RemoteUnavailable, TaskParserError
from models import Chunk, Task
from prompts import build_system_prompt, build_user_prompt
from rule_parser import make_task

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*")
_NAME_FIELD_RE = re.compile(r'"name"\s*:\s*"([^"]+)"')
_NON_WORD_RE = re.compile(r"[^\w\s]")


class RemoteParser(Protocol):
    async def remote_parse(
        self,
        input_text: str,
        mode: str,
        known_projects: list[str],
        context: dict,
    ) -> str:
        """Return the raw model answer for input_text."""
        ...


class AnthropicRemoteParser:
    """Calls Claude through the Anthropic SDK."""

    def __init__(
        self,
        client: Optional[anthropic.AsyncAnthropic] = None,
        api_key: Optional[str] = None,
        model: str = MODEL,
        max_tokens: int = MAX_TOKENS,
    ):
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    async def remote_parse(
        self,
        input_text: str,
        mode: str,
        known_projects: list[str],
        context: dict,
    ) -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=build_system_prompt(mode, known_projects, context),
                messages=[{"role": "user", "content": build_user_prompt(input_text, mode)}],
            )
        except anthropic.RateLimitError as e:
            raise QuotaExceeded(f"Provider rate limit: {e}") from e
        except anthropic.APIError as e:
            raise RemoteUnavailable(f"API error: {e}") from e

        if not response.content:
            return ""
        return response.content[0].text


@dataclass
class RemotePayload:
    mode: str  # "parse", "coach" or "fallback" when the payload was unreadable
    tasks: list[Task] = field(default_factory=list)

    @property
    def malformed(self) -> bool:
        return self.mode == "fallback"


@dataclass
class Ok:
    value: RemotePayload


@dataclass
class Err:
    error: TaskParserError


RemoteOutcome = Union[Ok, Err]


def clean_model_text(text: str) -> str:
    """Strip markdown code fences around a JSON answer."""
    return _CODE_FENCE_RE.sub("", text).strip()


def load_model_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(clean_model_text(text))
    except json.JSONDecodeError as e:
        raise MalformedRemoteResponse(f"Not JSON after cleanup: {e}") from e


def fallback_name(text: str) -> str:
    """Best-effort task name out of an unreadable answer."""
    match = _NAME_FIELD_RE.search(text)
    if match:
        return match.group(1)
    return _NON_WORD_RE.sub(" ", text[:50]).strip() or "Untitled Task"


def text_field(value: Any, default: str) -> str:
    """String field from model JSON. Numbers are stringified, other types give the default."""
    if isinstance(value, str):
        return value or default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def format_chunks(chunks: Any) -> list[Chunk]:
    """Chunks from the model may be plain strings or objects with a name."""
    if not isinstance(chunks, list):
        return build_chunks(DEFAULT_CHUNKS)
    names = []
    for i, chunk in enumerate(chunks):
        if isinstance(chunk, str):
            names.append(chunk)
        elif isinstance(chunk, dict):
            names.append(text_field(chunk.get("name"), f"Step {i + 1}"))
    return build_chunks(names)


def format_deadline(value: Any, now: Optional[datetime] = None) -> str:
    if isinstance(value, str) and value:
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
            return value
        except ValueError:
            logger.warning(f"Discarding model deadline {value!r}")
    return default_deadline(now)


def task_from_remote(data: dict, now: Optional[datetime] = None) -> Task:
    return make_task(
        text_field(data.get("name"), "Untitled"),
        text_field(data.get("project"), "Inbox"),
        format_deadline(data.get("deadline"), now),
        format_chunks(data.get("chunks")),
        now,
    )


def fallback_task(text: str, now: Optional[datetime] = None) -> Task:
    return make_task(fallback_name(text), "Inbox", default_deadline(now), build_chunks(DEFAULT_CHUNKS), now)


def parse_model_response(text: str, mode: str, now: Optional[datetime] = None) -> RemotePayload:
    """Turn raw model text into tasks. The expected shape is decided by mode, not by the payload."""
    try:
        data = load_model_json(text)
    except MalformedRemoteResponse as e:
        logger.warning(f"{e}. Response: {text[:200]!r}")
        return RemotePayload("fallback", [fallback_task(text, now)])

    try:
        if mode == "coach":
            if isinstance(data, dict):
                items = data.get("tasks") if isinstance(data.get("tasks"), list) else [data]
            elif isinstance(data, list):
                items = data
            else:
                items = []
            return RemotePayload("coach", [task_from_remote(item, now) for item in items if isinstance(item, dict)])

        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict):
            logger.warning(f"Unexpected single-task payload: {text[:200]!r}")
            return RemotePayload("fallback", [fallback_task(text, now)])
        return RemotePayload("parse", [task_from_remote(data, now)])
    except ValidationError as e:
        logger.warning(f"Unusable task fields in model response: {e}")
        return RemotePayload("fallback", [fallback_task(text, now)])


async def parse_remotely(
    remote: Optional[RemoteParser],
    input_text: str,
    mode: str,
    known_projects: list[str],
    context: dict,
    timeout: float,
    now: Optional[datetime] = None,
) -> RemoteOutcome:
    if remote is None:
        return Err(RemoteUnavailable("No remote parser configured"))

    try:
        raw = await asyncio.wait_for(
            remote.remote_parse(input_text, mode, known_projects, context),
            timeout,
        )
    except asyncio.TimeoutError:
        return Err(RemoteUnavailable(f"Timed out after {timeout}s"))
    except (RemoteUnavailable, QuotaExceeded) as e:
        return Err(e)
    except OSError as e:
        return Err(RemoteUnavailable(f"Network error: {e}"))
    except Exception as e:
        logger.exception("Remote parser failed unexpectedly")
        return Err(RemoteUnavailable(f"Remote parser error: {e!r}"))

    if not isinstance(raw, str):
        return Err(MalformedRemoteResponse(f"Expected text from remote parser, got {type(raw).__name__}"))
    return Ok(parse_model_response(raw, mode, now))
