"""
Tests for remote.py - model response handling and the Ok/Err adapter boundary.
Uses fakes instead of the Anthropic API.
"""
import asyncio
import json
import pytest
import sys
import os
from types import SimpleNamespace

import anthropic
import httpx

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import FakeRemoteParser
from errors import MalformedRemoteResponse, QuotaExceeded, RemoteUnavailable
from models import Task
import remote
from remote import AnthropicRemoteParser, Err, Ok, clean_model_text, parse_model_response, parse_remotely

SINGLE = {"name": "Write essay", "project": "School", "deadline": "2026-10-20T17:00:00Z", "chunks": ["Outline", "Draft"]}


class TestParseModelResponse:
    """Tests for turning raw model text into tasks."""

    def test_plain_json(self, now):
        payload = parse_model_response(json.dumps(SINGLE), "parse", now)

        assert payload.mode == "parse"
        task = payload.tasks[0]
        assert task.name == "Write essay"
        assert task.project == "School"
        assert task.deadline == "2026-10-20T17:00:00Z"
        assert [(c.name, c.order) for c in task.chunks] == [("Outline", 0), ("Draft", 1)]

    def test_code_fences_are_stripped(self, now):
        text = "```json\n" + json.dumps(SINGLE) + "\n```"
        assert clean_model_text(text) == json.dumps(SINGLE)
        assert parse_model_response(text, "parse", now).tasks[0].name == "Write essay"

    def test_chunk_objects_and_strings(self, now):
        data = {"name": "X", "chunks": [{"name": "One", "duration": 5}, {"duration": 10}, "Three"]}
        task = parse_model_response(json.dumps(data), "parse", now).tasks[0]
        assert [c.name for c in task.chunks] == ["One", "Step 2", "Three"]

    def test_defaults(self, now):
        task = parse_model_response("{}", "parse", now).tasks[0]

        assert task.name == "Untitled"
        assert task.project == "Inbox"
        assert task.deadline == "2026-10-17T18:00:00+00:00"
        assert [c.name for c in task.chunks] == ["Start task", "Main work", "Finish up"]

    def test_unreadable_deadline_replaced(self, now):
        task = parse_model_response(json.dumps({"name": "X", "deadline": "next friday"}), "parse", now).tasks[0]
        assert task.deadline == "2026-10-17T18:00:00+00:00"

    def test_malformed_uses_name_field(self, now):
        payload = parse_model_response('Sure! {"name": "Call mom", "chunks": [oops', "parse", now)

        assert payload.malformed
        assert payload.tasks[0].name == "Call mom"
        assert len(payload.tasks[0].chunks) == 3

    def test_malformed_uses_first_characters(self, now):
        payload = parse_model_response("totally not json!!!", "parse", now)
        assert payload.tasks[0].name == "totally not json"

    def test_malformed_empty(self, now):
        assert parse_model_response("", "parse", now).tasks[0].name == "Untitled Task"

    def test_coach_array(self, now):
        payload = parse_model_response(json.dumps([SINGLE, {"name": "Call mom"}]), "coach", now)

        assert payload.mode == "coach"
        assert [t.name for t in payload.tasks] == ["Write essay", "Call mom"]

    def test_coach_single_object(self, now):
        payload = parse_model_response(json.dumps(SINGLE), "coach", now)
        assert [t.name for t in payload.tasks] == ["Write essay"]

    def test_parse_mode_array_takes_first(self, now):
        payload = parse_model_response(json.dumps([SINGLE, {"name": "Other"}]), "parse", now)
        assert [t.name for t in payload.tasks] == ["Write essay"]

    def test_numeric_fields_become_text(self, now):
        text = json.dumps({"name": 123, "project": 7, "chunks": [{"name": 5}, {"name": None}, 6, "Pay"]})
        task = parse_model_response(text, "parse", now).tasks[0]

        assert task.name == "123"
        assert task.project == "7"
        assert [c.name for c in task.chunks] == ["5", "Step 2", "Pay"]

    def test_unusable_field_types_use_defaults(self, now):
        text = json.dumps({"name": ["x"], "project": {"a": 1}, "chunks": [{"name": True}]})
        payload = parse_model_response(text, "parse", now)

        assert payload.mode == "parse"
        assert payload.tasks[0].name == "Untitled"
        assert payload.tasks[0].project == "Inbox"
        assert [c.name for c in payload.tasks[0].chunks] == ["Step 1"]

    def test_invalid_task_fields_fall_back(self, now, monkeypatch):
        def strict_task(data, now=None):
            return Task.model_validate(data)

        monkeypatch.setattr(remote, "task_from_remote", strict_task)
        payload = parse_model_response(json.dumps({"name": "Call mom"}), "parse", now)

        assert payload.malformed
        assert payload.tasks[0].name == "Call mom"


class TestParseRemotely:
    """Provider failures come back as Err, never as exceptions."""

    def test_ok(self, now):
        remote = FakeRemoteParser(json.dumps(SINGLE))
        outcome = asyncio.run(parse_remotely(remote, "write essay", "parse", ["School"], {"timezone": "UTC"}, 5, now))

        assert isinstance(outcome, Ok)
        assert outcome.value.tasks[0].name == "Write essay"
        assert remote.calls[0]["known_projects"] == ["School"]

    def test_no_remote_configured(self):
        outcome = asyncio.run(parse_remotely(None, "x", "parse", [], {}, 5))
        assert isinstance(outcome, Err)
        assert isinstance(outcome.error, RemoteUnavailable)

    @pytest.mark.parametrize("error,expected", [
        (RemoteUnavailable("down"), RemoteUnavailable),
        (QuotaExceeded("slow down"), QuotaExceeded),
        (ConnectionResetError("reset"), RemoteUnavailable),
        (httpx.ConnectError("refused"), RemoteUnavailable),
        (RuntimeError("boom"), RemoteUnavailable),
        (AttributeError("no text block"), RemoteUnavailable),
    ])
    def test_errors(self, error, expected):
        outcome = asyncio.run(parse_remotely(FakeRemoteParser(error=error), "x", "parse", [], {}, 5))
        assert isinstance(outcome, Err)
        assert isinstance(outcome.error, expected)

    def test_timeout(self):
        remote = FakeRemoteParser("{}", delay=1)
        outcome = asyncio.run(parse_remotely(remote, "x", "parse", [], {}, 0.01))

        assert isinstance(outcome, Err)
        assert isinstance(outcome.error, RemoteUnavailable)

    def test_non_text_answer(self):
        outcome = asyncio.run(parse_remotely(FakeRemoteParser(response=None), "x", "parse", [], {}, 5))

        assert isinstance(outcome, Err)
        assert isinstance(outcome.error, MalformedRemoteResponse)


class FakeMessages:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(text=self.text)])


class TestAnthropicRemoteParser:
    """Tests for the Anthropic SDK call and its error mapping."""

    REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")

    def make_parser(self, messages):
        return AnthropicRemoteParser(client=SimpleNamespace(messages=messages), model="test-model", max_tokens=50)

    def test_builds_prompts(self):
        messages = FakeMessages(text='{"name": "x"}')
        parser = self.make_parser(messages)

        text = asyncio.run(parser.remote_parse("brain dump", "coach", ["Work"], {"timezone": "Europe/Berlin"}))

        assert text == '{"name": "x"}'
        assert messages.kwargs["model"] == "test-model"
        assert messages.kwargs["max_tokens"] == 50
        assert "COACH MODE" in messages.kwargs["system"]
        assert "User's existing projects: Work" in messages.kwargs["system"]
        assert "Europe/Berlin" in messages.kwargs["system"]
        assert messages.kwargs["messages"][0]["role"] == "user"
        assert '"brain dump"' in messages.kwargs["messages"][0]["content"]

    def test_rate_limit_maps_to_quota_exceeded(self):
        error = anthropic.RateLimitError(
            "rate limited", response=httpx.Response(429, request=self.REQUEST), body=None
        )
        parser = self.make_parser(FakeMessages(error=error))

        with pytest.raises(QuotaExceeded):
            asyncio.run(parser.remote_parse("x", "parse", [], {}))

    def test_connection_error_maps_to_unavailable(self):
        parser = self.make_parser(FakeMessages(error=anthropic.APIConnectionError(request=self.REQUEST)))

        with pytest.raises(RemoteUnavailable):
            asyncio.run(parser.remote_parse("x", "parse", [], {}))
