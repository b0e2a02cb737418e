"""
Tests for chunks.py - task-type templates and learned overrides.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chunks import DEFAULT_CHUNKS, classify_task_type, generate_chunks, learned_chunks_for_task
from models import Pattern


def make_pattern(normalized, chunks, use_count=1):
    return Pattern(
        id=f"p-{normalized}",
        normalized=normalized,
        original_input=normalized,
        chunks=chunks,
        created_at="2026-10-16T09:30:00+00:00",
        use_count=use_count,
    )


class TestTemplates:
    """Tests for the task-type taxonomy."""

    def test_presentation_template(self):
        chunks = generate_chunks("prepare presentation for client")
        assert [c.name for c in chunks] == [
            "Research & gather info", "Create outline", "Design slides", "Add content", "Review & polish",
        ]

    def test_orders_are_dense_and_incomplete(self):
        chunks = generate_chunks("prepare presentation for client")
        assert [c.order for c in chunks] == [0, 1, 2, 3, 4]
        assert all(c.completed is False for c in chunks)
        assert len({c.id for c in chunks}) == 5

    @pytest.mark.parametrize("name,task_type", [
        ("Write blog post", "report"),
        ("Reply to landlord", "email"),
        ("Schedule call with Sam", "meeting"),
        ("Create presentation", "presentation"),
        ("Debug login", "fix"),
        ("Buy milk", "purchase"),
        ("Water garden", None),
    ])
    def test_first_matching_type_wins(self, name, task_type):
        assert classify_task_type(name) == task_type

    def test_default_template(self):
        assert [c.name for c in generate_chunks("Water garden")] == DEFAULT_CHUNKS

    @pytest.mark.parametrize("name", ["Write report", "Email boss", "Plan roadmap", "Water garden"])
    def test_generated_templates_have_three_to_five_steps(self, name):
        assert 3 <= len(generate_chunks(name)) <= 5


class TestLearnedChunks:
    """Learned chunk lists replace templates."""

    def test_learned_chunks_override_template(self):
        patterns = [make_pattern("buy milk", ["Go to store"])]
        chunks = generate_chunks("Buy milk", patterns)
        assert [c.name for c in chunks] == ["Go to store"]
        assert chunks[0].order == 0

    def test_pattern_without_chunks_is_skipped(self):
        patterns = [make_pattern("buy milk", []), make_pattern("buy milk", ["Walk", "Pay"])]
        assert learned_chunks_for_task("buy milk", patterns) == ["Walk", "Pay"]

    def test_unrelated_pattern_ignored(self):
        patterns = [make_pattern("call dentist", ["Dial"])]
        assert learned_chunks_for_task("Buy milk", patterns) is None
