"""Tests for the background recommendation task and its dispatcher."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from kombu.exceptions import OperationalError

from bookshelf.errors import MalformedGenerationOutput
from bookshelf.tasks import recommendations as tasks


def test_task_runs_generation(monkeypatch):
    seen = []

    async def fake_run(user_id):
        seen.append(user_id)
        return 3

    monkeypatch.setattr(tasks, "_run", fake_run)

    result = tasks.generate_recommendations_task(42)

    assert seen == [42]
    assert result == {"status": "completed", "user_id": 42, "created": 3}


def test_task_failure_is_reraised(monkeypatch):
    async def broken_run(user_id):
        raise MalformedGenerationOutput("Malformed model output: invalid JSON")

    monkeypatch.setattr(tasks, "_run", broken_run)

    with pytest.raises(MalformedGenerationOutput):
        tasks.generate_recommendations_task(42)


def test_task_is_not_retried():
    assert tasks.generate_recommendations_task.max_retries == 0


def test_dispatch_returns_task_id(monkeypatch):
    sent = []

    def delay(user_id):
        sent.append(user_id)
        return SimpleNamespace(id="abc")

    monkeypatch.setattr(tasks, "generate_recommendations_task", SimpleNamespace(delay=delay))

    assert tasks.dispatch_recommendations(7) == "abc"
    assert sent == [7]


def test_dispatch_survives_broker_outage(monkeypatch):
    def delay(user_id):
        raise OperationalError("connection refused")

    monkeypatch.setattr(tasks, "generate_recommendations_task", SimpleNamespace(delay=delay))

    assert tasks.dispatch_recommendations(7) is None
