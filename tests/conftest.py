"""Shared pytest fixtures for stack orchestrator tests."""

import pytest

from tests.fakes import EventLog, ScriptedOperation


@pytest.fixture
def operation() -> ScriptedOperation:
  return ScriptedOperation()


@pytest.fixture
def event_log() -> EventLog:
  return EventLog()
