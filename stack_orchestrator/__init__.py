"""Dependency-aware deploy and destroy of synthesized infrastructure stacks."""
from __future__ import annotations

from .config import RunOptions, load_run_options
from .errors import (
  ApprovalRejected,
  ConfigurationConflict,
  CyclicDependencyError,
  DeadlockError,
  IncompleteSelection,
  ManifestError,
  OperationFailure,
  OrchestrationError,
  RunAborted,
  StackNotFoundError,
  StackOrchestratorError,
  StackStateError,
  UnknownStackError,
)
from .events import (
  ApprovalRequest,
  CancellationToken,
  EventType,
  OperationContext,
  StackEvent,
  StackOperation,
)
from .executor import StackExecutor
from .manifest import SynthesizedOutput
from .models import Method, RunResult, Stack, StackSet, StackState
from .orchestrator import StackOrchestrator
from .resolver import execution_order, is_ready, next_ready, select_stacks
from .scheduler import Run

__all__ = [
  "ApprovalRejected",
  "ApprovalRequest",
  "CancellationToken",
  "ConfigurationConflict",
  "CyclicDependencyError",
  "DeadlockError",
  "EventType",
  "IncompleteSelection",
  "ManifestError",
  "Method",
  "OperationContext",
  "OperationFailure",
  "OrchestrationError",
  "Run",
  "RunAborted",
  "RunOptions",
  "RunResult",
  "Stack",
  "StackEvent",
  "StackExecutor",
  "StackNotFoundError",
  "StackOperation",
  "StackOrchestrator",
  "StackOrchestratorError",
  "StackSet",
  "StackState",
  "StackStateError",
  "SynthesizedOutput",
  "UnknownStackError",
  "execution_order",
  "is_ready",
  "load_run_options",
  "next_ready",
  "select_stacks",
]
