"""Exceptions raised by the stack orchestrator."""
from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional

if TYPE_CHECKING:
  from .models import RunResult


class StackOrchestratorError(Exception):
  """Base class for every error the orchestrator raises on purpose."""


class ConfigurationConflict(StackOrchestratorError):
  pass


class ManifestError(StackOrchestratorError):
  pass


class StackNotFoundError(StackOrchestratorError, KeyError):
  def __init__(self, stack_name: str) -> None:
    super().__init__(f"Could not find stack '{stack_name}' in this run.")
    self.stack_name = stack_name

  def __str__(self) -> str:
    return self.args[0]


class StackStateError(StackOrchestratorError):
  pass


class UnknownStackError(StackOrchestratorError):
  def __init__(self, pattern: str, available: Iterable[str]) -> None:
    self.pattern = pattern
    self.available = list(available)
    super().__init__(
      f"Could not find stack for pattern '{pattern}'. "
      f"Available stacks: {', '.join(self.available) or '(none)'}"
    )


class IncompleteSelection(StackOrchestratorError):
  def __init__(self, stack_name: str, missing: Iterable[str], relation: str = "dependencies") -> None:
    self.stack_name = stack_name
    self.missing = sorted(missing)
    self.relation = relation
    if relation == "dependents":
      detail = f"Stack '{stack_name}' is required by {', '.join(self.missing)}, which are not selected."
    else:
      detail = f"Stack '{stack_name}' depends on {', '.join(self.missing)}, which are not selected."
    super().__init__(
      f"{detail} Include them in the selection or set ignore_missing_stack_dependencies."
    )


class CyclicDependencyError(StackOrchestratorError):
  def __init__(self, cycle: List[str]) -> None:
    self.cycle = list(cycle)
    super().__init__(f"Cyclic dependency detected: {' -> '.join(self.cycle)}")


class OperationFailure(StackOrchestratorError):
  def __init__(self, stack_name: str, method: str, cause: BaseException) -> None:
    self.stack_name = stack_name
    self.method = method
    self.cause = cause
    super().__init__(f"Stack '{stack_name}' failed to {method}: {cause}")


class ApprovalRejected(StackOrchestratorError):
  def __init__(self, stack_name: str, reason: str = "") -> None:
    self.stack_name = stack_name
    self.reason = reason
    message = f"Changes for stack '{stack_name}' were rejected"
    super().__init__(f"{message}: {reason}" if reason else message)


class RunAborted(StackOrchestratorError):
  pass


class OrchestrationError(StackOrchestratorError):
  def __init__(self, result: "RunResult", message: Optional[str] = None) -> None:
    self.result = result
    super().__init__(message or self._describe(result))

  @property
  def unprocessed(self) -> List[str]:
    return list(self.result.unprocessed)

  @property
  def failed(self) -> List[str]:
    return list(self.result.failed)

  @property
  def stopped(self) -> List[str]:
    return list(self.result.stopped)

  @staticmethod
  def _describe(result: "RunResult") -> str:
    verb = result.method.value
    parts = []
    if result.failed:
      parts.append(
        "failed: " + "; ".join(f"{name} ({failure.cause})" for name, failure in result.failed.items())
      )
    if result.stopped:
      parts.append("stopped: " + ", ".join(result.stopped))
    if result.unprocessed:
      parts.append("unprocessed: " + ", ".join(result.unprocessed))
    prefix = "Run was aborted. " if result.aborted else ""
    return f"{prefix}Some stacks failed to {verb}. " + " | ".join(parts)


class DeadlockError(OrchestrationError):
  def __init__(self, result: "RunResult") -> None:
    super().__init__(
      result,
      "No stack could be started while stacks were still pending "
      f"(unmet dependencies or a dependency cycle): {', '.join(result.unprocessed)}",
    )
