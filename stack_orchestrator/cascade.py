"""Stop every stack that can no longer run because a prerequisite did not finish."""
from __future__ import annotations

from typing import Callable, FrozenSet, List, Mapping, Set

from .errors import StackNotFoundError
from .executor import StackExecutor
from .models import Method, Stack

StopPropagator = Callable[[Mapping[str, StackExecutor], str], List[str]]


def _walk(
  executors: Mapping[str, StackExecutor],
  stack_name: str,
  related: Callable[[Stack], FrozenSet[str]],
) -> List[str]:
  if stack_name not in executors:
    raise StackNotFoundError(stack_name)

  stopped: List[str] = []
  visited: Set[str] = {stack_name}
  worklist = sorted(related(executors[stack_name].stack))
  while worklist:
    name = worklist.pop(0)
    if name in visited:
      continue
    visited.add(name)
    executor = executors.get(name)
    # Stacks outside the run are already satisfied and do not carry the stop.
    if executor is None:
      continue
    if executor.stop():
      stopped.append(name)
    worklist.extend(sorted(related(executor.stack)))
  return stopped


def stop_dependents(executors: Mapping[str, StackExecutor], stack_name: str) -> List[str]:
  return _walk(executors, stack_name, lambda stack: stack.dependents)


def stop_dependencies(executors: Mapping[str, StackExecutor], stack_name: str) -> List[str]:
  return _walk(executors, stack_name, lambda stack: stack.dependencies)


def propagator_for(method: Method) -> StopPropagator:
  return stop_dependents if method is Method.DEPLOY else stop_dependencies
