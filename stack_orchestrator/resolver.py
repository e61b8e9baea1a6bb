"""Stack selection, completeness validation and readiness checks."""
from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .errors import CyclicDependencyError, IncompleteSelection, UnknownStackError
from .executor import StackExecutor
from .models import Method, Stack, StackSet, StackState

_GLOB_CHARS = set("*?[")


def _match(stack_set: StackSet, pattern: str) -> List[str]:
  if not _GLOB_CHARS.intersection(pattern):
    return [pattern] if pattern in stack_set else []
  return [name for name in stack_set.names() if fnmatchcase(name, pattern)]


def check_all_dependencies_included(selected: Sequence[Stack]) -> None:
  names = {stack.name for stack in selected}
  for stack in selected:
    missing = stack.dependencies - names
    if missing:
      raise IncompleteSelection(stack.name, missing, relation="dependencies")


def check_all_dependents_included(selected: Sequence[Stack]) -> None:
  names = {stack.name for stack in selected}
  for stack in selected:
    missing = stack.dependents - names
    if missing:
      raise IncompleteSelection(stack.name, missing, relation="dependents")


def find_cycle(stacks: Iterable[Stack]) -> Optional[List[str]]:
  """Return one dependency cycle among ``stacks`` as a closed path, if any."""
  by_name = {stack.name: stack for stack in stacks}
  visited: Set[str] = set()

  for root in by_name:
    if root in visited:
      continue
    path: List[str] = [root]
    on_path: Set[str] = {root}
    iterators = [iter(sorted(by_name[root].dependencies))]
    while iterators:
      advanced = False
      for dependency in iterators[-1]:
        if dependency not in by_name or dependency in visited:
          continue
        if dependency in on_path:
          return path[path.index(dependency):] + [dependency]
        path.append(dependency)
        on_path.add(dependency)
        iterators.append(iter(sorted(by_name[dependency].dependencies)))
        advanced = True
        break
      if not advanced:
        finished = path.pop()
        on_path.discard(finished)
        visited.add(finished)
        iterators.pop()
  return None


def select_stacks(
  stack_set: StackSet,
  requested_names: Optional[Sequence[str]],
  method: Method,
  *,
  ignore_missing_stack_dependencies: bool = False,
) -> List[Stack]:
  """Pick the stacks taking part in a run.

  Requested names may be exact names or glob patterns. The returned stacks
  keep their links to the full graph, and always come back in declaration
  order so repeated calls agree.
  """
  if requested_names:
    wanted: Set[str] = set()
    for pattern in requested_names:
      matches = _match(stack_set, pattern)
      if not matches:
        raise UnknownStackError(pattern, stack_set.names())
      wanted.update(matches)
    selected = [stack for stack in stack_set if stack.name in wanted]
  else:
    selected = list(stack_set)

  cycle = find_cycle(selected)
  if cycle:
    raise CyclicDependencyError(cycle)

  if requested_names and not ignore_missing_stack_dependencies:
    if method is Method.DEPLOY:
      check_all_dependencies_included(selected)
    else:
      check_all_dependents_included(selected)

  return selected


def _satisfied(
  related: Iterable[str],
  executors: Mapping[str, StackExecutor],
  accepted: Set[StackState],
  ignore_missing: bool,
) -> bool:
  for name in related:
    other = executors.get(name)
    if other is None:
      if not ignore_missing:
        return False
      continue
    if other.state not in accepted:
      return False
  return True


def is_ready(
  executor: StackExecutor,
  executors: Mapping[str, StackExecutor],
  method: Method,
  *,
  ignore_missing_stack_dependencies: bool = False,
) -> bool:
  if executor.state is not StackState.PENDING:
    return False
  if method is Method.DEPLOY:
    return _satisfied(
      executor.stack.dependencies, executors, {StackState.DONE}, ignore_missing_stack_dependencies
    )
  return _satisfied(
    executor.stack.dependents,
    executors,
    {StackState.DONE, StackState.STOPPED},
    ignore_missing_stack_dependencies,
  )


def next_ready(
  executors: Sequence[StackExecutor],
  method: Method,
  *,
  ignore_missing_stack_dependencies: bool = False,
) -> Optional[StackExecutor]:
  by_name = {executor.stack.name: executor for executor in executors}
  for executor in executors:
    if is_ready(
      executor, by_name, method, ignore_missing_stack_dependencies=ignore_missing_stack_dependencies
    ):
      return executor
  return None


def execution_order(stacks: Sequence[Stack], method: Method = Method.DEPLOY) -> List[str]:
  """Deterministic order the stacks would run in with a parallelism of one."""
  order_index = {stack.name: idx for idx, stack in enumerate(stacks)}
  indegree: Dict[str, int] = {}
  children: Dict[str, List[str]] = {stack.name: [] for stack in stacks}
  for stack in stacks:
    within_scope = [name for name in stack.dependencies if name in order_index]
    indegree[stack.name] = len(within_scope)
    for dependency in within_scope:
      children[dependency].append(stack.name)

  ready = sorted((name for name, value in indegree.items() if value == 0), key=order_index.__getitem__)
  order: List[str] = []
  while ready:
    name = ready.pop(0)
    order.append(name)
    for child in children[name]:
      indegree[child] -= 1
      if indegree[child] == 0:
        ready.append(child)
    ready.sort(key=order_index.__getitem__)

  if len(order) != len(stacks):
    raise CyclicDependencyError(find_cycle(stacks) or sorted(set(order_index) - set(order)))
  if method is Method.DESTROY:
    order.reverse()
  return order
