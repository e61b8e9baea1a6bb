from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Set

from .errors import OperationFailure


class Method(str, Enum):
  DEPLOY = "deploy"
  DESTROY = "destroy"


class StackState(str, Enum):
  PENDING = "pending"
  RUNNING = "running"
  DONE = "done"
  FAILED = "failed"
  STOPPED = "stopped"

  @property
  def is_terminal(self) -> bool:
    return self in (StackState.DONE, StackState.FAILED, StackState.STOPPED)


@dataclass(frozen=True)
class Stack:
  name: str
  dependencies: FrozenSet[str] = frozenset()
  working_directory: Path = Path(".")
  content: str = ""
  synthesized_stack_path: Optional[Path] = None
  dependents: FrozenSet[str] = frozenset()


def _descriptor_value(descriptor: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
  for key in keys:
    if key in descriptor:
      return descriptor[key]
  return default


class StackSet:
  """All stacks produced by one synthesis, in declaration order.

  Dependents are derived here by inverting every stack's dependencies, so
  callers only ever describe the forward direction.
  """

  def __init__(self, stacks: Iterable[Stack]) -> None:
    ordered: Dict[str, Stack] = {}
    for stack in stacks:
      if stack.name in ordered:
        raise ValueError(f"Duplicate stack name '{stack.name}'.")
      ordered[stack.name] = stack

    dependents: Dict[str, Set[str]] = defaultdict(set)
    for stack in ordered.values():
      for dependency in stack.dependencies:
        dependents[dependency].add(stack.name)

    self._stacks: Dict[str, Stack] = {
      name: replace(stack, dependents=frozenset(dependents.get(name, set())))
      for name, stack in ordered.items()
    }

  @classmethod
  def from_descriptors(cls, descriptors: Mapping[str, Mapping[str, Any]]) -> "StackSet":
    stacks: List[Stack] = []
    for key, descriptor in descriptors.items():
      name = _descriptor_value(descriptor, "name", default=key)
      if name != key:
        raise ValueError(f"Stack descriptor '{key}' declares a different name '{name}'.")
      dependencies = _descriptor_value(descriptor, "dependencies", default=[]) or []
      if isinstance(dependencies, str) or not all(isinstance(item, str) for item in dependencies):
        raise ValueError(f"Stack '{name}': dependencies must be a list of stack names.")
      working_directory = _descriptor_value(descriptor, "workingDirectory", "working_directory", default=".")
      stack_path = _descriptor_value(descriptor, "synthesizedStackPath", "synthesized_stack_path")
      stacks.append(
        Stack(
          name=name,
          dependencies=frozenset(dependencies),
          working_directory=Path(working_directory),
          content=_descriptor_value(descriptor, "content", default="") or "",
          synthesized_stack_path=Path(stack_path) if stack_path else None,
        )
      )
    return cls(stacks)

  def names(self) -> List[str]:
    return list(self._stacks)

  def get(self, name: str) -> Optional[Stack]:
    return self._stacks.get(name)

  def __getitem__(self, name: str) -> Stack:
    return self._stacks[name]

  def __contains__(self, name: object) -> bool:
    return name in self._stacks

  def __iter__(self) -> Iterator[Stack]:
    return iter(self._stacks.values())

  def __len__(self) -> int:
    return len(self._stacks)

  def __repr__(self) -> str:
    return f"StackSet({self.names()!r})"


@dataclass
class RunResult:
  method: Method
  succeeded: List[str] = field(default_factory=list)
  failed: Dict[str, OperationFailure] = field(default_factory=dict)
  stopped: List[str] = field(default_factory=list)
  unprocessed: List[str] = field(default_factory=list)
  aborted: bool = False

  @property
  def ok(self) -> bool:
    return not (self.failed or self.stopped or self.unprocessed)
