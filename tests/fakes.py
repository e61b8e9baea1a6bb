"""Fakes shared by the stack orchestrator tests."""

import asyncio
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from stack_orchestrator.events import OperationContext, StackEvent
from stack_orchestrator.models import Stack, StackSet


def make_stacks(graph: Mapping[str, Iterable[str]]) -> StackSet:
  """Build a stack set from ``{name: [dependency, ...]}``."""
  return StackSet(
    Stack(name=name, dependencies=frozenset(dependencies), content=f"{{\"stack\": \"{name}\"}}")
    for name, dependencies in graph.items()
  )


async def settle(rounds: int = 20) -> None:
  for _ in range(rounds):
    await asyncio.sleep(0)


class ScriptedOperation:
  """In-memory provisioning backend that records what ran and when."""

  def __init__(
    self,
    *,
    fail: Iterable[str] = (),
    fail_initialize: Iterable[str] = (),
    delays: Optional[Dict[str, float]] = None,
  ) -> None:
    self.fail = set(fail)
    self.fail_initialize = set(fail_initialize)
    self.delays = delays or {}
    self.timeline: List[Tuple[str, str]] = []
    self.started: List[str] = []
    self.methods: Dict[str, str] = {}
    self.initialized: List[str] = []
    self.running: Set[str] = set()
    self.peak = 0
    self.saw_abort: Set[str] = set()
    self._gates: Dict[str, asyncio.Event] = {}
    self._started_events: Dict[str, asyncio.Event] = {}

  def gate(self, name: str) -> asyncio.Event:
    """Block ``name`` until the returned event is set."""
    return self._gates.setdefault(name, asyncio.Event())

  def release(self, name: str) -> None:
    self.gate(name).set()

  async def wait_started(self, name: str) -> None:
    await self._started_events.setdefault(name, asyncio.Event()).wait()

  def finished_before_started(self, first: str, second: str) -> bool:
    return self.timeline.index(("end", first)) < self.timeline.index(("start", second))

  async def initialize(self, stack: Stack, context: OperationContext) -> None:
    self.initialized.append(stack.name)
    if stack.name in self.fail_initialize:
      raise RuntimeError(f"init of {stack.name} failed")

  async def _work(self, method: str, stack: Stack, context: OperationContext) -> None:
    self.started.append(stack.name)
    self.methods[stack.name] = method
    self.timeline.append(("start", stack.name))
    self.running.add(stack.name)
    self.peak = max(self.peak, len(self.running))
    self._started_events.setdefault(stack.name, asyncio.Event()).set()
    try:
      if stack.name in self._gates:
        await self._gates[stack.name].wait()
      else:
        await asyncio.sleep(self.delays.get(stack.name, 0))
      if context.token.cancelled:
        self.saw_abort.add(stack.name)
      if stack.name in self.fail:
        raise RuntimeError(f"{stack.name} exploded")
    finally:
      self.running.discard(stack.name)
      self.timeline.append(("end", stack.name))

  async def deploy(self, stack: Stack, context: OperationContext) -> None:
    await self._work("deploy", stack, context)

  async def destroy(self, stack: Stack, context: OperationContext) -> None:
    await self._work("destroy", stack, context)


class EventLog:
  def __init__(self) -> None:
    self.events: List[StackEvent] = []

  def __call__(self, event: StackEvent) -> None:
    self.events.append(event)

  def types_for(self, stack_name: str) -> List[str]:
    return [event.type.value for event in self.events if event.stack_name == stack_name]

