from __future__ import annotations

from typing import List, Optional

from .cascade import propagator_for
from .config import RunOptions
from .events import CancellationToken, EventHandler, StackOperation
from .executor import StackExecutor
from .models import Method, RunResult, StackSet
from .resolver import next_ready, select_stacks
from .scheduler import ReadyProvider, Run


class StackOrchestrator:
  """Deploys or destroys a synthesized stack set through one operation backend."""

  def __init__(
    self,
    stacks: StackSet,
    operation: StackOperation,
    *,
    on_update: Optional[EventHandler] = None,
  ) -> None:
    self.stacks = stacks
    self.operation = operation
    self.on_update = on_update
    self.stacks_to_run: List[StackExecutor] = []
    self.current_run: Optional[Run] = None

  def hard_abort(self) -> None:
    if self.current_run is not None:
      self.current_run.token.cancel()

  async def deploy(self, options: Optional[RunOptions] = None) -> RunResult:
    return await self.execute(Method.DEPLOY, options or RunOptions())

  async def destroy(self, options: Optional[RunOptions] = None) -> RunResult:
    return await self.execute(Method.DESTROY, options or RunOptions())

  def _ready_provider(self, method: Method, options: RunOptions) -> ReadyProvider:
    executors = self.stacks_to_run

    def provide() -> Optional[StackExecutor]:
      return next_ready(
        executors,
        method,
        ignore_missing_stack_dependencies=options.ignore_missing_stack_dependencies,
      )

    return provide

  async def execute(self, method: Method, options: RunOptions) -> RunResult:
    options.validate_for(method)
    selected = select_stacks(
      self.stacks,
      options.stack_names,
      method,
      ignore_missing_stack_dependencies=options.ignore_missing_stack_dependencies,
    )

    self.stacks_to_run = [
      StackExecutor(stack, self.operation, on_update=self.on_update) for stack in selected
    ]
    self.current_run = Run(
      method,
      self.stacks_to_run,
      options,
      self._ready_provider(method, options),
      token=CancellationToken(),
      stop_propagator=propagator_for(method),
    )
    return await self.current_run.execute()
