"""The control loop that runs executors in dependency order."""
from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence, Set, Union

from .cascade import StopPropagator, propagator_for
from .config import RunOptions
from .errors import DeadlockError, OrchestrationError
from .events import CancellationToken
from .executor import StackExecutor
from .models import Method, RunResult, StackState

ReadyProvider = Callable[[], Optional[StackExecutor]]


class Run:
  """One deploy or destroy session over a fixed list of executors.

  Work is launched while stacks are pending and a parallelism slot is
  free. A failing stack stops whatever can no longer run without it, but
  independent work carries on and every launched task is awaited before
  the outcome is reported.
  """

  def __init__(
    self,
    method: Method,
    executors: Sequence[StackExecutor],
    options: RunOptions,
    ready_provider: ReadyProvider,
    *,
    token: Optional[CancellationToken] = None,
    stop_propagator: Optional[StopPropagator] = None,
  ) -> None:
    self.method = method
    self.executors = list(executors)
    self.options = options
    self.ready_provider = ready_provider
    self.token = token or CancellationToken()
    self.stop_propagator = stop_propagator or propagator_for(method)
    self._by_name: Dict[str, StackExecutor] = {executor.name: executor for executor in self.executors}
    self._tasks: List["asyncio.Task[None]"] = []
    self.launch_order: List[str] = []

  @property
  def parallelism(self) -> Union[int, float]:
    return self.options.max_parallel_runs

  def pending(self) -> List[StackExecutor]:
    return [executor for executor in self.executors if executor.is_pending]

  def running(self) -> List[StackExecutor]:
    return [executor for executor in self.executors if executor.is_running]

  def _stop_after(self, executor: StackExecutor) -> None:
    if executor.state is StackState.FAILED:
      self.stop_propagator(self._by_name, executor.name)

  async def _supervise(self, executor: StackExecutor, work: "asyncio.Task[None]") -> None:
    try:
      await work
    finally:
      self._stop_after(executor)

  def _start(self, executor: StackExecutor) -> None:
    # launch() flips the executor to running before we yield to the loop.
    work = executor.launch(self.method, self.options, self.token)
    self.launch_order.append(executor.name)
    self._tasks.append(asyncio.ensure_future(self._supervise(executor, work)))

  async def _initialize(self) -> None:
    # One at a time: backends may share plugin caches between stacks.
    for executor in self.executors:
      if self.token.cancelled:
        return
      if not await executor.initialize(self.method, self.options, self.token):
        self._stop_after(executor)

  async def _wait_for_any(self) -> None:
    in_flight: Set["asyncio.Future[None]"] = {task for task in self._tasks if not task.done()}
    if not in_flight:
      return
    aborted = asyncio.ensure_future(self.token.wait())
    try:
      await asyncio.wait(in_flight | {aborted}, return_when=asyncio.FIRST_COMPLETED)
    finally:
      aborted.cancel()

  async def execute(self) -> RunResult:
    self.options.validate_for(self.method)
    await self._initialize()

    stalled = False
    while self.pending() and not self.token.cancelled:
      if len(self.running()) >= self.parallelism:
        await self._wait_for_any()
        continue

      executor = self.ready_provider()
      if executor is None:
        if self.running():
          await self._wait_for_any()
          continue
        stalled = True
        break

      self._start(executor)

    aborted = self.token.cancelled
    if aborted:
      for executor in self.pending():
        executor.stop()

    # Settle everything before reporting, even after failures.
    await asyncio.gather(*self._tasks, return_exceptions=True)

    result = self.result(aborted=aborted or self.token.cancelled)
    if stalled and result.unprocessed and not result.aborted:
      raise DeadlockError(result)
    if not result.ok:
      raise OrchestrationError(result)
    return result

  def result(self, aborted: bool = False) -> RunResult:
    result = RunResult(method=self.method, aborted=aborted)
    for executor in self.executors:
      if executor.state is StackState.DONE:
        result.succeeded.append(executor.name)
      elif executor.state is StackState.FAILED and executor.error is not None:
        result.failed[executor.name] = executor.error
      elif executor.state is StackState.STOPPED:
        result.stopped.append(executor.name)
      else:
        result.unprocessed.append(executor.name)
    return result
