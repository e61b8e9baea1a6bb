from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Optional

from .errors import OperationFailure, StackStateError
from .events import (
  CancellationToken,
  EventHandler,
  EventType,
  OperationContext,
  StackEvent,
  StackOperation,
  ignore_event,
)
from .models import Method, Stack, StackState

if TYPE_CHECKING:
  from .config import RunOptions


class StackExecutor:
  """Run-scoped state for one stack.

  The state only moves forward: pending -> running -> done/failed, or
  pending -> stopped. The operation is invoked at most once per executor.
  """

  def __init__(
    self,
    stack: Stack,
    operation: StackOperation,
    *,
    on_update: Optional[EventHandler] = None,
  ) -> None:
    self.stack = stack
    self._operation = operation
    self._on_update = on_update or ignore_event
    self._state = StackState.PENDING
    self.error: Optional[OperationFailure] = None
    self.current_work: Optional["asyncio.Task[None]"] = None

  @property
  def name(self) -> str:
    return self.stack.name

  @property
  def state(self) -> StackState:
    return self._state

  @property
  def is_pending(self) -> bool:
    return self._state is StackState.PENDING

  @property
  def is_running(self) -> bool:
    return self._state is StackState.RUNNING

  @property
  def is_terminal(self) -> bool:
    return self._state.is_terminal

  def _emit(self, event_type: EventType, message: str = "", **kwargs: Any) -> None:
    self._on_update(StackEvent(event_type, self.stack.name, message, **kwargs))

  def context(self, method: Method, options: "RunOptions", token: CancellationToken) -> OperationContext:
    return OperationContext(self.stack, method, options, token, self._on_update)

  async def initialize(self, method: Method, options: "RunOptions", token: CancellationToken) -> bool:
    """Run the operation's optional initialize hook; returns False on failure."""
    initialize = getattr(self._operation, "initialize", None)
    if initialize is None or not self.is_pending:
      return True
    self._emit(EventType.INITIALIZING)
    try:
      await initialize(self.stack, self.context(method, options, token))
    except Exception as exc:  # pylint: disable=broad-except
      self._fail(method, exc)
      return False
    return True

  def launch(self, method: Method, options: "RunOptions", token: CancellationToken) -> "asyncio.Task[None]":
    if self._state is not StackState.PENDING:
      raise StackStateError(
        f"Stack '{self.stack.name}' cannot start while {self._state.value}."
      )
    self._state = StackState.RUNNING
    self._emit(EventType.STARTED, method.value)
    self.current_work = asyncio.ensure_future(self._run(method, options, token))
    return self.current_work

  async def deploy(self, options: "RunOptions", token: CancellationToken) -> None:
    await self.launch(Method.DEPLOY, options, token)

  async def destroy(self, options: "RunOptions", token: CancellationToken) -> None:
    await self.launch(Method.DESTROY, options, token)

  def stop(self) -> bool:
    if self._state is not StackState.PENDING:
      return False
    self._state = StackState.STOPPED
    self._emit(EventType.STOPPED)
    return True

  async def _run(self, method: Method, options: "RunOptions", token: CancellationToken) -> None:
    context = self.context(method, options, token)
    run = self._operation.deploy if method is Method.DEPLOY else self._operation.destroy
    try:
      await run(self.stack, context)
    except asyncio.CancelledError as exc:
      self._fail(method, exc)
      raise
    except Exception as exc:  # pylint: disable=broad-except
      self._fail(method, exc)
    else:
      self._state = StackState.DONE
      self._emit(EventType.DONE, method.value)
    finally:
      self.current_work = None

  def _fail(self, method: Method, exc: BaseException) -> None:
    self.error = OperationFailure(self.stack.name, method.value, exc)
    self._state = StackState.FAILED
    self._emit(EventType.FAILED, str(exc), error=self.error)

  def __repr__(self) -> str:
    return f"StackExecutor({self.stack.name!r}, {self._state.value})"
