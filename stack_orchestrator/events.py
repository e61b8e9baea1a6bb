"""Lifecycle events, approval requests and cooperative cancellation.

Operations never talk to the caller directly. They emit ``StackEvent``s
through their ``OperationContext``; when a change needs confirmation the
operation suspends on an ``ApprovalRequest`` until the caller answers it.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol

from .errors import ApprovalRejected, RunAborted
from .models import Method, Stack

if TYPE_CHECKING:
  from .config import RunOptions


class EventType(str, Enum):
  INITIALIZING = "initializing"
  STARTED = "started"
  APPROVAL_REQUESTED = "approval requested"
  APPROVED = "approved"
  REJECTED = "rejected"
  OUTPUT = "output"
  DONE = "done"
  FAILED = "failed"
  STOPPED = "stopped"


class ApprovalRequest:
  def __init__(self, stack_name: str, summary: str = "") -> None:
    self.stack_name = stack_name
    self.summary = summary
    self._future: "asyncio.Future[bool]" = asyncio.get_running_loop().create_future()
    self.reason = ""

  @property
  def decided(self) -> bool:
    return self._future.done()

  def approve(self) -> None:
    if not self._future.done():
      self._future.set_result(True)

  def reject(self, reason: str = "") -> None:
    if not self._future.done():
      self.reason = reason
      self._future.set_result(False)

  async def wait(self) -> bool:
    return await asyncio.shield(self._future)

  def __repr__(self) -> str:
    state = "pending"
    if self._future.done():
      state = "approved" if self._future.result() else "rejected"
    return f"ApprovalRequest({self.stack_name!r}, {state})"


@dataclass
class StackEvent:
  type: EventType
  stack_name: str
  message: str = ""
  request: Optional[ApprovalRequest] = None
  error: Optional[BaseException] = None


EventHandler = Callable[[StackEvent], None]


def ignore_event(event: StackEvent) -> None:
  pass


class CancellationToken:
  """Abort flag shared by a run and its operations.

  The waiter event is created on first use so a token built outside the
  event loop can still be awaited inside it.
  """

  def __init__(self) -> None:
    self._cancelled = False
    self._event: Optional[asyncio.Event] = None

  @property
  def cancelled(self) -> bool:
    return self._cancelled

  def cancel(self) -> None:
    self._cancelled = True
    if self._event is not None:
      self._event.set()

  async def wait(self) -> None:
    if self._event is None:
      self._event = asyncio.Event()
      if self._cancelled:
        self._event.set()
    await self._event.wait()

  def raise_if_cancelled(self) -> None:
    if self.cancelled:
      raise RunAborted("The run was aborted.")


class OperationContext:
  def __init__(
    self,
    stack: Stack,
    method: Method,
    options: "RunOptions",
    token: CancellationToken,
    emit: EventHandler = ignore_event,
  ) -> None:
    self.stack = stack
    self.method = method
    self.options = options
    self.token = token
    self._emit = emit

  def emit(self, event_type: EventType, message: str = "", **kwargs: Any) -> None:
    self._emit(StackEvent(event_type, self.stack.name, message, **kwargs))

  def output(self, line: str) -> None:
    self.emit(EventType.OUTPUT, line)

  async def request_approval(self, summary: str = "") -> None:
    if self.options.auto_approve:
      self.emit(EventType.APPROVED, "auto-approved")
      return

    self.token.raise_if_cancelled()
    request = ApprovalRequest(self.stack.name, summary)
    self.emit(EventType.APPROVAL_REQUESTED, summary, request=request)

    decision = asyncio.ensure_future(request.wait())
    aborted = asyncio.ensure_future(self.token.wait())
    try:
      await asyncio.wait({decision, aborted}, return_when=asyncio.FIRST_COMPLETED)
    finally:
      for waiter in (decision, aborted):
        if not waiter.done():
          waiter.cancel()

    if self.token.cancelled or not decision.done() or decision.cancelled():
      raise RunAborted(f"The run was aborted while stack '{self.stack.name}' awaited approval.")
    if not decision.result():
      self.emit(EventType.REJECTED, request.reason)
      raise ApprovalRejected(self.stack.name, request.reason)
    self.emit(EventType.APPROVED)


class StackOperation(Protocol):
  """The provisioning backend as seen by the orchestrator.

  An operation may also define ``async initialize(stack, context)``; it is
  called once per stack, serially, before any deploy or destroy starts.
  """

  async def deploy(self, stack: Stack, context: OperationContext) -> None:
    ...

  async def destroy(self, stack: Stack, context: OperationContext) -> None:
    ...
