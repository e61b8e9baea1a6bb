"""Run stacks through the terraform CLI.

Each stack is planned into a plan file, approved, and then applied. Destroy
uses the same flow with a destroy plan.
"""
from __future__ import annotations

import asyncio
import json
import signal
from typing import Iterable, List, Optional

from .config import RunOptions
from .errors import StackOrchestratorError
from .events import OperationContext
from .models import Method, Stack

PLAN_FILE = "plan"


class TerraformCommandError(StackOrchestratorError):
  def __init__(self, command: List[str], returncode: int, detail: str = "") -> None:
    self.command = list(command)
    self.returncode = returncode
    message = f"{format_command(command)} exited with code {returncode}"
    super().__init__(f"{message}: {detail}" if detail else message)


def format_command(command: Iterable[str]) -> str:
  return " ".join(json.dumps(arg) for arg in command)


def build_init_command(binary: str, options: RunOptions) -> List[str]:
  command = [binary, "init", "-input=false"]
  if options.migrate_state:
    command.append("-migrate-state")
  if options.no_color:
    command.append("-no-color")
  return command


def build_plan_command(binary: str, method: Method, options: RunOptions) -> List[str]:
  command = [binary, "plan", "-input=false", f"-out={PLAN_FILE}"]
  if method is Method.DESTROY:
    command.append("-destroy")
  elif options.refresh_only:
    command.append("-refresh-only")
  for value in options.vars:
    command.append(f"-var={value}")
  for var_file in options.var_files:
    command.append(f"-var-file={var_file}")
  if options.terraform_parallelism is not None and options.terraform_parallelism >= 0:
    command.append(f"-parallelism={options.terraform_parallelism}")
  if options.no_color:
    command.append("-no-color")
  return command


def build_apply_command(binary: str, options: RunOptions) -> List[str]:
  command = [binary, "apply", "-input=false"]
  if options.terraform_parallelism is not None and options.terraform_parallelism >= 0:
    command.append(f"-parallelism={options.terraform_parallelism}")
  if options.no_color:
    command.append("-no-color")
  command.append(PLAN_FILE)
  return command


class TerraformCli:
  def __init__(self, binary: str = "terraform", *, dry_run: bool = False) -> None:
    self.binary = binary
    self.dry_run = dry_run

  async def initialize(self, stack: Stack, context: OperationContext) -> None:
    await self._run(build_init_command(self.binary, context.options), stack, context)

  async def deploy(self, stack: Stack, context: OperationContext) -> None:
    await self._plan_and_apply(Method.DEPLOY, stack, context)

  async def destroy(self, stack: Stack, context: OperationContext) -> None:
    await self._plan_and_apply(Method.DESTROY, stack, context)

  async def _plan_and_apply(self, method: Method, stack: Stack, context: OperationContext) -> None:
    await self._run(build_plan_command(self.binary, method, context.options), stack, context)
    await context.request_approval(f"Apply the {method.value} plan for stack '{stack.name}'?")
    context.token.raise_if_cancelled()
    await self._run(build_apply_command(self.binary, context.options), stack, context)

  async def _run(self, command: List[str], stack: Stack, context: OperationContext) -> None:
    context.output(format_command(command))
    if self.dry_run:
      return

    try:
      process = await asyncio.create_subprocess_exec(
        *command,
        cwd=str(stack.working_directory),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
      )
    except FileNotFoundError as exc:
      raise TerraformCommandError(
        command, 127, f"'{command[0]}' could not be executed ({exc.strerror or 'file not found'})"
      ) from exc

    interrupt = asyncio.ensure_future(self._interrupt_on_abort(process, context))
    try:
      async for raw_line in process.stdout:
        context.output(raw_line.decode("utf-8", errors="replace").rstrip())
      returncode = await process.wait()
    finally:
      interrupt.cancel()

    if returncode != 0:
      raise TerraformCommandError(command, returncode)

  @staticmethod
  async def _interrupt_on_abort(process: "asyncio.subprocess.Process", context: OperationContext) -> None:
    await context.token.wait()
    # Terraform finishes the current resource and exits cleanly on SIGINT.
    if process.returncode is None:
      context.output("Abort requested, interrupting terraform.")
      try:
        process.send_signal(signal.SIGINT)
      except ProcessLookupError:
        pass


def command_preview(binary: str, method: Method, options: Optional[RunOptions] = None) -> List[List[str]]:
  options = options or RunOptions()
  return [
    build_init_command(binary, options),
    build_plan_command(binary, method, options),
    build_apply_command(binary, options),
  ]
