"""Command line entry point: ``stack-orchestrator deploy|destroy|plan``."""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys
import threading
from typing import List, Optional, Set, TextIO

from .config import RunOptions, load_run_options
from .errors import OrchestrationError, StackOrchestratorError
from .events import ApprovalRequest, EventHandler, EventType, StackEvent
from .manifest import DEFAULT_OUTDIR, SynthesizedOutput, run_synth_command
from .models import Method, StackSet
from .orchestrator import StackOrchestrator
from .resolver import select_stacks
from .summary import (
  ColorMode,
  ConsoleReporter,
  build_console_palette,
  print_dependency_summary,
  print_run_report,
)
from .terraform import TerraformCli, command_preview, format_command


def _deliver(line: "asyncio.Future[str]", text: str) -> None:
  if not line.done():
    line.set_result(text)


def _read_line(loop: asyncio.AbstractEventLoop, line: "asyncio.Future[str]", stream: TextIO) -> None:
  try:
    text = stream.readline()
  except (OSError, ValueError):
    text = ""
  try:
    loop.call_soon_threadsafe(_deliver, line, text)
  except RuntimeError:
    # The event loop already closed; nobody is waiting for this answer.
    pass


class ApprovalPrompter:
  """Asks for approvals on the terminal, one stack at a time.

  Answers are read on a daemon thread, so a read that is still blocked
  when the run ends never keeps the process alive. End of input rejects
  the waiting stack and every stack that asks after it.
  """

  def __init__(self, stream: Optional[TextIO] = None, output: Optional[TextIO] = None) -> None:
    self.stream = stream
    self.output = output
    self._lock: Optional[asyncio.Lock] = None
    self._reading: Optional["asyncio.Future[str]"] = None
    self._exhausted = False
    self._outstanding: List[ApprovalRequest] = []
    self._prompts: Set["asyncio.Task[None]"] = set()

  def ask(self, request: ApprovalRequest) -> None:
    self._outstanding.append(request)
    prompt = asyncio.ensure_future(self._prompt(request))
    self._prompts.add(prompt)
    prompt.add_done_callback(self._prompts.discard)

  def reject_outstanding(self, reason: str) -> None:
    for request in list(self._outstanding):
      request.reject(reason)

  async def close(self, reason: str = "the run ended") -> None:
    self.reject_outstanding(reason)
    if self._prompts:
      await asyncio.gather(*self._prompts, return_exceptions=True)

  async def _prompt(self, request: ApprovalRequest) -> None:
    if self._lock is None:
      self._lock = asyncio.Lock()
    try:
      async with self._lock:
        if request.decided:
          return
        answer = await self._read_answer(request)
        if request.decided:
          return
        if answer is None:
          request.reject("no answer on stdin")
        elif answer.strip().lower() in ("y", "yes"):
          request.approve()
        else:
          request.reject("declined at the prompt")
    finally:
      self._outstanding.remove(request)

  async def _read_answer(self, request: ApprovalRequest) -> Optional[str]:
    if self._exhausted:
      return None
    output = self.output or sys.stdout
    print(f"Approve changes for stack '{request.stack_name}'? [y/N] ", end="", file=output, flush=True)

    loop = asyncio.get_running_loop()
    if self._reading is None:
      self._reading = loop.create_future()
      reader = threading.Thread(
        target=_read_line,
        args=(loop, self._reading, self.stream or sys.stdin),
        name=f"approval-{request.stack_name}",
        daemon=True,
      )
      reader.start()

    line = self._reading
    decided = asyncio.ensure_future(request.wait())
    try:
      await asyncio.wait({line, decided}, return_when=asyncio.FIRST_COMPLETED)
    finally:
      decided.cancel()

    if not line.done():
      # Decided elsewhere; the pending line goes to the next prompt.
      print(file=output)
      return None
    self._reading = None
    text = line.result()
    if not text:
      self._exhausted = True
      print(file=output)
      return None
    return text


def interactive_handler(reporter: ConsoleReporter, prompter: ApprovalPrompter) -> EventHandler:
  def handle(event: StackEvent) -> None:
    reporter(event)
    if event.type is EventType.APPROVAL_REQUESTED and event.request is not None:
      prompter.ask(event.request)

  return handle


def build_run_options(args: argparse.Namespace) -> RunOptions:
  return load_run_options(
    args.config,
    stack_names=args.stacks or None,
    auto_approve=True if args.auto_approve else None,
    ignore_missing_stack_dependencies=True if args.ignore_missing_stack_dependencies else None,
    parallelism=args.parallelism,
    refresh_only=True if args.refresh_only else None,
    terraform_parallelism=args.terraform_parallelism,
    vars=args.var or None,
    var_files=args.var_file or None,
    no_color=True if args.no_color else None,
    migrate_state=True if args.migrate_state else None,
  )


def load_stacks(args: argparse.Namespace) -> StackSet:
  if args.synth:
    run_synth_command(args.synth)
  output = SynthesizedOutput(args.outdir)
  stack_set = output.load()
  if not len(stack_set):
    print("ERROR: No Terraform code synthesized.", file=sys.stderr)
  else:
    print(f"Synthesized Terraform code for the following stacks: {', '.join(stack_set.names())}")
  for directory in output.remove_orphaned_directories(stack_set):
    if args.verbose:
      print(f"Removed orphaned stack directory {directory}")
  return stack_set


def plan(args: argparse.Namespace, stack_set: StackSet, options: RunOptions) -> int:
  method = Method(args.method)
  options.validate_for(method)
  selected = select_stacks(
    stack_set,
    options.stack_names,
    method,
    ignore_missing_stack_dependencies=options.ignore_missing_stack_dependencies,
  )
  palette = build_console_palette(args.color)
  print_dependency_summary(selected, method, palette)
  if args.verbose:
    for command in command_preview(args.terraform, method, options):
      print(f"  command: {format_command(command)}")
  return 0


async def run(args: argparse.Namespace, stack_set: StackSet, options: RunOptions) -> int:
  method = Method(args.command)
  palette = build_console_palette(args.color)
  reporter = ConsoleReporter(palette, verbose=args.verbose or args.dry_run)
  prompter = ApprovalPrompter()
  orchestrator = StackOrchestrator(
    stack_set,
    TerraformCli(args.terraform, dry_run=args.dry_run),
    on_update=interactive_handler(reporter, prompter),
  )

  def abort() -> None:
    orchestrator.hard_abort()
    prompter.reject_outstanding("the run was aborted")

  loop = asyncio.get_running_loop()
  try:
    loop.add_signal_handler(signal.SIGINT, abort)
  except (NotImplementedError, RuntimeError):
    pass

  try:
    result = await orchestrator.execute(method, options)
  except OrchestrationError as exc:
    print_run_report(exc.result, palette)
    print(str(exc), file=sys.stderr)
    return 130 if exc.result.aborted else 1
  finally:
    try:
      loop.remove_signal_handler(signal.SIGINT)
    except (NotImplementedError, RuntimeError):
      pass
    await prompter.close()

  print_run_report(result, palette)
  return 0


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
  parser = argparse.ArgumentParser(description="Stack deployment orchestrator")
  parser.add_argument(
    "command",
    choices=["deploy", "destroy", "plan"],
    help="deploy or destroy the selected stacks, or only print the execution plan.",
  )
  parser.add_argument(
    "stacks",
    nargs="*",
    help="Stack names or glob patterns to run (default: every synthesized stack).",
  )
  parser.add_argument(
    "--outdir",
    default=DEFAULT_OUTDIR,
    help=f"Directory holding the synthesized output (default: {DEFAULT_OUTDIR}).",
  )
  parser.add_argument(
    "--synth",
    help="Command that synthesizes the stacks before the run, e.g. 'npx ts-node main.ts'.",
  )
  parser.add_argument(
    "--config",
    help="YAML file with default run options.",
  )
  parser.add_argument(
    "--method",
    choices=[method.value for method in Method],
    default=Method.DEPLOY.value,
    help="Direction used by the plan command (default: deploy).",
  )
  parser.add_argument(
    "--auto-approve",
    action="store_true",
    help="Approve every stack without prompting.",
  )
  parser.add_argument(
    "--ignore-missing-stack-dependencies",
    action="store_true",
    help="Run the selected stacks even when related stacks are not selected.",
  )
  parser.add_argument(
    "--parallelism",
    type=int,
    default=None,
    help="Maximum number of stacks to run at the same time (default: unbounded).",
  )
  parser.add_argument(
    "--refresh-only",
    action="store_true",
    help="Only refresh state during deploy.",
  )
  parser.add_argument(
    "--terraform",
    default="terraform",
    help="Terraform executable name (default: terraform).",
  )
  parser.add_argument(
    "--terraform-parallelism",
    type=int,
    default=None,
    help="Value for terraform's own -parallelism flag.",
  )
  parser.add_argument("--var", action="append", default=[], help="Input variable, e.g. --var region=eu-west-1.")
  parser.add_argument("--var-file", action="append", default=[], help="Input variable file.")
  parser.add_argument("--no-color", action="store_true", help="Pass -no-color to terraform.")
  parser.add_argument("--migrate-state", action="store_true", help="Pass -migrate-state to terraform init.")
  parser.add_argument(
    "--color",
    choices=[mode.value for mode in ColorMode],
    default=ColorMode.AUTO.value,
    help="Color output mode: auto (default), always, or never.",
  )
  parser.add_argument(
    "--dry-run",
    action="store_true",
    help="Print terraform commands without executing them.",
  )
  parser.add_argument(
    "--verbose",
    action="store_true",
    help="Print terraform output and every constructed command.",
  )
  return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
  args = parse_arguments(argv)
  try:
    options = build_run_options(args)
    stack_set = load_stacks(args)
    if args.command == "plan":
      return plan(args, stack_set, options)
    return asyncio.run(run(args, stack_set, options))
  except (StackOrchestratorError, FileNotFoundError) as exc:
    print(f"ERROR: {exc}", file=sys.stderr)
    return 1
  except KeyboardInterrupt:
    return 130


if __name__ == "__main__":
  sys.exit(main())
