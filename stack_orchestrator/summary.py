"""Console output: dependency maps, live stack events and the final report."""
from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Sequence, TextIO

from .events import EventType, StackEvent
from .models import Method, RunResult, Stack
from .resolver import execution_order

ANSI_CODES = {
  "heading": "\033[1m",
  "root": "\033[32m",
  "dependent": "\033[36m",
  "arrow": "\033[90m",
  "success": "\033[32m",
  "failure": "\033[31m",
  "reset": "\033[0m",
}
PALETTE_KEYS = tuple(ANSI_CODES)


class ColorMode(str, Enum):
  AUTO = "auto"
  ALWAYS = "always"
  NEVER = "never"

  def enabled(self, stream: Optional[TextIO] = None) -> bool:
    if self is not ColorMode.AUTO:
      return self is ColorMode.ALWAYS
    isatty = getattr(stream or sys.stdout, "isatty", None)
    return bool(isatty and isatty()) and "NO_COLOR" not in os.environ


def plain_palette() -> Dict[str, str]:
  return dict.fromkeys(PALETTE_KEYS, "")


def build_console_palette(requested_mode: Optional[str], stream: Optional[TextIO] = None) -> Dict[str, str]:
  """Map palette keys to ANSI codes, or to empty strings when color is off.

  Unknown modes fall back to ``auto``. ``NO_COLOR`` disables auto color.
  """
  try:
    mode = ColorMode(requested_mode or ColorMode.AUTO)
  except ValueError:
    mode = ColorMode.AUTO
  return dict(ANSI_CODES) if mode.enabled(stream) else plain_palette()


def _display_path(path: Path) -> str:
  try:
    return str(path.relative_to(Path.cwd()))
  except ValueError:
    return str(path)


def print_dependency_summary(
  selected: Sequence[Stack],
  method: Method = Method.DEPLOY,
  palette: Optional[Dict[str, str]] = None,
) -> None:
  if not selected:
    print(f"No stacks selected for {method.value}.")
    return

  if palette is None:
    palette = plain_palette()

  heading = palette.get("heading", "")
  reset = palette.get("reset", "")
  in_scope = {stack.name for stack in selected}

  print(f"{heading}Dependency map (selected scope):{reset}")
  roots = [stack for stack in selected if not stack.dependencies]
  dependents = [stack for stack in selected if stack.dependencies]

  print(f"  {heading}Root stacks:{reset}")
  if roots:
    for stack in roots:
      print(f"    - {palette.get('root', '')}{stack.name}{reset}")
  else:
    print("    (none)")

  print(f"  {heading}Dependent stacks:{reset}")
  if dependents:
    for stack in dependents:
      print(f"    {palette.get('dependent', '')}{stack.name}{reset}")
      for dependency_name in sorted(stack.dependencies):
        suffix = "" if dependency_name in in_scope else f" {palette.get('arrow', '')}(external){reset}"
        print(
          f"      {palette.get('arrow', '')}-> {reset}{palette.get('root', '')}{dependency_name}{reset}"
          + suffix
        )
  else:
    print("    (none)")

  print()

  by_name = {stack.name: stack for stack in selected}
  print(f"{heading}Execution order ({method.value}):{reset}")
  for position, name in enumerate(execution_order(selected, method), 1):
    stack = by_name[name]
    print(f"  {position}. {palette.get('dependent', '')}{name}{reset} ({_display_path(stack.working_directory)})")
  print()


class ConsoleReporter:
  """Prints stack events as they happen."""

  def __init__(
    self,
    palette: Optional[Dict[str, str]] = None,
    *,
    verbose: bool = False,
    stream: Optional[TextIO] = None,
    error_stream: Optional[TextIO] = None,
  ) -> None:
    self.palette = palette or plain_palette()
    self.verbose = verbose
    self.stream = stream
    self.error_stream = error_stream

  def _print(self, message: str, error: bool = False) -> None:
    if error:
      print(message, file=self.error_stream or sys.stderr)
    else:
      print(message, file=self.stream or sys.stdout)

  def __call__(self, event: StackEvent) -> None:
    reset = self.palette.get("reset", "")
    name = f"{self.palette.get('dependent', '')}{event.stack_name}{reset}"
    if event.type is EventType.OUTPUT:
      if self.verbose:
        self._print(f"[{name}] {event.message}")
    elif event.type is EventType.STARTED:
      self._print(f"Starting {event.message} of stack '{name}'...")
    elif event.type is EventType.DONE:
      self._print(f"{self.palette.get('success', '')}Stack '{event.stack_name}' {event.message} finished.{reset}")
    elif event.type is EventType.FAILED:
      self._print(f"{self.palette.get('failure', '')}Stack '{event.stack_name}' failed: {event.message}{reset}", error=True)
    elif event.type is EventType.STOPPED:
      self._print(f"Stack '{name}' was skipped because a stack it relies on did not finish.", error=True)
    elif event.type is EventType.APPROVAL_REQUESTED:
      self._print(f"[{name}] waiting for approval: {event.message}")
    elif event.type is EventType.REJECTED:
      self._print(f"[{name}] changes rejected {event.message}".rstrip(), error=True)
    elif self.verbose:
      self._print(f"[{name}] {event.type.value} {event.message}".rstrip())


def print_run_report(result: RunResult, palette: Optional[Dict[str, str]] = None) -> None:
  palette = palette or plain_palette()
  reset = palette.get("reset", "")
  verb = result.method.value
  if result.succeeded:
    print(f"{palette.get('success', '')}Succeeded ({verb}): {', '.join(result.succeeded)}{reset}")
  for name, failure in result.failed.items():
    print(f"{palette.get('failure', '')}Failed: {name}: {failure.cause}{reset}", file=sys.stderr)
  if result.stopped:
    print(f"Skipped: {', '.join(result.stopped)}", file=sys.stderr)
  if result.unprocessed:
    print(f"Unprocessed: {', '.join(result.unprocessed)}", file=sys.stderr)
  if result.ok:
    print("All stacks processed successfully.")
  elif result.aborted:
    print("Run was aborted before all stacks were processed.", file=sys.stderr)
