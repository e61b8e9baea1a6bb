"""Tests for console output helpers."""

import io

from stack_orchestrator.errors import OperationFailure
from stack_orchestrator.models import Method, RunResult
from stack_orchestrator.summary import (
  ANSI_CODES,
  ColorMode,
  build_console_palette,
  plain_palette,
  print_run_report,
)


class FakeTerminal(io.StringIO):
  def isatty(self):
    return True


def test_always_and_never():
  assert build_console_palette("always") == ANSI_CODES
  assert build_console_palette("never") == plain_palette()
  assert set(plain_palette().values()) == {""}


def test_auto_follows_the_stream(monkeypatch):
  monkeypatch.delenv("NO_COLOR", raising=False)
  assert build_console_palette("auto", FakeTerminal())["failure"] == "\033[31m"
  assert build_console_palette("auto", io.StringIO())["failure"] == ""


def test_no_color_disables_auto(monkeypatch):
  monkeypatch.setenv("NO_COLOR", "1")
  assert not ColorMode.AUTO.enabled(FakeTerminal())
  assert ColorMode.ALWAYS.enabled(FakeTerminal())


def test_unknown_mode_falls_back_to_auto():
  assert build_console_palette("sometimes", io.StringIO()) == plain_palette()


def test_run_report_colors_failures(capsys):
  result = RunResult(
    method=Method.DEPLOY,
    succeeded=["network"],
    failed={"app": OperationFailure("app", "deploy", RuntimeError("boom"))},
  )

  print_run_report(result, build_console_palette("always"))

  captured = capsys.readouterr()
  assert "\033[32mSucceeded (deploy): network\033[0m" in captured.out
  assert "\033[31mFailed: app: boom\033[0m" in captured.err
