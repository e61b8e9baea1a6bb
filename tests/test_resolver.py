"""Tests for stack selection and readiness."""

import pytest

from stack_orchestrator.errors import CyclicDependencyError, IncompleteSelection, UnknownStackError
from stack_orchestrator.executor import StackExecutor
from stack_orchestrator.models import Method, Stack, StackSet, StackState
from stack_orchestrator.resolver import (
  execution_order,
  find_cycle,
  is_ready,
  next_ready,
  select_stacks,
)
from tests.fakes import ScriptedOperation, make_stacks


def executors_for(stacks, states=None):
  operation = ScriptedOperation()
  executors = [StackExecutor(stack, operation) for stack in stacks]
  for executor in executors:
    state = (states or {}).get(executor.name)
    if state is not None:
      executor._state = state
  return executors


@pytest.fixture
def diamond():
  return make_stacks({"base": [], "left": ["base"], "right": ["base"], "top": ["left", "right"]})


class TestSelectStacks:
  def test_no_names_selects_everything(self, diamond):
    selected = select_stacks(diamond, None, Method.DEPLOY)
    assert [stack.name for stack in selected] == ["base", "left", "right", "top"]
    assert select_stacks(diamond, [], Method.DESTROY) == selected

  def test_selection_keeps_links_to_full_graph(self, diamond):
    selected = select_stacks(diamond, ["base"], Method.DEPLOY)
    assert selected[0].dependents == frozenset({"left", "right"})

  def test_selection_follows_declaration_order(self, diamond):
    selected = select_stacks(diamond, ["left", "base"], Method.DEPLOY)
    assert [stack.name for stack in selected] == ["base", "left"]

  def test_glob_patterns(self, diamond):
    selected = select_stacks(
      diamond, ["*"], Method.DEPLOY
    )
    assert len(selected) == 4
    selected = select_stacks(
      diamond, ["l*", "r*"], Method.DEPLOY, ignore_missing_stack_dependencies=True
    )
    assert [stack.name for stack in selected] == ["left", "right"]

  def test_unknown_name_fails(self, diamond):
    with pytest.raises(UnknownStackError) as exc_info:
      select_stacks(diamond, ["nope"], Method.DEPLOY)
    assert exc_info.value.pattern == "nope"
    assert "base" in str(exc_info.value)

  def test_missing_dependency_fails_before_any_work(self):
    stacks = make_stacks({"A": [], "B": ["A"]})
    with pytest.raises(IncompleteSelection) as exc_info:
      select_stacks(stacks, ["B"], Method.DEPLOY)
    assert exc_info.value.stack_name == "B"
    assert exc_info.value.missing == ["A"]

  def test_missing_dependency_can_be_ignored(self):
    stacks = make_stacks({"A": [], "B": ["A"]})
    selected = select_stacks(stacks, ["B"], Method.DEPLOY, ignore_missing_stack_dependencies=True)
    assert [stack.name for stack in selected] == ["B"]

  def test_destroy_requires_dependents(self, diamond):
    with pytest.raises(IncompleteSelection) as exc_info:
      select_stacks(diamond, ["base", "left"], Method.DESTROY)
    assert exc_info.value.stack_name == "base"
    assert exc_info.value.missing == ["right"]
    assert exc_info.value.relation == "dependents"

  def test_destroy_of_leaf_needs_nothing_else(self, diamond):
    selected = select_stacks(diamond, ["top"], Method.DESTROY)
    assert [stack.name for stack in selected] == ["top"]

  def test_deploy_of_root_needs_nothing_else(self, diamond):
    selected = select_stacks(diamond, ["base"], Method.DEPLOY)
    assert [stack.name for stack in selected] == ["base"]

  def test_selection_is_idempotent(self, diamond):
    first = select_stacks(diamond, ["top", "l*", "right", "base"], Method.DEPLOY)
    second = select_stacks(diamond, ["top", "l*", "right", "base"], Method.DEPLOY)
    assert first == second

  def test_cycles_are_rejected(self):
    stacks = make_stacks({"a": ["c"], "b": ["a"], "c": ["b"], "d": []})
    with pytest.raises(CyclicDependencyError) as exc_info:
      select_stacks(stacks, None, Method.DEPLOY)
    cycle = exc_info.value.cycle
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"a", "b", "c"}


class TestFindCycle:
  def test_acyclic_graph(self, diamond):
    assert find_cycle(diamond) is None

  def test_self_dependency(self):
    assert find_cycle(make_stacks({"a": ["a"]})) == ["a", "a"]

  def test_ignores_stacks_outside_the_given_set(self):
    assert find_cycle([Stack("a", frozenset({"b"}))]) is None


class TestIsReady:
  def test_deploy_waits_for_dependencies(self, diamond):
    executors = executors_for(diamond, {"base": StackState.DONE, "left": StackState.RUNNING})
    by_name = {executor.name: executor for executor in executors}

    assert is_ready(by_name["right"], by_name, Method.DEPLOY)
    assert not is_ready(by_name["top"], by_name, Method.DEPLOY)
    assert not is_ready(by_name["left"], by_name, Method.DEPLOY)

  def test_deploy_dependency_failed_or_stopped_is_not_ready(self):
    stacks = make_stacks({"A": [], "B": ["A"]})
    for state in (StackState.FAILED, StackState.STOPPED):
      by_name = {e.name: e for e in executors_for(stacks, {"A": state})}
      assert not is_ready(by_name["B"], by_name, Method.DEPLOY)

  def test_dependency_outside_the_run(self):
    stacks = make_stacks({"A": [], "B": ["A"]})
    by_name = {e.name: e for e in executors_for([stacks["B"]])}
    assert not is_ready(by_name["B"], by_name, Method.DEPLOY)
    assert is_ready(by_name["B"], by_name, Method.DEPLOY, ignore_missing_stack_dependencies=True)

  def test_destroy_waits_for_dependents(self, diamond):
    executors = executors_for(diamond, {"top": StackState.DONE, "left": StackState.STOPPED})
    by_name = {executor.name: executor for executor in executors}

    assert is_ready(by_name["right"], by_name, Method.DESTROY)
    assert not is_ready(by_name["base"], by_name, Method.DESTROY)

    by_name["right"]._state = StackState.DONE
    assert is_ready(by_name["base"], by_name, Method.DESTROY)

  def test_destroy_failed_dependent_blocks(self):
    stacks = make_stacks({"A": [], "B": ["A"]})
    by_name = {e.name: e for e in executors_for(stacks, {"B": StackState.FAILED})}
    assert not is_ready(by_name["A"], by_name, Method.DESTROY)


class TestNextReady:
  def test_first_ready_in_run_order(self, diamond):
    executors = executors_for(diamond, {"base": StackState.DONE})
    assert next_ready(executors, Method.DEPLOY).name == "left"

  def test_none_when_nothing_is_ready(self, diamond):
    executors = executors_for(diamond, {"base": StackState.RUNNING})
    assert next_ready(executors, Method.DEPLOY) is None

  def test_destroy_starts_from_leaves(self, diamond):
    executors = executors_for(diamond)
    assert next_ready(executors, Method.DESTROY).name == "top"


class TestExecutionOrder:
  def test_deploy_order(self, diamond):
    assert execution_order(list(diamond)) == ["base", "left", "right", "top"]

  def test_destroy_order_is_reversed(self, diamond):
    assert execution_order(list(diamond), Method.DESTROY) == ["top", "right", "left", "base"]

  def test_external_dependencies_are_ignored(self):
    stacks = make_stacks({"A": [], "B": ["A"]})
    assert execution_order([stacks["B"]]) == ["B"]

  def test_cycle_raises(self):
    stacks = StackSet([Stack("a", frozenset({"b"})), Stack("b", frozenset({"a"}))])
    with pytest.raises(CyclicDependencyError):
      execution_order(list(stacks))
