from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .errors import ConfigurationConflict
from .models import Method

ENV_PREFIX = "STACK_ORCHESTRATOR_"

_CAMEL_CASE_KEYS = {
  "stackNames": "stack_names",
  "autoApprove": "auto_approve",
  "ignoreMissingStackDependencies": "ignore_missing_stack_dependencies",
  "refreshOnly": "refresh_only",
  "terraformParallelism": "terraform_parallelism",
  "varFiles": "var_files",
  "noColor": "no_color",
  "migrateState": "migrate_state",
}

_ENV_KEYS = {
  "PARALLELISM": "parallelism",
  "AUTO_APPROVE": "auto_approve",
  "IGNORE_MISSING_DEPENDENCIES": "ignore_missing_stack_dependencies",
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@dataclass
class RunOptions:
  """Options recognised by a deploy or destroy run.

  ``parallelism`` caps how many stacks run at once; ``None``, zero and
  negative values mean no limit. ``refresh_only`` is only valid for deploy.
  The terraform-specific fields are passed through to the operation.
  """

  stack_names: Optional[List[str]] = None
  auto_approve: bool = False
  ignore_missing_stack_dependencies: bool = False
  parallelism: Optional[int] = None
  refresh_only: bool = False
  terraform_parallelism: Optional[int] = None
  vars: List[str] = field(default_factory=list)
  var_files: List[str] = field(default_factory=list)
  no_color: bool = False
  migrate_state: bool = False

  @property
  def max_parallel_runs(self) -> Union[int, float]:
    if not self.parallelism or self.parallelism < 0:
      return math.inf
    return self.parallelism

  def validate_for(self, method: Method) -> None:
    if self.refresh_only and method is not Method.DEPLOY:
      raise ConfigurationConflict("Refresh only is only supported on deploy.")

  def merged(self, **overrides: Any) -> "RunOptions":
    """Return a copy with every override that is not ``None`` applied."""
    return replace(self, **{key: value for key, value in overrides.items() if value is not None})


def _field_types() -> Dict[str, Any]:
  return {item.name: item for item in fields(RunOptions)}


def _coerce_bool(key: str, value: Any) -> bool:
  if isinstance(value, bool):
    return value
  if isinstance(value, str):
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
      return True
    if lowered in _FALSY:
      return False
  raise ConfigurationConflict(f"Option '{key}' must be a boolean, got {value!r}.")


def _coerce_int(key: str, value: Any) -> Optional[int]:
  if value is None:
    return None
  if isinstance(value, bool):
    raise ConfigurationConflict(f"Option '{key}' must be an integer, got {value!r}.")
  try:
    return int(value)
  except (TypeError, ValueError):
    raise ConfigurationConflict(f"Option '{key}' must be an integer, got {value!r}.") from None


def _coerce_list(key: str, value: Any) -> Optional[List[str]]:
  if value is None:
    return None
  if isinstance(value, str):
    return [value]
  if isinstance(value, list) and all(isinstance(item, str) for item in value):
    return list(value)
  raise ConfigurationConflict(f"Option '{key}' must be a string or list of strings.")


def _coerce(key: str, value: Any) -> Any:
  if key in ("parallelism", "terraform_parallelism"):
    return _coerce_int(key, value)
  if key in ("stack_names", "vars", "var_files"):
    return _coerce_list(key, value)
  return _coerce_bool(key, value)


def options_from_mapping(data: Mapping[str, Any], base: Optional[RunOptions] = None) -> RunOptions:
  known = _field_types()
  values: Dict[str, Any] = {}
  for raw_key, value in data.items():
    key = _CAMEL_CASE_KEYS.get(raw_key, raw_key)
    if key not in known:
      raise ConfigurationConflict(f"Unknown run option '{raw_key}'.")
    values[key] = _coerce(key, value)
  return (base or RunOptions()).merged(**values)


def load_config_file(path: Union[str, Path], base: Optional[RunOptions] = None) -> RunOptions:
  config_path = Path(path)
  if not config_path.exists():
    raise FileNotFoundError(f"Configuration file '{config_path}' does not exist.")
  with config_path.open("r", encoding="utf-8") as handle:
    loaded = yaml.safe_load(handle) or {}
  if not isinstance(loaded, dict):
    raise ConfigurationConflict(f"Configuration file {config_path} must parse to a mapping.")
  return options_from_mapping(loaded, base)


def options_from_environment(
  environ: Optional[Mapping[str, str]] = None, base: Optional[RunOptions] = None
) -> RunOptions:
  environ = os.environ if environ is None else environ
  values: Dict[str, Any] = {}
  for suffix, key in _ENV_KEYS.items():
    raw = environ.get(ENV_PREFIX + suffix)
    if raw is not None:
      values[key] = _coerce(key, raw)
  return (base or RunOptions()).merged(**values)


def load_run_options(
  config_path: Optional[Union[str, Path]] = None,
  *,
  environ: Optional[Mapping[str, str]] = None,
  **overrides: Any,
) -> RunOptions:
  """Defaults, then the YAML file, then the environment, then explicit overrides."""
  options = RunOptions()
  if config_path:
    options = load_config_file(config_path, options)
  options = options_from_environment(environ, options)
  return options.merged(**overrides)
