"""Read the stack set written by a synthesis step."""
from __future__ import annotations

import json
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .errors import ManifestError
from .models import Stack, StackSet

MANIFEST_FILE_NAME = "manifest.json"
STACKS_FOLDER = "stacks"
DEFAULT_OUTDIR = "cdktf.out"


def run_synth_command(command: Union[str, Sequence[str]], cwd: Optional[Path] = None) -> None:
  args = shlex.split(command) if isinstance(command, str) else list(command)
  if not args:
    raise ManifestError("Synthesis command is empty.")
  try:
    completed = subprocess.run(args, cwd=cwd, check=False)
  except FileNotFoundError as exc:
    raise ManifestError(
      f"Synthesis command '{args[0]}' could not be executed ({exc.strerror or 'file not found'})."
    ) from exc
  if completed.returncode != 0:
    raise ManifestError(f"Synthesis command exited with code {completed.returncode}.")


class SynthesizedOutput:
  def __init__(self, outdir: Union[str, Path] = DEFAULT_OUTDIR) -> None:
    self.outdir = Path(outdir)

  @property
  def manifest_path(self) -> Path:
    return self.outdir / MANIFEST_FILE_NAME

  @property
  def stacks_folder(self) -> Path:
    return self.outdir / STACKS_FOLDER

  def load(self) -> StackSet:
    if not self.manifest_path.exists():
      raise ManifestError(
        "Synthesis failed: the app was expected to call 'synth()' but "
        f"'{self.manifest_path}' was not created."
      )
    manifest = self._read_json(self.manifest_path)
    stacks_section = manifest.get("stacks") if isinstance(manifest, dict) else None
    if not isinstance(stacks_section, dict):
      raise ManifestError(f"Manifest {self.manifest_path} must contain a 'stacks' mapping.")

    stacks: List[Stack] = []
    for key, entry in stacks_section.items():
      stacks.append(self._parse_stack(key, entry))
    try:
      return StackSet(stacks)
    except ValueError as exc:
      raise ManifestError(str(exc)) from exc

  def _parse_stack(self, key: str, entry: Any) -> Stack:
    if not isinstance(entry, dict):
      raise ManifestError(f"Manifest {self.manifest_path}: stack '{key}' must be a mapping.")
    name = entry.get("name") or key
    for required in ("workingDirectory", "synthesizedStackPath"):
      if not entry.get(required):
        raise ManifestError(f"Manifest {self.manifest_path}: stack '{name}' is missing '{required}'.")

    dependencies = entry.get("dependencies") or []
    if not isinstance(dependencies, list) or any(not isinstance(item, str) for item in dependencies):
      raise ManifestError(
        f"Manifest {self.manifest_path}: stack '{name}' dependencies must be an array of stack names."
      )

    stack_path = self.outdir / entry["synthesizedStackPath"]
    if not stack_path.exists():
      raise ManifestError(f"Synthesized stack file '{stack_path}' for stack '{name}' does not exist.")
    content = json.dumps(self._read_json(stack_path), indent=2)

    return Stack(
      name=name,
      dependencies=frozenset(dependencies),
      working_directory=self.outdir / entry["workingDirectory"],
      content=content,
      synthesized_stack_path=stack_path,
    )

  def _read_json(self, path: Path) -> Dict[str, Any]:
    try:
      with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)
    except json.JSONDecodeError as exc:
      raise ManifestError(f"{path} is not valid JSON: {exc}") from exc

  def existing_directories(self) -> List[Path]:
    if not self.stacks_folder.exists():
      return []
    return sorted(path for path in self.stacks_folder.iterdir() if path.is_dir() and not path.is_symlink())

  def remove_orphaned_directories(self, stack_set: StackSet) -> List[Path]:
    removed: List[Path] = []
    for directory in self.existing_directories():
      if directory.name not in stack_set:
        shutil.rmtree(directory)
        removed.append(directory)
    return removed
