"""Tests for reading synthesized output."""

import json

import pytest

from stack_orchestrator.errors import ManifestError
from stack_orchestrator.manifest import SynthesizedOutput, run_synth_command


def write_output(outdir, stacks):
  manifest = {"version": "0.20.0", "stacks": {}}
  for name, dependencies in stacks.items():
    stack_dir = outdir / "stacks" / name
    stack_dir.mkdir(parents=True)
    (stack_dir / "cdk.tf.json").write_text(json.dumps({"resource": {"name": name}}), encoding="utf-8")
    manifest["stacks"][name] = {
      "name": name,
      "constructPath": name,
      "workingDirectory": f"stacks/{name}",
      "synthesizedStackPath": f"stacks/{name}/cdk.tf.json",
      "annotations": [],
      "dependencies": dependencies,
    }
  (outdir / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")


class TestSynthesizedOutput:
  def test_load(self, tmp_path):
    write_output(tmp_path, {"network": [], "app": ["network"]})

    stacks = SynthesizedOutput(tmp_path).load()

    assert stacks.names() == ["network", "app"]
    assert stacks["app"].dependencies == frozenset({"network"})
    assert stacks["network"].dependents == frozenset({"app"})
    assert stacks["app"].working_directory == tmp_path / "stacks" / "app"
    assert stacks["app"].synthesized_stack_path == tmp_path / "stacks" / "app" / "cdk.tf.json"
    assert stacks["app"].content == json.dumps({"resource": {"name": "app"}}, indent=2)

  def test_missing_manifest(self, tmp_path):
    with pytest.raises(ManifestError, match="was expected to call 'synth\\(\\)'"):
      SynthesizedOutput(tmp_path / "cdktf.out").load()

  def test_invalid_json(self, tmp_path):
    (tmp_path / "manifest.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(ManifestError, match="not valid JSON"):
      SynthesizedOutput(tmp_path).load()

  def test_missing_stacks_section(self, tmp_path):
    (tmp_path / "manifest.json").write_text(json.dumps({"version": "1"}), encoding="utf-8")
    with pytest.raises(ManifestError, match="'stacks' mapping"):
      SynthesizedOutput(tmp_path).load()

  def test_missing_stack_file(self, tmp_path):
    write_output(tmp_path, {"network": []})
    (tmp_path / "stacks" / "network" / "cdk.tf.json").unlink()
    with pytest.raises(ManifestError, match="does not exist"):
      SynthesizedOutput(tmp_path).load()

  def test_missing_required_key(self, tmp_path):
    manifest = {"stacks": {"network": {"name": "network", "dependencies": []}}}
    (tmp_path / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")
    with pytest.raises(ManifestError, match="missing 'workingDirectory'"):
      SynthesizedOutput(tmp_path).load()

  def test_remove_orphaned_directories(self, tmp_path):
    write_output(tmp_path, {"network": []})
    orphan = tmp_path / "stacks" / "old-stack"
    orphan.mkdir()
    (orphan / "cdk.tf.json").write_text("{}", encoding="utf-8")

    output = SynthesizedOutput(tmp_path)
    removed = output.remove_orphaned_directories(output.load())

    assert removed == [orphan]
    assert not orphan.exists()
    assert (tmp_path / "stacks" / "network").exists()

  def test_no_stacks_folder(self, tmp_path):
    output = SynthesizedOutput(tmp_path)
    assert output.existing_directories() == []


class TestRunSynthCommand:
  def test_success(self, tmp_path):
    run_synth_command("touch synthesized", cwd=tmp_path)
    assert (tmp_path / "synthesized").exists()

  def test_failure(self, tmp_path):
    with pytest.raises(ManifestError, match="exited with code 3"):
      run_synth_command(["sh", "-c", "exit 3"], cwd=tmp_path)

  def test_missing_executable(self, tmp_path):
    with pytest.raises(ManifestError, match="could not be executed"):
      run_synth_command(["definitely-not-a-real-synth-binary"], cwd=tmp_path)

  def test_empty_command(self):
    with pytest.raises(ManifestError):
      run_synth_command("")
