import json
import sys
from unittest.mock import patch

import pytest

import cistep
from cistep.config import RunConfig
from cistep.errors import ConfigError
from cistep.runner import run_build_session, run_check_session

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")

CONTRACT = """\
workdir: crate
commands:
  - name: fmt
    cmd: "echo fmt >> ran.txt; exit {fmt}"
  - name: clippy
    cmd: "echo clippy >> ran.txt; exit {clippy}"
  - name: test
    cmd: "echo test >> ran.txt; exit {test}"
"""


def _check_cfg(tmp_path, fmt=0, clippy=0, test=0, **kw) -> RunConfig:
    (tmp_path / "crate").mkdir(exist_ok=True)
    contract = tmp_path / "checks.yaml"
    contract.write_text(CONTRACT.format(fmt=fmt, clippy=clippy, test=test), encoding="utf-8")
    return RunConfig(
        repo_path=tmp_path,
        run_id="run_1",
        artifacts_root=tmp_path / "runs",
        kind="check",
        contract_file=contract,
        capture=True,
        **kw,
    )


def test_check_session_pass(tmp_path):
    result = run_check_session(_check_cfg(tmp_path))

    assert result.status == "PASS"
    assert result.exit_code == 0
    status = json.loads((result.run_dir / "RUN_STATUS.json").read_text())
    assert status["status"] == "PASS"
    assert status["exit_code"] == 0
    meta = json.loads((result.run_dir / "RUN.json").read_text())
    assert meta["kind"] == "check"
    assert [c["name"] for c in meta["commands"]] == ["fmt", "clippy", "test"]


def test_check_session_fail_still_runs_everything(tmp_path):
    result = run_check_session(_check_cfg(tmp_path, fmt=1))

    assert result.status == "FAIL"
    assert result.exit_code == 1
    assert (tmp_path / "crate" / "ran.txt").read_text().split() == ["fmt", "clippy", "test"]
    status = json.loads((result.run_dir / "RUN_STATUS.json").read_text())
    assert status["message"] == "failed: fmt"


def test_check_session_event_log(tmp_path):
    result = run_check_session(_check_cfg(tmp_path, test=1))

    events = [json.loads(line) for line in (result.run_dir / "events.jsonl").read_text().splitlines()]
    assert all(e["run_id"] == "run_1" for e in events)
    commands = [e for e in events if e.get("action") == "command"]
    assert [(e["name"], e["exit_code"]) for e in commands] == [("fmt", 0), ("clippy", 0), ("test", 1)]
    assert events[-1]["action"] == "done"
    assert events[-1]["failures"] == ["test"]


def test_check_session_workdir_override(tmp_path):
    (tmp_path / "other").mkdir()
    result = run_check_session(_check_cfg(tmp_path, workdir="other"))
    assert result.exit_code == 0
    assert (tmp_path / "other" / "ran.txt").exists()


def test_check_session_missing_workdir_raises_before_running(tmp_path):
    cfg = _check_cfg(tmp_path, workdir="missing")
    with pytest.raises(ConfigError, match="Working directory not found"):
        run_check_session(cfg)
    assert not (tmp_path / "runs" / "run_1").exists()


def _build_cfg(tmp_path, manifest_text: str) -> RunConfig:
    manifest = tmp_path / "build.yml"
    manifest.write_text(manifest_text, encoding="utf-8")
    return RunConfig(
        repo_path=tmp_path,
        run_id="build_1",
        artifacts_root=tmp_path / "runs",
        kind="build",
        manifest_file=manifest,
        capture=True,
    )


def test_build_session_runs_tasks_in_order(tmp_path):
    cfg = _build_cfg(
        tmp_path,
        "image: archlinux\ntasks:\n  - a: echo a >> order.txt\n  - b: echo b >> order.txt\n",
    )
    result = run_build_session(cfg)

    assert result.status == "PASS"
    assert (tmp_path / "order.txt").read_text().split() == ["a", "b"]
    report = json.loads((result.run_dir / "BUILD.json").read_text())
    assert [t["status"] for t in report["tasks"]] == ["PASS", "PASS"]


def test_build_session_failing_task_skips_rest(tmp_path):
    cfg = _build_cfg(
        tmp_path,
        "image: archlinux\ntasks:\n  - a: echo a >> order.txt\n  - b: exit 3\n  - c: echo c >> order.txt\n",
    )
    result = run_build_session(cfg)

    assert result.status == "FAIL"
    assert result.exit_code == 3
    assert (tmp_path / "order.txt").read_text().split() == ["a"]
    report = json.loads((result.run_dir / "BUILD.json").read_text())
    assert [t["status"] for t in report["tasks"]] == ["PASS", "FAIL", "SKIPPED"]
    assert report["tasks"][2]["exit_code"] is None


def test_build_session_missing_manifest(tmp_path):
    cfg = RunConfig(repo_path=tmp_path, run_id="b", artifacts_root=tmp_path / "runs", kind="build")
    with pytest.raises(ConfigError, match="Build manifest not found"):
        run_build_session(cfg)


def _events(run_dir):
    return [json.loads(line) for line in (run_dir / "events.jsonl").read_text().splitlines()]


def test_check_session_crash_writes_crash_artifacts(tmp_path):
    with patch("cistep.runner.CheckStep.run", side_effect=RuntimeError("boom")):
        result = run_check_session(_check_cfg(tmp_path))

    assert result.status == "FAIL"
    assert result.exit_code == 1
    crash = (result.run_dir / "CRASH.txt").read_text()
    assert "Traceback" in crash
    assert "boom" in crash
    status = json.loads((result.run_dir / "RUN_STATUS.json").read_text())
    assert status["status"] == "FAIL"
    assert status["exit_code"] == 1
    assert status["message"] == "crash: boom"
    assert _events(result.run_dir)[-1]["stage"] == "crash"


def test_build_session_crash_writes_crash_artifacts(tmp_path):
    cfg = _build_cfg(tmp_path, "image: archlinux\ntasks:\n  - a: echo a\n")
    with patch("cistep.runner.ManifestTask.run", side_effect=RuntimeError("boom")):
        result = run_build_session(cfg)

    assert result.status == "FAIL"
    assert result.exit_code == 1
    crash = (result.run_dir / "CRASH.txt").read_text()
    assert "Traceback" in crash
    assert "boom" in crash
    status = json.loads((result.run_dir / "RUN_STATUS.json").read_text())
    assert status["status"] == "FAIL"
    assert status["exit_code"] == 1
    events = _events(result.run_dir)
    assert events[-1]["stage"] == "crash"
    assert events[-1]["error"] == "boom"


def test_check_session_rejects_reused_run_id(tmp_path):
    cfg = _check_cfg(tmp_path)
    first = run_check_session(cfg)
    lines = (first.run_dir / "events.jsonl").read_text()

    with pytest.raises(ConfigError, match="already exists"):
        run_check_session(cfg)
    assert (first.run_dir / "events.jsonl").read_text() == lines


def test_build_session_rejects_reused_run_id(tmp_path):
    cfg = _build_cfg(tmp_path, "image: archlinux\ntasks:\n  - a: echo a >> order.txt\n")
    run_build_session(cfg)

    with pytest.raises(ConfigError, match="already exists"):
        run_build_session(cfg)
    assert (tmp_path / "order.txt").read_text().split() == ["a"]


def test_api_check_resolves_contract_file_against_repo(tmp_path, monkeypatch):
    (tmp_path / "crate").mkdir()
    (tmp_path / "checks.yaml").write_text(CONTRACT.format(fmt=0, clippy=2, test=0), encoding="utf-8")
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)

    result = cistep.check(tmp_path, contract_file="checks.yaml", run_id="api_1")

    assert result["status"] == "FAIL"
    assert result["exit_code"] == 1
    assert result["failures"] == ["clippy"]
    assert result["run_dir"] == str(tmp_path.resolve() / ".cistep" / "runs" / "api_1")
