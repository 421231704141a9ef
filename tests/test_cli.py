import json
import sys

import pytest
from typer.testing import CliRunner

from cistep.cli import app

runner = CliRunner()

CONTRACT = """\
commands:
  - name: fmt
    cmd: "exit {fmt}"
  - name: clippy
    cmd: "true"
  - name: test
    cmd: "true"
"""


def _contract(tmp_path, fmt=0):
    p = tmp_path / "checks.yaml"
    p.write_text(CONTRACT.format(fmt=fmt), encoding="utf-8")
    return p


def test_cli_help():
    res = runner.invoke(app, ["--help"])
    assert res.exit_code == 0
    assert "Run CI checks" in res.stdout


def test_cli_version():
    res = runner.invoke(app, ["--version"])
    assert res.exit_code == 0
    assert "cistep version: 0.1.0" in res.stdout


@pytest.mark.parametrize(
    "args", [["init", "--help"], ["check", "run", "--help"], ["build", "run", "--help"], ["provision", "--help"]]
)
def test_subcommand_help(args):
    res = runner.invoke(app, args)
    assert res.exit_code == 0


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")
def test_check_run_pass(tmp_path):
    res = runner.invoke(
        app,
        [
            "check", "run",
            "--repo", str(tmp_path),
            "--contract-file", str(_contract(tmp_path)),
            "--artifacts-dir", str(tmp_path / "runs"),
            "--run-id", "ok_run",
            "--capture",
        ],
    )
    assert res.exit_code == 0
    assert "PASS" in res.stdout
    assert (tmp_path / "runs" / "ok_run" / "STEP.json").exists()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")
def test_check_run_fail_exit_code(tmp_path):
    res = runner.invoke(
        app,
        [
            "check", "run",
            "--repo", str(tmp_path),
            "--contract-file", str(_contract(tmp_path, fmt=1)),
            "--artifacts-dir", str(tmp_path / "runs"),
            "--run-id", "bad_run",
            "--capture",
        ],
    )
    assert res.exit_code == 1
    assert "FAIL" in res.stdout
    step = json.loads((tmp_path / "runs" / "bad_run" / "STEP.json").read_text())
    assert [c["exit_code"] for c in step["commands"]] == [1, 0, 0]


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")
def test_check_run_rejects_reused_run_id(tmp_path):
    args = [
        "check", "run",
        "--repo", str(tmp_path),
        "--contract-file", str(_contract(tmp_path)),
        "--artifacts-dir", str(tmp_path / "runs"),
        "--run-id", "same_run",
        "--capture",
    ]
    assert runner.invoke(app, args).exit_code == 0
    res = runner.invoke(app, args)
    assert res.exit_code == 2
    events = [json.loads(line) for line in (tmp_path / "runs" / "same_run" / "events.jsonl").read_text().splitlines()]
    assert [e["action"] for e in events].count("done") == 1


def test_check_run_invalid_contract(tmp_path):
    bad = tmp_path / "checks.yaml"
    bad.write_text("commands:\n  - name: 'bad name'\n    cmd: x\n", encoding="utf-8")
    res = runner.invoke(
        app,
        ["check", "run", "--repo", str(tmp_path), "--contract-file", str(bad), "--artifacts-dir", str(tmp_path / "runs")],
    )
    assert res.exit_code == 2


def test_check_run_invalid_run_id(tmp_path):
    res = runner.invoke(app, ["check", "run", "--repo", str(tmp_path), "--run-id", "bad/id"])
    assert res.exit_code == 2


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")
def test_check_status(tmp_path):
    runner.invoke(
        app,
        [
            "check", "run",
            "--repo", str(tmp_path),
            "--contract-file", str(_contract(tmp_path)),
            "--artifacts-dir", str(tmp_path / "runs"),
            "--run-id", "status_run",
            "--capture",
        ],
    )
    res = runner.invoke(app, ["check", "status", "--run", "status_run", "--artifacts-dir", str(tmp_path / "runs")])
    assert res.exit_code == 0
    assert '"status": "PASS"' in res.stdout


def test_check_status_missing(tmp_path):
    res = runner.invoke(app, ["check", "status", "--run", "nope", "--artifacts-dir", str(tmp_path)])
    assert res.exit_code == 2


def test_check_status_rejects_malformed_status(tmp_path):
    run_dir = tmp_path / "broken"
    run_dir.mkdir()
    (run_dir / "RUN_STATUS.json").write_text('{"run_id": "broken", "kind": "deploy", "status": "PASS"}', encoding="utf-8")
    res = runner.invoke(app, ["check", "status", "--run", "broken", "--artifacts-dir", str(tmp_path)])
    assert res.exit_code == 2


def test_provision_dry_run_defaults(tmp_path):
    res = runner.invoke(app, ["provision", "--repo", str(tmp_path), "--dry-run"])
    assert res.exit_code == 0
    lines = res.stdout.strip().splitlines()
    assert lines == [
        "rustup toolchain install stable --profile minimal -c rustfmt -c clippy",
        "rustup default stable",
    ]


def test_provision_dry_run_overrides(tmp_path):
    res = runner.invoke(
        app, ["provision", "--repo", str(tmp_path), "--channel", "nightly", "-c", "miri", "--dry-run"]
    )
    assert res.exit_code == 0
    assert "rustup toolchain install nightly --profile minimal -c miri" in res.stdout
    assert "rustup default nightly" in res.stdout


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell commands")
def test_build_run_exit_code(tmp_path):
    manifest = tmp_path / "build.yml"
    manifest.write_text("image: archlinux\ntasks:\n  - a: 'true'\n  - b: exit 4\n", encoding="utf-8")
    res = runner.invoke(
        app,
        [
            "build", "run",
            "--repo", str(tmp_path),
            "--manifest", str(manifest),
            "--artifacts-dir", str(tmp_path / "runs"),
            "--run-id", "b1",
            "--capture",
        ],
    )
    assert res.exit_code == 4
    status = json.loads((tmp_path / "runs" / "b1" / "RUN_STATUS.json").read_text())
    assert status["message"] == "task b failed"


def test_init_writes_templates(tmp_path):
    res = runner.invoke(app, ["init", "--repo", str(tmp_path)])
    assert res.exit_code == 0
    assert (tmp_path / ".cistep" / "checks.yaml").exists()
    assert (tmp_path / ".builds" / "stable.yml").exists()

    res = runner.invoke(app, ["init", "--repo", str(tmp_path)])
    assert "already present" in res.stdout


def test_doctor_smoke(tmp_path):
    # Exit 2 when cargo is missing on the test machine; it must not crash.
    res = runner.invoke(app, ["doctor", "--repo", str(tmp_path)])
    assert res.exit_code in [0, 2]
    assert "cistep doctor" in res.stdout
