"""cistep package.

Simple API for CI scripts:

    import cistep

    # Format check, lint and test; every command runs, one aggregate exit code
    result = cistep.check("/path/to/repo", workdir="ruma-client")

    # Run a build manifest's tasks in order
    result = cistep.build("/path/to/workspace", manifest=".builds/stable.yml")
"""

from pathlib import Path
from typing import Optional

__version__ = "0.1.0"

from .config import CheckContract, CommandSpec, RunConfig, ToolchainConfig
from .runner import run_build_session, run_check_session
from .util.ids import new_run_id


def check(
    repo: str | Path,
    *,
    workdir: Optional[str] = None,
    contract_file: Optional[str | Path] = None,
    run_id: Optional[str] = None,
    capture: bool = True,
) -> dict:
    """Run the check step. Returns structured result.

    Args:
        repo: Path to the repository root
        workdir: Subdirectory to run in (overrides the contract's workdir)
        contract_file: Optional path to a checks.yaml contract
        run_id: Optional custom run ID (auto-generated if not provided)
        capture: Write command output to log files (default) instead of the terminal

    Returns:
        dict with keys: status, exit_code, run_dir, failures
    """
    repo_path = Path(repo).resolve()
    contract_path = None
    if contract_file:
        contract_path = Path(contract_file) if Path(contract_file).is_absolute() else repo_path / contract_file
    cfg = RunConfig(
        repo_path=repo_path,
        run_id=run_id or new_run_id(),
        artifacts_root=repo_path / ".cistep" / "runs",
        kind="check",
        contract_file=contract_path,
        workdir=workdir,
        capture=capture,
    )
    result = run_check_session(cfg)

    failures: list[str] = []
    step_json = result.run_dir / "STEP.json"
    if step_json.exists():
        import json

        failures = json.loads(step_json.read_text(encoding="utf-8")).get("failures", [])

    return {
        "status": result.status,
        "exit_code": result.exit_code,
        "run_dir": str(result.run_dir),
        "failures": failures,
    }


def build(
    workspace: str | Path,
    *,
    manifest: Optional[str | Path] = None,
    run_id: Optional[str] = None,
    capture: bool = True,
    use_docker: bool = False,
) -> dict:
    """Run a build manifest. Returns dict with keys: status, exit_code, run_dir."""
    ws = Path(workspace).resolve()
    manifest_file = None
    if manifest:
        manifest_file = Path(manifest) if Path(manifest).is_absolute() else ws / manifest
    cfg = RunConfig(
        repo_path=ws,
        run_id=run_id or new_run_id(),
        artifacts_root=ws / ".cistep" / "runs",
        kind="build",
        manifest_file=manifest_file,
        capture=capture,
        use_docker=use_docker,
    )
    result = run_build_session(cfg)
    return {
        "status": result.status,
        "exit_code": result.exit_code,
        "run_dir": str(result.run_dir),
    }


__all__ = [
    "check",
    "build",
    "CheckContract",
    "CommandSpec",
    "RunConfig",
    "ToolchainConfig",
    "run_check_session",
    "run_build_session",
]
