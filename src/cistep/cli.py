"""CLI entrypoint.

Primary commands:
- cistep check run ...
- cistep build run ...

Utilities:
- cistep init
- cistep doctor
- cistep provision

CONTRACT
- Inputs: Command line arguments (parsed by Typer)
- Outputs (required):
  - `check run` exits with the aggregate code (0 only if every command passed)
  - `build run` exits 0 or with the failing task's code
  - Console output (stdout/stderr) describing progress/results
- Invariants:
  - All commands validate their inputs (run_id, config files) before execution
  - Step execution is delegated to the runner and step modules
- Failure:
  - Invalid arguments or configuration raise Typer usage errors (exit 2)
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .artifacts.store import ArtifactStore
from .config import RunConfig, ToolchainConfig, resolve_check_contract
from .doctor import doctor_report
from .errors import ConfigError
from .runner import run_build_session, run_check_session
from .steps.provision import Provision, provision_commands
from .util.ids import new_run_id, validate_run_id
from .util.paths import ensure_dir
from .util.shell import format_cmd

app = typer.Typer(add_completion=False, help="Run CI checks to completion and report one exit code.")
check_app = typer.Typer(add_completion=False, help="Format check, lint and test in one step.")
build_app = typer.Typer(add_completion=False, help="Run a build manifest's tasks.")
app.add_typer(check_app, name="check")
app.add_typer(build_app, name="build")

console = Console()


def _version_callback(value: bool):
    if value:
        console.print(f"cistep version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version."
    )
):
    pass


_REPO_OPTION = typer.Option(
    Path("."),
    "--repo",
    help="Repo root (default: current dir).",
)
_ARTIFACTS_DIR_OPTION = typer.Option(
    Path(".cistep/runs"),
    "--artifacts-dir",
    help="Artifacts root dir.",
)
_RUN_ID_OPTION = typer.Option(
    None,
    "--run-id",
    help="Run id (default: auto).",
)
_RUN_ID_REQUIRED_OPTION = typer.Option(
    ...,
    "--run",
    help="Run id.",
)
_CONTRACT_FILE_OPTION = typer.Option(
    None,
    "--contract-file",
    help="Check contract YAML (default: <repo>/.cistep/checks.yaml).",
)
_MANIFEST_OPTION = typer.Option(
    None,
    "--manifest",
    help="Build manifest YAML (default: <repo>/.builds/stable.yml).",
)
_CAPTURE_OPTION = typer.Option(
    False,
    "--capture",
    help="Write command output to log files instead of the terminal.",
)


def _print_status(artifacts_dir: Path, run_id: str) -> None:
    try:
        validate_run_id(run_id)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    store = ArtifactStore(artifacts_dir / run_id)
    try:
        status = store.read_status()
    except ValueError as e:
        raise typer.BadParameter(f"Invalid status in {store.run_dir}: {e}") from e
    if status is None:
        raise typer.BadParameter(f"No status found: {store.path('RUN_STATUS.json')}")
    console.print_json(status.model_dump_json())


def _run_id(run_id: str | None) -> str:
    try:
        return validate_run_id(run_id or new_run_id())
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


@app.command()
def init(
    repo: Path = _REPO_OPTION,
    force: bool = typer.Option(False, "--force", help="Overwrite existing templates."),
) -> None:
    """Write check contract and build manifest templates into a repo."""
    from .init import write_templates

    written = write_templates(repo, force=force)
    if not written:
        console.print("[yellow]Templates already present (use --force to overwrite)[/yellow]")
    for p in written:
        console.print(f"[green]Wrote[/green] {p}")


@app.command()
def doctor(
    repo: Path = _REPO_OPTION,
    manifest: Path | None = _MANIFEST_OPTION,
    verbose: bool = typer.Option(False, "--verbose", help="Show more details."),
) -> None:
    """Environment and preflight checks."""
    report = doctor_report(repo=repo, manifest=manifest, verbose=verbose)
    table = Table(title="cistep doctor")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Details")
    for item in report.items:
        table.add_row(item.name, item.status, item.details)
    console.print(table)
    if report.ok:
        console.print("[green]OK[/green]")
    else:
        raise typer.Exit(code=2)


@app.command()
def provision(
    repo: Path = _REPO_OPTION,
    contract_file: Path | None = _CONTRACT_FILE_OPTION,
    channel: str | None = typer.Option(None, "--channel", help="Toolchain channel."),
    profile: str | None = typer.Option(None, "--profile", help="Install profile."),
    components: list[str] | None = typer.Option(None, "--component", "-c", help="Extra component (repeatable)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the commands without running them."),
) -> None:
    """Install the toolchain and make it the default."""
    try:
        base = resolve_check_contract(repo, contract_file).toolchain
    except ConfigError as e:
        raise typer.BadParameter(str(e)) from e
    tc = ToolchainConfig(
        channel=channel or base.channel,
        profile=profile or base.profile,
        components=tuple(components) if components else base.components,
    )
    if dry_run:
        for cmd in provision_commands(tc):
            console.print(format_cmd(cmd), markup=False, highlight=False, soft_wrap=True)
        return
    rc = Provision(tc).run(cwd=repo)
    if rc != 0:
        console.print(f"[red]Provisioning failed[/red] (exit {rc})")
        raise typer.Exit(code=rc)
    console.print(f"[green]Toolchain {tc.channel} ready[/green]")


@check_app.command("run")
def check_run(
    repo: Path = _REPO_OPTION,
    contract_file: Path | None = _CONTRACT_FILE_OPTION,
    workdir: str | None = typer.Option(None, "--workdir", help="Subdirectory of the repo to run in."),
    artifacts_dir: Path = _ARTIFACTS_DIR_OPTION,
    run_id: str | None = _RUN_ID_OPTION,
    capture: bool = _CAPTURE_OPTION,
) -> None:
    """Run every check command, then exit non-zero if any of them failed."""
    rid = _run_id(run_id)
    ensure_dir(artifacts_dir)
    cfg = RunConfig(
        repo_path=repo,
        run_id=rid,
        artifacts_root=artifacts_dir,
        kind="check",
        contract_file=contract_file,
        workdir=workdir,
        capture=capture,
    )
    try:
        result = run_check_session(cfg)
    except ConfigError as e:
        raise typer.BadParameter(str(e)) from e

    step_json = result.run_dir / "STEP.json"
    if step_json.exists():
        from .artifacts.schemas import StepReport

        report = StepReport.model_validate_json(step_json.read_text(encoding="utf-8"))
        table = Table(title=f"cistep check {rid}")
        table.add_column("Command")
        table.add_column("Exit")
        table.add_column("Time")
        for r in report.commands:
            style = "green" if r.exit_code == 0 else "red"
            table.add_row(r.name, f"[{style}]{r.exit_code}[/{style}]", f"{r.elapsed_s:.1f}s")
        console.print(table)

    color = "green" if result.exit_code == 0 else "red"
    console.print(f"[bold]Run[/bold] {rid} finished with status: [{color}]{result.status}[/{color}]")
    console.print(f"Artifacts: {result.run_dir}")
    raise typer.Exit(code=result.exit_code)


@check_app.command("status")
def check_status(
    run_id: str = _RUN_ID_REQUIRED_OPTION,
    artifacts_dir: Path = _ARTIFACTS_DIR_OPTION,
) -> None:
    _print_status(artifacts_dir, run_id)


@build_app.command("run")
def build_run(
    repo: Path = _REPO_OPTION,
    manifest: Path | None = _MANIFEST_OPTION,
    artifacts_dir: Path = _ARTIFACTS_DIR_OPTION,
    run_id: str | None = _RUN_ID_OPTION,
    capture: bool = _CAPTURE_OPTION,
    use_docker: bool = typer.Option(False, "--docker", help="Run tasks inside the manifest image."),
) -> None:
    """Clone manifest sources and run its tasks in order."""
    rid = _run_id(run_id)
    ensure_dir(artifacts_dir)
    cfg = RunConfig(
        repo_path=repo,
        run_id=rid,
        artifacts_root=artifacts_dir,
        kind="build",
        manifest_file=manifest,
        capture=capture,
        use_docker=use_docker,
    )
    try:
        result = run_build_session(cfg)
    except ConfigError as e:
        raise typer.BadParameter(str(e)) from e
    color = "green" if result.exit_code == 0 else "red"
    console.print(f"[bold]Build[/bold] {rid} finished with status: [{color}]{result.status}[/{color}]")
    console.print(f"Artifacts: {result.run_dir}")
    raise typer.Exit(code=result.exit_code)


@build_app.command("status")
def build_status(
    run_id: str = _RUN_ID_REQUIRED_OPTION,
    artifacts_dir: Path = _ARTIFACTS_DIR_OPTION,
) -> None:
    _print_status(artifacts_dir, run_id)


if __name__ == "__main__":
    app()
