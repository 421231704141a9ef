from __future__ import annotations

"""Runner for check and build sessions.

CONTRACT
- Inputs: RunConfig (paths, kind, capture/docker flags)
- Outputs (required):
  - RunResult (status, exit_code, run_dir)
  - Artifacts in .cistep/runs/<run_id>/
    - RUN.json, RUN_STATUS.json, events.jsonl
    - STEP.json/STEP.md (check) or BUILD.json (build)
- Invariants:
  - Configuration is loaded and validated before anything runs
  - Each run id gets a fresh run directory; an existing one is never reused
  - Always writes RUN.json and RUN_STATUS.json
  - Catches unexpected exceptions, writes CRASH.txt, and reports FAIL status
- Failure:
  - Raises ConfigError for invalid configuration (nothing has run yet) or a reused run id
  - Returns RunResult(status="FAIL") on failing commands, failing tasks or crash
"""

import traceback
from dataclasses import asdict, dataclass
from pathlib import Path

from loguru import logger

from .artifacts.schemas import BuildReport, RunMeta, RunStatus, TaskRecord
from .artifacts.store import ArtifactStore
from .config import (
    DEFAULT_MANIFEST_RELPATH,
    BuildManifest,
    CheckContract,
    RunConfig,
    load_manifest,
    resolve_check_contract,
)
from .errors import ConfigError
from .steps.checks import CheckStep
from .steps.clone import Clone
from .steps.task import ManifestTask
from .util.events import EventLog

CRASH_EXIT = 1


@dataclass(frozen=True)
class RunResult:
    status: str
    exit_code: int
    run_dir: Path
    report_file: Path | None = None


def _status(code: int) -> str:
    return "PASS" if code == 0 else "FAIL"


def resolve_workdir(cfg: RunConfig, contract: CheckContract) -> Path:
    workdir = cfg.repo_path / (cfg.workdir or contract.workdir)
    if not workdir.is_dir():
        raise ConfigError(f"Working directory not found: {workdir}")
    return workdir


def _new_store(cfg: RunConfig) -> ArtifactStore:
    store = ArtifactStore(cfg.run_dir())
    if store.run_dir.exists():
        raise ConfigError(f"Run {cfg.run_id} already exists: {store.run_dir}")
    store.ensure()
    return store


def _crash(cfg: RunConfig, store: ArtifactStore, ev: EventLog, exc: Exception) -> RunResult:
    logger.error(f"Run {cfg.run_id} crashed: {exc}")
    ev.emit(stage="crash", action="exception", error=str(exc))
    store.write_text("CRASH.txt", traceback.format_exc())
    store.write_status(
        RunStatus(
            run_id=cfg.run_id,
            kind=cfg.kind,
            status="FAIL",
            exit_code=CRASH_EXIT,
            message=f"crash: {exc}",
        )
    )
    return RunResult(status="FAIL", exit_code=CRASH_EXIT, run_dir=store.run_dir)


def run_check_session(cfg: RunConfig) -> RunResult:
    contract = resolve_check_contract(cfg.repo_path, cfg.contract_file)
    workdir = resolve_workdir(cfg, contract)

    store = _new_store(cfg)
    ev = EventLog(store.path("events.jsonl"), run_id=cfg.run_id)

    store.write_run_meta(
        RunMeta(
            run_id=cfg.run_id,
            repo_path=str(cfg.repo_path),
            kind="check",
            workdir=str(workdir),
            capture=cfg.capture,
            commands=[asdict(c) for c in contract.commands],
        )
    )
    store.write_status(RunStatus(run_id=cfg.run_id, kind="check", status="RUNNING", message="starting"))

    try:
        ev.emit(stage="checks", action="run", commands=[c.name for c in contract.commands])
        step = CheckStep(capture=cfg.capture)
        report = step.run(store, workdir, contract.commands)
        for rec in report.commands:
            ev.emit(stage="checks", action="command", name=rec.name, exit_code=rec.exit_code)
        ev.emit(stage="checks", action="done", exit_code=report.exit_code, failures=report.failures)

        status = _status(report.exit_code)
        message = f"failed: {', '.join(report.failures)}" if report.failures else "all commands passed"
        store.write_status(
            RunStatus(
                run_id=cfg.run_id,
                kind="check",
                status=status,
                exit_code=report.exit_code,
                message=message,
            )
        )
        logger.info(f"Run {cfg.run_id}: {status} ({message})")
        return RunResult(
            status=status,
            exit_code=report.exit_code,
            run_dir=store.run_dir,
            report_file=store.path("STEP.md"),
        )
    except Exception as exc:
        return _crash(cfg, store, ev, exc)


def resolve_manifest(cfg: RunConfig) -> BuildManifest:
    path = cfg.manifest_file or cfg.repo_path / DEFAULT_MANIFEST_RELPATH
    if not path.exists():
        raise ConfigError(f"Build manifest not found: {path}")
    return load_manifest(path)


def run_build_session(cfg: RunConfig) -> RunResult:
    manifest = resolve_manifest(cfg)
    workspace = cfg.repo_path

    store = _new_store(cfg)
    ev = EventLog(store.path("events.jsonl"), run_id=cfg.run_id)

    store.write_run_meta(
        RunMeta(
            run_id=cfg.run_id,
            repo_path=str(workspace),
            kind="build",
            capture=cfg.capture,
            use_docker=cfg.use_docker,
            tasks=[t.name for t in manifest.tasks],
        )
    )
    store.write_status(RunStatus(run_id=cfg.run_id, kind="build", status="RUNNING", message="starting"))

    try:
        records: list[TaskRecord] = []
        exit_code = 0
        message = "all tasks passed"

        if manifest.sources:
            ev.emit(stage="clone", action="run", sources=manifest.sources)
            exit_code = Clone().run(workspace, manifest.sources)
            if exit_code != 0:
                message = "source checkout failed"
            ev.emit(stage="clone", action="done", exit_code=exit_code)

        image = manifest.image if cfg.use_docker else None
        for task in manifest.tasks:
            if exit_code != 0:
                logger.warning(f"[{task.name}] skipped")
                records.append(TaskRecord(name=task.name, status="SKIPPED"))
                continue
            ev.emit(stage="task", action="run", name=task.name)
            logger.info(f"[{task.name}] running")
            res = ManifestTask(task, capture=cfg.capture, image=image).run(store, workspace)
            ev.emit(stage="task", action="done", name=task.name, exit_code=res.returncode)
            records.append(
                TaskRecord(
                    name=task.name,
                    status=_status(res.returncode),
                    exit_code=res.returncode,
                    elapsed_s=res.elapsed_s,
                )
            )
            if not res.ok:
                logger.warning(f"[{task.name}] exit={res.returncode}")
                exit_code = res.returncode
                message = f"task {task.name} failed"

        report = BuildReport(
            image=manifest.image,
            sources=manifest.sources,
            tasks=records,
            exit_code=exit_code,
        )
        report_file = store.write_build_report(report)
        status = _status(exit_code)
        store.write_status(
            RunStatus(
                run_id=cfg.run_id,
                kind="build",
                status=status,
                exit_code=exit_code,
                message=message,
            )
        )
        logger.info(f"Build {cfg.run_id}: {status} ({message})")
        return RunResult(status=status, exit_code=exit_code, run_dir=store.run_dir, report_file=report_file)
    except Exception as exc:
        return _crash(cfg, store, ev, exc)
