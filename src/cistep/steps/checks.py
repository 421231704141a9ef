"""Task runner step: format check, lint and tests.

CONTRACT
- Inputs: ArtifactStore, working directory, command list (from the check contract)
- Writes (required):
  - STEP.json (StepReport)
  - STEP.md
  - logs/checks.<name>.stdout.log / .stderr.log (only when capturing)
- Invariants:
  - Every command runs exactly once, in order, whatever earlier commands returned
  - Exit codes are collected first and aggregated afterwards
- Failure:
  - Never raises for a failing command; exit_code is 1 if any command exited non-zero
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from ..aggregate import aggregate_exit_code, failed_names
from ..artifacts.schemas import CommandRecord, StepReport
from ..artifacts.store import ArtifactStore
from ..config import CommandSpec
from ..util.paths import safe_filename
from ..util.shell import CmdResult, run_cmd


@dataclass
class CheckStep:
    name: str = "checks"
    capture: bool = False

    def _run_one(self, store: ArtifactStore, workdir: Path, spec: CommandSpec) -> CmdResult:
        stdout_path = stderr_path = None
        if self.capture:
            safe_name = safe_filename(spec.name, default="cmd")
            stdout_path = store.path("logs", f"{self.name}.{safe_name}.stdout.log")
            stderr_path = store.path("logs", f"{self.name}.{safe_name}.stderr.log")
        return run_cmd(
            cmd=spec.cmd,
            cwd=workdir,
            stdout_path=stdout_path,
            stderr_path=stderr_path,
            env=spec.env or None,
            timeout_s=spec.timeout_s,
        )

    def run(self, store: ArtifactStore, workdir: Path, commands: list[CommandSpec]) -> StepReport:
        records: list[CommandRecord] = []
        for spec in commands:
            logger.info(f"[{spec.name}] running")
            res = self._run_one(store, workdir, spec)
            if res.ok:
                logger.info(f"[{spec.name}] ok ({res.elapsed_s:.1f}s)")
            else:
                logger.warning(f"[{spec.name}] exit={res.returncode} ({res.elapsed_s:.1f}s)")
            records.append(
                CommandRecord(
                    name=spec.name,
                    cmd=res.cmd,
                    exit_code=res.returncode,
                    elapsed_s=res.elapsed_s,
                    stdout_log=str(res.stdout_path) if res.stdout_path else None,
                    stderr_log=str(res.stderr_path) if res.stderr_path else None,
                    stdout_bytes=res.stdout_bytes,
                    stderr_bytes=res.stderr_bytes,
                )
            )

        codes = [(r.name, r.exit_code) for r in records]
        report = StepReport(
            step=self.name,
            workdir=str(workdir),
            commands=records,
            failures=failed_names(codes),
            exit_code=aggregate_exit_code(code for _, code in codes),
        )
        store.write_step_report(report)
        store.write_text("STEP.md", render_markdown(report))
        return report

    def check(self, store: ArtifactStore) -> int:
        missing = [r for r in ("STEP.json", "STEP.md") if not store.path(r).exists()]
        return 2 if missing else 0


def render_markdown(report: StepReport) -> str:
    md = ["# CHECKS", "", f"Workdir: `{report.workdir}`", ""]
    if not report.commands:
        md += ["No commands configured.", ""]
    else:
        md += ["## Commands", ""]
        for r in report.commands:
            md.append(f"- `{r.name}` exit={r.exit_code} ({r.elapsed_s:.1f}s) cmd: `{r.cmd}`")
        md.append("")
    md += ["## Result", ""]
    if report.failures:
        md += [f"FAIL (failed: {', '.join(report.failures)})", ""]
    else:
        md += ["PASS", ""]
    return "\n".join(md)
