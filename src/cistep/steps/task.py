"""Manifest task step.

CONTRACT
- Inputs: TaskSpec (name, script), workspace, optional container image
- Outputs:
  - CmdResult of the script run under `/bin/sh -e -c`
  - logs/task.<name>.stdout.log / .stderr.log when capturing
- Invariants:
  - Scripts run from the workspace root
  - With an image, the script runs inside `docker run <image>`
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..artifacts.store import ArtifactStore
from ..config import TaskSpec
from ..util.paths import safe_filename
from ..util.shell import CmdResult, run_cmd, run_cmd_docker


@dataclass
class ManifestTask:
    task: TaskSpec
    capture: bool = False
    image: str | None = None

    def run(self, store: ArtifactStore, workspace: Path) -> CmdResult:
        stdout_path = stderr_path = None
        if self.capture:
            safe_name = safe_filename(self.task.name, default="task")
            stdout_path = store.path("logs", f"task.{safe_name}.stdout.log")
            stderr_path = store.path("logs", f"task.{safe_name}.stderr.log")
        if self.image:
            return run_cmd_docker(
                self.task.script,
                cwd=workspace,
                image=self.image,
                stdout_path=stdout_path,
                stderr_path=stderr_path,
            )
        return run_cmd(
            ["/bin/sh", "-e", "-c", self.task.script],
            cwd=workspace,
            stdout_path=stdout_path,
            stderr_path=stderr_path,
        )
