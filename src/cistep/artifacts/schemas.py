from __future__ import annotations

"""Artifact schemas.

CONTRACT
- Inputs: Pydantic models
- Outputs:
  - Validated JSON-serializable objects
- Invariants:
  - Defines the shape of all core artifacts (RUN.json, RUN_STATUS.json, STEP.json, BUILD.json)
  - All schemas have schema_version int field
- Failure:
  - Raises ValidationError on schema mismatch
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

RunKind = Literal["check", "build"]
Status = Literal["RUNNING", "PASS", "FAIL"]


class RunStatus(BaseModel):
    schema_version: int = 1
    run_id: str
    kind: RunKind
    status: Status
    exit_code: int | None = None
    message: str = ""


class RunMeta(BaseModel):
    schema_version: int = 1
    run_id: str
    repo_path: str
    kind: RunKind
    workdir: str | None = None
    capture: bool = False
    use_docker: bool = False
    commands: list[dict[str, Any]] = Field(default_factory=list)
    tasks: list[str] = Field(default_factory=list)


class CommandRecord(BaseModel):
    name: str
    cmd: str
    exit_code: int
    elapsed_s: float = 0.0
    stdout_log: str | None = None
    stderr_log: str | None = None
    stdout_bytes: int = 0
    stderr_bytes: int = 0


class StepReport(BaseModel):
    schema_version: int = 1
    step: str
    workdir: str
    commands: list[CommandRecord] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class TaskRecord(BaseModel):
    name: str
    status: Literal["PASS", "FAIL", "SKIPPED"]
    exit_code: int | None = None
    elapsed_s: float = 0.0


class BuildReport(BaseModel):
    schema_version: int = 1
    image: str
    sources: list[str] = Field(default_factory=list)
    tasks: list[TaskRecord] = Field(default_factory=list)
    exit_code: int

