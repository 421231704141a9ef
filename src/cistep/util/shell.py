from __future__ import annotations

"""Shell command execution.

CONTRACT
- Inputs: Command (string or argv list), cwd, optional log paths, env, timeout
- Outputs (required):
  - CmdResult(returncode, elapsed_s, stdout_path, stderr_path)
- Invariants:
  - With log paths: stdout/stderr are written to those files
  - Without log paths: output is inherited from the current process (not captured)
  - Respects timeout_s (returncode 124 if exceeded)
- Failure:
  - Returns CmdResult with exit code (does NOT raise on non-zero exit)
  - Missing executable -> returncode 127
"""

import os
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

TIMEOUT_EXIT = 124
NOT_FOUND_EXIT = 127


def which(cmd: str) -> str | None:
    for p in os.environ.get("PATH", "").split(os.pathsep):
        candidate = Path(p) / cmd
        if candidate.exists() and os.access(candidate, os.X_OK):
            return str(candidate)
    return None


def format_cmd(cmd: str | list[str]) -> str:
    if isinstance(cmd, str):
        return cmd
    return " ".join(cmd)


@dataclass(frozen=True)
class CmdResult:
    cmd: str
    returncode: int
    elapsed_s: float
    stdout_path: Path | None = None
    stderr_path: Path | None = None
    stdout_bytes: int = 0
    stderr_bytes: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _size(path: Path | None) -> int:
    if path is None or not path.exists():
        return 0
    return path.stat().st_size


def run_cmd(
    cmd: str | list[str],
    cwd: Path,
    stdout_path: Path | None = None,
    stderr_path: Path | None = None,
    env: dict[str, str] | None = None,
    timeout_s: float | None = None,
) -> CmdResult:
    """Run one command to completion.

    CONTRACT:
    - Accepts cmd as str (run with shell=True) or list[str] (run with shell=False).
    - Captures output only when both log paths are given.
    - Never raises for non-zero exit; caller inspects return code.
    """
    capture = stdout_path is not None and stderr_path is not None
    if capture:
        stdout_path.parent.mkdir(parents=True, exist_ok=True)
        stderr_path.parent.mkdir(parents=True, exist_ok=True)

    use_shell = isinstance(cmd, str)
    logger.debug(f"$ {format_cmd(cmd)} (cwd={cwd})")

    start_t = time.monotonic()
    out_f = stdout_path.open("w", encoding="utf-8") if capture else None
    err_f = stderr_path.open("w", encoding="utf-8") if capture else None
    try:
        try:
            p = subprocess.run(
                cmd,
                cwd=str(cwd),
                shell=use_shell,
                env=(os.environ | env) if env else None,
                stdout=out_f,
                stderr=err_f,
                timeout=timeout_s,
                text=True,
            )
            rc = p.returncode
        except subprocess.TimeoutExpired:
            rc = TIMEOUT_EXIT
            _report(err_f, f"Timeout expired after {timeout_s}s: {format_cmd(cmd)}")
        except FileNotFoundError as e:
            rc = NOT_FOUND_EXIT
            _report(err_f, f"Command not found: {e}")
        except OSError as e:
            rc = 1
            _report(err_f, f"Exception: {e}")
    finally:
        if out_f is not None:
            out_f.close()
        if err_f is not None:
            err_f.close()

    return CmdResult(
        cmd=format_cmd(cmd),
        returncode=rc,
        elapsed_s=time.monotonic() - start_t,
        stdout_path=stdout_path if capture else None,
        stderr_path=stderr_path if capture else None,
        stdout_bytes=_size(stdout_path) if capture else 0,
        stderr_bytes=_size(stderr_path) if capture else 0,
    )


def _report(err_f, message: str) -> None:
    if err_f is not None:
        err_f.write(f"\n{message}\n")
    else:
        print(message, file=sys.stderr)


def run_cmd_docker(
    cmd: str,
    cwd: Path,
    image: str,
    stdout_path: Path | None = None,
    stderr_path: Path | None = None,
    env: dict[str, str] | None = None,
    timeout_s: float | None = None,
) -> CmdResult:
    """Run a shell script inside a container with the workspace mounted.

    CONTRACT:
    - Mounts cwd to /repo in the container and uses it as working dir
    - Uses list-based execution (shell=False) for the docker launch
    - The script itself runs under `/bin/sh -e -c` inside the container
    """
    abs_cwd = cwd.resolve()

    docker_cmd = [
        "docker", "run",
        "--rm",
        "-v", f"{abs_cwd}:/repo",
        "-w", "/repo",
    ]
    if env:
        for k, v in env.items():
            docker_cmd.extend(["-e", f"{k}={v}"])
    docker_cmd.extend([image, "/bin/sh", "-e", "-c", cmd])

    return run_cmd(
        cmd=docker_cmd,
        cwd=cwd,
        stdout_path=stdout_path,
        stderr_path=stderr_path,
        env=None,  # already passed to docker
        timeout_s=timeout_s,
    )


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Run a shell command")
    parser.add_argument("--cmd", required=True, help="Command to run")
    parser.add_argument("--cwd", default=".", help="Working directory")
    parser.add_argument("--timeout", type=float, default=None, help="Timeout in seconds")
    args = parser.parse_args()

    res = run_cmd(cmd=args.cmd, cwd=Path(args.cwd), timeout_s=args.timeout)
    print(f"Exit code: {res.returncode}")
    sys.exit(res.returncode)
