from __future__ import annotations

"""Environment health checks.

CONTRACT
- Inputs: Repo path, optional manifest path
- Outputs (required):
  - DoctorReport (ok=bool, items=[(name, status, details)])
- Invariants:
  - Checks: check contract, cargo, rustup, toolchain components, git, docker, manifest packages
  - Does not modify system state (read-only checks)
- Failure:
  - Returns DoctorReport with ok=False if critical checks fail (invalid contract, cargo missing)
"""

import tempfile
from dataclasses import dataclass
from pathlib import Path

from .config import CONTRACT_RELPATH, DEFAULT_MANIFEST_RELPATH, load_check_contract, load_manifest
from .errors import ConfigError
from .util.shell import run_cmd, which


@dataclass(frozen=True)
class DoctorItem:
    name: str
    status: str
    details: str


@dataclass(frozen=True)
class DoctorReport:
    ok: bool
    items: list[DoctorItem]


def _probe(cmd: str, repo: Path, timeout_s: float) -> tuple[int, str]:
    # Captured so probe output does not reach the terminal.
    with tempfile.TemporaryDirectory(prefix="cistep_doctor_") as tmp:
        out = Path(tmp) / "out.log"
        res = run_cmd(cmd, cwd=repo, stdout_path=out, stderr_path=Path(tmp) / "err.log", timeout_s=timeout_s)
        return res.returncode, out.read_text(encoding="utf-8", errors="ignore")


def doctor_report(repo: Path, manifest: Path | None = None, verbose: bool = False) -> DoctorReport:
    items: list[DoctorItem] = []
    ok = True

    # 1. Critical: check contract
    contract_path = repo / CONTRACT_RELPATH
    components: tuple[str, ...] = ()
    if contract_path.exists():
        try:
            contract = load_check_contract(contract_path)
            components = contract.toolchain.components
            names = ", ".join(c.name for c in contract.commands)
            items.append(DoctorItem("check contract", "OK", f"{len(contract.commands)} commands: {names}"))
            if not (repo / contract.workdir).is_dir():
                ok = False
                items.append(DoctorItem("workdir", "FAIL", f"{contract.workdir} does not exist"))
        except ConfigError as e:
            ok = False
            items.append(DoctorItem("check contract", "FAIL", str(e)))
    else:
        items.append(DoctorItem("check contract", "INFO", "No .cistep/checks.yaml; using fmt/clippy/test defaults"))

    # 2. Critical: cargo
    cargo_bin = which("cargo")
    if cargo_bin:
        items.append(DoctorItem("cargo", "OK", cargo_bin))
    else:
        ok = False
        items.append(DoctorItem("cargo", "FAIL", "cargo not found in PATH"))

    rustup_bin = which("rustup")
    if rustup_bin:
        items.append(DoctorItem("rustup", "OK", rustup_bin))
        if components:
            rc, out = _probe("rustup component list --installed", repo, timeout_s=10)
            if rc != 0:
                items.append(DoctorItem("components", "WARN", "could not list installed components"))
            else:
                installed = out.split()
                missing = [c for c in components if not any(i.startswith(c) for i in installed)]
                if missing:
                    items.append(DoctorItem("components", "WARN", f"missing: {', '.join(missing)}"))
                else:
                    items.append(DoctorItem("components", "OK", ", ".join(components)))
    else:
        items.append(DoctorItem("rustup", "WARN", "rustup not found; `cistep provision` unavailable"))

    git_bin = which("git")
    if git_bin:
        items.append(DoctorItem("git", "OK", git_bin))
    else:
        items.append(DoctorItem("git", "WARN", "git not found; manifest sources cannot be cloned"))

    docker_bin = which("docker")
    if docker_bin:
        rc, _ = _probe("docker info", repo, timeout_s=5)
        if rc == 0:
            items.append(DoctorItem("docker", "OK", docker_bin))
        else:
            items.append(DoctorItem("docker", "WARN", "docker installed but not running/accessible"))
    else:
        items.append(DoctorItem("docker", "INFO", "docker not found; --docker builds unavailable"))

    # 3. Manifest packages
    manifest_path = manifest or repo / DEFAULT_MANIFEST_RELPATH
    if manifest_path.exists():
        try:
            m = load_manifest(manifest_path)
            items.append(DoctorItem("manifest", "OK", f"image={m.image}, {len(m.tasks)} tasks"))
            for pkg in m.packages:
                found = which(pkg)
                if found:
                    items.append(DoctorItem(f"package {pkg}", "OK", found))
                else:
                    items.append(DoctorItem(f"package {pkg}", "WARN", f"{pkg} not found in PATH"))
        except ConfigError as e:
            ok = False
            items.append(DoctorItem("manifest", "FAIL", str(e)))
    elif verbose:
        items.append(DoctorItem("manifest", "INFO", f"No manifest at {manifest_path}"))

    return DoctorReport(ok=ok, items=items)
