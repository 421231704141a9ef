"""Source checkout step.

CONTRACT
- Inputs: workspace directory, list of repository URLs
- Outputs:
  - One checkout per URL at <workspace>/<repo name>
- Invariants:
  - Existing checkouts are left alone
- Failure:
  - Returns the first non-zero `git clone` exit code; later sources are not cloned
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from ..util.paths import ensure_dir, source_dirname
from ..util.shell import run_cmd


@dataclass
class Clone:
    name: str = "clone"

    def run(self, workspace: Path, sources: list[str]) -> int:
        ensure_dir(workspace)
        for url in sources:
            dest = workspace / source_dirname(url)
            if dest.exists():
                logger.info(f"Source already present, skipping clone: {dest}")
                continue
            res = run_cmd(["git", "clone", url, dest.name], cwd=workspace)
            if not res.ok:
                logger.warning(f"Failed to clone {url} (rc={res.returncode})")
                return res.returncode
        return 0
