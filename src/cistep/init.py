from __future__ import annotations

"""Template initializer.

CONTRACT
- Inputs: Repo path
- Outputs (required):
  - Writes .cistep/checks.yaml
  - Writes .builds/stable.yml
- Invariants:
  - Creates directories if missing
  - Does not overwrite existing files (by default)
- Failure:
  - Raises OSError on permission issues
"""

from pathlib import Path

from .config import CONTRACT_RELPATH, DEFAULT_MANIFEST_RELPATH
from .util.paths import copy_template


def write_templates(repo: Path, force: bool = False) -> list[Path]:
    written: list[Path] = []
    for template, rel in (("checks.yaml", CONTRACT_RELPATH), ("stable.yml", DEFAULT_MANIFEST_RELPATH)):
        dest = repo / rel
        if copy_template(template, dest, overwrite=force):
            written.append(dest)
    return written
