"""Toolchain provisioning step.

CONTRACT
- Inputs: ToolchainConfig (channel, profile, components)
- Outputs:
  - install: `rustup toolchain install <channel> --profile <profile> -c <component>...`
  - default: `rustup default <channel>`
- Invariants:
  - Commands are argv lists (no shell)
  - `default` only runs after a successful install
- Failure:
  - Returns the first non-zero exit code
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from ..config import ToolchainConfig
from ..util.shell import run_cmd


def install_command(tc: ToolchainConfig) -> list[str]:
    cmd = ["rustup", "toolchain", "install", tc.channel, "--profile", tc.profile]
    for comp in tc.components:
        cmd.extend(["-c", comp])
    return cmd


def default_command(tc: ToolchainConfig) -> list[str]:
    return ["rustup", "default", tc.channel]


def provision_commands(tc: ToolchainConfig) -> list[list[str]]:
    return [install_command(tc), default_command(tc)]


@dataclass
class Provision:
    toolchain: ToolchainConfig
    name: str = "provision"

    def run(self, cwd: Path) -> int:
        for cmd in provision_commands(self.toolchain):
            res = run_cmd(cmd, cwd=cwd)
            if not res.ok:
                logger.warning(f"Provisioning failed (rc={res.returncode}): {res.cmd}")
                return res.returncode
        logger.info(f"Toolchain {self.toolchain.channel} installed and set as default")
        return 0
