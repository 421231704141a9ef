from __future__ import annotations

"""Configuration models.

CONTRACT
- Inputs: YAML file paths (checks.yaml, .builds/*.yml) or dictionary data
- Outputs (required):
  - Validated CheckContract, ToolchainConfig, BuildManifest, RunConfig objects
- Invariants:
  - Command and task names match `[A-Za-z0-9][A-Za-z0-9_-]{0,31}` and are unique
  - Defaults reproduce the stock pipeline (stable/minimal toolchain, fmt + clippy + test)
- Failure:
  - Raises ConfigError on invalid schema, names or YAML
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import jsonschema
import yaml

from .errors import ConfigError
from .util.ids import validate_name

RunKind = Literal["check", "build"]

CONTRACT_RELPATH = Path(".cistep") / "checks.yaml"
DEFAULT_MANIFEST_RELPATH = Path(".builds") / "stable.yml"


@dataclass(frozen=True)
class ToolchainConfig:
    channel: str = "stable"
    profile: str = "minimal"
    components: tuple[str, ...] = ("rustfmt", "clippy")


@dataclass(frozen=True)
class CommandSpec:
    name: str
    cmd: str | list[str]
    timeout_s: float | None = None
    env: dict[str, str] = field(default_factory=dict)


def default_commands() -> list[CommandSpec]:
    return [
        CommandSpec(name="fmt", cmd="cargo fmt -- --check"),
        CommandSpec(name="clippy", cmd="cargo clippy --all-targets --all-features -- -D warnings"),
        CommandSpec(name="test", cmd="cargo test --verbose"),
    ]


@dataclass(frozen=True)
class CheckContract:
    commands: list[CommandSpec] = field(default_factory=default_commands)
    workdir: str = "."
    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
    schema_version: int = 1


@dataclass(frozen=True)
class TaskSpec:
    name: str
    script: str


@dataclass(frozen=True)
class BuildManifest:
    image: str
    tasks: list[TaskSpec]
    packages: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RunConfig:
    repo_path: Path
    run_id: str
    artifacts_root: Path
    kind: RunKind
    contract_file: Path | None = None
    manifest_file: Path | None = None
    workdir: str | None = None
    capture: bool = False
    use_docker: bool = False

    def run_dir(self) -> Path:
        return self.artifacts_root / self.run_id


_NAME_PATTERN = "^[A-Za-z0-9][A-Za-z0-9_-]{0,31}$"

CONTRACT_SCHEMA = {
    "type": "object",
    "properties": {
        "schema_version": {"type": "integer"},
        "workdir": {"type": "string"},
        "toolchain": {
            "type": "object",
            "properties": {
                "channel": {"type": "string", "minLength": 1},
                "profile": {"type": "string", "minLength": 1},
                "components": {"type": "array", "items": {"type": "string"}},
            },
            "additionalProperties": False,
        },
        "commands": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "pattern": _NAME_PATTERN},
                    "cmd": {
                        "oneOf": [
                            {"type": "string", "minLength": 1},
                            {"type": "array", "items": {"type": "string"}, "minItems": 1},
                        ]
                    },
                    "timeout_s": {"type": ["number", "null"], "exclusiveMinimum": 0},
                    "env": {"type": "object", "additionalProperties": {"type": "string"}},
                },
                "required": ["name", "cmd"],
                "additionalProperties": False,
            },
        },
    },
    "additionalProperties": False,
}

MANIFEST_SCHEMA = {
    "type": "object",
    "properties": {
        "image": {"type": "string", "minLength": 1},
        "packages": {"type": "array", "items": {"type": "string"}},
        "sources": {"type": "array", "items": {"type": "string"}},
        "tasks": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "minProperties": 1,
                "maxProperties": 1,
                "patternProperties": {_NAME_PATTERN: {"type": "string"}},
                "additionalProperties": False,
            },
        },
    },
    "required": ["image", "tasks"],
}


def _read_yaml(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e


def _validate(data: Any, schema: dict[str, Any], what: str) -> None:
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"Invalid {what} schema at {where}: {e.message}") from e


def _unique(names: list[str], what: str) -> None:
    seen: set[str] = set()
    for n in names:
        if n in seen:
            raise ConfigError(f"Duplicate {what} name: {n}")
        seen.add(n)


def parse_contract(data: dict[str, Any] | None) -> CheckContract:
    data = data or {}
    _validate(data, CONTRACT_SCHEMA, "check contract")

    tc_raw = data.get("toolchain", {}) or {}
    defaults = ToolchainConfig()
    toolchain = ToolchainConfig(
        channel=str(tc_raw.get("channel", defaults.channel)),
        profile=str(tc_raw.get("profile", defaults.profile)),
        components=tuple(tc_raw.get("components", defaults.components)),
    )

    if "commands" in data:
        commands = [
            CommandSpec(
                name=validate_name(str(c["name"]), "command name"),
                cmd=c["cmd"] if isinstance(c["cmd"], list) else str(c["cmd"]),
                timeout_s=c.get("timeout_s"),
                env=dict(c.get("env", {}) or {}),
            )
            for c in data["commands"]
        ]
    else:
        commands = default_commands()
    _unique([c.name for c in commands], "command")

    return CheckContract(
        commands=commands,
        workdir=str(data.get("workdir", ".")),
        toolchain=toolchain,
        schema_version=int(data.get("schema_version", 1)),
    )


def load_check_contract(path: Path) -> CheckContract:
    data = _read_yaml(path)
    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"Invalid check contract schema at <root>: expected a mapping in {path}")
    return parse_contract(data)


def resolve_check_contract(repo: Path, contract_file: Path | None = None) -> CheckContract:
    if contract_file is not None:
        if not contract_file.exists():
            raise ConfigError(f"Check contract not found: {contract_file}")
        return load_check_contract(contract_file)
    repo_contract = repo / CONTRACT_RELPATH
    if repo_contract.exists():
        return load_check_contract(repo_contract)
    return CheckContract()


def parse_manifest(data: dict[str, Any]) -> BuildManifest:
    _validate(data, MANIFEST_SCHEMA, "build manifest")
    tasks = [TaskSpec(name=name, script=script) for t in data["tasks"] for name, script in t.items()]
    _unique([t.name for t in tasks], "task")
    return BuildManifest(
        image=str(data["image"]),
        tasks=tasks,
        packages=[str(p) for p in data.get("packages", []) or []],
        sources=[str(s) for s in data.get("sources", []) or []],
    )


def load_manifest(path: Path) -> BuildManifest:
    data = _read_yaml(path)
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid build manifest schema at <root>: expected a mapping in {path}")
    return parse_manifest(data)


if __name__ == "__main__":
    import argparse
    import sys

    parser = argparse.ArgumentParser(description="Config Loader CLI")
    parser.add_argument("--contract", help="Path to checks.yaml")
    parser.add_argument("--manifest", help="Path to a build manifest")
    args = parser.parse_args()

    try:
        if args.contract:
            contract = load_check_contract(Path(args.contract))
            print(f"Loaded {len(contract.commands)} commands (workdir={contract.workdir}).")
        elif args.manifest:
            manifest = load_manifest(Path(args.manifest))
            print(f"Loaded {len(manifest.tasks)} tasks for image {manifest.image}.")
        else:
            parser.print_help()
            sys.exit(1)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
