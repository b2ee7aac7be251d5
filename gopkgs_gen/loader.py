"""Package graph loading through `go list`.

The Go toolchain is the only component that knows how import paths resolve
to directories, modules and build-constrained files, so this module only
drives `go list -json` and turns its object stream into typed records.
"""

from __future__ import annotations

import json
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .config import Config
from .errors import LoadError
from .util import log_event, setup_json_logger

_LOG = setup_json_logger("gopkgs_gen.loader")

# `go list -test` marks test variants as "pkg [pkg.test]"
_VARIANT_SEP = " ["


@dataclass(frozen=True)
class ModuleInfo:
    path: str
    version: str = ""
    dir: str = ""
    main: bool = False
    replace: ModuleInfo | None = None
    error: str | None = None


@dataclass(frozen=True)
class Package:
    id: str
    pkg_path: str
    name: str = ""
    module: ModuleInfo | None = None
    imports: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    dep_only: bool = False


@dataclass(frozen=True)
class GoCommand:
    argv: list[str]
    cwd: Path
    env: dict[str, str] = field(default_factory=dict)


def strip_variant(import_path: str) -> str:
    i = import_path.find(_VARIANT_SEP)
    return import_path if i == -1 else import_path[:i]


def _error_text(raw: Any) -> str | None:
    if not raw:
        return None
    if isinstance(raw, dict):
        return str(raw.get("Err", "")) or None
    return str(raw)


def _module_from_json(raw: dict[str, Any] | None) -> ModuleInfo | None:
    if not raw:
        return None
    return ModuleInfo(
        path=str(raw.get("Path", "")),
        version=str(raw.get("Version", "")),
        dir=str(raw.get("Dir", "")),
        main=bool(raw.get("Main", False)),
        replace=_module_from_json(raw.get("Replace")),
        error=_error_text(raw.get("Error")),
    )


def package_from_json(raw: dict[str, Any]) -> Package:
    import_path = str(raw.get("ImportPath", ""))
    errors = []
    err = _error_text(raw.get("Error"))
    if err:
        errors.append(err)
    return Package(
        id=import_path,
        pkg_path=strip_variant(import_path),
        name=str(raw.get("Name", "")),
        module=_module_from_json(raw.get("Module")),
        imports=tuple(raw.get("Imports") or ()),
        errors=tuple(errors),
        dep_only=bool(raw.get("DepOnly", False)),
    )


def parse_go_list(stream: str) -> list[Package]:
    """Decode the concatenated JSON objects printed by `go list -json`."""
    decoder = json.JSONDecoder()
    out: list[Package] = []
    pos = 0
    end = len(stream)
    while True:
        while pos < end and stream[pos].isspace():
            pos += 1
        if pos >= end:
            break
        try:
            obj, pos = decoder.raw_decode(stream, pos)
        except json.JSONDecodeError as exc:
            raise LoadError(f"undecodable go list output: {exc}") from exc
        if not isinstance(obj, dict):
            raise LoadError(f"unexpected go list record at offset {pos}: {type(obj).__name__}")
        out.append(package_from_json(obj))
    return out


def _go_command(cfg: Config, args: Iterable[str]) -> GoCommand:
    env = dict(os.environ)
    # module metadata is only reported in module mode
    env.setdefault("GO111MODULE", "on")
    return GoCommand(argv=[cfg.go, "list", *args], cwd=cfg.repo_root, env=env)


def run_go_list(cmd: GoCommand) -> list[Package]:
    log_event(_LOG, "loader.go_list.start", argv=cmd.argv)
    try:
        proc = subprocess.run(
            cmd.argv,
            cwd=cmd.cwd,
            env=cmd.env,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except FileNotFoundError as exc:
        raise LoadError(f"go toolchain not found: {cmd.argv[0]}") from exc
    if proc.returncode != 0:
        stderr = proc.stderr.strip()
        raise LoadError(
            f"{' '.join(cmd.argv)} exited with {proc.returncode}"
            + (f": {stderr}" if stderr else "")
        )
    pkgs = parse_go_list(proc.stdout)
    log_event(_LOG, "loader.go_list.finish", argv=cmd.argv, packages=len(pkgs))
    return pkgs


def load_tool_roots(cfg: Config) -> list[str]:
    """Direct imports of the tools root, used only to seed the real load."""
    tools_dir = (cfg.repo_root / cfg.tools_root).resolve()
    if not tools_dir.is_dir():
        log_event(_LOG, "loader.tools.absent", tools_root=cfg.tools_root)
        return []

    args = ["-e", "-json"]
    if cfg.tools_tags:
        args += ["-tags", ",".join(cfg.tools_tags)]
    pkgs = run_go_list(_go_command(cfg, [*args, cfg.tools_root]))

    roots: list[str] = []
    for pkg in pkgs:
        roots.extend(pkg.imports)
    return roots


def merge_roots(base: Iterable[str], extra: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for root in [*base, *extra]:
        if root not in seen:
            seen.add(root)
            out.append(root)
    return out


def load_package_graph(cfg: Config, roots: Iterable[str]) -> list[Package]:
    return run_go_list(_go_command(cfg, ["-e", "-json", "-deps", "-test", *roots]))


def load(cfg: Config) -> list[Package]:
    roots = merge_roots(cfg.roots, load_tool_roots(cfg))
    return load_package_graph(cfg, roots)
