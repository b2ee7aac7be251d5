from __future__ import annotations

import os
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .config import Config
from .errors import ReplacePathMismatchError
from .graph import Module, ModuleRegistry
from .narhash import module_sha256
from .util import log_event, setup_json_logger

_LOG = setup_json_logger("gopkgs_gen.descriptor")

NIX_IDENT_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_'-]*$")
NIX_KEYWORDS = frozenset(
    {"if", "then", "else", "assert", "with", "let", "in", "rec", "inherit", "or"}
)


def nix_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    return f'"{escaped}"'


def nix_attr_segment(name: str) -> str:
    if NIX_IDENT_RE.match(name) and name not in NIX_KEYWORDS:
        return name
    return nix_string(name)


def nix_attr(path: str) -> str:
    """`golang.org/x/tools` -> `"golang.org".x.tools`."""
    return ".".join(nix_attr_segment(name) for name in path.split("/"))


@dataclass(frozen=True)
class Descriptor:
    path: str
    version: str
    sha256: str
    imports: tuple[str, ...]
    generator: str


def render(desc: Descriptor) -> bytes:
    lines = [
        f"# generator {desc.generator} (DO NOT EDIT)",
        "{ platform, pkgs, ... }:",
        "",
        "platform.buildGo.external rec {",
        f"  path = {nix_string(desc.path)};",
        "  src = platform.lib.fetchGoModule {",
        "    inherit path;",
        f"    version = {nix_string(desc.version)};",
        f"    sha256 = {nix_string(desc.sha256)};",
        "  };",
    ]
    if desc.imports:
        lines.append("  deps = with platform.third_party; [")
        lines.extend(f"    gopkgs.{nix_attr(pkg)}" for pkg in desc.imports)
        lines.append("  ];")
    lines.append("}")
    return ("\n".join(lines) + "\n").encode("utf-8")


def is_external(mod: Module, cfg: Config) -> bool:
    if mod.main:
        return False
    return not any(mod.path.startswith(prefix) for prefix in cfg.internal_prefixes)


def is_local_replace(replace_path: str) -> bool:
    return (
        replace_path in (".", "..")
        or replace_path.startswith(("./", "../"))
        or os.path.isabs(replace_path)
    )


def output_dir(mod: Module, cfg: Config) -> str:
    """Repo-relative directory, always with forward slashes."""
    return posixpath.join(cfg.output_root, mod.path)


def plan_descriptors(registry: ModuleRegistry, cfg: Config) -> Iterator[tuple[Module, str]]:
    """External, non-vendored modules in path order, with their output dir."""
    for mod in registry:
        if not is_external(mod, cfg):
            continue

        out_dir = output_dir(mod, cfg)
        if mod.replace_path and is_local_replace(mod.replace_path):
            expected = "./" + out_dir
            if mod.replace_path != expected:
                raise ReplacePathMismatchError(mod.path, mod.replace_path, expected)
            # vendored modules carry their own build expression
            log_event(_LOG, "descriptor.skip.vendored", module=mod.path, replace=mod.replace_path)
            continue

        yield mod, out_dir


def build_descriptor(mod: Module, cfg: Config) -> Descriptor:
    return Descriptor(
        path=mod.path,
        version=mod.version,
        sha256=module_sha256(mod.path, mod.dir),
        imports=tuple(mod.imports()),
        generator=cfg.generator,
    )


def descriptor_path(cfg: Config, out_dir: str) -> Path:
    return cfg.repo_root / Path(out_dir) / cfg.descriptor_name
