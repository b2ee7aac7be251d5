from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import jsonschema
import yaml

from .errors import ConfigError

CONFIG_FILENAME = "gopkgs-gen.yml"
SCHEMA_PATH = Path(__file__).resolve().parent / "config.schema.json"


@dataclass(frozen=True)
class Config:
    repo_root: Path
    go: str = "go"
    roots: tuple[str, ...] = ("./...",)
    tools_root: str = "./tools"
    tools_tags: tuple[str, ...] = ("tools",)
    output_root: str = "third_party/gopkgs"
    descriptor_name: str = "default.nix"
    internal_prefixes: tuple[str, ...] = ("example.com/",)
    generator: str = "//tools/gopkgs-gen"
    metrics_out: Path | None = None


def _read_schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def load_config(repo_root: Path) -> Config:
    """Load `gopkgs-gen.yml` from repo_root; defaults apply when it is absent."""
    repo_root = repo_root.resolve()
    path = repo_root / CONFIG_FILENAME
    if not path.exists():
        return Config(repo_root=repo_root)

    try:
        doc = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{CONFIG_FILENAME} is not valid YAML: {exc}") from exc
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must be a mapping")
    try:
        jsonschema.validate(instance=doc, schema=_read_schema())
    except jsonschema.ValidationError as exc:
        where = "$" + "".join(f"[{p!r}]" for p in exc.absolute_path)
        raise ConfigError(f"{CONFIG_FILENAME} at {where}: {exc.message}") from exc

    # Relative metrics paths are resolved against repo_root, not the cwd.
    metrics_out: Path | None = None
    if "metrics_out" in doc:
        q = Path(str(doc["metrics_out"]))
        metrics_out = q if q.is_absolute() else repo_root / q

    defaults = Config(repo_root=repo_root)
    return Config(
        repo_root=repo_root,
        go=str(doc.get("go", defaults.go)),
        roots=tuple(doc.get("roots", defaults.roots)),
        tools_root=str(doc.get("tools_root", defaults.tools_root)),
        tools_tags=tuple(doc.get("tools_tags", defaults.tools_tags)),
        output_root=str(doc.get("output_root", defaults.output_root)).rstrip("/"),
        descriptor_name=str(doc.get("descriptor_name", defaults.descriptor_name)),
        internal_prefixes=tuple(doc.get("internal_prefixes", defaults.internal_prefixes)),
        generator=str(doc.get("generator", defaults.generator)),
        metrics_out=metrics_out,
    )
