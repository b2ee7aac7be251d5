from __future__ import annotations

from pathlib import Path

import pytest

from gopkgs_gen.config import CONFIG_FILENAME, Config, load_config
from gopkgs_gen.errors import ConfigError


def test_load_config_defaults_without_file(tmp_path: Path) -> None:
    cfg = load_config(tmp_path)
    assert cfg == Config(repo_root=tmp_path.resolve())
    assert cfg.roots == ("./...",)
    assert cfg.tools_root == "./tools"
    assert cfg.tools_tags == ("tools",)
    assert cfg.output_root == "third_party/gopkgs"
    assert cfg.descriptor_name == "default.nix"
    assert cfg.internal_prefixes == ("example.com/",)
    assert cfg.metrics_out is None


def test_load_config_reads_overrides(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(
        "go: /opt/go/bin/go\n"
        "roots: ['./cmd/...', './lib/...']\n"
        "tools_tags: [tools, gen]\n"
        "output_root: nix/go/\n"
        "internal_prefixes: ['corp.example/', 'example.com/']\n"
        "metrics_out: artifacts/metrics.jsonl\n",
        encoding="utf-8",
    )
    cfg = load_config(tmp_path)

    assert cfg.go == "/opt/go/bin/go"
    assert cfg.roots == ("./cmd/...", "./lib/...")
    assert cfg.tools_tags == ("tools", "gen")
    assert cfg.output_root == "nix/go"
    assert cfg.internal_prefixes == ("corp.example/", "example.com/")
    assert cfg.metrics_out == tmp_path.resolve() / "artifacts" / "metrics.jsonl"
    assert cfg.descriptor_name == "default.nix"


def test_load_config_empty_file_means_defaults(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("", encoding="utf-8")
    assert load_config(tmp_path) == Config(repo_root=tmp_path.resolve())


@pytest.mark.parametrize(
    ("body", "match"),
    [
        ("- a\n- b\n", "must be a mapping"),
        ("unknown_key: 1\n", "Additional properties"),
        ("roots: []\n", r"\$\['roots'\]"),
        ("output_root: ../escape\n", r"\$\['output_root'\]"),
        ("descriptor_name: a/b.nix\n", r"\$\['descriptor_name'\]"),
        ("roots: [unterminated\n", "not valid YAML"),
    ],
)
def test_load_config_rejects_invalid_documents(tmp_path: Path, body: str, match: str) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError, match=match):
        load_config(tmp_path)
