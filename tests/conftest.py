from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from gopkgs_gen.loader import ModuleInfo, Package


@pytest.fixture(autouse=True)
def restore_environ() -> Iterator[None]:
    saved = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(saved)


PkgFactory = Callable[..., Package]


@pytest.fixture
def pkg() -> PkgFactory:
    """Build a Package record the way `go list -json -deps` reports it."""

    def _make(
        import_path: str,
        module: ModuleInfo | None,
        *imports: str,
        root: bool = False,
        errors: tuple[str, ...] = (),
        name: str | None = None,
    ) -> Package:
        i = import_path.find(" [")
        return Package(
            id=import_path,
            pkg_path=import_path if i == -1 else import_path[:i],
            name=name or import_path.rsplit("/", 1)[-1],
            module=module,
            imports=tuple(imports),
            errors=errors,
            dep_only=not root,
        )

    return _make


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    (repo / ".git").mkdir(parents=True)
    return repo


@pytest.fixture
def module_src(tmp_path: Path) -> Callable[[str], str]:
    """Materialise a small module source tree and return its directory."""

    def _make(module_path: str, body: str = "package x\n") -> str:
        root = tmp_path / "modcache" / module_path
        root.mkdir(parents=True, exist_ok=True)
        (root / "go.mod").write_text(f"module {module_path}\n", encoding="utf-8")
        (root / "x.go").write_text(body, encoding="utf-8")
        return str(root)

    return _make
