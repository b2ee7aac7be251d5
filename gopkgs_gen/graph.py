from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from .errors import LoadError, MissingModuleError, PackageErrors
from .loader import ModuleInfo, Package, strip_variant
from .util import log_event, setup_json_logger

_LOG = setup_json_logger("gopkgs_gen.graph")


def is_builtin(import_path: str) -> bool:
    """Standard library packages have no dot in their first path element."""
    first, _, _ = import_path.partition("/")
    return "." not in first


def is_synthetic_test(pkg: Package) -> bool:
    # "x.test" named main is the generated test binary, "x_test" an external
    # test package; go list can report either without a module.
    if pkg.pkg_path.endswith(".test"):
        return pkg.name == "main"
    return pkg.pkg_path.endswith("_test")


def package_errors(pkg: Package) -> PackageErrors | None:
    causes = list(pkg.errors)
    if pkg.module is not None and pkg.module.error:
        causes.append(pkg.module.error)
    if not causes:
        return None
    return PackageErrors(pkg.pkg_path, causes)


@dataclass
class Module:
    path: str
    version: str = ""
    dir: str = ""
    replace_path: str = ""
    main: bool = False
    # module path -> exact packages imported from that module
    dependencies: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def from_info(cls, info: ModuleInfo) -> Module:
        mod = cls(path=info.path, version=info.version, dir=info.dir, main=info.main)
        if info.replace is not None:
            mod.replace_path = info.replace.path
            mod.version = info.replace.version
            mod.dir = info.replace.dir or info.dir
        if mod.version.startswith("v"):
            mod.version = mod.version[1:]
        return mod

    def add_dependency(self, module_path: str, pkg_path: str) -> None:
        if module_path == self.path:
            raise ValueError(f"module {self.path} cannot depend on itself")
        self.dependencies.setdefault(module_path, set()).add(pkg_path)

    def imports(self) -> list[str]:
        """Every package borrowed from other modules, sorted."""
        out: set[str] = set()
        for pkgs in self.dependencies.values():
            out.update(pkgs)
        return sorted(out)


class ModuleRegistry:
    """Modules seen during one walk, keyed by module path."""

    def __init__(self) -> None:
        self._modules: dict[str, Module] = {}

    def __len__(self) -> int:
        return len(self._modules)

    def __contains__(self, path: object) -> bool:
        return path in self._modules

    def __iter__(self) -> Iterator[Module]:
        for path in self.paths():
            yield self._modules[path]

    def get(self, path: str) -> Module | None:
        return self._modules.get(path)

    def paths(self) -> list[str]:
        return sorted(self._modules)

    def resolve(self, info: ModuleInfo) -> Module:
        mod = self._modules.get(info.path)
        if mod is None:
            mod = Module.from_info(info)
            self._modules[mod.path] = mod
        return mod


def _walk(index: dict[str, Package], roots: Iterable[str]) -> Iterator[Package]:
    """Post-order walk over non-builtin packages, each yielded once."""
    seen: set[str] = set()
    for root in roots:
        if root in seen or is_builtin(index[root].pkg_path):
            continue
        seen.add(root)
        stack: list[tuple[Package, Iterator[str]]] = [(index[root], iter(index[root].imports))]
        while stack:
            pkg, pending = stack[-1]
            for dep_id in pending:
                # "C" and other builtins never get a record of their own
                if dep_id in seen or is_builtin(strip_variant(dep_id)):
                    continue
                dep = index.get(dep_id)
                if dep is None:
                    raise LoadError(f"import {dep_id} of {pkg.id} is missing from the package graph")
                seen.add(dep_id)
                stack.append((dep, iter(dep.imports)))
                break
            else:
                stack.pop()
                yield pkg


def aggregate(packages: Iterable[Package]) -> ModuleRegistry:
    """Group reachable packages into modules and record inter-module imports."""
    index: dict[str, Package] = {}
    for pkg in packages:
        index[pkg.id] = pkg
    roots = sorted(pkg_id for pkg_id, pkg in index.items() if not pkg.dep_only)

    registry = ModuleRegistry()
    visited = 0
    for pkg in _walk(index, roots):
        visited += 1
        err = package_errors(pkg)
        if err is not None:
            raise err

        if pkg.module is None:
            if is_synthetic_test(pkg):
                continue
            raise MissingModuleError(pkg.pkg_path)

        mod = registry.resolve(pkg.module)
        for dep_id in pkg.imports:
            if is_builtin(strip_variant(dep_id)):
                continue
            dep = index[dep_id]
            if dep.module is None:
                if is_synthetic_test(dep):
                    continue
                raise MissingModuleError(dep.pkg_path)

            dep_mod = registry.resolve(dep.module)
            if dep_mod.path == mod.path:
                continue
            mod.add_dependency(dep_mod.path, dep.pkg_path)

    log_event(_LOG, "graph.aggregate.finish", packages=visited, modules=len(registry))
    return registry
