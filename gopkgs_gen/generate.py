from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .atomic import write_file
from .config import Config
from .descriptor import build_descriptor, descriptor_path, plan_descriptors, render
from .graph import aggregate
from .loader import Package, load
from .util import log_event, setup_json_logger

_LOG = setup_json_logger("gopkgs_gen.generate")

Loader = Callable[[Config], list[Package]]


@dataclass
class GenerationReport:
    modules: list[str] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)


def generate(cfg: Config, *, load_graph: Loader = load) -> GenerationReport:
    """Regenerate every external module descriptor under cfg.output_root.

    Stops at the first error. Descriptors already written by then stay valid.
    """
    packages = load_graph(cfg)
    registry = aggregate(packages)

    # replace checks need no I/O, so they all run before the first write
    plan = list(plan_descriptors(registry, cfg))

    report = GenerationReport(modules=registry.paths())
    for mod, out_dir in plan:
        data = render(build_descriptor(mod, cfg))
        target = descriptor_path(cfg, out_dir)
        write_file(target.parent, target.name, data)
        log_event(
            _LOG,
            "descriptor.written",
            module=mod.path,
            version=mod.version,
            deps=len(mod.dependencies),
            path=target.relative_to(cfg.repo_root).as_posix(),
        )
        report.written.append(target)
    return report
