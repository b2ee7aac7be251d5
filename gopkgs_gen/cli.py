from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Callable

from .config import Config, load_config
from .errors import GenError, UsageError
from .generate import GenerationReport, Loader, generate
from .loader import load
from .util import (
    MetricsEmitter,
    get_request_id,
    log_event,
    set_request_id,
    setup_json_logger,
)

PROG = "gopkgs-gen"

_LOG = setup_json_logger("gopkgs_gen.cli")


def _parser() -> argparse.ArgumentParser:
    # No options at all: every argument, -h included, is a usage error.
    return argparse.ArgumentParser(
        prog=PROG,
        description="Regenerate third_party Go module descriptors (deterministic).",
        add_help=False,
    )


def check_repo_root(path: Path) -> None:
    if not (path / ".git").exists():
        raise UsageError(f"{PROG} must be run from the repository root")


def _fail(exc: BaseException) -> int:
    print(f"{PROG}: {exc}", file=sys.stderr)
    return 1


def _run_with_observability(
    cfg: Config,
    fn: Callable[[], GenerationReport],
) -> int:
    metrics = MetricsEmitter(cfg.metrics_out) if cfg.metrics_out is not None else None
    started = time.perf_counter()
    log_event(_LOG, "cli.run.start", repo_root=str(cfg.repo_root))
    try:
        report = fn()
    except (GenError, OSError) as exc:
        latency_ms = (time.perf_counter() - started) * 1000.0
        log_event(
            _LOG,
            "cli.run.error",
            level=logging.ERROR,
            error=str(exc),
            error_type=type(exc).__name__,
            latency_ms=round(latency_ms, 3),
        )
        if metrics is not None:
            metrics.emit(
                metric="gopkgs_gen.run",
                status="error",
                latency_ms=latency_ms,
                error=type(exc).__name__,
            )
        return _fail(exc)

    latency_ms = (time.perf_counter() - started) * 1000.0
    log_event(
        _LOG,
        "cli.run.finish",
        modules=len(report.modules),
        written=len(report.written),
        latency_ms=round(latency_ms, 3),
    )
    if metrics is not None:
        metrics.emit(
            metric="gopkgs_gen.run",
            status="success",
            latency_ms=latency_ms,
            descriptors_written=len(report.written),
        )
    return 0


def run(repo_root: Path, *, load_graph: Loader = load) -> int:
    try:
        check_repo_root(repo_root)
        cfg = load_config(repo_root)
    except GenError as exc:
        return _fail(exc)

    log_event(_LOG, "cli.request.context", request_id=get_request_id())
    return _run_with_observability(cfg, lambda: generate(cfg, load_graph=load_graph))


def main(argv: list[str] | None = None) -> None:
    argv = sys.argv[1:] if argv is None else argv
    _parser().parse_args(argv)

    set_request_id()
    raise SystemExit(run(Path.cwd()))


if __name__ == "__main__":
    main()
