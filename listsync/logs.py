from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import structlog


def _renderer(renderer):
    return [structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer]


@contextmanager
def run_logger(level: str = "INFO", log_file: Optional[str | Path] = None, stream=None):
    """
    Logger for one sync run; its handlers are closed when the block exits.

    Events go to the console (coloured by level) and, when log_file is given,
    to a JSON-lines file that is truncated when the run starts. The stdlib
    logger is created directly so nothing is registered process-wide.
    """
    std = logging.Logger("listsync", level=getattr(logging, level.upper()))

    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(structlog.stdlib.ProcessorFormatter(processors=_renderer(structlog.dev.ConsoleRenderer())))
    std.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, mode="w", encoding="utf-8")
        fh.setFormatter(structlog.stdlib.ProcessorFormatter(processors=_renderer(structlog.processors.JSONRenderer())))
        std.addHandler(fh)

    log = structlog.wrap_logger(
        std,
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
    )
    try:
        yield log
    finally:
        for h in list(std.handlers):
            h.close()
            std.removeHandler(h)
