"""
Trace and error logging.

Three named loggers sit under "musicplug":
- musicplug.trace: operation traces, written to trace-log.log when enabled
- musicplug.error: error reports, written to error-log-<date>.log when enabled
- musicplug.dev: developer log lines forwarded from plugins
"""

import logging
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

logger = logging.getLogger("musicplug")

_trace_logger = logging.getLogger("musicplug.trace")
_error_logger = logging.getLogger("musicplug.error")
_dev_logger = logging.getLogger("musicplug.dev")

_trace_logger.propagate = False
_error_logger.propagate = False

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "log": logging.INFO,
}

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class LogOptions:
    trace_log: bool = False
    error_log: bool = True
    dev_log: bool = False


_options = LogOptions()
_installed: list[tuple[logging.Logger, logging.Handler]] = []


def configure(options: LogOptions) -> None:
    """Switch the trace/error/dev streams on or off."""
    global _options
    _options = options


def get_options() -> LogOptions:
    return _options


def options_from_settings(settings: Any) -> LogOptions:
    return LogOptions(
        trace_log=bool(settings.trace_log),
        error_log=bool(settings.error_log),
        dev_log=bool(settings.dev_log),
    )


def _format(desc: str, message: Any) -> str:
    if message is None:
        return desc
    return f"{desc} {message}"


def trace(desc: str, message: Any = None, level: str = "info") -> None:
    """Record an operation trace."""
    text = _format(desc, message)
    logger.debug(text)
    if _options.trace_log:
        _trace_logger.log(_LEVELS.get(level, logging.INFO), text)


def error_log(desc: str, message: Any = None) -> None:
    """Record an error report and trace it at error level."""
    if not _options.error_log:
        return
    _error_logger.error(_format(desc, message))
    trace(desc, message, "error")


def dev_log(method: str, *args: Any) -> None:
    if _options.dev_log:
        _dev_logger.log(_LEVELS.get(method, logging.INFO), " ".join(str(a) for a in args))


def _install(target: logging.Logger, handler: logging.Handler) -> None:
    handler.setFormatter(logging.Formatter(_FORMAT))
    target.addHandler(handler)
    _installed.append((target, handler))


def teardown_logging() -> None:
    """Detach and close every handler installed by setup_logging()."""
    while _installed:
        target, handler = _installed.pop()
        target.removeHandler(handler)
        handler.close()


def setup_logging(
    log_dir: Path,
    options: LogOptions | None = None,
    verbose: bool = False,
) -> None:
    """
    Install file handlers for the trace/error streams and a stderr handler.

    Calling it again replaces the handlers from the previous call.
    """
    teardown_logging()
    if options is not None:
        configure(options)

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    trace_handler = logging.FileHandler(log_dir / "trace-log.log", encoding="utf-8")
    _trace_logger.setLevel(logging.DEBUG)
    _install(_trace_logger, trace_handler)

    error_file = log_dir / f"error-log-{date.today().isoformat()}.log"
    _install(_error_logger, logging.FileHandler(error_file, encoding="utf-8"))

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    _install(logger, console)
