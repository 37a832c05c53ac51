"""QBC structured logging: audit events and call tracing for the glyph pipeline."""

import functools
import json
import logging
import sys
import time
import traceback
from datetime import datetime, timezone

ROOT_LOGGER = "qbc"

# Custom AUDIT level (between WARNING=30 and ERROR=40)
AUDIT = 35
logging.addLevelName(AUDIT, "AUDIT")

_MAX_VALUE = 80


def _clip(text: str, limit: int = _MAX_VALUE) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _summarize(value: object) -> str:
    """Short, cheap description of a traced argument or return value.

    Scalars are shown verbatim (truncated). Lattices, paths, byte buffers
    and other sized containers collapse to ``<TypeName[len]>`` so a DEBUG
    trace never dumps a few hundred anchors.
    """
    if value is None or isinstance(value, (bool, int, float)):
        return repr(value)
    if isinstance(value, str):
        return _clip(repr(value))
    if isinstance(value, (bytes, bytearray)):
        return f"<{type(value).__name__}[{len(value)}]>"
    try:
        size = len(value)
    except TypeError:
        return f"<{type(value).__name__}>"
    return f"<{type(value).__name__}[{size}]>"


def _fields(record: logging.LogRecord) -> dict:
    """Pull the structured parts out of a record; absent parts are omitted."""
    out = {
        "when": datetime.fromtimestamp(record.created, tz=timezone.utc),
        "level": record.levelname,
        "src": record.name,
    }
    event = getattr(record, "event", None)
    if event is not None:
        out["event"] = event
        out["ctx"] = getattr(record, "ctx", {})
    elif record.getMessage():
        out["msg"] = record.getMessage()
    if hasattr(record, "duration_ms"):
        out["duration_ms"] = record.duration_ms
    if record.exc_info and record.exc_info[1]:
        out["exc"] = traceback.format_exception(*record.exc_info)
    return out


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, src, then event/ctx or msg."""

    def format(self, record):
        f = _fields(record)
        entry = {
            "ts": f["when"].strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": f["level"],
            "src": f["src"],
        }
        for key in ("event", "ctx", "msg"):
            if key in f:
                entry[key] = f[key]
        if "duration_ms" in f:
            entry["duration_ms"] = round(f["duration_ms"], 2)
        if "exc" in f:
            entry["traceback"] = f["exc"]
        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """``12:00:01.250 AUDIT [qbc.lattice] lattice.generated kind=grid +0.4ms``"""

    # ANSI SGR code per level number
    SGR = {
        logging.DEBUG: 36,
        logging.INFO: 32,
        AUDIT: 35,
        logging.WARNING: 33,
        logging.ERROR: 31,
        logging.CRITICAL: 41,
    }

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def _level(self, record) -> str:
        name = f"{record.levelname:<7}"
        code = self.SGR.get(record.levelno)
        if not self.color or code is None:
            return name
        return f"\033[{code}m{name}\033[0m"

    def format(self, record):
        f = _fields(record)
        line = f"{f['when']:%H:%M:%S}.{f['when'].microsecond // 1000:03d} {self._level(record)} [{f['src']}]"
        if "event" in f:
            line += " " + f["event"]
            line += "".join(f" {k}={_clip(str(v))}" for k, v in f["ctx"].items())
        elif "msg" in f:
            line += " " + f["msg"]
        if "duration_ms" in f:
            line += f" +{f['duration_ms']:.1f}ms"
        if "exc" in f:
            line += "\n" + "".join(f["exc"]).rstrip()
        return line


def setup_logging(level: str = "INFO", log_file: str | None = None, json_format: bool = False):
    """Install fresh handlers on the ``qbc`` logger and return it.

    The console goes to stderr (colour only on a tty) so stdout stays free for
    glyph output; ``log_file`` always receives JSON lines. Unknown level
    names fall back to INFO; "AUDIT" is accepted alongside the stdlib names.
    """
    root = logging.getLogger(ROOT_LOGGER)
    level_name = level.upper()
    root.setLevel(AUDIT if level_name == "AUDIT" else getattr(logging, level_name, logging.INFO))
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(color=sys.stderr.isatty()))
    root.addHandler(console)

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(JsonFormatter())
        root.addHandler(fh)
    return root


def get_logger(module_name: str) -> logging.Logger:
    """Get a logger scoped under the qbc namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{module_name}")


def _emit(log: logging.Logger, level: int, event: str, ctx: dict,
          duration_ms: float | None = None, exc_info=None):
    record = log.makeRecord(
        name=log.name, level=level, fn="", lno=0,
        msg="", args=(), exc_info=exc_info,
    )
    record.event = event
    record.ctx = ctx
    if duration_ms is not None:
        record.duration_ms = duration_ms
    log.handle(record)


def audit(event: str, logger: logging.Logger | None = None, **context):
    """Emit an AUDIT-level structured log entry.

    Args:
        event: Machine-readable event tag (e.g. "lattice.generated").
        logger: Logger to use. Defaults to the qbc root.
        **context: Key-value pairs for the event context.
    """
    log = logger or logging.getLogger(ROOT_LOGGER)
    if log.isEnabledFor(AUDIT):
        _emit(log, AUDIT, event, context)


def trace(func=None, *, logger_name: str | None = None):
    """Decorator that logs entry (DEBUG), exit with timing (INFO) and errors (ERROR)."""
    def decorator(fn):
        log = get_logger(logger_name or fn.__module__.replace(f"{ROOT_LOGGER}.", ""))

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            fn_name = fn.__name__
            if log.isEnabledFor(logging.DEBUG):
                _emit(log, logging.DEBUG, f"{fn_name}.enter", {
                    "args": [_summarize(a) for a in args],
                    "kwargs": {k: _summarize(v) for k, v in kwargs.items()},
                })

            start = time.perf_counter()
            try:
                result = fn(*args, **kwargs)
            except Exception:
                elapsed = (time.perf_counter() - start) * 1000
                _emit(log, logging.ERROR, f"{fn_name}.error", {"function": fn_name},
                      duration_ms=elapsed, exc_info=sys.exc_info())
                raise

            if log.isEnabledFor(logging.INFO):
                elapsed = (time.perf_counter() - start) * 1000
                _emit(log, logging.INFO, f"{fn_name}.done", {"result": _summarize(result)},
                      duration_ms=elapsed)
            return result

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
