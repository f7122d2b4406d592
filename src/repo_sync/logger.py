import json
import logging
import os
import sys

_DATEFMT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_MCP_LOG = "/tmp/repo-sync-mcp-server.log"


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg (+ exc)."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(debug_format: str, with_name: bool) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    fmt = "[%(asctime)s] [%(levelname)s] "
    if with_name:
        fmt += "%(name)s "
    return logging.Formatter(fmt + "%(message)s", datefmt=_DATEFMT)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" logs to a file only (stdout carries JSON-RPC),
            "cli" logs to stderr.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json".

    Environment variables:
        LOG_LEVEL: DEBUG, INFO, WARNING or ERROR.
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Log file path for MCP mode.
                  Default: /tmp/repo-sync-mcp-server.log
    """
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    if mode == "mcp":
        final_log_file = log_file or os.getenv("LOG_FILE", _DEFAULT_MCP_LOG)
        logging.basicConfig(
            level=log_level,
            format="[%(asctime)s] [%(levelname)s] %(message)s",
            datefmt=_DATEFMT,
            filename=final_log_file,
            filemode="a",
        )
    else:
        handlers: list[logging.Handler] = []
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            _make_formatter(debug_format, with_name=False)
        )
        handlers.append(stderr_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(
                _make_formatter(debug_format, with_name=True)
            )
            handlers.append(file_handler)

        logging.basicConfig(level=log_level, handlers=handlers)

    # Keep urllib3 connection chatter out of the log unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("requests").setLevel(logging.WARNING)


def apply_logging_config(
    level: str | None, log_file: str | None = None, debug: bool = False
) -> None:
    """Apply the ``logging`` section of the YAML config to the package logger.

    ``LOG_LEVEL`` and ``--debug`` win over *level*.  *log_file* adds a file
    handler unless the root logger already writes there.
    """
    package = logging.getLogger("repo_sync")
    if level and not debug and not os.getenv("LOG_LEVEL"):
        package.setLevel(level.upper())

    if not log_file:
        return
    path = os.path.abspath(log_file)
    for handler in logging.getLogger().handlers + package.handlers:
        if (
            isinstance(handler, logging.FileHandler)
            and handler.baseFilename == path
        ):
            return
    file_handler = logging.FileHandler(path, mode="a")
    file_handler.setFormatter(_make_formatter("text", with_name=True))
    package.addHandler(file_handler)
