"""
Structured logging system for better log analysis and debugging.
Provides JSON-formatted logs with context and metadata.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.markup import escape


class StructuredLogger:
    """
    Enhanced logger that outputs both human-readable and machine-parseable logs.

    Usage:
        logger = StructuredLogger("wdm_cli")
        logger.info("transfer_completed",
                    provider="chromedriver",
                    version="2.41",
                    size_bytes=3899227)
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
            enable_console: Enable console output
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console

        self._logger = logging.getLogger(name)

        self._json_file = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            json_log_path = log_dir / f"wdm_cli_{timestamp}.jsonl"
            self._json_file = open(json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        # Session context (added to all log entries)
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    @property
    def json_path(self) -> Path | None:
        return Path(self._json_file.name) if self._json_file else None

    def set_session_context(self, **kwargs) -> None:
        """Set session-level context that appears in all logs."""
        self._session_context.update(kwargs)

    def _format_message(self, event: str, **context) -> str:
        """Format message for console output."""
        parts = [f"[{event}]"]
        for key, value in context.items():
            if key not in ("level", "timestamp"):
                parts.append(f"{key}={value}")
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        """Write structured log entry to JSON file."""
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, TypeError, ValueError) as e:
            # Fallback to stderr if JSON logging fails
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _log(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            self._logger.log(level, escape(self._format_message(event, **context)))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        """Log debug event."""
        self._log(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        """Log info event."""
        self._log(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        """Log warning event."""
        self._log(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        """Log error event."""
        self._log(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class TransferLogger:
    """Specialized logger for catalog and download events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def catalog_fetched(self, provider: str, url: str, entries: int):
        """Log a parsed catalog."""
        self.logger.debug(
            "catalog_fetched", provider=provider, url=url, entries=entries
        )

    def transfer_started(self, url: str, destination: str, proxy: str | None):
        self.logger.debug(
            "transfer_started", url=url, destination=destination, proxy=proxy
        )

    def transfer_completed(self, destination: str, size_bytes: int, duration_s: float):
        """Log a completed download."""
        self.logger.info(
            "transfer_completed",
            destination=destination,
            size_bytes=size_bytes,
            size_mb=round(size_bytes / (1024 * 1024), 2),
            duration_s=round(duration_s, 2),
        )

    def transfer_skipped(self, destination: str, size_bytes: int):
        """Log a download skipped because the local file is already current."""
        self.logger.info(
            "transfer_skipped",
            destination=destination,
            size_bytes=size_bytes,
            reason="already_current",
        )

    def transfer_failed(self, url: str, error: str):
        self.logger.error("transfer_failed", url=url, error=error)


class ServerLogger:
    """Specialized logger for server process events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def state_changed(self, old: str, new: str, pid: int | None):
        """Log a lifecycle transition."""
        self.logger.debug("server_state_changed", old=old, new=new, pid=pid)

    def process_started(self, pid: int, role: str, port: int, detach: bool):
        self.logger.info(
            "server_started", pid=pid, role=role, port=port, detach=detach
        )

    def process_exited(self, pid: int, exit_code: int):
        self.logger.info("server_exited", pid=pid, exit_code=exit_code)

    def output_line(self, pid: int, line: str):
        self.logger.debug("server_output", pid=pid, line=line)


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, TransferLogger, ServerLogger]:
    """
    Create all structured loggers.

    Returns:
        Tuple of (base_logger, transfer_logger, server_logger)
    """
    base = StructuredLogger("wdm_cli", log_dir=log_dir, enable_json=enable_json)
    return base, TransferLogger(base), ServerLogger(base)
