"""
Structured logging configuration for cargo-recipe.

Provides machine-readable JSON events for each stage of recipe generation.
Nothing logged here ever feeds back into the rendered recipe.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_RECORD_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class EventLogger:
    """Structured logger for generation events."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(f"cargo_recipe.{name}")
        self._setup_logger()
        self.generation_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False
            self.logger.setLevel(logging.WARNING)

    def set_generation_context(
        self,
        generation_id: Optional[str] = None,
        manifest_path: Optional[str] = None,
        total_dependencies: Optional[int] = None,
    ) -> None:
        """Set generation context attached to every event."""
        self.generation_context = {}
        if generation_id:
            self.generation_context["generation_id"] = generation_id
        if manifest_path:
            self.generation_context["manifest_path"] = manifest_path
        if total_dependencies is not None:
            self.generation_context["total_dependencies"] = total_dependencies

    def clear_generation_context(self) -> None:
        self.generation_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.generation_context, **kwargs}
        getattr(self.logger, level)(event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        self._log("info", event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        self._log("warning", event_type, **kwargs)

    def error(self, event_type: str, **kwargs) -> None:
        self._log("error", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        self._log("debug", event_type, **kwargs)


_generator_logger = EventLogger("generator")
_license_logger = EventLogger("licenses")
_git_logger = EventLogger("git")

_ALL_LOGGERS = (_generator_logger, _license_logger, _git_logger)


def get_generator_logger() -> EventLogger:
    """Get pipeline events logger."""
    return _generator_logger


def log_generation_start(
    generation_id: str, manifest_path: str, total_dependencies: int
) -> None:
    set_generation_context(generation_id, manifest_path, total_dependencies)
    _generator_logger.info(
        "generation_started",
        manifest_path=manifest_path,
        total_dependencies=total_dependencies,
    )


def log_generation_complete(
    generation_id: str, duration_ms: int, source_lines: int, warning_count: int
) -> None:
    _generator_logger.info(
        "generation_completed",
        generation_id=generation_id,
        duration_ms=duration_ms,
        source_lines=source_lines,
        warning_count=warning_count,
    )
    clear_generation_context()


def log_license_resolution(
    identifier: str, path: Optional[str], searched: Optional[list] = None
) -> None:
    """Log the outcome of a single license identifier lookup."""
    if path is None:
        _license_logger.warning(
            "license_unresolved", identifier=identifier, searched=searched or []
        )
    else:
        _license_logger.debug("license_resolved", identifier=identifier, path=path)


def log_checksum(path: str, algorithms: list) -> None:
    _license_logger.debug("checksum_computed", path=path, algorithms=algorithms)


def log_git_failure(reason: str) -> None:
    _git_logger.warning("git_discovery_failed", reason=reason)


def set_generation_context(
    generation_id: Optional[str] = None,
    manifest_path: Optional[str] = None,
    total_dependencies: Optional[int] = None,
) -> None:
    """Set global generation context for all loggers."""
    for logger in _ALL_LOGGERS:
        logger.set_generation_context(generation_id, manifest_path, total_dependencies)


def clear_generation_context() -> None:
    for logger in _ALL_LOGGERS:
        logger.clear_generation_context()


def configure_logging(log_level: str = "WARNING", enable_json: bool = True) -> None:
    """Configure level and format for all event loggers."""
    level = getattr(logging, log_level.upper(), logging.WARNING)
    formatter = (
        StructuredFormatter()
        if enable_json
        else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    for logger in _ALL_LOGGERS:
        logger.logger.setLevel(level)
        for handler in logger.logger.handlers:
            handler.setFormatter(formatter)
