"""
Logging utilities for structured logging
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime'
))


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, ensure_ascii=False, default=str)


class AlarmContextFilter(logging.Filter):
    """Attach task/playlist context to records that carry it"""

    def filter(self, record: logging.LogRecord) -> bool:
        if hasattr(record, 'task_id'):
            record.task_context = {
                "task_id": record.task_id,
                "task_name": getattr(record, 'task_name', None)
            }

        if hasattr(record, 'playlist_id'):
            record.playlist_context = {
                "playlist_id": record.playlist_id,
                "generation": getattr(record, 'generation', None)
            }

        return True


def setup_logging(log_level: str = "INFO", log_format: str = "text",
                  log_file: Optional[str] = None) -> None:
    """
    Setup structured logging for the alarm engine.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ("json", "text" or "simple")
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    root_logger.handlers.clear()

    if log_format.lower() == "json":
        formatter = JSONFormatter()
    elif log_format.lower() == "simple":
        formatter = logging.Formatter(
            '%(asctime)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(AlarmContextFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(AlarmContextFilter())
        root_logger.addHandler(file_handler)

    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get logger with alarm engine context.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def log_task_fired(logger: logging.Logger, task_id: int, task_name: str,
                   history_id: int, **kwargs) -> None:
    """
    Log that a scheduled task was judged due and claimed.

    Args:
        logger: Logger instance
        task_id: Task id
        task_name: Task name
        history_id: Id of the `started` execution history row
        **kwargs: Additional context
    """
    logger.info(
        f"Task fired: {task_name} (id={task_id})",
        extra={
            "task_id": task_id,
            "task_name": task_name,
            "event_type": "task_fired",
            "history_id": history_id,
            **kwargs
        }
    )


def log_task_skipped(logger: logging.Logger, task_id: int, task_name: str,
                     reason: str) -> None:
    """Log why a task in its firing window was not fired."""
    logger.debug(
        f"Task skipped: {task_name} ({reason})",
        extra={
            "task_id": task_id,
            "task_name": task_name,
            "event_type": "task_skipped",
            "reason": reason
        }
    )


def log_playback_event(logger: logging.Logger, playlist_id: Optional[int], event_type: str,
                       **kwargs) -> None:
    """
    Log playback events.

    Args:
        logger: Logger instance
        playlist_id: Playlist being played, if any
        event_type: Type of playback event
        **kwargs: Additional context
    """
    logger.info(
        f"Playback event: {event_type}",
        extra={
            "playlist_id": playlist_id,
            "event_type": "playback",
            "playback_action": event_type,
            **kwargs
        }
    )


def log_error(logger: logging.Logger, error: Exception,
              context: Optional[Dict[str, Any]] = None) -> None:
    """
    Log errors with context.

    Args:
        logger: Logger instance
        error: Exception that occurred
        context: Additional context
    """
    logger.error(
        f"Error occurred: {error}",
        extra={
            "event_type": "error",
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context or {}
        },
        exc_info=error
    )
