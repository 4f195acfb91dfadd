"""
Centralized logging infrastructure for the 2048 DQN project.

Usage:
    from src.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Training started")
    logger.debug("Sampled 32 transitions")
    logger.warning("Memory undersupplied")
    logger.error("No model")

Configuration:
    Call setup_logging() once from the entry point to choose the level and
    whether a log file is written. Modules that log before that get the
    defaults (INFO, console only).
"""

import logging
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class LogLevel(Enum):
    """Log levels for configuration."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


ROOT_NAMESPACE = 'dqn2048'

# Module-level state
_initialized = False
_log_dir: Optional[Path] = None
_file_handler: Optional[logging.FileHandler] = None


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def __init__(self, fmt: str, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if self.use_colors:
            # Work on a copy so file handlers never see the escape codes
            record = logging.makeLogRecord(record.__dict__)
            color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
            record.levelname = f"{color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def setup_logging(
    log_dir: str = 'logs',
    level: LogLevel = LogLevel.INFO,
    console_output: bool = True,
    file_output: bool = False,
    log_filename: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Initialize the logging system.

    Args:
        log_dir: Directory for log files
        level: Minimum log level to capture
        console_output: Whether to output to console
        file_output: Whether to output to file
        log_filename: Custom log filename (default: training_YYYYMMDD_HHMMSS.log)
        force: Reconfigure even if logging was already initialized
    """
    global _initialized, _log_dir, _file_handler

    if _initialized and not force:
        return

    root_logger = logging.getLogger(ROOT_NAMESPACE)
    root_logger.setLevel(level.value)
    root_logger.handlers.clear()
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level.value)
        console_fmt = ColoredFormatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            use_colors=True
        )
        console_handler.setFormatter(console_fmt)
        root_logger.addHandler(console_handler)

    if file_output:
        _log_dir = Path(log_dir)
        _log_dir.mkdir(parents=True, exist_ok=True)
        if log_filename is None:
            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            log_filename = f'training_{timestamp}.log'

        log_path = _log_dir / log_filename
        _file_handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
        _file_handler.setLevel(logging.DEBUG)  # Capture everything in file
        file_fmt = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
        )
        _file_handler.setFormatter(file_fmt)
        root_logger.addHandler(_file_handler)

    _initialized = True
    root_logger.debug(f"Logging initialized (level={level.name}, file={file_output})")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance configured with project settings

    Example:
        logger = get_logger(__name__)
        logger.info("Message")
    """
    if not _initialized:
        setup_logging()

    # Strip 'src.' prefix for cleaner names
    if name.startswith('src.'):
        name = name[4:]

    return logging.getLogger(f'{ROOT_NAMESPACE}.{name}')


def get_log_path() -> Optional[Path]:
    """Get the current log file path."""
    if _file_handler is not None:
        return Path(_file_handler.baseFilename)
    return None


def log_training_metrics(
    round_index: int,
    total_reward: float,
    loss: Optional[float] = None,
    steps: Optional[int] = None,
    memory_size: Optional[int] = None,
) -> None:
    """
    Log training metrics in a consistent format.

    Args:
        round_index: Current training round (1-based)
        total_reward: Sum of rewards collected during the round
        loss: Replay loss (if a replay ran)
        steps: Environment steps in the round (if available)
        memory_size: Transitions held in memory after the round
    """
    logger = get_logger('training')

    metrics = [
        f"round={round_index}",
        f"reward={total_reward:.1f}",
    ]

    if loss is not None:
        metrics.append(f"loss={loss:.6f}")
    if steps is not None:
        metrics.append(f"steps={steps}")
    if memory_size is not None:
        metrics.append(f"memory={memory_size}")

    logger.info(" | ".join(metrics))


def log_model_event(event: str, path: str, **kwargs) -> None:
    """
    Log model-related events (save/load/delete).

    Args:
        event: Event type ('save', 'load', 'overwrite', 'delete')
        path: Model file path
        **kwargs: Additional context
    """
    logger = get_logger('model')

    extra = " | ".join(f"{k}={v}" for k, v in kwargs.items())
    if extra:
        logger.info(f"{event.upper()} | {path} | {extra}")
    else:
        logger.info(f"{event.upper()} | {path}")


def log_worker_event(event: str, **kwargs) -> None:
    """
    Log training worker lifecycle events (start/complete/stop).

    Args:
        event: Event type
        **kwargs: Additional context (e.g., pid, rounds)
    """
    logger = get_logger('worker')

    extra = " ".join(f"{k}={v}" for k, v in kwargs.items())
    logger.info(f"worker {event}" + (f" ({extra})" if extra else ""))
