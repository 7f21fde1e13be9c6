"""
Logging setup for newsdesk.

Console output is colored by level unless LOG_FORMAT=json asks for one JSON
object per line. When a log directory is given, a midnight-rotated
newsdesk.log and an errors.log are written next to it. Pipeline stages report
their in/out counts through log_pipeline_metrics so every run leaves a
comparable trail.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, TextIO

PLAIN_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s'
ERROR_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-28s | %(funcName)s:%(lineno)d | %(message)s'

# Loggers whose level follows the configured one
PIPELINE_LOGGERS = (
    'newsdesk.services.circuit_breaker',
    'newsdesk.services.cache_service',
    'newsdesk.services.source_context',
    'newsdesk.pipeline.orchestrator',
    'newsdesk.pipeline.relevance_engine',
    'newsdesk.pipeline.diversifier',
)
NOISY_LOGGERS = ('aiohttp', 'asyncio', 'urllib3')


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record; stage metrics land under "metrics"."""

    def format(self, record):
        entry = {
            'ts': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
            'where': f"{record.funcName}:{record.lineno}",
        }
        metrics = getattr(record, 'metrics', None)
        if metrics:
            entry['metrics'] = metrics
        source_id = getattr(record, 'source_id', None)
        if source_id:
            entry['source_id'] = source_id
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: '\033[2;37m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[1;31m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelno, '')
        name = record.name.rsplit('.', 1)[-1]
        line = f"{self.formatTime(record, '%H:%M:%S')} {record.levelname[0]} {name:<20} {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return f"{color}{line}{self.RESET}"


def _file_handlers(log_dir: Path, as_json: bool):
    log_dir.mkdir(parents=True, exist_ok=True)

    main_log = logging.handlers.TimedRotatingFileHandler(
        log_dir / "newsdesk.log", when='midnight', backupCount=7, encoding='utf-8'
    )
    main_log.setLevel(logging.DEBUG)
    main_log.setFormatter(JsonLineFormatter() if as_json else logging.Formatter(PLAIN_FORMAT))

    error_log = logging.FileHandler(log_dir / "errors.log", encoding='utf-8')
    error_log.setLevel(logging.ERROR)
    error_log.setFormatter(logging.Formatter(ERROR_FORMAT))
    return [main_log, error_log]


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    enable_file_logging: bool = True,
    enable_structured_logging: bool = False,
    console_stream: Optional[TextIO] = None
) -> None:
    """
    Replace the root handlers with newsdesk's console (and optional file) handlers.

    Args:
        log_level: Level name; unknown names fall back to INFO
        log_dir: Directory for newsdesk.log and errors.log (default ./logs)
        enable_file_logging: Write the rotating file logs
        enable_structured_logging: Emit JSON lines instead of colored text
        console_stream: Console log stream (default stdout); pass stderr when stdout carries data
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    console = logging.StreamHandler(console_stream or sys.stdout)
    console.setLevel(level)
    console.setFormatter(JsonLineFormatter() if enable_structured_logging else ColoredConsoleFormatter())
    root.addHandler(console)

    if enable_file_logging:
        for handler in _file_handlers(Path(log_dir or "logs"), enable_structured_logging):
            root.addHandler(handler)

    configure_pipeline_loggers(level)


def configure_pipeline_loggers(level: int) -> None:
    for name in PIPELINE_LOGGERS:
        logging.getLogger(name).setLevel(level)
    # Per-article matching is chatty at DEBUG
    logging.getLogger('newsdesk.services.keyword_matcher').setLevel(max(level, logging.INFO))
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


class StageTimer:
    """Times a block and logs its outcome; ``elapsed_ms`` is readable afterwards."""

    def __init__(self, label: str, logger: Optional[logging.Logger] = None):
        self.label = label
        self.logger = logger or logging.getLogger(__name__)
        self.elapsed_ms = 0.0
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.debug(f"⏱️ {self.label} started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
        if exc_type is None:
            self.logger.info(f"✅ {self.label} finished in {self.elapsed_ms:.1f}ms")
        else:
            self.logger.error(f"💥 {self.label} failed after {self.elapsed_ms:.1f}ms: {exc_val}")
        return False


def log_pipeline_metrics(
    logger: logging.Logger,
    stage: str,
    input_count: int,
    output_count: int,
    duration_ms: float,
    **extra
) -> dict:
    """Log one stage's in/out counts and return the metrics dict that was attached."""
    metrics = {
        'stage': stage,
        'in': input_count,
        'out': output_count,
        'dropped': max(input_count - output_count, 0),
        'ms': round(duration_ms, 1),
        **extra
    }
    logger.info(
        f"📊 {stage}: {input_count} → {output_count} ({duration_ms:.1f}ms)",
        extra={'metrics': metrics},
    )
    return metrics
