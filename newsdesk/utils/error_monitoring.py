import logging
import json
import asyncio
from typing import Dict, Any, Optional, Deque
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from collections import defaultdict, deque

import aiohttp


class ErrorCategory(Enum):
    """How a failure is treated by the pipeline"""
    TRANSIENT = "transient"                  # retried, then counted against the breaker
    MISCONFIGURATION = "misconfiguration"    # source disabled for the run
    MALFORMED_PAYLOAD = "malformed_payload"  # fetch failure, empty result
    DATA_QUALITY = "data_quality"            # fail-open defaults
    CONFIGURATION = "configuration"          # fatal at startup


class ConfigurationError(Exception):
    """Engine or source configuration is missing or invalid. Fatal at startup."""
    pass


class SourceFetchError(Exception):
    """A source request failed. `status` holds the HTTP status when there was one."""

    def __init__(self, message: str, status: Optional[int] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after


class MalformedPayloadError(SourceFetchError):
    """Upstream answered but the feed or JSON body could not be parsed."""
    pass


class CircuitOpenError(Exception):
    """Raised internally when the breaker rejects a request before it is made."""
    pass


@dataclass
class ErrorContext:
    """Context for an error occurrence"""
    error_type: str
    error_message: str
    timestamp: datetime
    source_id: str
    operation: str
    category: str
    status: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class ErrorMonitor:
    """
    Records per-source failures and classifies them.

    Nothing here raises: the monitor observes errors that were already
    contained at the source boundary so the run report can explain them.
    """

    def __init__(self, history_size: int = 100) -> None:
        self.error_history: Deque[ErrorContext] = deque(maxlen=history_size)
        self.category_counts: Dict[str, int] = defaultdict(int)
        self.source_counts: Dict[str, int] = defaultdict(int)
        # Survives history eviction
        self.last_error: Dict[str, ErrorContext] = {}
        self.logger = logging.getLogger(__name__)

    def classify(self, error: BaseException) -> ErrorCategory:
        if isinstance(error, ConfigurationError):
            return ErrorCategory.CONFIGURATION
        if isinstance(error, MalformedPayloadError):
            return ErrorCategory.MALFORMED_PAYLOAD

        status = getattr(error, 'status', None)
        if status is not None:
            if status in (401, 403):
                return ErrorCategory.MISCONFIGURATION
            if status == 404:
                return ErrorCategory.MISCONFIGURATION
            return ErrorCategory.TRANSIENT

        if isinstance(error, (asyncio.TimeoutError, aiohttp.ClientError, ConnectionError)):
            return ErrorCategory.TRANSIENT
        if isinstance(error, (ValueError, TypeError)):
            return ErrorCategory.DATA_QUALITY
        return ErrorCategory.TRANSIENT

    def record(
        self,
        error: BaseException,
        source_id: str,
        operation: str,
        context: Optional[Dict[str, Any]] = None
    ) -> ErrorContext:
        category = self.classify(error)
        error_context = ErrorContext(
            error_type=type(error).__name__,
            error_message=str(error) or type(error).__name__,
            timestamp=datetime.now(),
            source_id=source_id,
            operation=operation,
            category=category.value,
            status=getattr(error, 'status', None),
            metadata=context or {},
        )

        self.error_history.append(error_context)
        self.category_counts[category.value] += 1
        self.source_counts[source_id] += 1
        self.last_error[source_id] = error_context

        # Structured log line for the error stream
        self.logger.error(json.dumps({
            'event': 'source_error',
            'source': source_id,
            'operation': operation,
            'category': category.value,
            'error_type': error_context.error_type,
            'error_message': error_context.error_message,
            'status': error_context.status,
            'timestamp': error_context.timestamp.isoformat(),
        }))
        return error_context

    def errors_for(self, source_id: str) -> list:
        return [e for e in self.error_history if e.source_id == source_id]

    def summary(self) -> Dict[str, Any]:
        recent = list(self.error_history)[-10:]
        return {
            'total_errors': sum(self.category_counts.values()),
            'by_category': dict(self.category_counts),
            'by_source': dict(self.source_counts),
            'recent': [
                {**asdict(e), 'timestamp': e.timestamp.isoformat()}
                for e in recent
            ],
        }

    def reset(self) -> None:
        self.error_history.clear()
        self.category_counts.clear()
        self.source_counts.clear()
        self.last_error.clear()
