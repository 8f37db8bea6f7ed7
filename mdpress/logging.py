"""
Structured logging and observability without external dependencies
"""
import logging
import json
import time
from typing import Dict, Any, Optional
from datetime import datetime, timezone
from functools import wraps
from contextvars import ContextVar
import asyncio

from .config import get_settings

# Context variable for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data['request_id'] = request_id

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter that appends keyword fields"""

    def __init__(self):
        super().__init__('[%(levelname)s] %(asctime)s %(name)s - %(message)s')

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = dict(getattr(record, 'extra_fields', {}) or {})
        request_id = request_id_var.get()
        if request_id:
            fields['request_id'] = request_id
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


class AppLogger:
    """Custom logger with structured logging support"""

    def __init__(self, name: str, level: str = "INFO", fmt: str = "json"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level, logging.INFO))
        self.logger.propagate = False

        # Remove existing handlers
        self.logger.handlers = []

        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter() if fmt == "json" else TextFormatter())
        self.logger.addHandler(handler)

    def _log(self, level: str, message: str, exc_info: bool = False, **kwargs):
        """Internal logging method with extra fields"""
        extra = {'extra_fields': kwargs}
        getattr(self.logger, level)(message, extra=extra, exc_info=exc_info)

    def info(self, message: str, **kwargs):
        self._log('info', message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs):
        self._log('error', message, exc_info=exc_info, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log('warning', message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log('debug', message, **kwargs)


_settings = get_settings()

# Global logger instance
logger = AppLogger('mdpress', level=_settings.log_level, fmt=_settings.log_format)


class Metrics:
    """Simple in-memory metrics collection"""

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.histograms: Dict[str, list] = {}
        self.gauges: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def increment(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
        """Increment a counter"""
        key = self._make_key(name, labels)
        async with self._lock:
            self.counters[key] = self.counters.get(key, 0) + value

    async def observe(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Record a histogram observation"""
        key = self._make_key(name, labels)
        async with self._lock:
            if key not in self.histograms:
                self.histograms[key] = []
            self.histograms[key].append(value)
            # Keep only last 1000 observations
            if len(self.histograms[key]) > 1000:
                self.histograms[key] = self.histograms[key][-1000:]

    async def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Set a gauge value"""
        key = self._make_key(name, labels)
        async with self._lock:
            self.gauges[key] = value

    def _make_key(self, name: str, labels: Optional[Dict[str, str]] = None) -> str:
        """Create metric key with labels"""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    async def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary"""
        async with self._lock:
            summary = {
                'counters': dict(self.counters),
                'gauges': dict(self.gauges),
                'histograms': {}
            }

            for key, values in self.histograms.items():
                if values:
                    ordered = sorted(values)
                    summary['histograms'][key] = {
                        'count': len(values),
                        'min': ordered[0],
                        'max': ordered[-1],
                        'avg': sum(values) / len(values),
                        'p50': ordered[len(ordered) // 2],
                        'p99': ordered[int(len(ordered) * 0.99)]
                    }

            return summary

    async def reset(self):
        """Drop every recorded value"""
        async with self._lock:
            self.counters.clear()
            self.histograms.clear()
            self.gauges.clear()


# Global metrics instance
metrics = Metrics()


def track_performance(metric_name: str):
    """Decorator to track coroutine performance"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration = time.perf_counter() - start_time
                await metrics.increment(f"{metric_name}_errors_total")
                logger.debug("Operation failed",
                             function=func.__name__,
                             duration=duration,
                             metric=metric_name,
                             error=str(e))
                raise
            duration = time.perf_counter() - start_time
            await metrics.observe(f"{metric_name}_duration_seconds", duration)
            await metrics.increment(f"{metric_name}_total")
            return result

        return wrapper

    return decorator


UNMATCHED_ROUTE = "unmatched"


class RequestTracker:
    """Track request lifecycle and performance"""

    def __init__(self):
        self.active_requests = 0
        self._lock = asyncio.Lock()

    async def start_request(self, request_id: str, path: str, method: str):
        """Start tracking a request"""
        async with self._lock:
            self.active_requests += 1

        await metrics.set_gauge("active_requests", self.active_requests)

        logger.debug("Request started",
                     request_id=request_id,
                     path=path,
                     method=method,
                     active_requests=self.active_requests)

    async def end_request(self, request_id: str, path: str, method: str,
                          status_code: int, duration: float, route: str = UNMATCHED_ROUTE):
        """
        End tracking a request.

        Counters are labelled with the route template, never the raw path.
        """
        async with self._lock:
            self.active_requests -= 1

        await metrics.set_gauge("active_requests", self.active_requests)
        await metrics.increment("http_requests_total", labels={
            "method": method,
            "route": route
        })
        await metrics.observe("http_request_duration_seconds", duration, labels={
            "method": method,
            "status": str(status_code)
        })

        logger.info("Request completed",
                    request_id=request_id,
                    path=path,
                    method=method,
                    status_code=status_code,
                    duration=duration,
                    active_requests=self.active_requests)


# Global request tracker
request_tracker = RequestTracker()
