# Observability Module - Structured Events for Model Selection and Fallback
# JSON logs that tell operators which backend served an analysis, and why the others did not

import json
import logging
import time
import traceback
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class LogLevel(str, Enum):
    """Log levels for structured logging."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class ModelAttemptTrace:
    """Structured trace data for one step of the fallback chain."""
    user_id: str
    model: str
    step: int
    success: bool
    latency_ms: int | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    error: str | None = None
    error_category: str | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


class StructuredLogger:
    """
    Structured logging for analysis observability.

    Outputs JSON-formatted logs that can be parsed by log aggregation
    systems like ELK, Datadog, or CloudWatch.
    """

    def __init__(self, name: str, level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # Add JSON handler if not already present
        if not any(isinstance(h, logging.StreamHandler) for h in self.logger.handlers):
            handler = logging.StreamHandler()
            handler.setFormatter(JsonFormatter())
            self.logger.addHandler(handler)

    def _log(self, level: LogLevel, message: str, **kwargs):
        """Internal log method with structured data."""
        log_data = {
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
            **kwargs
        }

        log_method = getattr(self.logger, level.value.lower())
        log_method(json.dumps(log_data, default=str))

    def debug(self, message: str, **kwargs):
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(LogLevel.CRITICAL, message, **kwargs)

    def log_model_selected(self, user_id: str, selection: dict[str, Any]):
        """Log the selector's decision before the first attempt."""
        self.info("MODEL_SELECTED", user_id=user_id, **selection)

    def log_model_attempt(self, trace: ModelAttemptTrace):
        """Log one attempt of the fallback chain."""
        log = self.info if trace.success else self.warning
        log(
            "MODEL_ATTEMPT",
            trace=asdict(trace),
            model=trace.model,
            step=trace.step,
            success=trace.success
        )

    def log_all_models_failed(self, user_id: str, detail: dict[str, Any]):
        """Log chain exhaustion with the detail users never see."""
        self.error("ALL_MODELS_FAILED", user_id=user_id, **detail)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        try:
            # Try to parse the message as JSON
            log_data = json.loads(record.getMessage())
            log_data["level"] = record.levelname
            log_data["logger"] = record.name
            return json.dumps(log_data)
        except json.JSONDecodeError:
            # Fall back to standard formatting
            return json.dumps({
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                "timestamp": datetime.now(UTC).isoformat()
            })


class AnalysisTracer:
    """Context manager based tracing for pipeline operations."""

    def __init__(self, service_name: str = "transparai"):
        self.service_name = service_name
        self.logger = StructuredLogger(f"{service_name}.tracer")
        self._trace_counter = 0

    def _generate_trace_id(self) -> str:
        """Generate a unique trace ID."""
        self._trace_counter += 1
        timestamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
        return f"{self.service_name}-{timestamp}-{self._trace_counter:06d}"

    @contextmanager
    def trace_operation(self, operation_name: str, **metadata):
        """
        Context manager for tracing arbitrary operations.

        Usage:
            with tracer.trace_operation("analysis", user_id=user.id):
                outcome = pipeline.process_analysis(user, text, source)
        """
        trace_id = self._generate_trace_id()
        start_time = time.time()

        self.logger.info(
            f"OPERATION_START: {operation_name}",
            trace_id=trace_id,
            operation=operation_name,
            **metadata
        )

        try:
            yield trace_id

            duration_ms = (time.time() - start_time) * 1000
            self.logger.info(
                f"OPERATION_END: {operation_name}",
                trace_id=trace_id,
                operation=operation_name,
                duration_ms=duration_ms,
                success=True,
                **metadata
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self.logger.error(
                f"OPERATION_FAILED: {operation_name}",
                trace_id=trace_id,
                operation=operation_name,
                duration_ms=duration_ms,
                success=False,
                error=str(e),
                traceback=traceback.format_exc(),
                **metadata
            )
            raise


# Global tracer instance
tracer = AnalysisTracer()

# Structured event logger shared by the fallback orchestrator
events = StructuredLogger("transparai.ai_events")
