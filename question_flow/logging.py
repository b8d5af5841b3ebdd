"""Central logging configuration for the Question Flow engine."""
from __future__ import annotations

import json
import os
import sys
import time
from contextvars import ContextVar
from functools import wraps
from typing import Any, Dict

from loguru import logger
from prometheus_client import Counter, Histogram, start_http_server

# Context variable for trace id so lower layers can attach it
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)


class JsonSink:
    """Loguru sink that outputs each record as a JSON line."""

    def __call__(self, message):  # type: ignore[override]
        record = message.record
        log_obj: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name,
            "logger": record["name"],
            "message": record["message"],
            **record["extra"],
        }
        # Include traceId if present in context
        trace_id = trace_id_var.get()
        if trace_id:
            log_obj.setdefault("traceId", trace_id)
        sys.stdout.write(json.dumps(log_obj, default=str) + "\n")


_configured = False


def configure_logging():
    """Apply JSON logging configuration. Safe to call multiple times."""

    global _configured
    if _configured:
        return  # Already configured
    _configured = True
    logger.remove()
    logger.add(JsonSink(), level=os.getenv("LOG_LEVEL", "INFO"))

    # Prometheus exporter on METRICS_PORT, opt-in
    if os.getenv("ENABLE_METRICS", "false").lower() == "true":
        port = int(os.getenv("METRICS_PORT", "8001"))
        start_http_server(port)
        logger.info("Metrics exporter listening on port {}", port)


# Prometheus metrics
FLOW_REQUESTS_TOTAL = Counter("flow_requests_total", "Total next-step invocations")
FLOW_REQUEST_ERRORS = Counter("flow_request_errors_total", "Total next-step invocation errors")
FLOW_REQUEST_DURATION = Histogram("flow_request_duration_seconds", "Next-step call duration")
FLOW_EDITS_TOTAL = Counter("flow_edits_total", "Flow-changing edits detected")
FLOW_PRUNED_ANSWERS = Counter("flow_pruned_answers_total", "Saved answers discarded by pruning")

# Convenience decorator for timing

def timed(name: str):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                duration = (time.perf_counter() - start) * 1000
                logger.debug("perf| {} | {:.2f} ms", name, duration)
        return wrapper
    return decorator
