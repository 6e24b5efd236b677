"""AI operation audit logging and statistics."""

from cycle_wellness.monitoring.ai_logging import (
    AIMonitor,
    OperationTimeout,
    OperationTimer,
    get_ai_stats,
    with_timeout,
)

__all__ = [
    "AIMonitor",
    "OperationTimeout",
    "OperationTimer",
    "get_ai_stats",
    "with_timeout",
]
