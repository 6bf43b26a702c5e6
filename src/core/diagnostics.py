import functools
import time
from datetime import datetime

from loguru import logger

# Track performance metrics
metrics = {
    "db_operations": 0,
    "db_errors": 0,
    "deliveries": 0,
    "last_db_operation_time": None,
}

SLOW_OPERATION_SECONDS = 0.5


def reset_metrics():
    """Reset all counters (used by tests and on startup)."""
    metrics["db_operations"] = 0
    metrics["db_errors"] = 0
    metrics["deliveries"] = 0
    metrics["last_db_operation_time"] = None


def snapshot_metrics() -> dict:
    """Return a copy of the counters that is safe to serialize."""
    return dict(metrics)


def track_db(func):
    """Decorator to count and time repository calls."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        metrics["db_operations"] += 1
        metrics["last_db_operation_time"] = datetime.now().isoformat()
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            metrics["db_errors"] += 1
            logger.error(f"DB operation {func.__qualname__} failed: {e}")
            raise
        finally:
            elapsed = time.perf_counter() - start
            if elapsed > SLOW_OPERATION_SECONDS:
                logger.warning(f"Slow DB operation {func.__qualname__}: {elapsed:.3f}s")
    return wrapper


def track_delivery():
    """Count one subscription delivery."""
    metrics["deliveries"] += 1
