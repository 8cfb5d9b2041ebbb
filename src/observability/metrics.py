"""Prometheus metrics for staking pools.

Tracks operation counts, failures and latency, plus the pool's staked supply,
reward rate, and reward flows.
"""

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    REGISTRY,
)
import time
from functools import wraps


# ============================================================================
# CORE METRICS
# ============================================================================

operations_total = Counter(
    "staking_operations_total",
    "Total number of successful staking operations",
    ["pool", "operation"],
)

operation_failures_total = Counter(
    "staking_operation_failures_total",
    "Total number of rejected staking operations",
    ["pool", "operation", "error_type"],
)

operation_latency = Histogram(
    "staking_operation_latency_seconds",
    "Time to run one settle-then-act operation",
    ["operation"],
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5],
)

# Economic metrics
total_staked = Gauge("staking_total_staked", "Stake tokens held by the pool", ["pool"])

reward_rate = Gauge("staking_reward_rate", "Reward units emitted per second", ["pool"])

rewards_paid_total = Counter(
    "staking_rewards_paid_total", "Total reward units paid out to participants", ["pool"]
)

rewards_funded_total = Counter(
    "staking_rewards_funded_total", "Total reward units funded into the pool", ["pool"]
)


# ============================================================================
# HELPER FUNCTIONS & DECORATORS
# ============================================================================


def track_time(operation: str):
    """
    Decorator to record an operation's latency.

    Example:
        @track_time("stake")
        def stake(self, participant_id, amount, now=None):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                operation_latency.labels(operation=operation).observe(
                    time.perf_counter() - start_time
                )

        return wrapper

    return decorator


# ============================================================================
# METRICS COLLECTOR
# ============================================================================


class MetricsCollector:
    """
    Centralized metrics recording for one staking pool.
    """

    def __init__(self, pool: str):
        self.pool = pool

    def record_operation(self, operation: str):
        """Record a successful operation."""
        operations_total.labels(pool=self.pool, operation=operation).inc()

    def record_failure(self, operation: str, error_type: str):
        """Record a rejected operation."""
        operation_failures_total.labels(
            pool=self.pool, operation=operation, error_type=error_type
        ).inc()

    def set_total_staked(self, amount: int):
        total_staked.labels(pool=self.pool).set(amount)

    def set_reward_rate(self, rate: int):
        reward_rate.labels(pool=self.pool).set(rate)

    def record_reward_paid(self, amount: int):
        rewards_paid_total.labels(pool=self.pool).inc(amount)

    def record_reward_funded(self, amount: int):
        rewards_funded_total.labels(pool=self.pool).inc(amount)

    @staticmethod
    def get_metrics() -> bytes:
        """
        Get metrics in Prometheus format.

        Returns:
            Metrics as bytes in Prometheus exposition format
        """
        return generate_latest(REGISTRY)
