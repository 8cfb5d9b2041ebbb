"""
Staking pool configuration from environment variables.

    STAKING_ADMIN_ID          administrator identity (default "admin")
    STAKING_POOL_NAME         pool name used in metrics and events (default "default")
    STAKING_DB_PATH           custody SQLite path (default ":memory:")
    STAKING_INITIAL_DURATION  round length in seconds set at creation (default 0)
    STAKING_TRACING           'true' to initialize OpenTelemetry tracing
    STAKING_OTLP_ENDPOINT     OTLP collector endpoint
    STAKING_TRACE_CONSOLE     'true' to also export spans to the console
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "false").lower() == "true"


def _env_uint(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    return value


@dataclass
class StakingConfig:
    admin_id: str = "admin"
    pool_name: str = "default"
    db_path: str = ":memory:"
    initial_duration: int = 0
    tracing_enabled: bool = False
    otlp_endpoint: Optional[str] = None
    trace_console: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "StakingConfig":
        """
        Build a config from environment variables.

        Args:
            env: Mapping to read from (defaults to os.environ)

        Raises:
            ValueError: If a numeric variable is not a non-negative integer
        """
        if env is None:
            env = os.environ
        return cls(
            admin_id=env.get("STAKING_ADMIN_ID", "admin"),
            pool_name=env.get("STAKING_POOL_NAME", "default"),
            db_path=env.get("STAKING_DB_PATH", ":memory:"),
            initial_duration=_env_uint(env, "STAKING_INITIAL_DURATION", 0),
            tracing_enabled=_env_flag(env, "STAKING_TRACING"),
            otlp_endpoint=env.get("STAKING_OTLP_ENDPOINT") or None,
            trace_console=_env_flag(env, "STAKING_TRACE_CONSOLE"),
        )
