"""Configuration management for the load-testing engine.

This module centralizes environment-driven configuration for the scheduler,
the instrumentation helpers, and the benchmark presets. It builds on
``pydantic_settings.BaseSettings`` so configuration can be provided via
environment variables, ``.env`` files, or defaults.

Highlights
- Strongly‑typed settings with sensible defaults
- Environment variable names match field names (``LT_YIELD_MS`` etc.)
- A small preset‑specific subclass keeps benchmark knobs separate

Usage
- ``settings = LoadTestSettings()``
- Or select dynamically: ``settings = get_config("benchmark")``
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoadTestSettings(BaseSettings):
    """Base settings shared by every engine component.

    Notes
    - Add new shared settings here so presets inherit them.
    - Prefer settings over reading ``os.environ`` directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    lt_env: str = Field(default="local")

    # Logging
    lt_log_level: str = Field(default="INFO")
    lt_log_format: str = Field(default="json")

    # Memory readings: resident set size or tracemalloc traced bytes
    lt_memory_source: Literal["rss", "tracemalloc"] = Field(default="rss")
    lt_memory_sample_interval_ms: int = Field(default=1000, gt=0)

    # Scheduler
    lt_yield_ms: float = Field(default=1.0, ge=0)
    lt_request_method: str = Field(default="GET")
    lt_stress_step_pause_ms: int = Field(default=1000, ge=0)


class BenchmarkSettings(LoadTestSettings):
    """Defaults for the benchmark presets.

    The endpoint preset only lets callers tune concurrency, duration, and
    timeout; ramp‑up and warmup come from here.
    """

    lt_endpoint_concurrency: int = Field(default=10, ge=1)
    lt_endpoint_duration_ms: int = Field(default=30000, gt=0)
    lt_endpoint_timeout_ms: int = Field(default=5000, gt=0)
    lt_endpoint_ramp_up_ms: int = Field(default=5000, ge=0)
    lt_endpoint_warmup_count: int = Field(default=5, ge=0)

    lt_render_iterations: int = Field(default=100, ge=1)
    lt_leak_iterations: int = Field(default=1000, ge=1)
    lt_leak_threshold_percent: float = Field(default=50.0)


def get_config(name: str) -> LoadTestSettings:
    """Get settings for a named component.

    Parameters
    - name: ``load-test`` or ``benchmark``.

    Returns
    - A ``LoadTestSettings`` instance (or subclass) read from the environment.
    """
    config_map = {
        "load-test": LoadTestSettings,
        "benchmark": BenchmarkSettings,
    }

    # Default to the base settings for unknown names.
    config_class = config_map.get(name, LoadTestSettings)
    return config_class()
