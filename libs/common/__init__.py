"""Common utilities shared across the engine.

Includes:
- ``config``: pydantic-settings configuration read from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus export of load-test activity.

Import pattern:
- from libs.common.config import LoadTestSettings
- from libs.common.logging import configure_logging
"""
