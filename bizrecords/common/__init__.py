"""Common utilities shared across the records layer.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics for remote record operations.

Import pattern:
- from bizrecords.common.config import RecordsConfig
- from bizrecords.common.logging import configure_logging
"""
