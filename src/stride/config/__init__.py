"""Configuration loading and validation."""

from stride.config.loader import load_config
from stride.config.schema import (
    APIConfig,
    AuthConfig,
    ChatConfig,
    DatabaseConfig,
    LoggingConfig,
    PaymentsConfig,
    PlanConfig,
    StorageConfig,
    StrideConfig,
)

__all__ = [
    "APIConfig",
    "AuthConfig",
    "ChatConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "PaymentsConfig",
    "PlanConfig",
    "StorageConfig",
    "StrideConfig",
    "load_config",
]
