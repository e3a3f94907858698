"""Core configuration and shared error types."""

from app.core.config import get_settings, setup_logging, Settings, EnvironmentMode

__all__ = ["get_settings", "setup_logging", "Settings", "EnvironmentMode"]
