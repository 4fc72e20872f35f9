"""
Core module initialization.
Exports configuration.
"""

from order_service.core.config import get_settings, Settings, EnvironmentMode

__all__ = ["get_settings", "Settings", "EnvironmentMode"]
