"""
Core module initialization.
Exports configuration, logging and error utilities.
"""

from orderpay.core.config import get_settings, Settings, EnvironmentMode
from orderpay.core.exceptions import OrderPayError

__all__ = ["get_settings", "Settings", "EnvironmentMode", "OrderPayError"]
