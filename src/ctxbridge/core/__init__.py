"""Core infrastructure modules."""

from .global_paths import GlobalPath
from .bus import Bus, BusEvent

__all__ = ["GlobalPath", "Bus", "BusEvent"]

# Config and Log are imported from their own modules to avoid circular imports:
#   from ctxbridge.core.config import ConfigManager
#   from ctxbridge.util.log import Log
