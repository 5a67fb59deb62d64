"""Logging configuration for the realtime monitor."""
import logging
import sys
from sessionguard.monitor.config import monitor_settings

logger = logging.getLogger("sessionguard.monitor")
logger.setLevel(logging.DEBUG if monitor_settings.environment == "development" else logging.INFO)

handler = logging.StreamHandler(sys.stdout)
handler.setLevel(logging.DEBUG if monitor_settings.environment == "development" else logging.INFO)

formatter = logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
handler.setFormatter(formatter)

if not logger.handlers:
    logger.addHandler(handler)

logger.propagate = False

__all__ = ["logger"]
