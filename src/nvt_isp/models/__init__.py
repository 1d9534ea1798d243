"""Data models for configuration bytes and device state."""

from .config import CONFIG_FIELDS, ConfigBytes, ConfigChange, merge, needs_write
from .device import SUPPORTED_DEVICES, SessionState
