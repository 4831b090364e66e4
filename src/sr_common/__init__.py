"""
sr-common: Shared library for the speaker resolution engine.

Provides common data models, configuration management, structured
logging and Prometheus metrics used by the resolution components.
"""

from sr_common.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
