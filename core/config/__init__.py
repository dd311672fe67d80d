# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 14 SEP 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the workflow engine.
"""

from core.config.defaults import (
    EngineDefaults,
    TrackingDefaults,
    ChannelDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "EngineDefaults",
    "TrackingDefaults",
    "ChannelDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
