"""
Configuration system for the terminal service.

Exports:
    TerminalConfig: Main configuration container
    load_config: Load configuration from YAML/env
"""

from cbx_terminal.config.models import (
    TerminalConfig,
    CommandSettings,
    DenyRule,
    SecuritySettings,
    MetaSettings,
    TextGenSettings,
    LoggingSettings,
)
from cbx_terminal.config.loader import load_config

__all__ = [
    "TerminalConfig",
    "CommandSettings",
    "DenyRule",
    "SecuritySettings",
    "MetaSettings",
    "TextGenSettings",
    "LoggingSettings",
    "load_config",
]
