"""
Pydantic models for service configuration.

Configuration is loaded once, validated here, and passed to the service
explicitly; nothing reads it from a module global.
"""

import os
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CommandSettings(BaseModel):
    """Command execution settings."""

    project_root: str = Field(
        default_factory=os.getcwd,
        description="Default working directory for commands",
    )
    default_timeout_ms: int = Field(
        default=30000,
        ge=1,
        description="Default command timeout in milliseconds",
    )
    max_output_bytes: int = Field(
        default=10000,
        ge=1,
        description="Maximum bytes kept per output stream before truncation",
    )
    continue_on_error: bool = Field(
        default=False,
        description="Default batch policy after a nonzero exit",
    )


class DenyRule(BaseModel):
    """A deny pattern; any match blocks the command."""

    pattern: str = Field(min_length=1, description="Regular expression")
    message: Optional[str] = Field(
        default=None,
        description="Reason reported when the pattern matches",
    )
    case_sensitive: bool = False


class SecuritySettings(BaseModel):
    """Command policy rules."""

    deny_patterns: list[DenyRule] = Field(
        default_factory=list,
        description="Patterns checked first; a match always blocks",
    )
    allow_prefixes: list[str] = Field(
        default_factory=list,
        description="Command names or prefixes that may run",
    )


class MetaSettings(BaseModel):
    """Meta-command settings."""

    search_path: str = Field(default=".", description="Path searched by ai-search")
    explain_max_tokens: int = Field(
        default=500,
        ge=1,
        description="Token budget for ai-explain",
    )


class TextGenSettings(BaseModel):
    """Text generation backend for ai-explain."""

    api_url: Optional[str] = Field(
        default=None,
        description="Messages endpoint URL; unset disables ai-explain",
    )
    model: Optional[str] = None
    api_key_env: str = Field(
        default="ANTHROPIC_API_KEY",
        description="Environment variable holding the API key",
    )
    api_version: str = "2023-06-01"
    timeout_seconds: float = Field(default=60.0, gt=0)


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )
    log_file: Optional[str] = None


class TerminalConfig(BaseModel):
    """
    Main configuration container for the terminal service.

    Loaded from YAML files and environment variables, then handed to
    create_service() which builds the immutable policy from it.
    """

    command: CommandSettings = Field(default_factory=CommandSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    meta: MetaSettings = Field(default_factory=MetaSettings)
    textgen: TextGenSettings = Field(default_factory=TextGenSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("security")
    @classmethod
    def validate_allow_prefixes(cls, v: SecuritySettings) -> SecuritySettings:
        """Drop blank allow-prefixes; a blank prefix would allow everything."""
        v.allow_prefixes = [p for p in v.allow_prefixes if p.strip()]
        return v

    # Allow extra fields to be ignored (forward compatibility)
    model_config = ConfigDict(extra="ignore")
