"""
Pytest configuration and shared fixtures.
"""

import sys
from pathlib import Path

import pytest
import yaml


# Add app directory to path
APP_DIR = Path(__file__).parent.parent / "app"
sys.path.insert(0, str(APP_DIR))

DEFAULTS_DIR = APP_DIR / "cbx_terminal" / "config" / "defaults"


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test"
    )


@pytest.fixture
def security_config() -> dict:
    """The shipped default policy as a plain dict."""
    with open(DEFAULTS_DIR / "security.yaml") as f:
        return yaml.safe_load(f)["security"]


@pytest.fixture
def policy(security_config):
    """CommandPolicy built from the default rules."""
    from cbx_terminal.executor import create_policy

    return create_policy(security_config)


@pytest.fixture
def runner(policy, tmp_path):
    """CommandRunner rooted in a temporary directory."""
    from cbx_terminal.executor import CommandRunner

    return CommandRunner(
        policy=policy,
        project_root=str(tmp_path),
        default_timeout_ms=10000,
        max_output_bytes=10000,
    )


@pytest.fixture
def terminal_config(tmp_path, security_config):
    """TerminalConfig with default policy rooted in a temporary directory."""
    from cbx_terminal.config import TerminalConfig

    return TerminalConfig.model_validate(
        {
            "command": {"project_root": str(tmp_path), "default_timeout_ms": 10000},
            "security": security_config,
        }
    )
