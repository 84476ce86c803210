"""
CBX Terminal: command execution and safety gating for AI research assistants.

This package decides whether a requested shell command may run, runs
permitted commands with bounded time and output, and renders the results
as bounded text for users and prompts.
"""

__version__ = "0.1.0"
