"""
Meta-commands: synthetic commands expanding into fixed primitive batches.
"""

from cbx_terminal.meta.types import (
    MetaCommandKind,
    MetaContext,
    MetaReport,
    SearchMatch,
    SearchReport,
    AnalysisReport,
    ExplanationReport,
)
from cbx_terminal.meta.dispatcher import MetaCommandDispatcher, expand

__all__ = [
    "MetaCommandKind",
    "MetaContext",
    "MetaReport",
    "SearchMatch",
    "SearchReport",
    "AnalysisReport",
    "ExplanationReport",
    "MetaCommandDispatcher",
    "expand",
]
