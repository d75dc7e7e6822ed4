"""
Remote build-log sources.
"""

from .appendlog import AppendBlobReader
from .base import AppendLogSource, Completion, LogChunk

__all__ = [
    "AppendBlobReader",
    "AppendLogSource",
    "Completion",
    "LogChunk",
]
