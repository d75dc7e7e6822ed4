# acrbuild/__init__.py

"""
Run container image builds on Azure Container Registry from a CI job:
package the build context, start the build, and stream its log.
"""

__version__ = "0.1.0"

from .archive import ArchiveBuilder, CompletedArchive, package_context
from .cancellation import CancellationToken
from .ignore import Decision, IgnoreRule, compile_rule, compile_rules, decide
from .orchestrator import BuildLogOrchestrator, BuildSession
from .pipeline import BuildOutcome, BuildPipeline
from .registry import AzureContainerRegistry, BuildRequest, RegistryClient
from .tailer import EndOfStream, LogTailer, TerminalState

__all__ = [
    "ArchiveBuilder",
    "CompletedArchive",
    "package_context",
    "CancellationToken",
    "Decision",
    "IgnoreRule",
    "compile_rule",
    "compile_rules",
    "decide",
    "BuildLogOrchestrator",
    "BuildSession",
    "BuildOutcome",
    "BuildPipeline",
    "AzureContainerRegistry",
    "BuildRequest",
    "RegistryClient",
    "EndOfStream",
    "LogTailer",
    "TerminalState",
]
