"""
Wrappers for external bioinformatics tools.

Provides Python interfaces to samtools, Kraken2 and Deacon.
"""

from micrite.external.base import (
    ExternalTool,
    ToolExecutionError,
    ToolNotFoundError,
    ToolResult,
    ToolTimeoutError,
)
from micrite.external.deacon import Deacon
from micrite.external.kraken import Kraken2, KrakenOutputPaths, KrakenReport
from micrite.external.samtools import Samtools

__all__ = [
    "Deacon",
    "ExternalTool",
    "Kraken2",
    "KrakenOutputPaths",
    "KrakenReport",
    "Samtools",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolResult",
    "ToolTimeoutError",
]
