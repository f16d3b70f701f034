"""
Pseudoscript

Tolerant parsing and incremental analysis for loose, multi-paradigm
pseudocode: any mix of brace, keyword and indentation scoping, symbolic or
natural-language operators, and many synonyms per keyword.
"""

__version__ = "0.1.0"

from .config import AnalysisConfig, ConfigurationError
from .engine import AnalysisEngine, AnalysisResult
from .workspace import DocumentState, Workspace

__all__ = [
    "__version__",
    "AnalysisConfig",
    "ConfigurationError",
    "AnalysisEngine",
    "AnalysisResult",
    "DocumentState",
    "Workspace",
]
