"""
Pseudoscript Analyzer Package

Editor-facing analysis on top of the parser.

Key Features:
- Fixed severity table: only unterminated strings and comments are errors
- Sorted, de-duplicated diagnostics per document version
- Keyword, snippet and scope-chain variable completion
"""

from .diagnostics import Diagnostic, SEVERITY_TABLE, classify, severity_for
from .snippets import Snippet, SnippetLibrary, SnippetLibraryError, default_library
from .completion import CompletionItem, CompletionKind, CompletionProvider, visible_names

__all__ = [
    "Diagnostic",
    "SEVERITY_TABLE",
    "classify",
    "severity_for",
    "Snippet",
    "SnippetLibrary",
    "SnippetLibraryError",
    "default_library",
    "CompletionItem",
    "CompletionKind",
    "CompletionProvider",
    "visible_names",
]
