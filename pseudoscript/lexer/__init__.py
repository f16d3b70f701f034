"""
Pseudoscript Lexer Package

Tokenizes loose multi-paradigm pseudocode into a covering token stream.

Key Features:
- Keyword registry with synonym groups and multi-word surfaces ("end if")
- Natural-language operators ("greater than") normalised to operator kinds
- Every common comment syntax recognised at once
- Total: unterminated strings/comments become error-flagged tokens
"""

from .tokens import (
    Token, TokenKind, OperatorKind, SourceLocation, SourceSpan, LineIndex,
)
from .keywords import (
    Concept, KeywordCategory, KeywordGroup, KeywordRegistry,
    build_registry, default_registry,
)
from .lexer import Lexer, tokenize
from .errors import Finding, FindingOrigin, Severity, RegistryError

__all__ = [
    "Lexer",
    "tokenize",
    "Token",
    "TokenKind",
    "OperatorKind",
    "SourceLocation",
    "SourceSpan",
    "LineIndex",
    "Concept",
    "KeywordCategory",
    "KeywordGroup",
    "KeywordRegistry",
    "build_registry",
    "default_registry",
    "Finding",
    "FindingOrigin",
    "Severity",
    "RegistryError",
]
