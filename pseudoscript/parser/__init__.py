"""
Pseudoscript Parser Package

Builds an index-based syntax tree from the token stream, whatever block
convention the author used.

Key Features:
- Scope-style detection (braces, closing keywords, indentation, mixed)
- Per-construct body style with the file style as tie-break
- Pratt expression parsing over canonical operator kinds
- Tolerant recovery: Unknown nodes and findings instead of exceptions
"""

from .ast_nodes import ASTNode, ASTNodeType, BlockStyle, SyntaxTree, json_value
from .errors import ParseError, SyntaxErrorRecovery, PARSER_ERROR_CODES
from .parser import Parser, Precedence, is_statement_start, parse_string
from .scope_style import (
    BlockScope, ScopeReport, ScopeStyle, ScopeStyleDetector, source_lines,
)

__all__ = [
    "Parser",
    "Precedence",
    "parse_string",
    "is_statement_start",
    "ASTNode",
    "ASTNodeType",
    "BlockStyle",
    "SyntaxTree",
    "json_value",
    "ParseError",
    "SyntaxErrorRecovery",
    "PARSER_ERROR_CODES",
    "BlockScope",
    "ScopeReport",
    "ScopeStyle",
    "ScopeStyleDetector",
    "source_lines",
]
