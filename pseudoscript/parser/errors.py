"""
Error handling for the pseudoscript parser.

Structural problems are reported as findings and never abort parsing.
ParseError exists only inside the parser: it unwinds out of an expression
that could not start, and is caught at expression or statement level where
it turns into an Unknown node plus a finding.
"""

from typing import List, Optional

from ..lexer.errors import Finding, FindingOrigin, Severity
from ..lexer.keywords import BRANCH_CONCEPTS, CLOSER_FAMILIES, STATEMENT_CONCEPTS
from ..lexer.tokens import SourceSpan, Token, TokenKind


class ParseError(Exception):
    """
    Raised inside the parser when an expression cannot be started.

    Carries the finding that will be recorded once the error is caught.
    """

    def __init__(self, finding: Finding, token: Optional[Token] = None):
        super().__init__(finding.message)
        self.finding = finding
        self.token = token

    def __str__(self) -> str:
        return str(self.finding)


class SyntaxErrorRecovery:
    """
    Utilities for error recovery in the parser.

    A statement boundary is a construct-opening keyword, a closing marker
    (closer keyword or ``}``), a ``;`` or the end of the line.
    """

    BOUNDARY_CONCEPTS = STATEMENT_CONCEPTS | frozenset(CLOSER_FAMILIES) | BRANCH_CONCEPTS

    @staticmethod
    def is_statement_boundary(token: Token) -> bool:
        if token.kind == TokenKind.NEWLINE:
            return True
        if token.kind == TokenKind.KEYWORD:
            return token.concept in SyntaxErrorRecovery.BOUNDARY_CONCEPTS
        return token.is_punct(";", "}")

    @staticmethod
    def starts_new_line(tokens: List[Token], pos: int) -> bool:
        return pos > 0 and tokens[pos].line != tokens[pos - 1].span.end.line

    @staticmethod
    def synchronize_to_statement_boundary(tokens: List[Token], current_pos: int) -> int:
        """
        Find the next statement boundary after ``current_pos``.

        ``tokens`` holds significant tokens only, so the end of a line shows
        up as a change of line between neighbours. The token at
        ``current_pos`` is always skipped so recovery makes progress.
        Returns the position to resume parsing from.
        """
        current_pos += 1
        while current_pos < len(tokens):
            if (SyntaxErrorRecovery.starts_new_line(tokens, current_pos)
                    or SyntaxErrorRecovery.is_statement_boundary(tokens[current_pos])):
                return current_pos
            current_pos += 1
        return current_pos


# Parser finding codes
PARSER_ERROR_CODES = {
    "P001": "Unexpected token",
    "P002": "Construct not closed",
    "P003": "Unmatched closing marker",
    "P004": "Expected token missing",
    "P005": "Missing expression",
    "P006": "Nesting too deep",
}


def _finding(code: str, template: str, span: SourceSpan, **args) -> Finding:
    return Finding(
        origin=FindingOrigin.PARSER,
        code=code,
        template=template,
        span=span,
        severity=Severity.WARNING,
        args=args,
    )


def describe_token(token: Optional[Token]) -> str:
    """Short human-readable name for a token in messages."""
    if token is None:
        return "end of input"
    if token.kind == TokenKind.NEWLINE:
        return "end of line"
    return f"'{token.lexeme}'"


def create_unexpected_token_finding(found: Token, context: str) -> Finding:
    """Create a finding for a token that does not fit where it appears."""
    return _finding(
        "P001",
        "Unexpected {found} in {context}",
        found.span,
        found=describe_token(found),
        context=context,
    )


def create_unclosed_construct_finding(construct: str, expected: str, span: SourceSpan) -> Finding:
    """Create a finding for a construct closed implicitly at end of block or file."""
    return _finding(
        "P002",
        "{construct} is never closed; expected {expected}",
        span,
        construct=construct,
        expected=expected,
    )


def create_unmatched_closer_finding(closer: Token) -> Finding:
    """Create a finding for a closing marker with nothing open to close."""
    return _finding(
        "P003",
        "{closer} does not close any open block",
        closer.span,
        closer=describe_token(closer),
    )


def create_missing_token_finding(expected: str, found: Optional[Token], span: SourceSpan) -> Finding:
    """Create a finding for an expected token that is absent."""
    return _finding(
        "P004",
        "Expected {expected}, found {found}",
        span,
        expected=expected,
        found=describe_token(found),
    )


def create_missing_expression_finding(context: str, found: Optional[Token], span: SourceSpan) -> Finding:
    """Create a finding for an expression that is absent or cannot start."""
    return _finding(
        "P005",
        "Expected an expression {context}, found {found}",
        span,
        context=context,
        found=describe_token(found),
    )


def create_nesting_too_deep_finding(found: Token) -> Finding:
    """Create a finding for a construct nested past the parser's depth limit."""
    return _finding(
        "P006",
        "{found} is nested too deeply to analyse",
        found.span,
        found=describe_token(found),
    )
