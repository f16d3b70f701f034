"""
Findings and error types for the pseudoscript tokenizer.

A Finding is a raw observation made by the tokenizer or the parser before
severity classification. Findings are collected, never raised; exceptions
in this module are reserved for startup configuration faults.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .tokens import SourceSpan


class Severity(Enum):
    """Diagnostic severities published to editors."""
    WARNING = "warning"
    ERROR = "error"


class FindingOrigin(Enum):
    """Pipeline stage that produced a finding."""
    TOKENIZER = "tokenizer"
    PARSER = "parser"


@dataclass(frozen=True)
class Finding:
    """
    A tokenizer or parser observation prior to severity assignment.

    ``template`` is formatted with ``args`` to produce the message, so the
    same code always renders the same wording.
    """
    origin: FindingOrigin
    code: str
    template: str
    span: SourceSpan
    severity: Severity = Severity.WARNING
    args: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        try:
            return self.template.format(**self.args)
        except (KeyError, IndexError):
            return self.template

    def __str__(self) -> str:
        return f"{self.severity.value.upper()} {self.code}: {self.message} at {self.span}"


class RegistryError(Exception):
    """Raised when keyword groups violate the registry invariants at startup."""

    def __init__(self, message: str, concept: Optional[str] = None, surface: Optional[str] = None):
        super().__init__(message)
        self.concept = concept
        self.surface = surface


# Tokenizer finding codes
LEXER_ERROR_CODES = {
    "L001": "Unterminated string literal",
    "L002": "Unterminated block comment",
    "L003": "Unrecognized character",
}


def create_unterminated_string_finding(quote: str, span: SourceSpan) -> Finding:
    """Create the fatal finding for a string that never closes."""
    return Finding(
        origin=FindingOrigin.TOKENIZER,
        code="L001",
        template="Unterminated string literal: missing closing {quote}",
        span=span,
        severity=Severity.ERROR,
        args={"quote": quote},
    )


def create_unterminated_comment_finding(opener: str, closer: str, span: SourceSpan) -> Finding:
    """Create the fatal finding for a block comment that never closes."""
    return Finding(
        origin=FindingOrigin.TOKENIZER,
        code="L002",
        template="Unterminated block comment: '{opener}' is never closed by '{closer}'",
        span=span,
        severity=Severity.ERROR,
        args={"opener": opener, "closer": closer},
    )


def create_unrecognized_character_finding(text: str, span: SourceSpan) -> Finding:
    """Create a warning for a run of characters the notation has no use for."""
    if len(text) == 1 and not text.isprintable():
        shown = f"U+{ord(text):04X}"
    else:
        shown = repr(text)
    return Finding(
        origin=FindingOrigin.TOKENIZER,
        code="L003",
        template="Unrecognized character(s) {text}",
        span=span,
        severity=Severity.WARNING,
        args={"text": shown},
    )
