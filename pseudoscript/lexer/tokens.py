"""
Token definitions for the pseudoscript tokenizer.

This module defines the token model shared by every stage of the pipeline:
- Token kinds (keywords, identifiers, literals, operators, trivia)
- Canonical operator kinds that symbolic and natural-language spellings
  normalise to
- Source locations and spans (0-based lines and columns, editor convention)
- The fixed comment delimiter set and symbolic operator tables
"""

from bisect import bisect_right
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


class TokenKind(Enum):
    """Kinds of tokens produced by the tokenizer."""

    KEYWORD = "keyword"                     # resolved to a concept id
    IDENTIFIER = "identifier"
    LITERAL = "literal"                     # numbers, strings, booleans, null
    SYMBOLIC_OPERATOR = "symbolic-operator" # >, <=, :=, ...
    NATURAL_OPERATOR = "natural-operator"   # greater than, plus, and, ...
    COMMENT = "comment"
    PUNCTUATION = "punctuation"

    # Trivia kept so the stream covers the whole input
    WHITESPACE = "whitespace"
    NEWLINE = "newline"
    UNKNOWN = "unknown"                     # run of unrecognised characters


TRIVIA_KINDS = frozenset({
    TokenKind.WHITESPACE,
    TokenKind.NEWLINE,
    TokenKind.COMMENT,
    TokenKind.UNKNOWN,
})


class OperatorKind(Enum):
    """Canonical operator kinds. The AST only ever records these."""

    ASSIGN = "assign"

    # Logical
    OR = "or"
    AND = "and"
    NOT = "not"

    # Comparison
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    GT = "gt"
    LE = "le"
    GE = "ge"
    IN = "in"

    # Arithmetic
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    MOD = "mod"
    POW = "pow"
    CONCAT = "concat"

    # Unary only
    NEG = "neg"
    POS = "pos"
    INCREMENT = "increment"
    DECREMENT = "decrement"

    # Postfix access
    MEMBER = "member"
    INDEX = "index"


@dataclass(frozen=True)
class SourceLocation:
    """A position in a document. Lines and columns are 0-based."""
    line: int
    column: int
    offset: int

    def __str__(self) -> str:
        return f"{self.line + 1}:{self.column + 1}"


@dataclass(frozen=True)
class SourceSpan:
    """Half-open range [start, end) of source text."""
    start: SourceLocation
    end: SourceLocation

    @property
    def length(self) -> int:
        return self.end.offset - self.start.offset

    def contains(self, offset: int, inclusive_end: bool = False) -> bool:
        if inclusive_end:
            return self.start.offset <= offset <= self.end.offset
        return self.start.offset <= offset < self.end.offset

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class Token:
    """
    A lexical token.

    ``concept`` is set only for keyword tokens. ``value`` holds the parsed
    literal value, or the canonical OperatorKind for operator tokens.
    ``is_error`` flags an unterminated string or block comment.
    """
    kind: TokenKind
    lexeme: str
    span: SourceSpan
    concept: Optional[str] = None
    value: Any = None
    is_error: bool = False

    def __str__(self) -> str:
        if self.concept is not None:
            return f"{self.kind.name}[{self.concept}]({self.lexeme!r})"
        return f"{self.kind.name}({self.lexeme!r})"

    @property
    def start(self) -> int:
        return self.span.start.offset

    @property
    def end(self) -> int:
        return self.span.end.offset

    @property
    def line(self) -> int:
        return self.span.start.line

    @property
    def is_trivia(self) -> bool:
        return self.kind in TRIVIA_KINDS

    @property
    def is_operator(self) -> bool:
        return self.kind in (TokenKind.SYMBOLIC_OPERATOR, TokenKind.NATURAL_OPERATOR)

    def is_keyword(self, *concepts: str) -> bool:
        """Check if this token is a keyword, optionally of one of ``concepts``."""
        if self.kind != TokenKind.KEYWORD:
            return False
        return not concepts or self.concept in concepts

    def is_punct(self, *lexemes: str) -> bool:
        return self.kind == TokenKind.PUNCTUATION and (not lexemes or self.lexeme in lexemes)

    def is_op(self, *kinds: OperatorKind) -> bool:
        return self.is_operator and (not kinds or self.value in kinds)


# Symbolic operators, longest first so the tokenizer can take the first hit
SYMBOLIC_OPERATORS: Dict[str, OperatorKind] = {
    "<=": OperatorKind.LE,
    ">=": OperatorKind.GE,
    "==": OperatorKind.EQ,
    "!=": OperatorKind.NE,
    "<>": OperatorKind.NE,
    ":=": OperatorKind.ASSIGN,
    "<-": OperatorKind.ASSIGN,
    "&&": OperatorKind.AND,
    "||": OperatorKind.OR,
    "**": OperatorKind.POW,
    "++": OperatorKind.INCREMENT,
    "--": OperatorKind.DECREMENT,
    "=": OperatorKind.ASSIGN,
    "<": OperatorKind.LT,
    ">": OperatorKind.GT,
    "+": OperatorKind.ADD,
    "-": OperatorKind.SUB,
    "*": OperatorKind.MUL,
    "/": OperatorKind.DIV,
    "%": OperatorKind.MOD,
    "^": OperatorKind.POW,
    "&": OperatorKind.CONCAT,
    "|": OperatorKind.OR,
    "!": OperatorKind.NOT,
    # Unicode mathematical spellings
    "←": OperatorKind.ASSIGN,
    "≠": OperatorKind.NE,
    "≤": OperatorKind.LE,
    "≥": OperatorKind.GE,
    "×": OperatorKind.MUL,
    "÷": OperatorKind.DIV,
    "∧": OperatorKind.AND,
    "∨": OperatorKind.OR,
    "¬": OperatorKind.NOT,
    "∈": OperatorKind.IN,
}

PUNCTUATION = ("->", "=>", "(", ")", "[", "]", "{", "}", ",", ";", ":", ".")

# Line comment openers
LINE_COMMENTS = ("//", "#", "--")

# Block comment bracket pairs, checked in order (first match wins)
BLOCK_COMMENTS: Tuple[Tuple[str, str], ...] = (
    ("--[[", "]]"),
    ("/*", "*/"),
    ("(*", "*)"),
    ("{-", "-}"),
    ("<!--", "-->"),
)

# Quote styles: (opener, closer, may span lines)
STRING_DELIMITERS: Tuple[Tuple[str, str, bool], ...] = (
    ('"""', '"""', True),
    ("'''", "'''", True),
    ('"', '"', False),
    ("'", "'", False),
    ("`", "`", True),
)

BOOLEAN_WORDS = {
    "true": True,
    "yes": True,
    "false": False,
    "no": False,
}

NULL_WORDS = frozenset({"null", "nil", "none"})


@dataclass
class LineIndex:
    """Maps offsets to (line, column) and back for a single text."""
    text: str
    _line_starts: List[int] = field(init=False, repr=False)

    def __post_init__(self):
        starts = [0]
        for i, ch in enumerate(self.text):
            if ch == "\n" or (ch == "\r" and not self.text.startswith("\n", i + 1)):
                starts.append(i + 1)
        self._line_starts = starts

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def location(self, offset: int) -> SourceLocation:
        offset = max(0, min(offset, len(self.text)))
        line = bisect_right(self._line_starts, offset) - 1
        return SourceLocation(line, offset - self._line_starts[line], offset)

    def offset(self, line: int, column: int) -> int:
        """Offset of (line, column), clamped to the text and to the line's end."""
        if line < 0:
            return 0
        if line >= len(self._line_starts):
            return len(self.text)
        start = self._line_starts[line]
        if line + 1 < len(self._line_starts):
            line_end = self._line_starts[line + 1] - 1
            if line_end > start and self.text[line_end - 1:line_end + 1] == "\r\n":
                line_end -= 1
        else:
            line_end = len(self.text)
        return min(start + max(column, 0), line_end)
