"""
Pseudoscript Lexer - turns raw text into a covering token stream.

Every character of the input ends up in exactly one token. Whitespace,
newlines, comments and unrecognised runs are kept as trivia so editors can
map any offset back to a token. Keywords are resolved against the keyword
registry, including multi-word forms such as "end if" or "greater than".

The lexer never raises on bad input: unterminated strings and block
comments become a single error-flagged token plus an Error finding.
"""

import logging
import re
from typing import List, Optional, Tuple

from .errors import (
    Finding, Severity, create_unrecognized_character_finding,
    create_unterminated_comment_finding, create_unterminated_string_finding,
)
from .keywords import KeywordCategory, KeywordRegistry, default_registry
from .tokens import (
    BLOCK_COMMENTS, BOOLEAN_WORDS, LINE_COMMENTS, NULL_WORDS, PUNCTUATION,
    STRING_DELIMITERS, SYMBOLIC_OPERATORS, LineIndex, OperatorKind, SourceSpan,
    Token, TokenKind,
)

logger = logging.getLogger(__name__)


# Characters that can start a non-word token
_OPERATOR_STARTS = frozenset(op[0] for op in SYMBOLIC_OPERATORS) | frozenset(p[0] for p in PUNCTUATION)
_DELIMITER_STARTS = (
    frozenset(c[0] for c in LINE_COMMENTS)
    | frozenset(opener[0] for opener, _ in BLOCK_COMMENTS)
    | frozenset(opener[0] for opener, _, _ in STRING_DELIMITERS)
)
_TOKEN_STARTS = _OPERATOR_STARTS | _DELIMITER_STARTS

# Openers that also read as code ("{-1}", "(*p)"); only a comment when closed
_TENTATIVE_BLOCK_OPENERS = frozenset({"{-", "(*"})

# Symbols tried longest first: operators and punctuation share the table
_SYMBOLS: List[Tuple[str, TokenKind]] = sorted(
    [(op, TokenKind.SYMBOLIC_OPERATOR) for op in SYMBOLIC_OPERATORS]
    + [(p, TokenKind.PUNCTUATION) for p in PUNCTUATION],
    key=lambda item: -len(item[0]),
)

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "`": "`",
}


class Lexer:
    """
    Pseudoscript lexical analyzer.

    Usage::

        lexer = Lexer(source)
        tokens = lexer.tokenize()
        findings = lexer.findings
    """

    def __init__(self, source: str, registry: Optional[KeywordRegistry] = None):
        self.source = source
        self.registry = registry or default_registry()
        self.pos = 0
        self.tokens: List[Token] = []
        self.findings: List[Finding] = []
        self._index = LineIndex(source)
        self._compile_patterns()

    def _compile_patterns(self):
        """Compile regex patterns used by the lexer."""
        self.hex_pattern = re.compile(r"0[xX][0-9a-fA-F][0-9a-fA-F_]*")
        self.float_pattern = re.compile(
            r"\d[\d_]*\.\d[\d_]*(?:[eE][+-]?\d+)?|"
            r"\.\d[\d_]*(?:[eE][+-]?\d+)?|"
            r"\d[\d_]*[eE][+-]?\d+"
        )
        self.integer_pattern = re.compile(r"\d[\d_]*")
        self.word_pattern = re.compile(r"\w+")
        self.gap_pattern = re.compile(r"[ \t]+")

    def tokenize(self) -> List[Token]:
        """
        Tokenize the entire source.

        Returns:
            List of tokens covering the input with no gaps or overlaps.
            There is no end-of-file token; spans are never empty.
        """
        self.pos = 0
        self.tokens = []
        self.findings = []

        while self.pos < len(self.source):
            start = self.pos
            token = self._next_token()
            if self.pos <= start:
                # Never stall: treat the character as unrecognised
                self.pos = start + 1
                token = self._unknown(start)
            self.tokens.append(token)

        logger.debug("Tokenized %d chars into %d tokens (%d findings)",
                     len(self.source), len(self.tokens), len(self.findings))
        return self.tokens

    def _next_token(self) -> Token:
        start = self.pos
        ch = self.source[start]

        # Newlines (\r\n counts as one)
        if ch == "\n" or ch == "\r":
            if self.source.startswith("\r\n", start):
                self.pos += 2
            else:
                self.pos += 1
            return self._make(TokenKind.NEWLINE, start)

        if ch.isspace():
            while self.pos < len(self.source):
                c = self.source[self.pos]
                if not c.isspace() or c in "\r\n":
                    break
                self.pos += 1
            return self._make(TokenKind.WHITESPACE, start)

        # Block comments take precedence over the punctuation they start with
        for opener, closer in BLOCK_COMMENTS:
            if self.source.startswith(opener, start):
                if opener in _TENTATIVE_BLOCK_OPENERS and self.source.find(closer, start + len(opener)) < 0:
                    continue
                return self._tokenize_block_comment(opener, closer)

        for opener in LINE_COMMENTS:
            if self.source.startswith(opener, start):
                if opener == "--" and self._follows_operand():
                    break
                end = self._line_end(start)
                self.pos = end
                return self._make(TokenKind.COMMENT, start)

        for opener, closer, multiline in STRING_DELIMITERS:
            if self.source.startswith(opener, start):
                return self._tokenize_string(opener, closer, multiline)

        if ch.isdecimal() or (ch == "." and self._peek().isdecimal()):
            return self._tokenize_number()

        if self._is_word_char(ch):
            return self._tokenize_word()

        for symbol, kind in _SYMBOLS:
            if self.source.startswith(symbol, start):
                self.pos += len(symbol)
                if kind == TokenKind.SYMBOLIC_OPERATOR:
                    return self._make(kind, start, value=SYMBOLIC_OPERATORS[symbol])
                return self._make(kind, start)

        self.pos += 1
        while self.pos < len(self.source) and self._is_unknown_char(self.source[self.pos]):
            self.pos += 1
        return self._unknown(start)

    def _tokenize_block_comment(self, opener: str, closer: str) -> Token:
        start = self.pos
        close_at = self.source.find(closer, start + len(opener))
        if close_at < 0:
            self.pos = len(self.source)
            token = self._make(TokenKind.COMMENT, start, is_error=True)
            self.findings.append(create_unterminated_comment_finding(opener, closer, token.span))
            return token
        self.pos = close_at + len(closer)
        return self._make(TokenKind.COMMENT, start)

    def _tokenize_string(self, opener: str, closer: str, multiline: bool) -> Token:
        """Tokenize a string literal, decoding simple backslash escapes."""
        start = self.pos
        self.pos += len(opener)
        chars: List[str] = []

        while self.pos < len(self.source):
            if self.source.startswith(closer, self.pos):
                self.pos += len(closer)
                return self._make(TokenKind.LITERAL, start, value="".join(chars))

            ch = self.source[self.pos]
            if ch in "\r\n" and not multiline:
                break
            if ch == "\\" and self.pos + 1 < len(self.source) and self.source[self.pos + 1] not in "\r\n":
                escaped = self.source[self.pos + 1]
                chars.append(_ESCAPES.get(escaped, escaped))
                self.pos += 2
                continue
            chars.append(ch)
            self.pos += 1

        # Unterminated: the rest of the line (or file) is the literal
        token = self._make(TokenKind.LITERAL, start, value="".join(chars), is_error=True)
        self.findings.append(create_unterminated_string_finding(closer, token.span))
        return token

    def _tokenize_number(self) -> Token:
        start = self.pos
        match = self.hex_pattern.match(self.source, start)
        if match:
            self.pos = match.end()
            return self._make(TokenKind.LITERAL, start, value=int(match.group(0)[2:].replace("_", ""), 16))

        match = self.float_pattern.match(self.source, start)
        if match:
            self.pos = match.end()
            return self._make(TokenKind.LITERAL, start, value=float(match.group(0).replace("_", "")))

        match = self.integer_pattern.match(self.source, start)
        self.pos = match.end()
        digits = match.group(0).replace("_", "")
        try:
            value = int(digits)
        except ValueError:
            # Past the interpreter's int-from-string digit limit
            value = float(digits)
        return self._make(TokenKind.LITERAL, start, value=value)

    def _tokenize_word(self) -> Token:
        """
        Tokenize an identifier, keyword, natural-language operator or word literal.

        Multi-word surfaces are only joined across spaces and tabs on the
        same line; the longest registered phrase wins.
        """
        start = self.pos
        words: List[str] = []
        ends: List[int] = []
        scan = start
        while len(words) < self.registry.max_words:
            match = self.word_pattern.match(self.source, scan)
            if not match:
                break
            words.append(match.group(0))
            ends.append(match.end())
            if not self.registry.is_prefix_word(words[0]):
                break
            gap = self.gap_pattern.match(self.source, match.end())
            if not gap:
                break
            scan = gap.end()

        if not words:
            self.pos = start + 1
            return self._make(TokenKind.IDENTIFIER, start)

        after_member_access = self._previous_significant_is(".")
        found = None if after_member_access else self.registry.match(words)
        if found is not None:
            group, count = found
            self.pos = ends[count - 1]
            if group.category == KeywordCategory.OPERATOR:
                return self._make(TokenKind.NATURAL_OPERATOR, start, value=OperatorKind(group.concept))
            return self._make(TokenKind.KEYWORD, start, concept=group.concept)

        self.pos = ends[0]
        word = words[0].lower()
        if not after_member_access:
            if word in BOOLEAN_WORDS:
                return self._make(TokenKind.LITERAL, start, value=BOOLEAN_WORDS[word])
            if word in NULL_WORDS:
                return self._make(TokenKind.LITERAL, start, value=None)
        return self._make(TokenKind.IDENTIFIER, start)

    def _unknown(self, start: int) -> Token:
        token = self._make(TokenKind.UNKNOWN, start)
        self.findings.append(create_unrecognized_character_finding(token.lexeme, token.span))
        return token

    def _make(self, kind: TokenKind, start: int, **fields) -> Token:
        span = self._span(start, self.pos)
        return Token(kind, self.source[start:self.pos], span, **fields)

    def _span(self, start: int, end: int) -> SourceSpan:
        return SourceSpan(self._index.location(start), self._index.location(end))

    def _follows_operand(self) -> bool:
        """True when the previous character ends an operand, as in ``i--``."""
        if self.pos == 0:
            return False
        prev = self.source[self.pos - 1]
        return self._is_word_char(prev) or prev in ")]"

    def _previous_significant_is(self, lexeme: str) -> bool:
        for token in reversed(self.tokens):
            if token.kind in (TokenKind.WHITESPACE, TokenKind.COMMENT):
                continue
            return token.kind == TokenKind.PUNCTUATION and token.lexeme == lexeme
        return False

    def _line_end(self, offset: int) -> int:
        while offset < len(self.source) and self.source[offset] not in "\r\n":
            offset += 1
        return offset

    def _peek(self, offset: int = 1) -> str:
        """Peek at a character ahead without advancing."""
        peek_pos = self.pos + offset
        if peek_pos < len(self.source):
            return self.source[peek_pos]
        return "\0"

    @staticmethod
    def _is_word_char(ch: str) -> bool:
        return ch.isalnum() or ch == "_"

    @staticmethod
    def _is_unknown_char(ch: str) -> bool:
        return not (ch.isspace() or ch.isalnum() or ch == "_" or ch in _TOKEN_STARTS)

    def has_errors(self) -> bool:
        """Check if the lexer produced any fatal findings."""
        return any(f.severity == Severity.ERROR for f in self.findings)


def tokenize(source: str, registry: Optional[KeywordRegistry] = None) -> Tuple[List[Token], List[Finding]]:
    """
    Convenience function to tokenize a source string.

    Returns:
        The token stream and the tokenizer findings.
    """
    lexer = Lexer(source, registry)
    tokens = lexer.tokenize()
    return tokens, lexer.findings


def significant_tokens(tokens: List[Token]) -> List[Token]:
    """Drop whitespace, comments and unknown runs, keeping newlines."""
    return [t for t in tokens if t.kind not in (TokenKind.WHITESPACE, TokenKind.COMMENT, TokenKind.UNKNOWN)]
