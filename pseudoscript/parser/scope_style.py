"""
Scope-style detection.

Classifies how a file (or, for mixed files, each top-level block) delimits
its blocks: braces, closing keywords, indentation, or a mix. Rules are
checked in order and the first that holds wins:

1. a ``{`` closed by a matching ``}`` at the same depth      -> Braces
2. a closing keyword whose opening keyword appeared earlier -> KeywordDelimited
3. every block opener is followed by a consistently deeper
   body, and at least one such body exists                   -> Indentation
4. otherwise                                                 -> Mixed
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..lexer.keywords import CLOSER_FAMILIES, OPENER_FAMILIES, Concept
from ..lexer.tokens import OperatorKind, Token, TokenKind

logger = logging.getLogger(__name__)

DEFAULT_TAB_WIDTH = 4


class ScopeStyle(Enum):
    BRACES = "Braces"
    KEYWORD_DELIMITED = "KeywordDelimited"
    INDENTATION = "Indentation"
    MIXED = "Mixed"


@dataclass(frozen=True)
class BlockScope:
    """Style of one top-level block of a mixed file, over [start, end)."""
    start: int
    end: int
    style: ScopeStyle


@dataclass(frozen=True)
class ScopeReport:
    file_style: ScopeStyle
    block_styles: Sequence[BlockScope] = field(default_factory=tuple)

    def style_at(self, offset: int) -> ScopeStyle:
        """Block style covering ``offset`` when the file is mixed, else the file style."""
        for block in self.block_styles:
            if block.start <= offset < block.end:
                return block.style
        return self.file_style

    def to_dict(self) -> Dict:
        return {
            "file_style": self.file_style.value,
            "block_styles": [
                {"start": b.start, "end": b.end, "style": b.style.value}
                for b in self.block_styles
            ],
        }


@dataclass
class SourceLine:
    """Significant tokens of one physical line and its indentation width."""
    number: int
    indent: int
    tokens: List[Token] = field(default_factory=list)

    @property
    def first(self) -> Token:
        return self.tokens[0]

    @property
    def last(self) -> Token:
        return self.tokens[-1]

    @property
    def start(self) -> int:
        return self.tokens[0].start


def indent_width(whitespace: str, tab_width: int = DEFAULT_TAB_WIDTH) -> int:
    """Visual width of leading whitespace, expanding tabs to ``tab_width`` stops."""
    width = 0
    for ch in whitespace:
        if ch == "\t":
            width += tab_width - (width % tab_width)
        else:
            width += 1
    return width


def source_lines(tokens: Sequence[Token], tab_width: int = DEFAULT_TAB_WIDTH) -> List[SourceLine]:
    """
    Group significant tokens by the line they start on.

    Lines with only trivia are omitted. Indentation is measured from the
    whitespace that opens the line.
    """
    lines: List[SourceLine] = []
    current: Optional[SourceLine] = None
    line_indent = 0
    at_line_start = True
    for token in tokens:
        if token.kind == TokenKind.NEWLINE:
            at_line_start = True
            line_indent = 0
            current = None
            continue
        if at_line_start and token.kind == TokenKind.WHITESPACE:
            line_indent = indent_width(token.lexeme, tab_width)
            at_line_start = False
            continue
        at_line_start = False
        if token.is_trivia:
            continue
        if current is None or current.number != token.line:
            current = SourceLine(token.line, line_indent)
            lines.append(current)
        current.tokens.append(token)
    return lines


def is_assigned_keyword(tokens: Sequence[Token], index: int) -> bool:
    """True when the keyword at ``index`` names an assignment target, as in ``sub = 3``."""
    token = tokens[index]
    following = tokens[index + 1] if index + 1 < len(tokens) else None
    return (token.kind == TokenKind.KEYWORD and following is not None
            and following.line == token.span.end.line and following.is_op(OperatorKind.ASSIGN))


def opener_concept(line: SourceLine) -> Optional[str]:
    """Block-opening concept at the start of a line, if any."""
    first = line.first
    if is_assigned_keyword(line.tokens, 0):
        return None
    if first.kind == TokenKind.KEYWORD and (first.concept in OPENER_FAMILIES or first.concept == Concept.DO):
        return first.concept
    return None


class ScopeStyleDetector:
    """Inspects token and line structure to pick a scope style."""

    def __init__(self, tab_width: int = DEFAULT_TAB_WIDTH):
        self.tab_width = tab_width

    def detect(self, tokens: Sequence[Token]) -> ScopeStyle:
        return self._classify(tokens)

    def report(self, tokens: Sequence[Token]) -> ScopeReport:
        """File style plus per-block styles when the file is Mixed."""
        file_style = self._classify(tokens)
        if file_style != ScopeStyle.MIXED:
            return ScopeReport(file_style)

        blocks = []
        for start, end, block_tokens in self._top_level_blocks(tokens):
            blocks.append(BlockScope(start, end, self._classify(block_tokens)))
        logger.debug("Mixed file split into %d top-level blocks", len(blocks))
        return ScopeReport(file_style, tuple(blocks))

    def _classify(self, tokens: Sequence[Token]) -> ScopeStyle:
        # Braces beat closing keywords when both are present
        if self._has_matched_braces(tokens):
            return ScopeStyle.BRACES
        if self._has_matched_closer(tokens):
            return ScopeStyle.KEYWORD_DELIMITED
        if self._has_consistent_indentation(tokens):
            return ScopeStyle.INDENTATION
        return ScopeStyle.MIXED

    @staticmethod
    def _has_matched_braces(tokens: Sequence[Token]) -> bool:
        depth = 0
        for token in tokens:
            if token.is_punct("{"):
                depth += 1
            elif token.is_punct("}"):
                if depth > 0:
                    return True
        return False

    @staticmethod
    def _has_matched_closer(tokens: Sequence[Token]) -> bool:
        seen_families = set()
        significant = [t for t in tokens if not t.is_trivia]
        for i, token in enumerate(significant):
            if token.kind != TokenKind.KEYWORD or is_assigned_keyword(significant, i):
                continue
            if token.concept in OPENER_FAMILIES:
                seen_families.add(OPENER_FAMILIES[token.concept])
            elif token.concept in CLOSER_FAMILIES:
                family = CLOSER_FAMILIES[token.concept]
                if (family is None and seen_families) or family in seen_families:
                    return True
        return False

    def _has_consistent_indentation(self, tokens: Sequence[Token]) -> bool:
        lines = source_lines(tokens, self.tab_width)
        found_body = False
        for i, line in enumerate(lines):
            if opener_concept(line) is None:
                continue
            following = lines[i + 1] if i + 1 < len(lines) else None
            if following is None:
                # End of file closes the block
                continue
            if following.indent > line.indent:
                found_body = True
            elif line.last.is_punct(":"):
                return False
        return found_body

    def _top_level_blocks(self, tokens: Sequence[Token]):
        """Split at unindented lines that open a block; yields (start, end, tokens)."""
        lines = source_lines(tokens, self.tab_width)
        starts = [line.start for line in lines if line.indent == 0 and opener_concept(line)]
        if not starts:
            return
        if lines[0].start < starts[0]:
            starts.insert(0, lines[0].start)
        end_of_text = tokens[-1].end if tokens else 0
        bounds = starts + [end_of_text]
        for start, end in zip(bounds, bounds[1:]):
            yield start, end, [t for t in tokens if start <= t.start < end]
