"""
Completion provider.

Given the latest syntax tree and token stream of a document and a cursor
position, produces ranked suggestions of three kinds: keywords from the
registry, snippets from the snippet library, and variable names visible
at the cursor through the scope chain.

Ranking is by match quality first (prefix match before containment), then
by kind (keyword, snippet, variable), then by registration or source order.
Clients receive the final order and must not re-sort.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ..lexer.keywords import (
    BRANCH_CONCEPTS, CLOSER_FAMILIES, STATEMENT_CONCEPTS, KeywordCategory, KeywordRegistry,
    default_registry,
)
from ..lexer.tokens import BLOCK_COMMENTS, SourceLocation, Token, TokenKind
from ..parser.ast_nodes import ASTNode, ASTNodeType, SCOPE_NODE_TYPES, SyntaxTree
from ..parser.parser import is_statement_start
from .snippets import Placeholder, SnippetLibrary, default_library

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 50

_IDENTIFIER_PREFIX = re.compile(r"^\w+$")

_WORD_KINDS = frozenset({TokenKind.IDENTIFIER, TokenKind.KEYWORD, TokenKind.NATURAL_OPERATOR})

# Concepts offered at the start of a statement when nothing is typed yet
_STATEMENT_KEYWORDS = STATEMENT_CONCEPTS | BRANCH_CONCEPTS | frozenset(CLOSER_FAMILIES)


class CompletionKind(Enum):
    KEYWORD = "keyword"
    SNIPPET = "snippet"
    VARIABLE = "variable"


# Tie-break order between kinds of equal match quality
_KIND_TIER = {
    CompletionKind.KEYWORD: 0,
    CompletionKind.SNIPPET: 1,
    CompletionKind.VARIABLE: 2,
}


class MatchQuality(Enum):
    PREFIX = 0
    CONTAINS = 1


@dataclass(frozen=True)
class CompletionItem:
    """
    One suggestion.

    ``insert_text`` may contain ``${n:default}`` placeholders, described in
    ``placeholders`` for client-side tab stops. ``sort_priority`` is the
    item's position in the final ranking.
    """
    label: str
    kind: CompletionKind
    insert_text: str
    sort_priority: int = 0
    detail: str = ""
    placeholders: Tuple[Placeholder, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "label": self.label,
            "kind": self.kind.value,
            "insertText": self.insert_text,
            "sortPriority": self.sort_priority,
            "detail": self.detail,
            "placeholders": [
                {"index": p.index, "default": p.default, "offset": p.offset}
                for p in self.placeholders
            ],
        }


@dataclass(frozen=True)
class CursorContext:
    """What surrounds the cursor: the partial word and the statement position."""
    offset: int
    line: int
    prefix: str
    statement_start: bool
    suppressed: bool = False


def match_quality(candidate: str, prefix: str) -> Optional[MatchQuality]:
    if not prefix:
        return MatchQuality.PREFIX
    candidate = candidate.lower()
    prefix = prefix.lower()
    if candidate.startswith(prefix):
        return MatchQuality.PREFIX
    if prefix in candidate:
        return MatchQuality.CONTAINS
    return None


def _is_block_comment(token: Token) -> bool:
    return any(token.lexeme.startswith(opener) for opener, _ in BLOCK_COMMENTS)


def _is_string(token: Token) -> bool:
    return token.kind == TokenKind.LITERAL and isinstance(token.value, str)


def _is_number(token: Token) -> bool:
    return (token.kind == TokenKind.LITERAL and isinstance(token.value, (int, float))
            and not isinstance(token.value, bool))


def cursor_context(tokens: Sequence[Token], cursor: SourceLocation) -> CursorContext:
    """
    Classify the cursor position against the token stream.

    The token touching the cursor from the left supplies the prefix when it
    is a word. Inside comments, strings and numbers nothing is offered.
    """
    offset = cursor.offset
    touching: Optional[Token] = None
    previous: Optional[Token] = None
    for token in tokens:
        if token.start >= offset:
            break
        if token.end >= offset:
            touching = token
            break
        if not token.is_trivia:
            previous = token

    prefix = ""
    suppressed = False
    if touching is not None:
        inside = offset < touching.end
        if touching.kind == TokenKind.COMMENT:
            suppressed = inside or touching.is_error or not _is_block_comment(touching)
        elif _is_string(touching):
            suppressed = inside or touching.is_error
        elif _is_number(touching):
            suppressed = True
        elif touching.kind in _WORD_KINDS or (touching.kind == TokenKind.LITERAL and touching.lexeme.isalpha()):
            prefix = touching.lexeme[:offset - touching.start]
        elif not touching.is_trivia:
            previous = touching

    return CursorContext(
        offset=offset,
        line=cursor.line,
        prefix=prefix,
        statement_start=is_statement_start(previous, cursor.line),
        suppressed=suppressed,
    )


class CompletionProvider:
    """Ranked keyword, snippet and variable suggestions at a cursor."""

    def __init__(self, registry: Optional[KeywordRegistry] = None,
                 snippets: Optional[SnippetLibrary] = None,
                 max_items: int = DEFAULT_MAX_ITEMS):
        self.registry = registry or default_registry()
        self.snippets = snippets if snippets is not None else default_library()
        self.max_items = max_items

    def complete(self, tree: SyntaxTree, tokens: Sequence[Token],
                 cursor: SourceLocation) -> List[CompletionItem]:
        """
        Suggestions at ``cursor``, best first.

        Args:
            tree: Most recently completed syntax tree of the document
            tokens: Full token stream the tree was parsed from
            cursor: Cursor position in the same text

        Returns:
            At most ``max_items`` items in final ranked order
        """
        context = cursor_context(tokens, cursor)
        if context.suppressed:
            return []

        # (quality, tier, order, item)
        ranked: List[Tuple[int, int, int, CompletionItem]] = []
        for order, (quality, item) in enumerate(self._keyword_candidates(context)):
            ranked.append((quality.value, _KIND_TIER[item.kind], order, item))
        for order, (quality, item) in enumerate(self._snippet_candidates(context)):
            ranked.append((quality.value, _KIND_TIER[item.kind], order, item))
        for order, (quality, item) in enumerate(self._variable_candidates(tree, context)):
            ranked.append((quality.value, _KIND_TIER[item.kind], order, item))

        ranked.sort(key=lambda entry: entry[:3])
        items = [
            CompletionItem(item.label, item.kind, item.insert_text, position, item.detail, item.placeholders)
            for position, (_, _, _, item) in enumerate(ranked[:self.max_items])
        ]
        logger.debug("%d completion candidates, %d returned (prefix length %d)",
                     len(ranked), len(items), len(context.prefix))
        return items

    def _keyword_candidates(self, context: CursorContext) -> Iterator[Tuple[MatchQuality, CompletionItem]]:
        """One candidate per concept, labelled with its best-matching surface."""
        if not context.prefix and not context.statement_start:
            return
        for group in self.registry.groups():
            if group.category == KeywordCategory.OPERATOR:
                if context.statement_start:
                    continue
            elif not context.prefix and group.concept not in _STATEMENT_KEYWORDS:
                continue

            best: Optional[Tuple[MatchQuality, str]] = None
            for surface in group.surfaces:
                quality = match_quality(surface, context.prefix)
                if quality is not None and (best is None or quality.value < best[0].value):
                    best = (quality, surface)
            if best is None:
                continue
            quality, surface = best
            yield quality, CompletionItem(
                label=surface,
                kind=CompletionKind.KEYWORD,
                insert_text=surface,
                detail=group.description or group.concept,
            )

    def _snippet_candidates(self, context: CursorContext) -> Iterator[Tuple[MatchQuality, CompletionItem]]:
        if not context.statement_start:
            return
        for snippet in self.snippets:
            qualities = [match_quality(p, context.prefix) for p in snippet.prefixes]
            qualities = [q for q in qualities if q is not None]
            if not qualities:
                continue
            yield min(qualities, key=lambda q: q.value), CompletionItem(
                label=snippet.prefixes[0],
                kind=CompletionKind.SNIPPET,
                insert_text=snippet.body,
                detail=snippet.description or snippet.name,
                placeholders=snippet.placeholders,
            )

    def _variable_candidates(self, tree: SyntaxTree,
                             context: CursorContext) -> Iterator[Tuple[MatchQuality, CompletionItem]]:
        if context.prefix and not _IDENTIFIER_PREFIX.match(context.prefix):
            return
        for name, detail in visible_names(tree, context.offset):
            if name.lower() == context.prefix.lower():
                continue
            quality = match_quality(name, context.prefix)
            if quality is None:
                continue
            yield quality, CompletionItem(
                label=name,
                kind=CompletionKind.VARIABLE,
                insert_text=name,
                detail=detail,
            )


def visible_names(tree: SyntaxTree, offset: int) -> List[Tuple[str, str]]:
    """
    Names visible at ``offset``, innermost scope first.

    Scoping is per function: a variable is visible anywhere after its
    declaration inside the same function (or program), loop variables only
    inside their loop. Function names and parameters are visible throughout.
    """
    if tree.root is None:
        return []
    node = tree.node_at(offset)
    chain = [node] + list(tree.ancestors(node.id)) if node is not None else [tree.program]

    names: List[Tuple[str, str]] = []
    seen = set()
    for scope in chain:
        if scope.node_type not in SCOPE_NODE_TYPES:
            continue
        for name, detail in _scope_declarations(tree, scope, offset):
            if name and name not in seen:
                seen.add(name)
                names.append((name, detail))
    return names


def _scope_declarations(tree: SyntaxTree, scope: ASTNode, offset: int) -> Iterator[Tuple[str, str]]:
    """Declarations belonging to ``scope`` itself, in source order."""
    if scope.node_type != ASTNodeType.PROGRAM:
        for param in tree.child_list(scope.id, "params"):
            yield param.get("name"), "parameter"
        if scope.node_type == ASTNodeType.FUNCTION_DECL:
            yield scope.get("name"), "function"

    stack = list(reversed(tree.children(scope.id)))
    while stack:
        node = stack.pop()
        node_type = node.node_type

        if node_type in (ASTNodeType.FUNCTION_DECL, ASTNodeType.COMPONENT_DECL):
            detail = "function" if node_type == ASTNodeType.FUNCTION_DECL else "component"
            yield node.get("name"), detail
            continue  # nested scope

        if node_type == ASTNodeType.FOR_STMT:
            if node.span.contains(offset, inclusive_end=True) and node.get("variable"):
                yield node.get("variable"), "loop variable"
            loop_parts = [
                tree.node(value) for slot, value in node.slots.items()
                if isinstance(value, int) and slot not in ("variable", "init")
            ]
            stack.extend(reversed(loop_parts))
            continue

        if node.start < offset:
            if node_type == ASTNodeType.VAR_DECL and not node.span.contains(offset, inclusive_end=True):
                yield node.get("name"), "variable"
            elif node_type == ASTNodeType.BINARY_EXPR and node.get("operator") == "assign":
                target = tree.child(node.id, "left")
                if target is not None and target.node_type == ASTNodeType.IDENTIFIER \
                        and target.end < offset:
                    yield target.get("name"), "variable"
            elif node_type == ASTNodeType.INPUT_STMT:
                for target in tree.child_list(node.id, "targets"):
                    if target.node_type == ASTNodeType.IDENTIFIER:
                        yield target.get("name"), "variable"

        stack.extend(reversed(tree.children(node.id)))
