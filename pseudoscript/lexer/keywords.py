"""
Keyword registry for pseudoscript.

Maps concept ids ("function", "end_if", ...) to the surface spellings
accepted for them across programming traditions. Natural-language operator
phrases ("greater than", "divided by") are registered in the same table as
operator groups, so one uniqueness check covers every surface string.

Lookup is exact and case-insensitive. Multi-word surfaces ("for each",
"end if", "is less than or equal to") are matched longest-first over a
word trie, so "for" and "for each" never collide.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import RegistryError
from .tokens import OperatorKind

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class Concept:
    """Built-in concept ids."""

    FUNCTION = "function"
    END_FUNCTION = "end_function"
    COMPONENT = "component"
    END_COMPONENT = "end_component"
    VARIABLE = "variable"

    IF = "if"
    THEN = "then"
    ELSE_IF = "else_if"
    ELSE = "else"
    END_IF = "end_if"

    FOR = "for"
    FOR_EACH = "for_each"
    END_FOR = "end_for"
    WHILE = "while"
    END_WHILE = "end_while"
    DO = "do"
    REPEAT = "repeat"
    UNTIL = "until"

    BEGIN = "begin"
    END = "end"

    RETURN = "return"
    RETURNS = "returns"
    OUTPUT = "output"
    INPUT = "input"
    CALL = "call"
    BREAK = "break"
    CONTINUE = "continue"

    IN = "in"
    FROM = "from"
    TO = "to"
    STEP = "step"
    AS = "as"
    BE = "be"


class KeywordCategory(Enum):
    KEYWORD = "keyword"
    OPERATOR = "operator"


def normalize_surface(surface: str) -> str:
    """Lower-case and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", surface.strip()).lower()


@dataclass(frozen=True)
class KeywordGroup:
    """A concept and its ordered, case-insensitive surface spellings."""
    concept: str
    surfaces: Tuple[str, ...]
    category: KeywordCategory = KeywordCategory.KEYWORD
    description: str = ""

    @property
    def canonical(self) -> str:
        """The preferred spelling (first registered surface)."""
        return self.surfaces[0]

    @property
    def operator(self) -> Optional[OperatorKind]:
        if self.category != KeywordCategory.OPERATOR:
            return None
        return OperatorKind(self.concept)


class _TrieNode:
    __slots__ = ("children", "group")

    def __init__(self):
        self.children: Dict[str, "_TrieNode"] = {}
        self.group: Optional[KeywordGroup] = None


class KeywordRegistry:
    """
    Static table of keyword groups.

    Groups are registered at startup; ``freeze()`` makes the registry
    read-only. Overlapping surfaces fail registration, never a parse.
    """

    def __init__(self, groups: Iterable[KeywordGroup] = ()):
        self._groups: Dict[str, KeywordGroup] = {}
        self._surfaces: Dict[str, KeywordGroup] = {}
        self._root = _TrieNode()
        self._max_words = 1
        self._frozen = False
        for group in groups:
            self.register(group)

    def register(self, group: KeywordGroup) -> None:
        """Register a group, enforcing unique concepts and unique surfaces."""
        if self._frozen:
            raise RegistryError(
                f"Cannot register '{group.concept}': the keyword registry is frozen",
                concept=group.concept,
            )
        if not group.concept:
            raise RegistryError("Keyword groups need a concept id")
        if group.concept in self._groups:
            raise RegistryError(
                f"Concept '{group.concept}' is already registered",
                concept=group.concept,
            )
        if not group.surfaces:
            raise RegistryError(
                f"Concept '{group.concept}' has no surface spellings",
                concept=group.concept,
            )
        if group.category == KeywordCategory.OPERATOR:
            try:
                OperatorKind(group.concept)
            except ValueError:
                raise RegistryError(
                    f"Operator group '{group.concept}' does not name an operator kind",
                    concept=group.concept,
                ) from None

        surfaces = tuple(normalize_surface(s) for s in group.surfaces)
        seen = set()
        for surface in surfaces:
            if not surface:
                raise RegistryError(
                    f"Concept '{group.concept}' has an empty surface spelling",
                    concept=group.concept,
                )
            owner = self._surfaces.get(surface)
            if owner is not None or surface in seen:
                owner_name = owner.concept if owner else group.concept
                raise RegistryError(
                    f"Surface '{surface}' of '{group.concept}' is already used by '{owner_name}'",
                    concept=group.concept,
                    surface=surface,
                )
            seen.add(surface)

        normalized = KeywordGroup(group.concept, surfaces, group.category, group.description)
        self._groups[normalized.concept] = normalized
        for surface in surfaces:
            self._surfaces[surface] = normalized
            self._insert(surface.split(" "), normalized)

    def _insert(self, words: List[str], group: KeywordGroup) -> None:
        node = self._root
        for word in words:
            node = node.children.setdefault(word, _TrieNode())
        node.group = group
        self._max_words = max(self._max_words, len(words))

    def freeze(self) -> "KeywordRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def max_words(self) -> int:
        """Longest surface, in words."""
        return self._max_words

    def resolve(self, surface: str) -> Optional[str]:
        """Return the concept id for an exact surface spelling, or None."""
        group = self._surfaces.get(normalize_surface(surface))
        return group.concept if group else None

    def match(self, words: Sequence[str]) -> Optional[Tuple[KeywordGroup, int]]:
        """
        Longest match of a registered surface at the start of ``words``.

        Returns the group and the number of words it spans.
        """
        node = self._root
        best: Optional[Tuple[KeywordGroup, int]] = None
        for count, word in enumerate(words, start=1):
            node = node.children.get(word.lower())
            if node is None:
                break
            if node.group is not None:
                best = (node.group, count)
        return best

    def is_prefix_word(self, word: str) -> bool:
        """True if ``word`` starts some registered surface."""
        return word.lower() in self._root.children

    def group(self, concept: str) -> Optional[KeywordGroup]:
        return self._groups.get(concept)

    def groups(self, category: Optional[KeywordCategory] = None) -> List[KeywordGroup]:
        """All groups in registration order."""
        if category is None:
            return list(self._groups.values())
        return [g for g in self._groups.values() if g.category == category]

    def __contains__(self, concept: str) -> bool:
        return concept in self._groups

    def __len__(self) -> int:
        return len(self._groups)


def _kw(concept: str, *surfaces: str, description: str = "") -> KeywordGroup:
    return KeywordGroup(concept, surfaces, KeywordCategory.KEYWORD, description)


def _op(kind: OperatorKind, *surfaces: str) -> KeywordGroup:
    return KeywordGroup(kind.value, surfaces, KeywordCategory.OPERATOR, f"operator: {kind.value}")


# Built-in keyword groups. Order matters: it is the completion tie-break order.
BUILTIN_KEYWORD_GROUPS: Tuple[KeywordGroup, ...] = (
    # Declarations
    _kw(Concept.FUNCTION, "function", "func", "fun", "def", "method", "procedure",
        "fn", "sub", "subroutine", description="function declaration"),
    _kw(Concept.VARIABLE, "var", "let", "const", "constant", "set", "declare", "dim",
        "local", "val", "variable", description="variable declaration"),
    _kw(Concept.COMPONENT, "component", description="component declaration"),

    # Control flow
    _kw(Concept.IF, "if", description="conditional"),
    _kw(Concept.FOR, "for", description="counting loop"),
    _kw(Concept.FOR_EACH, "for each", "foreach", "for every", "for all",
        description="collection loop"),
    _kw(Concept.WHILE, "while", description="conditional loop"),
    _kw(Concept.REPEAT, "repeat", description="post-condition loop"),
    _kw(Concept.RETURN, "return", description="return from function"),
    _kw(Concept.OUTPUT, "print", "println", "output", "display", "log", "write", "say",
        "echo", "show", description="output statement"),
    _kw(Concept.INPUT, "input", "read", "readln", "ask", description="input statement"),
    _kw(Concept.CALL, "call", "invoke", "execute", description="procedure call"),
    _kw(Concept.BREAK, "break", "exit loop", "exit for", "exit while", description="leave loop"),
    _kw(Concept.CONTINUE, "continue", "skip", "next iteration", description="next loop iteration"),
    _kw(Concept.BEGIN, "begin", description="block start"),

    # Branch and header connectives
    _kw(Concept.THEN, "then"),
    _kw(Concept.ELSE_IF, "else if", "elif", "elseif", "elsif", "otherwise if"),
    _kw(Concept.ELSE, "else", "otherwise"),
    _kw(Concept.DO, "do"),
    _kw(Concept.UNTIL, "until"),
    _kw(Concept.RETURNS, "returns"),
    _kw(Concept.IN, "in"),
    _kw(Concept.FROM, "from"),
    _kw(Concept.TO, "to"),
    _kw(Concept.STEP, "step", "by"),
    _kw(Concept.AS, "as"),
    _kw(Concept.BE, "be"),

    # Closers
    _kw(Concept.END_FUNCTION, "endfunction", "end function", "endfunc", "end func",
        "endprocedure", "end procedure", "enddef", "endmethod", "end method",
        "endsub", "end sub"),
    _kw(Concept.END_COMPONENT, "endcomponent", "end component"),
    _kw(Concept.END_IF, "endif", "end if", "fi"),
    _kw(Concept.END_FOR, "endfor", "end for", "next"),
    _kw(Concept.END_WHILE, "endwhile", "end while", "wend"),
    _kw(Concept.END, "end"),

    # Natural-language operators
    _op(OperatorKind.ADD, "plus"),
    _op(OperatorKind.SUB, "minus"),
    _op(OperatorKind.MUL, "times", "multiplied by"),
    _op(OperatorKind.DIV, "divided by"),
    _op(OperatorKind.MOD, "mod", "modulo"),
    _op(OperatorKind.POW, "to the power of", "raised to"),
    _op(OperatorKind.EQ, "equals", "is", "is equal to", "equal to"),
    _op(OperatorKind.NE, "is not", "is not equal to", "not equal to", "does not equal"),
    _op(OperatorKind.GT, "greater than", "is greater than", "more than", "is more than"),
    _op(OperatorKind.LT, "less than", "is less than", "smaller than", "is smaller than"),
    _op(OperatorKind.GE, "greater than or equal to", "is greater than or equal to",
        "at least", "greater or equal"),
    _op(OperatorKind.LE, "less than or equal to", "is less than or equal to",
        "at most", "less or equal"),
    _op(OperatorKind.AND, "and"),
    _op(OperatorKind.OR, "or"),
    _op(OperatorKind.NOT, "not"),
)


def build_registry(extra_groups: Iterable[KeywordGroup] = ()) -> KeywordRegistry:
    """
    Build a frozen registry from the built-in groups plus ``extra_groups``.

    An extra group naming a built-in concept adds its surfaces to that
    concept's group; any other extra group registers a new concept.
    """
    extra = list(extra_groups)
    groups = {group.concept: group for group in BUILTIN_KEYWORD_GROUPS}
    additional = []
    for group in extra:
        base = groups.get(group.concept)
        if base is None or group.concept in (g.concept for g in additional):
            additional.append(group)
            continue
        groups[group.concept] = KeywordGroup(
            base.concept, base.surfaces + tuple(group.surfaces), base.category, base.description,
        )

    registry = KeywordRegistry(groups.values())
    for group in additional:
        registry.register(group)
    logger.debug("Keyword registry built: %d groups (%d extra)", len(registry), len(extra))
    return registry.freeze()


_default_registry: Optional[KeywordRegistry] = None


def default_registry() -> KeywordRegistry:
    """The process-wide, read-only registry of built-in groups."""
    global _default_registry
    if _default_registry is None:
        _default_registry = build_registry()
    return _default_registry


def group_from_dict(data: Dict) -> KeywordGroup:
    """Build a keyword group from configuration data."""
    try:
        concept = data["concept"]
        surfaces = data["surfaces"]
    except (KeyError, TypeError):
        raise RegistryError(f"Keyword group needs 'concept' and 'surfaces': {data!r}") from None
    if isinstance(surfaces, str):
        surfaces = [surfaces]
    try:
        category = KeywordCategory(data.get("category", KeywordCategory.KEYWORD.value))
    except ValueError:
        raise RegistryError(f"Unknown keyword category in {data!r}", concept=concept) from None
    return KeywordGroup(concept, tuple(surfaces), category, data.get("description", ""))


# Block families: which closer ends which opener. The generic END closes any.
OPENER_FAMILIES: Dict[str, str] = {
    Concept.FUNCTION: "function",
    Concept.COMPONENT: "component",
    Concept.IF: "if",
    Concept.FOR: "for",
    Concept.FOR_EACH: "for",
    Concept.WHILE: "while",
    Concept.REPEAT: "repeat",
    Concept.BEGIN: "begin",
}

CLOSER_FAMILIES: Dict[str, Optional[str]] = {
    Concept.END_FUNCTION: "function",
    Concept.END_COMPONENT: "component",
    Concept.END_IF: "if",
    Concept.END_FOR: "for",
    Concept.END_WHILE: "while",
    Concept.UNTIL: "repeat",
    Concept.END: None,
}

# Keywords that begin a statement; also recovery boundaries
STATEMENT_CONCEPTS = frozenset({
    Concept.FUNCTION, Concept.COMPONENT, Concept.VARIABLE, Concept.IF,
    Concept.FOR, Concept.FOR_EACH, Concept.WHILE, Concept.REPEAT, Concept.DO,
    Concept.BEGIN, Concept.RETURN, Concept.OUTPUT, Concept.INPUT, Concept.CALL,
    Concept.BREAK, Concept.CONTINUE,
})

BRANCH_CONCEPTS = frozenset({Concept.ELSE, Concept.ELSE_IF})
