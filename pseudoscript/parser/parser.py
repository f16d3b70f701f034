"""
Pseudoscript Tolerant Parser

Recursive descent for statements, Pratt (top-down operator precedence) for
expressions. Every construct picks its own body style: braces, a closing
keyword, indentation, or the rest of the header line. The file's detected
scope style only breaks ties.

The parser never aborts. Missing pieces become findings, unparseable
regions become Unknown nodes, and constructs that are never closed are
closed implicitly at the end of the enclosing block or of the file.
"""

import logging
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..lexer.errors import Finding
from ..lexer.keywords import (
    CLOSER_FAMILIES, OPENER_FAMILIES, Concept, KeywordRegistry, default_registry,
)
from ..lexer.tokens import (
    OperatorKind, SourceLocation, SourceSpan, Token, TokenKind,
)
from .ast_nodes import ASTNodeType, BlockStyle, SyntaxTree
from .errors import (
    ParseError, SyntaxErrorRecovery, create_missing_expression_finding,
    create_missing_token_finding, create_nesting_too_deep_finding,
    create_unclosed_construct_finding, create_unexpected_token_finding,
    create_unmatched_closer_finding, describe_token,
)
from .scope_style import (
    DEFAULT_TAB_WIDTH, ScopeReport, ScopeStyle, ScopeStyleDetector, is_assigned_keyword,
    source_lines,
)

logger = logging.getLogger(__name__)


class Precedence(IntEnum):
    """Operator precedence levels for Pratt parsing."""
    NONE = 0
    ASSIGNMENT = 1      # =, :=, <-, ←
    OR = 2              # or, ||, ∨
    AND = 3             # and, &&, ∧
    EQUALITY = 4        # ==, !=, is, equals, is not
    COMPARISON = 5      # <, >, <=, >=, greater than, in
    TERM = 6            # +, -, &, plus, minus
    FACTOR = 7          # *, /, %, times, divided by, mod
    UNARY = 8           # -, not, !, ++, --
    POWER = 9           # ^, **, to the power of
    CALL = 10           # calls, indexing, member access
    PRIMARY = 11


OPERATOR_PRECEDENCE: Dict[OperatorKind, Precedence] = {
    OperatorKind.ASSIGN: Precedence.ASSIGNMENT,
    OperatorKind.OR: Precedence.OR,
    OperatorKind.AND: Precedence.AND,
    OperatorKind.EQ: Precedence.EQUALITY,
    OperatorKind.NE: Precedence.EQUALITY,
    OperatorKind.LT: Precedence.COMPARISON,
    OperatorKind.GT: Precedence.COMPARISON,
    OperatorKind.LE: Precedence.COMPARISON,
    OperatorKind.GE: Precedence.COMPARISON,
    OperatorKind.IN: Precedence.COMPARISON,
    OperatorKind.ADD: Precedence.TERM,
    OperatorKind.SUB: Precedence.TERM,
    OperatorKind.CONCAT: Precedence.TERM,
    OperatorKind.MUL: Precedence.FACTOR,
    OperatorKind.DIV: Precedence.FACTOR,
    OperatorKind.MOD: Precedence.FACTOR,
    OperatorKind.POW: Precedence.POWER,
}

PREFIX_OPERATORS: Dict[OperatorKind, OperatorKind] = {
    OperatorKind.SUB: OperatorKind.NEG,
    OperatorKind.ADD: OperatorKind.POS,
    OperatorKind.NOT: OperatorKind.NOT,
    OperatorKind.INCREMENT: OperatorKind.INCREMENT,
    OperatorKind.DECREMENT: OperatorKind.DECREMENT,
}

# Closer concept that ends each block family
FAMILY_CLOSERS: Dict[str, str] = {
    family: concept for concept, family in CLOSER_FAMILIES.items() if family is not None
}
FAMILY_CLOSERS["begin"] = Concept.END

# Keywords that can never serve as a name
_RESERVED_NAME_CONCEPTS = (
    frozenset(CLOSER_FAMILIES) | {Concept.THEN, Concept.DO, Concept.BEGIN, Concept.ELSE, Concept.ELSE_IF}
)

_INLINE_CONSTRUCTS = frozenset({
    Concept.IF, Concept.ELSE_IF, Concept.ELSE, Concept.WHILE, Concept.FOR, Concept.FOR_EACH,
})

_ASSIGN_WORDS = frozenset({Concept.TO, Concept.BE})

# Recursion limits; anything nested deeper is reported and skipped
MAX_NESTING = 48
MAX_EXPRESSION_DEPTH = 200


def is_statement_start(previous: Optional[Token], line: int) -> bool:
    """True when a token on ``line`` following ``previous`` may begin a statement."""
    if previous is None or previous.span.end.line != line:
        return True
    if previous.is_punct("{", "}", ";", ":"):
        return True
    return previous.is_keyword(Concept.THEN, Concept.DO, Concept.ELSE, Concept.BEGIN)


class Parser:
    """
    Pseudoscript tolerant parser.

    Usage::

        parser = Parser(tokens, scope_report)
        tree, findings = parser.parse()
    """

    def __init__(self, tokens: Sequence[Token],
                 scope: Union[ScopeReport, ScopeStyle, None] = None,
                 registry: Optional[KeywordRegistry] = None,
                 tab_width: int = DEFAULT_TAB_WIDTH):
        """
        Initialize the parser.

        Args:
            tokens: Full token stream from the lexer, trivia included
            scope: Detected scope style (file-wide or per block); detected
                here when omitted
            registry: Keyword registry used for closer names in messages
            tab_width: Column width of a tab when measuring indentation
        """
        self.tokens = [t for t in tokens if not t.is_trivia]
        self.registry = registry or default_registry()
        if scope is None:
            scope = ScopeStyleDetector(tab_width).report(tokens)
        elif isinstance(scope, ScopeStyle):
            scope = ScopeReport(scope)
        self.scope = scope
        self.current = 0
        self.findings: List[Finding] = []
        self.tree = SyntaxTree()

        self._start_location = SourceLocation(0, 0, 0)
        self._end_location = tokens[-1].span.end if tokens else self._start_location
        self._line_indents = {line.number: line.indent for line in source_lines(tokens, tab_width)}

        # Parsing context
        self._open_families: List[str] = []
        self._indent_floors: List[int] = []
        self._brace_depth = 0
        self._paren_depth = 0
        self._condition_depth = 0
        self._nesting = 0

        self._closers = self._match_block_closers()
        self._init_parsing_tables()

    def _init_parsing_tables(self):
        """Initialize statement and expression dispatch tables."""

        self.statement_parsers: Dict[str, Callable[[], Optional[int]]] = {
            Concept.FUNCTION: self._parse_function,
            Concept.COMPONENT: self._parse_component,
            Concept.VARIABLE: self._parse_variable_declaration,
            Concept.IF: self._parse_if_statement,
            Concept.FOR: self._parse_for_statement,
            Concept.FOR_EACH: self._parse_for_statement,
            Concept.WHILE: self._parse_while_statement,
            Concept.REPEAT: self._parse_repeat_statement,
            Concept.DO: self._parse_repeat_statement,
            Concept.BEGIN: self._parse_begin_block,
            Concept.RETURN: self._parse_return_statement,
            Concept.OUTPUT: self._parse_output_statement,
            Concept.INPUT: self._parse_input_statement,
            Concept.CALL: self._parse_call_statement,
            Concept.BREAK: self._parse_jump_statement,
            Concept.CONTINUE: self._parse_jump_statement,
        }

        # Prefix parsers for punctuation that can start an expression
        self.punct_prefix_parsers: Dict[str, Callable[[], int]] = {
            "(": self._parse_grouping,
            "[": self._parse_list,
        }

        # Postfix parsers (calls, indexing, member access)
        self.punct_infix_parsers: Dict[str, Callable[[int], int]] = {
            "(": self._parse_call,
            "[": self._parse_index,
            ".": self._parse_member,
        }

    def parse(self) -> Tuple[SyntaxTree, List[Finding]]:
        """
        Parse the token stream into a syntax tree.

        Returns:
            The finished tree (root is the Program node) and the structural
            findings collected on the way. Never raises for malformed input.
        """
        statements = self._parse_statements(lambda: False)
        span = SourceSpan(self._start_location, self._end_location)
        root = self.tree.add(ASTNodeType.PROGRAM, span, body=statements)
        self.tree.finish(root)
        logger.debug("Parsed %d tokens into %d nodes (%d findings, style %s)",
                     len(self.tokens), len(self.tree), len(self.findings),
                     self.scope.file_style.value)
        return self.tree, self.findings

    # ------------------------------------------------------------------
    # Block closer matching
    # ------------------------------------------------------------------

    def _match_block_closers(self) -> Dict[int, int]:
        """
        Pair opener keywords with the closer keyword that ends them.

        One forward pass with a stack. A specific closer pops down to the
        nearest opener of its family; the generic ``end`` prefers the open
        block at its own indentation and otherwise closes the innermost
        one. Braces fence the stack: a ``}`` discards everything opened
        inside its ``{``. Returns opener index -> closer index.
        """
        matches: Dict[int, int] = {}
        stack: List[Tuple[str, int, int]] = []  # (family or "{", token index, indent)
        for i, token in enumerate(self.tokens):
            if token.is_punct("{"):
                stack.append(("{", i, 0))
                continue
            if token.is_punct("}"):
                for j in range(len(stack) - 1, -1, -1):
                    if stack[j][0] == "{":
                        del stack[j:]
                        break
                continue
            if token.kind != TokenKind.KEYWORD or is_assigned_keyword(self.tokens, i):
                continue

            family = self._opener_family(i)
            if family is not None:
                if self._opener_needs_closer(i):
                    stack.append((family, i, self._indent(token.line)))
                continue

            if token.concept not in CLOSER_FAMILIES:
                continue
            closes = CLOSER_FAMILIES[token.concept]
            target = None
            for j in range(len(stack) - 1, -1, -1):
                entry_family, _, entry_indent = stack[j]
                if entry_family == "{":
                    break
                if closes is None and entry_indent == self._indent(token.line):
                    target = j
                    break
                if closes is not None and entry_family == closes:
                    target = j
                    break
            if target is None and closes is None and stack and stack[-1][0] != "{":
                target = len(stack) - 1
            if target is not None:
                matches[stack[target][1]] = i
                del stack[target:]
        return matches

    def _opener_family(self, index: int) -> Optional[str]:
        token = self.tokens[index]
        previous = self.tokens[index - 1] if index > 0 else None
        if not is_statement_start(previous, token.line):
            return None
        if token.concept in OPENER_FAMILIES:
            return OPENER_FAMILIES[token.concept]
        if token.concept == Concept.DO:
            return "repeat"
        return None

    def _opener_needs_closer(self, index: int) -> bool:
        """Guess from the opener's line whether it is closed by a keyword."""
        token = self.tokens[index]
        concept = token.concept
        previous = self.tokens[index - 1] if index > 0 else None
        if concept == Concept.WHILE and previous is not None and previous.is_punct("}"):
            return False  # do { ... } while cond

        family = OPENER_FAMILIES.get(concept, "repeat")
        depth = 0
        terminator: Optional[Token] = None
        body_on_line = False
        closer_on_line = False
        j = index + 1
        while j < len(self.tokens) and self.tokens[j].line == token.line:
            t = self.tokens[j]
            if t.is_punct("{") or (t.is_keyword(Concept.BEGIN) and concept != Concept.BEGIN):
                return False
            if t.kind == TokenKind.KEYWORD and CLOSER_FAMILIES.get(t.concept, "") in (family, None):
                closer_on_line = True
            if t.is_punct("(", "["):
                depth += 1
            elif t.is_punct(")", "]"):
                depth = max(0, depth - 1)
            elif terminator is not None:
                body_on_line = True
            elif depth == 0 and (t.is_keyword(Concept.THEN, Concept.DO) or t.is_punct(":")):
                next_token = self.tokens[j + 1] if j + 1 < len(self.tokens) else None
                is_return_type = (
                    t.is_punct(":") and concept in (Concept.FUNCTION, Concept.COMPONENT)
                    and next_token is not None and next_token.line == t.line
                    and next_token.kind == TokenKind.IDENTIFIER
                )
                if not is_return_type:
                    terminator = t
            j += 1

        if j < len(self.tokens) and (self.tokens[j].is_punct("{") or self.tokens[j].is_keyword(Concept.BEGIN)):
            return concept == Concept.BEGIN
        if concept in (Concept.REPEAT, Concept.DO, Concept.BEGIN):
            return True
        inline_capable = concept in _INLINE_CONSTRUCTS or (
            terminator is not None and terminator.is_punct(":")
        )
        if inline_capable and body_on_line and not closer_on_line:
            return False
        return True

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _parse_statements(self, until: Callable[[], bool]) -> List[int]:
        """Parse statements until ``until()`` holds or input runs out."""
        statements: List[int] = []
        while not self._is_at_end() and not until():
            start = self.current
            if self._match_punct(";"):
                continue
            statement = self._parse_statement()
            if statement is not None:
                statements.append(statement)
            if self.current == start:
                token = self._advance()
                self._report(create_unexpected_token_finding(token, "statement"))
                statements.append(self._unknown(token, token, "P001"))
        return statements

    def _parse_statement(self) -> Optional[int]:
        """Parse one statement, wrapping anything unparseable in an Unknown node."""
        token = self._peek()
        start = self.current
        if self._nesting >= MAX_NESTING:
            self._report(create_nesting_too_deep_finding(token))
            self.current = SyntaxErrorRecovery.synchronize_to_statement_boundary(self.tokens, start)
            return self._unknown(token, self.tokens[self.current - 1], "P006")

        checkpoint = len(self.tree)
        self._nesting += 1
        try:
            return self._parse_statement_inner(token)
        except ParseError as e:
            self.tree.truncate(checkpoint)
            error_pos = self.current
            if error_pos == start and e.finding.code != "P006":
                self._report(create_unexpected_token_finding(token, "statement"))
            else:
                self._report(e.finding)
            if error_pos > start and self._is_boundary_at(error_pos):
                resume = error_pos
            else:
                resume = SyntaxErrorRecovery.synchronize_to_statement_boundary(self.tokens, error_pos)
            self.current = resume
            return self._unknown(token, self.tokens[resume - 1], "P001")
        finally:
            self._nesting -= 1

    def _parse_statement_inner(self, token: Token) -> Optional[int]:
        if is_assigned_keyword(self.tokens, self.current):
            # A keyword used as a variable name: "sub = 3", "next = 2"
            self._advance()
            name = self._identifier_from(token)
            return self._parse_infix(name, Precedence.ASSIGNMENT)

        if token.kind == TokenKind.KEYWORD:
            parser = self.statement_parsers.get(token.concept)
            if parser is not None:
                return parser()
            if token.concept in CLOSER_FAMILIES:
                self._advance()
                self._report(create_unmatched_closer_finding(token))
                return None

        if token.is_punct("{"):
            block, _ = self._parse_brace_block()
            return block
        if token.is_punct("}"):
            self._advance()
            self._report(create_unmatched_closer_finding(token))
            return None

        return self._parse_expression()

    def _is_boundary_at(self, pos: int) -> bool:
        if pos >= len(self.tokens):
            return True
        return (SyntaxErrorRecovery.starts_new_line(self.tokens, pos)
                or SyntaxErrorRecovery.is_statement_boundary(self.tokens[pos]))

    # Declarations

    def _parse_function(self) -> int:
        """Parse a function declaration in any of its spellings."""
        fn_token = self._advance()
        header_index = self.current - 1
        name_token = self._consume_name("function name")
        params = self._parse_parameters() if self._check_punct("(") else []

        return_type = None
        if self._match_punct("->") or self._match_kw(Concept.RETURNS, Concept.AS):
            return_type = self._parse_type_name()
        elif self._check_punct(":") and self._peek_kind(1) == TokenKind.IDENTIFIER and self._peek_same_line(1):
            self._advance()
            return_type = self._parse_type_name()

        explicit_colon = self._match_punct(":") is not None
        if self._check_punct(";") and self._peek_is_kw(1, Concept.BEGIN):
            self._advance()

        name = name_token.lexeme if name_token else None
        body, style, closed = self._parse_body(
            fn_token, header_index, "function", Concept.FUNCTION, explicit_colon=explicit_colon,
        )
        end = self._finish_construct(fn_token, "function", closed, self._describe("function", name))
        attrs = {"name": name, "return_type": return_type, "body_style": style.value}
        return self.tree.add(ASTNodeType.FUNCTION_DECL, self._span_to(fn_token, end), attrs,
                             params=params, body=body)

    def _parse_component(self) -> int:
        comp_token = self._advance()
        header_index = self.current - 1
        name_token = self._consume_name("component name")
        params = self._parse_parameters() if self._check_punct("(") else []
        explicit_colon = self._match_punct(":") is not None

        name = name_token.lexeme if name_token else None
        body, style, closed = self._parse_body(
            comp_token, header_index, "component", Concept.COMPONENT, explicit_colon=explicit_colon,
        )
        end = self._finish_construct(comp_token, "component", closed, self._describe("component", name))
        attrs = {"name": name, "body_style": style.value}
        return self.tree.add(ASTNodeType.COMPONENT_DECL, self._span_to(comp_token, end), attrs,
                             params=params, body=body)

    def _parse_parameters(self) -> List[int]:
        """Parse ``(name [: type] [= default], ...)``; also ``(type name)``."""
        self._advance()  # Consume (
        params: List[int] = []
        self._paren_depth += 1
        try:
            while not self._is_at_end() and not self._check_punct(")"):
                first = self._peek()
                type_token = None
                if (first.kind == TokenKind.IDENTIFIER and self._peek_kind(1) == TokenKind.IDENTIFIER
                        and self._peek_same_line(1)):
                    type_token = self._advance()
                name_token = self._consume_name("parameter name")
                if name_token is None:
                    break
                param_type = type_token.lexeme if type_token else None
                if self._match_punct(":") or self._match_kw(Concept.AS):
                    param_type = self._parse_type_name()
                default = None
                if self._match_op(OperatorKind.ASSIGN):
                    default = self._expression_or_missing("as default value")
                attrs = {"name": name_token.lexeme, "type": param_type}
                params.append(self.tree.add(
                    ASTNodeType.PARAMETER, self._span(first, self._previous()), attrs, default=default,
                ))
                if not self._match_punct(","):
                    break
        finally:
            self._paren_depth -= 1
        self._expect_punct(")", "')' after parameters")
        return params

    def _parse_type_name(self) -> Optional[str]:
        token = self._peek()
        if token is None or not self._on_same_line() or not self._is_name_token(token):
            self._report_missing("type name")
            return None
        self._advance()
        parts = [token.lexeme]
        while self._on_same_line():
            if self._check_punct("[") and self._peek_is_punct(1, "]"):
                self._advance()
                self._advance()
                parts.append("[]")
            elif self._check_punct(".") and self._peek_is_name(1):
                self._advance()
                parts.append("." + self._advance().lexeme)
            else:
                break
        return "".join(parts)

    def _parse_variable_declaration(self) -> int:
        """Parse ``var name [: type | as type] [= | := | <- | to | be] value``."""
        keyword = self._advance()
        name_token = self._consume_name("variable name")

        var_type = None
        if self._on_same_line() and (self._match_punct(":") or self._match_kw(Concept.AS)):
            var_type = self._parse_type_name()

        initializer = None
        assign = self._peek()
        if assign is not None and self._on_same_line() and self._is_initializer_token(assign):
            self._advance()
            initializer = self._expression_or_missing(f"after {describe_token(assign)}")

        attrs = {
            "name": name_token.lexeme if name_token else None,
            "type": var_type,
            "constant": keyword.lexeme.lower() in ("const", "constant", "val"),
        }
        return self.tree.add(ASTNodeType.VAR_DECL, self._span(keyword, self._previous()), attrs,
                             initializer=initializer)

    @staticmethod
    def _is_initializer_token(token: Token) -> bool:
        if token.is_op(OperatorKind.ASSIGN):
            return True
        if token.kind == TokenKind.NATURAL_OPERATOR and token.value == OperatorKind.EQ:
            return True
        return token.is_keyword(*_ASSIGN_WORDS)

    # Control flow

    def _parse_if_statement(self, consume_closer: bool = True,
                            inherited: Optional[BlockStyle] = None) -> int:
        """Parse an if statement; ``else if`` chains nest in the else slot."""
        if_token = self._advance()
        header_index = self.current - 1
        condition = self._parse_condition(f"after {describe_token(if_token)}")
        self._match_kw(Concept.THEN) or self._match_punct(":")

        then_block, style, closed = self._parse_body(
            if_token, header_index, "if", Concept.IF, inherited=inherited, stop_at_branch=True,
        )

        else_branch = None
        if self._else_belongs(if_token, style, closed):
            if self._check_kw(Concept.ELSE_IF) and self._nesting < MAX_NESTING:
                self._nesting += 1
                try:
                    else_branch = self._parse_if_statement(consume_closer=False, inherited=style)
                finally:
                    self._nesting -= 1
            elif self._check_kw(Concept.ELSE_IF):
                else_branch = self._parse_statement()
            else:
                else_token = self._advance()
                self._match_punct(":")
                else_branch, _, _ = self._parse_body(
                    else_token, None, "if", Concept.ELSE, inherited=style,
                )

        end = None
        if consume_closer:
            end = self._finish_construct(if_token, "if", closed, "if statement")
        attrs = {"body_style": style.value}
        span = self._span_to(if_token, end)
        return self.tree.add(ASTNodeType.IF_STMT, span, attrs,
                             condition=condition, then=then_block, else_branch=else_branch)

    def _else_belongs(self, if_token: Token, style: BlockStyle, closed: bool) -> bool:
        token = self._peek()
        if token is None or not token.is_keyword(Concept.ELSE, Concept.ELSE_IF):
            return False
        if self._block_ended():
            return False
        if style == BlockStyle.KEYWORD and not closed:
            return True
        if self._on_same_line() or style == BlockStyle.BRACES or closed and style == BlockStyle.KEYWORD:
            return True
        return self._indent(token.line) == self._indent(if_token.line)

    def _parse_while_statement(self) -> int:
        while_token = self._advance()
        header_index = self.current - 1
        condition = self._parse_condition("after 'while'")
        self._match_kw(Concept.DO) or self._match_punct(":")

        body, style, closed = self._parse_body(while_token, header_index, "while", Concept.WHILE)
        end = self._finish_construct(while_token, "while", closed, "while loop")
        attrs = {"loop": "while", "body_style": style.value}
        return self.tree.add(ASTNodeType.WHILE_STMT, self._span_to(while_token, end), attrs,
                             condition=condition, body=body)

    def _parse_repeat_statement(self) -> int:
        """Parse ``repeat ... until cond`` and ``do ... until cond`` / ``do { } while cond``."""
        keyword = self._advance()
        header_index = self.current - 1
        self._match_punct(":")
        body, style, closed = self._parse_body(keyword, header_index, "repeat", Concept.REPEAT)

        post_condition = None
        until = True
        end = None
        token = self._peek()
        if not closed:
            if token is not None and token.is_keyword(Concept.UNTIL):
                self._advance()
                post_condition = self._parse_condition("after 'until'")
                end = self._previous().span.end
            else:
                end = self._finish_construct(keyword, "repeat", closed, f"'{keyword.lexeme}' loop")
        elif token is not None and not self._block_ended():
            if token.is_keyword(Concept.UNTIL):
                self._advance()
                post_condition = self._parse_condition("after 'until'")
            elif (token.is_keyword(Concept.WHILE) and keyword.is_keyword(Concept.DO)
                  and self._on_same_line()):
                self._advance()
                post_condition = self._parse_condition("after 'while'")
                until = False

        attrs = {
            "loop": keyword.concept,
            "body_style": style.value,
            "until": until if post_condition is not None else None,
        }
        return self.tree.add(ASTNodeType.WHILE_STMT, self._span_to(keyword, end), attrs,
                             body=body, post_condition=post_condition)

    def _parse_for_statement(self) -> int:
        """
        Parse the loop forms::

            for i = 1 to 10 step 2      for i from 1 to 10
            for each x in items         for x in items
            for (i = 0; i < n; i++)
        """
        for_token = self._advance()
        header_index = self.current - 1
        slots: Dict[str, Optional[Union[int, List[int]]]] = {}
        variable_name = None

        if for_token.is_keyword(Concept.FOR) and self._check_punct("(") and self._looks_like_c_for():
            style = "c"
            variable_name = self._parse_c_for_header(slots)
        else:
            name_token = self._consume_name("loop variable")
            if name_token is not None:
                variable_name = name_token.lexeme
                slots["variable"] = self._identifier_from(name_token)
            if self._match_kw(Concept.IN) or self._match_op(OperatorKind.IN):
                style = "each"
                slots["iterable"] = self._expression_or_missing("after 'in'")
            elif for_token.is_keyword(Concept.FOR_EACH):
                style = "each"
                self._report_missing("'in'")
            elif self._match_op(OperatorKind.ASSIGN) or self._match_kw(Concept.FROM):
                style = "range"
                slots["start"] = self._expression_or_missing("as loop start")
                if self._match_kw(Concept.TO):
                    slots["end"] = self._expression_or_missing("after 'to'")
                else:
                    self._report_missing("'to'")
                if self._match_kw(Concept.STEP):
                    slots["step"] = self._expression_or_missing("after 'step'")
            else:
                style = "range"
                self._report_missing("'=' or 'in'")

        self._match_kw(Concept.DO) or self._match_punct(":")
        body, body_style, closed = self._parse_body(for_token, header_index, "for", for_token.concept)
        slots["body"] = body
        end = self._finish_construct(for_token, "for", closed, "for loop")
        attrs = {"style": style, "variable": variable_name, "body_style": body_style.value}
        return self.tree.add(ASTNodeType.FOR_STMT, self._span_to(for_token, end), attrs, **slots)

    def _looks_like_c_for(self) -> bool:
        """``(`` followed by a ``;`` before its matching ``)``."""
        depth = 0
        for token in self.tokens[self.current:]:
            if token.is_punct("(", "["):
                depth += 1
            elif token.is_punct(")", "]"):
                depth -= 1
                if depth == 0:
                    return False
            elif token.is_punct(";") and depth == 1:
                return True
            elif token.is_punct("{", "}"):
                return False
        return False

    def _parse_c_for_header(self, slots: Dict) -> Optional[str]:
        self._advance()  # Consume (
        self._paren_depth += 1
        try:
            if (self._peek_kind(0) == TokenKind.IDENTIFIER and self._peek_kind(1) == TokenKind.IDENTIFIER
                    and self._peek_same_line(1)):
                self._advance()  # int i = 0
            if self._check_kw(Concept.VARIABLE):
                init = self._parse_variable_declaration()
            elif self._check_punct(";"):
                init = None
            else:
                init = self._expression_or_missing("as loop initializer")
            self._expect_punct(";", "';' after loop initializer")
            condition = None
            if not self._check_punct(";"):
                condition = self._parse_condition("as loop condition")
            self._expect_punct(";", "';' after loop condition")
            update = None if self._check_punct(")") else self._expression_or_missing("as loop update")
        finally:
            self._paren_depth -= 1
        self._expect_punct(")", "')' after loop header")
        slots.update(init=init, condition=condition, update=update)
        return self._declared_name(init)

    def _declared_name(self, node_id: Optional[int]) -> Optional[str]:
        if node_id is None:
            return None
        node = self.tree.node(node_id)
        if node.node_type == ASTNodeType.VAR_DECL:
            return node.get("name")
        if node.node_type == ASTNodeType.BINARY_EXPR and node.get("operator") == OperatorKind.ASSIGN.value:
            target = self.tree.child(node_id, "left")
            if target is not None and target.node_type == ASTNodeType.IDENTIFIER:
                return target.get("name")
        return None

    def _parse_begin_block(self) -> int:
        begin_token = self._advance()
        block = self._parse_keyword_block("begin", stop_at_branch=False, start_token=begin_token)
        end = self._finish_construct(begin_token, "begin", False, "'begin' block")
        node = self.tree.node(block)
        node.span = self._span_to(begin_token, end)
        return block

    # Simple statements

    def _parse_return_statement(self) -> int:
        keyword = self._advance()
        value = None
        if not self._at_expression_gap():
            value = self._expression_or_missing("after 'return'")
        return self.tree.add(ASTNodeType.RETURN_STMT, self._span(keyword, self._previous()), value=value)

    def _parse_output_statement(self) -> int:
        keyword = self._advance()
        values = self._parse_statement_arguments(f"after {describe_token(keyword)}")
        return self.tree.add(ASTNodeType.OUTPUT_STMT, self._span(keyword, self._previous()), values=values)

    def _parse_input_statement(self) -> int:
        keyword = self._advance()
        targets = self._parse_statement_arguments(f"after {describe_token(keyword)}")
        return self.tree.add(ASTNodeType.INPUT_STMT, self._span(keyword, self._previous()), targets=targets)

    def _parse_statement_arguments(self, context: str) -> List[int]:
        """Comma-separated expressions to the end of the line; ``(...)`` allowed."""
        if self._at_expression_gap():
            return []
        if self._check_punct("(") and not self._peek_continues_after_group():
            self._advance()
            self._paren_depth += 1
            try:
                values = self._parse_arguments(")")
            finally:
                self._paren_depth -= 1
            self._expect_punct(")", "')'")
            return values
        values = [self._expression_or_missing(context)]
        while self._on_same_line() and self._match_punct(","):
            values.append(self._expression_or_missing("after ','"))
        return values

    def _peek_continues_after_group(self) -> bool:
        """True if the expression goes on after a leading parenthesised group."""
        depth = 0
        for i in range(self.current, len(self.tokens)):
            token = self.tokens[i]
            if token.is_punct("("):
                depth += 1
            elif token.is_punct(")"):
                depth -= 1
                if depth == 0:
                    following = self.tokens[i + 1] if i + 1 < len(self.tokens) else None
                    return (following is not None and following.line == token.span.end.line
                            and (following.is_operator or following.is_punct(".", "[")))
        return False

    def _parse_call_statement(self) -> int:
        """Parse ``call name(args)``, ``call name`` or ``call name with a, b``."""
        keyword = self._advance()
        target = self._expression_or_missing("after 'call'")
        node = self.tree.node(target)
        if node.node_type == ASTNodeType.CALL_EXPR:
            node.span = self._span_to(keyword, node.span.end)
            return target

        args: List[int] = []
        token = self._peek()
        if token is not None and self._on_same_line() and token.kind == TokenKind.IDENTIFIER \
                and token.lexeme.lower() == "with":
            self._advance()
            args = self._parse_statement_arguments("after 'with'")
        attrs = {"name": self._callee_name(target)}
        return self.tree.add(ASTNodeType.CALL_EXPR, self._span(keyword, self._previous()), attrs,
                             callee=target, args=args)

    def _parse_jump_statement(self) -> int:
        keyword = self._advance()
        attrs = {"jump": keyword.concept}
        return self.tree.add(ASTNodeType.JUMP_STMT, keyword.span, attrs)

    # ------------------------------------------------------------------
    # Bodies
    # ------------------------------------------------------------------

    def _parse_body(self, header: Token, header_index: Optional[int], family: str, concept: str,
                    inherited: Optional[BlockStyle] = None, stop_at_branch: bool = False,
                    explicit_colon: bool = False) -> Tuple[int, BlockStyle, bool]:
        """
        Parse a construct body in whichever style applies here.

        Returns the Block node, its style, and whether the body closed
        itself (braces, begin/end, dedent, end of line). A keyword body
        that is not self-closed still needs its construct's closer.
        """
        if self._check_kw(Concept.BEGIN) and not self._block_ended():
            begin_token = self._advance()
            block = self._parse_keyword_block("begin", stop_at_branch=False, start_token=begin_token)
            end = self._finish_construct(begin_token, "begin", False, "'begin' block")
            self.tree.node(block).span = self._span_to(begin_token, end)
            return block, BlockStyle.KEYWORD, True

        style = self._select_body_style(header, header_index, concept, inherited, explicit_colon)
        if style == BlockStyle.BRACES:
            block, _ = self._parse_brace_block()
            closer = self._peek()
            if (closer is not None and closer.kind == TokenKind.KEYWORD
                    and CLOSER_FAMILIES.get(closer.concept) == family and not self._block_ended()
                    and not is_assigned_keyword(self.tokens, self.current)):
                self._advance()  # redundant closer after braces
            return block, style, True
        if style == BlockStyle.INDENTATION:
            return self._parse_indented_block(header), style, True
        if style == BlockStyle.INLINE:
            return self._parse_inline_block(stop_at_branch), style, True
        return self._parse_keyword_block(family, stop_at_branch), style, False

    def _select_body_style(self, header: Token, header_index: Optional[int], concept: str,
                           inherited: Optional[BlockStyle], explicit_colon: bool) -> BlockStyle:
        if self._check_punct("{") and not self._block_ended():
            return BlockStyle.BRACES
        if inherited == BlockStyle.KEYWORD:
            return BlockStyle.KEYWORD

        deeper = self._deeper_line_follows(header)
        if self.scope.style_at(header.start) == ScopeStyle.INDENTATION and deeper:
            return BlockStyle.INDENTATION

        matched = self._closers.get(header_index) if header_index is not None else None
        inline_capable = concept in _INLINE_CONSTRUCTS or explicit_colon
        if inline_capable and not self._is_at_end() and self._on_same_line():
            if matched is not None and self.tokens[matched].line == self._previous().span.end.line:
                return BlockStyle.KEYWORD
            return BlockStyle.INLINE
        if matched is not None:
            return BlockStyle.KEYWORD
        # Indentation only wins where no closing keyword is used at all,
        # unless the header ends with a colon
        if deeper and (self._previous().is_punct(":")
                       or self.scope.style_at(header.start) != ScopeStyle.KEYWORD_DELIMITED):
            return BlockStyle.INDENTATION
        return BlockStyle.KEYWORD

    def _deeper_line_follows(self, header: Token) -> bool:
        token = self._peek()
        if token is None or self._on_same_line():
            return False
        return self._indent(token.line) > self._indent(header.line)

    def _parse_brace_block(self) -> Tuple[int, bool]:
        """Parse ``{ ... }``; a missing ``}`` is reported and closed implicitly."""
        left = self._advance()
        self._brace_depth += 1
        try:
            statements = self._parse_statements(
                lambda: self._check_punct("}") or self._closer_wanted() or self._block_ended()
            )
        finally:
            self._brace_depth -= 1
        right = self._match_punct("}")
        if right is None:
            self._report(create_unclosed_construct_finding("'{'", "'}'", left.span))
            span = self._span_to(left, self._implicit_end())
        else:
            span = self._span(left, right)
        attrs = {"style": BlockStyle.BRACES.value}
        return self.tree.add(ASTNodeType.BLOCK, span, attrs, statements=statements), right is not None

    def _parse_keyword_block(self, family: str, stop_at_branch: bool,
                             start_token: Optional[Token] = None) -> int:
        first = self.current
        self._open_families.append(family)
        try:
            statements = self._parse_statements(
                lambda: self._closer_wanted()
                or (self._brace_depth > 0 and self._check_punct("}"))
                or (stop_at_branch and self._check_kw(Concept.ELSE, Concept.ELSE_IF))
                or self._block_ended()
            )
        finally:
            self._open_families.pop()
        attrs = {"style": BlockStyle.KEYWORD.value}
        return self.tree.add(ASTNodeType.BLOCK, self._block_span(first, start_token), attrs,
                             statements=statements)

    def _parse_indented_block(self, header: Token) -> int:
        first = self.current
        self._indent_floors.append(self._indent(header.line))
        try:
            statements = self._parse_statements(
                lambda: self._block_ended()
                or (self._brace_depth > 0 and self._check_punct("}"))
                or self._closer_wanted()
            )
        finally:
            self._indent_floors.pop()
        attrs = {"style": BlockStyle.INDENTATION.value}
        return self.tree.add(ASTNodeType.BLOCK, self._block_span(first), attrs, statements=statements)

    def _parse_inline_block(self, stop_at_branch: bool) -> int:
        first = self.current
        line = self._previous().span.end.line
        statements = self._parse_statements(
            lambda: self._peek().line != line
            or (self._brace_depth > 0 and self._check_punct("}"))
            or self._closer_wanted()
            or (stop_at_branch and self._check_kw(Concept.ELSE, Concept.ELSE_IF))
        )
        attrs = {"style": BlockStyle.INLINE.value}
        return self.tree.add(ASTNodeType.BLOCK, self._block_span(first), attrs, statements=statements)

    def _closer_wanted(self) -> bool:
        """The next token closes a keyword block that is currently open."""
        token = self._peek()
        if token is None or token.kind != TokenKind.KEYWORD or token.concept not in CLOSER_FAMILIES:
            return False
        if is_assigned_keyword(self.tokens, self.current):
            return False
        family = CLOSER_FAMILIES[token.concept]
        if family is None:
            return bool(self._open_families)
        return family in self._open_families

    def _block_ended(self) -> bool:
        """The next token starts a line dedented out of the innermost indented block."""
        if not self._indent_floors or self._is_at_end() or self._on_same_line():
            return False
        return self._indent(self._peek().line) <= self._indent_floors[-1]

    def _finish_construct(self, header: Token, family: str, closed: bool,
                          description: str) -> Optional[SourceLocation]:
        """
        Consume the closer of a keyword-delimited construct.

        Returns where the construct ends, or None when its body closed
        itself. A missing closer is a warning and the construct ends at the
        end of the enclosing block (or of the file).
        """
        if closed:
            return None
        token = self._peek()
        if (token is not None and token.kind == TokenKind.KEYWORD
                and token.concept in CLOSER_FAMILIES
                and CLOSER_FAMILIES[token.concept] in (family, None)
                and token.concept != Concept.UNTIL
                and not is_assigned_keyword(self.tokens, self.current)):
            self._advance()
            if token.is_keyword(Concept.END_FOR) and self._on_same_line() \
                    and self._peek().kind == TokenKind.IDENTIFIER:
                self._advance()  # next i
            return self._previous().span.end

        expected = self._closer_name(family)
        self._report(create_unclosed_construct_finding(description, expected, header.span))
        return self._implicit_end()

    def _implicit_end(self) -> SourceLocation:
        if self._is_at_end():
            return self._end_location
        return self._previous().span.end

    def _closer_name(self, family: str) -> str:
        group = self.registry.group(FAMILY_CLOSERS.get(family, Concept.END))
        surface = group.canonical if group else "end"
        return f"'{surface}'"

    @staticmethod
    def _describe(kind: str, name: Optional[str]) -> str:
        return f"{kind} '{name}'" if name else kind

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _parse_expression(self) -> int:
        """Parse an expression using Pratt parsing."""
        return self._parse_precedence(Precedence.ASSIGNMENT)

    def _parse_condition(self, context: str) -> int:
        """Parse a condition, where a bare ``=`` means equality."""
        self._condition_depth += 1
        try:
            return self._expression_or_missing(context)
        finally:
            self._condition_depth -= 1

    def _expression_or_missing(self, context: str) -> int:
        """
        Parse an expression, or stand in an Unknown node for it.

        A missing expression becomes an empty Unknown node; one that cannot
        start becomes an Unknown node over the tokens skipped up to the next
        expression boundary on the line.
        """
        if self._at_expression_gap():
            found = self._peek() if self._on_same_line() else None
            span = found.span if found is not None else self._empty_span()
            self._report(create_missing_expression_finding(context, found, span))
            return self._empty_unknown("P005")

        checkpoint = len(self.tree)
        start = self.current
        try:
            return self._parse_expression()
        except ParseError as e:
            self.tree.truncate(checkpoint)
            self._report(e.finding)
            line = e.token.line if e.token is not None else None
            while (not self._is_at_end() and self._peek().line == line
                   and not self._is_expression_boundary(self._peek())):
                self._advance()
            if self.current == start:
                return self._empty_unknown("P005")
            return self._unknown(self.tokens[start], self._previous(), "P005")

    @staticmethod
    def _is_expression_boundary(token: Token) -> bool:
        if token.is_punct(",", ")", "]", "}", ";", "{", ":"):
            return True
        return token.kind == TokenKind.KEYWORD

    def _at_expression_gap(self) -> bool:
        """Nothing that could be an expression follows."""
        token = self._peek()
        if token is None:
            return True
        if self._paren_depth == 0 and not self._on_same_line():
            return True
        if self._prefix_parser(token) is not None:
            return False
        return token.kind == TokenKind.KEYWORD or token.is_punct(";", "}", ")", "]", ",", "{")

    def _parse_precedence(self, precedence: Precedence) -> int:
        """Parse expression with given minimum precedence."""
        token = self._peek()
        prefix_parser = self._prefix_parser(token) if token is not None else None
        if prefix_parser is None:
            previous = self._previous()
            context = f"after {describe_token(previous)}" if previous else "here"
            span = token.span if token is not None else self._empty_span()
            raise ParseError(create_missing_expression_finding(context, token, span), token)
        if self._nesting >= MAX_NESTING:
            raise ParseError(create_nesting_too_deep_finding(token), token)
        self._nesting += 1
        try:
            left = prefix_parser()
            return self._parse_infix(left, precedence)
        finally:
            self._nesting -= 1

    def _parse_infix(self, left: int, precedence: Precedence) -> int:
        folded = 0
        while not self._is_at_end():
            if self._paren_depth == 0 and not self._on_same_line():
                break
            token = self._peek()
            infix_parser, token_precedence = self._infix_parser(token)
            if infix_parser is None or token_precedence < precedence:
                break
            folded += 1
            if self._nesting + folded > MAX_EXPRESSION_DEPTH:
                raise ParseError(create_nesting_too_deep_finding(token), token)
            left = infix_parser(left)
        return left

    def _prefix_parser(self, token: Token) -> Optional[Callable[[], int]]:
        if token.kind == TokenKind.LITERAL:
            return self._parse_literal
        if token.kind == TokenKind.IDENTIFIER:
            return self._parse_identifier
        if token.kind == TokenKind.PUNCTUATION:
            return self.punct_prefix_parsers.get(token.lexeme)
        if token.is_operator and token.value in PREFIX_OPERATORS:
            return self._parse_unary
        if token.kind == TokenKind.KEYWORD and token.concept not in _RESERVED_NAME_CONCEPTS \
                and self._peek_is_punct(1, "(") and self._peek_same_line(1):
            return self._parse_identifier
        return None

    def _infix_parser(self, token: Token) -> Tuple[Optional[Callable[[int], int]], Precedence]:
        if token.kind == TokenKind.PUNCTUATION:
            parser = self.punct_infix_parsers.get(token.lexeme)
            return parser, (Precedence.CALL if parser else Precedence.NONE)
        if token.is_operator:
            kind = token.value
            if kind == OperatorKind.ASSIGN:
                if self._condition_depth:
                    return self._parse_binary, Precedence.EQUALITY
                return self._parse_assignment, Precedence.ASSIGNMENT
            if kind in (OperatorKind.INCREMENT, OperatorKind.DECREMENT):
                return self._parse_postfix, Precedence.CALL
            if kind in OPERATOR_PRECEDENCE:
                return self._parse_binary, OPERATOR_PRECEDENCE[kind]
        if token.is_keyword(Concept.IN):
            return self._parse_binary, Precedence.COMPARISON
        return None, Precedence.NONE

    # Prefix parsers

    def _parse_literal(self) -> int:
        token = self._advance()
        value = token.value
        if isinstance(value, bool):
            literal_type = "boolean"
        elif value is None:
            literal_type = "null"
        elif isinstance(value, str):
            literal_type = "string"
        else:
            literal_type = "number"
        attrs = {"value": value, "literal_type": literal_type}
        return self.tree.add(ASTNodeType.LITERAL, token.span, attrs)

    def _parse_identifier(self) -> int:
        return self._identifier_from(self._advance())

    def _identifier_from(self, token: Token) -> int:
        return self.tree.add(ASTNodeType.IDENTIFIER, token.span, {"name": token.lexeme})

    def _parse_unary(self) -> int:
        operator_token = self._advance()
        operator = PREFIX_OPERATORS[operator_token.value]
        operand = self._operand_or_missing(Precedence.UNARY, operator_token)
        span = self._span_to(operator_token, self.tree.node(operand).span.end)
        attrs = {"operator": operator.value, "postfix": False}
        return self.tree.add(ASTNodeType.UNARY_EXPR, span, attrs, operand=operand)

    def _parse_grouping(self) -> int:
        self._advance()  # Consume (
        self._paren_depth += 1
        try:
            inner = self._expression_or_missing("inside parentheses")
        finally:
            self._paren_depth -= 1
        self._expect_punct(")", "')'")
        return inner

    def _parse_list(self) -> int:
        left = self._advance()  # Consume [
        self._paren_depth += 1
        try:
            elements = self._parse_arguments("]")
        finally:
            self._paren_depth -= 1
        self._expect_punct("]", "']'")
        return self.tree.add(ASTNodeType.LIST_EXPR, self._span(left, self._previous()), elements=elements)

    # Infix parsers

    def _parse_binary(self, left: int) -> int:
        operator_token = self._advance()
        operator = self._operator_kind(operator_token)
        precedence = OPERATOR_PRECEDENCE[operator]
        if operator == OperatorKind.POW:
            # Right associative
            right = self._operand_or_missing(precedence, operator_token)
        else:
            right = self._operand_or_missing(Precedence(precedence + 1), operator_token)
        return self._binary(left, operator, right)

    def _parse_assignment(self, left: int) -> int:
        operator_token = self._advance()
        right = self._operand_or_missing(Precedence.ASSIGNMENT, operator_token)
        return self._binary(left, OperatorKind.ASSIGN, right)

    def _parse_postfix(self, left: int) -> int:
        operator_token = self._advance()
        span = SourceSpan(self.tree.node(left).span.start, operator_token.span.end)
        attrs = {"operator": operator_token.value.value, "postfix": True}
        return self.tree.add(ASTNodeType.UNARY_EXPR, span, attrs, operand=left)

    def _parse_call(self, callee: int) -> int:
        self._advance()  # Consume (
        self._paren_depth += 1
        try:
            args = self._parse_arguments(")")
        finally:
            self._paren_depth -= 1
        self._expect_punct(")", "')' after arguments")
        span = SourceSpan(self.tree.node(callee).span.start, self._previous().span.end)
        attrs = {"name": self._callee_name(callee)}
        return self.tree.add(ASTNodeType.CALL_EXPR, span, attrs, callee=callee, args=args)

    def _parse_index(self, target: int) -> int:
        self._advance()  # Consume [
        self._paren_depth += 1
        try:
            index = self._expression_or_missing("as index")
        finally:
            self._paren_depth -= 1
        self._expect_punct("]", "']' after index")
        return self._binary(target, OperatorKind.INDEX, index, end=self._previous().span.end)

    def _parse_member(self, target: int) -> int:
        self._advance()  # Consume .
        token = self._peek()
        if token is None or not self._on_same_line() or not self._is_name_token(token):
            self._report_missing("member name")
            return target
        member = self._identifier_from(self._advance())
        return self._binary(target, OperatorKind.MEMBER, member)

    def _parse_arguments(self, closer: str) -> List[int]:
        args: List[int] = []
        if self._check_punct(closer):
            return args
        while True:
            args.append(self._expression_or_missing("in argument list"))
            if not self._match_punct(","):
                break
        return args

    def _operand_or_missing(self, precedence: Precedence, operator_token: Token) -> int:
        if self._at_expression_gap():
            found = self._peek() if self._on_same_line() else None
            span = found.span if found is not None else self._empty_span()
            self._report(create_missing_expression_finding(
                f"after {describe_token(operator_token)}", found, span,
            ))
            return self._empty_unknown("P005")
        return self._parse_precedence(precedence)

    def _binary(self, left: int, operator: OperatorKind, right: int,
                end: Optional[SourceLocation] = None) -> int:
        start = self.tree.node(left).span.start
        end = end or max(self.tree.node(right).span.end, self._previous().span.end,
                         key=lambda loc: loc.offset)
        attrs = {"operator": operator.value}
        return self.tree.add(ASTNodeType.BINARY_EXPR, SourceSpan(start, end), attrs, left=left, right=right)

    def _operator_kind(self, token: Token) -> OperatorKind:
        if token.is_keyword(Concept.IN):
            return OperatorKind.IN
        if token.value == OperatorKind.ASSIGN and self._condition_depth:
            return OperatorKind.EQ
        return token.value

    def _callee_name(self, callee: int) -> Optional[str]:
        node = self.tree.node(callee)
        if node.node_type == ASTNodeType.IDENTIFIER:
            return node.get("name")
        if node.node_type == ASTNodeType.BINARY_EXPR and node.get("operator") == OperatorKind.MEMBER.value:
            member = self.tree.child(callee, "right")
            return member.get("name") if member is not None else None
        return None

    # ------------------------------------------------------------------
    # Nodes and spans
    # ------------------------------------------------------------------

    def _unknown(self, first: Token, last: Token, reason: str) -> int:
        return self.tree.add(ASTNodeType.UNKNOWN, self._span(first, last), {"reason": reason})

    def _empty_unknown(self, reason: str) -> int:
        return self.tree.add(ASTNodeType.UNKNOWN, self._empty_span(), {"reason": reason})

    def _empty_span(self) -> SourceSpan:
        """Zero-width span just after the last consumed token."""
        previous = self._previous()
        location = previous.span.end if previous is not None else self._start_location
        return SourceSpan(location, location)

    @staticmethod
    def _span(first: Token, last: Token) -> SourceSpan:
        return SourceSpan(first.span.start, last.span.end)

    def _span_to(self, first: Token, end: Optional[SourceLocation]) -> SourceSpan:
        if end is None:
            end = self._previous().span.end
        return SourceSpan(first.span.start, end)

    def _block_span(self, first_index: int, start_token: Optional[Token] = None) -> SourceSpan:
        if self.current > first_index:
            start = start_token.span.start if start_token else self.tokens[first_index].span.start
            return SourceSpan(start, self._previous().span.end)
        return self._empty_span()

    def _report(self, finding: Finding):
        self.findings.append(finding)

    def _report_missing(self, expected: str):
        found = self._peek() if self._on_same_line() else None
        span = found.span if found is not None else self._empty_span()
        self._report(create_missing_token_finding(expected, found, span))

    # ------------------------------------------------------------------
    # Utility methods
    # ------------------------------------------------------------------

    def _indent(self, line: int) -> int:
        return self._line_indents.get(line, 0)

    def _is_at_end(self) -> bool:
        return self.current >= len(self.tokens)

    def _peek(self, offset: int = 0) -> Optional[Token]:
        """Return a token ahead without consuming it (None past the end)."""
        index = self.current + offset
        if index < len(self.tokens):
            return self.tokens[index]
        return None

    def _previous(self) -> Optional[Token]:
        if self.current > 0:
            return self.tokens[self.current - 1]
        return None

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self.tokens[self.current]
        self.current += 1
        return token

    def _on_same_line(self) -> bool:
        """The next token sits on the line where the previous one ends."""
        token = self._peek()
        if token is None:
            return False
        previous = self._previous()
        return previous is None or token.line == previous.span.end.line

    def _peek_same_line(self, offset: int) -> bool:
        token = self._peek(offset)
        before = self._peek(offset - 1)
        return token is not None and before is not None and token.line == before.span.end.line

    def _peek_kind(self, offset: int) -> Optional[TokenKind]:
        token = self._peek(offset)
        return token.kind if token is not None else None

    def _peek_is_punct(self, offset: int, lexeme: str) -> bool:
        token = self._peek(offset)
        return token is not None and token.is_punct(lexeme)

    def _peek_is_kw(self, offset: int, concept: str) -> bool:
        token = self._peek(offset)
        return token is not None and token.is_keyword(concept)

    def _peek_is_name(self, offset: int) -> bool:
        token = self._peek(offset)
        return token is not None and self._is_name_token(token)

    def _check_kw(self, *concepts: str) -> bool:
        token = self._peek()
        return token is not None and token.is_keyword(*concepts)

    def _match_kw(self, *concepts: str) -> Optional[Token]:
        if self._check_kw(*concepts):
            return self._advance()
        return None

    def _check_punct(self, *lexemes: str) -> bool:
        token = self._peek()
        return token is not None and token.is_punct(*lexemes)

    def _match_punct(self, *lexemes: str) -> Optional[Token]:
        if self._check_punct(*lexemes):
            return self._advance()
        return None

    def _match_op(self, *kinds: OperatorKind) -> Optional[Token]:
        token = self._peek()
        if token is not None and token.is_op(*kinds):
            return self._advance()
        return None

    def _expect_punct(self, lexeme: str, description: str) -> Optional[Token]:
        """Consume ``lexeme`` or report it missing; never raises."""
        token = self._match_punct(lexeme)
        if token is None:
            self._report_missing(description)
        return token

    @staticmethod
    def _is_name_token(token: Token) -> bool:
        if token.kind == TokenKind.IDENTIFIER:
            return True
        if token.kind == TokenKind.KEYWORD:
            return token.concept not in _RESERVED_NAME_CONCEPTS
        return token.kind == TokenKind.NATURAL_OPERATOR and " " not in token.lexeme

    def _consume_name(self, description: str) -> Optional[Token]:
        """Consume a name, accepting keywords in name position."""
        token = self._peek()
        if token is not None and self._on_same_line() and self._is_name_token(token):
            return self._advance()
        self._report_missing(description)
        return None


def parse_string(source: str, registry: Optional[KeywordRegistry] = None,
                 tab_width: int = DEFAULT_TAB_WIDTH) -> Tuple[SyntaxTree, List[Finding]]:
    """
    Convenience function to tokenize and parse a source string.

    Returns:
        The syntax tree and all findings (tokenizer first, then parser).
    """
    from ..lexer.lexer import tokenize

    tokens, lexer_findings = tokenize(source, registry)
    scope = ScopeStyleDetector(tab_width).report(tokens)
    tree, parser_findings = Parser(tokens, scope, registry, tab_width).parse()
    return tree, lexer_findings + parser_findings
