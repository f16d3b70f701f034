"""
Analysis engine.

The stateless core behind the two editor operations: ``analyze`` turns a
(text, version) pair into tokens, a scope report, a syntax tree and
diagnostics; ``complete`` turns a completed analysis plus a cursor into
ranked suggestions. Nothing is cached between calls.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .analyzer.completion import CompletionItem, CompletionProvider
from .analyzer.diagnostics import Diagnostic, classify, has_errors
from .config import AnalysisConfig
from .lexer.errors import Finding
from .lexer.lexer import Lexer
from .lexer.tokens import LineIndex, Token
from .parser.ast_nodes import SyntaxTree
from .parser.parser import Parser
from .parser.scope_style import ScopeReport, ScopeStyleDetector

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Everything derived from one document version."""
    text: str
    version: int
    tokens: List[Token]
    scope: ScopeReport
    tree: SyntaxTree
    findings: List[Finding]
    diagnostics: List[Diagnostic]
    elapsed: float = 0.0
    line_index: LineIndex = field(init=False, repr=False)

    def __post_init__(self):
        self.line_index = LineIndex(self.text)

    @property
    def has_errors(self) -> bool:
        return has_errors(self.diagnostics)

    def to_dict(self) -> Dict[str, Any]:
        """AST and diagnostics in the editor data contract."""
        return {
            "version": self.version,
            "scope_style": self.scope.to_dict(),
            "ast": self.tree.to_dict(),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


class AnalysisEngine:
    """
    Analyze and complete documents with one configuration.

    The keyword registry and snippet library are built once here and shared
    read-only by every call.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()
        self.registry = self.config.build_registry()
        self.snippets = self.config.load_snippets()
        self.detector = ScopeStyleDetector(self.config.tab_width)
        self.completion = CompletionProvider(
            self.registry, self.snippets, self.config.max_completion_items,
        )

    def analyze(self, text: str, version: int = 0) -> AnalysisResult:
        """Analyze one document version. Never raises for any input text."""
        started = time.perf_counter()

        lexer = Lexer(text, self.registry)
        tokens = lexer.tokenize()
        scope = self.detector.report(tokens)
        tree, parser_findings = Parser(tokens, scope, self.registry, self.config.tab_width).parse()
        findings = lexer.findings + parser_findings
        diagnostics = classify(findings)

        elapsed = time.perf_counter() - started
        logger.debug("Analyzed version %d: %d tokens, %d nodes, %d diagnostics, style %s in %.2f ms",
                     version, len(tokens), len(tree), len(diagnostics),
                     scope.file_style.value, elapsed * 1000)
        return AnalysisResult(text, version, tokens, scope, tree, findings, diagnostics, elapsed)

    def complete(self, result: AnalysisResult, line: int, column: int) -> List[CompletionItem]:
        """
        Suggestions at a 0-based (line, column) of the analysed text.

        Positions past the end of a line or of the text are clamped.
        """
        cursor = result.line_index.location(result.line_index.offset(line, column))
        return self.completion.complete(result.tree, result.tokens, cursor)

    def complete_text(self, text: str, line: int, column: int, version: int = 0) -> List[CompletionItem]:
        """Analyze ``text`` and complete at a position in it."""
        return self.complete(self.analyze(text, version), line, column)
