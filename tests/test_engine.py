"""
Test suite for the analysis engine.

Tests cover:
- Totality and determinism of analysis
- Synonym normalisation and scope-style examples end to end
- Recovery and fatal-error isolation
- Completion through (line, column) positions
"""

import json
import unittest
import sys
import os

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from pseudoscript import AnalysisConfig, AnalysisEngine
from pseudoscript.analyzer.completion import CompletionKind
from pseudoscript.lexer.errors import Severity
from pseudoscript.lexer.keywords import default_registry
from pseudoscript.parser import ASTNodeType, ScopeStyle


MALFORMED_INPUTS = [
    "",
    "\n\n\n",
    "\t\t  ",
    "\x00\x1b[31m\ufffd",
    "if if if then then else else",
    "function function function",
    "}}}}{{{{",
    "end end if end for next until",
    "x = (1 + [2, (3 * 4]) )",
    "for each in do while repeat",
    "\"unterminated\n'also\n`multi",
    "/* nested /* comment",
    "print 1 +",
    "a..b",
    "call call call",
    "var var var = = =",
    "  if x:\n      y\n    z\n  w\n      v",
    "begin begin end",
    "do { } while",
    "repeat until until",
    "x = " + "9" * 5000,
    "y = 1e999 + 0x" + "F" * 5000,
]


class TestAnalysisProperties(unittest.TestCase):
    """Test cases for the whole-pipeline guarantees."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = AnalysisEngine()

    def test_totality(self):
        """Test that any text produces a tree and a diagnostic list."""
        for text in MALFORMED_INPUTS:
            with self.subTest(text=text):
                result = self.engine.analyze(text, version=1)
                self.assertEqual(result.tree.program.node_type, ASTNodeType.PROGRAM)
                self.assertEqual(result.tree.program.end, len(text))
                self.assertIsInstance(result.diagnostics, list)
                json.dumps(result.to_dict(), allow_nan=False)

    def test_determinism(self):
        """Test that analysing the same text twice is identical."""
        for text in MALFORMED_INPUTS + ["function test() { return true }"]:
            with self.subTest(text=text):
                first = self.engine.analyze(text, version=3).to_dict()
                second = self.engine.analyze(text, version=3).to_dict()
                self.assertEqual(json.dumps(first, sort_keys=True), json.dumps(second, sort_keys=True))

    def test_synonym_normalisation(self):
        """Test that every function synonym analyses cleanly to a FunctionDecl."""
        for surface in default_registry().group("function").surfaces:
            with self.subTest(surface=surface):
                result = self.engine.analyze(f"{surface} test() {{ return true }}")
                self.assertEqual(result.diagnostics, [])
                self.assertEqual(len(result.tree.find(ASTNodeType.FUNCTION_DECL)), 1)

    def test_scope_style_examples(self):
        """Test the three canonical block conventions."""
        cases = [
            ("function test() { return true }", ScopeStyle.BRACES),
            ("function test() return true endfunction", ScopeStyle.KEYWORD_DELIMITED),
            ("function test():\n    return true", ScopeStyle.INDENTATION),
        ]
        for text, style in cases:
            with self.subTest(text=text):
                result = self.engine.analyze(text)
                self.assertEqual(result.scope.file_style, style)
                self.assertEqual(result.diagnostics, [])

    def test_recovery_from_missing_closer(self):
        """Test that a missing closer yields one warning and an implicit close."""
        text = "function test() var x to 1"
        result = self.engine.analyze(text)
        self.assertEqual(len(result.diagnostics), 1)
        self.assertEqual(result.diagnostics[0].severity, Severity.WARNING)
        self.assertFalse(result.has_errors)
        fn = result.tree.find(ASTNodeType.FUNCTION_DECL)[0]
        self.assertEqual(fn.end, len(text))

    def test_fatal_error_isolation(self):
        """Test that an unterminated string is the only Error and parsing continues."""
        result = self.engine.analyze('log "unterminated')
        self.assertEqual(len(result.diagnostics), 1)
        self.assertEqual(result.diagnostics[0].severity, Severity.ERROR)
        self.assertEqual(result.diagnostics[0].code, "L001")
        self.assertTrue(result.has_errors)

        result = self.engine.analyze('log "unterminated\nprint 1')
        self.assertEqual([d.code for d in result.diagnostics], ["L001"])
        self.assertEqual(len(result.tree.find(ASTNodeType.OUTPUT_STMT)), 2)

    def test_to_dict_contract(self):
        """Test the serialised analysis result."""
        result = self.engine.analyze("x = ", version=7)
        data = result.to_dict()
        self.assertEqual(data["version"], 7)
        self.assertEqual(data["ast"]["kind"], "Program")
        self.assertEqual(data["diagnostics"][0]["code"], "P005")
        self.assertEqual(data["scope_style"]["file_style"], "Mixed")


class TestEngineCompletion(unittest.TestCase):
    """Test cases for completion through the engine."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = AnalysisEngine()

    def test_completion_ranking(self):
        """Test that 'fun' ranks keyword matches before snippets and variables."""
        result = self.engine.analyze("fun")
        items = self.engine.complete(result, 0, 3)
        self.assertEqual(items[0].label, "function")
        kinds = [item.kind for item in items]
        self.assertLess(kinds.index(CompletionKind.KEYWORD), kinds.index(CompletionKind.SNIPPET))

    def test_position_is_clamped(self):
        """Test that positions past the text are clamped, not rejected."""
        result = self.engine.analyze("var count = 1\nco")
        items = self.engine.complete(result, 99, 99)
        self.assertIn("count", [item.label for item in items])

    def test_complete_text(self):
        """Test the analyse-and-complete shortcut."""
        items = self.engine.complete_text("var value = 1\nprint va", 1, 8)
        self.assertEqual([item.label for item in items if item.kind == CompletionKind.VARIABLE], ["value"])


class TestEngineConfiguration(unittest.TestCase):
    """Test cases for configured engines."""

    def test_extra_keyword_group(self):
        """Test that configured synonyms are recognised."""
        config = AnalysisConfig.from_dict({
            "extra_keyword_groups": [{"concept": "output", "surfaces": ["afficher"]}],
        })
        engine = AnalysisEngine(config)
        result = engine.analyze('afficher "bonjour"')
        self.assertEqual(result.diagnostics, [])
        self.assertEqual(len(result.tree.find(ASTNodeType.OUTPUT_STMT)), 1)

    def test_max_completion_items(self):
        """Test that the configured cap applies."""
        engine = AnalysisEngine(AnalysisConfig(max_completion_items=2))
        self.assertEqual(len(engine.complete_text("", 0, 0)), 2)


if __name__ == '__main__':
    unittest.main()
