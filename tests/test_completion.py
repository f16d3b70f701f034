"""
Test suite for the completion provider.

Tests cover:
- Ranking: prefix matches first, then keywords, snippets, variables
- Suppression inside comments, strings and numbers
- Scope-chain variable visibility
- Statement position versus mid-expression suggestions
"""

import unittest
import sys
import os

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from pseudoscript.analyzer.completion import (
    CompletionKind, CompletionProvider, cursor_context, match_quality, MatchQuality,
    visible_names,
)
from pseudoscript.lexer.lexer import tokenize
from pseudoscript.lexer.tokens import LineIndex
from pseudoscript.parser import parse_string


def complete_at(source, offset=None, **kwargs):
    """Complete at ``offset`` (end of text by default)."""
    if offset is None:
        offset = len(source)
    tokens, _ = tokenize(source)
    tree, _ = parse_string(source)
    cursor = LineIndex(source).location(offset)
    return CompletionProvider(**kwargs).complete(tree, tokens, cursor)


def names_at(source, offset):
    tree, _ = parse_string(source)
    return [name for name, _ in visible_names(tree, offset)]


class TestRanking(unittest.TestCase):
    """Test cases for candidate ranking."""

    def test_keyword_prefix_ranks_first(self):
        """Test that 'fun' offers 'function' before any snippet or variable."""
        items = complete_at("fun")
        self.assertEqual(items[0].label, "function")
        self.assertEqual(items[0].kind, CompletionKind.KEYWORD)

        first_other = min(i for i, item in enumerate(items) if item.kind != CompletionKind.KEYWORD)
        for position, item in enumerate(items):
            if item.kind == CompletionKind.KEYWORD and item.label.startswith("fun"):
                self.assertLess(position, first_other)

    def test_snippet_follows_keyword(self):
        """Test that the matching snippet is offered with its placeholders."""
        items = complete_at("fun")
        snippets = [item for item in items if item.kind == CompletionKind.SNIPPET]
        self.assertEqual(snippets[0].label, "func")
        self.assertEqual(snippets[0].placeholders[0].index, 1)
        self.assertEqual(snippets[0].placeholders[0].default, "name")

    def test_sort_priority_is_final_position(self):
        """Test that sort priorities are the final order."""
        items = complete_at("fun")
        self.assertEqual([item.sort_priority for item in items], list(range(len(items))))

    def test_containment_ranks_after_prefix(self):
        """Test that substring matches trail prefix matches."""
        items = complete_at("fun")
        labels = [item.label for item in items]
        self.assertIn("endfunction", labels)
        self.assertGreater(labels.index("endfunction"), labels.index("func"))

    def test_max_items(self):
        """Test that the result list is capped."""
        items = complete_at("", max_items=3)
        self.assertEqual(len(items), 3)

    def test_variables_after_keywords(self):
        """Test that visible variables are ranked after keywords of equal quality."""
        source = "var total = 0\nvar toast = 1\nto"
        items = complete_at(source)
        labels = [item.label for item in items]
        self.assertLess(labels.index("to"), labels.index("total"))
        self.assertLess(labels.index("total"), labels.index("toast"))
        kinds = {item.label: item.kind for item in items}
        self.assertEqual(kinds["total"], CompletionKind.VARIABLE)


class TestContext(unittest.TestCase):
    """Test cases for cursor context and suppression."""

    def test_no_completion_inside_comment(self):
        """Test that comments suppress completion."""
        self.assertEqual(complete_at("// fun"), [])
        self.assertEqual(complete_at("/* fun */", offset=6), [])

    def test_completion_after_block_comment(self):
        """Test that the end of a closed block comment is not inside it."""
        self.assertNotEqual(complete_at("/* note */"), [])

    def test_no_completion_inside_string(self):
        """Test that strings suppress completion."""
        self.assertEqual(complete_at('print "fun'), [])
        self.assertEqual(complete_at('print "fun"', offset=9), [])

    def test_no_completion_in_number(self):
        """Test that numbers suppress completion."""
        self.assertEqual(complete_at("x = 12"), [])

    def test_operators_mid_statement(self):
        """Test that operator phrases are offered inside an expression."""
        items = complete_at("if x gre")
        labels = [item.label for item in items]
        self.assertIn("greater than", labels)
        self.assertNotIn(CompletionKind.SNIPPET, [item.kind for item in items])

    def test_no_operators_at_statement_start(self):
        """Test that operator phrases are not offered where a statement begins."""
        items = complete_at("x = 1\ngre")
        self.assertNotIn("greater than", [item.label for item in items])

    def test_cursor_context_prefix(self):
        """Test prefix extraction from the touching word."""
        source = "print total"
        tokens, _ = tokenize(source)
        context = cursor_context(tokens, LineIndex(source).location(9))
        self.assertEqual(context.prefix, "tot")
        self.assertFalse(context.statement_start)
        self.assertFalse(context.suppressed)

    def test_match_quality(self):
        """Test match quality grading."""
        self.assertEqual(match_quality("function", "FUN"), MatchQuality.PREFIX)
        self.assertEqual(match_quality("endfunction", "fun"), MatchQuality.CONTAINS)
        self.assertIsNone(match_quality("while", "fun"))
        self.assertEqual(match_quality("anything", ""), MatchQuality.PREFIX)


class TestVisibleNames(unittest.TestCase):
    """Test cases for scope-chain variable visibility."""

    SOURCE = (
        "function f(a, b)\n"
        "    var total = 0\n"
        "    for i = 1 to 10\n"
        "        t\n"
        "    end for\n"
        "    x\n"
        "end function\n"
        "var outside = 1\n"
    )

    def test_names_inside_loop(self):
        """Test parameters, locals and the loop variable inside a loop."""
        offset = self.SOURCE.index("        t\n") + 9
        names = names_at(self.SOURCE, offset)
        self.assertEqual(set(names), {"a", "b", "f", "total", "i"})

    def test_loop_variable_not_visible_after_loop(self):
        """Test that a loop variable is scoped to its loop."""
        offset = self.SOURCE.index("    x\n") + 5
        names = names_at(self.SOURCE, offset)
        self.assertIn("total", names)
        self.assertNotIn("i", names)

    def test_later_declarations_hidden(self):
        """Test that variables declared after the cursor are not offered."""
        offset = self.SOURCE.index("    x\n") + 5
        self.assertNotIn("outside", names_at(self.SOURCE, offset))
        self.assertIn("outside", names_at(self.SOURCE, len(self.SOURCE)))

    def test_function_locals_hidden_outside(self):
        """Test that a function's locals are not visible at top level."""
        names = names_at(self.SOURCE, len(self.SOURCE))
        self.assertIn("f", names)
        self.assertNotIn("total", names)
        self.assertNotIn("a", names)

    def test_assignment_and_input_targets(self):
        """Test that assigned and input names count as declarations."""
        source = "count = 1\ninput name\n"
        self.assertEqual(names_at(source, len(source)), ["count", "name"])

    def test_typed_prefix_filters_variables(self):
        """Test that variables are filtered by the typed prefix."""
        items = complete_at(self.SOURCE, offset=self.SOURCE.index("        t\n") + 9)
        variables = [item.label for item in items if item.kind == CompletionKind.VARIABLE]
        self.assertEqual(variables, ["total"])


if __name__ == '__main__':
    unittest.main()
