"""
Test suite for the snippet library.

Tests cover:
- Loading the bundled library
- Placeholder parsing
- Validation of editor-format entries and files
"""

import json
import os
import sys
import tempfile
import unittest

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from pseudoscript.analyzer.snippets import (
    Placeholder, SnippetLibrary, SnippetLibraryError, default_library,
    parse_placeholders, snippet_from_dict,
)


class TestBundledLibrary(unittest.TestCase):
    """Test cases for the default snippet file."""

    def test_default_library_loads(self):
        """Test that the bundled snippets load and cover core constructs."""
        library = default_library()
        self.assertGreater(len(library), 0)
        for name in ("Function", "If", "For Range", "While", "Repeat Until"):
            self.assertIn(name, library.names)

    def test_matching(self):
        """Test prefix matching over triggers."""
        library = default_library()
        names = [s.name for s in library.matching("fun")]
        self.assertEqual(names, ["Function"])
        self.assertEqual(len(library.matching("")), len(library))

    def test_list_body_joined_with_newlines(self):
        """Test that list bodies become multi-line templates."""
        snippet = next(s for s in default_library() if s.name == "If")
        self.assertEqual(snippet.body, "if ${1:condition} then\n\t$0\nend if")


class TestPlaceholders(unittest.TestCase):
    """Test cases for placeholder parsing."""

    def test_parse_placeholders(self):
        """Test tab stops with and without defaults."""
        self.assertEqual(parse_placeholders("${1:name} = ${2} $0"), (
            Placeholder(1, "name", 0),
            Placeholder(2, "", 12),
            Placeholder(0, "", 17),
        ))

    def test_no_placeholders(self):
        """Test plain text templates."""
        self.assertEqual(parse_placeholders("end if"), ())


class TestSnippetValidation(unittest.TestCase):
    """Test cases for malformed snippet data."""

    def test_prefix_string_or_list(self):
        """Test that a single prefix string is accepted."""
        snippet = snippet_from_dict("Loop", {"prefix": "loop", "body": "loop $0"})
        self.assertEqual(snippet.prefixes, ("loop",))
        self.assertTrue(snippet.exact("LOOP"))
        self.assertTrue(snippet.matches("lo"))

    def test_missing_prefix(self):
        """Test that a snippet needs a trigger."""
        with self.assertRaises(SnippetLibraryError):
            snippet_from_dict("Bad", {"body": "x"})
        with self.assertRaises(SnippetLibraryError):
            snippet_from_dict("Bad", {"prefix": [""], "body": "x"})

    def test_bad_body(self):
        """Test that the body must be text."""
        with self.assertRaises(SnippetLibraryError):
            snippet_from_dict("Bad", {"prefix": "b", "body": 42})

    def test_load_invalid_json(self):
        """Test that a broken file reports its path."""
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "snippets.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{ not json")
            with self.assertRaises(SnippetLibraryError) as ctx:
                SnippetLibrary.load(path)
            self.assertIn("snippets.json", str(ctx.exception))

    def test_load_missing_file(self):
        """Test that a missing file is a library error."""
        with self.assertRaises(SnippetLibraryError):
            SnippetLibrary.load("/nonexistent/snippets.json")

    def test_load_custom_file(self):
        """Test loading a user snippet file."""
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "mine.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"Hello": {"prefix": ["hi"], "body": "print \"hi\""}}, f)
            library = SnippetLibrary.load(path)
        self.assertEqual(library.names, ["Hello"])


if __name__ == '__main__':
    unittest.main()
