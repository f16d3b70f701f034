"""
Test suite for the pseudoscript keyword registry.

Tests cover:
- Case-insensitive exact resolution of surface keywords
- Longest match for multi-word surfaces
- Registration invariants (unique concepts and surfaces, frozen registry)
- Additive configuration groups
"""

import unittest
import sys
import os

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from pseudoscript.lexer.errors import RegistryError
from pseudoscript.lexer.keywords import (
    Concept, KeywordCategory, KeywordGroup, KeywordRegistry,
    build_registry, default_registry, group_from_dict,
)
from pseudoscript.lexer.tokens import OperatorKind


class TestKeywordRegistry(unittest.TestCase):
    """Test cases for keyword resolution."""

    def setUp(self):
        """Set up test fixtures."""
        self.registry = default_registry()

    def test_resolve_is_case_insensitive(self):
        """Test that any casing of a surface resolves to its concept."""
        self.assertEqual(self.registry.resolve("FUNC"), Concept.FUNCTION)
        self.assertEqual(self.registry.resolve("Def"), Concept.FUNCTION)
        self.assertEqual(self.registry.resolve("End If"), Concept.END_IF)
        self.assertEqual(self.registry.resolve("end   if"), Concept.END_IF)

    def test_resolve_is_exact_not_substring(self):
        """Test that words merely containing a keyword do not resolve."""
        self.assertIsNone(self.registry.resolve("functions"))
        self.assertIsNone(self.registry.resolve("printer"))
        self.assertIsNone(self.registry.resolve("notify"))

    def test_longest_match_wins(self):
        """Test that 'for each' beats 'for' and 'for' alone still matches."""
        group, count = self.registry.match(["for", "each", "x"])
        self.assertEqual(group.concept, Concept.FOR_EACH)
        self.assertEqual(count, 2)

        group, count = self.registry.match(["for", "i"])
        self.assertEqual(group.concept, Concept.FOR)
        self.assertEqual(count, 1)

    def test_natural_operator_phrases(self):
        """Test that operator phrases are registered as operator groups."""
        group, count = self.registry.match(["is", "greater", "than", "or", "equal", "to"])
        self.assertEqual(group.category, KeywordCategory.OPERATOR)
        self.assertEqual(group.operator, OperatorKind.GE)
        self.assertEqual(count, 6)

        group, count = self.registry.match(["is", "x"])
        self.assertEqual(group.operator, OperatorKind.EQ)
        self.assertEqual(count, 1)

    def test_no_match(self):
        """Test that unknown words do not match."""
        self.assertIsNone(self.registry.match(["banana"]))
        self.assertIsNone(self.registry.match([]))

    def test_groups_in_registration_order(self):
        """Test that groups keep registration order."""
        concepts = [g.concept for g in self.registry.groups()]
        self.assertEqual(concepts[0], Concept.FUNCTION)
        self.assertLess(concepts.index(Concept.IF), concepts.index(Concept.END_IF))

    def test_operator_groups_name_operator_kinds(self):
        """Test that every operator group maps to an operator kind."""
        operators = self.registry.groups(KeywordCategory.OPERATOR)
        self.assertGreater(len(operators), 0)
        for group in operators:
            self.assertIsInstance(group.operator, OperatorKind)

    def test_default_registry_is_frozen(self):
        """Test that the process-wide registry rejects registration."""
        self.assertTrue(self.registry.frozen)
        with self.assertRaises(RegistryError):
            self.registry.register(KeywordGroup("assert", ("assert",)))


class TestRegistryInvariants(unittest.TestCase):
    """Test cases for registration failures at startup."""

    def test_duplicate_surface_rejected(self):
        """Test that a surface may belong to one concept only."""
        with self.assertRaises(RegistryError) as ctx:
            KeywordRegistry([KeywordGroup("a", ("show",)), KeywordGroup("b", ("SHOW",))])
        self.assertEqual(ctx.exception.surface, "show")

    def test_duplicate_surface_within_group_rejected(self):
        """Test that a group cannot list the same surface twice."""
        with self.assertRaises(RegistryError):
            KeywordRegistry([KeywordGroup("a", ("x", "X"))])

    def test_duplicate_concept_rejected(self):
        """Test that concept ids are unique."""
        with self.assertRaises(RegistryError) as ctx:
            KeywordRegistry([KeywordGroup("a", ("x",)), KeywordGroup("a", ("y",))])
        self.assertEqual(ctx.exception.concept, "a")

    def test_empty_surfaces_rejected(self):
        """Test that groups need at least one non-blank surface."""
        with self.assertRaises(RegistryError):
            KeywordRegistry([KeywordGroup("a", ())])
        with self.assertRaises(RegistryError):
            KeywordRegistry([KeywordGroup("a", ("   ",))])

    def test_operator_group_must_name_operator_kind(self):
        """Test that operator groups are tied to canonical operator kinds."""
        with self.assertRaises(RegistryError):
            KeywordRegistry([KeywordGroup("frobnicate", ("frob",), KeywordCategory.OPERATOR)])

    def test_max_words_tracks_longest_surface(self):
        """Test that the registry knows its longest phrase."""
        registry = KeywordRegistry([KeywordGroup("a", ("one two three",))])
        self.assertEqual(registry.max_words, 3)


class TestBuildRegistry(unittest.TestCase):
    """Test cases for additive configuration groups."""

    def test_extra_group_extends_builtin_concept(self):
        """Test that a group naming a built-in concept adds synonyms."""
        registry = build_registry([group_from_dict({"concept": "output", "surfaces": ["afficher"]})])
        self.assertEqual(registry.resolve("afficher"), Concept.OUTPUT)
        self.assertEqual(registry.resolve("print"), Concept.OUTPUT)
        self.assertIsNone(default_registry().resolve("afficher"))
        self.assertTrue(registry.frozen)

    def test_extra_group_adds_new_concept(self):
        """Test that a new concept is registered after the built-ins."""
        registry = build_registry([group_from_dict({"concept": "assert", "surfaces": "ensure"})])
        self.assertEqual(registry.resolve("ensure"), "assert")
        self.assertEqual(registry.groups()[-1].concept, "assert")

    def test_extra_group_cannot_steal_surface(self):
        """Test that configuration cannot reuse a built-in surface."""
        with self.assertRaises(RegistryError):
            build_registry([group_from_dict({"concept": "assert", "surfaces": ["print"]})])

    def test_group_from_dict_requires_fields(self):
        """Test that malformed configuration groups are rejected."""
        with self.assertRaises(RegistryError):
            group_from_dict({"surfaces": ["x"]})
        with self.assertRaises(RegistryError):
            group_from_dict({"concept": "x", "surfaces": ["x"], "category": "adverb"})


if __name__ == '__main__':
    unittest.main()
