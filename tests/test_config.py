"""
Test suite for analysis configuration.

Tests cover:
- Defaults and validation
- Loading JSON files, including relative snippet paths
- Startup failures for conflicting keyword groups
"""

import json
import os
import sys
import tempfile
import unittest

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, project_root)

from pseudoscript import AnalysisConfig, AnalysisEngine, ConfigurationError
from pseudoscript.lexer.keywords import default_registry


class TestAnalysisConfig(unittest.TestCase):
    """Test cases for configuration values."""

    def test_defaults(self):
        """Test the default configuration."""
        config = AnalysisConfig()
        self.assertEqual(config.tab_width, 4)
        self.assertEqual(config.max_completion_items, 50)
        self.assertIsNone(config.snippet_path)
        self.assertEqual(config.log_level, "WARNING")
        self.assertIs(config.build_registry(), default_registry())

    def test_invalid_values(self):
        """Test that bad values are rejected at construction."""
        with self.assertRaises(ConfigurationError) as ctx:
            AnalysisConfig(tab_width=0)
        self.assertEqual(ctx.exception.key, "tab_width")

        with self.assertRaises(ConfigurationError):
            AnalysisConfig(max_completion_items=True)
        with self.assertRaises(ConfigurationError):
            AnalysisConfig(log_level="loud")

    def test_log_level_normalised(self):
        """Test that log levels are case-insensitive."""
        self.assertEqual(AnalysisConfig(log_level="debug").log_level, "DEBUG")

    def test_unknown_keys_rejected(self):
        """Test that typos in configuration are reported."""
        with self.assertRaises(ConfigurationError):
            AnalysisConfig.from_dict({"tabwidth": 2})

    def test_bad_keyword_group(self):
        """Test that malformed keyword groups are configuration errors."""
        with self.assertRaises(ConfigurationError):
            AnalysisConfig.from_dict({"extra_keyword_groups": [{"surfaces": ["x"]}]})
        with self.assertRaises(ConfigurationError):
            AnalysisConfig.from_dict({"extra_keyword_groups": "print"})

    def test_conflicting_surface_fails_at_startup(self):
        """Test that reusing a built-in surface stops engine construction."""
        config = AnalysisConfig.from_dict({
            "extra_keyword_groups": [{"concept": "assert", "surfaces": ["print"]}],
        })
        with self.assertRaises(ConfigurationError) as ctx:
            AnalysisEngine(config)
        self.assertEqual(ctx.exception.key, "extra_keyword_groups")


class TestConfigFiles(unittest.TestCase):
    """Test cases for loading configuration from disk."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def write(self, name, content):
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content if isinstance(content, str) else json.dumps(content))
        return path

    def test_load_file(self):
        """Test reading a configuration file."""
        path = self.write("config.json", {"tab_width": 2, "log_level": "info"})
        config = AnalysisConfig.load(path)
        self.assertEqual(config.tab_width, 2)
        self.assertEqual(config.log_level, "INFO")

    def test_relative_snippet_path(self):
        """Test that snippet paths resolve against the configuration file."""
        self.write("snips.json", {"Hello": {"prefix": "hi", "body": "print \"hi\""}})
        path = self.write("config.json", {"snippet_path": "snips.json"})
        config = AnalysisConfig.load(path)
        self.assertEqual(config.snippet_path, os.path.join(self.tmp.name, "snips.json"))
        self.assertEqual(config.load_snippets().names, ["Hello"])

    def test_invalid_json(self):
        """Test that unreadable JSON is a configuration error."""
        path = self.write("config.json", "{ tab_width: 2 ")
        with self.assertRaises(ConfigurationError):
            AnalysisConfig.load(path)

    def test_missing_file(self):
        """Test that a missing file is a configuration error."""
        with self.assertRaises(ConfigurationError):
            AnalysisConfig.load(os.path.join(self.tmp.name, "absent.json"))

    def test_missing_snippet_file(self):
        """Test that a bad snippet path fails when snippets are loaded."""
        config = AnalysisConfig(snippet_path=os.path.join(self.tmp.name, "absent.json"))
        with self.assertRaises(ConfigurationError) as ctx:
            config.load_snippets()
        self.assertEqual(ctx.exception.key, "snippet_path")


if __name__ == '__main__':
    unittest.main()
