"""
Analysis configuration.

Configuration is static: it is read once at startup, validated, and then
used to build the keyword registry and snippet library. Faults surface as
ConfigurationError before any document is analysed.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .analyzer.completion import DEFAULT_MAX_ITEMS
from .analyzer.snippets import SnippetLibrary, SnippetLibraryError, default_library
from .lexer.errors import RegistryError
from .lexer.keywords import KeywordGroup, KeywordRegistry, build_registry, default_registry, group_from_dict
from .parser.scope_style import DEFAULT_TAB_WIDTH

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised for invalid configuration values or unreadable config files."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message if key is None else f"{key}: {message}")
        self.key = key


@dataclass
class AnalysisConfig:
    """Settings for one analysis engine."""
    tab_width: int = DEFAULT_TAB_WIDTH
    max_completion_items: int = DEFAULT_MAX_ITEMS
    snippet_path: Optional[str] = None
    extra_keyword_groups: List[KeywordGroup] = field(default_factory=list)
    log_level: str = "WARNING"

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.tab_width, int) or isinstance(self.tab_width, bool) or not 1 <= self.tab_width <= 16:
            raise ConfigurationError("must be an integer between 1 and 16", "tab_width")
        if (not isinstance(self.max_completion_items, int) or isinstance(self.max_completion_items, bool)
                or self.max_completion_items < 1):
            raise ConfigurationError("must be a positive integer", "max_completion_items")
        if self.snippet_path is not None and not isinstance(self.snippet_path, str):
            raise ConfigurationError("must be a path string", "snippet_path")
        if not isinstance(self.log_level, str) or self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"must be one of {', '.join(LOG_LEVELS)}", "log_level")
        self.log_level = self.log_level.upper()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        """Build a config from parsed JSON; unknown keys are rejected."""
        if not isinstance(data, dict):
            raise ConfigurationError("configuration must be a JSON object")
        known = {"tab_width", "max_completion_items", "snippet_path", "extra_keyword_groups", "log_level"}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"unknown configuration keys: {', '.join(unknown)}")

        values = dict(data)
        groups = values.pop("extra_keyword_groups", [])
        if not isinstance(groups, list):
            raise ConfigurationError("must be a list of keyword groups", "extra_keyword_groups")
        try:
            values["extra_keyword_groups"] = [group_from_dict(g) for g in groups]
        except RegistryError as e:
            raise ConfigurationError(str(e), "extra_keyword_groups") from e
        return cls(**values)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "AnalysisConfig":
        """Read a JSON configuration file. Relative snippet paths resolve against it."""
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigurationError(f"cannot read configuration file {path}: {e.strerror}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"invalid JSON in {path} at line {e.lineno}: {e.msg}") from e

        config = cls.from_dict(data)
        if config.snippet_path is not None and not Path(config.snippet_path).is_absolute():
            config.snippet_path = str(path.parent / config.snippet_path)
        logger.debug("Loaded configuration from %s", path)
        return config

    def build_registry(self) -> KeywordRegistry:
        """Registry for this config; the shared built-in one when nothing is added."""
        if not self.extra_keyword_groups:
            return default_registry()
        try:
            return build_registry(self.extra_keyword_groups)
        except RegistryError as e:
            raise ConfigurationError(str(e), "extra_keyword_groups") from e

    def load_snippets(self) -> SnippetLibrary:
        if self.snippet_path is None:
            return default_library()
        try:
            return SnippetLibrary.load(self.snippet_path)
        except SnippetLibraryError as e:
            raise ConfigurationError(str(e), "snippet_path") from e
