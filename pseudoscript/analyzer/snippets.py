"""
Snippet library.

Snippets are static, externally authored data in the editor snippet format:
a JSON object mapping a snippet name to its trigger prefix (or prefixes),
a body template and a description. Templates use ``${n:default}`` and
``$n`` placeholders, which are parsed once at load time and kept for
client-side tab stops.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_SNIPPET_PATH = Path(__file__).resolve().parent.parent / "data" / "snippets.json"

_PLACEHOLDER_PATTERN = re.compile(r"\$\{(\d+)(?::([^}]*))?\}|\$(\d+)")


class SnippetLibraryError(Exception):
    """Raised when a snippet file cannot be loaded or is malformed."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message if path is None else f"{path}: {message}")
        self.path = path


@dataclass(frozen=True)
class Placeholder:
    """A tab stop in a template: ``${index:default}``; ``$0`` is the final cursor."""
    index: int
    default: str
    offset: int     # position of the placeholder in the template text


@dataclass(frozen=True)
class Snippet:
    name: str
    prefixes: Tuple[str, ...]
    body: str
    description: str
    placeholders: Tuple[Placeholder, ...] = ()

    def matches(self, prefix: str) -> bool:
        """True when any trigger starts with ``prefix`` (case-insensitive)."""
        prefix = prefix.lower()
        return any(p.lower().startswith(prefix) for p in self.prefixes)

    def exact(self, prefix: str) -> bool:
        prefix = prefix.lower()
        return any(p.lower() == prefix for p in self.prefixes)


def parse_placeholders(template: str) -> Tuple[Placeholder, ...]:
    """Placeholders in order of appearance."""
    found = []
    for match in _PLACEHOLDER_PATTERN.finditer(template):
        if match.group(3) is not None:
            found.append(Placeholder(int(match.group(3)), "", match.start()))
        else:
            found.append(Placeholder(int(match.group(1)), match.group(2) or "", match.start()))
    return tuple(found)


def snippet_from_dict(name: str, data: Dict[str, Any]) -> Snippet:
    """Build a snippet from one editor-format entry."""
    if not isinstance(data, dict):
        raise SnippetLibraryError(f"snippet '{name}' must be an object")

    prefix = data.get("prefix")
    prefixes = [prefix] if isinstance(prefix, str) else prefix
    if not prefixes or not all(isinstance(p, str) and p.strip() for p in prefixes):
        raise SnippetLibraryError(f"snippet '{name}' needs a non-empty prefix")

    body = data.get("body")
    if isinstance(body, list) and all(isinstance(line, str) for line in body):
        body = "\n".join(body)
    if not isinstance(body, str) or not body:
        raise SnippetLibraryError(f"snippet '{name}' needs a string or list-of-strings body")

    description = data.get("description", "")
    if not isinstance(description, str):
        raise SnippetLibraryError(f"snippet '{name}' description must be a string")

    return Snippet(
        name=name,
        prefixes=tuple(p.strip() for p in prefixes),
        body=body,
        description=description,
        placeholders=parse_placeholders(body),
    )


class SnippetLibrary:
    """Read-only, ordered collection of snippets."""

    def __init__(self, snippets: Iterable[Snippet] = ()):
        self._snippets: Tuple[Snippet, ...] = tuple(snippets)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnippetLibrary":
        if not isinstance(data, dict):
            raise SnippetLibraryError("snippet file must contain a JSON object")
        return cls(snippet_from_dict(name, entry) for name, entry in data.items())

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "SnippetLibrary":
        """Load a snippet file; the bundled library when ``path`` is None."""
        path = Path(path) if path is not None else DEFAULT_SNIPPET_PATH
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise SnippetLibraryError(f"cannot read snippet file: {e.strerror}", path) from e
        except json.JSONDecodeError as e:
            raise SnippetLibraryError(f"invalid JSON at line {e.lineno}: {e.msg}", path) from e

        try:
            library = cls.from_dict(data)
        except SnippetLibraryError as e:
            raise SnippetLibraryError(str(e), path) from e
        logger.debug("Loaded %d snippets from %s", len(library), path)
        return library

    def matching(self, prefix: str) -> List[Snippet]:
        """Snippets with a trigger starting with ``prefix``, in file order."""
        if not prefix:
            return list(self._snippets)
        return [s for s in self._snippets if s.matches(prefix)]

    def __iter__(self):
        return iter(self._snippets)

    def __len__(self) -> int:
        return len(self._snippets)

    @property
    def names(self) -> Sequence[str]:
        return [s.name for s in self._snippets]


_default_library: Optional[SnippetLibrary] = None


def default_library() -> SnippetLibrary:
    """The bundled snippet library, loaded once per process."""
    global _default_library
    if _default_library is None:
        _default_library = SnippetLibrary.load()
    return _default_library
